"""Mapping of kernel source files to the subsystems that own them."""

from __future__ import annotations

import json
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Sequence

import networkx as nx

from declextract.errors import ConfigError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PathRule:
    include: str = ""
    exclude: str = ""

    def matches(self, path: str) -> bool:
        if not self.include or not re.search(self.include, path):
            return False
        return not (self.exclude and re.search(self.exclude, path))


@dataclass(frozen=True)
class Subsystem:
    name: str
    path_rules: tuple[PathRule, ...] = ()
    parents: tuple[str, ...] = ()


@dataclass(frozen=True)
class Crash:
    """Crash descriptor; only the guilty path takes part in classification."""

    guilty_path: str = ""
    title: str = field(default="", compare=False)


class SubsystemExtractor:
    """Classify crashes (here: plain file paths) by owning subsystem."""

    def __init__(self, subsystems: Iterable[Subsystem]) -> None:
        self.subsystems = {item.name: item for item in subsystems}
        self._parents = nx.DiGraph()
        for item in self.subsystems.values():
            self._parents.add_node(item.name)
            for parent in item.parents:
                if parent not in self.subsystems:
                    raise ConfigError(f"subsystem {item.name} has unknown parent {parent}")
                self._parents.add_edge(item.name, parent)

    def from_path(self, path: str) -> List[Subsystem]:
        return [
            item
            for item in self.subsystems.values()
            if any(rule.matches(path) for rule in item.path_rules)
        ]

    def reachable_parents(self, name: str) -> set[str]:
        return set(nx.descendants(self._parents, name))

    def extract(self, crashes: Sequence[Crash]) -> List[Subsystem]:
        """
        Return the most prevalent subsystems among the crashes' guilty paths.

        When both a subsystem and one of its parents match, the parent is dropped.
        """

        matched: List[Subsystem] = []
        for crash in crashes:
            if crash.guilty_path:
                matched.extend(self.from_path(crash.guilty_path))

        ignore: set[str] = set()
        for item in matched:
            ignore.update(self.reachable_parents(item.name))

        counts = Counter(item.name for item in matched if item.name not in ignore)
        if not counts:
            return []
        best = max(counts.values())
        return [self.subsystems[name] for name, count in counts.items() if count == best]


def _rule_from_json(data: object, source: Path) -> PathRule:
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: path rule must be an object")
    return PathRule(include=str(data.get("include", "")), exclude=str(data.get("exclude", "")))


def load_subsystems(path: Path) -> List[Subsystem]:
    """
    Load a subsystem list from JSON::

        [{"name": "net", "path_rules": [{"include": "^net/"}], "parents": []}]
    """

    try:
        with Path(path).open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except OSError as exc:
        raise ConfigError(f"failed to load subsystem list {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"failed to parse subsystem list {path}: {exc}") from exc
    if not isinstance(payload, list):
        raise ConfigError(f"{path}: subsystem list must be a JSON array")

    subsystems: List[Subsystem] = []
    for entry in payload:
        if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
            raise ConfigError(f"{path}: every subsystem needs a name")
        subsystems.append(
            Subsystem(
                name=entry["name"],
                path_rules=tuple(_rule_from_json(rule, Path(path)) for rule in entry.get("path_rules", [])),
                parents=tuple(str(parent) for parent in entry.get("parents", [])),
            )
        )
    LOGGER.info("Loaded %d subsystems from %s", len(subsystems), path)
    return subsystems


__all__ = ["Crash", "PathRule", "Subsystem", "SubsystemExtractor", "load_subsystems"]
