"""Registry of kernel interfaces discovered through INTERFACE annotations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import AbstractSet, Dict, Iterable, List, Mapping, Optional, Set

from declextract.errors import InterfaceError
from declextract.subsystems import Crash, SubsystemExtractor

LOGGER = logging.getLogger(__name__)

SYSCALL_KIND = "SYSCALL"
UNKNOWN_ACCESS = "unknown"


@dataclass
class Interface:
    kind: str
    name: str
    files: List[str] = field(default_factory=list)
    identifying_const: str = ""
    func: str = ""
    access: str = ""
    subsystems: List[str] = field(default_factory=list)
    manual_descriptions: bool = False
    auto_descriptions: bool = False

    @property
    def id(self) -> str:
        return f"{self.kind}/{self.name}"

    def serialize(self) -> str:
        fields = [
            self.kind,
            self.name,
            f"func:{self.func}",
            f"access:{self.access}",
            f"manual_desc:{str(self.manual_descriptions).lower()}",
            f"auto_desc:{str(self.auto_descriptions).lower()}",
        ]
        fields.extend(f"file:{file}" for file in self.files)
        fields.extend(f"subsystem:{name}" for name in self.subsystems)
        return "\t".join(fields)


class InterfaceRegistry:
    """Identity-keyed merge map; ``finish`` turns it into the sorted interface list."""

    def __init__(self) -> None:
        self._interfaces: Dict[str, Interface] = {}

    def __len__(self) -> int:
        return len(self._interfaces)

    def __contains__(self, key: str) -> bool:
        return key in self._interfaces

    def get(self, key: str) -> Optional[Interface]:
        return self._interfaces.get(key)

    def merge(self, iface: Interface) -> Interface:
        """
        Merge ``iface`` into the registry.

        Records with the same identity must agree on the identifying constant;
        files accumulate and the remaining fields come from the latest record.
        """

        prev = self._interfaces.get(iface.id)
        merged = replace(iface, files=list(iface.files), subsystems=list(iface.subsystems))
        if prev is not None:
            if iface.identifying_const != prev.identifying_const:
                raise InterfaceError(
                    f"interface {iface.id} has different identifying consts: "
                    f"{iface.identifying_const} vs {prev.identifying_const}"
                )
            if (iface.func, iface.access) != (prev.func, prev.access):
                LOGGER.warning(
                    "Interface %s seen with func=%r access=%r and func=%r access=%r",
                    iface.id, prev.func, prev.access, iface.func, iface.access,
                )
            merged.files.extend(prev.files)
        self._interfaces[iface.id] = merged
        return merged

    def finish(
        self,
        extractor: SubsystemExtractor,
        *,
        auto_consts: AbstractSet[str] = frozenset(),
        manual_consts: AbstractSet[str] = frozenset(),
    ) -> List[Interface]:
        """Return the final, deterministically ordered interface list."""

        interfaces: List[Interface] = []
        for iface in self._interfaces.values():
            files = sorted(set(iface.files))
            subsystems = extractor.extract([Crash(guilty_path=file) for file in files])
            interfaces.append(
                replace(
                    iface,
                    files=files,
                    subsystems=sorted(item.name for item in subsystems),
                    access=iface.access or UNKNOWN_ACCESS,
                    auto_descriptions=iface.identifying_const in auto_consts,
                    manual_descriptions=iface.identifying_const in manual_consts,
                )
            )
        interfaces.sort(key=lambda iface: iface.id)
        LOGGER.info("Finalized %d interfaces", len(interfaces))
        return interfaces


def split_consts(consts: Mapping[str, Iterable[str]], auto_file: Path) -> tuple[Set[str], Set[str]]:
    """Split per-file constants into (generated, manual) sets."""

    auto: Set[str] = set()
    manual: Set[str] = set()
    for file, names in consts.items():
        (auto if Path(file) == Path(auto_file) else manual).update(names)
    return auto, manual


def serialize_interfaces(interfaces: Iterable[Interface]) -> str:
    return "".join(iface.serialize() + "\n" for iface in interfaces)


def write_interfaces(interfaces: Iterable[Interface], path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(serialize_interfaces(interfaces), encoding="utf-8")


__all__ = [
    "Interface",
    "InterfaceRegistry",
    "SYSCALL_KIND",
    "UNKNOWN_ACCESS",
    "serialize_interfaces",
    "split_consts",
    "write_interfaces",
]
