"""Tests for the path based subsystem classifier."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from declextract.errors import ConfigError
from declextract.subsystems import Crash, PathRule, Subsystem, SubsystemExtractor, load_subsystems

SUBSYSTEMS = [
    Subsystem("fs", path_rules=(PathRule(include="^fs/", exclude="^fs/ext4/"),)),
    Subsystem("ext4", path_rules=(PathRule(include="^fs/ext4/"),), parents=("fs",)),
    Subsystem("net", path_rules=(PathRule(include="^net/"), PathRule(include="^drivers/net/"))),
    Subsystem("ipv4", path_rules=(PathRule(include="^net/ipv4/"),), parents=("net",)),
]


def _names(items) -> list:
    return sorted(item.name for item in items)


def test_path_rule() -> None:
    rule = PathRule(include="^fs/", exclude="^fs/ext4/")
    assert rule.matches("fs/open.c")
    assert not rule.matches("fs/ext4/inode.c")
    assert not rule.matches("net/socket.c")
    assert not PathRule().matches("fs/open.c")


def test_from_path() -> None:
    extractor = SubsystemExtractor(SUBSYSTEMS)
    assert _names(extractor.from_path("net/ipv4/tcp.c")) == ["ipv4", "net"]
    assert _names(extractor.from_path("drivers/net/tun.c")) == ["net"]
    assert extractor.from_path("mm/mmap.c") == []


def test_parent_is_dropped() -> None:
    extractor = SubsystemExtractor(SUBSYSTEMS)
    assert _names(extractor.extract([Crash("net/ipv4/tcp.c")])) == ["ipv4"]


def test_most_common_wins() -> None:
    extractor = SubsystemExtractor(SUBSYSTEMS)
    crashes = [Crash("fs/open.c"), Crash("fs/read_write.c"), Crash("drivers/net/tun.c")]
    assert _names(extractor.extract(crashes)) == ["fs"]


def test_ties_are_kept() -> None:
    extractor = SubsystemExtractor(SUBSYSTEMS)
    crashes = [Crash("fs/open.c"), Crash("drivers/net/tun.c")]
    assert _names(extractor.extract(crashes)) == ["fs", "net"]


def test_no_match() -> None:
    extractor = SubsystemExtractor(SUBSYSTEMS)
    assert extractor.extract([Crash("mm/mmap.c"), Crash("")]) == []
    assert SubsystemExtractor([]).extract([Crash("fs/open.c")]) == []


def test_unknown_parent() -> None:
    with pytest.raises(ConfigError, match="unknown parent"):
        SubsystemExtractor([Subsystem("ext4", parents=("fs",))])


def test_load_subsystems(tmp_path: Path) -> None:
    source = tmp_path / "subsystems.json"
    source.write_text(
        json.dumps(
            [
                {"name": "fs", "path_rules": [{"include": "^fs/", "exclude": "^fs/ext4/"}]},
                {"name": "ext4", "path_rules": [{"include": "^fs/ext4/"}], "parents": ["fs"]},
            ]
        ),
        encoding="utf-8",
    )

    subsystems = load_subsystems(source)

    assert subsystems == SUBSYSTEMS[:2]


@pytest.mark.parametrize("payload", ["{", '{"name": "fs"}', '[{"path_rules": []}]', '[{"name": "fs", "path_rules": ["^fs/"]}]'])
def test_load_subsystems_rejects_bad_input(tmp_path: Path, payload: str) -> None:
    source = tmp_path / "subsystems.json"
    source.write_text(payload, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_subsystems(source)


def test_load_subsystems_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_subsystems(tmp_path / "missing.json")
