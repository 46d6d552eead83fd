"""Resolution of syscall entry points to the syscall names they implement.

The kernel ships ``arch/*/*.tbl`` files mapping functions defined with the
SYSCALL_DEFINE macros to syscall names, one per line::

    288      common  accept4                 sys_accept4

The mapping is many-to-many across architectures. For every syscall name the
entry point is chosen preferring the target architecture, then 64-bit tables,
then architecture name, so the result is deterministic.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List

from declextract.config import Target, TargetArch

LOGGER = logging.getLogger(__name__)

SyscallMap = Dict[str, List[str]]

# Pseudo-syscall without a table entry that maps to itself.
PRESEEDED = {"syz_genetlink_get_family_id": ["syz_genetlink_get_family_id"]}

# The powerpc spu group defines syscalls (utimesat) absent on every supported arch.
_EXCLUDED_GROUPS = frozenset({"spu"})
_EXCLUDED_SYSCALLS = frozenset(
    {
        # arch/arm64/tools/syscall_64.tbl pulls scripts/syscall.tbl where llseek
        # is only defined for 32-bit arches.
        "llseek",
        # Not fuzzed.
        "reboot",
    }
)


@dataclass(slots=True, frozen=True)
class SyscallTableEntry:
    entry_point: str
    arch: str
    syscall: str
    is64bit: bool


def parse_table_line(line: str, arch: str) -> SyscallTableEntry | None:
    """Parse one ``.tbl`` line, returning None for lines that do not describe a usable syscall."""

    fields = line.split()
    if len(fields) < 4 or fields[0] == "#":
        return None
    group, syscall = fields[1], fields[2]
    entry_point = fields[3].removeprefix("sys_")
    if syscall.startswith("unused") or entry_point == "-":
        return None
    if group in _EXCLUDED_GROUPS or syscall in _EXCLUDED_SYSCALLS:
        return None
    return SyscallTableEntry(
        entry_point=entry_point,
        arch=arch,
        syscall=syscall,
        is64bit=group == "common" or "64" in group,
    )


def parse_table(path: Path, arch: str) -> List[SyscallTableEntry]:
    entries: List[SyscallTableEntry] = []
    with Path(path).open("r", encoding="utf-8", errors="replace") as handle:
        for line in handle:
            entry = parse_table_line(line, arch)
            if entry is not None:
                entries.append(entry)
    return entries


def iter_table_entries(kernel_src: Path, arches: Iterable[TargetArch]) -> Iterator[SyscallTableEntry]:
    """Yield entries from every ``.tbl`` file below each arch directory."""

    seen: set[tuple[str, str]] = set()
    for arch in arches:
        key = (arch.vm_arch, arch.kernel_header_arch)
        if key in seen:
            continue
        seen.add(key)
        arch_dir = Path(kernel_src) / "arch" / arch.kernel_header_arch
        if not arch_dir.is_dir():
            continue
        for table in sorted(arch_dir.rglob("*.tbl")):
            LOGGER.debug("Reading syscall table %s", table)
            yield from parse_table(table, arch.vm_arch)


def build_syscall_map(entries: Iterable[SyscallTableEntry], target_arch: str) -> SyscallMap:
    """Pick a canonical entry point per syscall and group syscall names by it."""

    by_syscall: Dict[str, List[SyscallTableEntry]] = defaultdict(list)
    for entry in entries:
        by_syscall[entry.syscall].append(entry)

    rename: SyscallMap = {name: list(names) for name, names in PRESEEDED.items()}
    for syscall in sorted(by_syscall):
        candidates = sorted(
            by_syscall[syscall],
            key=lambda entry: (entry.arch != target_arch, not entry.is64bit, entry.arch),
        )
        entry_point = candidates[0].entry_point
        names = rename.setdefault(entry_point, [])
        if syscall not in names:
            names.append(syscall)
    return rename


def read_syscall_map(kernel_src: Path, target: Target) -> SyscallMap:
    """Load the syscall tables for all supported arches under ``kernel_src``."""

    entries = list(iter_table_entries(kernel_src, target.arches))
    LOGGER.info("Loaded %d syscall table entries", len(entries))
    return build_syscall_map(entries, target.vm_arch)


__all__ = [
    "PRESEEDED",
    "SyscallMap",
    "SyscallTableEntry",
    "build_syscall_map",
    "iter_table_entries",
    "parse_table",
    "parse_table_line",
    "read_syscall_map",
]
