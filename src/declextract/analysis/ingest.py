"""Turn per-file extraction output into declaration nodes and interface records."""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import List, Mapping, Sequence

from declextract.analysis.interfaces import SYSCALL_KIND, Interface, InterfaceRegistry
from declextract.errors import DescriptionError, ExtractionError, InterfaceError
from declextract.pipelines.extraction import ExtractionResult
from declextract.syzlang import (
    Call,
    Comment,
    Define,
    Incdir,
    Include,
    IntFlags,
    NewLine,
    Node,
    Resource,
    StrFlags,
    Struct,
    TypeDef,
    parse,
)

LOGGER = logging.getLogger(__name__)

INTERFACE_MARKER = "INTERFACE:"
INTERFACE_FIELDS = 6
AUTO_VARIANT = "$auto"


def rename_syscall(call: Call, syscall_names: Mapping[str, Sequence[str]]) -> List[Call]:
    """
    Clone ``call`` once per syscall name its entry point implements.

    E.g. ``SYSCALL_DEFINE1(setuid16, ...)`` is referred to as ``setuid`` in the
    tables. Entry points without a table record are not supported on any of
    our arches and yield nothing.
    """

    names = syscall_names.get(call.call_name, ())
    variant = call.ident.removeprefix(call.call_name) or AUTO_VARIANT
    return [replace(call, ident=name + variant, call_name=name) for name in names]


def rewrite_include(include: Include, kernel_src: Path, kernel_obj: Path) -> Include:
    """Make an include path relative to the source tree instead of the build tree."""

    joined = os.path.join(str(kernel_obj), include.path.lstrip("/"))
    try:
        relative = os.path.relpath(joined, str(kernel_src))
    except ValueError:
        return include
    return replace(include, path=Path(relative).as_posix())


def parse_interface_comment(
    text: str, file: str, syscall_names: Mapping[str, Sequence[str]]
) -> List[Interface]:
    """Build interface records from an ``INTERFACE: kind name const func access`` comment."""

    fields = text.split()
    if len(fields) != INTERFACE_FIELDS:
        raise InterfaceError(f"{text!r} has wrong number of fields")
    fields = ["" if value == "-" else value for value in fields]
    _, kind, name, const, func, access = fields
    if kind != SYSCALL_KIND:
        return [Interface(kind=kind, name=name, files=[file], identifying_const=const, func=func, access=access)]
    return [
        Interface(
            kind=kind,
            name=syscall,
            files=[file],
            identifying_const=f"__NR_{syscall}",
            func=func,
            access=access,
        )
        for syscall in syscall_names.get(name, ())
    ]


class DescriptionCollector:
    """Sequential reducer over extraction results."""

    def __init__(
        self,
        syscall_names: Mapping[str, Sequence[str]],
        kernel_src: Path,
        kernel_obj: Path,
        registry: InterfaceRegistry | None = None,
    ) -> None:
        self.syscall_names = syscall_names
        self.kernel_src = Path(kernel_src)
        self.kernel_obj = Path(kernel_obj)
        self.registry = registry or InterfaceRegistry()
        self.nodes: List[Node] = []

    def relative(self, file: str) -> str:
        return Path(os.path.relpath(file, str(self.kernel_src))).as_posix()

    def add_result(self, result: ExtractionResult) -> None:
        file = self.relative(result.file)
        if result.error is not None:
            raise ExtractionError(f"{file}: {result.error}")
        try:
            nodes = parse(result.output, file)
        except DescriptionError as exc:
            raise ExtractionError(f"{file}: parsing error: {exc}\n{result.output}") from exc
        self.add_nodes(nodes, file)

    def add_nodes(self, nodes: Sequence[Node], file: str) -> None:
        for node in nodes:
            if isinstance(node, Call):
                self.nodes.extend(rename_syscall(node, self.syscall_names))
            elif isinstance(node, Include):
                self.nodes.append(rewrite_include(node, self.kernel_src, self.kernel_obj))
            elif isinstance(node, Comment):
                if not node.text.startswith(INTERFACE_MARKER):
                    self.nodes.append(node)
                    continue
                for iface in parse_interface_comment(node.text, file, self.syscall_names):
                    self.registry.merge(iface)
            elif isinstance(node, (NewLine, Incdir, Define, Resource, IntFlags, StrFlags, TypeDef, Struct)):
                self.nodes.append(node)
            else:
                raise TypeError(f"unhandled node type {type(node).__name__}")


__all__ = [
    "AUTO_VARIANT",
    "DescriptionCollector",
    "INTERFACE_MARKER",
    "parse_interface_comment",
    "rename_syscall",
    "rewrite_include",
]
