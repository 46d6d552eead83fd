"""Corpus-level checks over parsed descriptions: constant extraction and unused declarations."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Iterable, Iterator, List, Mapping, Set, Tuple

import networkx as nx

from declextract.errors import DescriptionError
from declextract.syzlang.ast import (
    Call,
    Description,
    IntFlags,
    Node,
    Resource,
    StrFlags,
    Struct,
    Type,
    TypeDef,
)

LOGGER = logging.getLogger(__name__)

Corpus = Mapping[str, Description]

INT_TYPES = frozenset(
    {
        "int8", "int16", "int32", "int64", "intptr",
        "int16be", "int32be", "int64be",
        "bool8", "bool16", "bool32", "bool64", "boolptr",
    }
)
BUILTIN_TYPES = INT_TYPES | frozenset(
    {
        "array", "bitsize", "buffer", "bytesize", "compressed_image", "const", "csum",
        "fileoff", "flags", "fmt", "glob", "len", "offsetof", "proc", "ptr", "ptr64",
        "string", "stringnoz", "text", "void", "vma", "vma64",
    }
)
KEYWORDS = frozenset(
    {
        "in", "out", "inout", "opt", "parent", "dec", "hex", "oct", "inet", "pseudo",
        "target", "x86_real", "x86_16", "x86_32", "x86_64", "arm64", "ppc64",
    }
)
# Builtins whose first argument is a field path rather than a type.
_PATH_BUILTINS = frozenset({"len", "bytesize", "bitsize", "offsetof"})

DECLARATION_KINDS = (Resource, IntFlags, StrFlags, TypeDef, Struct)


def _declared(nodes: Iterable[Node]) -> Iterator[Node]:
    for node in nodes:
        if isinstance(node, DECLARATION_KINDS):
            yield node


def _node_types(node: Node) -> Iterator[Type]:
    """Top-level type expressions referenced by ``node`` (attributes excluded)."""

    if isinstance(node, Call):
        for arg in node.args:
            yield arg.type
        if node.ret is not None:
            yield node.ret
    elif isinstance(node, Struct):
        for field in node.fields:
            yield field.type
    elif isinstance(node, TypeDef):
        if node.struct is not None:
            for field in node.struct.fields:
                yield field.type
        elif node.type is not None:
            yield node.type
    elif isinstance(node, Resource):
        yield node.base


def _idents(typ: Type) -> Iterator[str]:
    """Identifiers in a type expression, skipping field paths of len-like builtins."""

    if typ.is_ident:
        yield typ.name
    for index, arg in enumerate(typ.args):
        if index == 0 and typ.name in _PATH_BUILTINS:
            continue
        yield from _idents(arg)
    for item in typ.colon:
        yield from _idents(item)


def declared_names(corpus: Corpus) -> Dict[str, Node]:
    """Map every declared type-like name to its node, rejecting duplicates."""

    names: Dict[str, Node] = {}
    for nodes in corpus.values():
        for node in _declared(nodes):
            prev = names.get(node.name)
            if prev is not None:
                raise DescriptionError(
                    f"{node.file}:{node.line}: {node.kind} {node.name} redeclared, "
                    f"previously declared as {prev.kind} at {prev.file}:{prev.line}"
                )
            names[node.name] = node
    return names


def _check_calls(corpus: Corpus) -> None:
    seen: Dict[str, Call] = {}
    for nodes in corpus.values():
        for node in nodes:
            if not isinstance(node, Call):
                continue
            prev = seen.get(node.ident)
            if prev is not None:
                raise DescriptionError(
                    f"{node.file}:{node.line}: syscall {node.ident} redeclared, "
                    f"previously declared at {prev.file}:{prev.line}"
                )
            seen[node.ident] = node


def _check_resources(names: Mapping[str, Node]) -> None:
    for node in names.values():
        if not isinstance(node, Resource):
            continue
        base = node.base.name
        if base in INT_TYPES:
            continue
        if not isinstance(names.get(base), Resource):
            raise DescriptionError(f"{node.file}:{node.line}: resource {node.name} has unknown base {base}")


def extract_consts(corpus: Corpus) -> Dict[str, Set[str]]:
    """Return, per file, the constant names its declarations refer to."""

    names = set(declared_names(corpus))
    consts: Dict[str, Set[str]] = defaultdict(set)
    for file, nodes in corpus.items():
        found = consts[file]
        for node in nodes:
            if isinstance(node, Call) and not node.call_name.startswith("syz_"):
                found.add(f"__NR_{node.call_name}")
            if isinstance(node, (IntFlags, Resource)):
                found.update(value for value in node.values if Type(value).is_ident)
            if isinstance(node, Resource):
                continue
            params = set(node.params) if isinstance(node, TypeDef) else set()
            for typ in _node_types(node):
                for ident in _idents(typ):
                    if ident in names or ident in params or ident in BUILTIN_TYPES or ident in KEYWORDS:
                        continue
                    found.add(ident)
    return dict(consts)


def reference_graph(corpus: Corpus) -> Tuple[nx.DiGraph, List[str]]:
    """Build a graph from every call and declaration to the declarations it references."""

    names = declared_names(corpus)
    graph = nx.DiGraph()
    roots: List[str] = []
    for name in names:
        graph.add_node(name)
    for nodes in corpus.values():
        for node in nodes:
            if isinstance(node, Call):
                source = f"syscall/{node.ident}"
                graph.add_node(source)
                roots.append(source)
            elif isinstance(node, DECLARATION_KINDS):
                source = node.name
            else:
                continue
            for typ in _node_types(node):
                for ident in _idents(typ):
                    if ident in names and ident != source:
                        graph.add_edge(source, ident)
    return graph, roots


def collect_unused(corpus: Corpus) -> List[Node]:
    """
    Type-check ``corpus`` and return the declarations no call reaches.

    Raises ``DescriptionError`` for duplicate declarations and resources with
    an unknown base.
    """

    names = declared_names(corpus)
    _check_calls(corpus)
    _check_resources(names)

    graph, roots = reference_graph(corpus)
    used: Set[str] = set(roots)
    for root in roots:
        used.update(nx.descendants(graph, root))
    unused = [node for name, node in names.items() if name not in used]
    LOGGER.debug("Found %d unused declarations out of %d", len(unused), len(names))
    return unused


__all__ = [
    "BUILTIN_TYPES",
    "Corpus",
    "INT_TYPES",
    "KEYWORDS",
    "collect_unused",
    "declared_names",
    "extract_consts",
    "reference_graph",
]
