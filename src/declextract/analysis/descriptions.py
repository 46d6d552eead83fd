"""Canonicalization, pruning and writing of the generated description document."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Iterable, List, Sequence

from declextract import syzlang
from declextract.errors import DescriptionError
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
)

LOGGER = logging.getLogger(__name__)

# The extra includes must come first: other kernel headers are broken and
# won't compile without them.
HEADER = """# Code generated by declextract. DO NOT EDIT.

include <include/vdso/bits.h>
include <include/linux/types.h>
"""


def type_order(node: Node) -> int:
    """Rank of a node kind in the generated document."""

    if isinstance(node, Comment):
        return 0
    if isinstance(node, Include):
        return 1
    if isinstance(node, IntFlags):
        return 2
    if isinstance(node, Resource):
        return 3
    if isinstance(node, TypeDef):
        return 4
    if isinstance(node, Call):
        return 5
    if isinstance(node, Struct):
        return 6
    if isinstance(node, NewLine):
        return 7
    raise TypeError(f"unhandled type {type(node).__name__}")


def _dedup(nodes: Iterable[Node]) -> List[Node]:
    keyed = sorted(((syzlang.serialize(node), node) for node in nodes), key=lambda item: item[0])
    result: List[Node] = []
    prev = None
    for text, node in keyed:
        if text == prev:
            continue
        prev = text
        result.append(node)
    return result


def _number_calls(nodes: Sequence[Node]) -> List[Node]:
    """
    Suffix consecutive calls sharing a name with 0, 1, ... so every name is unique.

    Suffixes already used by another call (e.g. a real ``foo0``) are skipped.
    """

    taken = {node.ident for node in nodes if isinstance(node, Call)}
    result: List[Node] = []
    prev_call, index = "", 0
    for node in nodes:
        if isinstance(node, Call):
            if node.ident == prev_call:
                while f"{node.ident}{index}" in taken:
                    index += 1
                node = replace(node, ident=f"{node.ident}{index}")
                taken.add(node.ident)
                index += 1
            else:
                prev_call, index = node.ident, 0
        result.append(node)
    return result


def finish_descriptions(nodes: Iterable[Node]) -> List[Node]:
    """Sort, deduplicate and disambiguate ``nodes`` and prepend the fixed header."""

    body = _dedup(nodes)
    body.sort(key=type_order)
    body = _number_calls(body)
    LOGGER.info("Generated %d declarations", len(body))
    return syzlang.parse(HEADER) + body


def render(nodes: Sequence[Node]) -> str:
    # Blank lines are inserted while parsing, so format, parse and format again.
    return syzlang.format(syzlang.parse(syzlang.format(nodes)))


def write_descriptions(nodes: Sequence[Node], path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render(nodes), encoding="utf-8")


def _prune_key(node: Node) -> str:
    if isinstance(node, (Comment, Include, Incdir, Define, NewLine, Call)):
        return ""
    if isinstance(node, (IntFlags, StrFlags, Resource, TypeDef, Struct)):
        return f"{node.kind}/{node.name}"
    raise TypeError(f"unhandled type {type(node).__name__}")


def remove_unused(nodes: Sequence[Node], corpus_dir: Path, auto_file: Path, pattern: str = "*.txt") -> List[Node]:
    """
    Drop generated declarations that nothing in the full corpus refers to.

    Generated descriptions use types defined in manual ones, so the whole
    corpus has to be parsed (with the generated file already written) to
    decide what is unused.
    """

    corpus = syzlang.parse_glob(corpus_dir, pattern)
    if not corpus:
        raise DescriptionError(f"no descriptions found in {corpus_dir}")
    unused_nodes = syzlang.collect_unused(corpus)
    unused = {f"{node.kind}/{node.name}" for node in unused_nodes if Path(node.file) == Path(auto_file)}
    kept = [node for node in nodes if not (_prune_key(node) and _prune_key(node) in unused)]
    LOGGER.info("Removed %d unused declarations", len(nodes) - len(kept))
    return kept


__all__ = [
    "HEADER",
    "finish_descriptions",
    "remove_unused",
    "render",
    "type_order",
    "write_descriptions",
]
