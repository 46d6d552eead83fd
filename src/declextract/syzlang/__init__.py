"""Parser, formatter and corpus checks for syscall descriptions."""

from declextract.syzlang.ast import (
    Call,
    Comment,
    Define,
    Description,
    Field,
    Incdir,
    Include,
    IntFlags,
    NewLine,
    Node,
    Resource,
    StrFlags,
    Struct,
    Type,
    TypeDef,
    format,
    parse,
    parse_file,
    parse_glob,
    serialize,
)
from declextract.syzlang.compiler import collect_unused, extract_consts

__all__ = [
    "Call",
    "Comment",
    "Define",
    "Description",
    "Field",
    "Incdir",
    "Include",
    "IntFlags",
    "NewLine",
    "Node",
    "Resource",
    "StrFlags",
    "Struct",
    "Type",
    "TypeDef",
    "collect_unused",
    "extract_consts",
    "format",
    "parse",
    "parse_file",
    "parse_glob",
    "serialize",
]
