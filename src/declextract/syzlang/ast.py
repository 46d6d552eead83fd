"""Node model, parser and formatter for the syscall description language.

Only the subset produced by the extraction tool and used by hand-written
descriptions is understood: comments, ``include``/``incdir``, ``define``,
resources, integer and string flags, type aliases, calls, structs and unions.

Not supported, and reported as ``DescriptionError``: ``meta`` directives
(e.g. ``meta arches["amd64"]``), expressions inside attributes such as
conditional fields ``(if[value[x] == 1])``. A full upstream corpus using
these constructs cannot be pruned with this parser.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from declextract.errors import DescriptionError

_TOKEN_RE = re.compile(
    r"""
      (?P<space>[ \t]+)
    | (?P<string>"[^"]*"|'[^']*'|`[^`]*`)
    | (?P<number>-?0x[0-9a-fA-F]+|-?[0-9]+)
    | (?P<ident>[A-Za-z_][A-Za-z0-9_$]*)
    | (?P<punct>[\[\](),:={}])
    """,
    re.VERBOSE,
)
_INCLUDE_RE = re.compile(r"^(include|incdir)\s*<([^>]*)>$")
_DEFINE_RE = re.compile(r"^define\s+([A-Za-z_][A-Za-z0-9_]*)\s+(.+)$")


@dataclass(frozen=True)
class Type:
    """A type expression such as ``ptr[in, array[int8, 16]]`` or ``int32:3``."""

    name: str
    args: Tuple["Type", ...] = ()
    colon: Tuple["Type", ...] = ()

    @property
    def is_ident(self) -> bool:
        return bool(self.name) and (self.name[0].isalpha() or self.name[0] == "_")

    def serialize(self) -> str:
        text = self.name
        if self.args:
            text += "[" + ", ".join(arg.serialize() for arg in self.args) + "]"
        for item in self.colon:
            text += ":" + item.serialize()
        return text

    def walk(self) -> Iterable["Type"]:
        yield self
        for arg in self.args:
            yield from arg.walk()
        for item in self.colon:
            yield from item.walk()


@dataclass(frozen=True)
class Field:
    name: str
    type: Type
    attrs: Tuple[Type, ...] = ()

    def serialize(self, sep: str = " ") -> str:
        text = f"{self.name}{sep}{self.type.serialize()}"
        if self.attrs:
            text += " (" + ", ".join(attr.serialize() for attr in self.attrs) + ")"
        return text


@dataclass(frozen=True)
class Node:
    """Base class for top-level declarations; ``file``/``line`` record where it was parsed."""

    file: str = field(default="", compare=False, repr=False, kw_only=True)
    line: int = field(default=0, compare=False, repr=False, kw_only=True)

    kind = "node"

    @property
    def name(self) -> str:
        return ""

    def serialize(self) -> str:  # pragma: no cover - overridden by every variant
        raise NotImplementedError(type(self).__name__)


@dataclass(frozen=True)
class NewLine(Node):
    kind = "new line"

    def serialize(self) -> str:
        return ""


@dataclass(frozen=True)
class Comment(Node):
    text: str = ""
    kind = "comment"

    def serialize(self) -> str:
        return f"# {self.text}" if self.text else "#"


@dataclass(frozen=True)
class Include(Node):
    path: str = ""
    kind = "include"

    def serialize(self) -> str:
        return f"include <{self.path}>"


@dataclass(frozen=True)
class Incdir(Node):
    path: str = ""
    kind = "incdir"

    def serialize(self) -> str:
        return f"incdir <{self.path}>"


@dataclass(frozen=True)
class Define(Node):
    ident: str = ""
    value: str = ""
    kind = "define"

    @property
    def name(self) -> str:
        return self.ident

    def serialize(self) -> str:
        return f"define {self.ident} {self.value}"


@dataclass(frozen=True)
class Resource(Node):
    ident: str = ""
    base: Type = Type("intptr")
    values: Tuple[str, ...] = ()
    kind = "resource"

    @property
    def name(self) -> str:
        return self.ident

    def serialize(self) -> str:
        text = f"resource {self.ident}[{self.base.serialize()}]"
        if self.values:
            text += ": " + ", ".join(self.values)
        return text


@dataclass(frozen=True)
class IntFlags(Node):
    ident: str = ""
    values: Tuple[str, ...] = ()
    kind = "flags"

    @property
    def name(self) -> str:
        return self.ident

    def serialize(self) -> str:
        return f"{self.ident} = " + ", ".join(self.values)


@dataclass(frozen=True)
class StrFlags(Node):
    ident: str = ""
    values: Tuple[str, ...] = ()
    kind = "string flags"

    @property
    def name(self) -> str:
        return self.ident

    def serialize(self) -> str:
        return f"{self.ident} = " + ", ".join(self.values)


Member = Union[Field, "Comment"]


def _serialize_body(members: Sequence[Member], is_union: bool, attrs: Sequence[Type]) -> str:
    opener, closer = ("[", "]") if is_union else ("{", "}")
    lines = [opener]
    for member in members:
        if isinstance(member, Comment):
            lines.append("\t" + member.serialize())
        else:
            lines.append("\t" + member.serialize(sep="\t"))
    tail = closer
    if attrs:
        tail += " [" + ", ".join(attr.serialize() for attr in attrs) + "]"
    lines.append(tail)
    return "\n".join(lines)


@dataclass(frozen=True)
class Struct(Node):
    ident: str = ""
    members: Tuple[Member, ...] = ()
    is_union: bool = False
    attrs: Tuple[Type, ...] = ()

    @property
    def kind(self) -> str:  # type: ignore[override]
        return "union" if self.is_union else "struct"

    @property
    def name(self) -> str:
        return self.ident

    @property
    def fields(self) -> Tuple[Field, ...]:
        return tuple(member for member in self.members if isinstance(member, Field))

    def serialize(self) -> str:
        return f"{self.ident} " + _serialize_body(self.members, self.is_union, self.attrs)


@dataclass(frozen=True)
class TypeDef(Node):
    ident: str = ""
    params: Tuple[str, ...] = ()
    type: Optional[Type] = None
    struct: Optional[Struct] = None
    kind = "type"

    @property
    def name(self) -> str:
        return self.ident

    def serialize(self) -> str:
        head = f"type {self.ident}"
        if self.params:
            head += "[" + ", ".join(self.params) + "]"
        if self.struct is not None:
            return head + " " + _serialize_body(self.struct.members, self.struct.is_union, self.struct.attrs)
        assert self.type is not None
        return f"{head} {self.type.serialize()}"


@dataclass(frozen=True)
class Call(Node):
    """A syscall declaration; ``ident`` is the full name, ``call_name`` the part before ``$``."""

    ident: str = ""
    call_name: str = ""
    args: Tuple[Field, ...] = ()
    ret: Optional[Type] = None
    attrs: Tuple[Type, ...] = ()
    kind = "syscall"

    @property
    def name(self) -> str:
        return self.ident

    def serialize(self) -> str:
        text = f"{self.ident}(" + ", ".join(arg.serialize() for arg in self.args) + ")"
        if self.ret is not None:
            text += " " + self.ret.serialize()
        if self.attrs:
            text += " (" + ", ".join(attr.serialize() for attr in self.attrs) + ")"
        return text


Description = List[Node]


class _Tokens:
    """Cursor over the tokens of a single line."""

    def __init__(self, text: str, filename: str, line: int) -> None:
        self.filename = filename
        self.line = line
        self.items: List[Tuple[str, str]] = []
        pos = 0
        while pos < len(text):
            match = _TOKEN_RE.match(text, pos)
            if match is None:
                raise self.error(f"unexpected character {text[pos]!r}")
            kind = match.lastgroup or ""
            if kind != "space":
                self.items.append((kind, match.group()))
            pos = match.end()
        self.pos = 0

    def error(self, message: str) -> DescriptionError:
        return DescriptionError(f"{self.filename}:{self.line}: {message}")

    def peek(self) -> Optional[str]:
        if self.pos < len(self.items):
            return self.items[self.pos][1]
        return None

    def at_end(self) -> bool:
        return self.pos >= len(self.items)

    def rest(self) -> List[str]:
        return [text for _, text in self.items[self.pos:]]

    def next(self) -> Tuple[str, str]:
        if self.at_end():
            raise self.error("unexpected end of line")
        item = self.items[self.pos]
        self.pos += 1
        return item

    def expect(self, value: str) -> None:
        _, text = self.next()
        if text != value:
            raise self.error(f"expected {value!r}, got {text!r}")

    def ident(self) -> str:
        kind, text = self.next()
        if kind != "ident":
            raise self.error(f"expected identifier, got {text!r}")
        return text

    def accept(self, value: str) -> bool:
        if self.peek() == value:
            self.pos += 1
            return True
        return False

    def done(self) -> None:
        if not self.at_end():
            raise self.error(f"unexpected {self.peek()!r}")

    def type(self) -> Type:
        kind, text = self.next()
        if kind not in ("ident", "number", "string"):
            raise self.error(f"expected type, got {text!r}")
        args: Tuple[Type, ...] = ()
        if self.accept("["):
            args = self.type_list("]")
        colon: List[Type] = []
        while self.accept(":"):
            kind, item = self.next()
            if kind not in ("ident", "number"):
                raise self.error(f"bad value after ':': {item!r}")
            colon.append(Type(item))
        return Type(text, args, tuple(colon))

    def type_list(self, closer: str) -> Tuple[Type, ...]:
        items = [self.type()]
        while self.accept(","):
            items.append(self.type())
        self.expect(closer)
        return tuple(items)

    def values(self) -> Tuple[str, ...]:
        values: List[str] = []
        while True:
            kind, text = self.next()
            if kind not in ("ident", "number", "string"):
                raise self.error(f"bad value {text!r}")
            values.append(text)
            if not self.accept(","):
                break
        self.done()
        return tuple(values)


def _parse_field(tokens: _Tokens) -> Field:
    name = tokens.ident()
    typ = tokens.type()
    attrs: Tuple[Type, ...] = ()
    if tokens.accept("("):
        attrs = tokens.type_list(")")
    return Field(name, typ, attrs)


def _parse_call(tokens: _Tokens, ident: str, loc: dict) -> Call:
    tokens.expect("(")
    args: List[Field] = []
    if not tokens.accept(")"):
        args.append(_parse_field(tokens))
        while tokens.accept(","):
            args.append(_parse_field(tokens))
        tokens.expect(")")
    ret = None
    attrs: Tuple[Type, ...] = ()
    if not tokens.at_end() and tokens.peek() != "(":
        ret = tokens.type()
    if tokens.accept("("):
        attrs = tokens.type_list(")")
    tokens.done()
    return Call(ident=ident, call_name=ident.split("$", 1)[0], args=tuple(args), ret=ret, attrs=attrs, **loc)


def _parse_body(lines: Sequence[str], start: int, is_union: bool, filename: str) -> Tuple[Tuple[Member, ...], Tuple[Type, ...], int]:
    """Parse struct/union members from ``lines[start:]``; return members, attrs and the next index."""

    closer = "]" if is_union else "}"
    members: List[Member] = []
    index = start
    while index < len(lines):
        stripped = lines[index].strip()
        lineno = index + 1
        index += 1
        if not stripped:
            continue
        if stripped.startswith("#"):
            members.append(Comment(text=stripped[1:].strip(), file=filename, line=lineno))
            continue
        tokens = _Tokens(stripped, filename, lineno)
        if stripped.startswith(closer):
            tokens.expect(closer)
            attrs: Tuple[Type, ...] = ()
            if tokens.accept("["):
                attrs = tokens.type_list("]")
            tokens.done()
            if not members:
                raise tokens.error("struct has no fields")
            return tuple(members), attrs, index
        members.append(_parse_field(tokens))
        tokens.done()
    raise DescriptionError(f"{filename}:{start}: unterminated {'union' if is_union else 'struct'}")


def _parse_decl(lines: Sequence[str], index: int, filename: str) -> Tuple[Node, int]:
    raw = lines[index]
    stripped = raw.strip()
    lineno = index + 1
    loc = {"file": filename, "line": lineno}
    if not stripped:
        return NewLine(**loc), index + 1
    if stripped.startswith("#"):
        return Comment(text=stripped[1:].strip(), **loc), index + 1
    match = _INCLUDE_RE.match(stripped)
    if match:
        cls = Include if match.group(1) == "include" else Incdir
        return cls(path=match.group(2), **loc), index + 1
    match = _DEFINE_RE.match(stripped)
    if match:
        return Define(ident=match.group(1), value=match.group(2).strip(), **loc), index + 1

    tokens = _Tokens(stripped, filename, lineno)
    ident = tokens.ident()
    if ident == "resource":
        name = tokens.ident()
        tokens.expect("[")
        base = tokens.type()
        tokens.expect("]")
        values: Tuple[str, ...] = ()
        if tokens.accept(":"):
            values = tokens.values()
        tokens.done()
        return Resource(ident=name, base=base, values=values, **loc), index + 1
    if ident == "type":
        name = tokens.ident()
        params: Tuple[str, ...] = ()
        if tokens.rest() not in (["{"], ["["]) and tokens.accept("["):
            items = [tokens.ident()]
            while tokens.accept(","):
                items.append(tokens.ident())
            tokens.expect("]")
            params = tuple(items)
        if tokens.rest() in (["{"], ["["]):
            is_union = tokens.rest() == ["["]
            members, attrs, next_index = _parse_body(lines, index + 1, is_union, filename)
            body = Struct(ident=name, members=members, is_union=is_union, attrs=attrs, **loc)
            return TypeDef(ident=name, params=params, struct=body, **loc), next_index
        typ = tokens.type()
        tokens.done()
        return TypeDef(ident=name, params=params, type=typ, **loc), index + 1
    if tokens.accept("="):
        values = tokens.values()
        if all(value[0] in "\"'`" for value in values):
            return StrFlags(ident=ident, values=values, **loc), index + 1
        return IntFlags(ident=ident, values=values, **loc), index + 1
    if tokens.peek() == "(":
        return _parse_call(tokens, ident, loc), index + 1
    if tokens.rest() in (["{"], ["["]):
        is_union = tokens.rest() == ["["]
        members, attrs, next_index = _parse_body(lines, index + 1, is_union, filename)
        return Struct(ident=ident, members=members, is_union=is_union, attrs=attrs, **loc), next_index
    raise tokens.error(f"unexpected declaration {stripped!r}")


def parse(text: str, filename: str = "") -> Description:
    """
    Parse description text into top-level nodes.

    Runs of blank lines collapse into one ``NewLine``, structs get blank lines
    around them (unless directly preceded by a comment) and trailing blank
    lines are dropped.
    """

    lines = text.splitlines()
    nodes: Description = []
    prev_newline, prev_comment = True, False
    index = 0
    while index < len(lines):
        node, index = _parse_decl(lines, index, filename)
        if isinstance(node, NewLine) and prev_newline:
            continue
        if isinstance(node, Struct) and not prev_newline and not prev_comment:
            nodes.append(NewLine(file=node.file, line=node.line))
        nodes.append(node)
        if isinstance(node, Struct):
            node = NewLine(file=node.file, line=node.line)
            nodes.append(node)
        prev_newline = isinstance(node, NewLine)
        prev_comment = isinstance(node, Comment)
    while nodes and isinstance(nodes[-1], NewLine):
        nodes.pop()
    return nodes


def serialize(node: Node) -> str:
    """Canonical text of a single node, used for ordering and equality."""

    return node.serialize()


def format(nodes: Iterable[Node]) -> str:
    return "".join(node.serialize() + "\n" for node in nodes)


def parse_file(path: Path, filename: str | None = None) -> Description:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise DescriptionError(f"failed to read {path}: {exc}") from exc
    return parse(text, filename if filename is not None else str(path))


def parse_glob(directory: Path, pattern: str = "*.txt") -> Dict[str, Description]:
    """Parse every file matching ``pattern`` in ``directory``, keyed by path."""

    return {str(path): parse_file(path) for path in sorted(Path(directory).glob(pattern))}


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
    "format",
    "parse",
    "parse_file",
    "parse_glob",
    "serialize",
]
