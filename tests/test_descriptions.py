"""Tests for finishing, rendering and pruning the generated descriptions."""

from __future__ import annotations

import random
from pathlib import Path

import pytest

from declextract import syzlang
from declextract.analysis.descriptions import (
    HEADER,
    finish_descriptions,
    remove_unused,
    render,
    type_order,
    write_descriptions,
)
from declextract.analysis.ingest import DescriptionCollector
from declextract.errors import DescriptionError
from declextract.pipelines.extraction import ExtractionResult
from declextract.syzlang import Call, Define

HEADER_NODES = len(syzlang.parse(HEADER))


def _nodes(text: str, file: str = "fs/a.c") -> list:
    return syzlang.parse(text, file)


def _body(nodes) -> list:
    return [syzlang.serialize(node) for node in nodes[HEADER_NODES:]]


def test_header() -> None:
    nodes = finish_descriptions([])
    assert syzlang.format(nodes) == HEADER
    assert HEADER.startswith("# Code generated by declextract. DO NOT EDIT.")


def test_kind_ordering() -> None:
    nodes = _nodes(
        "s {\n\tx\tint32\n}\n"
        "b(x int8)\n"
        "# z comment\n"
        "include <linux/foo.h>\n"
        "f = 1, 2\n"
        "resource r[int32]\n"
        "type t int64\n"
        "a(x int8)\n"
    )
    body = _body(finish_descriptions(nodes))

    assert body == [
        "# z comment",
        "include <linux/foo.h>",
        "f = 1, 2",
        "resource r[int32]",
        "type t int64",
        "a(x int8)",
        "b(x int8)",
        "s {\n\tx\tint32\n}",
        "",
    ]


def test_duplicates_collapse() -> None:
    nodes = _nodes("f = 1, 2\ninclude <linux/foo.h>\n", "fs/a.c") + _nodes("f = 1, 2\ninclude <linux/foo.h>\n", "fs/b.c")
    assert _body(finish_descriptions(nodes)) == ["include <linux/foo.h>", "f = 1, 2"]


def test_calls_sharing_a_name_are_numbered() -> None:
    nodes = _nodes("foo(c int8)\nbar(x int8)\nfoo(a int8)\nfoo(b int8)\nbar(y int8)\n")
    calls = [node for node in finish_descriptions(nodes) if isinstance(node, Call)]

    assert [call.serialize() for call in calls] == [
        "bar(x int8)",
        "bar0(y int8)",
        "foo(a int8)",
        "foo0(b int8)",
        "foo1(c int8)",
    ]
    assert len({call.ident for call in calls}) == len(calls)


def test_numbering_skips_names_already_taken() -> None:
    nodes = _nodes("foo(a int8)\nfoo(b int8)\nfoo0(c int8)\n")
    calls = [node for node in finish_descriptions(nodes) if isinstance(node, Call)]

    assert [call.ident for call in calls] == ["foo", "foo1", "foo0"]


def test_numbered_calls_pass_type_check(tmp_path: Path) -> None:
    root = _corpus(tmp_path)
    auto_file = root / "auto.txt"
    nodes = finish_descriptions(_nodes("foo(a int8)\nfoo(b int8)\nfoo0(c int8)\n"))
    write_descriptions(nodes, auto_file)

    assert remove_unused(nodes, root, auto_file) == nodes


def test_type_order_rejects_unknown_kinds() -> None:
    with pytest.raises(TypeError):
        type_order(Define(ident="X", value="1"))


def test_render_inserts_struct_spacing() -> None:
    nodes = finish_descriptions(_nodes("s {\n\tx\tint32\n}\nc(a ptr[in, s])\n"))

    assert render(nodes) == (
        HEADER
        + "c(a ptr[in, s])\n"
        + "\n"
        + "s {\n\tx\tint32\n}\n"
    )


OUTPUTS = {
    "fs/a.c": (
        "# INTERFACE: IOCTL FOO FOO_CONST foo_ioctl read\n"
        "include <include/uapi/linux/foo.h>\n"
        "ioctl$FOO(fd fd, cmd const[FOO_CONST], arg ptr[in, foo_arg])\n"
        "foo_arg {\n\tx\tint32\n}\n"
        "foo_flags = 1, 2\n"
    ),
    "fs/b.c": (
        "include <include/uapi/linux/foo.h>\n"
        "ioctl$BAR(fd fd, cmd const[BAR_CONST], arg ptr[in, foo_arg])\n"
        "foo_flags = 1, 2\n"
    ),
    "kernel/sys.c": "setuid16(uid int32)\nsetuid16(uid int16)\n",
}


def _document(tmp_path: Path, order: list) -> str:
    collector = DescriptionCollector({"ioctl": ["ioctl"], "setuid16": ["setuid"]}, tmp_path, tmp_path)
    for name in order:
        collector.add_result(ExtractionResult(file=str(tmp_path / name), output=OUTPUTS[name]))
    return render(finish_descriptions(collector.nodes))


def test_output_is_independent_of_completion_order(tmp_path: Path) -> None:
    expected = _document(tmp_path, sorted(OUTPUTS))
    for seed in range(5):
        order = sorted(OUTPUTS)
        random.Random(seed).shuffle(order)
        assert _document(tmp_path, order) == expected
    assert "setuid$auto(uid int16)\nsetuid$auto0(uid int32)\n" in expected


MANUAL = (
    "resource fd[int32]\n"
    "ioctl(fd fd, cmd intptr, arg buffer[in])\n"
    "manual_user(arg ptr[in, gen_used])\n"
)

GENERATED = (
    "ioctl$FOO(fd fd, cmd const[FOO], arg ptr[in, gen_arg])\n"
    "gen_dead_flags = 1, 2\n"
    "type gen_dead_type int8\n"
    "gen_arg {\n\tx\tint32\n}\n"
    "gen_used {\n\ty\tint32\n}\n"
    "gen_dead {\n\tz\tint32\n}\n"
)


def _corpus(tmp_path: Path) -> Path:
    root = tmp_path / "sys"
    root.mkdir()
    (root / "manual.txt").write_text(MANUAL, encoding="utf-8")
    return root


def test_remove_unused(tmp_path: Path) -> None:
    root = _corpus(tmp_path)
    auto_file = root / "auto.txt"
    nodes = finish_descriptions(_nodes(GENERATED))
    write_descriptions(nodes, auto_file)

    kept = remove_unused(nodes, root, auto_file)
    write_descriptions(kept, auto_file)
    text = auto_file.read_text(encoding="utf-8")

    assert "gen_dead" not in text
    assert "gen_arg {" in text
    assert "gen_used {" in text
    assert "ioctl$FOO(" in text
    assert text.startswith(HEADER)
    assert len(nodes) - len(kept) == 3


def test_remove_unused_keeps_manual_leftovers(tmp_path: Path) -> None:
    root = _corpus(tmp_path)
    (root / "other.txt").write_text("manual_dead = 1, 2\n", encoding="utf-8")
    auto_file = root / "auto.txt"
    nodes = finish_descriptions(_nodes("ioctl$FOO(fd fd, cmd const[FOO], arg ptr[in, int8])\n"))
    write_descriptions(nodes, auto_file)

    assert remove_unused(nodes, root, auto_file) == nodes


def test_remove_unused_propagates_type_errors(tmp_path: Path) -> None:
    root = _corpus(tmp_path)
    auto_file = root / "auto.txt"
    nodes = finish_descriptions(_nodes("gen_used {\n\ty\tint32\n}\nresource fd[int32]\n"))
    write_descriptions(nodes, auto_file)

    with pytest.raises(DescriptionError, match="redeclared"):
        remove_unused(nodes, root, auto_file)


def test_remove_unused_requires_corpus(tmp_path: Path) -> None:
    with pytest.raises(DescriptionError):
        remove_unused([], tmp_path, tmp_path / "auto.txt")
