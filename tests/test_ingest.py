"""Tests for turning extraction output into declarations and interfaces."""

from __future__ import annotations

from pathlib import Path

import pytest

from declextract import syzlang
from declextract.analysis.ingest import (
    DescriptionCollector,
    parse_interface_comment,
    rename_syscall,
    rewrite_include,
)
from declextract.errors import ExtractionError, InterfaceError
from declextract.pipelines.extraction import ExtractionResult
from declextract.syzlang import Call, Comment, Include, Struct

SYSCALLS = {
    "setuid16": ["setuid", "setuid32"],
    "ioctl": ["ioctl"],
    "read": ["read"],
}


def _call(text: str) -> Call:
    node = syzlang.parse(text)[0]
    assert isinstance(node, Call)
    return node


def test_rename_expands_to_every_name() -> None:
    calls = rename_syscall(_call("setuid16$foo(uid int32)"), SYSCALLS)

    assert [call.ident for call in calls] == ["setuid$foo", "setuid32$foo"]
    assert [call.call_name for call in calls] == ["setuid", "setuid32"]
    assert all(call.args == calls[0].args for call in calls)


def test_rename_without_variant_uses_auto() -> None:
    calls = rename_syscall(_call("read(fd fd, buf buffer[out])"), SYSCALLS)
    assert [call.ident for call in calls] == ["read$auto"]


def test_rename_drops_unknown_entry_points() -> None:
    assert rename_syscall(_call("sys_nonexistent(a int32)"), SYSCALLS) == []


def test_rewrite_include_same_tree(tmp_path: Path) -> None:
    include = Include(path="include/linux/foo.h")
    assert rewrite_include(include, tmp_path, tmp_path).path == "include/linux/foo.h"


def test_rewrite_include_separate_build_tree(tmp_path: Path) -> None:
    include = Include(path="include/generated/uapi/linux/version.h")
    rewritten = rewrite_include(include, tmp_path / "src", tmp_path / "obj")
    assert rewritten.path == "../obj/include/generated/uapi/linux/version.h"


def test_parse_interface_comment() -> None:
    (iface,) = parse_interface_comment("INTERFACE: IOCTL FOO FOO_CONST foo_ioctl read", "fs/a.c", SYSCALLS)
    assert iface.id == "IOCTL/FOO"
    assert iface.identifying_const == "FOO_CONST"
    assert (iface.func, iface.access, iface.files) == ("foo_ioctl", "read", ["fs/a.c"])


def test_parse_interface_comment_placeholders() -> None:
    (iface,) = parse_interface_comment("INTERFACE: NETLINK nl80211 - - -", "net/nl.c", SYSCALLS)
    assert (iface.identifying_const, iface.func, iface.access) == ("", "", "")


def test_parse_interface_comment_syscall() -> None:
    ifaces = parse_interface_comment("INTERFACE: SYSCALL setuid16 - __do_sys_setuid16 -", "kernel/sys.c", SYSCALLS)
    assert [(iface.name, iface.identifying_const) for iface in ifaces] == [
        ("setuid", "__NR_setuid"),
        ("setuid32", "__NR_setuid32"),
    ]
    assert parse_interface_comment("INTERFACE: SYSCALL gone - f -", "a.c", SYSCALLS) == []


def test_parse_interface_comment_malformed() -> None:
    with pytest.raises(InterfaceError):
        parse_interface_comment("INTERFACE: IOCTL FOO", "a.c", SYSCALLS)


OUTPUT = """# INTERFACE: IOCTL FOO FOO_CONST foo_ioctl read
# hand-picked comment
include <include/uapi/linux/foo.h>
ioctl$FOO(fd fd, cmd const[FOO_CONST], arg ptr[in, foo_arg])
setuid16(uid int32)
foo_arg {
	x	int32
}
"""


def test_collector_add_result(tmp_path: Path) -> None:
    collector = DescriptionCollector(SYSCALLS, tmp_path, tmp_path)
    collector.add_result(ExtractionResult(file=str(tmp_path / "fs" / "a.c"), output=OUTPUT))

    kinds = [type(node) for node in collector.nodes]
    assert Comment in kinds and Include in kinds and Struct in kinds
    assert [node.text for node in collector.nodes if isinstance(node, Comment)] == ["hand-picked comment"]
    assert [node.ident for node in collector.nodes if isinstance(node, Call)] == [
        "ioctl$FOO",
        "setuid$auto",
        "setuid32$auto",
    ]
    assert all(node.file == "fs/a.c" for node in collector.nodes)
    iface = collector.registry.get("IOCTL/FOO")
    assert iface is not None and iface.files == ["fs/a.c"]


def test_collector_reports_extraction_errors(tmp_path: Path) -> None:
    collector = DescriptionCollector(SYSCALLS, tmp_path, tmp_path)
    result = ExtractionResult(file=str(tmp_path / "fs" / "a.c"), output="", error="boom")

    with pytest.raises(ExtractionError, match="fs/a.c: boom"):
        collector.add_result(result)


def test_collector_reports_parse_errors(tmp_path: Path) -> None:
    collector = DescriptionCollector(SYSCALLS, tmp_path, tmp_path)
    result = ExtractionResult(file=str(tmp_path / "fs" / "a.c"), output="ioctl$FOO(\n")

    with pytest.raises(ExtractionError, match="fs/a.c: parsing error"):
        collector.add_result(result)


def test_collector_reports_malformed_interface(tmp_path: Path) -> None:
    collector = DescriptionCollector(SYSCALLS, tmp_path, tmp_path)
    result = ExtractionResult(file=str(tmp_path / "a.c"), output="# INTERFACE: IOCTL\n")

    with pytest.raises(InterfaceError):
        collector.add_result(result)
