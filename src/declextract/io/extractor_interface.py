"""Adapter for invoking the per-file declaration extraction tool."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Sequence

# The tool may be built with a different clang version that produces more warnings.
SUPPRESS_WARNINGS = "--extra-arg=-w"


def extractor_command(
    binary: Path,
    compilation_database: Path,
    source_file: str,
    *,
    extra_args: Sequence[str] | None = None,
) -> list[str]:
    """Return the argv used to extract declarations from ``source_file``."""

    cmd = [str(binary), "-p", str(compilation_database), source_file, SUPPRESS_WARNINGS]
    if extra_args:
        cmd.extend(extra_args)
    return cmd


def run_extractor(
    binary: Path,
    compilation_database: Path,
    source_file: str,
    *,
    extra_args: Sequence[str] | None = None,
) -> subprocess.CompletedProcess[str]:
    """
    Execute the extraction tool for one compilation unit.

    The process is never checked here; callers inspect ``returncode`` and ``stderr``.
    Output is decoded as UTF-8 with undecodable bytes replaced.
    Failing to start the binary raises ``OSError``.
    """

    cmd = extractor_command(binary, compilation_database, source_file, extra_args=extra_args)
    return subprocess.run(
        cmd, check=False, text=True, encoding="utf-8", errors="replace", capture_output=True
    )


__all__ = ["SUPPRESS_WARNINGS", "extractor_command", "run_extractor"]
