"""Selection of kernel compilation units from a compilation database."""

from __future__ import annotations

import json
import logging
import os
import random
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from declextract.errors import ConfigError

LOGGER = logging.getLogger(__name__)

KERNEL_SOURCE_SUFFIX = ".c"
HOST_COMPILER_PREFIX = "gcc"
KBUILD_MARKER = "-DKBUILD_BASENAME"


@dataclass(slots=True, frozen=True)
class CompileCommand:
    command: str
    directory: str
    file: str


def is_kernel_unit(cmd: CompileCommand) -> bool:
    """Return True for entries that belong to the kernel proper."""

    if not cmd.file.endswith(KERNEL_SOURCE_SUFFIX):
        return False
    # Compile commands are generated with CC=clang, so gcc entries are host tools.
    if cmd.command.startswith(HOST_COMPILER_PREFIX):
        return False
    # KBUILD adds this define to all kernel files.
    return KBUILD_MARKER in cmd.command


def _from_entry(entry: object, index: int, path: Path) -> CompileCommand:
    if not isinstance(entry, dict):
        raise ConfigError(f"{path}: entry {index} is not an object")
    command = entry.get("command")
    if command is None and isinstance(entry.get("arguments"), list):
        command = " ".join(str(arg) for arg in entry["arguments"])
    directory = entry.get("directory", "")
    file = entry.get("file")
    if not isinstance(command, str) or not isinstance(file, str) or not isinstance(directory, str):
        raise ConfigError(f"{path}: entry {index} lacks command/directory/file strings")
    if directory and not os.path.isabs(file):
        file = os.path.normpath(os.path.join(directory, file))
    return CompileCommand(command=command, directory=directory, file=file)


def load_compile_commands(path: Path, *, rng: Optional[random.Random] = None) -> List[CompileCommand]:
    """
    Load, filter and shuffle the compilation database at ``path``.

    The order is randomized on purpose: every later stage must be insensitive
    to it, and shuffling surfaces any accidental dependency early.
    """

    try:
        with Path(path).open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except OSError as exc:
        raise ConfigError(f"failed to load compile commands {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"failed to parse compile commands {path}: {exc}") from exc
    if not isinstance(payload, list):
        raise ConfigError(f"{path}: compilation database must be a JSON array")

    entries = [_from_entry(entry, index, Path(path)) for index, entry in enumerate(payload)]
    commands = [cmd for cmd in entries if is_kernel_unit(cmd)]
    LOGGER.info("Selected %d of %d compile commands", len(commands), len(entries))

    (rng or random.Random()).shuffle(commands)
    return commands


__all__ = ["CompileCommand", "is_kernel_unit", "load_compile_commands"]
