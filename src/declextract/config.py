"""Configuration primitives for the project."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from declextract.errors import ConfigError

DEFAULT_TARGET = "linux/amd64"
DEFAULT_BINARY = Path("syz-declextract")
DEFAULT_DESCRIPTIONS = Path("sys/linux")


@dataclass(slots=True, frozen=True)
class TargetArch:
    """A supported architecture and where its syscall tables live in the kernel tree."""

    name: str
    vm_arch: str
    kernel_header_arch: str


LINUX_ARCHES: tuple[TargetArch, ...] = (
    TargetArch("amd64", "amd64", "x86"),
    TargetArch("386", "amd64", "x86"),
    TargetArch("arm64", "arm64", "arm64"),
    TargetArch("arm", "arm64", "arm"),
    TargetArch("mips64le", "mips64le", "mips"),
    TargetArch("ppc64le", "ppc64le", "powerpc"),
    TargetArch("riscv64", "riscv64", "riscv"),
    TargetArch("s390x", "s390x", "s390"),
)


@dataclass(slots=True, frozen=True)
class Target:
    """The OS/arch pair whose descriptions are being generated."""

    os: str = "linux"
    arch: str = "amd64"

    @classmethod
    def parse(cls, value: str) -> "Target":
        os_name, sep, arch = value.partition("/")
        if not sep or not os_name or not arch:
            raise ConfigError(f"bad target {value!r}, expected os/arch")
        if os_name != "linux":
            raise ConfigError(f"unsupported target OS {os_name!r}")
        if arch not in {entry.name for entry in LINUX_ARCHES}:
            raise ConfigError(f"unsupported target arch {arch!r}")
        return cls(os=os_name, arch=arch)

    @property
    def arches(self) -> tuple[TargetArch, ...]:
        return LINUX_ARCHES

    @property
    def vm_arch(self) -> str:
        for entry in LINUX_ARCHES:
            if entry.name == self.arch:
                return entry.vm_arch
        return self.arch

    def __str__(self) -> str:
        return f"{self.os}/{self.arch}"


@dataclass(slots=True)
class DescriptionPaths:
    """Locations of the declaration corpus and the generated artefacts inside it."""

    root: Path = DEFAULT_DESCRIPTIONS
    pattern: str = "*.txt"
    auto_file: Path = field(init=False)
    info_file: Path = field(init=False)

    def __post_init__(self) -> None:
        self.auto_file = self.root / "auto.txt"
        self.info_file = self.root / "auto.txt.info"


@dataclass(slots=True)
class ExtractionConfig:
    """Settings for a single extraction run over a kernel build."""

    kernel_src: Path
    kernel_obj: Path
    binary: Path = DEFAULT_BINARY
    target: Target = field(default_factory=Target)
    descriptions: DescriptionPaths = field(default_factory=DescriptionPaths)
    workers: Optional[int] = None
    subsystems: Optional[Path] = None

    @property
    def compilation_database(self) -> Path:
        return self.kernel_obj / "compile_commands.json"

    @classmethod
    def from_manager_config(
        cls,
        config_path: Path,
        *,
        kernel_src: Path | None = None,
        kernel_obj: Path | None = None,
        target: str | None = None,
        **kwargs,
    ) -> "ExtractionConfig":
        """Build a config from a manager JSON file, letting explicit arguments win."""

        try:
            with Path(config_path).open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except OSError as exc:
            raise ConfigError(f"failed to load manager config {config_path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigError(f"failed to parse manager config {config_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"manager config {config_path} must contain a JSON object")

        obj_value = kernel_obj or _as_path(data.get("kernel_obj"))
        if obj_value is None:
            raise ConfigError(f"manager config {config_path} does not set kernel_obj")
        src_value = kernel_src or _as_path(data.get("kernel_src")) or obj_value
        target_value = target or data.get("target") or DEFAULT_TARGET
        return cls(
            kernel_src=src_value,
            kernel_obj=obj_value,
            target=Target.parse(str(target_value)),
            **kwargs,
        )


def _as_path(value: object) -> Path | None:
    if isinstance(value, str) and value:
        return Path(value)
    return None


__all__ = [
    "DEFAULT_BINARY",
    "DEFAULT_DESCRIPTIONS",
    "DEFAULT_TARGET",
    "DescriptionPaths",
    "ExtractionConfig",
    "LINUX_ARCHES",
    "Target",
    "TargetArch",
]
