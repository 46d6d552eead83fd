"""Command line entry points for the project."""

from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import Optional

import typer

from declextract import __version__
from declextract.analysis.syscall_map import read_syscall_map
from declextract.config import (
    DEFAULT_BINARY,
    DEFAULT_DESCRIPTIONS,
    DEFAULT_TARGET,
    DescriptionPaths,
    ExtractionConfig,
    Target,
)
from declextract.errors import DeclExtractError
from declextract.pipelines.generate import generate

app = typer.Typer(help="Extract kernel interface descriptions from a kernel build.")


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _show_version(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main(
    display_version: bool = typer.Option(
        False, "--version", "-V", callback=_show_version, is_eager=True, help="Show version and exit."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Configure logging for every command."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_config(
    config: Optional[Path],
    kernel_src: Optional[Path],
    kernel_obj: Optional[Path],
    target: Optional[str],
    **kwargs,
) -> ExtractionConfig:
    if config is not None:
        return ExtractionConfig.from_manager_config(
            config.expanduser(),
            kernel_src=kernel_src.expanduser().resolve() if kernel_src else None,
            kernel_obj=kernel_obj.expanduser().resolve() if kernel_obj else None,
            target=target,
            **kwargs,
        )
    if kernel_obj is None:
        raise typer.BadParameter("Either --config or --kernel-obj is required.")
    kernel_obj = kernel_obj.expanduser().resolve()
    return ExtractionConfig(
        kernel_src=kernel_src.expanduser().resolve() if kernel_src else kernel_obj,
        kernel_obj=kernel_obj,
        target=Target.parse(target or DEFAULT_TARGET),
        **kwargs,
    )


@app.command("run")
def run_command(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Manager config (JSON) with kernel_obj/kernel_src."),
    kernel_src: Optional[Path] = typer.Option(None, help="Kernel source tree (defaults to the build tree)."),
    kernel_obj: Optional[Path] = typer.Option(None, help="Kernel build tree containing compile_commands.json."),
    target: Optional[str] = typer.Option(None, help="Target as os/arch (default linux/amd64)."),
    binary: Path = typer.Option(DEFAULT_BINARY, help="Path to the per-file extraction tool."),
    descriptions: Path = typer.Option(DEFAULT_DESCRIPTIONS, help="Directory with the description corpus."),
    subsystems: Optional[Path] = typer.Option(None, help="JSON subsystem list used to tag interfaces."),
    workers: Optional[int] = typer.Option(None, min=1, help="Number of parallel extractions (defaults to CPU count)."),
    seed: Optional[int] = typer.Option(None, help="Seed for the compile command shuffle."),
) -> None:
    """Generate descriptions and interface metadata for a kernel build."""

    try:
        cfg = _build_config(
            config,
            kernel_src,
            kernel_obj,
            target,
            binary=binary.expanduser(),
            descriptions=DescriptionPaths(descriptions.expanduser()),
            workers=workers,
            subsystems=subsystems.expanduser() if subsystems else None,
        )
        if not cfg.descriptions.root.is_dir():
            raise typer.BadParameter(f"Descriptions directory not found: {cfg.descriptions.root}")
        typer.echo(f"Extracting declarations for {cfg.target} from {cfg.compilation_database}...")
        rng = random.Random(seed) if seed is not None else None
        summary = generate(cfg, rng=rng)
    except DeclExtractError as exc:
        _fail(str(exc))
    except OSError as exc:
        _fail(f"I/O error: {exc}")

    typer.echo(f"Compilation units: {summary.units}")
    typer.echo(f"Declarations: {summary.declarations} ({summary.pruned} unused removed)")
    typer.echo(f"Interfaces: {len(summary.interfaces)}")
    typer.secho(f"Descriptions written to {summary.auto_file}", fg=typer.colors.GREEN)
    typer.secho(f"Interfaces written to {summary.info_file}", fg=typer.colors.GREEN)


@app.command("syscall-map")
def syscall_map_command(
    kernel_src: Path = typer.Option(..., help="Kernel source tree with arch/*/*.tbl files."),
    target: str = typer.Option(DEFAULT_TARGET, help="Target as os/arch."),
) -> None:
    """Print the entry point to syscall name mapping resolved from the syscall tables."""

    kernel_src = kernel_src.expanduser().resolve()
    if not kernel_src.is_dir():
        raise typer.BadParameter(f"Kernel source tree not found: {kernel_src}")
    try:
        mapping = read_syscall_map(kernel_src, Target.parse(target))
    except DeclExtractError as exc:
        _fail(str(exc))
    except OSError as exc:
        _fail(f"I/O error: {exc}")

    for entry_point in sorted(mapping):
        typer.echo(f"{entry_point}\t{' '.join(mapping[entry_point])}")


def run() -> None:
    """Entry point used by the ``declextract`` console script."""

    app()


if __name__ == "__main__":
    run()
