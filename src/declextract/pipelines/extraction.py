"""Concurrent fan-out of the extraction tool over compilation units."""

from __future__ import annotations

import logging
import os
import subprocess
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from declextract.io.extractor_interface import run_extractor

LOGGER = logging.getLogger(__name__)

Runner = Callable[[Path, Path, str], "subprocess.CompletedProcess[str]"]


@dataclass(slots=True)
class ExtractionResult:
    file: str
    output: str
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


def _extract_one(runner: Runner, binary: Path, compilation_database: Path, file: str) -> ExtractionResult:
    try:
        completed = runner(binary, compilation_database, file)
    except OSError as exc:
        return ExtractionResult(file=file, output="", error=str(exc))
    if completed.returncode != 0:
        error = (completed.stderr or "").strip() or f"exit status {completed.returncode}"
        return ExtractionResult(file=file, output=completed.stdout or "", error=error)
    return ExtractionResult(file=file, output=completed.stdout or "")


def extract_all(
    files: Iterable[str],
    *,
    binary: Path,
    compilation_database: Path,
    workers: Optional[int] = None,
    runner: Runner = run_extractor,
) -> List[ExtractionResult]:
    """
    Run the extraction tool once per file on a bounded worker pool.

    Returns exactly one result per submitted file, in completion order. A failing
    unit does not stop the others; failures are reported through ``error``.
    """

    files = list(files)
    workers = workers or os.cpu_count() or 1
    LOGGER.info("Extracting %d compilation units with %d workers", len(files), workers)

    results: List[ExtractionResult] = []
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [
            pool.submit(_extract_one, runner, binary, compilation_database, file) for file in files
        ]
        for future in as_completed(futures):
            result = future.result()
            if not result.succeeded:
                LOGGER.error("Extraction failed for %s", result.file)
            else:
                LOGGER.debug("Extracted %s", result.file)
            results.append(result)
    return results


__all__ = ["ExtractionResult", "Runner", "extract_all"]
