"""End-to-end generation of descriptions and interface metadata for a kernel build."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from declextract import syzlang
from declextract.analysis.descriptions import finish_descriptions, remove_unused, write_descriptions
from declextract.analysis.ingest import DescriptionCollector
from declextract.analysis.interfaces import Interface, split_consts, write_interfaces
from declextract.analysis.syscall_map import read_syscall_map
from declextract.config import ExtractionConfig
from declextract.io.extractor_interface import run_extractor
from declextract.pipelines.compile_commands import load_compile_commands
from declextract.pipelines.extraction import Runner, extract_all
from declextract.subsystems import SubsystemExtractor, load_subsystems

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class GenerationSummary:
    units: int
    declarations: int
    pruned: int
    interfaces: List[Interface]
    auto_file: Path
    info_file: Path


def _subsystem_extractor(config: ExtractionConfig) -> SubsystemExtractor:
    if config.subsystems is None:
        return SubsystemExtractor([])
    return SubsystemExtractor(load_subsystems(config.subsystems))


def generate(
    config: ExtractionConfig,
    *,
    runner: Runner = run_extractor,
    rng: Optional[random.Random] = None,
    extractor: Optional[SubsystemExtractor] = None,
) -> GenerationSummary:
    """
    Extract every kernel compilation unit and write the generated descriptions
    plus the interface metadata next to them.

    Any failure raises a ``DeclExtractError`` before outputs are considered final.
    """

    commands = load_compile_commands(config.compilation_database, rng=rng)
    syscall_names = read_syscall_map(config.kernel_src, config.target)
    extractor = extractor or _subsystem_extractor(config)

    results = extract_all(
        [cmd.file for cmd in commands],
        binary=config.binary,
        compilation_database=config.compilation_database,
        workers=config.workers,
        runner=runner,
    )

    collector = DescriptionCollector(syscall_names, config.kernel_src, config.kernel_obj)
    for result in results:
        collector.add_result(result)

    paths = config.descriptions
    nodes = finish_descriptions(collector.nodes)
    write_descriptions(nodes, paths.auto_file)
    pruned = remove_unused(nodes, paths.root, paths.auto_file, paths.pattern)
    write_descriptions(pruned, paths.auto_file)

    consts = syzlang.extract_consts(syzlang.parse_glob(paths.root, paths.pattern))
    auto_consts, manual_consts = split_consts(consts, paths.auto_file)
    interfaces = collector.registry.finish(extractor, auto_consts=auto_consts, manual_consts=manual_consts)
    write_interfaces(interfaces, paths.info_file)

    return GenerationSummary(
        units=len(results),
        declarations=len(pruned),
        pruned=len(nodes) - len(pruned),
        interfaces=interfaces,
        auto_file=paths.auto_file,
        info_file=paths.info_file,
    )


__all__ = ["GenerationSummary", "generate"]
