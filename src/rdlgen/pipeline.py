# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from time import perf_counter_ns
from typing import Dict, List, Optional, Tuple, Union

import rdlgen

from ._codegen import Artifact
from .builder import build_address_space
from .emitter import DEFAULT_TARGETS, Selector, emit, resolve_targets
from .errors import (
    RdlBuildError,
    RdlEmitError,
    RdlError,
    RdlGenerationError,
    RdlMergeError,
    RdlWriteError,
)
from .issues import Report
from .loader import Origin, load_units
from .model import AccessMode, AddressSpace
from .overlay import merge_overlays
from .syntax import parse_units
from .validation import validate
from .writer import write_artifacts


@dataclass(frozen=True)
class Options:
    """Options to configure the code generation behavior."""

    # Name of the address space, used for the generated crate documentation and SVD device.
    name: str = "chip"

    # Suffixes of the register description files in the input directories.
    file_suffixes: Tuple[str, ...] = (".rdl",)

    # Number of worker threads used to parse files, emit peripherals and write artifacts.
    jobs: int = 1

    # Code generation targets, see rdlgen.emitter.TARGETS.
    targets: Tuple[str, ...] = DEFAULT_TARGETS

    # Report overlapping peripherals/blocks/registers as warnings instead of errors.
    ignore_overlapping_structures: bool = False

    # Width in bits of registers that don't declare one.
    default_register_width: int = 32

    # Access mode of registers that don't declare one.
    default_access: str = "read-write"

    # Warn about address ranges within a peripheral that are not covered by any register.
    report_gaps: bool = True

    # Peripherals spanning more bytes than this are not checked for gaps.
    max_image_size: int = 1 << 20

    def __post_init__(self) -> None:
        try:
            AccessMode(self.default_access)
        except ValueError:
            choices = ", ".join(m.value for m in AccessMode)
            raise ValueError(
                f"unknown default_access '{self.default_access}' (expected one of {choices})"
            ) from None
        if self.jobs < 1:
            raise ValueError(f"jobs must be at least 1, not {self.jobs}")
        if self.default_register_width < 1:
            raise ValueError(
                f"default_register_width must be at least 1, not {self.default_register_width}"
            )
        resolve_targets(self.targets)


@dataclass
class GenerationResult:
    """Outcome of a successful generation run."""

    space: AddressSpace
    artifacts: List[Artifact]
    # Paths of the written artifacts, relative to the output directory
    written: List[str]
    # Warnings and other non-fatal issues
    report: Report
    # Duration of each stage in milliseconds
    timings: Dict[str, float] = field(default_factory=dict)


class _Stopwatch:
    def __init__(self) -> None:
        self.timings: Dict[str, float] = {}
        self._start = perf_counter_ns()

    def lap(self, stage: str) -> None:
        now = perf_counter_ns()
        self.timings[stage] = (now - self._start) / 1_000_000
        rdlgen.log.debug(f"{stage} took {self.timings[stage]:.1f} ms")
        self._start = now


def generate(
    rtl_dir: Union[str, Path],
    overlay_dir: Optional[Union[str, Path]],
    output_dir: Union[str, Path],
    options: Options = Options(),
    selector: Selector = Selector(),
) -> GenerationResult:
    """
    Generate code from the register descriptions in the RTL and overlay directories.

    Nothing is written to the output directory unless all the inputs were loaded, merged and
    validated without errors.

    :param rtl_dir: Directory containing the base register descriptions.
    :param overlay_dir: Directory containing the overlay descriptions, if any.
    :param output_dir: Directory to write the generated code to.
    :param options: Generation options.
    :param selector: Selects the peripherals to emit.

    :raises RdlGenerationError: If any error occurred. The error carries the report of every
                                issue found in the run.

    :return: The result of the run.
    """
    report = Report()
    stopwatch = _Stopwatch()

    def _fail(errors: List[RdlError]) -> RdlGenerationError:
        report.extend(e.to_issue() for e in errors)
        return RdlGenerationError(report)

    try:
        units, load_errors = load_units(rtl_dir, overlay_dir, options.file_suffixes)
    except RdlError as e:
        raise _fail([e]) from e
    stopwatch.lap("load")
    rdlgen.log.info(f"Loaded {len(units)} description file(s)")

    documents, syntax_errors = parse_units(units, jobs=options.jobs)
    stopwatch.lap("parse")
    if load_errors or syntax_errors:
        raise _fail([*load_errors, *syntax_errors])

    base = [d for d in documents if d.origin is Origin.BASE]
    overlays = [d for d in documents if d.origin is Origin.OVERLAY]

    try:
        space = build_address_space(base, options)
        stopwatch.lap("build")
        merge_overlays(space, overlays, options)
        stopwatch.lap("merge")
    except (RdlBuildError, RdlMergeError) as e:
        raise _fail(e.errors) from e

    report.extend(validate(space, options))
    stopwatch.lap("validate")
    if report.has_errors:
        raise RdlGenerationError(report)

    try:
        artifacts = emit(space, options.targets, selector, jobs=options.jobs)
    except RdlEmitError as e:
        raise _fail(e.errors) from e
    except ValueError as e:
        raise _fail([RdlError(str(e))]) from e
    stopwatch.lap("emit")

    try:
        written = write_artifacts(artifacts, output_dir, jobs=options.jobs)
    except RdlWriteError as e:
        raise _fail([e]) from e
    stopwatch.lap("write")

    return GenerationResult(
        space=space,
        artifacts=artifacts,
        written=written,
        report=report,
        timings=stopwatch.timings,
    )
