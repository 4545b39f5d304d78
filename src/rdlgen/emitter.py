# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Code emission from a validated address space.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import rdlgen

from ._codegen import Artifact, Target
from ._model import ranges_overlap
from .errors import RdlEmitError, RdlError, RdlNameCollisionError
from .c_header import CHeaderTarget
from .model import AddressSpace, Peripheral
from .rust import RustTarget
from .svd_xml import SvdTarget

# Available code generation targets by name
TARGETS: Mapping[str, Target] = {
    target.name: target for target in (RustTarget(), CHeaderTarget(), SvdTarget())
}

DEFAULT_TARGETS: Tuple[str, ...] = ("rust",)


@dataclass(frozen=True)
class Selector:
    """Used to select which peripherals of the address space to emit."""

    peripherals: Optional[Tuple[str, ...]] = None
    # Inclusive [start, end] address range
    address_range: Optional[Tuple[int, int]] = None

    def is_periph_selected(self, periph: Peripheral) -> bool:
        if self.peripherals and periph.name not in self.peripherals:
            return False

        if self.address_range is not None:
            start, end = self.address_range
            periph_start = periph.base_address
            periph_end = periph_start + max(periph.extent, 1)
            if not ranges_overlap(periph_start, periph_end, start, end + 1):
                return False

        return True

    def select(self, space: AddressSpace) -> List[Peripheral]:
        """:return: The selected peripherals, in declaration order."""
        if self.peripherals is not None:
            nonexistent = [p for p in self.peripherals if p not in space.peripherals]
            if nonexistent:
                rdlgen.log.warning(
                    "Selector references peripherals that don't exist in the address space: "
                    + ", ".join(nonexistent)
                )

        selected = [p for p in space if self.is_periph_selected(p)]
        if not selected:
            rdlgen.log.warning("No part of the address space was selected")
        return selected


def resolve_targets(names: Iterable[str]) -> List[Target]:
    """
    :raises ValueError: If a name does not refer to a known target.
    :return: The targets with the given names, without duplicates.
    """
    targets: Dict[str, Target] = {}
    for name in names:
        try:
            targets[name] = TARGETS[name]
        except KeyError:
            choices = ", ".join(TARGETS)
            raise ValueError(f"Unknown target '{name}' (expected one of {choices})")
    return list(targets.values())


def emit(
    space: AddressSpace,
    targets: Sequence[str] = DEFAULT_TARGETS,
    selector: Selector = Selector(),
    jobs: int = 1,
) -> List[Artifact]:
    """
    Generate code from an address space.

    The output only depends on the address space and the arguments: artifacts are produced in
    target, then peripheral declaration order, and their content is deterministic.

    :param space: Validated address space.
    :param targets: Names of the targets to generate code for.
    :param selector: Selects the peripherals to emit.
    :param jobs: Number of worker threads used to emit peripherals.
    :raises ValueError: If an unknown target is given.
    :raises RdlEmitError: If names generated for different elements collide.
    :return: The generated artifacts.
    """
    resolved = resolve_targets(targets)
    peripherals = selector.select(space)

    def _emit_peripheral(peripheral: Peripheral) -> Tuple[List[Artifact], List[RdlError]]:
        artifacts: List[Artifact] = []
        errors: List[RdlError] = []
        for target in resolved:
            try:
                artifacts.extend(target.peripheral_artifacts(space, peripheral))
            except RdlEmitError as e:
                errors.extend(e.errors)
        rdlgen.log.debug(f"Emitted {peripheral!r}")
        return artifacts, errors

    if jobs > 1 and len(peripherals) > 1:
        with ThreadPoolExecutor(max_workers=jobs) as executor:
            per_peripheral = list(executor.map(_emit_peripheral, peripherals))
    else:
        per_peripheral = [_emit_peripheral(p) for p in peripherals]

    artifacts: List[Artifact] = []
    errors: List[RdlError] = [e for _, group_errors in per_peripheral for e in group_errors]
    for target in resolved:
        artifacts.extend(
            a for group, _ in per_peripheral for a in group if a.target == target.name
        )
        try:
            artifacts.extend(target.space_artifacts(space, peripherals))
        except RdlEmitError as e:
            errors.extend(e.errors)

    if not errors:
        owners: Dict[str, Artifact] = {}
        for artifact in artifacts:
            previous = owners.setdefault(artifact.path, artifact)
            if previous is not artifact:
                errors.append(
                    RdlNameCollisionError(
                        "output directory", artifact.path, previous.target, artifact.target
                    )
                )

    if errors:
        raise RdlEmitError(errors)

    rdlgen.log.info(f"Emitted {len(artifacts)} artifact(s) for {len(peripherals)} peripheral(s)")
    return artifacts
