# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Structural consistency checks of the merged address space model.

All the checks are run and every problem is reported, instead of stopping at the first one.
Error-severity issues must prevent code emission; warnings are informational.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, NamedTuple, Optional, Sequence, Union

import rdlgen

from ._model import bit_mask, ranges_overlap
from .issues import IssueKind, Location, Severity, ValidationIssue
from .memory_block import MemoryBlock
from .model import (
    SUPPORTED_WIDTHS,
    AddressSpace,
    Field,
    Peripheral,
    Register,
    RegisterBlock,
    iter_instances,
)

if TYPE_CHECKING:
    from .pipeline import Options


class _Extent(NamedTuple):
    """Address range [start, end) occupied by one instance of an element."""

    start: int
    end: int
    name: str
    node: Union[Peripheral, RegisterBlock, Register]


class Validator:
    """Checks an address space and accumulates the issues found."""

    def __init__(self, options: Options) -> None:
        self.options = options
        self.issues: List[ValidationIssue] = []

    def validate(self, space: AddressSpace) -> List[ValidationIssue]:
        for peripheral in space:
            self._check_container(peripheral)
            self._check_size(peripheral)
            if self.options.report_gaps:
                self._check_gaps(peripheral)

        self._check_collisions(
            [
                _Extent(p.base_address, p.base_address + p.extent, p.name, p)
                for p in space
            ]
        )

        return self.issues

    def _check_container(self, container: Union[Peripheral, RegisterBlock]) -> None:
        for child in container.children.values():
            if isinstance(child, Register):
                self._check_register(child)
            else:
                self._check_container(child)
                self._check_array(child)

        extents: List[_Extent] = []
        for child in container.children.values():
            if isinstance(child, Register):
                extents.append(
                    _Extent(child.offset, child.offset + child.size, str(child.path), child)
                )
                continue
            # Empty blocks occupy no addresses
            if child.span == 0:
                continue
            for i, offset in enumerate(child.instance_offsets()):
                name = f"{child.path}[{i}]" if child.is_array else str(child.path)
                extents.append(_Extent(offset, offset + child.span, name, child))

        self._check_collisions(extents)

    def _check_register(self, register: Register) -> None:
        if register.width not in SUPPORTED_WIDTHS:
            widths = ", ".join(str(w) for w in SUPPORTED_WIDTHS)
            self._report(
                IssueKind.INVALID_WIDTH,
                f"unsupported register width {register.width} (expected one of {widths})",
                register.path,
                register.location,
            )

        for field in register.fields.values():
            self._check_field(register, field)

        fields = sorted(register.fields.values(), key=lambda f: (f.bits.low, f.bits.high))
        for i, field in enumerate(fields):
            for other in fields[i + 1 :]:
                if other.bits.low > field.bits.high:
                    break
                self._report(
                    IssueKind.FIELD_OVERLAP,
                    f"field {field.path}{field.bits} overlaps field {other.path}{other.bits}",
                    other.path,
                    other.location,
                )

        if register.reset is not None:
            if register.reset >> register.width:
                self._report(
                    IssueKind.INVALID_RESET_VALUE,
                    f"reset value {register.reset:#x} does not fit in {register.width} bits",
                    register.path,
                    register.location,
                )
            elif register.fields and register.reset & ~register.defined_mask:
                reserved = register.reset & ~register.defined_mask & bit_mask(register.width)
                self._report(
                    IssueKind.RESERVED_BITS,
                    f"reset value {register.reset:#x} sets reserved bits {reserved:#x}",
                    register.path,
                    register.location,
                    Severity.WARNING,
                )

    def _check_field(self, register: Register, field: Field) -> None:
        if field.bits.high >= register.width:
            self._report(
                IssueKind.FIELD_OUT_OF_RANGE,
                f"bit range {field.bits} is outside of the {register.width} bit register",
                field.path,
                field.location,
            )

        width = field.bits.width

        if field.reset is not None and field.reset >> width:
            self._report(
                IssueKind.INVALID_RESET_VALUE,
                f"reset value {field.reset:#x} does not fit in {width} bits",
                field.path,
                field.location,
            )

        for name, value in field.enums.items():
            if value >> width:
                self._report(
                    IssueKind.INVALID_ENUM_VALUE,
                    f"value {name} = {value:#x} does not fit in {width} bits",
                    field.path,
                    field.location,
                )

    def _check_array(self, block: RegisterBlock) -> None:
        if block.instance_count <= 1 or block.span == 0:
            return
        if block.effective_stride < block.span:
            self._report(
                IssueKind.ADDRESS_COLLISION,
                f"{block.path}[0] and {block.path}[1] overlap: stride {block.effective_stride:#x} "
                f"is smaller than the block size {block.span:#x}",
                block.path,
                block.location,
                self._collision_severity,
            )

    def _check_collisions(self, extents: Sequence[_Extent]) -> None:
        """Report every pair of sibling ranges that intersect."""
        ordered = sorted(extents, key=lambda e: (e.start, e.end))

        for i, extent in enumerate(ordered):
            for other in ordered[i + 1 :]:
                if other.start >= extent.end and other.start != extent.start:
                    break
                if other.node is extent.node:
                    continue
                if not ranges_overlap(extent.start, extent.end, other.start, other.end):
                    continue
                self._report(
                    IssueKind.ADDRESS_COLLISION,
                    f"{other.name} [{other.start:#x}, {other.end:#x}) collides with "
                    f"{extent.name} [{extent.start:#x}, {extent.end:#x})",
                    other.name,
                    _later(extent.node.location, other.node.location),
                    self._collision_severity,
                )

    def _check_size(self, peripheral: Peripheral) -> None:
        if peripheral.size is None:
            return
        for child in peripheral.children.values():
            end = child.offset + child.extent
            if end > peripheral.size:
                self._report(
                    IssueKind.SIZE_EXCEEDED,
                    f"{child.path} ends at offset {end:#x}, past the end of {peripheral.name} "
                    f"(size {peripheral.size:#x})",
                    child.path,
                    child.location,
                )

    def _check_gaps(self, peripheral: Peripheral) -> None:
        length = peripheral.span
        if length > self.options.max_image_size:
            rdlgen.log.debug(
                f"Skipping gap check of {peripheral.name}: {length:#x} bytes is larger than "
                f"{self.options.max_image_size:#x}"
            )
            return

        address_map = build_address_map(peripheral, length)

        for start, end in address_map.unmapped_ranges():
            self._report(
                IssueKind.RESERVED_GAP,
                f"{peripheral.name} has no registers at offsets [{start:#x}, {end:#x})",
                peripheral.path,
                peripheral.location,
                Severity.WARNING,
            )

    @property
    def _collision_severity(self) -> Severity:
        if self.options.ignore_overlapping_structures:
            return Severity.WARNING
        return Severity.ERROR

    def _report(
        self,
        kind: IssueKind,
        message: str,
        path: object,
        location: Optional[Location],
        severity: Severity = Severity.ERROR,
    ) -> None:
        issue = ValidationIssue(
            severity=severity,
            kind=kind,
            message=message,
            path=str(path),
            location=location,
        )
        if severity is Severity.WARNING:
            rdlgen.log.warning(str(issue))
        self.issues.append(issue)


def _later(a: Location, b: Location) -> Location:
    return max(a, b)


def build_address_map(peripheral: Peripheral, length: Optional[int] = None) -> MemoryBlock:
    """
    Build the map of the addresses of a peripheral that are covered by a register, relative to
    its base address.

    :param peripheral: Peripheral to build the map of.
    :param length: Number of bytes to cover. Defaults to the extent of the peripheral.
    :return: Memory block where the bytes of every register instance are mapped.
    """
    builder = MemoryBlock.Builder().set_extent(
        offset=0, length=length if length is not None else peripheral.extent
    )

    for instance in iter_instances(peripheral):
        if isinstance(instance.node, Register):
            offset = instance.address - peripheral.base_address
            builder.map_range(offset, offset + instance.node.size)

    return builder.build()


def validate(space: AddressSpace, options: Options) -> List[ValidationIssue]:
    """
    Check the structural consistency of an address space.

    :param space: Merged address space.
    :param options: Generation options.
    :return: Every issue found. The address space may only be emitted if none of them is an error.
    """
    issues = Validator(options).validate(space)
    n_errors = sum(1 for i in issues if i.is_error)
    rdlgen.log.info(
        f"Validated {space!r}: {n_errors} error(s), {len(issues) - n_errors} warning(s)"
    )
    return issues
