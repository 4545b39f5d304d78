# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
CMSIS-SVD code generation target.

The merged model of all the emitted peripherals is written as a single <space>.svd file so that
debuggers and other SVD based tools see the same registers as the generated code.
"""

from __future__ import annotations

from typing import Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import lxml.etree as ET

from ._codegen import Artifact, Target, identifier
from .model import (
    AccessMode,
    AddressSpace,
    BlockChild,
    Field,
    Peripheral,
    Register,
    RegisterBlock,
)

# SVD access, modifiedWriteValues and readAction for each access mode
_SVD_ACCESS: Mapping[AccessMode, Tuple[str, Optional[str], Optional[str]]] = {
    AccessMode.READ_ONLY: ("read-only", None, None),
    AccessMode.WRITE_ONLY: ("write-only", None, None),
    AccessMode.READ_WRITE: ("read-write", None, None),
    AccessMode.WRITE_ONE_TO_CLEAR: ("read-write", "oneToClear", None),
    AccessMode.WRITE_ONE_TO_SET: ("read-write", "oneToSet", None),
    AccessMode.READ_TO_CLEAR: ("read-only", None, "clear"),
}


def _sub(parent: ET._Element, tag: str, text: Union[str, int, None] = None) -> ET._Element:
    element = ET.SubElement(parent, tag)
    if text is not None:
        element.text = f"{text:#x}" if isinstance(text, int) else text
    return element


def _add_description(element: ET._Element, doc: Optional[str]) -> None:
    if doc:
        _sub(element, "description", " ".join(doc.split()))


def _add_access(element: ET._Element, access: AccessMode) -> None:
    svd_access, modified_write_values, read_action = _SVD_ACCESS[access]
    _sub(element, "access", svd_access)
    if modified_write_values is not None:
        _sub(element, "modifiedWriteValues", modified_write_values)
    if read_action is not None:
        _sub(element, "readAction", read_action)


def _field_element(parent: ET._Element, register: Register, field: Field) -> None:
    element = _sub(parent, "field")
    _sub(element, "name", field.name)
    _add_description(element, field.doc)
    _sub(element, "bitRange", f"[{field.bits.high}:{field.bits.low}]")
    _add_access(element, register.field_access(field))

    if field.enums:
        values = _sub(element, "enumeratedValues")
        if field.enum_type is not None:
            _sub(values, "name", field.enum_type.name)
        for name, value in field.enums.items():
            enum_value = _sub(values, "enumeratedValue")
            _sub(enum_value, "name", name)
            _sub(enum_value, "value", value)


def _register_element(parent: ET._Element, register: Register) -> None:
    element = _sub(parent, "register")
    _sub(element, "name", register.name)
    _add_description(element, register.doc)
    _sub(element, "addressOffset", register.offset)
    _sub(element, "size", str(register.width))
    _add_access(element, register.access)
    _sub(element, "resetValue", register.reset_value)

    fields = [f for f in register.fields.values() if not f.reserved]
    if fields:
        fields_element = _sub(element, "fields")
        for field in fields:
            _field_element(fields_element, register, field)


def _cluster_element(parent: ET._Element, block: RegisterBlock) -> None:
    element = _sub(parent, "cluster")
    if block.is_array:
        _sub(element, "dim", str(block.instance_count))
        _sub(element, "dimIncrement", block.effective_stride)
        _sub(element, "name", f"{block.name}[%s]")
    else:
        _sub(element, "name", block.name)
    _add_description(element, block.doc)
    # Cluster offsets are relative to the parent element
    _sub(element, "addressOffset", block.offset)
    _add_children(element, block.children.values())


def _add_children(parent: ET._Element, children: Iterable[BlockChild]) -> None:
    for child in children:
        if isinstance(child, Register):
            _register_element(parent, child)
        else:
            _cluster_element(parent, child)


def _peripheral_element(parent: ET._Element, peripheral: Peripheral) -> None:
    element = _sub(parent, "peripheral")
    _sub(element, "name", peripheral.name)
    _add_description(element, peripheral.doc)
    _sub(element, "baseAddress", peripheral.base_address)

    address_block = _sub(element, "addressBlock")
    _sub(address_block, "offset", 0)
    _sub(address_block, "size", peripheral.extent)
    _sub(address_block, "usage", "registers")

    if peripheral.children:
        registers = _sub(element, "registers")
        _add_children(registers, peripheral.children.values())


def build_device(space: AddressSpace, peripherals: Sequence[Peripheral]) -> ET._Element:
    """
    Build the SVD device element describing the given peripherals.

    :param space: Address space the peripherals belong to.
    :param peripherals: Peripherals to include, in output order.
    :return: The root element of the SVD document.
    """
    device = ET.Element("device", schemaVersion="1.3")
    _sub(device, "name", identifier(space.name))
    _sub(device, "version", "1.0")
    _sub(device, "addressUnitBits", "8")
    _sub(device, "width", "32")
    _sub(device, "size", "32")
    _sub(device, "access", "read-write")

    peripherals_element = _sub(device, "peripherals")
    for peripheral in peripherals:
        _peripheral_element(peripherals_element, peripheral)

    return device


class SvdTarget(Target):
    name = "svd"

    def peripheral_artifacts(
        self, space: AddressSpace, peripheral: Peripheral
    ) -> List[Artifact]:
        return []

    def space_artifacts(
        self, space: AddressSpace, peripherals: Sequence[Peripheral]
    ) -> List[Artifact]:
        device = build_device(space, peripherals)
        content = ET.tostring(
            device, pretty_print=True, xml_declaration=True, encoding="utf-8"
        ).decode("utf-8")
        return [
            Artifact(path=f"{identifier(space.name)}.svd", content=content, target=self.name)
        ]
