# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
C header code generation target.

Every peripheral is emitted as include/<peripheral>.h with address, width, reset value, mask and
shift macros, and static inline field accessors that operate on register values.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Sequence, Union

from ._codegen import (
    GENERATED_NOTICE,
    Artifact,
    NameRegistry,
    Target,
    accessors,
    check_names,
    comment_lines,
    identifier,
    symbol,
)
from .model import (
    AddressSpace,
    EnumType,
    Field,
    Peripheral,
    Register,
    RegisterBlock,
    iter_instances,
    iter_registers,
    walk,
)


UINT_TYPES: Mapping[int, str] = {8: "uint8_t", 16: "uint16_t", 32: "uint32_t", 64: "uint64_t"}


def _literal(value: int, width: int = 32) -> str:
    suffix = "ull" if width > 32 or value >> 32 else "u"
    return f"{value:#x}{suffix}"


def _comment(text: str) -> List[str]:
    lines = comment_lines(text)
    if len(lines) == 1:
        return [f"/* {lines[0]} */"]
    return ["/*", *(f" * {line}".rstrip() for line in lines), " */"]


def _define(name: str, value: str) -> str:
    return f"#define {name} {value}"


def header_name(peripheral: Peripheral) -> str:
    return identifier(peripheral.name.lower())


class _HeaderWriter:
    """Generates the header of a single peripheral."""

    def __init__(self, space: AddressSpace, peripheral: Peripheral) -> None:
        self.space = space
        self.peripheral = peripheral
        self.prefix = identifier(peripheral.name).upper()
        self.lines: List[str] = []
        self.path = f"include/{header_name(peripheral)}.h"
        self.names = NameRegistry(self.path)

    def _define(self, name: str, value: str, owner: Any) -> None:
        self.lines.append(_define(self.names.claim(name, owner), value))

    def write(self) -> str:
        peripheral = self.peripheral
        guard = f"{identifier(self.space.name).upper()}_{self.prefix}_H"

        self.lines.extend(
            [
                f"/* {GENERATED_NOTICE} */",
                "",
                f"#ifndef {guard}",
                f"#define {guard}",
                "",
                "#include <stdint.h>",
                "",
            ]
        )
        if peripheral.doc:
            self.lines.extend(_comment(peripheral.doc))
        self._define(
            f"{self.prefix}_BASE_ADDR", _literal(peripheral.base_address), peripheral.path
        )
        if peripheral.size is not None:
            self._define(f"{self.prefix}_SIZE", _literal(peripheral.size), peripheral.path)
        self.lines.append("")

        self._arrays()
        self._instances()
        self._enums()

        for register in iter_registers(peripheral):
            self._register(register)

        self.lines.append(f"#endif /* {guard} */")
        return "\n".join(self.lines) + "\n"

    def _name(self, node: Union[RegisterBlock, Register, EnumType]) -> str:
        sym = symbol(node.path)
        return f"{self.prefix}_{sym}" if sym else self.prefix

    def _arrays(self) -> None:
        arrays = [
            n for n in walk(self.peripheral) if isinstance(n, RegisterBlock) and n.is_array
        ]
        for block in arrays:
            name = self._name(block)
            self._define(f"{name}_COUNT", f"{block.instance_count}u", block.path)
            self._define(f"{name}_STRIDE", _literal(block.effective_stride), block.path)
        if arrays:
            self.lines.append("")

    def _instances(self) -> None:
        for instance in iter_instances(self.peripheral):
            if instance.node is self.peripheral:
                continue
            name = f"{self.prefix}_{symbol(instance.path)}_ADDR"
            self._define(name, _literal(instance.address), instance.path)
        self.lines.append("")

    def _enums(self) -> None:
        for node in walk(self.peripheral):
            if isinstance(node, EnumType):
                self.lines.extend(_enum_defines(self._name(node), node, self.names))

    def _register(self, register: Register) -> None:
        name = self._name(register)
        uint = UINT_TYPES[register.width]

        if register.doc:
            self.lines.extend(_comment(register.doc))
        self._define(f"{name}_OFFSET", _literal(register.offset), register.path)
        self._define(f"{name}_WIDTH", f"{register.width}u", register.path)
        self._define(
            f"{name}_RESET", _literal(register.reset_value, register.width), register.path
        )

        fields = [f for f in register.fields.values() if not f.reserved]
        for field in fields:
            field_name = f"{name}_{identifier(field.name).upper()}"
            self._define(f"{field_name}_SHIFT", f"{field.bits.low}u", field.path)
            self._define(f"{field_name}_MASK", _literal(field.mask, register.width), field.path)
            for enum_name, value in field.enums.items():
                self._define(
                    f"{field_name}_{identifier(enum_name).upper()}",
                    _literal(value, register.width),
                    f"{field.path} value {enum_name}",
                )

        for field in fields:
            self._accessors(register, field, name, uint)

        self.lines.append("")

    def _accessors(self, register: Register, field: Field, name: str, uint: str) -> None:
        allowed = accessors(register.field_access(field))
        field_name = f"{name}_{identifier(field.name).upper()}"
        func = f"{name}_".lower()
        field_func = identifier(field.name.lower())
        mask = f"{field_name}_MASK"
        shift = f"{field_name}_SHIFT"

        if allowed.read:
            get = self.names.claim(f"{func}get_{field_func}", field.path)
            self.lines.append(
                f"static inline {uint} {get}({uint} reg) "
                f"{{ return ({uint})((reg & {mask}) >> {shift}); }}"
            )
        if allowed.write:
            set_ = self.names.claim(f"{func}set_{field_func}", field.path)
            self.lines.append(
                f"static inline {uint} {set_}({uint} reg, {uint} value) "
                f"{{ return ({uint})((reg & ~{mask}) | ((value << {shift}) & {mask})); }}"
            )
        # Values to write to clear or set the field
        for verb, enabled in (("clear", allowed.clear), ("set", allowed.set)):
            if enabled:
                value_func = self.names.claim(f"{func}{verb}_{field_func}", field.path)
                self.lines.append(
                    f"static inline {uint} {value_func}(void) {{ return ({uint}){mask}; }}"
                )


def _enum_defines(prefix: str, enum_type: EnumType, names: NameRegistry) -> List[str]:
    lines = _comment(enum_type.doc) if enum_type.doc else []
    for name, value in enum_type.values.items():
        macro = names.claim(f"{prefix}_{identifier(name).upper()}", f"{enum_type.path}.{name}")
        lines.append(_define(macro, _literal(value)))
    lines.append("")
    return lines


class CHeaderTarget(Target):
    name = "c"

    def peripheral_artifacts(
        self, space: AddressSpace, peripheral: Peripheral
    ) -> List[Artifact]:
        writer = _HeaderWriter(space, peripheral)
        content = writer.write()
        check_names(writer.names)
        return [Artifact(path=writer.path, content=content, target=self.name)]

    def space_artifacts(
        self, space: AddressSpace, peripherals: Sequence[Peripheral]
    ) -> List[Artifact]:
        headers = NameRegistry("include")
        if space.enums:
            headers.claim("enums", "the global enums")
        for peripheral in peripherals:
            headers.claim(header_name(peripheral), peripheral.path)
        check_names(headers)

        if not space.enums:
            return []

        guard = f"{identifier(space.name).upper()}_ENUMS_H"
        names = NameRegistry("include/enums.h")
        lines = [f"/* {GENERATED_NOTICE} */", "", f"#ifndef {guard}", f"#define {guard}", ""]
        for enum_type in space.enums.values():
            lines.extend(_enum_defines(identifier(enum_type.name).upper(), enum_type, names))
        lines.append(f"#endif /* {guard} */")
        check_names(names)

        return [
            Artifact(path="include/enums.h", content="\n".join(lines) + "\n", target=self.name)
        ]
