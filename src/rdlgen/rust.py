# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Rust code generation target.

Every peripheral is emitted as a module in src/<peripheral>.rs containing the absolute address of
each register instance and a transparent wrapper type for each register. Field accessors are only
generated when the access mode of the field allows the operation. src/lib.rs declares the modules.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence

from ._codegen import (
    GENERATED_NOTICE,
    Artifact,
    NameRegistry,
    Target,
    accessors,
    camel_case,
    check_names,
    comment_lines,
    hex_literal,
    identifier,
    relative_parts,
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

RUST_KEYWORDS: FrozenSet[str] = frozenset(
    {
        "as", "async", "await", "break", "const", "continue", "crate", "dyn", "else", "enum",
        "extern", "false", "fn", "for", "if", "impl", "in", "let", "loop", "match", "mod",
        "move", "mut", "pub", "ref", "return", "self", "Self", "static", "struct", "super",
        "trait", "true", "type", "unsafe", "use", "where", "while", "abstract", "become", "box",
        "do", "final", "macro", "override", "priv", "try", "typeof", "unsized", "virtual",
        "yield",
    }
)  # fmt: skip

UINT_TYPES: Mapping[int, str] = {8: "u8", 16: "u16", 32: "u32", 64: "u64"}

INDENT = "    "


def module_name(peripheral: Peripheral) -> str:
    return identifier(peripheral.name.lower(), RUST_KEYWORDS)


def register_type_name(register: Register) -> str:
    return identifier(camel_case(relative_parts(register.path)), RUST_KEYWORDS)


def _doc(text: Optional[str], indent: str = "", inner: bool = False) -> List[str]:
    if not text:
        return []
    marker = "//!" if inner else "///"
    return [f"{indent}{marker} {line}".rstrip() for line in comment_lines(text)]


def _enum_module(enum_type: EnumType, indent: str, names: NameRegistry) -> List[str]:
    value_type = "u64" if any(v >> 32 for v in enum_type.values.values()) else "u32"
    module = names.claim(identifier(enum_type.name.lower(), RUST_KEYWORDS), enum_type.path)
    values = NameRegistry(f"{names.scope} enum {enum_type.path}")
    lines = _doc(enum_type.doc, indent)
    lines.append(f"{indent}pub mod {module} {{")
    for name, value in enum_type.values.items():
        const = values.claim(identifier(name.upper()), f"{enum_type.path}.{name}")
        lines.append(f"{indent}{INDENT}pub const {const}: {value_type} = {hex_literal(value)};")
    lines.append(f"{indent}}}")
    names.errors.extend(values.errors)
    return lines


def _enums_module(enum_types: Iterable[EnumType], names: NameRegistry) -> List[str]:
    enum_types = list(enum_types)
    if not enum_types:
        return []
    lines = ["/// Enumerated values.", "pub mod enums {"]
    for i, enum_type in enumerate(enum_types):
        if i:
            lines.append("")
        lines.extend(_enum_module(enum_type, INDENT, names))
    lines.append("}")
    lines.append("")
    return lines


class _RegisterWriter:
    """Generates the wrapper type of a single register."""

    def __init__(self, register: Register) -> None:
        self.register = register
        self.type_name = register_type_name(register)
        self.uint = UINT_TYPES[register.width]
        self.names = NameRegistry(str(register.path))

    def lines(self) -> List[str]:
        register = self.register
        for const in ("WIDTH", "RESET", "ACCESS", "OFFSET"):
            self.names.claim(const, register.path)

        lines = _doc(register.doc)
        if register.doc:
            lines.append("///")
        lines.extend(
            [
                f"/// {register.path}: {register.width} bit register at offset "
                f"{hex_literal(register.offset)}.",
                "#[derive(Clone, Copy, Debug, PartialEq, Eq)]",
                "#[repr(transparent)]",
                f"pub struct {self.type_name}(pub {self.uint});",
                "",
                f"impl {self.type_name} {{",
                f"{INDENT}pub const WIDTH: u32 = {register.width};",
                f"{INDENT}pub const RESET: {self.uint} = {hex_literal(register.reset_value)};",
                f"{INDENT}pub const ACCESS: &'static str = \"{register.access.value}\";",
                f"{INDENT}pub const OFFSET: usize = {hex_literal(register.offset)};",
            ]
        )

        fields = [f for f in register.fields.values() if not f.reserved]

        for field in fields:
            lines.extend(self._field_constants(field))

        for field in fields:
            lines.extend(self._field_accessors(field))

        lines.append("}")
        lines.append("")
        lines.extend(
            [
                f"impl Default for {self.type_name} {{",
                f"{INDENT}fn default() -> Self {{",
                f"{INDENT * 2}Self(Self::RESET)",
                f"{INDENT}}}",
                "}",
            ]
        )
        return lines

    def _field_constants(self, field: Field) -> List[str]:
        const = identifier(field.name.upper())
        shift = self.names.claim(f"{const}_SHIFT", field.path)
        mask = self.names.claim(f"{const}_MASK", field.path)
        lines = [
            "",
            f"{INDENT}/// Bit offset of {field.name}{field.bits}.",
            f"{INDENT}pub const {shift}: u32 = {field.bits.low};",
            f"{INDENT}pub const {mask}: {self.uint} = {hex_literal(field.mask)};",
        ]
        for name, value in field.enums.items():
            value_const = self.names.claim(
                f"{const}_{identifier(name.upper())}", f"{field.path} value {name}"
            )
            lines.append(
                f"{INDENT}pub const {value_const}: {self.uint} = {hex_literal(value)};"
            )
        return lines

    def _field_accessors(self, field: Field) -> List[str]:
        access = self.register.field_access(field)
        allowed = accessors(access)
        const = identifier(field.name.upper())
        name = identifier(field.name.lower(), RUST_KEYWORDS)
        mask = f"Self::{const}_MASK"
        shift = f"Self::{const}_SHIFT"
        doc = _doc(field.doc, INDENT) or [
            f"{INDENT}/// {field.name}{field.bits} ({access.short})."
        ]

        lines: List[str] = []

        if allowed.read:
            self.names.claim(name, field.path)
            lines.extend(["", *doc, f"{INDENT}#[inline(always)]"])
            lines.extend(
                [
                    f"{INDENT}pub fn {name}(&self) -> {self.uint} {{",
                    f"{INDENT * 2}(self.0 & {mask}) >> {shift}",
                    f"{INDENT}}}",
                ]
            )

        if allowed.write:
            self.names.claim(f"set_{name}", field.path)
            lines.extend(["", *doc, f"{INDENT}#[inline(always)]"])
            lines.extend(
                [
                    f"{INDENT}pub fn set_{name}(&mut self, value: {self.uint}) -> &mut Self {{",
                    f"{INDENT * 2}self.0 = (self.0 & !{mask}) | ((value << {shift}) & {mask});",
                    f"{INDENT * 2}self",
                    f"{INDENT}}}",
                ]
            )

        for verb, enabled in (("clear", allowed.clear), ("set", allowed.set)):
            if not enabled:
                continue
            self.names.claim(f"{verb}_{name}", field.path)
            lines.extend(
                [
                    "",
                    f"{INDENT}/// Write a one to {verb} {field.name}.",
                    f"{INDENT}#[inline(always)]",
                    f"{INDENT}pub fn {verb}_{name}(&mut self) -> &mut Self {{",
                    f"{INDENT * 2}self.0 |= {mask};",
                    f"{INDENT * 2}self",
                    f"{INDENT}}}",
                ]
            )

        return lines


def _address_constants(peripheral: Peripheral, names: NameRegistry) -> List[str]:
    base = names.claim("BASE_ADDR", peripheral.path)
    lines = [
        f"/// Base address of {peripheral.name}.",
        f"pub const {base}: usize = {hex_literal(peripheral.base_address)};",
    ]
    if peripheral.size is not None:
        size = names.claim("SIZE", peripheral.path)
        lines.append(f"pub const {size}: usize = {hex_literal(peripheral.size)};")

    for node in walk(peripheral):
        if isinstance(node, RegisterBlock) and node.is_array:
            count = names.claim(f"{symbol(node.path)}_COUNT", node.path)
            stride = names.claim(f"{symbol(node.path)}_STRIDE", node.path)
            lines.append(f"pub const {count}: usize = {node.instance_count};")
            lines.append(f"pub const {stride}: usize = {hex_literal(node.effective_stride)};")

    lines.append("")

    for instance in iter_instances(peripheral):
        if instance.node is peripheral:
            continue
        lines.append(f"/// Address of {instance.path}.")
        addr = names.claim(f"{symbol(instance.path)}_ADDR", instance.path)
        lines.append(f"pub const {addr}: usize = {hex_literal(instance.address)};")

    lines.append("")
    return lines


def _scoped_enums(peripheral: Peripheral) -> List[EnumType]:
    return [n for n in walk(peripheral) if isinstance(n, EnumType)]


class RustTarget(Target):
    name = "rust"

    def peripheral_artifacts(
        self, space: AddressSpace, peripheral: Peripheral
    ) -> List[Artifact]:
        path = f"src/{module_name(peripheral)}.rs"
        names = NameRegistry(path)
        lines = [f"// {GENERATED_NOTICE}", ""]

        if peripheral.doc:
            lines.extend(_doc(peripheral.doc, inner=True))
        else:
            lines.append(f"//! {peripheral.name} registers.")
        lines.append("")

        lines.extend(_address_constants(peripheral, names))
        enum_names = NameRegistry(f"{path} mod enums")
        lines.extend(_enums_module(_scoped_enums(peripheral), enum_names))

        writers: List[_RegisterWriter] = []
        seen: Dict[str, Register] = {}
        for register in iter_registers(peripheral):
            writer = _RegisterWriter(register)
            # Distinct paths can map to the same type name, e.g. CH.CTRL and CH_CTRL
            if writer.type_name in seen:
                writer.type_name = f"{writer.type_name}{len(seen)}"
            names.claim(writer.type_name, register.path)
            seen[writer.type_name] = register
            lines.extend(writer.lines())
            lines.append("")
            writers.append(writer)

        check_names(names, enum_names, *(w.names for w in writers))

        return [Artifact(path=path, content=_join(lines), target=self.name)]

    def space_artifacts(
        self, space: AddressSpace, peripherals: Sequence[Peripheral]
    ) -> List[Artifact]:
        lines = [
            f"// {GENERATED_NOTICE}",
            "",
            f"//! Register definitions of {space.name}.",
            "",
            "#![no_std]",
            "#![allow(dead_code)]",
            "",
        ]
        modules = NameRegistry("src/lib.rs")
        modules.claim("lib", "the crate root")
        if space.enums:
            modules.claim("enums", "the global enums")
        for peripheral in peripherals:
            lines.extend(_doc(peripheral.doc))
            lines.append(f"pub mod {modules.claim(module_name(peripheral), peripheral.path)};")
        lines.append("")
        enum_names = NameRegistry("src/lib.rs mod enums")
        lines.extend(_enums_module(space.enums.values(), enum_names))
        check_names(modules, enum_names)

        return [Artifact(path="src/lib.rs", content=_join(lines), target=self.name)]


def _join(lines: List[str]) -> str:
    while lines and lines[-1] == "":
        lines.pop()
    return "\n".join(lines) + "\n"
