# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Lowering of syntax trees into the address space model.
"""

from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Union,
)

import rdlgen

from ._lexer import Number
from .errors import (
    RdlBuildError,
    RdlDefinitionError,
    RdlDuplicateDefinitionError,
    RdlError,
    RdlUnresolvedReferenceError,
)
from .model import (
    AccessMode,
    AddressSpace,
    BitRange,
    BlockChild,
    EnumType,
    Field,
    Node,
    Peripheral,
    Register,
    RegisterBlock,
)
from .path import NodePath
from .syntax import Attribute, BitSpec, Document, Scope, ScopeKind, Value, Word

if TYPE_CHECKING:
    from .pipeline import Options


# Enum type namespaces searched when resolving an enum reference, innermost scope first
EnumChain = Sequence[Mapping[str, EnumType]]


def _plain(value: Value) -> Any:
    """Convert an attribute value to plain Python data, for free-form metadata."""
    if isinstance(value, Number):
        return value.value
    if isinstance(value, BitSpec):
        return [value.high, value.low]
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: v.value for k, v in value.items()}
    if isinstance(value, Word):
        return str(value)
    return value


def _describe(value: Value) -> str:
    if isinstance(value, Number):
        return f"number {value.value:#x}"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, Word):
        return f"'{value}'"
    if isinstance(value, str):
        return "string"
    if isinstance(value, BitSpec):
        return "bit range"
    if isinstance(value, list):
        return "list"
    return "enumeration"


class ModelBuilder:
    """
    Builds model elements from syntax tree scopes and applies attributes to them.
    Errors are collected in the errors attribute instead of being raised, so that all the
    problems in the input can be reported together. Invalid attributes are skipped.
    """

    def __init__(self, space: AddressSpace, options: Options) -> None:
        self.space = space
        self.options = options
        self.errors: List[RdlError] = []

    def add_documents(self, documents: Iterable[Document]) -> None:
        """Add the peripherals and global enums declared by the given base documents."""
        documents = list(documents)

        # Global enums are visible from every file, so they are declared before any peripheral
        for document in documents:
            for scope in document.scopes:
                if scope.kind is ScopeKind.ENUM:
                    self.add_global_enum(scope)

        for document in documents:
            for scope in document.scopes:
                if scope.kind is ScopeKind.PERIPHERAL:
                    self.add_peripheral(scope)

    def add_global_enum(self, scope: Scope) -> Optional[EnumType]:
        path = NodePath(scope.name)
        existing = self.space.lookup(path)
        if existing is not None:
            self._duplicate(path, scope, existing)
            return None
        enum_type = self.build_enum(scope, None)
        self.space.add_enum(enum_type)
        return enum_type

    def add_peripheral(self, scope: Scope) -> Optional[Peripheral]:
        path = NodePath(scope.name)
        existing = self.space.lookup(path)
        if existing is not None:
            self._duplicate(path, scope, existing)
            return None
        peripheral = self.build_peripheral(scope)
        self.space.add_peripheral(peripheral)
        rdlgen.log.debug(f"Built {peripheral!r}")
        return peripheral

    def build_peripheral(self, scope: Scope) -> Peripheral:
        path = NodePath(scope.name)

        if scope.offset is None:
            self.errors.append(
                RdlDefinitionError(
                    "peripheral has no base address (expected '@ <address>')",
                    path=path,
                    location=scope.location,
                )
            )

        peripheral = Peripheral(
            name=scope.name,
            path=path,
            location=scope.location,
            base_address=scope.offset if scope.offset is not None else 0,
        )
        chain = [peripheral.enums, self.space.enums]
        self._declare_enums(scope, peripheral, peripheral.enums)
        self.apply_attributes(peripheral, scope.attributes, chain)
        self._add_children(scope, peripheral, chain)
        return peripheral

    def build_enum(self, scope: Scope, parent_path: Optional[NodePath]) -> EnumType:
        path = parent_path.join(scope.name) if parent_path else NodePath(scope.name)
        enum_type = EnumType(name=scope.name, path=path, location=scope.location)
        self.apply_attributes(enum_type, scope.attributes, ())
        return enum_type

    def build_child(
        self,
        scope: Scope,
        parent: Union[Peripheral, RegisterBlock],
        chain: EnumChain,
    ) -> Optional[BlockChild]:
        """Build a block or register declared in a peripheral or block."""
        offset = scope.offset
        if offset is None:
            offset = self._next_offset(parent.children, scope)

        if scope.kind is ScopeKind.BLOCK:
            return self._build_block(scope, parent.path, offset, chain)
        if scope.kind is ScopeKind.REGISTER:
            return self._build_register(scope, parent.path, offset, chain)

        self.errors.append(
            RdlDefinitionError(
                f"a {scope.kind.value} cannot be placed in {parent.path}",
                path=parent.path.join(scope.name),
                location=scope.location,
            )
        )
        return None

    def build_field(self, scope: Scope, register: Register, chain: EnumChain) -> Optional[Field]:
        path = register.path.join(scope.name)

        bits_attributes = [a for a in scope.attributes if a.key == "bits"]
        if scope.bits is not None and bits_attributes:
            self.errors.append(
                RdlDefinitionError(
                    "bit range given both in the declaration and as an attribute",
                    path=path,
                    location=bits_attributes[0].location,
                )
            )
            return None

        if scope.bits is not None:
            bits = self._to_bit_range(scope.bits, path, scope)
        elif bits_attributes:
            bits = self._to_bit_range(bits_attributes[0].value, path, bits_attributes[0])
        else:
            self.errors.append(
                RdlDefinitionError(
                    "field has no bit range (expected '[high:low]' or '[bit]')",
                    path=path,
                    location=scope.location,
                )
            )
            return None

        if bits is None:
            return None

        field = Field(name=scope.name, path=path, location=scope.location, bits=bits)
        self.apply_attributes(
            field, [a for a in scope.attributes if a.key != "bits"], chain
        )
        return field

    def enum_chain(self, path: NodePath) -> List[Mapping[str, EnumType]]:
        """:return: The enum namespaces visible from the element at path, innermost first."""
        chain: List[Mapping[str, EnumType]] = []
        current: Optional[NodePath] = path
        while current is not None:
            node = self.space.lookup(current)
            if isinstance(node, (Peripheral, RegisterBlock)):
                chain.append(node.enums)
            current = current.parent
        chain.append(self.space.enums)
        return chain

    def apply_attributes(
        self, node: Node, attributes: Iterable[Attribute], chain: EnumChain
    ) -> None:
        """Apply declared attributes to an element, reporting repeated keys."""
        seen: Dict[str, Attribute] = {}
        for attribute in attributes:
            if attribute.key in seen:
                self.errors.append(
                    RdlDuplicateDefinitionError(
                        node.path.join(attribute.key),
                        attribute.location,
                        seen[attribute.key].location,
                    )
                )
                continue
            seen[attribute.key] = attribute
            self.apply_attribute(node, attribute, chain)

    def apply_attribute(self, node: Node, attribute: Attribute, chain: EnumChain) -> bool:
        """
        Set a single attribute on an element. Unknown keys are stored as metadata.

        :return: True if the attribute was applied, False if its value was invalid.
        """
        key = attribute.key
        value = attribute.value

        try:
            if key == "desc" and not (isinstance(node, EnumType) and isinstance(value, Number)):
                node.doc = self._to_str(value)

            elif isinstance(node, EnumType):
                node.values[key] = self._to_int(value)

            elif isinstance(node, Peripheral) and key == "size":
                node.size = self._to_int(value, minimum=0)

            elif isinstance(node, RegisterBlock) and key == "count":
                node.count = self._to_int(value, minimum=1)

            elif isinstance(node, RegisterBlock) and key == "stride":
                node.stride = self._to_int(value, minimum=0)

            elif isinstance(node, Register) and key == "width":
                node.width = self._to_int(value, minimum=1)

            elif isinstance(node, (Register, Field)) and key == "access":
                node.access = self._to_access(value)

            elif isinstance(node, (Register, Field)) and key == "reset":
                node.reset = self._to_int(value, minimum=0)

            elif isinstance(node, Field) and key == "bits":
                bits = self._to_bit_range(value, node.path, attribute)
                if bits is None:
                    return False
                node.bits = bits

            elif isinstance(node, Field) and key == "reserved":
                node.reserved = self._to_bool(value)

            elif isinstance(node, Field) and key == "values":
                if not isinstance(value, dict):
                    raise ValueError(f"expected an enumeration, found {_describe(value)}")
                node.values = {name: number.value for name, number in value.items()}
                node.enum_type = None

            elif isinstance(node, Field) and key == "encode":
                if not isinstance(value, Word):
                    raise ValueError(f"expected an enum name, found {_describe(value)}")
                enum_type = self._resolve_enum(str(value), chain)
                if enum_type is None:
                    self.errors.append(
                        RdlUnresolvedReferenceError(str(value), node.path, attribute.location)
                    )
                    return False
                node.enum_type = enum_type

            else:
                node.metadata[key] = _plain(value)

        except ValueError as e:
            self.errors.append(
                RdlDefinitionError(
                    f"invalid value for '{key}': {e}",
                    path=node.path,
                    location=attribute.location,
                )
            )
            return False

        return True

    def _build_block(
        self, scope: Scope, parent_path: NodePath, offset: int, chain: EnumChain
    ) -> RegisterBlock:
        block = RegisterBlock(
            name=scope.name,
            path=parent_path.join(scope.name),
            location=scope.location,
            offset=offset,
            count=scope.count,
            stride=scope.stride,
        )

        if scope.count is not None and scope.count < 1:
            self.errors.append(
                RdlDefinitionError(
                    "replication count must be at least 1",
                    path=block.path,
                    location=scope.location,
                )
            )
            block.count = None

        block_chain = [block.enums, *chain]
        self._declare_enums(scope, block, block.enums)

        attributes: List[Attribute] = []
        for attribute in scope.attributes:
            declared = {"count": scope.count, "stride": scope.stride}.get(attribute.key)
            if declared is None:
                attributes.append(attribute)
                continue
            self.errors.append(
                RdlDefinitionError(
                    f"'{attribute.key}' given both in the declaration and as an attribute",
                    path=block.path,
                    location=attribute.location,
                )
            )

        self.apply_attributes(block, attributes, block_chain)
        self._add_children(scope, block, block_chain)
        return block

    def _build_register(
        self, scope: Scope, parent_path: NodePath, offset: int, chain: EnumChain
    ) -> Register:
        register = Register(
            name=scope.name,
            path=parent_path.join(scope.name),
            location=scope.location,
            offset=offset,
            width=self.options.default_register_width,
            access=AccessMode(self.options.default_access),
        )
        self.apply_attributes(register, scope.attributes, chain)

        for child in scope.children:
            self.add_field(child, register, chain)

        return register

    def add_field(self, scope: Scope, register: Register, chain: EnumChain) -> Optional[Field]:
        """Build a field and append it to the register, checking for duplicate names."""
        if scope.name in register.fields:
            self._duplicate(register.path.join(scope.name), scope, register.fields[scope.name])
            return None
        field = self.build_field(scope, register, chain)
        if field is not None:
            register.fields[field.name] = field
        return field

    def add_child(
        self,
        scope: Scope,
        parent: Union[Peripheral, RegisterBlock],
        chain: EnumChain,
    ) -> Optional[BlockChild]:
        """Build a block or register and append it to the parent, checking for duplicates."""
        existing = parent.children.get(scope.name) or parent.enums.get(scope.name)
        if existing is not None:
            self._duplicate(parent.path.join(scope.name), scope, existing)
            return None
        child = self.build_child(scope, parent, chain)
        if child is not None:
            parent.children[child.name] = child
        return child

    def _declare_enums(
        self,
        scope: Scope,
        parent: Union[Peripheral, RegisterBlock],
        enums: Dict[str, EnumType],
    ) -> None:
        for child in scope.children:
            if child.kind is not ScopeKind.ENUM:
                continue
            if child.name in enums:
                self._duplicate(parent.path.join(child.name), child, enums[child.name])
                continue
            enums[child.name] = self.build_enum(child, parent.path)

    def _add_children(
        self,
        scope: Scope,
        parent: Union[Peripheral, RegisterBlock],
        chain: EnumChain,
    ) -> None:
        for child in scope.children:
            if child.kind is not ScopeKind.ENUM:
                self.add_child(child, parent, chain)

    def _next_offset(self, siblings: Mapping[str, BlockChild], scope: Scope) -> int:
        """Offset of an element declared without an explicit offset: right after the
        preceding siblings, aligned to the register size for registers."""
        offset = max((c.offset + c.extent for c in siblings.values()), default=0)
        if scope.kind is ScopeKind.REGISTER:
            alignment = max(1, self.options.default_register_width // 8)
            for attribute in scope.attributes:
                if attribute.key == "width" and isinstance(attribute.value, Number):
                    alignment = max(1, (attribute.value.value + 7) // 8)
            offset = (offset + alignment - 1) // alignment * alignment
        return offset

    def _duplicate(self, path: NodePath, scope: Scope, existing: Node) -> None:
        self.errors.append(
            RdlDuplicateDefinitionError(path, scope.location, existing.location)
        )

    def _resolve_enum(self, name: str, chain: EnumChain) -> Optional[EnumType]:
        for namespace in chain:
            if name in namespace:
                return namespace[name]
        return None

    def _to_bit_range(
        self, value: Any, path: NodePath, where: Union[Scope, Attribute]
    ) -> Optional[BitRange]:
        if isinstance(value, list) and len(value) == 1 and isinstance(value[0], Number):
            value = BitSpec(value[0].value, value[0].value)
        elif isinstance(value, Number):
            value = BitSpec(value.value, value.value)

        if not isinstance(value, BitSpec):
            self.errors.append(
                RdlDefinitionError(
                    f"invalid bit range: expected '[high:low]', found {_describe(value)}",
                    path=path,
                    location=where.location,
                )
            )
            return None

        if value.high < value.low:
            self.errors.append(
                RdlDefinitionError(
                    f"invalid bit range [{value.high}:{value.low}]: high bit is below low bit",
                    path=path,
                    location=where.location,
                )
            )
            return None

        return BitRange(low=value.low, high=value.high)

    @staticmethod
    def _to_int(value: Value, minimum: Optional[int] = None) -> int:
        if not isinstance(value, Number):
            raise ValueError(f"expected a number, found {_describe(value)}")
        if minimum is not None and value.value < minimum:
            raise ValueError(f"{value.value} is less than {minimum}")
        return value.value

    @staticmethod
    def _to_str(value: Value) -> str:
        if not isinstance(value, str) or isinstance(value, Word):
            raise ValueError(f"expected a string, found {_describe(value)}")
        return value

    @staticmethod
    def _to_bool(value: Value) -> bool:
        if not isinstance(value, bool):
            raise ValueError(f"expected true or false, found {_describe(value)}")
        return value

    @staticmethod
    def _to_access(value: Value) -> AccessMode:
        if not isinstance(value, str):
            raise ValueError(f"expected an access mode, found {_describe(value)}")
        try:
            return AccessMode(str(value))
        except ValueError:
            choices = ", ".join(m.value for m in AccessMode)
            raise ValueError(f"unknown access mode '{value}' (expected one of {choices})")


def build_address_space(documents: Iterable[Document], options: Options) -> AddressSpace:
    """
    Build the address space model from the base documents.

    :param documents: Syntax trees of the base source units, in load order.
    :param options: Generation options.
    :raises RdlBuildError: With every duplicate definition, unresolved reference or invalid
                           attribute found in the documents.
    :return: The address space.
    """
    space = AddressSpace(options.name)
    builder = ModelBuilder(space, options)
    builder.add_documents(documents)

    if builder.errors:
        raise RdlBuildError(builder.errors)

    rdlgen.log.info(f"Built {space!r}")
    return space
