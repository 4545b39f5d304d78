# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
In-memory representation of a chip's address space.

The model is a strict ownership tree: the address space owns its peripherals, which own their
register blocks and registers, which own their fields. Nodes hold their declared (relative)
offsets; absolute addresses are resolved by walking the tree, see iter_instances().
Elements are looked up by qualified name through an index kept by the AddressSpace, so nodes
never refer back to their parents.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import (
    Any,
    Dict,
    Iterator,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Union,
)

from ._model import CaseInsensitiveStrEnum, bit_mask, node_repr
from .issues import Location
from .path import InstancePath, NodePath


@enum.unique
class AccessMode(CaseInsensitiveStrEnum):
    """
    Access rights for a given register or field.
    Short aliases such as "ro", "rw" or "w1c" are accepted when constructing a value.
    """

    # Read access is permitted. Writes have no effect.
    READ_ONLY = "read-only"
    # Write access is permitted. Reads return an undefined value.
    WRITE_ONLY = "write-only"
    # Read and write accesses are permitted.
    READ_WRITE = "read-write"
    # Writing a one clears the bit, writing a zero has no effect. Read access is permitted.
    WRITE_ONE_TO_CLEAR = "write-one-to-clear"
    # Writing a one sets the bit, writing a zero has no effect. Read access is permitted.
    WRITE_ONE_TO_SET = "write-one-to-set"
    # Reading returns the value and clears it.
    READ_TO_CLEAR = "read-to-clear"

    @classmethod
    def _missing_(cls, value: object) -> Optional[AccessMode]:
        if isinstance(value, str):
            alias = _ACCESS_ALIASES.get(value.lower())
            if alias is not None:
                return cls(alias)
        return super()._missing_(value)

    @property
    def readable(self) -> bool:
        """True if the value can be read back."""
        return self is not AccessMode.WRITE_ONLY

    @property
    def writable(self) -> bool:
        """True if an arbitrary value can be written."""
        return self in (AccessMode.WRITE_ONLY, AccessMode.READ_WRITE)

    @property
    def short(self) -> str:
        """Short name of the access mode."""
        return _ACCESS_SHORT[self]


_ACCESS_ALIASES: Mapping[str, str] = {
    "ro": "read-only",
    "r": "read-only",
    "wo": "write-only",
    "w": "write-only",
    "rw": "read-write",
    "w1c": "write-one-to-clear",
    "rw1c": "write-one-to-clear",
    "woclr": "write-one-to-clear",
    "write-1-to-clear": "write-one-to-clear",
    "w1s": "write-one-to-set",
    "rw1s": "write-one-to-set",
    "woset": "write-one-to-set",
    "write-1-to-set": "write-one-to-set",
    "rc": "read-to-clear",
    "rclr": "read-to-clear",
}

_ACCESS_SHORT: Mapping[AccessMode, str] = {
    AccessMode.READ_ONLY: "ro",
    AccessMode.WRITE_ONLY: "wo",
    AccessMode.READ_WRITE: "rw",
    AccessMode.WRITE_ONE_TO_CLEAR: "w1c",
    AccessMode.WRITE_ONE_TO_SET: "w1s",
    AccessMode.READ_TO_CLEAR: "rc",
}


# Register widths that the emitters can represent
SUPPORTED_WIDTHS = (8, 16, 32, 64)


class BitRange(NamedTuple):
    """Inclusive range of bits [low, high]."""

    low: int
    high: int

    @property
    def width(self) -> int:
        return self.high - self.low + 1

    @property
    def mask(self) -> int:
        return bit_mask(self.width, self.low)

    def overlaps(self, other: BitRange) -> bool:
        return self.low <= other.high and other.low <= self.high

    def __str__(self) -> str:
        if self.low == self.high:
            return f"[{self.low}]"
        return f"[{self.high}:{self.low}]"


@dataclass(eq=False, kw_only=True)
class _Node:
    """Attributes shared by all the elements of the model."""

    name: str
    path: NodePath
    location: Location
    doc: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(eq=False, kw_only=True)
class EnumType(_Node):
    """Named set of enumerated values that fields can refer to."""

    values: Dict[str, int] = field(default_factory=dict)

    def __repr__(self) -> str:
        return node_repr(self.__class__, str(self.path), length=len(self.values))


@dataclass(eq=False, kw_only=True)
class Field(_Node):
    """Bit field of a register."""

    bits: BitRange
    # None means that the access mode of the register applies
    access: Optional[AccessMode] = None
    reset: Optional[int] = None
    # Values declared on the field itself
    values: Dict[str, int] = field(default_factory=dict)
    # Enum type encoded by the field, if any. Takes precedence over values.
    enum_type: Optional[EnumType] = None
    reserved: bool = False

    @property
    def enums(self) -> Dict[str, int]:
        """Enumerated values of the field, read from the encoded enum type when there is one."""
        if self.enum_type is not None:
            return self.enum_type.values
        return self.values

    @property
    def mask(self) -> int:
        return self.bits.mask

    def __repr__(self) -> str:
        return node_repr(
            self.__class__,
            f"{self.path}{self.bits}",
            content=self.reset,
            content_max_width=self.bits.width,
            bool_props=[self.access.short] if self.access is not None else (),
        )


@dataclass(eq=False, kw_only=True)
class Register(_Node):
    """Hardware register at an offset from its parent."""

    offset: int
    width: int
    access: AccessMode
    # Explicit reset value. When unset the value is composed from the field resets.
    reset: Optional[int] = None
    fields: Dict[str, Field] = field(default_factory=dict)

    @property
    def size(self) -> int:
        """Size of the register in bytes."""
        return max(1, (self.width + 7) // 8)

    @property
    def extent(self) -> int:
        """Number of bytes covered by the register."""
        return self.size

    @property
    def reset_value(self) -> int:
        """Effective reset value of the register."""
        if self.reset is not None:
            return self.reset
        value = 0
        for f in self.fields.values():
            if f.reset is not None:
                value |= (f.reset << f.bits.low) & f.mask
        return value

    @property
    def defined_mask(self) -> int:
        """Bits covered by non-reserved fields. All bits are defined if there are no fields."""
        if not self.fields:
            return bit_mask(self.width)
        mask = 0
        for f in self.fields.values():
            if not f.reserved:
                mask |= f.mask
        return mask & bit_mask(self.width)

    def field_access(self, f: Field) -> AccessMode:
        """:return: The effective access mode of a field of this register."""
        return f.access if f.access is not None else self.access

    def __repr__(self) -> str:
        return node_repr(
            self.__class__,
            str(self.path),
            address=self.offset,
            content=self.reset_value,
            content_max_width=self.width,
            bool_props=[self.access.short],
            kv_props={"width": self.width},
        )


# Elements that may be placed in a peripheral or in a register block
BlockChild = Union["RegisterBlock", Register]


def _children_span(children: Mapping[str, BlockChild]) -> int:
    return max((c.offset + c.extent for c in children.values()), default=0)


@dataclass(eq=False, kw_only=True)
class RegisterBlock(_Node):
    """Group of registers, optionally replicated count times at a fixed stride."""

    offset: int
    count: Optional[int] = None
    stride: Optional[int] = None
    children: Dict[str, BlockChild] = field(default_factory=dict)
    enums: Dict[str, EnumType] = field(default_factory=dict)

    @property
    def is_array(self) -> bool:
        return self.count is not None

    @property
    def span(self) -> int:
        """Number of bytes covered by a single instance of the block."""
        return _children_span(self.children)

    @property
    def effective_stride(self) -> int:
        """Distance in bytes between consecutive instances."""
        return self.stride if self.stride is not None else self.span

    @property
    def instance_count(self) -> int:
        return self.count if self.count is not None else 1

    @property
    def extent(self) -> int:
        """Number of bytes covered by all the instances of the block."""
        if self.instance_count <= 1:
            return self.span
        return self.effective_stride * (self.instance_count - 1) + self.span

    def instance_offsets(self) -> List[int]:
        """Offsets of each instance relative to the parent of the block."""
        return [self.offset + i * self.effective_stride for i in range(self.instance_count)]

    def __repr__(self) -> str:
        return node_repr(
            self.__class__,
            str(self.path),
            address=self.offset,
            length=self.count,
            kv_props={"stride": self.effective_stride} if self.is_array else {},
        )


@dataclass(eq=False, kw_only=True)
class Peripheral(_Node):
    """Hardware unit mapped at a base address."""

    base_address: int
    # Declared size of the address range reserved for the peripheral
    size: Optional[int] = None
    children: Dict[str, BlockChild] = field(default_factory=dict)
    enums: Dict[str, EnumType] = field(default_factory=dict)

    @property
    def span(self) -> int:
        """Number of bytes covered by the children of the peripheral."""
        return _children_span(self.children)

    @property
    def extent(self) -> int:
        """Size of the peripheral address range."""
        return self.size if self.size is not None else self.span

    @property
    def address_range(self) -> range:
        return range(self.base_address, self.base_address + self.extent)

    def __repr__(self) -> str:
        return node_repr(
            self.__class__,
            self.name,
            address=self.base_address,
            length=len(self.children),
        )


# Any element that can be targeted by qualified name
Node = Union[Peripheral, RegisterBlock, Register, Field, EnumType]

# Elements that can hold other elements
Container = Union[Peripheral, RegisterBlock, Register]


class Instance(NamedTuple):
    """A resolved instance of an element at an absolute address."""

    path: InstancePath
    node: Union[Peripheral, RegisterBlock, Register]
    address: int


class AddressSpace:
    """
    Root of the model. Owns the peripherals and the global enum types, and indexes every
    element by qualified name.
    """

    def __init__(self, name: str) -> None:
        self.name: str = name
        self.peripherals: Dict[str, Peripheral] = {}
        self.enums: Dict[str, EnumType] = {}
        self._index: Dict[NodePath, Node] = {}

    def lookup(self, path: Union[str, NodePath]) -> Optional[Node]:
        """:return: The element with the given qualified name, or None if there is none."""
        if not isinstance(path, NodePath):
            path = NodePath(path)
        return self._index.get(path)

    def __getitem__(self, path: Union[str, NodePath]) -> Node:
        node = self.lookup(path)
        if node is None:
            raise KeyError(str(path))
        return node

    def __contains__(self, path: Union[str, NodePath]) -> bool:
        return self.lookup(path) is not None

    def index(self, node: Node) -> None:
        """Add an element to the qualified name index. The path must not be in use."""
        if node.path in self._index:
            raise ValueError(f"{node.path} is already indexed")
        self._index[node.path] = node

    def reindex(self, node: Node) -> None:
        """Add an element and all its descendants to the qualified name index."""
        for n in walk(node):
            self.index(n)

    def add_peripheral(self, peripheral: Peripheral) -> None:
        self.peripherals[peripheral.name] = peripheral
        self.reindex(peripheral)

    def add_enum(self, enum_type: EnumType) -> None:
        self.enums[enum_type.name] = enum_type
        self.index(enum_type)

    def __iter__(self) -> Iterator[Peripheral]:
        return iter(self.peripherals.values())

    def __len__(self) -> int:
        return len(self.peripherals)

    def __repr__(self) -> str:
        return node_repr(self.__class__, self.name, length=len(self.peripherals))


def walk(node: Node) -> Iterator[Node]:
    """Iterate over an element and all its descendants in declaration order (pre-order)."""
    stack: List[Node] = [node]

    while stack:
        current = stack.pop()
        yield current

        children: List[Node] = []
        if isinstance(current, (Peripheral, RegisterBlock)):
            children.extend(current.enums.values())
            children.extend(current.children.values())
        elif isinstance(current, Register):
            children.extend(current.fields.values())
        stack.extend(reversed(children))


def iter_registers(container: Union[Peripheral, RegisterBlock]) -> Iterator[Register]:
    """Iterate over the registers declared below a container, in declaration order."""
    for child in container.children.values():
        if isinstance(child, Register):
            yield child
        else:
            yield from iter_registers(child)


def iter_instances(peripheral: Peripheral) -> Iterator[Instance]:
    """
    Iterate over the resolved instances of a peripheral and everything below it, in declaration
    order. Replicated blocks yield one instance per replica, each followed by its children.
    """
    root = Instance(InstancePath(peripheral.name), peripheral, peripheral.base_address)
    yield root
    yield from _iter_child_instances(root.path, peripheral.children, root.address)


def _iter_child_instances(
    parent_path: InstancePath,
    children: Mapping[str, BlockChild],
    parent_address: int,
) -> Iterator[Instance]:
    for child in children.values():
        if isinstance(child, Register):
            yield Instance(parent_path.join(child.name), child, parent_address + child.offset)
            continue

        for i, offset in enumerate(child.instance_offsets()):
            if child.is_array:
                path = parent_path.join(child.name, i)
            else:
                path = parent_path.join(child.name)
            address = parent_address + offset
            yield Instance(path, child, address)
            yield from _iter_child_instances(path, child.children, address)
