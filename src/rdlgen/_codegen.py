# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Functionality shared by the code generation targets.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Sequence, Union

from .errors import RdlEmitError, RdlNameCollisionError
from .model import AccessMode, AddressSpace, Peripheral
from .path import InstancePath, NodePath

# First line of every generated source file
GENERATED_NOTICE = "Generated by rdlgen from register descriptions. Do not edit."


@dataclass(frozen=True)
class Artifact:
    """Generated file, with its path relative to the output directory."""

    path: str
    content: str
    target: str

    @property
    def data(self) -> bytes:
        return self.content.encode("utf-8")


class Target(ABC):
    """A code generation target, such as a programming language."""

    # Name used to select the target
    name: str = ""

    @abstractmethod
    def peripheral_artifacts(
        self, space: AddressSpace, peripheral: Peripheral
    ) -> List[Artifact]:
        """
        Generate the files describing a single peripheral.

        :raises RdlEmitError: If names generated for different elements collide.
        """

    def space_artifacts(
        self, space: AddressSpace, peripherals: Sequence[Peripheral]
    ) -> List[Artifact]:
        """Generate the files that refer to all the emitted peripherals."""
        return []


class NameRegistry:
    """
    Names generated into one scope of the output, such as a source file or a type.

    A name claimed for two different elements is recorded as a collision.
    """

    def __init__(self, scope: str) -> None:
        self.scope = scope
        self._owners: Dict[str, str] = {}
        self.errors: List[RdlNameCollisionError] = []

    def claim(self, name: str, owner: Any) -> str:
        """:return: The claimed name."""
        owner_str = str(owner)
        previous = self._owners.setdefault(name, owner_str)
        if previous != owner_str:
            self.errors.append(RdlNameCollisionError(self.scope, name, previous, owner_str))
        return name


def check_names(*registries: NameRegistry) -> None:
    """:raises RdlEmitError: If a name was claimed for different elements in any registry."""
    errors = [e for registry in registries for e in registry.errors]
    if errors:
        raise RdlEmitError(errors)


@dataclass(frozen=True)
class Accessors:
    """Accessor functions generated for a field."""

    read: bool
    write: bool
    clear: bool
    set: bool


def accessors(access: AccessMode) -> Accessors:
    """:return: The accessors that are consistent with the given access mode."""
    return Accessors(
        read=access.readable,
        write=access.writable,
        clear=access is AccessMode.WRITE_ONE_TO_CLEAR,
        set=access is AccessMode.WRITE_ONE_TO_SET,
    )


_NON_IDENT_RE = re.compile(r"[^0-9A-Za-z_]")


def identifier(name: str, reserved: FrozenSet[str] = frozenset()) -> str:
    """
    Make a valid identifier out of a name.

    :param name: Name to convert.
    :param reserved: Keywords of the target language. Matching names get an underscore suffix.
    :return: Identifier.
    """
    ident = _NON_IDENT_RE.sub("_", name)
    if not ident or ident[0].isdigit():
        ident = f"_{ident}"
    if ident in reserved:
        ident = f"{ident}_"
    return ident


def camel_case(parts: Sequence[str]) -> str:
    """Join name parts as a CamelCase identifier: ("CH", "CTRL") -> "ChCtrl"."""
    words: List[str] = []
    for part in parts:
        words.extend(w for w in identifier(part).split("_") if w)
    return "".join(w[:1].upper() + w[1:].lower() for w in words) or "_"


def relative_parts(path: Union[NodePath, InstancePath]) -> List[str]:
    """
    :return: The parts of a path below the peripheral, with array indices appended to the
             preceding name.
    """
    parts: List[str] = []
    for part in path.parts[1:]:
        if isinstance(part, int):
            parts[-1] = f"{parts[-1]}{part}"
        else:
            parts.append(part)
    return parts


def symbol(path: Union[NodePath, InstancePath], separator: str = "_") -> str:
    """Upper case symbol for the part of a path below the peripheral: CH[1].CTRL -> CH1_CTRL."""
    return separator.join(identifier(p) for p in relative_parts(path)).upper()


def hex_literal(value: int) -> str:
    return f"{value:#x}"


def comment_lines(text: str) -> List[str]:
    """Split documentation text into lines without trailing whitespace."""
    return [line.rstrip() for line in text.strip().splitlines()]
