# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Classes for referencing address space elements based on name.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from itertools import chain
from typing import (
    Any,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
    overload,
)
from typing_extensions import Self


# Type of path part items
PartT = TypeVar("PartT")

_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


class AbstractPath(ABC, Sequence[PartT]):
    """
    A type used to describe paths of named address space elements.
    """

    @abstractmethod
    def __init__(self, *parts: Union[PartT, Sequence[PartT]]) -> None:
        ...

    @property
    @abstractmethod
    def parts(self) -> Tuple[PartT, ...]:
        """:return: Path components."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """:return: Name of the element pointed to by the path."""
        ...

    @property
    @abstractmethod
    def parent(self) -> Optional[AbstractPath]:
        """:return: Path to the parent element of this path, if it exists."""
        ...

    def join(self, *other: Union[PartT, Sequence[PartT]]) -> Self:
        """:return: The path resulting from appending other to the end of this path."""
        return self.__class__(*self.parts, *other)

    @overload
    def __getitem__(self, item: int, /) -> PartT:
        ...

    @overload
    def __getitem__(self, item: slice, /) -> Self:
        ...

    def __getitem__(self, item: Union[int, slice], /) -> Union[PartT, Self]:
        if isinstance(item, slice):
            return self.__class__(*self.parts[item])
        else:
            return self.parts[item]

    def __len__(self) -> int:
        return len(self.parts)

    def __hash__(self) -> int:
        return hash(self.parts)

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, AbstractPath):
            return self.parts == other.parts
        return self.parts == other

    def __lt__(self, other: AbstractPath) -> bool:
        return str(self) < str(other)

    def __str__(self) -> str:
        return repr(self)

    @abstractmethod
    def __repr__(self) -> str:
        ...


class NodePath(AbstractPath[str]):
    """
    Qualified name of an element in the address space model.
    A NodePath like "UART.CTRL.ENABLE" refers to the element named "ENABLE" whose parent is
    named "CTRL", which in turn belongs to the peripheral "UART".

    NodePaths refer to elements without considering replication, corresponding directly to how
    the elements are declared in the description files. Names are case-sensitive.
    """

    __slots__ = "_parts"

    def __init__(self, *parts: Union[str, Sequence[str]]) -> None:
        split_parts: List[str] = []

        for part in parts:
            if isinstance(part, str):
                split_parts.extend(part.split("."))
            elif isinstance(part, NodePath):
                split_parts.extend(part)
            else:
                sub_parts = (p.split(".") for p in part)
                split_parts.extend(chain.from_iterable(sub_parts))

        if not split_parts:
            raise ValueError(f"Empty {self.__class__.__name__} not allowed")

        if any(_NAME_RE.fullmatch(p) is None for p in split_parts):
            raise ValueError(f"Invalid {self.__class__.__name__} parts: {parts}")

        self._parts: Tuple[str, ...] = tuple(split_parts)

    @property
    def parts(self) -> Tuple[str, ...]:
        return self._parts

    @property
    def name(self) -> str:
        return self.parts[-1]

    @property
    def parent(self) -> Optional[NodePath]:
        if len(self.parts) <= 1:
            return None
        return NodePath(*self.parts[:-1])

    def __repr__(self) -> str:
        return ".".join(self.parts)


class InstancePath(AbstractPath[Union[str, int]]):
    """
    Path to a single resolved instance of an element, including the indices of replicated
    register blocks, e.g. "UART.CH[1].CTRL".
    """

    __slots__ = "_parts"

    def __init__(self, *parts: Union[str, int, Sequence[Union[str, int]]]) -> None:
        processed_parts = self._process_parts(parts)

        if not processed_parts:
            raise ValueError(f"Empty {self.__class__.__name__} not allowed")

        self._parts: Tuple[Union[str, int], ...] = tuple(processed_parts)

    @property
    def parts(self) -> Tuple[Union[str, int], ...]:
        return self._parts

    @property
    def name(self) -> str:
        for i in reversed(range(len(self._parts))):
            if isinstance(self._parts[i], str):
                return self._format_parts(self._parts[i:])
        assert False

    @property
    def parent(self) -> Optional[InstancePath]:
        if len(self._parts) <= 1:
            return None
        return InstancePath(*self._parts[:-1])

    def __repr__(self) -> str:
        return self._format_parts(self.parts)

    def _process_parts(
        self,
        parts: Iterable[Union[str, int, Sequence[Union[str, int]]]],
        allow_seq: bool = True,
    ) -> List[Union[str, int]]:
        """Helper method for converting initialization arguments to a list of parts."""
        split_parts: List[Union[str, int]] = []

        for part in parts:
            if isinstance(part, str):
                if not _NAME_RE.fullmatch(part):
                    raise ValueError(f"Invalid {self.__class__.__name__} part '{part}'")
                split_parts.append(part)

            elif isinstance(part, int):
                split_parts.append(part)

            elif allow_seq and isinstance(part, Sequence):
                if isinstance(part, InstancePath):
                    split_parts.extend(part.parts)
                else:
                    split_parts.extend(self._process_parts(part, False))

            else:
                raise TypeError(
                    f"Invalid {self.__class__.__name__} part {part} of type '{type(part)}'"
                )

        return split_parts

    @staticmethod
    def _format_parts(parts: Iterable[Union[str, int]]) -> str:
        """Format parts as a string path."""
        formatted_parts: List[str] = []

        for part in parts:
            if isinstance(part, int):
                formatted_parts.append(f"[{part}]")
            else:
                if not formatted_parts:
                    formatted_parts.append(part)
                else:
                    formatted_parts.append(f".{part}")

        return "".join(formatted_parts)
