# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from typing import List, Optional, Tuple

import numpy as np
from typing_extensions import Self


class MemoryBlock:
    """
    Map of a contiguous memory region at a given (offset, length), recording which addresses
    are covered by a register.
    """

    class Builder:
        """
        Builder that can be used to construct a MemoryBlock in several steps.
        """

        def __init__(self) -> None:
            self._offset: Optional[int] = None
            self._length: Optional[int] = None
            self._ranges: List[Tuple[int, int]] = []

        def build(self) -> MemoryBlock:
            """
            Build the memory block based on the parameters set.

            :return: The built memory block.
            """
            if self._offset is None or self._length is None:
                raise ValueError("Missing extent, see set_extent()")

            block = MemoryBlock(offset=self._offset, length=self._length)

            for start, end in self._ranges:
                block._map(start, end)

            return block

        def set_extent(self, offset: int, length: int) -> Self:
            """
            Set the offset and length of the memory block. This is required.

            :param offset: Starting offset of the memory block.
            :param length: Length of the memory block, starting at the given offset.
            :return: The builder instance.
            """
            self._offset = offset
            self._length = length
            return self

        def map_range(self, start: int, end: int) -> Self:
            """
            Mark the address range [start, end) as mapped. The parts of the range outside of
            the memory block are ignored.

            :param start: Start offset of the range.
            :param end: Exclusive end offset of the range.
            :return: The builder instance.
            """
            if start < end:
                self._ranges.append((start, end))
            return self

    def __init__(self, offset: int, length: int) -> None:
        """
        :param offset: Starting offset of the memory block.
        :param length: Length in bytes of the memory block.
        """
        self._offset: int = offset
        self._length: int = length

        # The array represents the memory at [offset...offset + length]. The offset is added
        # on/subtracted in the API functions so that the array size is independent of it.
        self._mapped: np.ndarray = np.zeros(length, dtype=bool)

    @property
    def offset(self) -> int:
        return self._offset

    def is_mapped(self, offset: int) -> bool:
        """:return: True if the byte at the given address offset is covered by a register."""
        index = offset - self._offset
        if index < 0 or index >= self._length:
            raise IndexError(f"Offset {offset:#x} is outside of the memory block")
        return bool(self._mapped[index])

    def unmapped_ranges(self) -> List[Tuple[int, int]]:
        """
        Find the address ranges that are not covered by any register and lie between two
        mapped addresses. Unmapped space before the first and after the last mapped address is
        not included.

        :return: List of [start, end) address offset ranges, in ascending order.
        """
        mapped_indices = np.flatnonzero(self._mapped)
        if mapped_indices.size == 0:
            return []

        first = int(mapped_indices[0])
        last = int(mapped_indices[-1])
        unmapped = ~self._mapped[first : last + 1]

        # Transitions between mapped and unmapped runs
        edges = np.flatnonzero(np.diff(np.concatenate(([0], unmapped.astype(np.int8), [0]))))
        base = self._offset + first

        return [
            (base + int(start), base + int(end)) for start, end in zip(edges[0::2], edges[1::2])
        ]

    def __len__(self) -> int:
        """Length of the memory block."""
        return self._length

    def _map(self, start: int, end: int) -> None:
        index_start = max(start - self._offset, 0)
        index_end = min(end - self._offset, self._length)
        if index_start < index_end:
            self._mapped[index_start:index_end] = True
