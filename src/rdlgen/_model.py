# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Various internal functionality used by the model module.
"""

from __future__ import annotations

import enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from typing_extensions import Self


class CaseInsensitiveStrEnum(enum.Enum):
    """String enum class that can be constructed from a case-insensitive string."""

    @classmethod
    def _missing_(cls, value: object) -> Optional[Self]:
        """Handler for string values with mismatched case."""
        if not isinstance(value, str):
            return None

        value_lower = value.lower()
        for member in cls:
            if member.value.lower() == value_lower:
                return member

        return None


def node_repr(
    klass: type,
    name: str,
    /,
    *,
    address: Optional[int] = None,
    length: Optional[int] = None,
    content: Optional[int] = None,
    content_max_width: int = 32,
    bool_props: Iterable[Any] = (),
    kv_props: Mapping[Any, Any] = MappingProxyType({}),
) -> str:
    """
    Common pretty print function for address space elements.

    :param klass: Class of the element.
    :param name: Name of the element.
    :param address: Address or offset of the element.
    :param length: Number of children or instances of the element.
    :param content: Reset content of the element.
    :param content_max_width: Available width of the element, used to zero-pad the value.
    :param bool_props: Additional arguments to include in the pretty print.
    :param kv_props: Additional keyword arguments to include in the pretty print.

    :return: Pretty printed string representing the element.
    """

    address_str: str = f" @ 0x{address:08x}" if address is not None else ""
    length_str: str = f"<{length}>" if length is not None else ""
    value_str: str

    if content is not None:
        leading_zeros: str = "0" * ((content_max_width - content.bit_length()) // 4)
        value_str = f" = 0x{leading_zeros}{content:x}"
    else:
        value_str = ""

    if bool_props or kv_props:
        bool_props_str: str = (
            f"{', '.join(f'{v!s}' for v in bool_props)}" if bool_props else ""
        )
        kv_props_str: str = (
            f"{', '.join(f'{k}: {v!s}' for k, v in kv_props.items())}"
            if kv_props
            else ""
        )
        separator = ", " if bool_props and kv_props else ""
        props_str = f" ({bool_props_str}{separator}{kv_props_str})"
    else:
        props_str = ""

    return f"[{name}{length_str}{address_str}{value_str}{props_str} {{{klass.__name__}}}]"


def ranges_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """
    :return: True if the half-open ranges [a_start, a_end) and [b_start, b_end) intersect.
             Empty ranges starting at the same position are considered to intersect.
    """
    if a_start == b_start:
        return True
    return a_start < b_end and b_start < a_end


def bit_mask(width: int, offset: int = 0) -> int:
    """:return: Bitmask of width one-bits starting at bit offset."""
    return ((1 << width) - 1) << offset
