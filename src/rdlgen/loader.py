# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Discovery and reading of register-description source files.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .errors import RdlEncodingError, RdlError, RdlIOError
from .issues import Location


@enum.unique
class Origin(enum.Enum):
    """Whether a source unit belongs to the base (RTL derived) set or to the overlay set."""

    BASE = "base"
    OVERLAY = "overlay"


@dataclass(frozen=True)
class SourceUnit:
    """Text of one description file, tagged with its origin and a stable identifier."""

    origin: Origin
    identifier: str
    path: Path
    text: str


def discover(root: Union[str, Path], suffixes: Sequence[str]) -> List[Path]:
    """
    Find the description files below a directory.
    Hidden files and directories (such as .git) are skipped.

    :param root: Directory to search.
    :param suffixes: File suffixes to include.
    :raises RdlIOError: If root is not a readable directory.
    :return: Paths of the description files, sorted by relative path.
    """
    root_dir = Path(root)

    if not root_dir.is_dir():
        raise RdlIOError(f"No such directory: {root_dir.absolute()}", path=root_dir)

    try:
        candidates = [
            p
            for p in root_dir.rglob("*")
            if p.suffix in suffixes
            and p.is_file()
            and not any(part.startswith(".") for part in p.relative_to(root_dir).parts)
        ]
    except OSError as e:
        raise RdlIOError(f"Unable to read directory {root_dir}: {e}", path=root_dir) from e

    return sorted(candidates, key=lambda p: p.relative_to(root_dir).as_posix())


def _identifier(root: Path, path: Path) -> str:
    root_name = root.name or root.resolve().name
    return f"{root_name}/{path.relative_to(root).as_posix()}"


def read_unit(root: Union[str, Path], path: Path, origin: Origin) -> SourceUnit:
    """
    Read a single description file.

    :raises RdlIOError: If the file could not be read.
    :raises RdlEncodingError: If the file content is not valid UTF-8 text.
    """
    root_dir = Path(root)
    identifier = _identifier(root_dir, path)

    try:
        data = path.read_bytes()
    except OSError as e:
        raise RdlIOError(
            f"Unable to read {path}: {e.strerror or e}",
            location=Location(identifier),
        ) from e

    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        line = data.count(b"\n", 0, e.start) + 1
        column = e.start - (data.rfind(b"\n", 0, e.start) + 1) + 1
        raise RdlEncodingError(
            f"Unable to decode {path} as UTF-8 text ({e.reason})",
            location=Location(identifier, line, column),
        ) from e

    # Normalize line endings so that locations are independent of the platform
    text = text.replace("\r\n", "\n")

    return SourceUnit(origin=origin, identifier=identifier, path=path, text=text)


def load_units(
    rtl_dir: Union[str, Path],
    overlay_dir: Optional[Union[str, Path]],
    suffixes: Iterable[str] = (".rdl",),
) -> Tuple[List[SourceUnit], List[RdlError]]:
    """
    Load the base units from the RTL tree followed by the overlay units.

    Missing directories are fatal. Errors reading or decoding individual files are collected so
    that they can all be reported together.

    :param rtl_dir: Directory containing the base descriptions.
    :param overlay_dir: Directory containing the overlay descriptions, if any.
    :param suffixes: File suffixes of description files.
    :raises RdlIOError: If one of the directories does not exist.
    :return: The units that were read successfully and the per-file errors.
    """
    suffix_list = tuple(suffixes)
    roots: List[Tuple[Path, Origin]] = [(Path(rtl_dir), Origin.BASE)]
    if overlay_dir is not None:
        roots.append((Path(overlay_dir), Origin.OVERLAY))

    discovered = [(root, origin, discover(root, suffix_list)) for root, origin in roots]

    units: List[SourceUnit] = []
    errors: List[RdlError] = []

    for root, origin, paths in discovered:
        for path in paths:
            try:
                units.append(read_unit(root, path, origin))
            except (RdlIOError, RdlEncodingError) as e:
                errors.append(e)

    return units, errors
