# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Diagnostics collected while generating code from register descriptions.

Every stage of the generator reports problems as `Issue` objects so that a single run can surface
all the defects in the input at once.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, NamedTuple, Optional, Tuple


class Location(NamedTuple):
    """Position in a source unit. Lines and columns are 1-based."""

    unit: str
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        if not self.line:
            return self.unit
        return f"{self.unit}:{self.line}:{self.column}"


@enum.unique
class Severity(enum.Enum):
    ERROR = "error"
    WARNING = "warning"


@enum.unique
class IssueKind(enum.Enum):
    """Category of a reported issue."""

    IO = "io"
    ENCODING = "encoding"
    SYNTAX = "syntax"
    DEFINITION = "definition"
    DUPLICATE_DEFINITION = "duplicate-definition"
    UNRESOLVED_REFERENCE = "unresolved-reference"
    INVALID_EXTEND_TARGET = "invalid-extend-target"
    OVERLAY_TARGET = "overlay-target"
    OVERLAY = "overlay"
    ADDRESS_COLLISION = "address-collision"
    FIELD_OVERLAP = "field-overlap"
    FIELD_OUT_OF_RANGE = "field-out-of-range"
    INVALID_RESET_VALUE = "invalid-reset-value"
    INVALID_WIDTH = "invalid-width"
    INVALID_ENUM_VALUE = "invalid-enum-value"
    SIZE_EXCEEDED = "size-exceeded"
    RESERVED_BITS = "reserved-bits"
    RESERVED_GAP = "reserved-gap"
    NAME_COLLISION = "name-collision"
    WRITE = "write"


@dataclass(frozen=True)
class Issue:
    """A single problem found in the input or while producing the output."""

    severity: Severity
    kind: IssueKind
    message: str
    path: Optional[str] = None
    location: Optional[Location] = None

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def sort_key(self) -> Tuple:
        """Issues are ordered by source location, issues without a location last."""
        if self.location is None:
            return (1, Location(""), self.path or "", self.message)
        return (0, self.location, self.path or "", self.message)

    def __str__(self) -> str:
        location_str = f"{self.location}: " if self.location is not None else ""
        path_str = f" [{self.path}]" if self.path else ""
        return f"{location_str}{self.severity.value}: {self.message}{path_str}"


# Issues produced by the validator are plain issues; the alias names their role.
ValidationIssue = Issue


@dataclass
class Report:
    """Accumulates the issues of one generation run."""

    issues: List[Issue] = field(default_factory=list)

    def add(self, issue: Issue) -> None:
        self.issues.append(issue)

    def extend(self, issues: Iterable[Issue]) -> None:
        self.issues.extend(issues)

    @property
    def errors(self) -> List[Issue]:
        return [i for i in self.issues if i.is_error]

    @property
    def warnings(self) -> List[Issue]:
        return [i for i in self.issues if not i.is_error]

    @property
    def has_errors(self) -> bool:
        return any(i.is_error for i in self.issues)

    def sorted(self) -> List[Issue]:
        return sorted(self.issues, key=Issue.sort_key)

    def __iter__(self) -> Iterator[Issue]:
        return iter(self.sorted())

    def __len__(self) -> int:
        return len(self.issues)

    def format(self) -> str:
        """Human readable report, one issue per line, sorted by source location."""
        lines = [str(issue) for issue in self.sorted()]
        n_errors = len(self.errors)
        n_warnings = len(self.warnings)
        lines.append(f"{n_errors} error(s), {n_warnings} warning(s)")
        return "\n".join(lines)
