# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

from typing import Any, Iterable, List, Optional, Sequence

from .issues import Issue, IssueKind, Location, Report, Severity


class RdlError(Exception):
    """Base class for errors raised by the library."""

    kind: IssueKind = IssueKind.DEFINITION

    def __init__(
        self,
        message: str,
        path: Any = None,
        location: Optional[Location] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.path: Optional[str] = str(path) if path is not None else None
        self.location = location

    def to_issue(self) -> Issue:
        """:return: The error as an error-severity issue."""
        return Issue(
            severity=Severity.ERROR,
            kind=self.kind,
            message=self.message,
            path=self.path,
            location=self.location,
        )

    def __str__(self) -> str:
        return str(self.to_issue())


class RdlIOError(RdlError, OSError):
    """Raised when a path is missing, unreadable or unwritable."""

    kind = IssueKind.IO


class RdlEncodingError(RdlError, ValueError):
    """Raised when a source file cannot be decoded as text."""

    kind = IssueKind.ENCODING


class RdlSyntaxError(RdlError):
    """Raised when a source unit violates the register-description grammar."""

    kind = IssueKind.SYNTAX

    def __init__(self, location: Location, expected: str, found: str) -> None:
        self.expected = expected
        self.found = found
        super().__init__(f"expected {expected}, found {found}", location=location)


class RdlDefinitionError(RdlError, ValueError):
    """Raised when an element carries an invalid attribute value."""

    kind = IssueKind.DEFINITION


class RdlDuplicateDefinitionError(RdlDefinitionError):
    """Raised when a qualified name is declared more than once."""

    kind = IssueKind.DUPLICATE_DEFINITION

    def __init__(
        self, path: Any, location: Optional[Location], previous: Optional[Location]
    ) -> None:
        previous_str = f" (previously defined at {previous})" if previous else ""
        super().__init__(
            f"duplicate definition of '{path}'{previous_str}",
            path=path,
            location=location,
        )


class RdlUnresolvedReferenceError(RdlDefinitionError, LookupError):
    """Raised when an element references a name that was never declared."""

    kind = IssueKind.UNRESOLVED_REFERENCE

    def __init__(self, name: str, path: Any, location: Optional[Location]) -> None:
        super().__init__(
            f"reference to undeclared enum '{name}'", path=path, location=location
        )


class RdlOverlayTargetError(RdlError, LookupError):
    """Raised when an overlay directive targets a nonexistent path."""

    kind = IssueKind.OVERLAY_TARGET

    def __init__(
        self, path: Any, location: Optional[Location], explanation: str = ""
    ) -> None:
        formatted_explanation = "" if not explanation else f" ({explanation})"
        super().__init__(
            f"overlay target '{path}' does not exist{formatted_explanation}",
            path=path,
            location=location,
        )


class RdlInvalidExtendTargetError(RdlOverlayTargetError):
    """Raised when an extend directive targets a leaf element or a nonexistent path."""

    kind = IssueKind.INVALID_EXTEND_TARGET

    def __init__(self, path: Any, location: Optional[Location], explanation: str) -> None:
        RdlError.__init__(
            self,
            f"cannot extend '{path}': {explanation}",
            path=path,
            location=location,
        )


class RdlOverlayError(RdlError, ValueError):
    """Raised when an overlay directive tries to change something it is not allowed to."""

    kind = IssueKind.OVERLAY


class RdlNameCollisionError(RdlError, ValueError):
    """Raised when two elements would be emitted under the same generated name."""

    kind = IssueKind.NAME_COLLISION

    def __init__(self, scope: str, name: str, first: Any, second: Any) -> None:
        super().__init__(
            f"{scope}: '{name}' is generated for both {first} and {second}", path=second
        )
        self.name = name


class RdlWriteError(RdlIOError):
    """Raised when an artifact could not be written to the output directory."""

    kind = IssueKind.WRITE

    def __init__(self, message: str, path: Any, written: Sequence[str]) -> None:
        # Artifacts successfully written before the failure
        self.written: List[str] = list(written)
        written_str = ", ".join(self.written) if self.written else "none"
        super().__init__(f"{message} (written before the failure: {written_str})", path=path)


class _RdlAggregateError(RdlError):
    """Base class for errors that carry several underlying errors."""

    stage: str = ""

    def __init__(self, errors: Iterable[RdlError]) -> None:
        self.errors: List[RdlError] = list(errors)
        details = "\n".join(f"  * {e}" for e in self.errors)
        super().__init__(f"{len(self.errors)} error(s) during {self.stage}:\n{details}")

    def issues(self) -> List[Issue]:
        return [e.to_issue() for e in self.errors]

    def __str__(self) -> str:
        return self.message


class RdlBuildError(_RdlAggregateError):
    """Raised when the base model could not be built."""

    stage = "model building"


class RdlMergeError(_RdlAggregateError):
    """Raised when one or more overlay directives could not be applied."""

    stage = "overlay merging"


class RdlEmitError(_RdlAggregateError):
    """Raised when the generated code would contain colliding names."""

    stage = "code emission"


class RdlGenerationError(RdlError):
    """Raised when a generation run failed. Carries the complete report of the run."""

    def __init__(self, report: Report) -> None:
        self.report = report
        super().__init__(report.format())

    def __str__(self) -> str:
        return self.message
