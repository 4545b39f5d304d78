# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

from .issues import (
    Issue,
    IssueKind,
    Location,
    Report,
    Severity,
    ValidationIssue,
)
from .errors import (
    RdlError,
    RdlIOError,
    RdlEncodingError,
    RdlSyntaxError,
    RdlDefinitionError,
    RdlDuplicateDefinitionError,
    RdlUnresolvedReferenceError,
    RdlOverlayTargetError,
    RdlInvalidExtendTargetError,
    RdlOverlayError,
    RdlNameCollisionError,
    RdlWriteError,
    RdlBuildError,
    RdlMergeError,
    RdlEmitError,
    RdlGenerationError,
)
from .path import NodePath, InstancePath
from .model import (
    AccessMode,
    AddressSpace,
    BitRange,
    EnumType,
    Field,
    Instance,
    Peripheral,
    Register,
    RegisterBlock,
)
from .loader import Origin, SourceUnit, load_units
from .syntax import parse_text, parse_unit, parse_units
from .builder import build_address_space
from .overlay import merge_overlays
from .validation import validate
from ._codegen import Artifact
from .emitter import TARGETS, Selector, emit
from .writer import write_artifacts
from .pipeline import GenerationResult, Options, generate

import importlib.metadata
import logging

__version__ = importlib.metadata.version("rdlgen")


def _init_logger() -> logging.Logger:
    formatter = logging.Formatter("{message}", style="{")
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    logger = logging.getLogger("rdlgen")
    logger.setLevel(logging.ERROR)
    logger.addHandler(handler)

    return logger


# logging.Logger instance used for log output from rdlgen
log = _init_logger()

__all__ = [
    # from issues
    "Issue",
    "IssueKind",
    "Location",
    "Report",
    "Severity",
    "ValidationIssue",
    # from errors
    "RdlError",
    "RdlIOError",
    "RdlEncodingError",
    "RdlSyntaxError",
    "RdlDefinitionError",
    "RdlDuplicateDefinitionError",
    "RdlUnresolvedReferenceError",
    "RdlOverlayTargetError",
    "RdlInvalidExtendTargetError",
    "RdlOverlayError",
    "RdlNameCollisionError",
    "RdlWriteError",
    "RdlBuildError",
    "RdlMergeError",
    "RdlEmitError",
    "RdlGenerationError",
    # from path
    "NodePath",
    "InstancePath",
    # from model
    "AccessMode",
    "AddressSpace",
    "BitRange",
    "EnumType",
    "Field",
    "Instance",
    "Peripheral",
    "Register",
    "RegisterBlock",
    # pipeline stages
    "Origin",
    "SourceUnit",
    "load_units",
    "parse_text",
    "parse_unit",
    "parse_units",
    "build_address_space",
    "merge_overlays",
    "validate",
    "Artifact",
    "TARGETS",
    "Selector",
    "emit",
    "write_artifacts",
    # from pipeline
    "GenerationResult",
    "Options",
    "generate",
    # other
    "log",
    "__version__",
]
