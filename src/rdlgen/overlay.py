# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Application of overlay descriptions on top of the base address space model.

Overlay files may declare new peripherals and enum types like base files do, and may in addition
contain directives that modify elements of the base model:

* extend: append new blocks, registers, fields or enum types to an existing element.
* override: replace attribute values of an existing element.
* annotate: attach documentation or metadata to an existing element.

Directives are applied in file order, then in declaration order within a file. When several
directives set the same attribute of the same element, the last one wins.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, FrozenSet, Iterable, List, Mapping, Tuple

import rdlgen

from .builder import ModelBuilder
from .errors import (
    RdlDuplicateDefinitionError,
    RdlError,
    RdlInvalidExtendTargetError,
    RdlMergeError,
    RdlOverlayError,
    RdlOverlayTargetError,
)
from .issues import Location
from .model import (
    AddressSpace,
    EnumType,
    Field,
    Node,
    Peripheral,
    Register,
    RegisterBlock,
)
from .path import NodePath
from .syntax import Attribute, Directive, DirectiveOp, Document, Scope, ScopeKind

if TYPE_CHECKING:
    from .pipeline import Options


# Attributes that determine where an element is placed. These can only be set by the base set.
_STRUCTURAL_KEYS: FrozenSet[str] = frozenset({"offset", "size", "count", "stride"})

# Attributes with a built-in meaning for each kind of element
_KNOWN_KEYS: Mapping[type, FrozenSet[str]] = {
    Peripheral: frozenset({"desc", "size"}),
    RegisterBlock: frozenset({"desc", "count", "stride"}),
    Register: frozenset({"desc", "width", "access", "reset"}),
    Field: frozenset({"desc", "bits", "access", "reset", "values", "encode", "reserved"}),
}

_ALL_KNOWN_KEYS: FrozenSet[str] = frozenset().union(*_KNOWN_KEYS.values()) | _STRUCTURAL_KEYS

_KIND_NAMES: Mapping[type, str] = {
    Peripheral: "peripheral",
    RegisterBlock: "block",
    Register: "register",
    Field: "field",
    EnumType: "enum",
}


class OverlayMerger:
    """Applies overlay documents to an address space, collecting the errors."""

    def __init__(self, space: AddressSpace, options: Options) -> None:
        self.space = space
        self.builder = ModelBuilder(space, options)
        # Location of the directive that last set each attribute of each element
        self._written: Dict[Tuple[NodePath, str], Location] = {}

    @property
    def errors(self) -> List[RdlError]:
        return self.builder.errors

    def merge(self, documents: Iterable[Document]) -> None:
        documents = list(documents)

        # Enum types declared by overlays are visible to every overlay file
        for document in documents:
            for scope in document.scopes:
                if scope.kind is ScopeKind.ENUM:
                    self.builder.add_global_enum(scope)

        for document in documents:
            rdlgen.log.debug(f"Applying overlay {document.unit}")
            for item in document.items:
                if isinstance(item, Directive):
                    self.apply(item)
                elif item.kind is ScopeKind.PERIPHERAL:
                    peripheral = self.builder.add_peripheral(item)
                    if peripheral is not None:
                        rdlgen.log.info(f"Overlay {document.unit} added peripheral {item.name}")

    def apply(self, directive: Directive) -> None:
        """Apply a single directive."""
        if directive.op is DirectiveOp.EXTEND:
            self._extend(directive)
        else:
            self._modify(directive)

    def _extend(self, directive: Directive) -> None:
        target = self.space.lookup(directive.target)

        if target is None:
            self.errors.append(
                RdlInvalidExtendTargetError(
                    directive.target, directive.location, "no such element"
                )
            )
            return

        if isinstance(target, (Field, EnumType)):
            self.errors.append(
                RdlInvalidExtendTargetError(
                    directive.target,
                    directive.location,
                    f"a {_KIND_NAMES[type(target)]} cannot contain other elements",
                )
            )
            return

        for scope in directive.children:
            self._add_scope(target, scope)

        # Attributes given alongside the new elements follow the override rules
        for attribute in directive.attributes:
            self._set(DirectiveOp.OVERRIDE, target, attribute)

    def _add_scope(self, target: Node, scope: Scope) -> None:
        chain = self.builder.enum_chain(target.path)

        if isinstance(target, Register):
            if scope.kind is not ScopeKind.FIELD:
                self._misplaced(target, scope)
                return
            field = self.builder.add_field(scope, target, chain)
            if field is not None:
                self.space.index(field)
                rdlgen.log.info(f"Extended {target.path} with field {field.name}")
            return

        assert isinstance(target, (Peripheral, RegisterBlock))

        if scope.kind is ScopeKind.FIELD:
            self._misplaced(target, scope)
            return

        if scope.kind is ScopeKind.ENUM:
            existing = target.children.get(scope.name) or target.enums.get(scope.name)
            if existing is not None:
                self.errors.append(
                    RdlDuplicateDefinitionError(
                        target.path.join(scope.name), scope.location, existing.location
                    )
                )
                return
            enum_type = self.builder.build_enum(scope, target.path)
            target.enums[enum_type.name] = enum_type
            self.space.index(enum_type)
            rdlgen.log.info(f"Extended {target.path} with enum {enum_type.name}")
            return

        child = self.builder.add_child(scope, target, chain)
        if child is not None:
            self.space.reindex(child)
            rdlgen.log.info(f"Extended {target.path} with {scope.kind.value} {child.name}")

    def _misplaced(self, target: Node, scope: Scope) -> None:
        self.errors.append(
            RdlOverlayError(
                f"a {scope.kind.value} cannot be added to a {_KIND_NAMES[type(target)]}",
                path=target.path.join(scope.name),
                location=scope.location,
            )
        )

    def _modify(self, directive: Directive) -> None:
        target = self.space.lookup(directive.target)

        if target is None:
            self.errors.append(RdlOverlayTargetError(directive.target, directive.location))
            return

        for attribute in directive.attributes:
            self._set(directive.op, target, attribute)

    def _set(self, op: DirectiveOp, target: Node, attribute: Attribute) -> None:
        """Apply one attribute of an override or annotate directive to the target element."""
        key = attribute.key
        refusal = _refusal(op, target, key)
        if refusal:
            self.errors.append(
                RdlOverlayError(refusal, path=target.path, location=attribute.location)
            )
            return

        chain = self.builder.enum_chain(target.path)
        if not self.builder.apply_attribute(target, attribute, chain):
            return

        written = (target.path, key)
        previous = self._written.get(written)
        if previous is not None:
            rdlgen.log.info(
                f"{attribute.location}: '{key}' of {target.path} overrides the value set at "
                f"{previous}"
            )
        else:
            rdlgen.log.debug(f"{attribute.location}: {op.value} '{key}' of {target.path}")
        self._written[written] = attribute.location


def _refusal(op: DirectiveOp, target: Node, key: str) -> str:
    """:return: Why the directive may not set the attribute, or an empty string if it may."""
    kind = _KIND_NAMES[type(target)]

    if key in _STRUCTURAL_KEYS:
        return f"'{key}' of a {kind} cannot be changed by an overlay"

    if op is DirectiveOp.ANNOTATE:
        if key == "desc":
            return ""
        if isinstance(target, EnumType) or key in _ALL_KNOWN_KEYS:
            return f"annotate can only set 'desc' or metadata, not '{key}' (use override)"
        return ""

    if isinstance(target, EnumType):
        return ""

    if key in _ALL_KNOWN_KEYS and key not in _KNOWN_KEYS[type(target)]:
        return f"'{key}' is not an attribute of a {kind}"

    return ""


def merge_overlays(space: AddressSpace, documents: Iterable[Document], options: Options) -> None:
    """
    Apply overlay documents to the address space in place.

    Every directive is attempted, even after an earlier one failed.

    :param space: Address space built from the base documents.
    :param documents: Syntax trees of the overlay source units, in load order.
    :param options: Generation options.
    :raises RdlMergeError: With every directive that could not be applied.
    """
    merger = OverlayMerger(space, options)
    merger.merge(documents)

    if merger.errors:
        raise RdlMergeError(merger.errors)

    rdlgen.log.info(f"Merged overlays into {space!r}")
