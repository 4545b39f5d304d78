# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Abstract syntax tree and parser for the register-description dialect.

The tree uses a single tagged node type for all declaration scopes (peripheral, block, register,
field and enum). Each scope only carries the header items that are valid for its kind; everything
else is expressed as key-value attributes that are interpreted by the model builder.

Example:

    peripheral UART @ 0x1000 {
        desc = "Serial port";
        register CTRL @ 0x0 {
            width = 32;
            reset = 32'h0;
            field ENABLE[0] { access = rw; }
            field MODE[3:1] { values = { IDLE = 0, RUN = 1 }; }
        }
    }

Overlay files may additionally contain directives:

    override UART.CTRL.ENABLE.access = read-only;
    annotate UART.CTRL { desc = "Control register"; }
    extend UART.CTRL { field PARITY[5:4] { access = rw; } }
"""

from __future__ import annotations

import enum
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

from ._lexer import Number, Token, TokenKind, tokenize_all
from .errors import RdlSyntaxError
from .issues import Location
from .loader import Origin, SourceUnit
from .path import NodePath


@enum.unique
class ScopeKind(enum.Enum):
    PERIPHERAL = "peripheral"
    BLOCK = "block"
    REGISTER = "register"
    FIELD = "field"
    ENUM = "enum"


# Keywords accepted for each scope kind
_SCOPE_KEYWORDS: Dict[str, ScopeKind] = {
    "peripheral": ScopeKind.PERIPHERAL,
    "block": ScopeKind.BLOCK,
    "register": ScopeKind.REGISTER,
    "reg": ScopeKind.REGISTER,
    "field": ScopeKind.FIELD,
    "enum": ScopeKind.ENUM,
}

# Scope kinds that may be declared inside a scope of a given kind. None is the file level.
_ALLOWED_CHILDREN: Dict[Optional[ScopeKind], Tuple[ScopeKind, ...]] = {
    None: (ScopeKind.PERIPHERAL, ScopeKind.ENUM),
    ScopeKind.PERIPHERAL: (ScopeKind.BLOCK, ScopeKind.REGISTER, ScopeKind.ENUM),
    ScopeKind.BLOCK: (ScopeKind.BLOCK, ScopeKind.REGISTER, ScopeKind.ENUM),
    ScopeKind.REGISTER: (ScopeKind.FIELD,),
    ScopeKind.FIELD: (),
    ScopeKind.ENUM: (),
}


@enum.unique
class DirectiveOp(enum.Enum):
    EXTEND = "extend"
    OVERRIDE = "override"
    ANNOTATE = "annotate"


_DIRECTIVE_KEYWORDS = frozenset(op.value for op in DirectiveOp)

# Scope kinds that an extend directive may add to an existing element
_EXTEND_CHILDREN = (ScopeKind.BLOCK, ScopeKind.REGISTER, ScopeKind.FIELD, ScopeKind.ENUM)


class Word(str):
    """Bare identifier used as an attribute value, e.g. an access mode or an enum name."""

    __slots__ = ()


@dataclass(frozen=True)
class BitSpec:
    """Inclusive bit range as written in the source (high:low)."""

    high: int
    low: int


# Attribute values. Mappings are inline enumerations (name -> number).
Value = Union[Number, str, Word, bool, BitSpec, List["Value"], Dict[str, Number]]


@dataclass
class Attribute:
    key: str
    value: Value
    location: Location


@dataclass
class Scope:
    """A named declaration scope."""

    kind: ScopeKind
    name: str
    location: Location
    bits: Optional[BitSpec] = None
    offset: Optional[int] = None
    count: Optional[int] = None
    stride: Optional[int] = None
    attributes: List[Attribute] = field(default_factory=list)
    children: List[Scope] = field(default_factory=list)


@dataclass
class Directive:
    """Overlay statement applying an operation to the element with the target qualified name."""

    op: DirectiveOp
    target: NodePath
    location: Location
    attributes: List[Attribute] = field(default_factory=list)
    children: List[Scope] = field(default_factory=list)


@dataclass
class Document:
    """Syntax tree of one source unit. Items are kept in declaration order."""

    unit: str
    origin: Origin
    items: List[Union[Scope, Directive]] = field(default_factory=list)

    @property
    def scopes(self) -> List[Scope]:
        return [i for i in self.items if isinstance(i, Scope)]

    @property
    def directives(self) -> List[Directive]:
        return [i for i in self.items if isinstance(i, Directive)]


class _Parser:
    """Recursive descent parser over a token list."""

    def __init__(self, tokens: Sequence[Token], allow_directives: bool) -> None:
        self._tokens = tokens
        self._pos = 0
        self._allow_directives = allow_directives

    def _peek(self, ahead: int = 0) -> Token:
        return self._tokens[min(self._pos + ahead, len(self._tokens) - 1)]

    def _next(self) -> Token:
        token = self._peek()
        if token.kind is not TokenKind.EOF:
            self._pos += 1
        return token

    def _is_punct(self, text: str, ahead: int = 0) -> bool:
        token = self._peek(ahead)
        return token.kind is TokenKind.PUNCT and token.text == text

    def _accept(self, text: str) -> bool:
        if self._is_punct(text):
            self._pos += 1
            return True
        return False

    def _expect_punct(self, text: str) -> Token:
        token = self._next()
        if token.kind is not TokenKind.PUNCT or token.text != text:
            raise RdlSyntaxError(token.location, f"'{text}'", token.describe())
        return token

    def _expect_word(self, what: str = "a name") -> Token:
        token = self._next()
        if token.kind is not TokenKind.WORD or "-" in token.text:
            raise RdlSyntaxError(token.location, what, token.describe())
        return token

    def _expect_number(self, what: str = "a number") -> Number:
        token = self._next()
        if token.kind is not TokenKind.NUMBER:
            raise RdlSyntaxError(token.location, what, token.describe())
        assert isinstance(token.value, Number)
        return token.value

    def parse_items(self, unit: str, origin: Origin) -> Document:
        document = Document(unit=unit, origin=origin)

        while self._peek().kind is not TokenKind.EOF:
            token = self._peek()
            if token.kind is TokenKind.WORD and token.text in _DIRECTIVE_KEYWORDS:
                if not self._allow_directives:
                    raise RdlSyntaxError(
                        token.location,
                        "a peripheral or enum declaration "
                        "(directives are only allowed in overlay files)",
                        token.describe(),
                    )
                document.items.append(self._directive())
            else:
                document.items.append(self._scope(parent_kind=None))

        return document

    def _scope_keyword(
        self, parent_kind: Optional[ScopeKind], allowed: Tuple[ScopeKind, ...]
    ) -> Tuple[ScopeKind, Token]:
        token = self._next()
        kind = _SCOPE_KEYWORDS.get(token.text) if token.kind is TokenKind.WORD else None

        if kind is None or kind not in allowed:
            expected = " or ".join(f"'{k.value}'" for k in allowed)
            if parent_kind is not None:
                expected = f"an attribute or {expected}" if expected else "an attribute"
            if self._allow_directives and allowed is _ALLOWED_CHILDREN[None]:
                expected += " or a directive"
            raise RdlSyntaxError(token.location, expected, token.describe())

        return kind, token

    def _scope(
        self,
        parent_kind: Optional[ScopeKind],
        allowed: Optional[Tuple[ScopeKind, ...]] = None,
    ) -> Scope:
        if allowed is None:
            allowed = _ALLOWED_CHILDREN[parent_kind]
        kind, keyword = self._scope_keyword(parent_kind, allowed)
        name = self._expect_word()
        scope = Scope(kind=kind, name=name.text, location=keyword.location)

        if self._is_punct("["):
            if kind is ScopeKind.FIELD:
                scope.bits = self._bit_spec()
            elif kind is ScopeKind.BLOCK:
                self._next()
                scope.count = self._expect_number("a replication count").value
                self._expect_punct("]")
            else:
                raise RdlSyntaxError(self._peek().location, "'{'", "'['")

        if kind in (ScopeKind.PERIPHERAL, ScopeKind.BLOCK, ScopeKind.REGISTER):
            if self._accept("@"):
                scope.offset = self._expect_number("an address").value

        if kind is ScopeKind.BLOCK and self._accept("+="):
            scope.stride = self._expect_number("a stride").value

        self._body(scope.kind, scope.attributes, scope.children)
        return scope

    def _body(
        self,
        kind: Optional[ScopeKind],
        attributes: List[Attribute],
        children: List[Scope],
    ) -> None:
        self._expect_punct("{")

        while not self._is_punct("}"):
            token = self._peek()
            if token.kind is TokenKind.EOF:
                raise RdlSyntaxError(token.location, "'}'", token.describe())
            if token.kind is TokenKind.WORD and self._is_punct("=", ahead=1):
                attributes.append(self._attribute())
            else:
                children.append(self._scope(parent_kind=kind))

        self._expect_punct("}")
        self._accept(";")

    def _attribute(self) -> Attribute:
        key = self._expect_word("an attribute name")
        self._expect_punct("=")
        value = self._value()
        self._expect_punct(";")
        return Attribute(key=key.text, value=value, location=key.location)

    def _bit_spec(self) -> BitSpec:
        self._expect_punct("[")
        high = self._expect_number("a bit index").value
        low = high
        if self._accept(":"):
            low = self._expect_number("a bit index").value
        self._expect_punct("]")
        return BitSpec(high=high, low=low)

    def _value(self) -> Value:
        token = self._peek()

        if token.kind is TokenKind.NUMBER:
            self._next()
            assert isinstance(token.value, Number)
            return token.value

        if token.kind is TokenKind.STRING:
            self._next()
            assert isinstance(token.value, str)
            return token.value

        if token.kind is TokenKind.WORD:
            self._next()
            if token.text == "true":
                return True
            if token.text == "false":
                return False
            return Word(token.text)

        if self._is_punct("["):
            if self._peek(1).kind is TokenKind.NUMBER and self._is_punct(":", ahead=2):
                return self._bit_spec()
            return self._list()

        if self._is_punct("{"):
            return self._mapping()

        raise RdlSyntaxError(token.location, "a value", token.describe())

    def _list(self) -> List[Value]:
        self._expect_punct("[")
        items: List[Value] = []

        while not self._is_punct("]"):
            items.append(self._value())
            if not self._accept(","):
                break

        self._expect_punct("]")
        return items

    def _mapping(self) -> Dict[str, Number]:
        self._expect_punct("{")
        items: Dict[str, Number] = {}

        while not self._is_punct("}"):
            name = self._expect_word("an enumerator name")
            if name.text in items:
                raise RdlSyntaxError(
                    name.location, "a unique enumerator name", name.describe()
                )
            self._expect_punct("=")
            items[name.text] = self._expect_number("an enumerator value")
            if not self._accept(","):
                break

        self._expect_punct("}")
        return items

    def _path(self) -> Tuple[List[str], Token]:
        first = self._expect_word("a qualified name")
        parts = [first.text]
        while self._accept("."):
            parts.append(self._expect_word("a name").text)
        return parts, first

    def _directive(self) -> Directive:
        keyword = self._next()
        op = DirectiveOp(keyword.text)
        parts, first = self._path()

        if self._accept("="):
            if op is DirectiveOp.EXTEND:
                raise RdlSyntaxError(self._peek().location, "'{'", "'='")
            if len(parts) < 2:
                raise RdlSyntaxError(
                    first.location, "a qualified name followed by an attribute", first.describe()
                )
            value = self._value()
            self._expect_punct(";")
            directive = Directive(op=op, target=NodePath(parts[:-1]), location=keyword.location)
            directive.attributes.append(
                Attribute(key=parts[-1], value=value, location=first.location)
            )
            return directive

        directive = Directive(op=op, target=NodePath(parts), location=keyword.location)
        # Directive bodies hold the attributes to apply and, for extend, the new child scopes.
        # The kind of the children is checked against the target when the directive is merged.
        self._directive_body(directive)
        return directive

    def _directive_body(self, directive: Directive) -> None:
        self._expect_punct("{")

        while not self._is_punct("}"):
            token = self._peek()
            if token.kind is TokenKind.EOF:
                raise RdlSyntaxError(token.location, "'}'", token.describe())
            if token.kind is TokenKind.WORD and self._is_punct("=", ahead=1):
                directive.attributes.append(self._attribute())
            elif directive.op is DirectiveOp.EXTEND:
                directive.children.append(
                    self._scope(parent_kind=None, allowed=_EXTEND_CHILDREN)
                )
            else:
                raise RdlSyntaxError(
                    token.location,
                    f"an attribute ('{directive.op.value}' cannot declare new elements)",
                    token.describe(),
                )

        self._expect_punct("}")
        self._accept(";")


def parse_text(text: str, unit: str, origin: Origin = Origin.BASE) -> Document:
    """
    Parse register-description text.

    :param text: Source text.
    :param unit: Identifier of the source unit, used in diagnostics.
    :param origin: Whether the text is a base or overlay description.
    :raises RdlSyntaxError: If the text violates the grammar.
    :return: The syntax tree of the text.
    """
    tokens = tokenize_all(text, unit)
    parser = _Parser(tokens, allow_directives=origin is Origin.OVERLAY)
    return parser.parse_items(unit, origin)


def parse_unit(unit: SourceUnit) -> Document:
    """Parse a single source unit. See parse_text()."""
    return parse_text(unit.text, unit.identifier, unit.origin)


def parse_units(
    units: Sequence[SourceUnit], jobs: int = 1
) -> Tuple[List[Document], List[RdlSyntaxError]]:
    """
    Parse several source units. A malformed unit does not prevent the others from being parsed.

    :param units: Source units to parse.
    :param jobs: Number of worker threads to use.
    :return: Documents of the units that parsed successfully, in input order, and the syntax
             errors of the units that did not.
    """

    def _parse(unit: SourceUnit) -> Union[Document, RdlSyntaxError]:
        try:
            return parse_unit(unit)
        except RdlSyntaxError as e:
            return e

    if jobs > 1 and len(units) > 1:
        with ThreadPoolExecutor(max_workers=jobs) as executor:
            results = list(executor.map(_parse, units))
    else:
        results = [_parse(u) for u in units]

    documents = [r for r in results if isinstance(r, Document)]
    errors = [r for r in results if isinstance(r, RdlSyntaxError)]

    return documents, errors
