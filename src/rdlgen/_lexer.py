# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Tokenizer for the register-description dialect. Internal to the syntax module.
"""

from __future__ import annotations

import enum
import re
from typing import Iterator, List, NamedTuple, Optional, Union

from .errors import RdlSyntaxError
from .issues import Location


@enum.unique
class TokenKind(enum.Enum):
    NUMBER = "number"
    STRING = "string"
    WORD = "word"
    PUNCT = "punctuation"
    EOF = "end of file"


class Number(NamedTuple):
    """Numeric literal, with the bit width given in the source if any."""

    value: int
    width: Optional[int] = None


class Token(NamedTuple):
    kind: TokenKind
    text: str
    location: Location
    value: Union[None, str, Number] = None

    def describe(self) -> str:
        """Short description of the token used in syntax error messages."""
        if self.kind is TokenKind.EOF:
            return "end of file"
        return f"'{self.text}'"


_SIZED_BASES = {"h": 16, "b": 2, "d": 10, "o": 8}
_PREFIXED_BASES = {"0x": 16, "0b": 2, "0o": 8}

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>[ \t\r\f\v]+)
    |(?P<newline>\n)
    |(?P<line_comment>//[^\n]*)
    |(?P<block_comment>/\*)
    |(?P<sized>(?P<sized_width>[0-9]+)'(?P<sized_base>[hHbBdDoO])(?P<sized_digits>[0-9a-fA-F_]+))
    |(?P<number>(?P<digits>0[xX][0-9a-fA-F_]+|0[bB][01_]+|0[oO][0-7_]+|[0-9][0-9_]*)
        (?:u(?P<suffix_width>[0-9]+))?)
    |(?P<string>"(?:[^"\\\n]|\\.)*")
    |(?P<word>[A-Za-z_][A-Za-z0-9_]*(?:-[A-Za-z0-9_]+)*)
    |(?P<punct>\+=|[{}\[\];,=:@.])
    """,
    re.VERBOSE,
)

_IDENT_CHAR_RE = re.compile(r"[A-Za-z0-9_']")

_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"'}


def _unescape(body: str) -> str:
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m[1], m[1]), body)


def _digits_value(digits: str, base: int, location: Location) -> int:
    try:
        return int(digits.replace("_", ""), base)
    except ValueError:
        raise RdlSyntaxError(location, f"base-{base} digits", f"'{digits}'") from None


def _number(match: re.Match, location: Location) -> Number:
    """Decode a numeric literal match, checking that the value fits the given width."""
    if match["sized"] is not None:
        width = int(match["sized_width"])
        base = _SIZED_BASES[match["sized_base"].lower()]
        value = _digits_value(match["sized_digits"], base, location)
    else:
        digits = match["digits"]
        base = _PREFIXED_BASES.get(digits[:2].lower(), 10)
        value = _digits_value(digits[2:] if base != 10 else digits, base, location)
        width = int(match["suffix_width"]) if match["suffix_width"] else None

    if width is not None:
        if width == 0:
            raise RdlSyntaxError(location, "a nonzero literal width", "width 0")
        if value.bit_length() > width:
            raise RdlSyntaxError(
                location,
                f"a value that fits in {width} bits",
                f"{match[0]} ({value:#x})",
            )

    return Number(value, width)


def tokenize(text: str, unit: str) -> Iterator[Token]:
    """
    Split source text into tokens. Whitespace and comments are dropped.

    :param text: Source text.
    :param unit: Identifier of the source unit, used in token locations.
    :raises RdlSyntaxError: If the text contains an invalid token.
    :return: Iterator over the tokens, terminated by an EOF token.
    """
    pos = 0
    line = 1
    line_start = 0
    end = len(text)

    while pos < end:
        location = Location(unit, line, pos - line_start + 1)
        match = _TOKEN_RE.match(text, pos)

        if match is None:
            raise RdlSyntaxError(location, "a token", repr(text[pos]))

        kind = match.lastgroup
        token_text = match[0]
        pos = match.end()

        if kind == "newline":
            line += 1
            line_start = pos
            continue

        if kind in ("ws", "line_comment"):
            continue

        if kind == "block_comment":
            close = text.find("*/", pos)
            if close < 0:
                raise RdlSyntaxError(location, "'*/' closing the comment", "end of file")
            comment = text[pos:close]
            newlines = comment.count("\n")
            if newlines:
                line += newlines
                line_start = pos + comment.rfind("\n") + 1
            pos = close + 2
            continue

        if kind in ("sized", "number"):
            if pos < end and _IDENT_CHAR_RE.match(text, pos):
                raise RdlSyntaxError(
                    location, "a number", repr(token_text + text[pos])
                )
            yield Token(TokenKind.NUMBER, token_text, location, _number(match, location))
        elif kind == "string":
            yield Token(TokenKind.STRING, token_text, location, _unescape(token_text[1:-1]))
        elif kind == "word":
            yield Token(TokenKind.WORD, token_text, location, token_text)
        else:
            yield Token(TokenKind.PUNCT, token_text, location, token_text)

    yield Token(TokenKind.EOF, "", Location(unit, line, pos - line_start + 1))


def tokenize_all(text: str, unit: str) -> List[Token]:
    """Tokenize the whole text up front."""
    return list(tokenize(text, unit))
