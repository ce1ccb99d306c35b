"""RFC 8941 Structured Field Values: parsing and serialization.

Only what HTTP Message Signatures need: Dictionaries, Lists, Items, Inner
Lists and Parameters with integer, decimal, string, token, byte-sequence
and boolean bare items. Any syntax error raises TokenFormatError.
"""

import base64
import binascii
import re
import string
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from evp.core.errors import TokenFormatError

_LCALPHA = frozenset(string.ascii_lowercase)
_DIGITS = frozenset(string.digits)
_ALPHA = frozenset(string.ascii_letters)
_KEY_CHARS = _LCALPHA | frozenset(string.digits) | frozenset("_-.*")
_TCHAR = frozenset(string.ascii_letters + string.digits + "!#$%&'*+-.^_`|~")
_TOKEN_CHARS = _TCHAR | frozenset(":/")
_BASE64_CHARS = frozenset(string.ascii_letters + string.digits + "+/=")
_TOKEN_RE = re.compile(r"^[A-Za-z*][!#$%&'*+\-.^_`|~0-9A-Za-z:/]*$")
_KEY_RE = re.compile(r"^[a-z*][a-z0-9_\-.*]*$")

MAX_INTEGER = 999_999_999_999_999


class Token(str):
    """An sf-token, kept distinct from an sf-string."""

    __slots__ = ()


@dataclass
class Item:
    value: Any
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class InnerList:
    items: list[Item] = field(default_factory=list)
    params: dict[str, Any] = field(default_factory=dict)


Member = Item | InnerList


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def fail(self, reason: str) -> TokenFormatError:
        return TokenFormatError(f"Invalid structured field at offset {self.pos}: {reason}")

    @property
    def done(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self) -> str:
        return self.text[self.pos] if not self.done else ""

    def take(self) -> str:
        char = self.peek()
        self.pos += 1
        return char

    def skip_sp(self) -> None:
        while self.peek() == " ":
            self.pos += 1

    def skip_ows(self) -> None:
        while self.peek() in (" ", "\t") and not self.done:
            self.pos += 1

    def parse_key(self) -> str:
        if self.peek() not in _LCALPHA and self.peek() != "*":
            raise self.fail("key must start with lcalpha or '*'")
        start = self.pos
        while not self.done and self.peek() in _KEY_CHARS:
            self.pos += 1
        return self.text[start : self.pos]

    def parse_parameters(self) -> dict[str, Any]:
        params: dict[str, Any] = {}
        while self.peek() == ";":
            self.pos += 1
            self.skip_sp()
            key = self.parse_key()
            value: Any = True
            if self.peek() == "=":
                self.pos += 1
                value = self.parse_bare_item()
            params[key] = value
        return params

    def parse_item(self) -> Item:
        value = self.parse_bare_item()
        return Item(value, self.parse_parameters())

    def parse_item_or_inner_list(self) -> Member:
        if self.peek() == "(":
            return self.parse_inner_list()
        return self.parse_item()

    def parse_inner_list(self) -> InnerList:
        self.pos += 1
        items: list[Item] = []
        while not self.done:
            self.skip_sp()
            if self.peek() == ")":
                self.pos += 1
                return InnerList(items, self.parse_parameters())
            items.append(self.parse_item())
            if self.peek() not in (" ", ")"):
                raise self.fail("inner list items must be separated by a space")
        raise self.fail("unterminated inner list")

    def parse_bare_item(self) -> Any:
        char = self.peek()
        if char == "-" or char in _DIGITS:
            return self.parse_number()
        if char == '"':
            return self.parse_string()
        if char == "*" or char in _ALPHA:
            return self.parse_token()
        if char == ":":
            return self.parse_byte_sequence()
        if char == "?":
            return self.parse_boolean()
        raise self.fail(f"unexpected character {char!r}")

    def parse_number(self) -> int | Decimal:
        start = self.pos
        if self.peek() == "-":
            self.pos += 1
        if self.peek() not in _DIGITS:
            raise self.fail("number must contain a digit")
        is_decimal = False
        while not self.done:
            char = self.peek()
            if char in _DIGITS:
                self.pos += 1
            elif char == "." and not is_decimal:
                if self.pos - start > 12 + (self.text[start] == "-"):
                    raise self.fail("decimal integer part too long")
                is_decimal = True
                self.pos += 1
            else:
                break
            if not is_decimal and self.pos - start > 15 + (self.text[start] == "-"):
                raise self.fail("integer too long")
            if is_decimal and self.pos - start > 16 + (self.text[start] == "-"):
                raise self.fail("decimal too long")
        literal = self.text[start : self.pos]
        if not is_decimal:
            return int(literal)
        if literal.endswith("."):
            raise self.fail("decimal must not end with '.'")
        if len(literal.split(".")[1]) > 3:
            raise self.fail("decimal fraction too long")
        return Decimal(literal)

    def parse_string(self) -> str:
        self.pos += 1
        chars: list[str] = []
        while not self.done:
            char = self.take()
            if char == "\\":
                if self.done:
                    raise self.fail("dangling escape in string")
                escaped = self.take()
                if escaped not in ('"', "\\"):
                    raise self.fail("invalid escape in string")
                chars.append(escaped)
            elif char == '"':
                return "".join(chars)
            elif not 0x20 <= ord(char) <= 0x7E:
                raise self.fail("invalid character in string")
            else:
                chars.append(char)
        raise self.fail("unterminated string")

    def parse_token(self) -> Token:
        start = self.pos
        self.pos += 1
        while not self.done and self.peek() in _TOKEN_CHARS:
            self.pos += 1
        return Token(self.text[start : self.pos])

    def parse_byte_sequence(self) -> bytes:
        self.pos += 1
        end = self.text.find(":", self.pos)
        if end == -1:
            raise self.fail("unterminated byte sequence")
        encoded = self.text[self.pos : end]
        if any(char not in _BASE64_CHARS for char in encoded):
            raise self.fail("invalid base64 in byte sequence")
        self.pos = end + 1
        try:
            return base64.b64decode(encoded + "=" * (-len(encoded) % 4), validate=True)
        except binascii.Error as exc:
            raise self.fail(f"invalid base64 in byte sequence ({exc})") from exc

    def parse_boolean(self) -> bool:
        self.pos += 1
        char = self.take()
        if char == "1":
            return True
        if char == "0":
            return False
        raise self.fail("boolean must be ?0 or ?1")


def _check_empty(text: str) -> _Parser:
    parser = _Parser(text.strip(" \t"))
    if parser.done:
        raise TokenFormatError("Invalid structured field: empty value")
    return parser


def parse_dictionary(text: str) -> dict[str, Member]:
    """Parse an sf-dictionary; later duplicate keys overwrite earlier ones."""
    parser = _check_empty(text)
    members: dict[str, Member] = {}
    while not parser.done:
        key = parser.parse_key()
        if parser.peek() == "=":
            parser.pos += 1
            members[key] = parser.parse_item_or_inner_list()
        else:
            members[key] = Item(True, parser.parse_parameters())
        parser.skip_ows()
        if parser.done:
            break
        if parser.take() != ",":
            raise parser.fail("expected ',' between dictionary members")
        parser.skip_ows()
        if parser.done:
            raise parser.fail("trailing comma")
    return members


def parse_list(text: str) -> list[Member]:
    parser = _check_empty(text)
    members: list[Member] = []
    while not parser.done:
        members.append(parser.parse_item_or_inner_list())
        parser.skip_ows()
        if parser.done:
            break
        if parser.take() != ",":
            raise parser.fail("expected ',' between list members")
        parser.skip_ows()
        if parser.done:
            raise parser.fail("trailing comma")
    return members


def parse_item(text: str) -> Item:
    parser = _check_empty(text)
    item = parser.parse_item()
    if not parser.done:
        raise parser.fail("trailing characters after item")
    return item


def serialize_bare_item(value: Any) -> str:
    if isinstance(value, bool):
        return "?1" if value else "?0"
    if isinstance(value, int):
        if abs(value) > MAX_INTEGER:
            raise TokenFormatError(f"Integer out of range: {value}")
        return str(value)
    if isinstance(value, Decimal | float):
        rounded = Decimal(value).quantize(Decimal("0.001"))
        text = format(rounded, "f").rstrip("0")
        return text + "0" if text.endswith(".") else text
    if isinstance(value, Token):
        if not _TOKEN_RE.match(value):
            raise TokenFormatError(f"Invalid token: {value!r}")
        return str(value)
    if isinstance(value, str):
        if any(not 0x20 <= ord(char) <= 0x7E for char in value):
            raise TokenFormatError("Strings must be printable ASCII")
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    if isinstance(value, bytes):
        return f":{base64.b64encode(value).decode('ascii')}:"
    raise TokenFormatError(f"Cannot serialize {type(value).__name__} as a structured field")


def serialize_parameters(params: dict[str, Any]) -> str:
    parts = []
    for key, value in params.items():
        if not _KEY_RE.match(key):
            raise TokenFormatError(f"Invalid parameter key: {key!r}")
        parts.append(f";{key}" if value is True else f";{key}={serialize_bare_item(value)}")
    return "".join(parts)


def serialize_member(member: Member) -> str:
    if isinstance(member, InnerList):
        inner = " ".join(serialize_member(item) for item in member.items)
        return f"({inner}){serialize_parameters(member.params)}"
    return serialize_bare_item(member.value) + serialize_parameters(member.params)


def serialize_dictionary(members: dict[str, Member]) -> str:
    parts = []
    for key, member in members.items():
        if not _KEY_RE.match(key):
            raise TokenFormatError(f"Invalid dictionary key: {key!r}")
        if isinstance(member, Item) and member.value is True:
            parts.append(key + serialize_parameters(member.params))
        else:
            parts.append(f"{key}={serialize_member(member)}")
    return ", ".join(parts)
