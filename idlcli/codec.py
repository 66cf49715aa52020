"""Typed parsing of CLI tokens and canonical serialization of argument values."""

from __future__ import annotations

from dataclasses import dataclass
import string
import struct
from typing import Any, List, Optional

from solders.pubkey import Pubkey

from .constants import ACCOUNT_ID_SIZE, OPTION_NONE_TOKEN, U32_MAX, VEC_ELEMENT_SIZE
from .errors import ArgumentOverflow, InvalidFormat
from .schema import (
    FixedBytes,
    FixedU32Array,
    IdlType,
    OptionType,
    UInt,
    VecFixedBytes32,
    type_display,
)

_HEX_DIGITS = frozenset(string.hexdigits)


@dataclass(frozen=True)
class Value:
    """A parsed argument together with the type it was parsed as.

    ``data`` is an ``int`` for integers, ``bytes`` for fixed byte arrays, a
    tuple of ints for u32 arrays, a tuple of 32-byte ``bytes`` for byte-array
    vectors, and ``None`` or a nested :class:`Value` for options.
    """

    type: IdlType
    data: Any

    @property
    def present(self) -> bool:
        return self.data is not None

    def __str__(self) -> str:
        return format_value(self)


def is_hex(text: str) -> bool:
    return bool(text) and all(c in _HEX_DIGITS for c in text)


def hex_encode(data: bytes) -> str:
    return data.hex()


def _strip_0x(text: str) -> str:
    if text.startswith(("0x", "0X")):
        return text[2:]
    return text


def decode_bytes32(token: str) -> bytes:
    """Decode a 32-byte identifier from 64 hex chars (optional 0x) or base58."""
    text = token.strip()
    hex_text = _strip_0x(text)
    if len(hex_text) == ACCOUNT_ID_SIZE * 2 and is_hex(hex_text):
        return bytes.fromhex(hex_text)
    try:
        return bytes(Pubkey.from_string(text))
    except Exception as exc:  # noqa: BLE001
        raise InvalidFormat(
            f"'{token}' is not 64 hex chars or a base58 32-byte value",
            token=token,
            expected="64 hex chars or base58",
        ) from exc


def encode_base58(data: bytes) -> str:
    return str(Pubkey.from_bytes(data))


def _exceeds(digits: str, max_value: int) -> bool:
    # int() rejects digit strings longer than sys.get_int_max_str_digits().
    significant = digits.lstrip("0")
    if len(significant) > len(str(max_value)):
        return True
    return int(significant or "0", 10) > max_value


def _parse_uint(token: str, ty: UInt) -> Value:
    text = token.strip()
    if not text.isdigit() or not text.isascii():
        raise InvalidFormat(f"Invalid u{ty.bits} '{token}'", token=token, expected="decimal number")
    if _exceeds(text, ty.max_value):
        raise ArgumentOverflow(
            f"Value '{token}' overflows u{ty.bits}",
            token=token,
            expected=f"0..={ty.max_value}",
        )
    return Value(ty, int(text.lstrip("0") or "0", 10))


def _parse_fixed_bytes(token: str, ty: FixedBytes) -> Value:
    if len(token) == ty.size * 2 and is_hex(token):
        return Value(ty, bytes.fromhex(token))
    raw = token.encode("utf-8")
    if len(raw) > ty.size:
        raise InvalidFormat(
            f"String '{token}' is {len(raw)} bytes, max {ty.size} for [u8; {ty.size}]",
            token=token,
            expected=f"{ty.size * 2} hex chars or <= {ty.size} bytes of text",
        )
    return Value(ty, raw.ljust(ty.size, b"\x00"))


def _parse_u32_array(token: str, ty: FixedU32Array) -> Value:
    expected = f"{ty.count} comma-separated u32 values"
    parts = [p.strip() for p in token.split(",")]
    if len(parts) != ty.count:
        raise InvalidFormat(
            f"Expected {ty.count} u32 values, got {len(parts)}", token=token, expected=expected
        )
    values: List[int] = []
    for idx, part in enumerate(parts):
        if not part.isdigit() or not part.isascii() or _exceeds(part, U32_MAX):
            raise InvalidFormat(f"Element [{idx}]: invalid u32 '{part}'", token=token, expected=expected)
        values.append(int(part.lstrip("0") or "0", 10))
    return Value(ty, tuple(values))


def _parse_vec_bytes32(token: str, ty: VecFixedBytes32) -> Value:
    if not token.strip():
        return Value(ty, ())
    elements: List[bytes] = []
    for idx, part in enumerate(p.strip() for p in token.split(",")):
        try:
            elements.append(decode_bytes32(part))
        except InvalidFormat as exc:
            raise InvalidFormat(
                f"Element [{idx}]: {exc.args[0]}",
                token=token,
                expected=f"comma-separated {VEC_ELEMENT_SIZE}-byte hex or base58 values",
            ) from exc
    return Value(ty, tuple(elements))


def parse(token: str, ty: IdlType) -> Value:
    """Parse one CLI token according to ``ty``."""
    if isinstance(ty, UInt):
        return _parse_uint(token, ty)
    if isinstance(ty, FixedBytes):
        return _parse_fixed_bytes(token, ty)
    if isinstance(ty, FixedU32Array):
        return _parse_u32_array(token, ty)
    if isinstance(ty, VecFixedBytes32):
        return _parse_vec_bytes32(token, ty)
    if isinstance(ty, OptionType):
        if token == OPTION_NONE_TOKEN:
            return Value(ty, None)
        return Value(ty, parse(token, ty.inner))
    raise TypeError(f"unknown IDL type: {ty!r}")


def serialize(value: Value) -> bytes:
    """Canonical little-endian, fixed-width byte encoding of ``value``."""
    ty = value.type
    if isinstance(ty, UInt):
        return int(value.data).to_bytes(ty.size, "little")
    if isinstance(ty, FixedBytes):
        return bytes(value.data)
    if isinstance(ty, FixedU32Array):
        return struct.pack(f"<{ty.count}I", *value.data)
    if isinstance(ty, VecFixedBytes32):
        return struct.pack("<I", len(value.data)) + b"".join(value.data)
    if isinstance(ty, OptionType):
        if value.data is None:
            return b"\x00"
        return b"\x01" + serialize(value.data)
    raise TypeError(f"unknown IDL type: {ty!r}")


def serialize_words(value: Value) -> List[int]:
    """Word-stream (risc0 serde) encoding consumed by the on-ledger executor."""
    ty = value.type
    if isinstance(ty, UInt):
        if ty.bits <= 32:
            return [int(value.data)]
        raw = int(value.data).to_bytes(ty.size, "little")
        return list(struct.unpack(f"<{ty.size // 4}I", raw))
    if isinstance(ty, FixedBytes):
        return list(value.data)
    if isinstance(ty, FixedU32Array):
        return list(value.data)
    if isinstance(ty, VecFixedBytes32):
        out = [len(value.data)]
        for element in value.data:
            out.extend(element)
        return out
    if isinstance(ty, OptionType):
        if value.data is None:
            return [0]
        return [1] + serialize_words(value.data)
    raise TypeError(f"unknown IDL type: {ty!r}")


def words_to_bytes(words: List[int]) -> bytes:
    return struct.pack(f"<{len(words)}I", *words)


def _printable(data: bytes) -> Optional[str]:
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return None
    trimmed = text.rstrip("\x00")
    if all(c == " " or (c.isprintable() and c.isascii() and not c.isspace()) for c in trimmed):
        return trimmed
    return None


def format_value(value: Value) -> str:
    ty = value.type
    if isinstance(ty, UInt):
        return str(value.data)
    if isinstance(ty, FixedBytes):
        text = _printable(value.data)
        if text:
            return f'"{text}" (hex: {hex_encode(value.data)})'
        return f"0x{hex_encode(value.data)}"
    if isinstance(ty, FixedU32Array):
        return "[" + ", ".join(str(v) for v in value.data) + "]"
    if isinstance(ty, VecFixedBytes32):
        return "[" + ", ".join(f"0x{hex_encode(v)}" for v in value.data) + "]"
    if isinstance(ty, OptionType):
        if value.data is None:
            return "None"
        return f"Some({format_value(value.data)})"
    raise TypeError(f"unknown IDL type: {type_display(ty)}")
