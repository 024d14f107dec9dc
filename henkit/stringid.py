"""64-bit string identifiers (FNV-1a style hashes) for narrow and wide strings."""

from __future__ import annotations

OFFSET_BASIS = 0xCBF29CE484222325
PRIME = 0x100000001B3
_MASK64 = (1 << 64) - 1


def _fold(units: list[int]) -> int:
    value = OFFSET_BASIS
    for unit in units:
        if unit == 0:
            break
        value = (PRIME * (value ^ (unit & _MASK64))) & _MASK64
    return value


def string_id64(text: str | bytes | bytearray) -> int:
    """Hash a narrow string; text is taken as UTF-8 and stops at the first NUL.

    Bytes with the high bit set count as signed characters, so they are
    sign-extended before mixing.
    """
    if isinstance(text, str):
        raw = text.encode("utf-8")
    elif isinstance(text, (bytes, bytearray)):
        raw = bytes(text)
    else:
        raise TypeError(f"expected str or bytes, got {type(text).__name__}")
    return _fold([b - 0x100 if b >= 0x80 else b for b in raw])


def wide_string_id64(text: str) -> int:
    """Hash a wide string, one code point per unit, stopping at the first NUL."""
    if not isinstance(text, str):
        raise TypeError(f"expected str, got {type(text).__name__}")
    return _fold([ord(ch) for ch in text])


__all__ = ["OFFSET_BASIS", "PRIME", "string_id64", "wide_string_id64"]