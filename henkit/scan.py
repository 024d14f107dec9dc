"""Byte-pattern scanning, jump encoding and prologue-hook caves over memory images."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

from henkit.hde64 import instruction_size

MAX_PATTERN_LENGTH = 512
JUMP32_SIZE = 5
JMP_STUB = bytes((0xFF, 0x25, 0x00, 0x00, 0x00, 0x00))  # jmp qword ptr [$+6]
JUMP64_SIZE = len(JMP_STUB) + 8

_OP_CALL = 0xE8
_OP_JMP = 0xE9
_NOP = 0x90
_WILDCARD = 0xFF
_C_WHITESPACE = " \t\n\v\f\r"
_HEX_DIGITS = "0123456789abcdefABCDEF"
_ULLONG_MAX = (1 << 64) - 1

_JUMP_AREA_PATTERNS = (
    ("0f 0b 90 90 90 90 90 90 90 90 90 90 90 90 90 90", 2),
    ("c3 66 66 66 66 66 66 2e 0f 1f 84 00 00 00 00 00", 1),
)

Buffer = bytes | bytearray | memoryview


def _parse_hex(text: str, pos: int) -> tuple[int, int]:
    """Read an unsigned hex number at ``pos``; return its low byte and the end position.

    When no digits follow, the value is zero and the position is unchanged.
    """
    end = len(text)
    i = pos
    while i < end and text[i] in _C_WHITESPACE:
        i += 1
    negative = False
    if i < end and text[i] in "+-":
        negative = text[i] == "-"
        i += 1
    if text[i : i + 2].lower() == "0x" and i + 2 < end and text[i + 2] in _HEX_DIGITS:
        i += 2
    start = i
    while i < end and text[i] in _HEX_DIGITS:
        i += 1
    if i == start:
        return 0, pos
    value = min(int(text[start:i], 16), _ULLONG_MAX)
    if negative:
        value = -value % (1 << 64)
    return value & 0xFF, i


def parse_pattern(pattern: str) -> list[int | None]:
    """Turn an IDA-style signature such as ``"0f ?? 1f"`` into bytes; ``None`` is a wildcard."""
    result: list[int | None] = []
    end = len(pattern)
    i = 0
    while i < end:
        if pattern[i] == "?":
            i += 1
            if i < end and pattern[i] == "?":
                i += 1
            result.append(None)
        else:
            value, i = _parse_hex(pattern, i)
            result.append(value)
        i += 1
    return result


def pattern_scan(data: Buffer, signature: str, offset: int = 0) -> int | None:
    """Return the position of the first match of ``signature`` plus ``offset``, or None.

    Wildcards match any byte; an explicit ``ff`` byte in the signature does too.
    Raises ValueError for an empty or overlong signature.
    """
    pattern = parse_pattern(signature)
    if not pattern or len(pattern) >= MAX_PATTERN_LENGTH:
        raise ValueError(f"signature must give 1 to {MAX_PATTERN_LENGTH - 1} bytes")
    checks = [(j, b) for j, b in enumerate(pattern) if b is not None and b != _WILDCARD]
    view = bytes(data)
    for start in range(len(view) - len(pattern) + 1):
        if all(view[start + j] == b for j, b in checks):
            return start + offset
    return None


def u64_scan(data: Buffer, value: int) -> int | None:
    """Return the position of the first little-endian 64-bit ``value``, or None.

    The last position at which eight bytes fit is not examined.
    """
    needle = struct.pack("<Q", value & _ULLONG_MAX)
    view = bytes(data)
    for start in range(len(view) - len(needle)):
        if view[start : start + len(needle)] == needle:
            return start
    return None


def mem_scan(data: Buffer, value: Buffer) -> int | None:
    """Return the position of the first occurrence of ``value``, or None.

    The last position at which ``value`` fits is not examined.
    """
    needle = bytes(value)
    view = bytes(data)
    for start in range(len(view) - len(needle)):
        if view[start : start + len(needle)] == needle:
            return start
    return None


def char_scan(data: Buffer, value: str) -> int | None:
    """Return the position of the first occurrence of the text ``value``, or None."""
    return mem_scan(data, value.encode("latin-1"))


def hex_dump(data: Buffer, real: int = 0) -> str:
    """Render ``data`` as rows of 16 hex bytes with a printable-ASCII column."""
    view = bytes(data)
    lines = [f"offset: {real:x}\n"] if real else []
    for row in range(0, len(view), 16):
        chunk = view[row : row + 16]
        hex_part = "".join(f"{b:02x} " for b in chunk) + "   " * (16 - len(chunk))
        text_part = "".join(chr(b) if 0x20 <= b < 0x7F else "." for b in chunk)
        lines.append(f"{row:016x}: {hex_part}  |{text_part}|\n")
    return "".join(lines)


def read_lea32(
    data: Buffer,
    address: int,
    offset: int = 0,
    lea_size: int = 3,
    lea_opcode_size: int = 7,
) -> int:
    """Resolve a RIP-relative operand of the instruction at ``address`` in ``data``.

    The signed 32-bit displacement is read at ``address + lea_size``; the result
    is ``address + offset + displacement + lea_opcode_size``.
    """
    pos = address + lea_size
    view = bytes(data)
    if pos < 0 or pos + 4 > len(view):
        raise ValueError(f"no 32-bit displacement at position {pos}")
    (displacement,) = struct.unpack_from("<i", view, pos)
    return address + offset + displacement + lea_opcode_size


def jump32(src: int, dst: int, length: int = JUMP32_SIZE, call: bool = False) -> bytes:
    """Encode a relative ``jmp`` or ``call`` at ``src`` to ``dst``, nop-padded to ``length``."""
    if length < JUMP32_SIZE:
        raise ValueError(f"a relative jump needs at least {JUMP32_SIZE} bytes, got {length}")
    relative = (dst - src - JUMP32_SIZE) & 0xFFFFFFFF
    op = _OP_CALL if call else _OP_JMP
    encoded = bytes((op,)) + struct.pack("<I", relative)
    return encoded.ljust(length, bytes((_NOP,)))


def jump64(dst: int) -> bytes:
    """Encode an absolute indirect jump to ``dst`` with its target stored inline."""
    return JMP_STUB + struct.pack("<Q", dst & _ULLONG_MAX)


def find_jump_area(text: Buffer) -> int | None:
    """Find padding in a code segment large enough for an absolute jump, or None."""
    for signature, offset in _JUMP_AREA_PATTERNS:
        found = pattern_scan(text, signature, offset)
        if found is not None:
            return found
    return None


@dataclass
class CaveBuilder:
    """Lays out relocated prologues in a code cave starting at ``base``.

    Each hook copies whole instructions from a function's start into the cave
    and follows them with an absolute jump back to the rest of the function.
    """

    base: int
    size: int
    used: int = 0
    data: bytearray = field(init=False)

    def __post_init__(self) -> None:
        if self.size <= 0:
            raise ValueError("cave size must be positive")
        self.data = bytearray(b"\xcc" * self.size)

    def add_prologue_hook(self, code: Buffer, address: int, min_size: int) -> int:
        """Relocate the instructions covering ``min_size`` bytes of ``code``.

        ``code`` holds the function's bytes starting at ``address``. Returns the
        cave address that runs the original prologue and resumes the function.
        """
        if min_size < JUMP32_SIZE:
            raise ValueError(f"min_size must be at least {JUMP32_SIZE}, got {min_size}")
        prologue_size = instruction_size(code, min_size)
        needed = prologue_size + JUMP64_SIZE
        if self.used + needed > self.size:
            raise ValueError(
                f"cave of {self.size} bytes has {self.size - self.used} free, {needed} requested"
            )
        block = bytes(code[:prologue_size]) + jump64(address + prologue_size)
        self.data[self.used : self.used + needed] = block
        cave_address = self.base + self.used
        self.used += needed
        return cave_address


__all__ = [
    "CaveBuilder",
    "JMP_STUB",
    "char_scan",
    "find_jump_area",
    "hex_dump",
    "jump32",
    "jump64",
    "mem_scan",
    "parse_pattern",
    "pattern_scan",
    "read_lea32",
    "u64_scan",
]