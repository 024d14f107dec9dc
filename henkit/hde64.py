"""Length disassembler for x86-64 machine code.

Decodes one instruction at a time: prefixes, opcode, ModR/M, SIB,
displacement and immediate, and reports its length and error flags.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

MAX_LENGTH = 15

PREFIX_SEGMENT_CS = 0x2E
PREFIX_SEGMENT_SS = 0x36
PREFIX_SEGMENT_DS = 0x3E
PREFIX_SEGMENT_ES = 0x26
PREFIX_SEGMENT_FS = 0x64
PREFIX_SEGMENT_GS = 0x65
PREFIX_LOCK = 0xF0
PREFIX_REPNZ = 0xF2
PREFIX_REPX = 0xF3
PREFIX_OPERAND_SIZE = 0x66
PREFIX_ADDRESS_SIZE = 0x67


class Flag(enum.IntFlag):
    """What an instruction holds and which errors were found in it."""

    MODRM = 0x00000001
    SIB = 0x00000002
    IMM8 = 0x00000004
    IMM16 = 0x00000008
    IMM32 = 0x00000010
    IMM64 = 0x00000020
    DISP8 = 0x00000040
    DISP16 = 0x00000080
    DISP32 = 0x00000100
    RELATIVE = 0x00000200
    ERROR = 0x00001000
    ERROR_OPCODE = 0x00002000
    ERROR_LENGTH = 0x00004000
    ERROR_LOCK = 0x00008000
    ERROR_OPERAND = 0x00010000
    PREFIX_REPNZ = 0x01000000
    PREFIX_REPX = 0x02000000
    PREFIX_REP = 0x03000000
    PREFIX_66 = 0x04000000
    PREFIX_67 = 0x08000000
    PREFIX_LOCK = 0x10000000
    PREFIX_SEG = 0x20000000
    PREFIX_REX = 0x40000000
    PREFIX_ANY = 0x7F000000


@dataclass(frozen=True)
class Instruction:
    """One decoded instruction.

    ``imm`` and ``disp`` behave like overlapping storage: a narrower write
    replaces only the low bytes of what was stored before.
    """

    length: int
    p_rep: int
    p_lock: int
    p_seg: int
    p_66: int
    p_67: int
    rex_w: int
    rex_r: int
    rex_x: int
    rex_b: int
    opcode: int
    opcode2: int
    modrm: int
    modrm_mod: int
    modrm_reg: int
    modrm_rm: int
    sib: int
    sib_scale: int
    sib_index: int
    sib_base: int
    imm: int
    disp: int
    flags: Flag

    @property
    def error(self) -> bool:
        """True when the decoder found the instruction invalid."""
        return bool(self.flags & Flag.ERROR)


_C_MODRM = 0x01
_C_IMM8 = 0x02
_C_IMM16 = 0x04
_C_IMM_P66 = 0x10
_C_REL8 = 0x20
_C_REL32 = 0x40
_C_GROUP = 0x80
_C_ERROR = 0xFF

_PRE_NONE = 0x01
_PRE_F2 = 0x02
_PRE_F3 = 0x04
_PRE_66 = 0x08
_PRE_67 = 0x10
_PRE_LOCK = 0x20
_PRE_SEG = 0x40

_DELTA_OPCODES = 0x4A
_DELTA_FPU_REG = 0xFD
_DELTA_FPU_MODRM = 0x104
_DELTA_PREFIXES = 0x13C
_DELTA_OP_LOCK_OK = 0x1AE
_DELTA_OP2_LOCK_OK = 0x1C6
_DELTA_OP_ONLY_MEM = 0x1D8
_DELTA_OP2_ONLY_MEM = 0x1E7

_SEGMENT_PREFIXES = frozenset(
    {PREFIX_SEGMENT_ES, PREFIX_SEGMENT_CS, PREFIX_SEGMENT_SS, PREFIX_SEGMENT_DS, PREFIX_SEGMENT_FS, PREFIX_SEGMENT_GS}
)

# Bytes read past the given code are taken as zero; this window covers the
# longest run the decoder can read.
_WINDOW = 64

_ERR_OPCODE = int(Flag.ERROR | Flag.ERROR_OPCODE)
_ERR_LOCK = int(Flag.ERROR | Flag.ERROR_LOCK)
_ERR_OPERAND = int(Flag.ERROR | Flag.ERROR_OPERAND)

# fmt: off
_TABLE = bytes((
    0xa5, 0xaa, 0xa5, 0xb8, 0xa5, 0xaa, 0xa5, 0xaa, 0xa5, 0xb8, 0xa5, 0xb8, 0xa5, 0xb8, 0xa5,
    0xb8, 0xc0, 0xc0, 0xc0, 0xc0, 0xc0, 0xc0, 0xc0, 0xc0, 0xac, 0xc0, 0xcc, 0xc0, 0xa1, 0xa1,
    0xa1, 0xa1, 0xb1, 0xa5, 0xa5, 0xa6, 0xc0, 0xc0, 0xd7, 0xda, 0xe0, 0xc0, 0xe4, 0xc0, 0xea,
    0xea, 0xe0, 0xe0, 0x98, 0xc8, 0xee, 0xf1, 0xa5, 0xd3, 0xa5, 0xa5, 0xa1, 0xea, 0x9e, 0xc0,
    0xc0, 0xc2, 0xc0, 0xe6, 0x03, 0x7f, 0x11, 0x7f, 0x01, 0x7f, 0x01, 0x3f, 0x01, 0x01, 0xab,
    0x8b, 0x90, 0x64, 0x5b, 0x5b, 0x5b, 0x5b, 0x5b, 0x92, 0x5b, 0x5b, 0x76, 0x90, 0x92, 0x92,
    0x5b, 0x5b, 0x5b, 0x5b, 0x5b, 0x5b, 0x5b, 0x5b, 0x5b, 0x5b, 0x5b, 0x5b, 0x6a, 0x73, 0x90,
    0x5b, 0x52, 0x52, 0x52, 0x52, 0x5b, 0x5b, 0x5b, 0x5b, 0x77, 0x7c, 0x77, 0x85, 0x5b, 0x5b,
    0x70, 0x5b, 0x7a, 0xaf, 0x76, 0x76, 0x5b, 0x5b, 0x5b, 0x5b, 0x5b, 0x5b, 0x5b, 0x5b, 0x5b,
    0x5b, 0x5b, 0x86, 0x01, 0x03, 0x01, 0x04, 0x03, 0xd5, 0x03, 0xd5, 0x03, 0xcc, 0x01, 0xbc,
    0x03, 0xf0, 0x03, 0x03, 0x04, 0x00, 0x50, 0x50, 0x50, 0x50, 0xff, 0x20, 0x20, 0x20, 0x20,
    0x01, 0x01, 0x01, 0x01, 0xc4, 0x02, 0x10, 0xff, 0xff, 0xff, 0x01, 0x00, 0x03, 0x11, 0xff,
    0x03, 0xc4, 0xc6, 0xc8, 0x02, 0x10, 0x00, 0xff, 0xcc, 0x01, 0x01, 0x01, 0x00, 0x00, 0x00,
    0x00, 0x01, 0x01, 0x03, 0x01, 0xff, 0xff, 0xc0, 0xc2, 0x10, 0x11, 0x02, 0x03, 0x01, 0x01,
    0x01, 0xff, 0xff, 0xff, 0x00, 0x00, 0x00, 0xff, 0x00, 0x00, 0xff, 0xff, 0xff, 0xff, 0x10,
    0x10, 0x10, 0x10, 0x02, 0x10, 0x00, 0x00, 0xc6, 0xc8, 0x02, 0x02, 0x02, 0x02, 0x06, 0x00,
    0x04, 0x00, 0x02, 0xff, 0x00, 0xc0, 0xc2, 0x01, 0x01, 0x03, 0x03, 0x03, 0xca, 0x40, 0x00,
    0x0a, 0x00, 0x04, 0x00, 0x00, 0x00, 0x00, 0x7f, 0x00, 0x33, 0x01, 0x00, 0x00, 0x00, 0x00,
    0x00, 0x00, 0xff, 0xbf, 0xff, 0xff, 0x00, 0x00, 0x00, 0x00, 0x07, 0x00, 0x00, 0xff, 0x00,
    0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0xff, 0xff,
    0x00, 0x00, 0x00, 0xbf, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x7f, 0x00, 0x00,
    0xff, 0x40, 0x40, 0x40, 0x40, 0x41, 0x49, 0x40, 0x40, 0x40, 0x40, 0x4c, 0x42, 0x40, 0x40,
    0x40, 0x40, 0x40, 0x40, 0x40, 0x40, 0x4f, 0x44, 0x53, 0x40, 0x40, 0x40, 0x44, 0x57, 0x43,
    0x5c, 0x40, 0x60, 0x40, 0x40, 0x40, 0x40, 0x40, 0x40, 0x40, 0x40, 0x40, 0x40, 0x40, 0x40,
    0x40, 0x40, 0x64, 0x66, 0x6e, 0x6b, 0x40, 0x40, 0x6a, 0x46, 0x40, 0x40, 0x44, 0x46, 0x40,
    0x40, 0x5b, 0x44, 0x40, 0x40, 0x00, 0x00, 0x00, 0x00, 0x06, 0x06, 0x06, 0x06, 0x01, 0x06,
    0x06, 0x02, 0x06, 0x06, 0x00, 0x06, 0x00, 0x0a, 0x0a, 0x00, 0x00, 0x00, 0x02, 0x07, 0x07,
    0x06, 0x02, 0x0d, 0x06, 0x06, 0x06, 0x0e, 0x05, 0x05, 0x02, 0x02, 0x00, 0x00, 0x04, 0x04,
    0x04, 0x04, 0x05, 0x06, 0x06, 0x06, 0x00, 0x00, 0x00, 0x0e, 0x00, 0x00, 0x08, 0x00, 0x10,
    0x00, 0x18, 0x00, 0x20, 0x00, 0x28, 0x00, 0x30, 0x00, 0x80, 0x01, 0x82, 0x01, 0x86, 0x00,
    0xf6, 0xcf, 0xfe, 0x3f, 0xab, 0x00, 0xb0, 0x00, 0xb1, 0x00, 0xb3, 0x00, 0xba, 0xf8, 0xbb,
    0x00, 0xc0, 0x00, 0xc1, 0x00, 0xc7, 0xbf, 0x62, 0xff, 0x00, 0x8d, 0xff, 0x00, 0xc4, 0xff,
    0x00, 0xc5, 0xff, 0x00, 0xff, 0xff, 0xeb, 0x01, 0xff, 0x0e, 0x12, 0x08, 0x00, 0x13, 0x09,
    0x00, 0x16, 0x08, 0x00, 0x17, 0x09, 0x00, 0x2b, 0x09, 0x00, 0xae, 0xff, 0x07, 0xb2, 0xff,
    0x00, 0xb4, 0xff, 0x00, 0xb5, 0xff, 0x00, 0xc3, 0x01, 0x00, 0xc7, 0xff, 0xbf, 0xe7, 0x08,
    0x00, 0xf0, 0x02, 0x00,
))
# fmt: on


def _lookup(base: int, opcode: int) -> int:
    return _TABLE[base + _TABLE[base + opcode // 4] + opcode % 4]


def _read(buf: bytes, pos: int, size: int) -> int:
    return int.from_bytes(buf[pos : pos + size], "little")


def _store(current: int, value: int, size: int) -> int:
    mask = (1 << (8 * size)) - 1
    return (current & ~mask) | value


def _lock_allowed(opcode: int, opcode2: int, m_reg: int) -> bool:
    if opcode2:
        start, end, op = _DELTA_OP2_LOCK_OK, _DELTA_OP_ONLY_MEM, opcode
    else:
        start, end, op = _DELTA_OP_LOCK_OK, _DELTA_OP2_LOCK_OK, opcode & 0xFE
    for pos in range(start, end, 2):
        if _TABLE[pos] == op:
            return not ((_TABLE[pos + 1] << m_reg) & 0x80)
    return False


def _register_form_invalid(opcode: int, opcode2: int, pref: int, m_reg: int) -> bool:
    if opcode2:
        start, end = _DELTA_OP2_ONLY_MEM, len(_TABLE)
    else:
        start, end = _DELTA_OP_ONLY_MEM, _DELTA_OP2_ONLY_MEM
    for pos in range(start, end, 3):
        if _TABLE[pos] == opcode:
            return bool(_TABLE[pos + 1] & pref) and not ((_TABLE[pos + 2] << m_reg) & 0x80)
    return False


def disasm(code: bytes | bytearray | memoryview) -> Instruction:
    """Decode the instruction at the start of ``code``.

    Bytes beyond the end of ``code`` are read as zero.
    """
    data = bytes(code[:_WINDOW])
    if not data:
        raise ValueError("no bytes to decode")
    buf = data.ljust(_WINDOW, b"\0")

    p = 0
    pref = 0
    p_rep = p_lock = p_seg = p_66 = p_67 = 0
    c = 0
    for _ in range(16):
        c = buf[p]
        p += 1
        if c == PREFIX_REPX:
            p_rep = c
            pref |= _PRE_F3
        elif c == PREFIX_REPNZ:
            p_rep = c
            pref |= _PRE_F2
        elif c == PREFIX_LOCK:
            p_lock = c
            pref |= _PRE_LOCK
        elif c in _SEGMENT_PREFIXES:
            p_seg = c
            pref |= _PRE_SEG
        elif c == PREFIX_OPERAND_SIZE:
            p_66 = c
            pref |= _PRE_66
        elif c == PREFIX_ADDRESS_SIZE:
            p_67 = c
            pref |= _PRE_67
        else:
            break

    flags = pref << 23
    if not pref:
        pref |= _PRE_NONE

    rex_w = rex_r = rex_x = rex_b = 0
    op64 = 0
    opcode_byte = opcode2 = 0
    opcode = 0
    cflags = 0
    ht = 0
    bad_opcode = False

    if (c & 0xF0) == 0x40:
        flags |= Flag.PREFIX_REX
        rex_w = (c & 0xF) >> 3
        if rex_w and (buf[p] & 0xF8) == 0xB8:
            op64 += 1
        rex_r = (c & 7) >> 2
        rex_x = (c & 3) >> 1
        rex_b = c & 1
        c = buf[p]
        p += 1
        if (c & 0xF0) == 0x40:
            opcode = c
            bad_opcode = True

    if not bad_opcode:
        opcode_byte = c
        if c == 0x0F:
            c = buf[p]
            p += 1
            opcode2 = c
            ht = _DELTA_OPCODES
        elif 0xA0 <= c <= 0xA3:
            op64 += 1
            if pref & _PRE_67:
                pref |= _PRE_66
            else:
                pref &= ~_PRE_66
        opcode = c
        cflags = _lookup(ht, opcode)
        bad_opcode = cflags == _C_ERROR

    if bad_opcode:
        flags |= _ERR_OPCODE
        cflags = 1 if (opcode & 0xFD) == 0x24 else 0

    x = 0
    if cflags & _C_GROUP:
        pos = ht + (cflags & 0x7F)
        cflags, x = _TABLE[pos], _TABLE[pos + 1]

    if opcode2 and _lookup(_DELTA_PREFIXES, opcode) & pref:
        flags |= _ERR_OPCODE

    modrm = modrm_mod = modrm_reg = modrm_rm = 0
    sib = sib_scale = sib_index = sib_base = 0
    disp = 0
    imm = 0

    if cflags & _C_MODRM:
        flags |= Flag.MODRM
        c = modrm = buf[p]
        p += 1
        m_mod = modrm_mod = c >> 6
        m_rm = modrm_rm = c & 7
        m_reg = modrm_reg = (c & 0x3F) >> 3

        if x and ((x << m_reg) & 0x80):
            flags |= _ERR_OPCODE

        if not opcode2 and 0xD9 <= opcode <= 0xDF:
            t = opcode - 0xD9
            if m_mod == 3:
                t = (_TABLE[_DELTA_FPU_MODRM + t * 8 + m_reg] << m_rm) & 0xFF
            else:
                t = (_TABLE[_DELTA_FPU_REG + t] << m_reg) & 0xFF
            if t & 0x80:
                flags |= _ERR_OPCODE

        if pref & _PRE_LOCK:
            if m_mod == 3 or not _lock_allowed(opcode, opcode2, m_reg):
                flags |= _ERR_LOCK

        operand_error: bool | None = None
        if opcode2:
            if opcode in (0x20, 0x22):
                m_mod = 3
                operand_error = m_reg > 4 or m_reg == 1
            elif opcode in (0x21, 0x23):
                m_mod = 3
                operand_error = m_reg in (4, 5)
        elif opcode == 0x8C:
            operand_error = m_reg > 5
        elif opcode == 0x8E:
            operand_error = m_reg == 1 or m_reg > 5

        if operand_error is None:
            if m_mod == 3:
                operand_error = _register_form_invalid(opcode, opcode2, pref, m_reg)
            elif opcode2:
                if opcode in (0x50, 0xD7, 0xF7):
                    operand_error = bool(pref & (_PRE_NONE | _PRE_66))
                elif opcode == 0xD6:
                    operand_error = bool(pref & (_PRE_F2 | _PRE_F3))
                else:
                    operand_error = opcode == 0xC5
            else:
                operand_error = False

        if operand_error:
            flags |= _ERR_OPERAND

        c = buf[p]
        p += 1
        if m_reg <= 1:
            if opcode == 0xF6:
                cflags |= _C_IMM8
            elif opcode == 0xF7:
                cflags |= _C_IMM_P66

        disp_size = 0
        if m_mod == 0:
            if pref & _PRE_67:
                if m_rm == 6:
                    disp_size = 2
            elif m_rm == 5:
                disp_size = 4
        elif m_mod == 1:
            disp_size = 1
        elif m_mod == 2:
            disp_size = 2 if pref & _PRE_67 else 4

        if m_mod != 3 and m_rm == 4:
            flags |= Flag.SIB
            p += 1
            sib = c
            sib_scale = c >> 6
            sib_index = (c & 0x3F) >> 3
            sib_base = c & 7
            if sib_base == 5 and not (m_mod & 1):
                disp_size = 4

        p -= 1
        if disp_size == 1:
            flags |= Flag.DISP8
            disp = _store(disp, buf[p], 1)
        elif disp_size == 2:
            flags |= Flag.DISP16
            disp = _store(disp, _read(buf, p, 2), 2)
        elif disp_size == 4:
            flags |= Flag.DISP32
            disp = _read(buf, p, 4)
        p += disp_size
    elif pref & _PRE_LOCK:
        flags |= _ERR_LOCK

    state = "plain"
    if cflags & _C_IMM_P66:
        if cflags & _C_REL32:
            if pref & _PRE_66:
                flags |= Flag.IMM16 | Flag.RELATIVE
                imm = _store(imm, _read(buf, p, 2), 2)
                p += 2
                state = "done"
            else:
                state = "rel32"
        elif op64:
            flags |= Flag.IMM64
            imm = _read(buf, p, 8)
            p += 8
        elif not (pref & _PRE_66):
            flags |= Flag.IMM32
            imm = _store(imm, _read(buf, p, 4), 4)
            p += 4
        else:
            state = "imm16"

    if state in ("plain", "imm16"):
        if state == "imm16" or cflags & _C_IMM16:
            flags |= Flag.IMM16
            imm = _store(imm, _read(buf, p, 2), 2)
            p += 2
        if cflags & _C_IMM8:
            flags |= Flag.IMM8
            imm = _store(imm, buf[p], 1)
            p += 1
        if cflags & _C_REL32:
            state = "rel32"
        elif cflags & _C_REL8:
            flags |= Flag.IMM8 | Flag.RELATIVE
            imm = _store(imm, buf[p], 1)
            p += 1
    if state == "rel32":
        flags |= Flag.IMM32 | Flag.RELATIVE
        imm = _store(imm, _read(buf, p, 4), 4)
        p += 4

    length = p
    if length > MAX_LENGTH:
        flags |= Flag.ERROR | Flag.ERROR_LENGTH
        length = MAX_LENGTH

    return Instruction(
        length=length,
        p_rep=p_rep,
        p_lock=p_lock,
        p_seg=p_seg,
        p_66=p_66,
        p_67=p_67,
        rex_w=rex_w,
        rex_r=rex_r,
        rex_x=rex_x,
        rex_b=rex_b,
        opcode=opcode_byte,
        opcode2=opcode2,
        modrm=modrm,
        modrm_mod=modrm_mod,
        modrm_reg=modrm_reg,
        modrm_rm=modrm_rm,
        sib=sib,
        sib_scale=sib_scale,
        sib_index=sib_index,
        sib_base=sib_base,
        imm=imm,
        disp=disp,
        flags=Flag(int(flags)),
    )


def instruction_size(code: bytes | bytearray | memoryview, min_size: int) -> int:
    """Return the length of the whole instructions covering at least ``min_size`` bytes.

    Raises ValueError when an instruction on the way cannot be decoded.
    """
    data = bytes(code)
    size = 0
    while size < min_size:
        if size >= len(data):
            raise ValueError(f"code ends at offset {size} before {min_size} bytes were covered")
        ins = disasm(data[size:])
        if ins.error:
            raise ValueError(f"invalid instruction at offset {size}")
        size += ins.length
    return size


__all__ = ["Flag", "Instruction", "MAX_LENGTH", "disasm", "instruction_size"]