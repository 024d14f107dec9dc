import pytest

from henkit import hde64
from henkit.hde64 import Flag, disasm, instruction_size

PUSH_RBP = b"\x55"
MOV_RBP_RSP = b"\x48\x89\xe5"
SUB_RSP = b"\x48\x83\xec\x20"
JMP_STUB = b"\xff\x25\x00\x00\x00\x00"

VALID = [
    b"\x90",
    b"\xc3",
    PUSH_RBP,
    MOV_RBP_RSP,
    SUB_RSP,
    b"\xe8\x00\x00\x00\x00",
    b"\xe9\x10\x20\x30\x40",
    JMP_STUB,
    b"\x48\xb8\x88\x77\x66\x55\x44\x33\x22\x11",
    b"\x0f\x1f\x84\x00\x00\x00\x00\x00",
    b"\x66\x2e\x0f\x1f\x84\x00\x00\x00\x00\x00",
    b"\x8b\x44\x24\x08",
    b"\xeb\xfe",
    b"\x48\x8d\x05\x11\x22\x33\x44",
    b"\xb8\x01\x00\x00\x00",
    b"\x66\xb8\x34\x12",
    b"\xf0\x01\x00",
]


@pytest.mark.parametrize("code", VALID)
def test_valid_instruction_length(code):
    ins = disasm(code + b"\xcc" * 8)
    assert ins.length == len(code)
    assert not ins.error


@pytest.mark.parametrize("code", VALID)
def test_modrm_fields_agree(code):
    ins = disasm(code)
    assert ins.modrm_mod * 64 + ins.modrm_reg * 8 + ins.modrm_rm == ins.modrm
    assert ins.sib_scale * 64 + ins.sib_index * 8 + ins.sib_base == ins.sib


def test_jump_stub_is_rip_relative_memory_operand():
    ins = disasm(JMP_STUB)
    assert Flag.MODRM in ins.flags
    assert Flag.DISP32 in ins.flags
    assert ins.disp == 0
    assert ins.opcode == 0xFF


def test_call_rel32_immediate():
    rel = 0x11223344
    ins = disasm(b"\xe8" + rel.to_bytes(4, "little"))
    assert ins.imm == rel
    assert Flag.RELATIVE in ins.flags
    assert Flag.IMM32 in ins.flags


def test_mov_imm64_with_rex_w():
    value = 0x1122334455667788
    ins = disasm(b"\x48\xb8" + value.to_bytes(8, "little"))
    assert ins.imm == value
    assert Flag.IMM64 in ins.flags
    assert Flag.PREFIX_REX in ins.flags
    assert ins.rex_w == 1


def test_sib_and_disp8():
    ins = disasm(b"\x8b\x44\x24\x08")
    assert ins.modrm == 0x44
    assert ins.sib == 0x24
    assert ins.disp == 0x08
    assert Flag.SIB in ins.flags
    assert Flag.DISP8 in ins.flags


def test_operand_size_prefix_gives_imm16():
    ins = disasm(b"\x66\xb8\x34\x12")
    assert ins.p_66 == 0x66
    assert Flag.PREFIX_66 in ins.flags
    assert Flag.IMM16 in ins.flags
    assert ins.imm == 0x1234


def test_two_byte_opcode():
    ins = disasm(b"\x0f\x1f\x84\x00\x00\x00\x00\x00")
    assert ins.opcode == 0x0F
    assert ins.opcode2 == 0x1F


def test_short_relative_jump():
    ins = disasm(b"\xeb\xfe")
    assert ins.imm == 0xFE
    assert Flag.IMM8 in ins.flags
    assert Flag.RELATIVE in ins.flags


def test_invalid_group_member_is_opcode_error():
    ins = disasm(b"\xff\xf8")
    assert ins.error
    assert Flag.ERROR_OPCODE in ins.flags


def test_double_rex_is_opcode_error():
    ins = disasm(b"\x48\x48\x90")
    assert Flag.ERROR_OPCODE in ins.flags
    assert ins.error


def test_lock_on_register_operand_is_lock_error():
    ins = disasm(b"\xf0\x01\xc0")
    assert ins.p_lock == 0xF0
    assert Flag.ERROR_LOCK in ins.flags


def test_overlong_instruction_is_clamped():
    ins = disasm(b"\x66" * 14 + b"\xb8\x00\x00")
    assert ins.length == hde64.MAX_LENGTH
    assert Flag.ERROR_LENGTH in ins.flags


def test_truncated_code_reads_zeros():
    assert disasm(b"\xe8") == disasm(b"\xe8\x00\x00\x00\x00")


def test_memoryview_input_matches_bytes():
    code = b"\x48\x8d\x05\x11\x22\x33\x44"
    assert disasm(memoryview(code)) == disasm(code)


def test_empty_code_raises():
    with pytest.raises(ValueError):
        disasm(b"")


def test_instruction_size_covers_whole_instructions():
    code = PUSH_RBP + MOV_RBP_RSP + SUB_RSP
    assert instruction_size(code, 5) == len(PUSH_RBP) + len(MOV_RBP_RSP) + len(SUB_RSP)
    assert instruction_size(code, 1) == len(PUSH_RBP)
    assert instruction_size(code, len(PUSH_RBP) + 1) == len(PUSH_RBP) + len(MOV_RBP_RSP)


def test_instruction_size_zero_minimum():
    assert instruction_size(PUSH_RBP, 0) == 0


def test_instruction_size_rejects_invalid_code():
    with pytest.raises(ValueError):
        instruction_size(PUSH_RBP + b"\xff\xf8" + b"\x90" * 4, 5)


def test_instruction_size_rejects_short_code():
    with pytest.raises(ValueError):
        instruction_size(PUSH_RBP, 5)