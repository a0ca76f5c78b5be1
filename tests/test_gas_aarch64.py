import re

import pytest

from bcodegen.gas_aarch64 import (
    generate_data_section,
    generate_function,
    generate_globals,
    generate_program,
    load_arg_to_reg,
    load_literal_to_reg,
)
from bcodegen.ops import (
    AutoAssign,
    AutoVar,
    BinaryOp,
    Binop,
    DataOffset,
    Deref,
    External,
    ExternalAssign,
    Func,
    Funcall,
    Jmp,
    JmpIfNot,
    Literal,
    Loc,
    OpWithLocation,
    Program,
    RefAutoVar,
    RefExternal,
    Return,
    UnsupportedFeature,
)

LOC = Loc("test.b", 1, 1)


def _decode_literal(text, reg):
    value = 0
    for line in text.splitlines():
        m = re.fullmatch(rf"    mov {reg}, (\d+)", line)
        if m:
            value = int(m.group(1))
            continue
        m = re.fullmatch(rf"    movk {reg}, (\d+), lsl (\d+)", line)
        assert m, line
        value |= int(m.group(1)) << int(m.group(2))
    return value


def _ops(*opcodes):
    return [OpWithLocation(op, LOC) for op in opcodes]


def test_literal_zero():
    assert load_literal_to_reg("x0", 0) == "    mov x0, 0\n"


@pytest.mark.parametrize(
    "value", [1, 0xFFFF, 0x10000, 0x123456789, (1 << 64) - 1, 0xDEAD00000000BEEF]
)
def test_literal_round_trip(value):
    text = load_literal_to_reg("x3", value)
    assert _decode_literal(text, "x3") == value
    assert text.startswith("    mov x3, ")
    assert all(int(c) <= 0xFFFF for c in re.findall(r"(?:mov|movk) x3, (\d+)", text))


def test_literal_arg_matches_literal_loader():
    assert load_arg_to_reg(Literal(-1), "x1", LOC) == load_literal_to_reg("x1", (1 << 64) - 1)


def test_external_arg():
    assert load_arg_to_reg(External("foo"), "x0", LOC) == (
        "    adrp x0, foo\n    add  x0, x0, :lo12:foo\n    ldr x0, [x0]\n"
    )


def test_ref_external_has_no_load():
    text = load_arg_to_reg(RefExternal("foo"), "x0", LOC)
    assert "ldr" not in text
    assert text.startswith("    adrp x0, foo\n")


def test_auto_var_slots_are_consistent():
    auto = load_arg_to_reg(AutoVar(2), "x0", LOC)
    deref = load_arg_to_reg(Deref(2), "x0", LOC)
    ref = load_arg_to_reg(RefAutoVar(2), "x0", LOC)
    assert deref.startswith(auto)
    assert deref.endswith("    ldr x0, [x0]\n")
    slot = re.search(r"\[sp, (\d+)\]", auto).group(1)
    assert ref == f"    add x0, sp, {slot}\n"


def test_data_offset_zero_has_no_add():
    text = load_arg_to_reg(DataOffset(0), "x2", LOC)
    assert text == "    adrp x2, .dat\n    add  x2, x2, :lo12:.dat\n"


def test_data_offset_nonzero_adds_offset():
    text = load_arg_to_reg(DataOffset(5), "x2", LOC)
    assert text.endswith("    add x2, x2, 5\n")


def test_data_offset_too_large():
    with pytest.raises(UnsupportedFeature):
        load_arg_to_reg(DataOffset(4095), "x0", LOC)


def test_empty_function_epilogue():
    text = generate_function(Func("f", LOC))
    assert text.startswith(".global f\nf:\n")
    assert "f.op_0:\n    mov x0, 0\n" in text
    assert text.endswith("    ret\n")


@pytest.mark.parametrize("autos", [0, 1, 2, 3, 7])
def test_stack_frame_balanced_and_aligned(autos):
    text = generate_function(Func("g", LOC, _ops(Return(None)), 0, autos))
    pushed = int(re.search(r"stp x29, x30, \[sp, -(\d+)\]!", text).group(1))
    popped = {int(n) for n in re.findall(r"ldp x29, x30, \[sp\], (\d+)", text)}
    assert popped == {pushed}
    assert pushed % 16 == 0
    assert pushed >= (2 + autos) * 8


def test_params_stored_from_registers():
    text = generate_function(Func("h", LOC, [], 3, 3))
    for reg in ("x0", "x1", "x2"):
        assert f"    str {reg}, [sp, " in text
    assert "    str x3, [sp, " not in text


def test_too_many_params():
    with pytest.raises(UnsupportedFeature):
        generate_function(Func("h", LOC, [], 9, 9))


def test_fewer_autos_than_params_rejected():
    with pytest.raises(ValueError):
        generate_function(Func("h", LOC, [], 2, 1))


def test_jumps_use_function_local_labels():
    body = _ops(JmpIfNot(2, AutoVar(1)), Jmp(0), Return(Literal(0)))
    text = generate_function(Func("loop", LOC, body, 0, 1))
    assert "    beq loop.op_2\n" in text
    assert "    b loop.op_0\n" in text
    for i in range(4):
        assert f"loop.op_{i}:\n" in text


@pytest.mark.parametrize(
    "binop, insn",
    [
        (Binop.PLUS, "add x0, x0, x1"),
        (Binop.MINUS, "sub x0, x0, x1"),
        (Binop.MULT, "mul x0, x0, x1"),
        (Binop.BIT_OR, "orr x0, x0, x1"),
        (Binop.BIT_SHL, "lsl x0, x0, x1"),
        (Binop.BIT_SHR, "lsr x0, x0, x1"),
        (Binop.LESS, "cset x0, lt"),
        (Binop.GREATER_EQUAL, "cset x0, ge"),
        (Binop.MOD, "msub x2, x2, x1, x0"),
        (Binop.DIV, "sdiv x2, x0, x1"),
    ],
)
def test_binops(binop, insn):
    body = _ops(BinaryOp(binop, 1, AutoVar(1), Literal(3)))
    text = generate_function(Func("b", LOC, body, 0, 1))
    assert f"    {insn}\n" in text


def test_funcall_and_external_assign():
    body = _ops(
        Funcall(1, "printf", (DataOffset(0), AutoVar(1))),
        ExternalAssign("g", AutoVar(1)),
        AutoAssign(1, Literal(0)),
    )
    text = generate_function(Func("main", LOC, body, 0, 1))
    assert "    bl printf\n" in text
    assert "    adrp x0, .dat\n" in text
    assert "    adrp x1, g\n" in text
    assert "    str x0, [x1]\n" in text


def test_funcall_too_many_args():
    body = _ops(Funcall(1, "f", tuple(Literal(i) for i in range(9))))
    with pytest.raises(UnsupportedFeature):
        generate_function(Func("main", LOC, body, 0, 1))


def test_globals():
    assert generate_globals([]) == ""
    assert generate_globals(["x"]) == ".bss\n.global x\nx: .zero 8\n"


def test_data_section():
    assert generate_data_section(b"") == ""
    assert generate_data_section(bytes([0x01, 0xAB])) == ".data\n.dat: .byte 0x01,0xAB\n"


def test_program_order():
    program = Program(
        funcs=[Func("main", LOC)],
        data=bytearray(b"\x00"),
        extrns=["printf"],
        globals=["x"],
    )
    text = generate_program(program)
    assert text.startswith(".text\n")
    assert text.index("main:") < text.index(".bss\n") < text.index(".data\n")
    assert "printf" not in text


def test_program_without_data_or_globals():
    text = generate_program(Program(funcs=[Func("main", LOC)]))
    assert ".bss" not in text
    assert ".data" not in text
    assert text == ".text\n" + generate_function(Func("main", LOC))