import pytest

from bcodegen.fasm_x86_64 import (
    generate_data_section,
    generate_extrns,
    generate_function,
    generate_globals,
    generate_program,
    load_arg_to_reg,
)
from bcodegen.ops import (
    AutoAssign,
    AutoVar,
    BinaryOp,
    Binop,
    DataOffset,
    Deref,
    External,
    Func,
    Funcall,
    Jmp,
    JmpIfNot,
    Literal,
    Loc,
    OpWithLocation,
    Program,
    RefExternal,
    Return,
    UnsupportedFeature,
)

LOC = Loc("t.b", 1, 1)

EPILOGUE = "    mov rax, 0\n    mov rsp, rbp\n    pop rbp\n    ret\n"


def _func(body=(), params=0, autos=0, name="main"):
    return Func(
        name=name,
        name_loc=LOC,
        body=[OpWithLocation(op, LOC) for op in body],
        params_count=params,
        auto_vars_count=autos,
    )


def test_load_external_and_refs():
    assert load_arg_to_reg(External("x"), "rax") == "    mov rax, [_x]\n"
    assert load_arg_to_reg(RefExternal("x"), "rbx") == "    lea rbx, [_x]\n"
    assert load_arg_to_reg(DataOffset(5), "rdi") == "    mov rdi, dat+5\n"


def test_literal_is_printed_signed():
    assert load_arg_to_reg(Literal(-1), "rax") == "    mov rax, -1\n"
    assert load_arg_to_reg(Literal(42), "rax") == "    mov rax, 42\n"


def test_deref_loads_twice_through_same_register():
    lines = load_arg_to_reg(Deref(1), "rcx").splitlines()
    assert len(lines) == 2
    assert lines[1] == "    mov rcx, [rcx]"


def test_empty_function_layout():
    text = generate_function(_func())
    assert text.startswith("public _main as 'main'\n_main:\n    push rbp\n    mov rbp, rsp\n")
    assert text.endswith(".op_0:\n" + EPILOGUE)
    assert "sub rsp" not in text


def test_stack_size_is_16_byte_aligned():
    text = generate_function(_func(autos=3))
    line = next(l for l in text.splitlines() if "sub rsp" in l)
    size = int(line.split(",")[1])
    assert size % 16 == 0 and size >= 3 * 8


def test_parameters_are_spilled_from_registers_in_order():
    text = generate_function(_func(params=2, autos=2))
    spills = [l for l in text.splitlines() if l.startswith("    mov QWORD")]
    assert [s.split(", ")[1] for s in spills] == ["rdi", "rsi"]


def test_every_op_gets_a_label():
    body = [AutoAssign(1, Literal(0)), Jmp(0), Return(None)]
    text = generate_function(_func(body, autos=1))
    for i in range(len(body) + 1):
        assert f".op_{i}:\n" in text
    assert "    jmp .op_0\n" in text


def test_jmp_if_not():
    text = generate_function(_func([JmpIfNot(3, External("x"))]))
    assert "    mov rax, [_x]\n    test rax, rax\n    jz .op_3\n" in text


def test_return_with_value_loads_rax():
    text = generate_function(_func([Return(External("x"))]))
    assert "    mov rax, [_x]\n    mov rsp, rbp\n    pop rbp\n    ret\n" in text


@pytest.mark.parametrize(
    "binop, snippet",
    [
        (Binop.PLUS, "    add rax, rbx\n"),
        (Binop.BIT_SHL, "    shl rax, cl\n"),
        (Binop.MOD, "    idiv rbx\n"),
        (Binop.LESS, "    setl dl\n"),
        (Binop.NOT_EQUAL, "    setne dl\n"),
    ],
)
def test_binops(binop, snippet):
    text = generate_function(_func([BinaryOp(binop, 1, External("a"), External("b"))], autos=1))
    assert snippet in text


def test_funcall_clears_al_and_calls():
    op = Funcall(1, "printf", (DataOffset(0), External("x")))
    text = generate_function(_func([op], autos=1))
    assert "    mov rdi, dat+0\n    mov rsi, [_x]\n    mov al, 0\n    call _printf\n" in text


def test_too_many_call_arguments():
    op = Funcall(1, "f", tuple(Literal(i) for i in range(7)))
    with pytest.raises(UnsupportedFeature):
        generate_function(_func([op], autos=1))


def test_too_many_parameters():
    with pytest.raises(UnsupportedFeature):
        generate_function(_func(params=7, autos=7))


def test_fewer_autos_than_params_rejected():
    with pytest.raises(ValueError):
        generate_function(_func(params=2, autos=1))


def test_extrns_skip_defined_symbols():
    text = generate_extrns(["printf", "main", "x"], [_func()], ["x"])
    assert text == "extrn 'printf' as _printf\n"


def test_globals():
    assert generate_globals(["x"]) == "public _x as 'x'\n_x: rq 1\n"


def test_data_section():
    assert generate_data_section(b"") == ""
    assert generate_data_section(b"hi\0") == 'section ".data"\ndat: db 0x68,0x69,0x00\n'


def test_program_order():
    program = Program(
        funcs=[_func()],
        data=bytearray(b"a"),
        extrns=["puts", "main"],
        globals=["g"],
    )
    text = generate_program(program)
    assert text.startswith('format ELF64\nsection ".text" executable\n')
    positions = [
        text.index("_main:"),
        text.index("extrn 'puts'"),
        text.index('section ".data"'),
        text.index("_g: rq 1"),
    ]
    assert positions == sorted(positions)