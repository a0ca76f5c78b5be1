"""Code generator emitting GNU assembler source for AArch64 Linux."""

from __future__ import annotations

from typing import Iterable, List

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
    Negate,
    Program,
    RefAutoVar,
    RefExternal,
    Return,
    Store,
    UnaryNot,
    UnsupportedFeature,
    align_bytes,
)

# The first 8 arguments are passed in x0-x7.
REGISTERS = ("x0", "x1", "x2", "x3", "x4", "x5", "x6", "x7")

_MAX_DATA_OFFSET = 4095

# Operators computed as `<insn> x0, x0, x1` and stored from x0.
_SIMPLE_BINOPS = {
    Binop.BIT_OR: "orr",
    Binop.BIT_AND: "and",
    Binop.BIT_SHL: "lsl",
    Binop.BIT_SHR: "lsr",
    Binop.PLUS: "add",
    Binop.MINUS: "sub",
    Binop.MULT: "mul",
}

_COMPARISON_CONDITIONS = {
    Binop.LESS: "lt",
    Binop.GREATER: "gt",
    Binop.EQUAL: "eq",
    Binop.NOT_EQUAL: "ne",
    Binop.GREATER_EQUAL: "ge",
    Binop.LESS_EQUAL: "le",
}


def _slot(index: int) -> int:
    return (index + 1) * 8


def load_literal_to_reg(reg: str, literal: int) -> str:
    """Return the mov/movk sequence that loads a 64-bit literal into a register."""
    literal &= (1 << 64) - 1
    if literal == 0:
        return f"    mov {reg}, 0\n"
    chunks = []
    while literal > 0:
        chunks.append(literal & 0xFFFF)
        literal >>= 16
    lines = [f"    mov {reg}, {chunks[0]}\n"]
    lines.extend(
        f"    movk {reg}, {chunk}, lsl {16 * shift}\n"
        for shift, chunk in enumerate(chunks[1:], start=1)
    )
    return "".join(lines)


def load_arg_to_reg(arg, reg: str, loc: Loc) -> str:
    """Return the instructions that load an argument's value into a register."""
    if isinstance(arg, External):
        return (
            f"    adrp {reg}, {arg.name}\n"
            f"    add  {reg}, {reg}, :lo12:{arg.name}\n"
            f"    ldr {reg}, [{reg}]\n"
        )
    if isinstance(arg, Deref):
        return f"    ldr {reg}, [sp, {_slot(arg.index)}]\n    ldr {reg}, [{reg}]\n"
    if isinstance(arg, RefAutoVar):
        return f"    add {reg}, sp, {_slot(arg.index)}\n"
    if isinstance(arg, RefExternal):
        return f"    adrp {reg}, {arg.name}\n    add  {reg}, {reg}, :lo12:{arg.name}\n"
    if isinstance(arg, AutoVar):
        return f"    ldr {reg}, [sp, {_slot(arg.index)}]\n"
    if isinstance(arg, Literal):
        return load_literal_to_reg(reg, arg.value)
    if isinstance(arg, DataOffset):
        if arg.offset >= _MAX_DATA_OFFSET:
            raise UnsupportedFeature(loc, "Data offsets bigger than 4095 are not supported yet")
        text = f"    adrp {reg}, .dat\n    add  {reg}, {reg}, :lo12:.dat\n"
        if arg.offset > 0:
            text += f"    add {reg}, {reg}, {arg.offset}\n"
        return text
    raise TypeError(f"unknown argument {arg!r}")


def _binop(op: BinaryOp, loc: Loc) -> List[str]:
    slot = _slot(op.index)
    lines = [load_arg_to_reg(op.lhs, "x0", loc), load_arg_to_reg(op.rhs, "x1", loc)]
    binop = op.binop
    if binop in _SIMPLE_BINOPS:
        lines += [f"    {_SIMPLE_BINOPS[binop]} x0, x0, x1\n", f"    str x0, [sp, {slot}]\n"]
    elif binop is Binop.MOD:
        lines += [
            "    sdiv x2, x0, x1\n",
            "    msub x2, x2, x1, x0\n",
            f"    str x2, [sp, {slot}]\n",
        ]
    elif binop is Binop.DIV:
        lines += ["    sdiv x2, x0, x1\n", f"    str x2, [sp, {slot}]\n"]
    elif binop in _COMPARISON_CONDITIONS:
        lines += [
            "    cmp x0, x1\n",
            f"    cset x0, {_COMPARISON_CONDITIONS[binop]}\n",
            f"    str x0, [sp, {slot}]\n",
        ]
    else:
        raise TypeError(f"unknown binary operator {binop!r}")
    return lines


def _op(name: str, op, loc: Loc, stack_size: int) -> List[str]:
    if isinstance(op, Return):
        lines = [] if op.arg is None else [load_arg_to_reg(op.arg, "x0", loc)]
        lines += [f"    ldp x29, x30, [sp], {stack_size}\n", "    ret\n"]
        return lines
    if isinstance(op, Negate):
        return [
            load_arg_to_reg(op.arg, "x0", loc),
            "    mov x1, 1\n",
            "    mneg x2, x0, x1\n",
            f"    str x2, [sp, {_slot(op.result)}]\n",
        ]
    if isinstance(op, UnaryNot):
        return [
            load_arg_to_reg(op.arg, "x0", loc),
            "    cmp x0, 0\n",
            "    cset x0, eq\n",
            f"    str x0, [sp, {_slot(op.result)}]\n",
        ]
    if isinstance(op, BinaryOp):
        return _binop(op, loc)
    if isinstance(op, ExternalAssign):
        return [
            load_arg_to_reg(op.arg, "x0", loc),
            f"    adrp x1, {op.name}\n",
            f"    add  x1, x1, :lo12:{op.name}\n",
            "    str x0, [x1]\n",
        ]
    if isinstance(op, AutoAssign):
        return [load_arg_to_reg(op.arg, "x0", loc), f"    str x0, [sp, {_slot(op.index)}]\n"]
    if isinstance(op, Store):
        return [
            f"    ldr x0, [sp, {_slot(op.index)}]\n",
            load_arg_to_reg(op.arg, "x1", loc),
            "    str x1, [x0]\n",
        ]
    if isinstance(op, Funcall):
        if len(op.args) > len(REGISTERS):
            raise UnsupportedFeature(
                loc,
                f"Too many function call arguments. We support only {len(REGISTERS)} "
                f"but {len(op.args)} were provided",
            )
        lines = [load_arg_to_reg(arg, reg, loc) for arg, reg in zip(op.args, REGISTERS)]
        lines += [f"    bl {op.name}\n", f"    str x0, [sp, {_slot(op.result)}]\n"]
        return lines
    if isinstance(op, Jmp):
        return [f"    b {name}.op_{op.addr}\n"]
    if isinstance(op, JmpIfNot):
        return [
            load_arg_to_reg(op.arg, "x0", loc),
            "    cmp x0, 0\n",
            f"    beq {name}.op_{op.addr}\n",
        ]
    raise TypeError(f"unknown op {op!r}")


def generate_function(func: Func) -> str:
    """Return the assembly of one function, prologue and epilogue included."""
    if func.auto_vars_count < func.params_count:
        raise ValueError("a function cannot have fewer auto variables than parameters")
    if func.params_count > len(REGISTERS):
        raise UnsupportedFeature(
            func.name_loc,
            f"Too many parameters in function definition. We support only {len(REGISTERS)} "
            f"but {func.params_count} were provided",
        )
    stack_size = align_bytes((2 + func.auto_vars_count) * 8, 16)
    name = func.name
    lines = [
        f".global {name}\n",
        f"{name}:\n",
        f"    stp x29, x30, [sp, -{stack_size}]!\n",
        "    mov x29, sp\n",
    ]
    lines.extend(
        f"    str {reg}, [sp, {(2 + i) * 8}]\n"
        for i, reg in enumerate(REGISTERS[: func.params_count])
    )
    for i, op in enumerate(func.body):
        lines.append(f"{name}.op_{i}:\n")
        lines.extend(_op(name, op.opcode, op.loc, stack_size))
    lines += [
        f"{name}.op_{len(func.body)}:\n",
        "    mov x0, 0\n",
        f"    ldp x29, x30, [sp], {stack_size}\n",
        "    ret\n",
    ]
    return "".join(lines)


def _generate_funcs(funcs: Iterable[Func]) -> str:
    return ".text\n" + "".join(generate_function(func) for func in funcs)


def generate_data_section(data: bytes) -> str:
    """Emit the static data as a byte list, or nothing when there is none."""
    if not data:
        return ""
    body = ",".join(f"0x{byte:02X}" for byte in data)
    return f".data\n.dat: .byte {body}\n"


def generate_globals(globals_: Iterable[str]) -> str:
    """Reserve eight zeroed bytes in .bss for every global variable."""
    names = list(globals_)
    if not names:
        return ""
    return ".bss\n" + "".join(f".global {name}\n{name}: .zero 8\n" for name in names)


def generate_program(program: Program) -> str:
    """Return the complete assembly source of a program."""
    return "".join(
        [
            _generate_funcs(program.funcs),
            generate_globals(program.globals),
            generate_data_section(bytes(program.data)),
        ]
    )