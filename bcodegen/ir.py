"""Human-readable dump of the intermediate representation."""

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
    Negate,
    Program,
    RefAutoVar,
    RefExternal,
    Return,
    Store,
    UnaryNot,
)

_SIGN_BIT = 1 << 63
_U64 = 1 << 64

_ROW_SIZE = 12

# Bytes shown as a plain space so that control characters keep the layout intact.
_WHITESPACE = frozenset(b" \t\n\x0c\r")

_BINOP_SYMBOLS = {
    Binop.BIT_OR: " | ",
    Binop.BIT_AND: " & ",
    Binop.BIT_SHL: " << ",
    Binop.BIT_SHR: " >> ",
    Binop.PLUS: " + ",
    Binop.MINUS: " - ",
    Binop.MOD: " % ",
    Binop.DIV: " / ",
    Binop.MULT: " * ",
    Binop.LESS: " < ",
    Binop.GREATER: " > ",
    Binop.EQUAL: " == ",
    Binop.NOT_EQUAL: " != ",
    Binop.GREATER_EQUAL: " >= ",
    Binop.LESS_EQUAL: " < ",
}


def _signed(value: int) -> int:
    return value - _U64 if value >= _SIGN_BIT else value


def dump_arg(arg) -> str:
    """Return the textual form of an argument."""
    if isinstance(arg, External):
        return arg.name
    if isinstance(arg, Deref):
        return f"deref[{arg.index}]"
    if isinstance(arg, RefAutoVar):
        return f"ref auto[{arg.index}]"
    if isinstance(arg, RefExternal):
        return f"ref {arg.name}"
    if isinstance(arg, Literal):
        return str(_signed(arg.value))
    if isinstance(arg, AutoVar):
        return f"auto[{arg.index}]"
    if isinstance(arg, DataOffset):
        return f"data[{arg.offset}]"
    raise TypeError(f"unknown argument {arg!r}")


def _dump_op(op) -> str:
    if isinstance(op, Return):
        return "    return " + ("" if op.arg is None else dump_arg(op.arg))
    if isinstance(op, Store):
        return f"    store deref[{op.index}], {dump_arg(op.arg)}"
    if isinstance(op, ExternalAssign):
        return f"    {op.name} = {dump_arg(op.arg)}"
    if isinstance(op, AutoAssign):
        return f"    auto[{op.index}] = {dump_arg(op.arg)}"
    if isinstance(op, Negate):
        return f"    auto[{op.result}] = -{dump_arg(op.arg)}"
    if isinstance(op, UnaryNot):
        return f"    auto[{op.result}] = !{dump_arg(op.arg)}"
    if isinstance(op, BinaryOp):
        return (
            f"    auto[{op.index}] = {dump_arg(op.lhs)}"
            f"{_BINOP_SYMBOLS[op.binop]}{dump_arg(op.rhs)}"
        )
    if isinstance(op, Funcall):
        args = "".join(f", {dump_arg(arg)}" for arg in op.args)
        return f'    auto[{op.result}] = call("{op.name}"{args})'
    if isinstance(op, JmpIfNot):
        return f"    jmp_if_not {op.addr}:, {dump_arg(op.arg)}"
    if isinstance(op, Jmp):
        return f"    jmp {op.addr}:"
    raise TypeError(f"unknown op {op!r}")


def generate_function(func: Func) -> str:
    """Return the listing of one function: a header and one numbered line per op."""
    lines = [f"{func.name}({func.params_count}, {func.auto_vars_count}):\n"]
    lines.extend(f"{i:>8}:{_dump_op(op.opcode)}\n" for i, op in enumerate(func.body))
    return "".join(lines)


def _generate_funcs(funcs: Iterable[Func]) -> str:
    return "-- Functions --\n\n" + "".join(generate_function(func) for func in funcs)


def _generate_extrns(extrns: Iterable[str]) -> str:
    return "\n-- External Symbols --\n\n" + "".join(f"    {name}\n" for name in extrns)


def _generate_globals(globals_: Iterable[str]) -> str:
    return "\n-- Global Variables --\n\n" + "".join(f"    {name}\n" for name in globals_)


def _printable(byte: int) -> str:
    if byte in _WHITESPACE:
        return " "
    if 0x21 <= byte <= 0x7E:
        return chr(byte)
    return "."


def generate_data_section(data: bytes) -> str:
    """Return a hex dump of the data section, or nothing when it is empty."""
    if not data:
        return ""
    lines: List[str] = ["\n-- Data Section --\n\n"]
    for start in range(0, len(data), _ROW_SIZE):
        row = data[start : start + _ROW_SIZE]
        hex_part = "".join(f" {byte:02X}" for byte in row)
        hex_part += "   " * (_ROW_SIZE - len(row))
        text_part = "".join(_printable(byte) for byte in row)
        lines.append(f"{start:04X}:{hex_part} | {text_part}\n")
    return "".join(lines)


def generate_program(program: Program) -> str:
    """Return the full listing of a program."""
    return "".join(
        [
            _generate_funcs(program.funcs),
            _generate_extrns(program.extrns),
            _generate_globals(program.globals),
            generate_data_section(bytes(program.data)),
        ]
    )