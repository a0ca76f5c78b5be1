"""Code generator emitting flat assembler source for x86_64 Linux (ELF64)."""

from __future__ import annotations

from typing import Iterable, List, Sequence

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
    UnsupportedFeature,
    align_bytes,
)

REGISTERS = ("rdi", "rsi", "rdx", "rcx", "r8", "r9")

_SIGN_BIT = 1 << 63
_U64 = 1 << 64

# Operators computed with rax <op> rbx and stored from rax.
_SIMPLE_BINOPS = {
    Binop.BIT_OR: "or rax, rbx",
    Binop.BIT_AND: "and rax, rbx",
    Binop.PLUS: "add rax, rbx",
    Binop.MINUS: "sub rax, rbx",
}

_SHIFT_BINOPS = {
    Binop.BIT_SHL: "shl rax, cl",
    Binop.BIT_SHR: "shr rax, cl",
}

_COMPARISON_SETS = {
    Binop.LESS: "setl",
    Binop.GREATER: "setg",
    Binop.EQUAL: "sete",
    Binop.NOT_EQUAL: "setne",
    Binop.GREATER_EQUAL: "setge",
    Binop.LESS_EQUAL: "setle",
}


def _signed(value: int) -> int:
    return value - _U64 if value >= _SIGN_BIT else value


def load_arg_to_reg(arg, reg: str) -> str:
    """Return the instructions that load an argument's value into a register."""
    if isinstance(arg, Deref):
        return f"    mov {reg}, [rbp-{arg.index * 8}]\n    mov {reg}, [{reg}]\n"
    if isinstance(arg, RefAutoVar):
        return f"    lea {reg}, [rbp-{arg.index * 8}]\n"
    if isinstance(arg, RefExternal):
        return f"    lea {reg}, [_{arg.name}]\n"
    if isinstance(arg, External):
        return f"    mov {reg}, [_{arg.name}]\n"
    if isinstance(arg, AutoVar):
        return f"    mov {reg}, [rbp-{arg.index * 8}]\n"
    if isinstance(arg, Literal):
        return f"    mov {reg}, {_signed(arg.value)}\n"
    if isinstance(arg, DataOffset):
        return f"    mov {reg}, dat+{arg.offset}\n"
    raise TypeError(f"unknown argument {arg!r}")


def _binop(op: BinaryOp) -> List[str]:
    slot = op.index * 8
    binop = op.binop
    if binop in _SIMPLE_BINOPS:
        return [
            load_arg_to_reg(op.lhs, "rax"),
            load_arg_to_reg(op.rhs, "rbx"),
            f"    {_SIMPLE_BINOPS[binop]}\n",
            f"    mov [rbp-{slot}], rax\n",
        ]
    if binop in _SHIFT_BINOPS:
        return [
            load_arg_to_reg(op.lhs, "rax"),
            load_arg_to_reg(op.rhs, "rcx"),
            f"    {_SHIFT_BINOPS[binop]}\n",
            f"    mov [rbp-{slot}], rax\n",
        ]
    if binop in (Binop.MOD, Binop.DIV):
        result_reg = "rdx" if binop is Binop.MOD else "rax"
        return [
            load_arg_to_reg(op.lhs, "rax"),
            load_arg_to_reg(op.rhs, "rbx"),
            "    cqo\n",
            "    idiv rbx\n",
            f"    mov [rbp-{slot}], {result_reg}\n",
        ]
    if binop is Binop.MULT:
        return [
            load_arg_to_reg(op.lhs, "rax"),
            load_arg_to_reg(op.rhs, "rbx"),
            "    xor rdx, rdx\n",
            "    imul rbx\n",
            f"    mov [rbp-{slot}], rax\n",
        ]
    if binop in _COMPARISON_SETS:
        return [
            load_arg_to_reg(op.lhs, "rax"),
            load_arg_to_reg(op.rhs, "rbx"),
            "    xor rdx, rdx\n",
            "    cmp rax, rbx\n",
            f"    {_COMPARISON_SETS[binop]} dl\n",
            f"    mov [rbp-{slot}], rdx\n",
        ]
    raise TypeError(f"unknown binary operator {binop!r}")


def _op(op, loc) -> List[str]:
    if isinstance(op, Return):
        lines = [] if op.arg is None else [load_arg_to_reg(op.arg, "rax")]
        lines += ["    mov rsp, rbp\n", "    pop rbp\n", "    ret\n"]
        return lines
    if isinstance(op, Store):
        return [
            f"    mov rax, [rbp-{op.index * 8}]\n",
            load_arg_to_reg(op.arg, "rbx"),
            "    mov [rax], rbx\n",
        ]
    if isinstance(op, ExternalAssign):
        return [load_arg_to_reg(op.arg, "rax"), f"    mov [_{op.name}], rax\n"]
    if isinstance(op, AutoAssign):
        return [load_arg_to_reg(op.arg, "rax"), f"    mov QWORD [rbp-{op.index * 8}], rax\n"]
    if isinstance(op, Negate):
        return [
            load_arg_to_reg(op.arg, "rax"),
            "    neg rax\n",
            f"    mov [rbp-{op.result * 8}], rax\n",
        ]
    if isinstance(op, UnaryNot):
        return [
            "    xor rbx, rbx\n",
            load_arg_to_reg(op.arg, "rax"),
            "    test rax, rax\n",
            "    setz bl\n",
            f"    mov [rbp-{op.result * 8}], rbx\n",
        ]
    if isinstance(op, BinaryOp):
        return _binop(op)
    if isinstance(op, Funcall):
        if len(op.args) > len(REGISTERS):
            raise UnsupportedFeature(
                loc,
                f"Too many function call arguments. We support only {len(REGISTERS)} "
                f"but {len(op.args)} were provided",
            )
        lines = [load_arg_to_reg(arg, reg) for arg, reg in zip(op.args, REGISTERS)]
        # The ABI passes the number of vector arguments in al; variadic callees need it zeroed.
        lines += [
            "    mov al, 0\n",
            f"    call _{op.name}\n",
            f"    mov [rbp-{op.result * 8}], rax\n",
        ]
        return lines
    if isinstance(op, JmpIfNot):
        return [
            load_arg_to_reg(op.arg, "rax"),
            "    test rax, rax\n",
            f"    jz .op_{op.addr}\n",
        ]
    if isinstance(op, Jmp):
        return [f"    jmp .op_{op.addr}\n"]
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
    stack_size = align_bytes(func.auto_vars_count * 8, 16)
    lines = [
        f"public _{func.name} as '{func.name}'\n",
        f"_{func.name}:\n",
        "    push rbp\n",
        "    mov rbp, rsp\n",
    ]
    if stack_size > 0:
        lines.append(f"    sub rsp, {stack_size}\n")
    lines.extend(
        f"    mov QWORD [rbp-{(i + 1) * 8}], {reg}\n"
        for i, reg in enumerate(REGISTERS[: func.params_count])
    )
    for i, op in enumerate(func.body):
        lines.append(f".op_{i}:\n")
        lines.extend(_op(op.opcode, op.loc))
    lines += [
        f".op_{len(func.body)}:\n",
        "    mov rax, 0\n",
        "    mov rsp, rbp\n",
        "    pop rbp\n",
        "    ret\n",
    ]
    return "".join(lines)


def _generate_funcs(funcs: Iterable[Func]) -> str:
    return 'section ".text" executable\n' + "".join(generate_function(f) for f in funcs)


def generate_extrns(extrns: Iterable[str], funcs: Sequence[Func], globals_: Sequence[str]) -> str:
    """Declare the external symbols that are defined neither as functions nor as globals."""
    defined = {func.name for func in funcs} | set(globals_)
    return "".join(
        f"extrn '{name}' as _{name}\n" for name in extrns if name not in defined
    )


def generate_globals(globals_: Iterable[str]) -> str:
    """Reserve one quadword for every global variable."""
    return "".join(f"public _{name} as '{name}'\n_{name}: rq 1\n" for name in globals_)


def generate_data_section(data: bytes) -> str:
    """Emit the static data as a byte list, or nothing when there is none."""
    if not data:
        return ""
    body = ",".join(f"0x{byte:02X}" for byte in data)
    return f'section ".data"\ndat: db {body}\n'


def generate_program(program: Program) -> str:
    """Return the complete assembly source of a program."""
    return "".join(
        [
            "format ELF64\n",
            _generate_funcs(program.funcs),
            generate_extrns(program.extrns, program.funcs, program.globals),
            generate_data_section(bytes(program.data)),
            generate_globals(program.globals),
        ]
    )