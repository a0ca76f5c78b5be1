"""Intermediate representation produced by the front end and consumed by code generators."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

_U64_MASK = (1 << 64) - 1


@dataclass(frozen=True)
class Loc:
    """A position in a source file."""

    file_path: str
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.file_path}:{self.line}:{self.column}"


class UnsupportedFeature(Exception):
    """Raised when a construct is valid but not supported by the code generator yet."""

    def __init__(self, loc: Loc, message: str) -> None:
        self.loc = loc
        self.message = message
        super().__init__(f"{loc}: TODO: {message}")


class Binop(Enum):
    """Binary operators of the language."""

    PLUS = "plus"
    MINUS = "minus"
    MULT = "mult"
    MOD = "mod"
    DIV = "div"
    LESS = "less"
    GREATER = "greater"
    EQUAL = "equal"
    NOT_EQUAL = "not_equal"
    GREATER_EQUAL = "greater_equal"
    LESS_EQUAL = "less_equal"
    BIT_OR = "bit_or"
    BIT_AND = "bit_and"
    BIT_SHL = "bit_shl"
    BIT_SHR = "bit_shr"

    def precedence(self) -> int:
        """Return the binding strength; higher binds tighter."""
        return _PRECEDENCE_OF[self]


# The later a row appears, the higher the precedence of its operators.
PRECEDENCE: Tuple[Tuple[Binop, ...], ...] = (
    (Binop.BIT_OR,),
    (Binop.BIT_AND,),
    (Binop.BIT_SHL, Binop.BIT_SHR),
    (Binop.EQUAL, Binop.NOT_EQUAL),
    (Binop.LESS, Binop.GREATER, Binop.GREATER_EQUAL, Binop.LESS_EQUAL),
    (Binop.PLUS, Binop.MINUS),
    (Binop.MULT, Binop.MOD, Binop.DIV),
)

MAX_PRECEDENCE = len(PRECEDENCE)

_PRECEDENCE_OF = {binop: level for level, row in enumerate(PRECEDENCE) for binop in row}


@dataclass(frozen=True)
class AutoVar:
    """Value of an automatic (stack) variable."""

    index: int


@dataclass(frozen=True)
class Deref:
    """Value pointed to by an automatic variable."""

    index: int


@dataclass(frozen=True)
class RefAutoVar:
    """Address of an automatic variable."""

    index: int


@dataclass(frozen=True)
class RefExternal:
    """Address of an external symbol."""

    name: str


@dataclass(frozen=True)
class External:
    """Value of an external symbol."""

    name: str


@dataclass(frozen=True)
class Literal:
    """An unsigned 64-bit constant; values wrap modulo 2**64."""

    value: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", self.value & _U64_MASK)


@dataclass(frozen=True)
class DataOffset:
    """Address of an offset into the data section."""

    offset: int


Arg = Union[AutoVar, Deref, RefAutoVar, RefExternal, External, Literal, DataOffset]


@dataclass(frozen=True)
class UnaryNot:
    result: int
    arg: Arg


@dataclass(frozen=True)
class Negate:
    result: int
    arg: Arg


@dataclass(frozen=True)
class BinaryOp:
    binop: Binop
    index: int
    lhs: Arg
    rhs: Arg


@dataclass(frozen=True)
class AutoAssign:
    index: int
    arg: Arg


@dataclass(frozen=True)
class ExternalAssign:
    name: str
    arg: Arg


@dataclass(frozen=True)
class Store:
    index: int
    arg: Arg


@dataclass(frozen=True)
class Funcall:
    result: int
    name: str
    args: Tuple[Arg, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(self.args))


@dataclass(frozen=True)
class Jmp:
    addr: int


@dataclass(frozen=True)
class JmpIfNot:
    addr: int
    arg: Arg


@dataclass(frozen=True)
class Return:
    arg: Optional[Arg] = None


Op = Union[
    UnaryNot,
    Negate,
    BinaryOp,
    AutoAssign,
    ExternalAssign,
    Store,
    Funcall,
    Jmp,
    JmpIfNot,
    Return,
]


@dataclass(frozen=True)
class OpWithLocation:
    opcode: Op
    loc: Loc


@dataclass
class Func:
    """A compiled function body."""

    name: str
    name_loc: Loc
    body: list = field(default_factory=list)
    params_count: int = 0
    auto_vars_count: int = 0


@dataclass
class Program:
    """Everything a code generator needs: functions, symbols and static data."""

    funcs: list = field(default_factory=list)
    data: bytearray = field(default_factory=bytearray)
    extrns: list = field(default_factory=list)
    globals: list = field(default_factory=list)


@dataclass
class AutoVarsAllocator:
    """Hands out automatic variable slots and remembers the peak usage."""

    count: int = 0
    max: int = 0

    def allocate(self) -> int:
        """Allocate a new slot and return its 1-based index."""
        self.count += 1
        if self.count > self.max:
            self.max = self.count
        return self.count


def align_bytes(size: int, alignment: int) -> int:
    """Round size up to the next multiple of alignment."""
    rem = size % alignment
    return size + alignment - rem if rem else size