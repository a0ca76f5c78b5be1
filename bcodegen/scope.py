"""Name resolution: lexical scopes of variables, function labels and keywords."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from bcodegen.ops import Loc

B_KEYWORDS: Tuple[str, ...] = (
    "auto",
    "extrn",
    "case",
    "if",
    "while",
    "switch",
    "goto",
    "return",
)


class CompileError(Exception):
    """A diagnostic that stops compilation, with optional notes pointing elsewhere."""

    def __init__(
        self,
        loc: Loc,
        message: str,
        notes: Iterable[Tuple[Loc, str]] = (),
    ) -> None:
        self.loc = loc
        self.message = message
        self.notes = tuple(notes)
        lines = [f"{loc}: ERROR: {message}"]
        lines.extend(f"{note_loc}: NOTE: {note}" for note_loc, note in self.notes)
        super().__init__("\n".join(lines))


@dataclass(frozen=True)
class AutoStorage:
    """A variable living in an automatic (stack) slot."""

    index: int


@dataclass(frozen=True)
class ExternalStorage:
    """A variable bound to an external symbol."""

    name: str


Storage = Union[AutoStorage, ExternalStorage]


@dataclass(frozen=True)
class Var:
    name: str
    loc: Loc
    storage: Storage


@dataclass(frozen=True)
class Label:
    name: str
    loc: Loc
    addr: int


class Scopes:
    """A stack of nested scopes; the last one is the innermost."""

    def __init__(self) -> None:
        self._scopes: List[List[Var]] = []

    def __len__(self) -> int:
        return len(self._scopes)

    def push(self) -> None:
        """Open a new, empty innermost scope."""
        self._scopes.append([])

    def pop(self) -> None:
        """Close the innermost scope."""
        if not self._scopes:
            raise IndexError("no scope to pop")
        self._scopes.pop()

    def _innermost(self) -> List[Var]:
        if not self._scopes:
            raise IndexError("no scope is open")
        return self._scopes[-1]

    def find_near(self, name: str) -> Optional[Var]:
        """Look the name up in the innermost scope only."""
        return next((var for var in self._innermost() if var.name == name), None)

    def find(self, name: str) -> Optional[Var]:
        """Look the name up from the innermost scope outwards."""
        for scope in reversed(self._scopes):
            for var in scope:
                if var.name == name:
                    return var
        return None

    def declare(self, name: str, loc: Loc, storage: Storage) -> Var:
        """Add a variable to the innermost scope, rejecting redefinitions there."""
        existing = self.find_near(name)
        if existing is not None:
            raise CompileError(
                loc,
                f"redefinition of variable `{name}`",
                [(existing.loc, "the first declaration is located here")],
            )
        var = Var(name, loc, storage)
        self._scopes[-1].append(var)
        return var


class LabelTable:
    """Labels defined within a single function body."""

    def __init__(self) -> None:
        self._labels: List[Label] = []

    def __len__(self) -> int:
        return len(self._labels)

    def __iter__(self) -> Iterator[Label]:
        return iter(self._labels)

    def clear(self) -> None:
        self._labels.clear()

    def find(self, name: str) -> Optional[Label]:
        return next((label for label in self._labels if label.name == name), None)

    def define(self, name: str, loc: Loc, addr: int) -> Label:
        """Define a label at an op address, rejecting duplicates."""
        existing = self.find(name)
        if existing is not None:
            raise CompileError(
                loc,
                f"duplicate label `{name}`",
                [(existing.loc, "the first definition is located here")],
            )
        label = Label(name, loc, addr)
        self._labels.append(label)
        return label


def is_keyword(name: str) -> bool:
    return name in B_KEYWORDS


def declare_name_if_missing(names: List[str], name: str) -> None:
    """Append the name to the list unless it is already there, keeping order."""
    if name not in names:
        names.append(name)


def strip_suffix(path: str, suffix: str) -> Optional[str]:
    """Return path without suffix, or None if path does not end with it."""
    if not path.endswith(suffix):
        return None
    return path[: len(path) - len(suffix)]