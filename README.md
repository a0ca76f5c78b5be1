# bcodegen

`bcodegen` holds the middle and back end of a small compiler for the B
programming language: a three-address intermediate representation, the
bookkeeping a front end needs while building it, and generators that turn a
compiled program into assembly text or a readable listing.

## Modules

- `bcodegen.ops` – the intermediate representation.
  - Operands: `AutoVar`, `Deref`, `RefAutoVar`, `RefExternal`, `External`,
    `Literal` (an unsigned 64-bit value; anything else wraps modulo 2**64)
    and `DataOffset`.
  - Operations: `UnaryNot`, `Negate`, `BinaryOp`, `AutoAssign`,
    `ExternalAssign`, `Store`, `Funcall`, `Jmp`, `JmpIfNot` and `Return`.
  - `Binop`, the binary operators, with `Binop.precedence()`; higher values
    bind tighter, from `BIT_OR` (0) up to `MULT`, `MOD` and `DIV` (6).
  - Containers: `Loc` (file, line, column), `OpWithLocation`, `Func` and
    `Program` (functions, data bytes, external names and global names).
  - `AutoVarsAllocator.allocate()` hands out 1-based slots for automatic
    variables and tracks the peak count in `max`.
  - `align_bytes(size, alignment)` rounds a size up to a multiple of the
    alignment.
  - `UnsupportedFeature`, raised for valid constructs a generator cannot
    handle yet.
- `bcodegen.scope` – name resolution for a front end.
  - `Scopes`: a stack of nested scopes with `push`, `pop`, `find_near`
    (innermost scope only), `find` (innermost outwards) and `declare`,
    which rejects a redefinition within the same scope.
  - `LabelTable`: the labels of one function, with `find` and `define`,
    which rejects duplicates.
  - `AutoStorage`, `ExternalStorage`, `Var` and `Label`.
  - `is_keyword(name)` over `B_KEYWORDS`, `declare_name_if_missing(names, name)`
    and `strip_suffix(path, suffix)`, which returns `None` when the path does
    not end with the suffix.
  - `CompileError`, carrying a location, a message and optional notes.
- `bcodegen.fasm_x86_64` – flat assembler source for x86-64 Linux (ELF64).
  Besides `generate_program`, it exposes `generate_function`,
  `generate_extrns`, `generate_globals`, `generate_data_section` and
  `load_arg_to_reg`.
- `bcodegen.gas_aarch64` – GNU assembler source for AArch64 Linux, with
  `generate_program`, `generate_function`, `generate_globals`,
  `generate_data_section`, `load_arg_to_reg` and `load_literal_to_reg`.
- `bcodegen.ir` – a readable listing of the intermediate representation,
  with `generate_program`, `generate_function`, `dump_arg` and
  `generate_data_section` (a hex and ASCII view of the data bytes).

## Example

```python
from bcodegen import ir, fasm_x86_64
from bcodegen.ops import Func, Literal, Loc, OpWithLocation, Program, Return

main = Func(
    name="main",
    name_loc=Loc("main.b", 1, 1),
    body=[OpWithLocation(Return(Literal(0)), Loc("main.b", 2, 5))],
)
program = Program(funcs=[main])

print(ir.generate_function(main))        # main(0, 0):\n       0:    return 0
print(fasm_x86_64.generate_program(program))
```

Every generator returns its output as a `str`.

## Errors

- `bcodegen.scope.CompileError` for redefined variables and duplicate labels.
- `bcodegen.ops.UnsupportedFeature` when a function has more parameters, or a
  call more arguments, than the target has argument registers (six on
  x86-64, eight on AArch64), and on AArch64 for data offsets of 4095 or more.
- `ValueError` from the assembly generators when a `Func` has fewer
  automatic variables than parameters.

## What this package does not do

- It does not read B source text: there is no tokenizer or parser, so a
  `Program` has to be built from the `bcodegen.ops` types by the caller.
- It has no command-line program and does not write files.
- It produces assembly text only; it does not run an assembler or linker,
  and does not execute the result.
- Its outputs are x86-64 flat assembler, AArch64 GNU assembler and the
  readable listing; there are no other targets.

## Running the tests

Install the `test` extra and run `pytest` from the project directory.