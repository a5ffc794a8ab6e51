from __future__ import annotations
import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from lexer import (
    DECREMENT,
    GOTO_CELL,
    INCREMENT,
    INPUT,
    INT64_MAX,
    INT64_MIN,
    KIND_INTERNAL,
    KIND_IO,
    KIND_STRUCTURE,
    LOOP_END,
    LOOP_START,
    MOVE_LEFT,
    MOVE_RIGHT,
    OUTPUT,
    SET_VALUE,
    VALUE,
    BPError,
    Lexer,
    Token,
)
from tape import BPRuntimeError, LanguageStandard, Tape, lookup_standard


# Operand used when an opcode is not followed by a {value}.
DEFAULT_OPERANDS: Dict[str, int] = {
    INCREMENT: 1,
    DECREMENT: 1,
    MOVE_RIGHT: 1,
    MOVE_LEFT: 1,
    SET_VALUE: ord("0"),
    GOTO_CELL: ord("0"),
    LOOP_START: 0,
    LOOP_END: 0,
    INPUT: 0,
    OUTPUT: 0,
}

CUSTOM_STANDARD = "custom"

_INTEGER_RE = re.compile(r"[+-]?[0-9]+")


def _char_for_output(value: int) -> str:
    # Remainder keeps the sign of the cell, then the low 16 bits pick the code unit.
    remainder = abs(value) % 255
    if value < 0:
        remainder = -remainder
    return chr(remainder & 0xFFFF)


@dataclass(frozen=True)
class Operand:
    value: int
    char_mode: bool = False

    @classmethod
    def from_token(cls, token: Optional[Token], opcode: str) -> "Operand":
        if token is None:
            return cls(DEFAULT_OPERANDS[opcode])
        assert token.value is not None
        return cls(token.value, token.char_mode)


class InputReader:
    """Whitespace-delimited reader over a line provider.

    The provider returns one line per call and raises EOFError when input is
    exhausted. Blocks for as long as the provider does.
    """

    def __init__(self, provider: Callable[[], str]) -> None:
        self.provider = provider
        self._pending: List[str] = []

    def next_token(self) -> str:
        while not self._pending:
            try:
                line = self.provider()
            except EOFError:
                raise BPRuntimeError("Reached end of input while waiting for a value", kind=KIND_IO) from None
            except OSError as exc:
                raise BPRuntimeError(f"Failed to read input: {exc}", kind=KIND_IO) from exc
            self._pending.extend(line.split())
        return self._pending.pop(0)

    def read_char(self) -> int:
        return ord(self.next_token()[0])

    def read_int(self) -> int:
        text = self.next_token()
        if not _INTEGER_RE.fullmatch(text):
            raise BPRuntimeError(f"Expected an integer as input but found {text}", kind=KIND_IO)
        number = int(text)
        if not INT64_MIN <= number <= INT64_MAX:
            raise BPRuntimeError(f"Input {text} does not fit in a 64-bit cell", kind=KIND_IO)
        return number


@dataclass
class StateEntry:
    step_index: int
    token_index: int
    opcode: str
    offset: int
    operand: int
    pointer: int
    cell: Optional[int]


class StateLogger:
    def __init__(self, verbose: bool) -> None:
        self.verbose = verbose
        self.entries: List[StateEntry] = []
        self.next_step_index = 0

    def record(self, *, token_index: int, token: Token, operand: Operand, tape: Tape) -> None:
        step_index = self.next_step_index
        self.next_step_index += 1
        if not self.verbose:
            return
        # Peek at the cell directly so tracing does not skew the op counters.
        cell: Optional[int] = None
        if 0 <= tape.pointer < tape.length:
            cell = int(tape.cells[tape.pointer])
        self.entries.append(
            StateEntry(
                step_index=step_index,
                token_index=token_index,
                opcode=token.type,
                offset=token.offset,
                operand=operand.value,
                pointer=tape.pointer,
                cell=cell,
            )
        )


class Interpreter:
    def __init__(
        self,
        *,
        standard: Optional[LanguageStandard] = None,
        tape: Optional[Tape] = None,
        verbose: bool = False,
        input_provider: Optional[Callable[[], str]] = None,
        output_sink: Optional[Callable[[str], None]] = None,
    ) -> None:
        if tape is None:
            standard = standard or LanguageStandard.tacobell()
            tape = Tape.from_standard(standard)
        elif standard is not None:
            tape.apply_standard(standard)
        # A caller-supplied tape without a preset keeps its own settings.
        self.standard_name = standard.name if standard is not None else CUSTOM_STANDARD
        self.tape = tape
        self.verbose = verbose
        self.reader = InputReader(input_provider or (lambda: input()))
        self.output_sink = output_sink or (lambda text: print(text, end="", flush=True))
        self.logger = StateLogger(verbose=verbose)
        self.loop_stack: List[int] = []
        self.token_index = 0
        self._handlers: Dict[str, Callable[[Operand], Optional[int]]] = {
            INCREMENT: self._increment,
            DECREMENT: self._decrement,
            SET_VALUE: self._set_value,
            MOVE_RIGHT: self._move_right,
            MOVE_LEFT: self._move_left,
            GOTO_CELL: self._goto_cell,
            LOOP_START: self._loop_start,
            LOOP_END: self._loop_end,
            INPUT: self._input,
            OUTPUT: self._output,
        }

    # ---- configuration ----

    def set_language_standard(self, name: str) -> bool:
        """Apply a named preset. Unknown names leave the configuration untouched."""
        standard = lookup_standard(name)
        if standard is None:
            return False
        self.tape.apply_standard(standard)
        self.standard_name = standard.name
        return True

    @property
    def language_standard(self) -> str:
        return self.standard_name

    @property
    def wrapping(self) -> bool:
        return self.tape.wrap_cells

    @property
    def pointer_wrapping(self) -> bool:
        return self.tape.wrap_pointer

    @property
    def cell_min(self) -> int:
        return self.tape.cell_min

    @property
    def cell_max(self) -> int:
        return self.tape.cell_max

    # ---- running ----

    def parse(self, source: str) -> List[Token]:
        return Lexer(source).tokenize()

    def run(self, source: str) -> None:
        """Tokenize and execute ``source``. The tape is kept between runs."""
        self.execute(self.parse(source))

    def execute(self, tokens: List[Token]) -> None:
        self.loop_stack = []
        self.token_index = 0
        count = len(tokens)
        handlers = self._handlers
        record = self.logger.record

        while self.token_index < count:
            index = self.token_index
            token = tokens[index]
            if token.type == VALUE:
                # A value with no opcode in front of it does nothing.
                self.token_index = index + 1
                continue
            operand_token: Optional[Token] = None
            if index + 1 < count and tokens[index + 1].type == VALUE:
                operand_token = tokens[index + 1]
            operand = Operand.from_token(operand_token, token.type)
            try:
                jump = handlers[token.type](operand)
            except BPError as error:
                self._annotate(error, index, token)
                raise
            except Exception as exc:
                wrapped = BPRuntimeError(
                    f'Uncaught error while running token "{token.text}" executing with value {operand.value}: {exc}',
                    kind=KIND_INTERNAL,
                )
                self._annotate(wrapped, index, token)
                raise wrapped from exc
            record(token_index=index, token=token, operand=operand, tape=self.tape)
            if jump is not None:
                # Resume just after the matching loop start. An operand on the
                # loop end is not stepped over here, so the first body token still runs.
                self.token_index = jump + 1
            else:
                self.token_index = index + (2 if operand_token is not None else 1)

    def _annotate(self, error: BPError, index: int, token: Token) -> None:
        if error.offset is None:
            error.offset = token.offset
        if isinstance(error, BPRuntimeError) and error.token_index is None:
            error.token_index = index

    # ---- opcodes ----

    def _increment(self, operand: Operand) -> None:
        self.tape.write(self.tape.read() + operand.value)

    def _decrement(self, operand: Operand) -> None:
        self.tape.write(self.tape.read() - operand.value)

    def _set_value(self, operand: Operand) -> None:
        self.tape.write(operand.value)

    def _move_right(self, operand: Operand) -> None:
        self.tape.move(operand.value)

    def _move_left(self, operand: Operand) -> None:
        self.tape.move(-operand.value)

    def _goto_cell(self, operand: Operand) -> None:
        self.tape.move_pointer_to(operand.value)

    def _loop_start(self, operand: Operand) -> None:
        self.loop_stack.append(self.token_index)

    def _loop_end(self, operand: Operand) -> Optional[int]:
        if not self.loop_stack:
            raise BPRuntimeError("Found ending block without matching starting block.", kind=KIND_STRUCTURE)
        if self.tape.read() > 0:
            return self.loop_stack[-1]
        self.loop_stack.pop()
        return None

    def _input(self, operand: Operand) -> None:
        if operand.char_mode:
            self.tape.write(self.reader.read_char())
        else:
            self.tape.write(self.reader.read_int())

    def _output(self, operand: Operand) -> None:
        value = self.tape.read()
        if operand.char_mode:
            self.output_sink(_char_for_output(value))
        else:
            self.output_sink(str(value))


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter, *, depth: int = 10) -> None:
        self.interpreter = interpreter
        self.depth = depth

    def recent_steps(self) -> List[StateEntry]:
        return self.interpreter.logger.entries[-self.depth:]

    def format_text(self, error: BPError) -> str:
        lines = ["Trace (most recent step last):"]
        for entry in self.recent_steps():
            lines.append(
                f"  step {entry.step_index}: token {entry.token_index} {entry.opcode}({entry.operand})"
                f" at offset {entry.offset}  pointer={entry.pointer} cell={entry.cell}"
            )
        where = f" at offset {error.offset}" if error.offset is not None else ""
        lines.append(f"{error.__class__.__name__} [{error.kind}]{where}: {error.message}")
        return "\n".join(lines)

    def to_json(self, error: BPError) -> str:
        tape = self.interpreter.tape
        data: Dict[str, Any] = {
            "error": {
                "type": error.__class__.__name__,
                "kind": error.kind,
                "message": error.message,
                "offset": error.offset,
                "token_index": getattr(error, "token_index", None),
                "failing_step_index": self.interpreter.logger.next_step_index,
            },
            "state": {
                "standard": self.interpreter.standard_name,
                "pointer": tape.pointer,
                "tape_length": tape.length,
                "low_ops": tape.low_ops,
                "high_ops": tape.high_ops,
            },
            "trace": [entry.__dict__ for entry in self.recent_steps()],
        }
        return json.dumps(data, indent=2)
