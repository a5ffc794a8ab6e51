from __future__ import annotations
import re
from dataclasses import dataclass
from typing import List, Optional


KIND_PARSE = "parse"
KIND_STRUCTURE = "structure"
KIND_BOUNDS = "bounds"
KIND_IO = "io"
KIND_INTERNAL = "internal"


class BPError(Exception):
    """Base class for interpreter errors."""

    def __init__(self, message: str, *, kind: str = KIND_INTERNAL, offset: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.offset = offset


class BPParseError(BPError):
    """Raised when tokenizing fails."""

    def __init__(self, message: str, *, offset: Optional[int] = None) -> None:
        super().__init__(message, kind=KIND_PARSE, offset=offset)


INCREMENT = "INCREMENT"
DECREMENT = "DECREMENT"
SET_VALUE = "SET_VALUE"
MOVE_RIGHT = "MOVE_RIGHT"
MOVE_LEFT = "MOVE_LEFT"
GOTO_CELL = "GOTO_CELL"
LOOP_START = "LOOP_START"
LOOP_END = "LOOP_END"
INPUT = "INPUT"
OUTPUT = "OUTPUT"
VALUE = "VALUE"

OPCODES = {
    "+": INCREMENT,
    "-": DECREMENT,
    "=": SET_VALUE,
    ">": MOVE_RIGHT,
    "<": MOVE_LEFT,
    "^": GOTO_CELL,
    "[": LOOP_START,
    "]": LOOP_END,
    ",": INPUT,
    ".": OUTPUT,
}

# Character literal that switches INPUT/OUTPUT into character mode.
CHAR_MODE_MARKER = "c"

INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1

_INTEGER_RE = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class Token:
    type: str
    text: str
    offset: int
    value: Optional[int] = None
    char: Optional[str] = None

    @property
    def char_mode(self) -> bool:
        # Only a quoted 'c' selects character mode; the numeric operand {99} does not.
        return self.char == CHAR_MODE_MARKER


class Lexer:
    def __init__(self, text: str) -> None:
        self.text = text
        self.index = 0

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        tokens_append = tokens.append
        opcodes = OPCODES
        text = self.text
        n = len(text)

        while self.index < n:
            ch = text[self.index]
            if ch in opcodes:
                tokens_append(Token(opcodes[ch], ch, self.index))
                self.index += 1
                continue
            if ch == "{":
                operand = self._consume_operand()
                if operand is not None:
                    tokens_append(operand)
                continue
            # Everything else is commentary.
            self.index += 1
        return tokens

    def _consume_operand(self) -> Optional[Token]:
        start = self.index
        close = self.text.find("}", start + 1)
        if close == -1:
            raise BPParseError(
                f"Unterminated value starting at position {start}",
                offset=start,
            )
        content = self.text[start + 1:close]
        raw = self.text[start:close + 1]
        self.index = close + 1
        if content == "":
            # `{}` is an explicit request for the opcode's default value.
            return None
        if len(content) == 3 and content[0] == "'" and content[2] == "'":
            return Token(VALUE, raw, start, value=ord(content[1]), char=content[1])
        if _INTEGER_RE.fullmatch(content):
            number = int(content)
            if INT64_MIN <= number <= INT64_MAX:
                return Token(VALUE, raw, start, value=number)
        raise BPParseError(
            f"Expected a character literal {{'a'}} or a number {{123}} but found {content} instead. At position {start}",
            offset=start,
        )


def tokenize(text: str) -> List[Token]:
    return Lexer(text).tokenize()
