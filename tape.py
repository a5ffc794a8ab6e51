from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

import numpy as np
from numpy.typing import NDArray

from lexer import INT64_MAX, INT64_MIN, KIND_BOUNDS, BPError


DEFAULT_TAPE_LENGTH = 30000


class BPRuntimeError(BPError):
    """Raised for faults while executing tokens against the tape."""

    def __init__(self, message: str, *, kind: str = KIND_BOUNDS, offset: Optional[int] = None) -> None:
        super().__init__(message, kind=kind, offset=offset)
        self.token_index: Optional[int] = None


@dataclass(frozen=True)
class LanguageStandard:
    name: str
    tape_length: int
    cell_min: int
    cell_max: int
    wrap_cells: bool
    wrap_pointer: bool

    @classmethod
    def tacobell(cls) -> "LanguageStandard":
        return cls("tacobell", 30000, 0, 255, True, True)

    @classmethod
    def bp(cls) -> "LanguageStandard":
        return cls("bp", 50000, 0, 2**31 - 1, True, True)

    @classmethod
    def extbp(cls) -> "LanguageStandard":
        return cls("extbp", 100000, INT64_MIN, INT64_MAX, True, True)


STANDARDS: Dict[str, LanguageStandard] = {
    std.name: std for std in (LanguageStandard.tacobell(), LanguageStandard.bp(), LanguageStandard.extbp())
}


def lookup_standard(name: str) -> Optional[LanguageStandard]:
    """Return the preset called ``name`` (case-insensitive, whitespace trimmed) or None."""
    return STANDARDS.get(name.strip().lower())


def _to_int64(value: int) -> int:
    # Two's complement fold, matching what a 64-bit cell does on overflow.
    value &= (1 << 64) - 1
    if value & (1 << 63):
        value -= 1 << 64
    return value


class Tape:
    """Bounded memory tape with a movable pointer.

    Cell writes and pointer moves honour the wrap flags. ``low_ops`` counts
    cell reads, writes and pointer travel; ``high_ops`` counts tape management
    calls (resizing, replacing, inspecting the whole tape).
    """

    def __init__(
        self,
        length: int = DEFAULT_TAPE_LENGTH,
        *,
        cell_min: int = 0,
        cell_max: int = 255,
        wrap_cells: bool = True,
        wrap_pointer: bool = True,
    ) -> None:
        if length <= 0:
            raise ValueError("tape length must be positive")
        self.cells: NDArray[np.int64] = np.zeros(length, dtype=np.int64)
        self.pointer = 0
        self.cell_min = 0
        self.cell_max = 0
        self.set_cell_bounds(cell_min, cell_max)
        self.wrap_cells = wrap_cells
        self.wrap_pointer = wrap_pointer
        self.low_ops = 0
        self.high_ops = 0

    @classmethod
    def from_standard(cls, standard: LanguageStandard) -> "Tape":
        return cls(
            standard.tape_length,
            cell_min=standard.cell_min,
            cell_max=standard.cell_max,
            wrap_cells=standard.wrap_cells,
            wrap_pointer=standard.wrap_pointer,
        )

    def apply_standard(self, standard: LanguageStandard) -> None:
        self.resize(standard.tape_length)
        self.set_cell_bounds(standard.cell_min, standard.cell_max)
        self.wrap_cells = standard.wrap_cells
        self.wrap_pointer = standard.wrap_pointer

    def set_cell_bounds(self, cell_min: int, cell_max: int) -> None:
        if cell_min > cell_max:
            raise ValueError(f"cell_min {cell_min} is greater than cell_max {cell_max}")
        self.cell_min = int(cell_min)
        self.cell_max = int(cell_max)

    @property
    def length(self) -> int:
        return int(self.cells.size)

    def read(self) -> int:
        self.low_ops += 1
        self._check_pointer(self.pointer)
        return int(self.cells[self.pointer])

    def write(self, value: int) -> None:
        self.low_ops += 1
        self._check_pointer(self.pointer)
        value = int(value)
        if self.wrap_cells:
            # A single reflection step: values more than one range width away stay out of range.
            if value > self.cell_max:
                value = self.cell_min + (value - self.cell_max - 1)
            elif value < self.cell_min:
                value = self.cell_max - (self.cell_min - value - 1)
        self.cells[self.pointer] = _to_int64(value)

    def move(self, delta: int) -> None:
        self.low_ops += 1
        self.pointer = self._resolve_pointer(self.pointer + int(delta))

    def move_pointer_to(self, position: int) -> None:
        position = int(position)
        self.low_ops += abs(position - self.pointer)
        self.pointer = self._resolve_pointer(position)

    def resize(self, new_length: int) -> None:
        if new_length <= 0:
            raise ValueError("tape length must be positive")
        self.high_ops += 1
        resized = np.zeros(new_length, dtype=np.int64)
        keep = min(new_length, self.cells.size)
        resized[:keep] = self.cells[:keep]
        self.cells = resized

    def replace_tape(self, values: Iterable[int]) -> None:
        data = np.array([_to_int64(int(v)) for v in values], dtype=np.int64)
        if data.size == 0:
            raise ValueError("tape length must be positive")
        self.high_ops += 1
        self.cells = data

    def current_tape(self) -> NDArray[np.int64]:
        """Return the live backing array; writes to it change the tape."""
        self.high_ops += 1
        return self.cells

    def snapshot(self) -> NDArray[np.int64]:
        self.high_ops += 1
        return self.cells.copy()

    def restore(self, values: Iterable[int]) -> None:
        self.replace_tape(values)

    def clear(self) -> None:
        self.replace_tape([0] * self.length)

    def _resolve_pointer(self, position: int) -> int:
        if 0 <= position < self.cells.size:
            return position
        if self.wrap_pointer:
            return self.cells.size - 1 if position < 0 else 0
        raise BPRuntimeError(f"The pointer is in an invalid position: {position}")

    def _check_pointer(self, position: int) -> None:
        if not 0 <= position < self.cells.size:
            raise BPRuntimeError(f"The pointer is in an invalid position: {position}")
