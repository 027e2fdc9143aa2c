## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import enum
from dataclasses import dataclass

from .mbf import round_single


class ScalarType(enum.Enum):
    INT = '%'
    SINGLE = '!'
    DOUBLE = '#'
    STRING = '$'

    @property
    def is_numeric(self) -> bool:
        return self is not ScalarType.STRING

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @staticmethod
    def from_suffix(ch: str) -> "ScalarType | None":
        return _SUFFIXES.get(ch)

    @property
    def size(self) -> int:
        """Bytes per element when an array is viewed as raw memory."""
        return {ScalarType.INT: 2, ScalarType.SINGLE: 4, ScalarType.DOUBLE: 8, ScalarType.STRING: 3}[self]


_RANKS = {ScalarType.INT: 0, ScalarType.SINGLE: 1, ScalarType.DOUBLE: 2, ScalarType.STRING: 3}
_SUFFIXES = {t.value: t for t in ScalarType}


@dataclass(eq=False)
class StrDesc:
    """Descriptor of a string living in the string heap; `ptr` moves when the heap compacts."""
    length: int
    ptr: int


@dataclass(frozen=True)
class Value:
    type: ScalarType
    value: int | float | str

    @staticmethod
    def int(v: int) -> "Value":
        return Value(ScalarType.INT, int(v))

    @staticmethod
    def single(v: float) -> "Value":
        return Value(ScalarType.SINGLE, round_single(float(v)))

    @staticmethod
    def double(v: float) -> "Value":
        return Value(ScalarType.DOUBLE, float(v))

    @staticmethod
    def string(s: str) -> "Value":
        return Value(ScalarType.STRING, s)

    @staticmethod
    def default(t: ScalarType) -> "Value":
        return Value(t, "" if t is ScalarType.STRING else (0 if t is ScalarType.INT else 0.0))

    @property
    def is_numeric(self) -> bool:
        return self.type.is_numeric

    @property
    def is_string(self) -> bool:
        return self.type is ScalarType.STRING

    def __repr__(self):
        return f"Value.{self.type.name.lower()}({self.value!r})"


TRUE = Value.int(-1)
FALSE = Value.int(0)
