## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import math
import struct
from dataclasses import dataclass

from .heap import StringHeap
from .mbf import ieee_to_mbf32, ieee_to_mbf64, mbf32_to_ieee, mbf64_to_ieee
from .types import ScalarType, StrDesc, Value
from .numeric import convert
from .variables import DefaultTypeTable, split_suffix
from .errors import DuplicateDefinition, SubscriptOutOfRange, IllegalFunctionCall, OutOfMemory, TypeMismatch, BasicSyntaxError


AUTO_DIM_UPPER = 10
MAX_ELEMENTS = 65535


@dataclass
class Array:
    name: str
    type: ScalarType
    dims: list[tuple[int, int]]
    elements: list
    raw: bytearray | None = None

    @property
    def rank(self) -> int:
        return len(self.dims)

    def offset(self, subscripts: list[int]) -> int:
        if len(subscripts) != self.rank: raise SubscriptOutOfRange()
        index = 0
        for sub, (lb, ub) in zip(subscripts, self.dims):
            if not lb <= sub <= ub: raise SubscriptOutOfRange()
            index = index * (ub - lb + 1) + (sub - lb)
        return index


class ArrayManager:
    def __init__(self, heap: StringHeap, deftypes: DefaultTypeTable):
        self.heap = heap
        self.deftypes = deftypes
        self.arrays: dict[str, Array] = {}
        self.base = 0

    def resolve(self, name: str) -> tuple[str, ScalarType]:
        base, t = split_suffix(name.upper())
        t = t or self.deftypes.type_of(base)
        return base + t.value, t

    def option_base(self, base: int) -> None:
        if base not in (0, 1): raise BasicSyntaxError()
        if self.arrays: raise DuplicateDefinition()
        self.base = base

    # Lifecycle ───────────────────────────────────────────────────────────────────────────────
    def create(self, name: str, uppers: list[int]) -> Array:
        key, t = self.resolve(name)
        if key in self.arrays: raise DuplicateDefinition()
        if not uppers or any(ub < self.base for ub in uppers): raise SubscriptOutOfRange()
        dims = [(self.base, ub) for ub in uppers]
        if (size := math.prod(ub - lb + 1 for lb, ub in dims)) > MAX_ELEMENTS: raise OutOfMemory()
        blank = StrDesc(0, 0) if t is ScalarType.STRING else (0 if t is ScalarType.INT else 0.0)
        array = self.arrays[key] = Array(key, t, dims, [blank] * size)
        return array

    def get(self, name: str) -> Array | None:
        return self.arrays.get(self.resolve(name)[0])

    def exists(self, name: str) -> bool:
        return self.get(name) is not None

    def ensure(self, name: str, rank: int) -> Array:
        """Return the array, dimensioning it to 0..10 in every subscript on first use."""
        if (array := self.get(name)) is not None: return array
        return self.create(name, [AUTO_DIM_UPPER] * rank)

    def erase(self, name: str) -> None:
        if (array := self.arrays.pop(self.resolve(name)[0], None)) is None: raise IllegalFunctionCall()
        self._free(array)

    def _free(self, array: Array) -> None:
        if array.type is ScalarType.STRING:
            for desc in array.elements: self.heap.free(desc)

    def clear(self) -> None:
        for array in self.arrays.values(): self._free(array)
        self.arrays.clear()
        self.base = 0

    # Elements ────────────────────────────────────────────────────────────────────────────────
    def get_element(self, name: str, subscripts: list[int]) -> Value:
        array = self.ensure(name, len(subscripts))
        item = array.elements[array.offset(subscripts)]
        if array.type is ScalarType.STRING: return Value.string(self.heap.text(item))
        return Value(array.type, item)

    def set_element(self, name: str, subscripts: list[int], value: Value) -> None:
        array = self.ensure(name, len(subscripts))
        index = array.offset(subscripts)
        value = convert(value, array.type)
        if array.type is ScalarType.STRING:
            self.heap.free(array.elements[index])
            array.elements[index] = StrDesc(0, 0)
            array.elements[index] = self.heap.store(value.value)
        else:
            array.elements[index] = value.value
            if array.raw is not None:
                size = array.type.size
                array.raw[index * size:(index + 1) * size] = _pack(array.type, value.value)

    # Raw views used by graphics GET/PUT ──────────────────────────────────────────────────────
    def to_bytes(self, name: str) -> bytes:
        if (array := self.get(name)) is None: raise IllegalFunctionCall()
        if array.type is ScalarType.STRING: raise TypeMismatch()
        if array.raw is not None: return bytes(array.raw)
        return b''.join(_pack(array.type, e) for e in array.elements)

    def store_bytes(self, name: str, data: bytes) -> None:
        """Keep the exact bytes for PUT; elements read back as their decoded numbers."""
        if (array := self.get(name)) is None: raise IllegalFunctionCall()
        if array.type is ScalarType.STRING: raise TypeMismatch()
        size = array.type.size
        if len(data) > size * len(array.elements): raise IllegalFunctionCall()
        array.raw = bytearray(data) + bytes(size * len(array.elements) - len(data))
        for i in range(len(array.elements)):
            array.elements[i] = _unpack(array.type, array.raw[i * size:(i + 1) * size])


def _pack(t: ScalarType, item) -> bytes:
    match t:
        case ScalarType.INT: return struct.pack('<h', item)
        case ScalarType.SINGLE: return ieee_to_mbf32(item)
        case ScalarType.DOUBLE: return ieee_to_mbf64(item)

def _unpack(t: ScalarType, chunk: bytes):
    match t:
        case ScalarType.INT: return struct.unpack('<h', chunk)[0]
        case ScalarType.SINGLE: return mbf32_to_ieee(bytes(chunk))
        case ScalarType.DOUBLE: return mbf64_to_ieee(bytes(chunk))
