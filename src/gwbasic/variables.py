## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import string
from dataclasses import dataclass

from .heap import StringHeap
from .types import ScalarType, StrDesc, Value
from .numeric import convert
from .errors import BasicSyntaxError, TypeMismatch


class DefaultTypeTable:
    """First-letter default types, set by DEFINT / DEFSNG / DEFDBL / DEFSTR."""

    def __init__(self):
        self.types = [ScalarType.SINGLE] * 26

    def set_range(self, first: str, last: str, t: ScalarType) -> None:
        first, last = first.upper(), last.upper()
        if not (first in string.ascii_uppercase and last in string.ascii_uppercase) or first > last:
            raise BasicSyntaxError()
        for i in range(ord(first) - 65, ord(last) - 64):
            self.types[i] = t

    def type_of(self, name: str) -> ScalarType:
        return self.types[ord(name[0].upper()) - 65]

    def reset(self) -> None:
        self.types = [ScalarType.SINGLE] * 26


def split_suffix(name: str) -> tuple[str, ScalarType | None]:
    if name and (t := ScalarType.from_suffix(name[-1])) is not None:
        return name[:-1], t
    return name, None


@dataclass
class Slot:
    name: str
    type: ScalarType
    scalar: int | float | StrDesc
    is_array: bool = False


class VariableTable:
    """Scalar variables keyed by base name plus resolved type suffix, so `A` and `A!` share a slot."""

    def __init__(self, heap: StringHeap, deftypes: DefaultTypeTable):
        self.heap = heap
        self.deftypes = deftypes
        self.slots: dict[str, Slot] = {}

    def resolve(self, name: str) -> tuple[str, ScalarType]:
        base, t = split_suffix(name.upper())
        t = t or self.deftypes.type_of(base)
        return base + t.value, t

    def get_or_create(self, name: str) -> Slot:
        key, t = self.resolve(name)
        if (slot := self.slots.get(key)) is None:
            slot = self.slots[key] = Slot(key, t, self._blank(t))
        return slot

    def try_get(self, name: str) -> Slot | None:
        return self.slots.get(self.resolve(name)[0])

    def _blank(self, t: ScalarType):
        return StrDesc(0, 0) if t is ScalarType.STRING else (0 if t is ScalarType.INT else 0.0)

    def value_of(self, slot: Slot) -> Value:
        if slot.type is ScalarType.STRING: return Value.string(self.heap.text(slot.scalar))
        return Value(slot.type, slot.scalar)

    def get(self, name: str) -> Value:
        return self.value_of(self.get_or_create(name))

    def set(self, name: str, value: Value) -> None:
        self.assign(self.get_or_create(name), value)

    def assign(self, slot: Slot, value: Value) -> None:
        value = convert(value, slot.type)
        if slot.type is ScalarType.STRING:
            # Old text is freed first; the copy may need its space.
            self.heap.free(slot.scalar)
            slot.scalar = StrDesc(0, 0)
            slot.scalar = self.heap.store(value.value)
        else:
            slot.scalar = value.value

    def remove(self, name: str) -> None:
        if (slot := self.slots.pop(self.resolve(name)[0], None)) and slot.type is ScalarType.STRING:
            self.heap.free(slot.scalar)

    def swap(self, a: str, b: str) -> None:
        sa, sb = self.get_or_create(a), self.get_or_create(b)
        if sa.type is not sb.type: raise TypeMismatch()
        sa.scalar, sb.scalar = sb.scalar, sa.scalar

    def clear(self) -> None:
        for slot in self.slots.values():
            if slot.type is ScalarType.STRING: self.heap.free(slot.scalar)
        self.slots.clear()

    def __contains__(self, name: str) -> bool:
        return self.try_get(name) is not None

    def __iter__(self):
        return iter(self.slots.values())
