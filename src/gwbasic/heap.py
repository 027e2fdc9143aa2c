## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import struct

from .types import StrDesc
from .errors import OutOfStringSpace, StringTooLong


DEFAULT_HEAP_SIZE = 8192
MAX_STRING = 255
EMPTY_PTR = 0


class StringHeap:
    """Fixed-size byte arena; every block is a 2-byte length header followed by the string bytes.

    Descriptors handed out stay valid across compaction because the heap rewrites their `ptr` in place.
    """

    def __init__(self, capacity: int = DEFAULT_HEAP_SIZE):
        self.capacity = capacity
        self.memory = bytearray(capacity)
        self.top = 0
        self.live: dict[int, StrDesc] = {}

    # Allocation ──────────────────────────────────────────────────────────────────────────────
    def alloc_copy(self, data: bytes) -> StrDesc:
        if len(data) > MAX_STRING: raise StringTooLong()
        if not data: return StrDesc(0, EMPTY_PTR)
        needed = len(data) + 2
        if self.top + needed > self.capacity:
            self.compact()
            if self.top + needed > self.capacity: raise OutOfStringSpace()
        struct.pack_into('<H', self.memory, self.top, len(data))
        ptr = self.top + 2
        self.memory[ptr:ptr + len(data)] = data
        self.top += needed
        desc = StrDesc(len(data), ptr)
        self.live[id(desc)] = desc
        return desc

    def store(self, text: str) -> StrDesc:
        return self.alloc_copy(text.encode('latin-1'))

    def free(self, desc: StrDesc | None) -> None:
        if desc is not None: self.live.pop(id(desc), None)

    def compact(self) -> None:
        """Slide every live block down over the gaps left by freed ones."""
        cursor = 0
        for desc in sorted(self.live.values(), key=lambda d: d.ptr):
            start = desc.ptr - 2
            if start != cursor:
                self.memory[cursor:cursor + desc.length + 2] = self.memory[start:start + desc.length + 2]
                desc.ptr = cursor + 2
            cursor += desc.length + 2
        self.top = cursor

    # Access ──────────────────────────────────────────────────────────────────────────────────
    def read(self, desc: StrDesc) -> bytes:
        return bytes(self.memory[desc.ptr:desc.ptr + desc.length]) if desc.length else b''

    def text(self, desc: StrDesc) -> str:
        return self.read(desc).decode('latin-1')

    def write(self, desc: StrDesc, offset: int, data: bytes) -> None:
        """Overwrite bytes of an existing string in place, never changing its length."""
        data = data[:max(desc.length - offset, 0)]
        self.memory[desc.ptr + offset:desc.ptr + offset + len(data)] = data

    # Introspection ───────────────────────────────────────────────────────────────────────────
    @property
    def used(self) -> int:
        return sum(d.length + 2 for d in self.live.values())

    @property
    def free_bytes(self) -> int:
        return self.capacity - self.used

    def clear(self) -> None:
        self.live.clear()
        self.top = 0
