## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import struct

from .errors import IllegalFunctionCall, BadFileMode


MEMORY_SIZE = 1 << 20
BSAVE_MARKER = 0xFD


class Memory:
    """Flat 1 MiB address space addressed as `segment * 16 + offset`."""

    def __init__(self, size: int = MEMORY_SIZE):
        self.data = bytearray(size)
        self.segment = 0

    def def_seg(self, segment: int | None = None) -> None:
        if segment is None: segment = 0
        if not 0 <= segment <= 0xFFFF: raise IllegalFunctionCall()
        self.segment = segment

    def address(self, offset: int) -> int:
        if not 0 <= offset <= 0xFFFF: raise IllegalFunctionCall()
        if (addr := self.segment * 16 + offset) >= len(self.data): raise IllegalFunctionCall()
        return addr

    def peek(self, offset: int) -> int:
        return self.data[self.address(offset)]

    def poke(self, offset: int, value: int) -> None:
        if not 0 <= value <= 255: raise IllegalFunctionCall()
        self.data[self.address(offset)] = value

    def bsave(self, offset: int, length: int) -> bytes:
        """Image of `length` bytes from `offset`, behind the 7-byte BSAVE header."""
        if not 0 <= length <= 0xFFFF: raise IllegalFunctionCall()
        start = self.address(offset)
        if start + length > len(self.data): raise IllegalFunctionCall()
        return struct.pack('<BHHH', BSAVE_MARKER, self.segment, offset, length) + bytes(self.data[start:start + length])

    def bload(self, image: bytes, offset: int | None = None) -> None:
        """Restore a BSAVE image at its recorded location, or at `offset` in the current segment."""
        if len(image) < 7 or image[0] != BSAVE_MARKER: raise BadFileMode()
        _, segment, saved_offset, length = struct.unpack_from('<BHHH', image)
        payload = image[7:7 + length]
        if offset is None: start = segment * 16 + saved_offset
        else: start = self.address(offset)
        if start + len(payload) > len(self.data): raise IllegalFunctionCall()
        self.data[start:start + len(payload)] = payload

    def clear(self) -> None:
        self.data[:] = bytes(len(self.data))
        self.segment = 0
