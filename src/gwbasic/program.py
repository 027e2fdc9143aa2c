## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import bisect
import struct

from . import tokens as T
from .errors import UndefinedLineNumber, BasicSyntaxError, BadFileMode, IllegalFunctionCall


MAX_LINE_NUMBER = 65529


class ProgramStore:
    """Ordered mapping of line numbers to tokenized line bodies (each ending with 0x00)."""

    def __init__(self):
        self.numbers: list[int] = []
        self.lines: dict[int, bytes] = {}

    # Editing ─────────────────────────────────────────────────────────────────────────────────
    def insert(self, number: int, tokens: bytes) -> None:
        if not 0 < number <= MAX_LINE_NUMBER: raise BasicSyntaxError()
        if not tokens.endswith(b'\x00') or T.line_end(tokens) != len(tokens) - 1:
            tokens = bytes(tokens[:T.line_end(tokens)]) + b'\x00'
        if number not in self.lines: bisect.insort(self.numbers, number)
        self.lines[number] = bytes(tokens)

    def delete(self, number: int, missing_ok: bool = False) -> None:
        if number not in self.lines:
            if missing_ok: return
            raise UndefinedLineNumber()
        del self.lines[number]
        self.numbers.pop(bisect.bisect_left(self.numbers, number))

    def delete_range(self, first: int, last: int) -> None:
        doomed = [n for n in self.numbers if first <= n <= last]
        if not doomed: raise IllegalFunctionCall()
        for n in doomed: self.delete(n)

    def clear(self) -> None:
        self.numbers.clear()
        self.lines.clear()

    # Lookup ──────────────────────────────────────────────────────────────────────────────────
    def get(self, number: int) -> bytes | None:
        return self.lines.get(number)

    def __contains__(self, number: int) -> bool:
        return number in self.lines

    def __len__(self) -> int:
        return len(self.numbers)

    def __iter__(self):
        for n in self.numbers:
            yield n, self.lines[n]

    def first_line(self) -> int | None:
        return self.numbers[0] if self.numbers else None

    def find_line(self, number: int) -> int | None:
        """First line number >= `number`."""
        i = bisect.bisect_left(self.numbers, number)
        return self.numbers[i] if i < len(self.numbers) else None

    def next_line(self, number: int) -> int | None:
        """First line number > `number`."""
        i = bisect.bisect_right(self.numbers, number)
        return self.numbers[i] if i < len(self.numbers) else None

    def iter_range(self, first: int = 0, last: int = MAX_LINE_NUMBER):
        start = bisect.bisect_left(self.numbers, first)
        for n in self.numbers[start:]:
            if n > last: break
            yield n, self.lines[n]

    # Renumbering ─────────────────────────────────────────────────────────────────────────────
    def renumber(self, new_start: int = 10, old_start: int = 0, increment: int = 10) -> None:
        """Renumber lines from `old_start` on, rewriting every line-number reference that points at them."""
        moving = [n for n in self.numbers if n >= old_start]
        if not moving: return
        mapping = {old: new_start + i * increment for i, old in enumerate(moving)}
        kept = [n for n in self.numbers if n < old_start]
        if mapping[moving[-1]] > MAX_LINE_NUMBER or (kept and new_start <= kept[-1]): raise IllegalFunctionCall()
        renumbered = {mapping.get(n, n): self._rewrite_refs(body, mapping) for n, body in self}
        self.clear()
        for n, body in renumbered.items(): self.insert(n, body)

    @staticmethod
    def _rewrite_refs(body: bytes, mapping: dict[int, int]) -> bytes:
        out = bytearray(body)
        for pos, tok in T.iter_tokens(body):
            if tok == T.LINE_REF and (target := T.read_uint16(body, pos + 1)) in mapping:
                struct.pack_into('<H', out, pos + 1, mapping[target])
        return bytes(out)

    # Serialization ───────────────────────────────────────────────────────────────────────────
    def serialize(self) -> bytes:
        """Records of `link(2) line(2) tokens 0x00`; link is the byte offset to the next record, 0 on the last."""
        out = bytearray()
        for i, (n, body) in enumerate(self):
            size = 4 + len(body)
            link = size if i < len(self.numbers) - 1 else 0
            out += struct.pack('<HH', link, n) + body
        return bytes(out)

    def deserialize(self, data: bytes) -> None:
        """Replace the program with the records in `data`, rejecting broken link chains and unordered lines."""
        pos, previous, parsed = 0, 0, []
        while pos < len(data):
            if pos + 5 > len(data): raise BadFileMode("Truncated program record.")
            link, number = struct.unpack_from('<HH', data, pos)
            end = T.line_end(data, pos + 4)
            if end >= len(data): raise BadFileMode("Unterminated program line.")
            size = end + 1 - pos
            if link not in (0, size): raise BadFileMode("Malformed link chain.")
            if (link == 0) != (end + 1 == len(data)): raise BadFileMode("Malformed link chain.")
            if not previous < number <= MAX_LINE_NUMBER: raise BadFileMode("Line numbers out of order.")
            parsed.append((number, bytes(data[pos + 4:end + 1])))
            previous, pos = number, end + 1
        self.clear()
        for n, body in parsed: self.insert(n, body)
