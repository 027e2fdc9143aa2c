## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

from . import tokens as T
from .program import ProgramStore
from .types import Value
from .tokenizer import literal_value
from .errors import OutOfData


class DataManager:
    """Cursor over DATA bodies in program order, consumed by READ."""

    def __init__(self, program: ProgramStore):
        self.program = program
        self.restore()

    def restore(self, line: int | None = None) -> None:
        """Rewind to the program start, or to the first line >= `line`."""
        self.line = self.program.first_line() if line is None else self.program.find_line(line)
        self.offset = 0
        self.in_data = False

    @property
    def position(self) -> tuple[int | None, int]:
        return self.line, self.offset

    def _seek_data(self) -> bytes:
        while self.line is not None:
            if (body := self.program.get(self.line)) is not None:
                for pos, tok in T.iter_tokens(body, self.offset):
                    if tok == T.DATA:
                        self.offset, self.in_data = pos + 1, True
                        return body
            self.line, self.offset = self.program.next_line(self.line), 0
        raise OutOfData()

    def read(self) -> Value:
        """Next datum: quoted strings keep their text, embedded numeric tokens are typed, bare text is a string."""
        body = self.program.get(self.line) if self.in_data and self.line is not None else None
        if body is None: body = self._seek_data()

        pos = T.skip_spaces(body, self.offset)
        if pos < len(body) and body[pos] in T.LITERAL_SIZES:
            value = literal_value(body, pos)
            end = pos + T.LITERAL_SIZES[body[pos]]
        elif pos < len(body) and body[pos] == ord('"'):
            end = T.skip_string(body, pos)
            value = Value.string(bytes(body[pos + 1:end]).rstrip(b'"').decode('latin-1'))
        else:
            end = pos
            while end < len(body) and body[end] not in (ord(','), ord(':'), T.LINE_END): end += 1
            value = Value.string(bytes(body[pos:end]).decode('latin-1').rstrip(' '))
        end = T.skip_spaces(body, end)

        if end < len(body) and body[end] == ord(','):
            self.offset = end + 1
        else:
            self.offset, self.in_data = end, False
        return value
