## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import re
from typing import Callable

from .errors import BasicError, IllegalFunctionCall


DEFAULT_ZONE_WIDTH = 14
SCREEN_ROWS = 25


class OutputChannel:
    """Column-tracking writer shared by PRINT, PRINT # and WRITE.

    Numbers are followed by a space that is only written once more output arrives on the same line,
    so `PRINT 1;2` shows ` 1  2` while a line never ends with a dangling blank.
    """

    def __init__(self, write: Callable[[str], None], width: int | None = 80, zone_width: int = DEFAULT_ZONE_WIDTH):
        self.write_fn = write
        self.width = width
        self.zone_width = zone_width
        self.column = 0
        self.pending_space = False
        self.row = 1

    def _emit(self, text: str) -> None:
        if not text: return
        self.write_fn(text)
        self.row = min(self.row + text.count('\n'), SCREEN_ROWS)
        if (nl := text.rfind('\n')) >= 0: self.column = len(text) - nl - 1
        else: self.column += len(text)
        if self.width and self.column >= self.width: self.column %= self.width

    def _flush_space(self) -> None:
        if self.pending_space:
            self.pending_space = False
            self._emit(' ')

    def write(self, text: str) -> None:
        self._flush_space()
        self._emit(text)

    def write_item(self, text: str) -> None:
        """Write one PRINT item, starting a fresh line first when it would not fit on this one."""
        self._flush_space()
        if self.width and 0 < self.column and self.column + len(text) > self.width:
            self._emit('\n')
        self._emit(text)

    def write_number(self, text: str) -> None:
        self.write_item(text)
        self.pending_space = True

    def newline(self) -> None:
        self.pending_space = False
        self._emit('\n')

    def next_zone(self) -> None:
        self._flush_space()
        target = (self.column // self.zone_width + 1) * self.zone_width
        if self.width and target > self.width - self.zone_width: return self.newline()
        self._emit(' ' * (target - self.column))

    def tab(self, column: int) -> None:
        """Move to the 1-based `column`, on the next line when already past it."""
        if not 1 <= column <= 255: raise IllegalFunctionCall()
        self.pending_space = False
        if self.width: column = (column - 1) % self.width + 1
        if self.column > column - 1: self._emit('\n')
        self._emit(' ' * (column - 1 - self.column))

    def spc(self, count: int) -> None:
        if not 0 <= count <= 255: raise IllegalFunctionCall()
        self.pending_space = False
        if self.width: count %= self.width
        self._emit(' ' * count)

    @property
    def position(self) -> int:
        return self.column + 1


def write_without_ansi(write_fn):
    """Wrapper function that strips ANSI codes before calling the original writer."""
    ansi_re = re.compile(r'\033\[[0-9;]*m')
    return lambda text: write_fn(ansi_re.sub('', text))


def format_error(exc: BasicError, line: int | None) -> str:
    return f"Error in line {line}: {exc.message}" if line else exc.message


def format_trace(step: int, line: int, text: str, width: int = 72) -> str:
    if len(text) > width: text = text[:width - 2] + ' …'
    return f"\033[90m{step:>3} :\033[0m  \033[97m{line:>5}\033[0m \033[36m<=>\033[0m {text}"
