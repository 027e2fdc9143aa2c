## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘
#
# PLAY macro language, rendered as (frequency, duration) pairs for the host `sound` callback.
#

import functools
from typing import Callable

import lark

from .types import Value
from .numeric import to_int16, require_string
from .graphics import parse_macro
from .errors import IllegalFunctionCall


PLAY_GRAMMAR = r"""start: _item*
_item: note | number | octave | shift | length | tempo | pause | style | execute | ";"
note: NOTE ACCIDENTAL? INT? DOT*
number: "N"i arg DOT*
octave: "O"i arg
shift: SHIFT
length: "L"i arg
tempo: "T"i arg
pause: "P"i arg DOT*
style: "M"i STYLE
execute: "X"i VARNAME ";"
arg: INT | "=" VARNAME ";"

NOTE: /[A-G]/i
ACCIDENTAL: "#" | "+" | "-"
SHIFT: ">" | "<"
STYLE: /[NLSFB]/i
DOT: "."
VARNAME: /[A-Za-z][A-Za-z0-9.]*[$%!#]?/
INT: /\d+/

%ignore " "
"""

SEMITONES = {'C': 0, 'D': 2, 'E': 4, 'F': 5, 'G': 7, 'A': 9, 'B': 11}
ARTICULATION = {'N': 7 / 8, 'L': 1.0, 'S': 3 / 4}


@functools.cache
def _play_parser() -> lark.Lark:
    return lark.Lark(PLAY_GRAMMAR, start='start', parser="lalr", lexer="contextual")


def note_frequency(midi: int) -> float:
    return 440.0 * 2 ** ((midi - 69) / 12)


class MusicPlayer:
    """Octave, length, tempo and articulation persist across PLAY statements, as on the original machine."""

    def __init__(self, sound: Callable[[float, float], None]):
        self.sound = sound
        self.reset()

    def reset(self) -> None:
        self.octave, self.length, self.tempo, self.articulation = 4, 4, 120, ARTICULATION['N']

    def duration(self, length: int, dots: int = 0) -> float:
        """Milliseconds for a note of 1/`length`, at `tempo` quarter notes per minute."""
        ms = 60000 / self.tempo * 4 / length
        return ms * 1.5 ** dots

    def play(self, macro: str, resolve: Callable[[str], Value], depth: int = 0) -> None:
        for node in parse_macro(_play_parser(), macro):
            self._command(node, resolve, depth)

    def _arg(self, node: lark.Tree, resolve, low: int, high: int) -> int:
        token = node.children[0]
        value = int(token) if token.type == 'INT' else to_int16(resolve(str(token)))
        if not low <= value <= high: raise IllegalFunctionCall()
        return value

    def _tone(self, midi: int | None, length: int, dots: int) -> None:
        ms = self.duration(length, dots)
        if midi is None: return self.sound(0, ms)
        self.sound(note_frequency(midi), ms * self.articulation)
        if self.articulation < 1: self.sound(0, ms * (1 - self.articulation))

    def _command(self, node: lark.Tree, resolve, depth: int) -> None:
        tokens = [c for c in node.children if isinstance(c, lark.Token)]
        args = [c for c in node.children if isinstance(c, lark.Tree)]
        dots = sum(1 for t in tokens if t.type == 'DOT')
        match node.data:
            case 'note':
                index = SEMITONES[str(tokens[0]).upper()]
                for t in tokens[1:]:
                    if t.type == 'ACCIDENTAL': index += -1 if t == '-' else 1
                length = next((int(t) for t in tokens if t.type == 'INT'), self.length)
                if not 1 <= length <= 64: raise IllegalFunctionCall()
                self._tone((self.octave + 2) * 12 + index, length, dots)
            case 'number':
                n = self._arg(args[0], resolve, 0, 84)
                self._tone(n + 23 if n else None, self.length, dots)
            case 'octave':
                self.octave = self._arg(args[0], resolve, 0, 6)
            case 'shift':
                self.octave = min(self.octave + 1, 6) if tokens[0] == '>' else max(self.octave - 1, 0)
            case 'length':
                self.length = self._arg(args[0], resolve, 1, 64)
            case 'tempo':
                self.tempo = self._arg(args[0], resolve, 32, 255)
            case 'pause':
                self._tone(None, self._arg(args[0], resolve, 1, 64), dots)
            case 'style':
                self.articulation = ARTICULATION.get(str(tokens[0]).upper(), self.articulation)
            case 'execute':
                if depth > 0: raise IllegalFunctionCall()
                sub = resolve(str(tokens[0]))
                require_string(sub)
                self.play(sub.value, resolve, depth + 1)
