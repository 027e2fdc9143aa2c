## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘
#
# Pixel buffer for the graphics statements and the DRAW macro language.
#

import math
import struct
import functools
from collections import deque
from typing import Callable

import lark

from .types import Value
from .numeric import to_int16, require_string
from .errors import IllegalFunctionCall


# mode: (width, height, colors); mode 0 is text, backed by a scratch buffer.
MODES = {
    0: (320, 200, 16), 1: (320, 200, 4), 2: (640, 200, 2), 7: (320, 200, 16), 8: (640, 200, 16),
    9: (640, 350, 16), 10: (640, 350, 4), 11: (640, 480, 2), 12: (640, 480, 16), 13: (320, 200, 256),
}

PUT_ACTIONS = {
    'PSET': lambda old, new: new,
    'PRESET': lambda old, new: ~new,
    'AND': lambda old, new: old & new,
    'OR': lambda old, new: old | new,
    'XOR': lambda old, new: old ^ new,
}

DRAW_GRAMMAR = r"""start: _item*
_item: command | ";"
command: PREFIX* action
?action: DIRECTION arg?                  -> step
       | "M"i coord "," coord            -> moveto
       | "TA"i SIGN? arg                 -> turn
       | "A"i arg                        -> angle
       | "S"i arg                        -> scale
       | "C"i arg                        -> color
       | "P"i arg "," arg                -> paint
       | "X"i VARNAME ";"                -> execute
coord: SIGN? arg
arg: INT | "=" VARNAME ";"

PREFIX: /[BN]/i
DIRECTION: /[UDLRHEFG]/i
SIGN: "+" | "-"
VARNAME: /[A-Za-z][A-Za-z0-9.]*[$%!#]?/
INT: /\d+/

%ignore " "
"""

# Unit vectors of the DRAW directions, y pointing down the screen.
DIRECTIONS = {'U': (0, -1), 'D': (0, 1), 'L': (-1, 0), 'R': (1, 0), 'E': (1, -1), 'F': (1, 1), 'G': (-1, 1), 'H': (-1, -1)}


@functools.cache
def _draw_parser() -> lark.Lark:
    return lark.Lark(DRAW_GRAMMAR, start='start', parser="lalr", lexer="contextual")


def parse_macro(parser: lark.Lark, macro: str) -> list[lark.Tree]:
    """Parse a DRAW or PLAY string; malformed strings are an illegal function call."""
    try:
        tree = parser.parse(macro)
    except lark.exceptions.LarkError:
        raise IllegalFunctionCall() from None
    return list(tree.children)


class GraphicsContext:
    def __init__(self, mode: int = 0):
        self.set_mode(mode)

    def set_mode(self, mode: int, buffer: bytearray | memoryview | None = None) -> None:
        """Switch resolution and clear the screen; a host `buffer` of at least width*height bytes is drawn into."""
        if mode not in MODES: raise IllegalFunctionCall()
        width, height, colors = MODES[mode]
        if buffer is None: buffer = bytearray(width * height)
        elif len(buffer) < width * height: raise IllegalFunctionCall()
        self.mode, self.width, self.height, self.colors = mode, width, height, colors
        self.pixels = buffer
        self.clear()
        self.foreground, self.background = self.colors - 1, 0
        self.last = (self.width // 2, self.height // 2)
        self.draw_angle, self.draw_scale = 0.0, 4

    # Pixels ──────────────────────────────────────────────────────────────────────────────────
    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def _color(self, color: int | None) -> int:
        if color is None: return self.foreground
        if not 0 <= color <= 255: raise IllegalFunctionCall()
        return color % self.colors

    def _plot(self, x: int, y: int, color: int) -> None:
        if self.in_bounds(x, y): self.pixels[y * self.width + x] = color

    def point(self, x: int, y: int) -> int:
        return self.pixels[y * self.width + x] if self.in_bounds(x, y) else -1

    def resolve(self, x: float, y: float, relative: bool = False) -> tuple[int, int]:
        if relative: x, y = self.last[0] + x, self.last[1] + y
        return round(x), round(y)

    def pset(self, x: int, y: int, color: int | None = None) -> None:
        self._plot(x, y, self._color(color))
        self.last = (x, y)

    def preset(self, x: int, y: int, color: int | None = None) -> None:
        self.pset(x, y, self.background if color is None else color)

    def clear(self) -> None:
        self.pixels[:] = bytes(len(self.pixels))

    # Shapes ──────────────────────────────────────────────────────────────────────────────────
    def _line(self, x0: int, y0: int, x1: int, y1: int, color: int) -> None:
        dx, dy = abs(x1 - x0), -abs(y1 - y0)
        sx, sy = (1 if x0 < x1 else -1), (1 if y0 < y1 else -1)
        err = dx + dy
        while True:
            self._plot(x0, y0, color)
            if (x0, y0) == (x1, y1): break
            e2 = 2 * err
            if e2 >= dy: err, x0 = err + dy, x0 + sx
            if e2 <= dx: err, y0 = err + dx, y0 + sy

    def line(self, x0: int, y0: int, x1: int, y1: int, color: int | None = None, box: bool = False, fill: bool = False) -> None:
        c = self._color(color)
        if fill:
            for y in range(min(y0, y1), max(y0, y1) + 1):
                self._line(x0, y, x1, y, c)
        elif box:
            for a, b, p, q in ((x0, y0, x1, y0), (x1, y0, x1, y1), (x1, y1, x0, y1), (x0, y1, x0, y0)):
                self._line(a, b, p, q, c)
        else:
            self._line(x0, y0, x1, y1, c)
        self.last = (x1, y1)

    def default_aspect(self) -> float:
        return 4 / 3 * self.height / self.width

    def circle(self, cx: int, cy: int, r: float, color: int | None = None,
               start: float | None = None, end: float | None = None, aspect: float | None = None) -> None:
        """Ellipse outline by the midpoint method; an arc keeps only the points between `start` and `end`."""
        c = self._color(color)
        aspect = self.default_aspect() if aspect is None else aspect
        if aspect <= 0: raise IllegalFunctionCall()
        rx, ry = (r, r * aspect) if aspect < 1 else (r / aspect, r)
        rx, ry = max(round(rx), 0), max(round(ry), 0)

        arc = start is not None or end is not None
        a0, a1 = abs(start or 0.0), abs(end if end is not None else 2 * math.pi)
        if a0 > 2 * math.pi or a1 > 2 * math.pi: raise IllegalFunctionCall()
        for a, negative in ((a0, start is not None and start < 0), (a1, end is not None and end < 0)):
            if negative: self._line(cx, cy, cx + round(rx * math.cos(a)), cy - round(ry * math.sin(a)), c)

        for dx, dy in _ellipse_quadrant(rx, ry):
            for px, py in {(dx, dy), (-dx, dy), (dx, -dy), (-dx, -dy)}:
                if arc and not _angle_between(math.atan2(-py, px) % (2 * math.pi), a0, a1): continue
                self._plot(cx + px, cy + py, c)
        self.last = (cx, cy)

    def paint(self, x: int, y: int, color: int | None = None, border: int | None = None) -> None:
        """Flood fill outward from (x, y) until pixels of the border color."""
        c = self._color(color)
        border = c if border is None else self._color(border)
        if not self.in_bounds(x, y): return
        queue, seen = deque([(x, y)]), {(x, y)}
        while queue:
            px, py = queue.popleft()
            if self.point(px, py) == border: continue
            self._plot(px, py, c)
            for q in ((px + 1, py), (px - 1, py), (px, py + 1), (px, py - 1)):
                if q not in seen and self.in_bounds(*q):
                    seen.add(q)
                    queue.append(q)
        self.last = (x, y)

    # Blocks ──────────────────────────────────────────────────────────────────────────────────
    def get(self, x0: int, y0: int, x1: int, y1: int) -> bytes:
        """Block image: width and height as little-endian 16-bit words, then pixels row by row."""
        x0, x1 = sorted((x0, x1))
        y0, y1 = sorted((y0, y1))
        if not (self.in_bounds(x0, y0) and self.in_bounds(x1, y1)): raise IllegalFunctionCall()
        w, h = x1 - x0 + 1, y1 - y0 + 1
        rows = (bytes(self.pixels[(y0 + j) * self.width + x0:(y0 + j) * self.width + x0 + w]) for j in range(h))
        return struct.pack('<HH', w, h) + b''.join(rows)

    def put(self, x: int, y: int, image: bytes, action: str = 'XOR') -> None:
        if len(image) < 4 or action not in PUT_ACTIONS: raise IllegalFunctionCall()
        w, h = struct.unpack_from('<HH', image)
        if len(image) < 4 + w * h or not (self.in_bounds(x, y) and self.in_bounds(x + w - 1, y + h - 1)):
            raise IllegalFunctionCall()
        combine = PUT_ACTIONS[action]
        for j in range(h):
            for i in range(w):
                index = (y + j) * self.width + x + i
                self.pixels[index] = combine(self.pixels[index], image[4 + j * w + i]) % self.colors

    # DRAW ────────────────────────────────────────────────────────────────────────────────────
    def draw(self, macro: str, resolve: Callable[[str], Value], depth: int = 0) -> None:
        """Run a DRAW string; `X` sub-strings execute one level deep."""
        for command in parse_macro(_draw_parser(), macro):
            if command.data != 'command': continue
            prefixes = {str(t).upper() for t in command.children[:-1]}
            self._draw_action(command.children[-1], 'B' in prefixes, 'N' in prefixes, resolve, depth)

    def _draw_arg(self, node: lark.Tree, resolve) -> int:
        token = node.children[0]
        if token.type == 'INT': return int(token)
        return to_int16(resolve(str(token)))

    def _draw_action(self, action: lark.Tree, blank: bool, no_move: bool, resolve, depth: int) -> None:
        args = [c for c in action.children if isinstance(c, lark.Tree)]
        tokens = [c for c in action.children if isinstance(c, lark.Token)]
        origin = self.last
        match action.data:
            case 'step':
                distance = self._draw_arg(args[0], resolve) if args else 1
                ux, uy = DIRECTIONS[str(tokens[0]).upper()]
                self._draw_to(ux * distance, uy * distance, blank, relative=True)
            case 'moveto':
                (sx, x), (sy, y) = (self._draw_coord(a, resolve) for a in args)
                if sx or sy: self._draw_to(x, y, blank, relative=True)
                else: self._draw_to(x, y, blank, relative=False)
            case 'turn':
                degrees = self._draw_arg(args[0], resolve) * (-1 if tokens and tokens[0] == '-' else 1)
                if not -360 <= degrees <= 360: raise IllegalFunctionCall()
                self.draw_angle = float(degrees)
            case 'angle':
                if not 0 <= (n := self._draw_arg(args[0], resolve)) <= 3: raise IllegalFunctionCall()
                self.draw_angle = 90.0 * n
            case 'scale':
                if not 1 <= (n := self._draw_arg(args[0], resolve)) <= 255: raise IllegalFunctionCall()
                self.draw_scale = n
            case 'color':
                self.foreground = self._color(self._draw_arg(args[0], resolve))
            case 'paint':
                self.paint(*self.last, self._draw_arg(args[0], resolve), self._draw_arg(args[1], resolve))
            case 'execute':
                if depth > 0: raise IllegalFunctionCall()
                sub = resolve(str(tokens[0]))
                require_string(sub)
                self.draw(sub.value, resolve, depth + 1)
        if no_move: self.last = origin

    def _draw_coord(self, node: lark.Tree, resolve) -> tuple[bool, int]:
        sign = next((c for c in node.children if isinstance(c, lark.Token)), None)
        value = self._draw_arg(node.children[-1], resolve)
        return sign is not None, -value if sign == '-' else value

    def _draw_to(self, x: float, y: float, blank: bool, relative: bool) -> None:
        if relative:
            factor, a = self.draw_scale / 4, math.radians(self.draw_angle)
            x, y = x * factor, y * factor
            x, y = x * math.cos(a) + y * math.sin(a), -x * math.sin(a) + y * math.cos(a)
            target = self.resolve(x, y, relative=True)
        else:
            target = (round(x), round(y))
        if not blank: self._line(*self.last, *target, self.foreground)
        self.last = target


def _ellipse_quadrant(rx: int, ry: int):
    """Points of one quadrant of an axis-aligned ellipse, by the midpoint algorithm."""
    if rx == 0 or ry == 0:
        yield from ((x, 0) for x in range(rx + 1))
        yield from ((0, y) for y in range(ry + 1))
        return
    x, y = 0, ry
    rx2, ry2 = rx * rx, ry * ry
    d1 = ry2 - rx2 * ry + rx2 / 4
    while ry2 * x < rx2 * y:
        yield x, y
        if d1 < 0: d1 += ry2 * (2 * x + 3)
        else:
            d1 += ry2 * (2 * x + 3) + rx2 * (-2 * y + 2)
            y -= 1
        x += 1
    d2 = ry2 * (x + 0.5) ** 2 + rx2 * (y - 1) ** 2 - rx2 * ry2
    while y >= 0:
        yield x, y
        if d2 > 0: d2 += rx2 * (-2 * y + 3)
        else:
            d2 += ry2 * (2 * x + 2) + rx2 * (-2 * y + 3)
            x += 1
        y -= 1


def _angle_between(a: float, start: float, end: float) -> bool:
    if start <= end: return start - 1e-9 <= a <= end + 1e-9
    return a >= start - 1e-9 or a <= end + 1e-9
