## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import sys
from dataclasses import dataclass, field
from typing import Callable


def _console_print(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()

def _console_input(prompt: str) -> str:
    return input(prompt)

def _accept(*args) -> bool:
    return True

def _no_key() -> str:
    return ""

def _silence(freq_hz: float, dur_ms: float) -> None:
    return None

def _own_buffer() -> None:
    return None


@dataclass
class Host:
    """Callbacks through which a running program reaches the outside world; defaults drive a plain console."""
    print: Callable[[str], None] = _console_print
    input: Callable[[str], str] = _console_input
    screen_mode: Callable[[int], bool] = _accept
    color: Callable[[int, int], bool] = _accept
    width: Callable[[int], bool] = _accept
    graphics_buffer: Callable[[], bytearray | None] = _own_buffer
    locate: Callable[[int, int, int, int, int], bool] = _accept
    cls: Callable[[], bool] = _accept
    inkey: Callable[[], str] = _no_key
    sound: Callable[[float, float], None] = _silence
    lprint: Callable[[str], None] = field(default=_console_print)


class CapturingHost(Host):
    """Host that records printed text and replays queued input lines, for embedding and tests."""

    def __init__(self, lines: list[str] | None = None, keys: str = ""):
        super().__init__(print=self._capture, input=self._next_line, inkey=self._next_key, sound=self._record_sound)
        self.output: list[str] = []
        self.lines = list(lines or [])
        self.keys = keys
        self.sounds: list[tuple[float, float]] = []

    def _capture(self, text: str) -> None:
        self.output.append(text)

    def _next_line(self, prompt: str) -> str:
        self.output.append(prompt)
        if not self.lines: raise EOFError("No more input.")
        line = self.lines.pop(0)
        self.output.append(line + "\n")
        return line

    def _next_key(self) -> str:
        key, self.keys = self.keys[:1], self.keys[1:]
        return key

    def _record_sound(self, freq_hz: float, dur_ms: float) -> None:
        self.sounds.append((freq_hz, dur_ms))

    @property
    def text(self) -> str:
        return ''.join(self.output)
