## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

from pathlib import Path
from typing import Any, Callable

from . import tokens as T
from .types import Value
from .host import Host
from .heap import StringHeap, DEFAULT_HEAP_SIZE
from .numeric import RandomGenerator
from .variables import DefaultTypeTable, VariableTable
from .arrays import ArrayManager
from .program import ProgramStore, MAX_LINE_NUMBER
from .data import DataManager
from .files import FileManager
from .stack import RuntimeStack
from .events import EventTrapSystem, EventKind
from .functions import UserFunctionManager
from .memory import Memory
from .graphics import GraphicsContext
from .music import MusicPlayer
from .formatting import OutputChannel, DEFAULT_ZONE_WIDTH, format_error
from .builtins import load_builtins, bind_builtin
from .expressions import ExpressionEvaluator
from .tokenizer import crunch, split_line_number, detokenize
from .dispatcher import StatementDispatcher, DIRECT
from .interpreter import InterpreterLoop
from .errors import BasicError, BadFileMode, IllegalFunctionCall, UndefinedLineNumber


class Runtime:
    """Facade wiring every interpreter component together, for embedding, the CLI and tests."""

    def __init__(self, host: Host | None = None, *, zone_width: int = DEFAULT_ZONE_WIDTH,
                 heap_size: int = DEFAULT_HEAP_SIZE, base_dir: str | Path | None = None):
        self.host = host or Host()
        self.heap = StringHeap(heap_size)
        self.deftypes = DefaultTypeTable()
        self.variables = VariableTable(self.heap, self.deftypes)
        self.arrays = ArrayManager(self.heap, self.deftypes)
        self.program = ProgramStore()
        self.data = DataManager(self.program)
        self.files = FileManager(base_dir, zone_width)
        self.stack = RuntimeStack()
        self.events = EventTrapSystem()
        self.functions = UserFunctionManager(self.variables)
        self.memory = Memory()
        self.graphics = GraphicsContext()
        self.music = MusicPlayer(lambda freq, ms: self.host.sound(freq, ms))
        self.rng = RandomGenerator()
        self.console = OutputChannel(lambda text: self.host.print(text), width=80, zone_width=zone_width)
        self.printer = OutputChannel(lambda text: self.host.lprint(text), width=80, zone_width=zone_width)

        self.err, self.erl, self.tron = 0, 0, False
        self.soft_keys: dict[int, str] = {}
        self.last_error: BasicError | None = None

        self.builtins = load_builtins(self)
        self.evaluator = ExpressionEvaluator(self.variables.get, self.arrays.get_element, self.call_function,
                                             self.builtins)
        self.dispatcher = StatementDispatcher(self)
        self.loop = InterpreterLoop(self)

    def call_function(self, name: str, args: list[Value]) -> Value:
        if name.startswith("FN"): return self.functions.call(name, args, self.evaluator.evaluate)
        if (fn := self.builtins.get(name)) is None: raise IllegalFunctionCall()
        return fn(args)

    # Execution ───────────────────────────────────────────────────────────────────────────────
    def run(self, start: int | None = None, verbosity: int = 0, stats: dict | None = None) -> bool:
        """Run the stored program from its first line, or `start`; False when an error halted it."""
        self.reset_for_run()
        self.loop.verbosity, self.loop.stats = verbosity, stats
        return self._guarded(self.loop.run, start)

    def cont(self) -> bool:
        return self._guarded(self.loop.cont)

    def stop(self) -> None:
        self.loop.stop()

    def execute_immediate(self, source: str) -> bool:
        return self._guarded(self.loop.execute_immediate, source)

    def enter(self, text: str) -> bool:
        """Handle one line typed at the prompt: numbered lines edit the program, others run immediately."""
        if not text.strip(): return True
        tokens = crunch(text)
        number, body = split_line_number(tokens)
        if number is None: return self.execute_immediate(text)
        try:
            if T.line_end(body, T.skip_spaces(body, 0)) == T.skip_spaces(body, 0): self.program.delete(number)
            else: self.program.insert(number, body)
        except BasicError as exc:
            self._report(exc)
            return False
        self.program_changed()
        return True

    def trigger(self, kind: EventKind, index: int = 0) -> None:
        self.events.trigger(kind, index)

    def _guarded(self, fn: Callable, *args) -> bool:
        try:
            fn(*args)
            return True
        except BasicError as exc:
            self.last_error = exc
            self._report(exc)
            return False
        except EOFError:
            self.loop.cont_point = None
            return True
        finally:
            if self.console.column: self.console.newline()

    # Console ─────────────────────────────────────────────────────────────────────────────────
    def _message(self, text: str) -> None:
        if self.console.column: self.console.newline()
        self.console.write(text)
        self.console.newline()

    def _report(self, exc: BasicError) -> None:
        self._message(format_error(exc, exc.line))

    def report_break(self, line: int) -> None:
        self._message("Break" if line == DIRECT else f"Break in {line}")

    def read_line(self, prompt: str) -> str:
        self.console.write("")
        text = self.host.input(prompt)
        self.console.column, self.console.pending_space = 0, False
        self.console.row = min(self.console.row + 1, 25)
        return text

    # State ───────────────────────────────────────────────────────────────────────────────────
    def clear(self, keep_files: bool = False) -> None:
        """Forget variables, arrays, DEF FN, type defaults, pending loops and traps, as CLEAR does."""
        self.variables.clear()
        self.arrays.clear()
        self.functions.clear()
        self.deftypes.reset()
        self.stack.clear()
        self.events.clear()
        self.data.restore()
        self.music.reset()
        if not keep_files: self.files.close_all()
        self.err = self.erl = 0

    def reset_for_run(self, keep_files: bool = False) -> None:
        self.clear(keep_files)
        self.loop.cont_point = None

    def new(self) -> None:
        self.program.clear()
        self.reset_for_run()

    def program_changed(self) -> None:
        self.loop.cont_point = None
        self.data.restore()

    # Loading ─────────────────────────────────────────────────────────────────────────────────
    def load(self, source: str | bytes) -> None:
        """Replace the program with ASCII source, or with a tokenized image starting with 0xFF."""
        if isinstance(source, bytes):
            if source[:1] == b'\xff':
                self.program.deserialize(source[1:])
                return self.program_changed()
            if source[:1] == b'\xfe': raise BadFileMode("Protected programs cannot be loaded.")
            source = source.decode('latin-1')
        self.program.clear()
        self._insert_source(source)

    def merge(self, source: str | bytes) -> None:
        if isinstance(source, bytes):
            if source[:1] in (b'\xff', b'\xfe'): raise BadFileMode()
            source = source.decode('latin-1')
        self._insert_source(source)

    def _insert_source(self, source: str) -> None:
        for text in source.replace('\x1a', '').splitlines():
            if not text.strip(): continue
            number, body = split_line_number(crunch(text))
            if number is None: raise BasicError.from_code(66)
            self.program.insert(number, body)
        self.program_changed()

    def load_file(self, path: Path, keep_files: bool = False) -> None:
        if not keep_files: self.files.close_all()
        self.load(self.files.read_bytes(path))

    def merge_file(self, path: Path) -> None:
        self.merge(self.files.read_bytes(path))

    def save_bytes(self, ascii_: bool = False) -> bytes:
        if ascii_: return ''.join(text + '\r\n' for text in self.list_lines()).encode('latin-1')
        return b'\xff' + self.program.serialize()

    def list_lines(self, first: int = 0, last: int = MAX_LINE_NUMBER) -> list[str]:
        return [detokenize(T.encode_line_ref(n) + body) for n, body in self.program.iter_range(first, last)]

    # Registration ────────────────────────────────────────────────────────────────────────────
    def register_function(self, name: str, func: Callable[..., Value]) -> None:
        """Expose a Python function to BASIC; a first parameter named `rt` receives this runtime."""
        self.builtins[name.upper()] = bind_builtin(func, self)

    # Introspection ───────────────────────────────────────────────────────────────────────────
    def get_variable(self, name: str) -> Any:
        return self.variables.get(name).value

    def set_variable(self, name: str, value: Any) -> None:
        self.variables.set(name, Value.string(value) if isinstance(value, str) else Value.double(float(value)))

    def get_line(self, number: int) -> str:
        if (body := self.program.get(number)) is None: raise UndefinedLineNumber()
        return detokenize(T.encode_line_ref(number) + body)
