## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘
#
# gwbasic — An interpreter for the GW-BASIC dialect, with a line-numbered program editor.
#

import sys
import time
import signal
import traceback
import contextlib
from pathlib import Path
from dataclasses import dataclass
from typing import Callable

import click

from .errors import BasicError
from .formatting import write_without_ansi, DEFAULT_ZONE_WIDTH
from .heap import DEFAULT_HEAP_SIZE
from .runtime import Runtime


@dataclass(frozen=True)
class RuntimeConfig:
    verbose: int
    ignore: bool
    stats: bool
    plain: bool
    zone_width: int = DEFAULT_ZONE_WIDTH
    heap_size: int = DEFAULT_HEAP_SIZE


class BasicSession:
    """One interpreter shared by every program, command and REPL line given on the command line."""

    def __init__(self, config: RuntimeConfig):
        self.config = config
        if config.plain:
            writer = write_without_ansi(sys.stdout.write)
            sys.stdout.write, sys.stderr.write = writer, writer

        self.runtime = Runtime(zone_width=config.zone_width, heap_size=config.heap_size)
        self.stats = {'steps': 0, 'start': time.time()} if config.stats else None
        self.failed = False
        self.completed = 0

    # Diagnostics ─────────────────────────────────────────────────────────────────────────────
    def _banner(self, title: str, detail: str, exc: BaseException, context: str = '') -> None:
        print(f'\033[30;43m {title} \033[0m {detail} (Exception: \033[33m{type(exc).__name__}\033[0m)\n{context}',
              file=sys.stderr)

    def _crashed(self, exc: Exception, origin: str, interactive: bool) -> None:
        if isinstance(exc, BasicError):
            self._banner("LOAD ERROR.", f"Program `\033[97m{origin}\033[0m` could not be loaded!", exc,
                         f"\033[90m{exc.message}\033[0m\n")
        elif isinstance(exc, OSError):
            self._banner("FILE ERROR.", f"Reading `\033[97m{origin}\033[0m` failed: {exc.strerror or exc}", exc)
        else:
            frames = traceback.format_exception(exc, chain=False)
            self._banner("INTERNAL ERROR.", f"Running `\033[97m{origin}\033[0m` crashed the interpreter!", exc,
                         ''.join(frame for frame in frames if "<frozen" not in frame))
        self._failed(interactive)

    def _failed(self, interactive: bool) -> None:
        if interactive: return
        self.failed = True
        if not self.config.ignore: sys.exit(1)

    # Execution ───────────────────────────────────────────────────────────────────────────────
    @contextlib.contextmanager
    def _breakable(self):
        """Ctrl+C asks the running program to stop at its next statement, as the BREAK key did."""
        try:
            previous = signal.signal(signal.SIGINT, lambda signum, frame: self.runtime.stop())
        except ValueError:
            yield
            return
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, previous)

    def _attempt(self, origin: str, step: Callable[[], bool], interactive: bool = False) -> None:
        try:
            with self._breakable():
                ok = step()
        except Exception as exc:
            return self._crashed(exc, origin, interactive)
        self.completed += 1
        if not ok: self._failed(interactive)

    def run_program(self, source: bytes, origin: str) -> None:
        def step() -> bool:
            self.runtime.load(source)
            return self.runtime.run(verbosity=self.config.verbose, stats=self.stats)
        self._attempt(origin, step)

    def load_program(self, source: bytes, origin: str) -> None:
        def step() -> bool:
            self.runtime.load(source)
            return True
        self._attempt(origin, step)

    def command(self, text: str) -> None:
        self._attempt('<COMMAND>', lambda: self.runtime.enter(text))

    def repl(self) -> None:
        if sys.platform != "win32": import readline

        print('gwbasic - GW-BASIC interpreter; type SYSTEM or Ctrl+D to exit.')
        print('Ok')
        while True:
            try:
                line = input()
            except (KeyboardInterrupt, EOFError):
                print(""); break
            if not line.strip(): continue

            self._attempt('<REPL>', lambda: self.runtime.enter(line), interactive=True)
            # Numbered lines edit the program silently.
            if not line.lstrip()[:1].isdigit(): print('Ok')

    def finish(self) -> int:
        if self.stats and self.completed:
            elapsed = time.time() - self.stats['start']
            print(f"\n\033[97m\033[48;5;30m STATISTICS. \033[0m")
            print(f"lines\t\033[97m{self.stats['steps']:,}\033[0m")
            print(f"time\t\033[97m{elapsed:.3f}s\033[0m")
        return 1 if self.failed else 0


## COMMAND LINE
DEV_OPTIONS = {'-c': 'command', '--command': 'command', '-l': 'load', '--load': 'load'}
GLOBAL_FLAGS = ('--ignore', '--stats', '--plain', '--verbose', '-i', '-p')
GLOBAL_VALUES = ('--zone-width', '--heap-size')


def _existing_file(name: str) -> Path:
    if not (path := Path(name)).is_file(): raise click.BadParameter(f"File `{name}` not found.")
    return path


def _parse_dev_tokens(tokens: list[str]) -> list[tuple[str, Path | str | None]]:
    """Files run in order, `-c` enters a direct-mode line, `-l` loads a program without running it."""
    actions: list[tuple[str, Path | str | None]] = []
    queue = iter(tokens)
    for token in queue:
        if token == '--': continue
        if token in ('-r', '--repl'):
            actions.append(('repl', None))
            continue
        option, eq, value = token.partition('=')
        if option in DEV_OPTIONS:
            if not eq and (value := next(queue, None)) is None:
                raise click.BadParameter(f"Missing argument after `{option}` option.")
            if value == '':
                raise click.BadParameter(f"Empty argument supplied to `{option}` option.")
            kind = DEV_OPTIONS[option]
            actions.append((kind, value if kind == 'command' else _existing_file(value)))
            continue
        if token.startswith('-'):
            raise click.BadParameter(f"Unknown option `{token}`.")
        actions.append(('file', _existing_file(token)))
    return actions


@click.group(invoke_without_command=True, context_settings={'ignore_unknown_options': True, 'allow_extra_args': True})
@click.option('--verbose', '-v', default=0, count=True, help='Trace every program line as it executes.')
@click.option('--ignore', '-i', is_flag=True, help='Ignore errors and continue executing.')
@click.option('--stats', is_flag=True, help='Display execution statistics (e.g., number of lines stepped).')
@click.option('--plain', '-p', is_flag=True, help='Strip ANSI color codes and redirect stderr to stdout.')
@click.option('--zone-width', default=DEFAULT_ZONE_WIDTH, type=click.IntRange(1, 80), help='Width of PRINT comma zones.')
@click.option('--heap-size', default=DEFAULT_HEAP_SIZE, type=click.IntRange(256, 65535), help='Bytes of string space.')
@click.pass_context
def cli(ctx: click.Context, verbose: int, ignore: bool, stats: bool, plain: bool, zone_width: int, heap_size: int) -> None:
    ctx.ensure_object(dict)
    ctx.obj['config'] = RuntimeConfig(verbose=verbose, ignore=ignore, stats=stats, plain=plain,
                                      zone_width=zone_width, heap_size=heap_size)


@cli.command('run-file')
@click.argument('program', type=click.File('rb'))
@click.pass_context
def run_file(ctx: click.Context, program) -> None:
    session = BasicSession(ctx.obj['config'])
    session.run_program(program.read(), getattr(program, 'name', None) or '<STDIN>')
    ctx.exit(session.finish())


@cli.command('run-dev', context_settings={'ignore_unknown_options': True, 'allow_extra_args': True})
@click.argument('tokens', nargs=-1)
@click.pass_context
def run_dev(ctx: click.Context, tokens: tuple[str, ...]) -> None:
    session = BasicSession(ctx.obj['config'])
    actions = _parse_dev_tokens(list(tokens))

    for action, payload in actions:
        if action == 'file': session.run_program(payload.read_bytes(), str(payload))
        elif action == 'load': session.load_program(payload.read_bytes(), str(payload))
        elif action == 'command': session.command(payload)
        elif action == 'repl': session.repl()
        else: raise NotImplementedError

    if not actions:
        session.repl()
    ctx.exit(session.finish())


@cli.command('run-repl')
@click.pass_context
def run_repl(ctx: click.Context) -> None:
    session = BasicSession(ctx.obj['config'])
    session.repl()
    ctx.exit(session.finish())


def _split_global_options(args: list[str]) -> tuple[list[str], list[str]]:
    globals_, rest = [], []
    tokens = iter(args)
    for t in tokens:
        if t in GLOBAL_FLAGS or (t[:2] == '-v' and set(t[1:]) == {'v'}): globals_.append(t)
        elif t in GLOBAL_VALUES: globals_ += [t, next(tokens, '')]
        elif t.partition('=')[0] in GLOBAL_VALUES: globals_.append(t)
        else: rest.append(t)
    return globals_, rest


def main(argv: list[str] | None = None) -> None:
    g, r = _split_global_options(list(sys.argv[1:] if argv is None else argv))
    files = [t for t in r if not t.startswith('-')]
    dev_mode = any(t.partition('=')[0] in DEV_OPTIONS or t in ('-r', '--repl') for t in r)

    if not r:
        # Piped input is a program, a terminal gets the REPL.
        cmd, tail = ('run-file', ['-']) if not sys.stdin.isatty() else ('run-repl', [])
    elif r == ['-']:
        cmd, tail = 'run-file', ['-']
    elif r == ['--repl']:
        cmd, tail = 'run-repl', []
    elif len(files) == 1 and not dev_mode and Path(files[0]).is_file():
        cmd, tail = 'run-file', files
    else:
        cmd, tail = 'run-dev', r

    cli.main(args=[*g, cmd, *tail], prog_name='gwbasic')


if __name__ == "__main__":
    main()
