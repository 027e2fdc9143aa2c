## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import os
import enum
import errno
import fnmatch
import contextlib
from pathlib import Path
from dataclasses import dataclass, field
from typing import Callable

from .formatting import OutputChannel
from .errors import (BadFileNumber, BadFileMode, BadFileName, BadRecordNumber, DeviceIOError, DiskFull,
                     FieldOverflow, FileAlreadyExists, FileAlreadyOpen, FileNotFound, InputPastEnd, PathFileAccessError,
                     PathNotFound, PermissionDenied)


MAX_FILE_NUMBER = 255
DEFAULT_RECORD_LENGTH = 128
MAX_RECORD_LENGTH = 32767
EOF_MARK = 0x1A


class FileMode(enum.Enum):
    INPUT = 'I'
    OUTPUT = 'O'
    APPEND = 'A'
    RANDOM = 'R'

    @staticmethod
    def from_letter(text: str) -> "FileMode":
        try:
            return FileMode(text.strip().upper()[:1])
        except ValueError:
            raise BadFileMode() from None


def _resolve_search_paths() -> list[Path]:
    parts = [p for p in os.environ.get("GWBASIC_PATH", "").split(os.pathsep) if p]
    return [Path(os.path.expanduser(os.path.expandvars(p))) for p in parts]


@contextlib.contextmanager
def os_errors(filename: str | None = None):
    """Translate OS failures into the matching BASIC file errors."""
    try:
        yield
    except FileNotFoundError:
        raise FileNotFound(filename=filename) from None
    except FileExistsError:
        raise FileAlreadyExists(filename=filename) from None
    except (PermissionError, IsADirectoryError):
        raise PermissionDenied(filename=filename) from None
    except OSError as exc:
        if exc.errno == errno.ENOSPC: raise DiskFull(filename=filename) from None
        if exc.errno in (errno.ENAMETOOLONG, errno.EINVAL): raise BadFileName(filename=filename) from None
        raise DeviceIOError(filename=filename) from None


@dataclass
class FileHandle:
    number: int
    mode: FileMode
    filename: str
    stream: object
    record_length: int = DEFAULT_RECORD_LENGTH
    fields: list[tuple[int, int, str]] = field(default_factory=list)
    buffer: bytearray = field(default_factory=bytearray)
    record: int = 0
    data: bytes = b''
    cursor: int = 0
    channel: OutputChannel | None = None


class FileManager:
    """Numbered file handles over the host file system, rooted at `base_dir`."""

    def __init__(self, base_dir: str | Path | None = None, zone_width: int = 14):
        self.base_dir = Path(base_dir) if base_dir is not None else None
        self.zone_width = zone_width
        self.handles: dict[int, FileHandle] = {}

    # Paths ───────────────────────────────────────────────────────────────────────────────────
    @property
    def cwd(self) -> Path:
        return self.base_dir if self.base_dir is not None else Path.cwd()

    def path(self, name: str) -> Path:
        if not name or '\0' in name: raise BadFileName(filename=name)
        p = Path(name.replace('\\', os.sep))
        return p if p.is_absolute() else self.cwd / p

    def program_path(self, name: str, must_exist: bool = True) -> Path:
        """Program files get `.BAS` appended when without an extension, and are also looked up on GWBASIC_PATH."""
        if not Path(name).suffix and not name.endswith('.'): name += '.BAS'
        p = self.path(name)
        if not must_exist or p.exists(): return p
        if not p.is_absolute() or self.base_dir is None:
            for root in _resolve_search_paths():
                if (candidate := root / name).exists(): return candidate
        if (lower := p.with_suffix(p.suffix.lower())).exists(): return lower
        raise FileNotFound(filename=name)

    # Opening & closing ───────────────────────────────────────────────────────────────────────
    def open(self, number: int, name: str, mode: FileMode, record_length: int = DEFAULT_RECORD_LENGTH) -> FileHandle:
        if not 1 <= number <= MAX_FILE_NUMBER or number in self.handles: raise BadFileNumber()
        if not 1 <= record_length <= MAX_RECORD_LENGTH: raise BadRecordNumber()
        path = self.path(name)
        for other in self.handles.values():
            if Path(other.filename) == path and (mode is not FileMode.INPUT or other.mode is not FileMode.INPUT):
                raise FileAlreadyOpen(filename=name)

        with os_errors(name):
            match mode:
                case FileMode.INPUT: stream = open(path, 'rb')
                case FileMode.OUTPUT: stream = open(path, 'wb')
                case FileMode.APPEND: stream = open(path, 'ab')
                case FileMode.RANDOM: stream = open(path, 'r+b' if path.exists() else 'w+b')
        handle = FileHandle(number, mode, str(path), stream, record_length)
        if mode is FileMode.INPUT:
            with os_errors(name):
                handle.data = stream.read()
        elif mode is FileMode.RANDOM:
            handle.buffer = bytearray(b' ' * record_length)
        else:
            handle.channel = OutputChannel(lambda text, n=number: self.write(n, text), width=None, zone_width=self.zone_width)
        self.handles[number] = handle
        return handle

    def close(self, number: int) -> None:
        if (handle := self.handles.pop(number, None)) is None: return
        with os_errors(handle.filename):
            handle.stream.close()

    def close_all(self) -> None:
        for number in list(self.handles): self.close(number)

    reset = close_all

    def get_handle(self, number: int, *modes: FileMode) -> FileHandle:
        if (handle := self.handles.get(number)) is None: raise BadFileNumber()
        if modes and handle.mode not in modes: raise BadFileMode(filename=handle.filename)
        return handle

    def is_open(self, number: int) -> bool:
        return number in self.handles

    # Sequential I/O ──────────────────────────────────────────────────────────────────────────
    def channel(self, number: int) -> OutputChannel:
        return self.get_handle(number, FileMode.OUTPUT, FileMode.APPEND).channel

    def write(self, number: int, text: str) -> None:
        handle = self.get_handle(number, FileMode.OUTPUT, FileMode.APPEND)
        with os_errors(handle.filename):
            handle.stream.write(text.replace('\n', '\r\n').encode('latin-1', errors='replace'))

    def _at_end(self, handle: FileHandle) -> bool:
        return handle.cursor >= len(handle.data) or handle.data[handle.cursor] == EOF_MARK

    def read_line(self, number: int) -> str:
        """LINE INPUT #: everything up to CR/LF, raising InputPastEnd at end of file."""
        handle = self.get_handle(number, FileMode.INPUT)
        if self._at_end(handle): raise InputPastEnd(filename=handle.filename)
        data, start = handle.data, handle.cursor
        end = start
        while end < len(data) and data[end] not in (0x0A, 0x0D, EOF_MARK): end += 1
        handle.cursor = end
        if handle.cursor < len(data) and data[handle.cursor] == 0x0D: handle.cursor += 1
        if handle.cursor < len(data) and data[handle.cursor] == 0x0A: handle.cursor += 1
        return data[start:end].decode('latin-1')

    def read_field(self, number: int, numeric: bool = False) -> str:
        """INPUT #: one comma or line separated item; quoted items may contain commas."""
        handle = self.get_handle(number, FileMode.INPUT)
        data = handle.data
        while handle.cursor < len(data) and data[handle.cursor] in b' \r\n\t': handle.cursor += 1
        if self._at_end(handle): raise InputPastEnd(filename=handle.filename)

        start = handle.cursor
        if data[start] == ord('"') and not numeric:
            end = data.find(b'"', start + 1)
            end = len(data) if end < 0 else end
            text, handle.cursor = data[start + 1:end], end + 1
        else:
            stops = b',\r\n' + (b' ' if numeric else b'')
            end = start
            while end < len(data) and data[end] not in stops and data[end] != EOF_MARK: end += 1
            text, handle.cursor = data[start:end].rstrip(b' '), end
        while handle.cursor < len(data) and data[handle.cursor] == ord(' '): handle.cursor += 1
        if handle.cursor < len(data) and data[handle.cursor] == ord(','): handle.cursor += 1
        else:
            if data[handle.cursor:handle.cursor + 1] == b'\r': handle.cursor += 1
            if data[handle.cursor:handle.cursor + 1] == b'\n': handle.cursor += 1
        return text.decode('latin-1')

    def input_chars(self, number: int, count: int) -> str:
        handle = self.get_handle(number, FileMode.INPUT, FileMode.RANDOM)
        if handle.mode is FileMode.RANDOM:
            with os_errors(handle.filename):
                chunk = handle.stream.read(count)
        else:
            chunk = handle.data[handle.cursor:handle.cursor + count]
            handle.cursor += len(chunk)
        if len(chunk) < count: raise InputPastEnd(filename=handle.filename)
        return chunk.decode('latin-1')

    def eof(self, number: int) -> bool:
        handle = self.get_handle(number)
        match handle.mode:
            case FileMode.INPUT: return self._at_end(handle)
            case FileMode.RANDOM: return handle.record * handle.record_length >= self.lof(number)
        return True

    def loc(self, number: int) -> int:
        handle = self.get_handle(number)
        match handle.mode:
            case FileMode.INPUT: return handle.cursor // DEFAULT_RECORD_LENGTH
            case FileMode.RANDOM: return handle.record
        with os_errors(handle.filename):
            return handle.stream.tell() // DEFAULT_RECORD_LENGTH

    def lof(self, number: int) -> int:
        handle = self.get_handle(number)
        if handle.mode is FileMode.INPUT: return len(handle.data)
        with os_errors(handle.filename):
            handle.stream.flush()
            return os.fstat(handle.stream.fileno()).st_size

    # Random access ───────────────────────────────────────────────────────────────────────────
    def field(self, number: int, specs: list[tuple[int, str]]) -> None:
        """Declare named slices of the record buffer; FIELD statements may overlap earlier ones."""
        handle = self.get_handle(number, FileMode.RANDOM)
        offset, fields = 0, []
        for width, name in specs:
            if not 0 <= width <= 255: raise FieldOverflow()
            if offset + width > handle.record_length: raise FieldOverflow(filename=handle.filename)
            fields.append((offset, width, name))
            offset += width
        defined = {name for _, _, name in fields}
        handle.fields = [f for f in handle.fields if f[2] not in defined] + fields

    def field_width(self, name: str) -> int | None:
        for handle in self.handles.values():
            for _, width, fname in handle.fields:
                if fname == name: return width
        return None

    def _set_field(self, name: str, data: bytes) -> None:
        for handle in self.handles.values():
            for offset, width, fname in handle.fields:
                if fname == name: handle.buffer[offset:offset + width] = data

    def lset(self, name: str, text: str, width: int) -> str:
        padded = text[:width].ljust(width)
        self._set_field(name, padded.encode('latin-1'))
        return padded

    def rset(self, name: str, text: str, width: int) -> str:
        padded = text[:width].rjust(width)
        self._set_field(name, padded.encode('latin-1'))
        return padded

    def _record_number(self, handle: FileHandle, record: int | None) -> int:
        record = handle.record + 1 if record is None else record
        if not 1 <= record <= 16_777_215: raise BadRecordNumber(filename=handle.filename)
        return record

    def get(self, number: int, record: int | None = None, assign: Callable[[str, str], None] | None = None) -> None:
        handle = self.get_handle(number, FileMode.RANDOM)
        handle.record = self._record_number(handle, record)
        with os_errors(handle.filename):
            handle.stream.seek((handle.record - 1) * handle.record_length)
            chunk = handle.stream.read(handle.record_length)
        handle.buffer[:] = chunk.ljust(handle.record_length, b'\0')
        if assign is not None:
            for offset, width, name in handle.fields:
                assign(name, handle.buffer[offset:offset + width].decode('latin-1'))

    def put(self, number: int, record: int | None = None, fetch: Callable[[str], str] | None = None) -> None:
        handle = self.get_handle(number, FileMode.RANDOM)
        handle.record = self._record_number(handle, record)
        if fetch is not None:
            for offset, width, name in handle.fields:
                handle.buffer[offset:offset + width] = fetch(name)[:width].ljust(width).encode('latin-1')
        with os_errors(handle.filename):
            handle.stream.seek((handle.record - 1) * handle.record_length)
            handle.stream.write(bytes(handle.buffer))

    # File system statements ──────────────────────────────────────────────────────────────────
    def _matches(self, pattern: str) -> list[Path]:
        p = self.path(pattern)
        if not any(c in p.name for c in '*?'): return [p] if p.is_file() else []
        with os_errors(pattern):
            return sorted(q for q in p.parent.iterdir() if fnmatch.fnmatch(q.name.upper(), p.name.upper().replace('*.*', '*')))

    def kill(self, pattern: str) -> None:
        if not (targets := self._matches(pattern)): raise FileNotFound(filename=pattern)
        open_paths = {Path(h.filename) for h in self.handles.values()}
        if any(t in open_paths for t in targets): raise FileAlreadyOpen(filename=pattern)
        for target in targets:
            with os_errors(str(target)):
                target.unlink()

    def name(self, old: str, new: str) -> None:
        source, target = self.path(old), self.path(new)
        if not source.exists(): raise FileNotFound(filename=old)
        if target.exists(): raise FileAlreadyExists(filename=new)
        with os_errors(old):
            source.rename(target)

    def chdir(self, name: str) -> None:
        target = self.path(name)
        if not target.is_dir(): raise PathNotFound(filename=name)
        self.base_dir = target.resolve()

    def mkdir(self, name: str) -> None:
        target = self.path(name)
        if target.exists(): raise PathFileAccessError(filename=name)
        try:
            target.mkdir()
        except FileNotFoundError:
            raise PathNotFound(filename=name) from None
        except OSError:
            raise PathFileAccessError(filename=name) from None

    def rmdir(self, name: str) -> None:
        target = self.path(name)
        if not target.is_dir(): raise PathNotFound(filename=name)
        try:
            target.rmdir()
        except OSError:
            raise PathFileAccessError(filename=name) from None

    def files(self, pattern: str | None = None) -> list[str]:
        """Directory listing for FILES; directories carry a `<DIR>` marker."""
        if not pattern or self.path(pattern).is_dir():
            with os_errors(pattern):
                matches = sorted((self.path(pattern) if pattern else self.cwd).iterdir())
        elif not (matches := self._matches(pattern)):
            raise FileNotFound(filename=pattern)
        return [p.name + ('<DIR>' if p.is_dir() else '') for p in matches]

    # Whole-file helpers for LOAD / SAVE / BSAVE ──────────────────────────────────────────────
    def read_bytes(self, path: Path) -> bytes:
        with os_errors(str(path)):
            return path.read_bytes()

    def write_bytes(self, path: Path, data: bytes) -> None:
        with os_errors(str(path)):
            path.write_bytes(data)
