## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import enum
import struct
from dataclasses import dataclass


# Literal and structural markers.
LINE_END = 0x00
LINE_REF = 0x0D
INT_LITERAL = 0x11
SINGLE_LITERAL = 0x1D
DOUBLE_LITERAL = 0x1F

EXT_FUNCTION = 0xFD
EXT_STATEMENT = 0xFE
STD_FUNCTION = 0xFF

LITERAL_SIZES = {LINE_REF: 3, INT_LITERAL: 3, SINGLE_LITERAL: 5, DOUBLE_LITERAL: 9}

# Statements, contiguous from 0x80.
END, FOR, NEXT, DATA, INPUT, DIM, READ, LET = range(0x80, 0x88)
GOTO, RUN, IF, RESTORE, GOSUB, RETURN, REM, STOP = range(0x88, 0x90)
PRINT, CLEAR, LIST, NEW, ON, WAIT, DEF, POKE = range(0x90, 0x98)
CONT = 0x98
OUT, LPRINT, LLIST = 0x9B, 0x9C, 0x9D
WIDTH = 0x9F
ELSE, TRON, TROFF, SWAP, ERASE, EDIT, ERROR, RESUME = range(0xA0, 0xA8)
DELETE, AUTO, RENUM, DEFSTR, DEFINT, DEFSNG, DEFDBL, LINE = range(0xA8, 0xB0)
WHILE, WEND, CALL = 0xB0, 0xB1, 0xB2
WRITE, OPTION, RANDOMIZE, OPEN, CLOSE, LOAD, MERGE, SAVE, COLOR, CLS = range(0xB6, 0xC0)
MOTOR, BSAVE, BLOAD, SOUND, BEEP, PSET, PRESET, SCREEN, KEY, LOCATE = range(0xC0, 0xCA)

# Keywords that never start a statement.
TO, THEN, TAB, STEP, USR, FN, SPC, NOT = range(0xCA, 0xD2)
ERL, ERR, STRING_S, USING, INSTR, VARPTR, CSRLIN, POINT = range(0xD2, 0xDA)
OFF, INKEY_S = 0xDA, 0xDB

# Operators; the two-character relations live in their own block.
GREATER, EQUAL, LESS, PLUS, MINUS, TIMES, DIVIDE, POWER = range(0xE3, 0xEB)
AND, OR, XOR, EQV, IMP, MOD = range(0xEB, 0xF1)
GREATER_EQUAL, LESS_EQUAL, NOT_EQUAL, INT_DIVIDE = range(0xF1, 0xF5)

RELATIONAL = frozenset({GREATER, EQUAL, LESS, GREATER_EQUAL, LESS_EQUAL, NOT_EQUAL})


class Kind(enum.Enum):
    STATEMENT = "statement"
    KEYWORD = "keyword"
    OPERATOR = "operator"
    STD_FUNCTION = "std_function"
    EXT_STATEMENT = "ext_statement"
    EXT_FUNCTION = "ext_function"


@dataclass(frozen=True)
class ReservedWord:
    name: str
    kind: Kind
    code: bytes


_STATEMENT_NAMES = {
    END: "END", FOR: "FOR", NEXT: "NEXT", DATA: "DATA", INPUT: "INPUT", DIM: "DIM", READ: "READ", LET: "LET",
    GOTO: "GOTO", RUN: "RUN", IF: "IF", RESTORE: "RESTORE", GOSUB: "GOSUB", RETURN: "RETURN", REM: "REM", STOP: "STOP",
    PRINT: "PRINT", CLEAR: "CLEAR", LIST: "LIST", NEW: "NEW", ON: "ON", WAIT: "WAIT", DEF: "DEF", POKE: "POKE",
    CONT: "CONT", OUT: "OUT", LPRINT: "LPRINT", LLIST: "LLIST", WIDTH: "WIDTH",
    ELSE: "ELSE", TRON: "TRON", TROFF: "TROFF", SWAP: "SWAP", ERASE: "ERASE", EDIT: "EDIT", ERROR: "ERROR", RESUME: "RESUME",
    DELETE: "DELETE", AUTO: "AUTO", RENUM: "RENUM", DEFSTR: "DEFSTR", DEFINT: "DEFINT", DEFSNG: "DEFSNG", DEFDBL: "DEFDBL", LINE: "LINE",
    WHILE: "WHILE", WEND: "WEND", CALL: "CALL",
    WRITE: "WRITE", OPTION: "OPTION", RANDOMIZE: "RANDOMIZE", OPEN: "OPEN", CLOSE: "CLOSE", LOAD: "LOAD", MERGE: "MERGE", SAVE: "SAVE",
    COLOR: "COLOR", CLS: "CLS", MOTOR: "MOTOR", BSAVE: "BSAVE", BLOAD: "BLOAD", SOUND: "SOUND", BEEP: "BEEP", PSET: "PSET",
    PRESET: "PRESET", SCREEN: "SCREEN", KEY: "KEY", LOCATE: "LOCATE",
}

_KEYWORD_NAMES = {
    TO: "TO", THEN: "THEN", TAB: "TAB", STEP: "STEP", USR: "USR", FN: "FN", SPC: "SPC", NOT: "NOT",
    ERL: "ERL", ERR: "ERR", STRING_S: "STRING$", USING: "USING", INSTR: "INSTR", VARPTR: "VARPTR", CSRLIN: "CSRLIN",
    POINT: "POINT", OFF: "OFF", INKEY_S: "INKEY$",
}

_OPERATOR_NAMES = {
    GREATER: ">", EQUAL: "=", LESS: "<", PLUS: "+", MINUS: "-", TIMES: "*", DIVIDE: "/", POWER: "^",
    AND: "AND", OR: "OR", XOR: "XOR", EQV: "EQV", IMP: "IMP", MOD: "MOD",
    GREATER_EQUAL: ">=", LESS_EQUAL: "<=", NOT_EQUAL: "<>", INT_DIVIDE: "\\",
}

# Two-byte tokens: prefix followed by an index into these tables.
STD_FUNCTIONS = (
    "LEFT$", "RIGHT$", "MID$", "SGN", "INT", "ABS", "SQR", "RND", "SIN", "LOG", "EXP", "COS", "TAN", "ATN",
    "FRE", "INP", "POS", "LEN", "STR$", "VAL", "ASC", "CHR$", "PEEK", "SPACE$", "OCT$", "HEX$", "LPOS",
    "CINT", "CSNG", "CDBL", "FIX", "PEN", "STICK", "STRIG", "EOF", "LOC", "LOF", "INPUT$", "ENVIRON$",
)
EXT_STATEMENTS = (
    "FILES", "FIELD", "SYSTEM", "NAME", "LSET", "RSET", "KILL", "PUT", "GET", "RESET", "COMMON", "CHAIN",
    "DATE$", "TIME$", "PAINT", "COM", "CIRCLE", "DRAW", "PLAY", "TIMER", "ERDEV", "IOCTL", "CHDIR", "MKDIR",
    "RMDIR", "SHELL", "ENVIRON", "VIEW", "WINDOW", "PMAP", "PALETTE", "LCOPY", "CALLS",
)
EXT_FUNCTIONS = ("CVI", "CVS", "CVD", "MKI$", "MKS$", "MKD$", "KTN", "JIS", "KPOS", "KLEN")


def _build_reserved() -> dict[str, ReservedWord]:
    table = {}
    for code, name in _STATEMENT_NAMES.items():
        table[name] = ReservedWord(name, Kind.STATEMENT, bytes([code]))
    for code, name in _KEYWORD_NAMES.items():
        table[name] = ReservedWord(name, Kind.KEYWORD, bytes([code]))
    for code, name in _OPERATOR_NAMES.items():
        if name.isalpha(): table[name] = ReservedWord(name, Kind.OPERATOR, bytes([code]))
    for prefix, kind, names in ((STD_FUNCTION, Kind.STD_FUNCTION, STD_FUNCTIONS),
                                (EXT_STATEMENT, Kind.EXT_STATEMENT, EXT_STATEMENTS),
                                (EXT_FUNCTION, Kind.EXT_FUNCTION, EXT_FUNCTIONS)):
        for index, name in enumerate(names):
            table[name] = ReservedWord(name, kind, bytes([prefix, index]))
    return table


RESERVED: dict[str, ReservedWord] = _build_reserved()

# Reserved words bucketed by first letter, longest first.
BY_LETTER: dict[str, tuple[ReservedWord, ...]] = {
    letter: tuple(sorted((w for w in RESERVED.values() if w.name[0] == letter), key=lambda w: -len(w.name)))
    for letter in "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
}

TOKEN_NAMES: dict[bytes, str] = {w.code: w.name for w in RESERVED.values()}
TOKEN_NAMES.update({bytes([c]): n for c, n in _OPERATOR_NAMES.items()})

# Statements whose numeric arguments are line numbers.
LINE_NUMBER_CONTEXT = frozenset({GOTO, GOSUB, THEN, ELSE, RESTORE, RESUME, RUN, LIST, LLIST, DELETE, EDIT, RENUM, AUTO})


def ext(name: str) -> bytes:
    return RESERVED[name].code


# Two-byte token constants used by the dispatcher and evaluator.
MID_S = ext("MID$")
FILES, FIELD, SYSTEM, NAME, LSET, RSET, KILL, PUT, GET = (ext(n) for n in EXT_STATEMENTS[:9])
RESET, COMMON, CHAIN, DATE_S, TIME_S, PAINT, COM, CIRCLE, DRAW, PLAY, TIMER = (ext(n) for n in EXT_STATEMENTS[9:20])
ERDEV, IOCTL, CHDIR, MKDIR, RMDIR, SHELL, ENVIRON, VIEW, WINDOW, PMAP, PALETTE, LCOPY, CALLS = (ext(n) for n in EXT_STATEMENTS[20:])
PEN, STRIG = ext("PEN"), ext("STRIG")


def token_name(code: bytes) -> str:
    return TOKEN_NAMES.get(code, f"<{code.hex()}>")


# Byte-stream scanning ────────────────────────────────────────────────────────────────────────
def token_at(buf: bytes, pos: int) -> tuple[int | bytes, int]:
    """Return the token at `pos` (int for single bytes, bytes for prefixed pairs) and the next position."""
    if pos >= len(buf): return LINE_END, pos
    b = buf[pos]
    if b in LITERAL_SIZES: return b, pos + LITERAL_SIZES[b]
    if b >= EXT_FUNCTION: return bytes(buf[pos:pos + 2]), pos + 2
    return b, pos + 1

def skip_spaces(buf: bytes, pos: int) -> int:
    while pos < len(buf) and buf[pos] in (0x20, 0x09): pos += 1
    return pos

def peek(buf: bytes, pos: int) -> int:
    pos = skip_spaces(buf, pos)
    return buf[pos] if pos < len(buf) else LINE_END

def at_statement_end(buf: bytes, pos: int) -> bool:
    return peek(buf, pos) in (LINE_END, ord(':'), ELSE, ord("'"))

def skip_string(buf: bytes, pos: int) -> int:
    """Given `pos` on an opening quote, return the position after the closing quote or at EOL."""
    pos += 1
    while pos < len(buf) and buf[pos] not in (ord('"'), LINE_END): pos += 1
    return pos + 1 if pos < len(buf) and buf[pos] == ord('"') else pos

def line_end(buf: bytes, pos: int = 0) -> int:
    """Position of the 0x00 terminator, stepping over literal payloads that may contain zero bytes."""
    while pos < len(buf) and buf[pos] != LINE_END:
        b = buf[pos]
        if b == ord('"'): pos = skip_string(buf, pos)
        elif b in (REM, ord("'")): pos = _raw_end(buf, pos + 1)
        else: pos = token_at(buf, pos)[1]
    return min(pos, len(buf))

def data_end(buf: bytes, pos: int) -> int:
    """End of a DATA body: the first ':' outside quotes, or EOL."""
    while pos < len(buf) and buf[pos] not in (LINE_END, ord(':')):
        pos = skip_string(buf, pos) if buf[pos] == ord('"') else pos + 1
    return pos

def _raw_end(buf: bytes, pos: int) -> int:
    while pos < len(buf) and buf[pos] != LINE_END: pos += 1
    return pos

def statement_end(buf: bytes, pos: int) -> int:
    """Position of the ':' or EOL that ends the statement starting at `pos`."""
    for p, tok in iter_tokens(buf, pos):
        if tok == ord(':'): return p
    return line_end(buf, pos)

def iter_tokens(buf: bytes, pos: int = 0):
    """Yield `(position, token)` pairs up to EOL, never looking inside strings, remarks or DATA bodies."""
    while pos < len(buf) and buf[pos] != LINE_END:
        b = buf[pos]
        if b == ord('"'):
            yield pos, b
            pos = skip_string(buf, pos)
            continue
        if b in (REM, ord("'")):
            yield pos, b
            return
        if b == DATA:
            yield pos, b
            pos = data_end(buf, pos + 1)
            continue
        tok, nxt = token_at(buf, pos)
        yield pos, tok
        pos = nxt

def read_name(buf: bytes, pos: int) -> tuple[str | None, int]:
    """Read an identifier (letter, then letters/digits/periods, optional type suffix)."""
    pos = skip_spaces(buf, pos)
    if pos >= len(buf) or not chr(buf[pos]).isalpha() or buf[pos] > 0x7E: return None, pos
    start = pos
    while pos < len(buf) and buf[pos] < 0x7F and (chr(buf[pos]).isalnum() or buf[pos] == ord('.')): pos += 1
    if pos < len(buf) and buf[pos] in b'$%!#': pos += 1
    return buf[start:pos].decode('ascii').upper(), pos

def read_uint16(buf: bytes, pos: int) -> int:
    return struct.unpack_from('<H', buf, pos)[0]

def read_int16(buf: bytes, pos: int) -> int:
    return struct.unpack_from('<h', buf, pos)[0]

def encode_line_ref(number: int) -> bytes:
    return bytes([LINE_REF]) + struct.pack('<H', number)

def encode_int(value: int) -> bytes:
    return bytes([INT_LITERAL]) + struct.pack('<h', value)
