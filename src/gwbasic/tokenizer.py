## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import re
from dataclasses import dataclass

from . import tokens as T
from .mbf import ieee_to_mbf32, ieee_to_mbf64, mbf32_to_ieee, mbf64_to_ieee
from .types import ScalarType, Value
from .errors import BasicSyntaxError, Overflow
from .numeric import parse_literal, number_text


MAX_LINE_NUMBER = 65529

_CONTINUATION_RE = re.compile(r'_(?:\r\n|\r|\n)')
_LINE_NUMBER_RE = re.compile(r'[ \t]*(\d+)[ \t]?')
_WORD_RE = re.compile(r'[A-Za-z][A-Za-z0-9.]*')
_GO_TO_RE = re.compile(r'[ \t]+TO(?![A-Za-z0-9.])', re.IGNORECASE)
_DIGITS_RE = re.compile(r'\d+(?![.\dEeDd!#%])')
_RELATIONS = {'<=': T.LESS_EQUAL, '=<': T.LESS_EQUAL, '>=': T.GREATER_EQUAL, '=>': T.GREATER_EQUAL,
              '<>': T.NOT_EQUAL, '><': T.NOT_EQUAL}
_OPERATOR_CHARS = {'>': T.GREATER, '=': T.EQUAL, '<': T.LESS, '+': T.PLUS, '-': T.MINUS,
                   '*': T.TIMES, '/': T.DIVIDE, '^': T.POWER, '\\': T.INT_DIVIDE}
_SPLIT_PREFIXES = {"GOTO", "GOSUB", "RESTORE", "RESUME", "RUN", "ELSE", "THEN", "TO", "STEP"}


def _split_keyword(word: str) -> T.ReservedWord | None:
    """Line-number keyword run into its digits, as in `GOSUB100`; candidates come longest first."""
    for reserved in T.BY_LETTER.get(word[0], ()):
        if reserved.name in _SPLIT_PREFIXES and word.startswith(reserved.name):
            return reserved if word[len(reserved.name):][:1].isdigit() else None
    return None


@dataclass
class Token:
    text: str
    data: bytes
    kind: str
    position: int


def encode_number(value: Value) -> bytes:
    match value.type:
        case ScalarType.INT: return T.encode_int(value.value)
        case ScalarType.SINGLE: return bytes([T.SINGLE_LITERAL]) + ieee_to_mbf32(value.value)
        case _: return bytes([T.DOUBLE_LITERAL]) + ieee_to_mbf64(value.value)


class _Scanner:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.expect_line = False
        self.tokens: list[Token] = []

    def error(self, message: str):
        return BasicSyntaxError(f"{message} at column {self.pos + 1}.", position=self.pos)

    def emit(self, kind: str, data: bytes, start: int) -> None:
        self.tokens.append(Token(self.text[start:self.pos], data, kind, start))

    def scan(self) -> list[Token]:
        text = self.text
        if m := _LINE_NUMBER_RE.match(text):
            if (number := int(m.group(1))) > MAX_LINE_NUMBER: raise self.error("Line number out of range")
            self.pos = m.end()
            self.tokens.append(Token(m.group(1), T.encode_line_ref(number), 'line_number', m.start(1)))

        while self.pos < len(text):
            start, ch = self.pos, text[self.pos]
            if ch in ' \t':
                while self.pos < len(text) and text[self.pos] in ' \t': self.pos += 1
                self.emit('space', b' ' * (self.pos - start), start)
            elif ch == '"':
                end = text.find('"', start + 1)
                self.pos = len(text) if end < 0 else end + 1
                self.emit('string', self._raw(text[start:self.pos]), start)
                self.expect_line = False
            elif ch == "'":
                self.pos = len(text)
                self.emit('remark', self._raw(text[start:]), start)
            elif ch.isdigit() or (ch == '.' and text[start + 1:start + 2].isdigit()):
                self._number(start)
            elif ch == '&':
                self._number(start)
            elif ch.isascii() and ch.isalpha():
                self._word(start)
            elif ch == '?':
                self.pos += 1
                self.emit('statement', bytes([T.PRINT]), start)
                self.expect_line = False
            elif text[start:start + 2] in _RELATIONS:
                self.pos += 2
                self.emit('operator', bytes([_RELATIONS[text[start:start + 2]]]), start)
                self.expect_line = False
            elif ch in _OPERATOR_CHARS:
                self.pos += 1
                self.emit('operator', bytes([_OPERATOR_CHARS[ch]]), start)
                self.expect_line = self.expect_line and ch == '-'
            elif ' ' <= ch <= '~':
                self.pos += 1
                self.emit('punctuation', ch.encode('ascii'), start)
                self.expect_line = self.expect_line and ch == ','
            else:
                raise self.error(f"Illegal character {ch!r}")
        return self.tokens

    def _raw(self, s: str) -> bytes:
        try:
            return s.replace('\t', ' ').encode('latin-1')
        except UnicodeEncodeError:
            raise self.error("Character outside the 8-bit range") from None

    def _number(self, start: int) -> None:
        if self.expect_line and (m := _DIGITS_RE.match(self.text, start)):
            if (number := int(m.group())) > MAX_LINE_NUMBER: raise self.error("Line number out of range")
            self.pos = m.end()
            self.emit('line_ref', T.encode_line_ref(number), start)
            return
        try:
            parsed = parse_literal(self.text, start)
        except Overflow:
            raise self.error("Numeric literal overflow") from None
        if parsed is None: raise self.error("Malformed numeric literal")
        value, self.pos = parsed
        self.emit(value.type.name.lower() if value.type is not ScalarType.INT else 'integer', encode_number(value), start)
        self.expect_line = False

    def _word(self, start: int) -> None:
        text = self.text
        m = _WORD_RE.match(text, start)
        word, end = m.group().upper(), m.end()
        suffix = text[end] if end < len(text) and text[end] in '$%!#' else ''

        if (reserved := T.RESERVED.get(word + suffix)) or (reserved := T.RESERVED.get(word)):
            self.pos = start + len(reserved.name)
            return self._reserved(reserved, start)
        if word == 'GO' and (go := _GO_TO_RE.match(text, end)):
            self.pos = go.end()
            return self._reserved(T.RESERVED['GOTO'], start)
        if word.startswith('FN') and len(word) > 2:
            self.pos = start + 2
            self.emit('keyword', bytes([T.FN]), start)
            start = self.pos
        elif (split := _split_keyword(word)) is not None:
            self.pos = start + len(split.name)
            return self._reserved(split, start)
        self.pos = end + len(suffix)
        self.emit('identifier', text[start:self.pos].upper().encode('ascii'), start)
        self.expect_line = False

    def _reserved(self, word: T.ReservedWord, start: int) -> None:
        self.emit(word.kind.value, word.code, start)
        code = word.code[0] if len(word.code) == 1 else None
        self.expect_line = code in T.LINE_NUMBER_CONTEXT
        if code == T.REM:
            body = self.text[self.pos:]
            self.pos, begin = len(self.text), self.pos
            self.emit('remark', self._raw(body), begin)
        elif code == T.DATA:
            begin, quoted = self.pos, False
            while self.pos < len(self.text) and (quoted or self.text[self.pos] != ':'):
                quoted ^= self.text[self.pos] == '"'
                self.pos += 1
            self.emit('data', self._raw(self.text[begin:self.pos]), begin)


def tokenize(src: str) -> list[Token]:
    """Lexical pass over one logical line; each token keeps its source text and byte encoding."""
    text = _CONTINUATION_RE.sub(' ', src)
    text = re.split(r'[\r\n]', text, maxsplit=1)[0]
    return _Scanner(text).scan()


def crunch(src: str) -> bytes:
    return b''.join(t.data for t in tokenize(src)) + b'\x00'


def split_line_number(data: bytes) -> tuple[int | None, bytes]:
    """Separate a leading line-number token from the statement bytes."""
    if data[:1] == bytes([T.LINE_REF]):
        return T.read_uint16(data, 1), data[3:]
    return None, data


# Detokenizing ────────────────────────────────────────────────────────────────────────────────
_WORD_END = re.compile(r'[A-Za-z0-9.$%!#]$')
_WORD_START = re.compile(r'^[A-Za-z0-9.]')


def literal_value(data: bytes, pos: int) -> Value:
    match data[pos]:
        case T.INT_LITERAL: return Value.int(T.read_int16(data, pos + 1))
        case T.LINE_REF:
            number = T.read_uint16(data, pos + 1)
            return Value.int(number) if number <= 32767 else Value.single(number)
        case T.SINGLE_LITERAL: return Value.single(mbf32_to_ieee(bytes(data[pos + 1:pos + 5])))
        case T.DOUBLE_LITERAL: return Value.double(mbf64_to_ieee(bytes(data[pos + 1:pos + 9])))
    raise BasicSyntaxError(position=pos)


def _literal_text(data: bytes, pos: int) -> str:
    b = data[pos]
    if b == T.LINE_REF: return str(T.read_uint16(data, pos + 1))
    value = literal_value(data, pos)
    text = number_text(value)
    if value.type is ScalarType.SINGLE and not set(text) & set('.E') and abs(value.value) <= 32767: text += '!'
    if value.type is ScalarType.DOUBLE and 'D' not in text and len(text.replace('.', '').lstrip('-0')) <= 7: text += '#'
    return text


def detokenize(data: bytes) -> str:
    """Recover source text; a space separates adjacent word-like tokens so re-crunching is stable."""
    out: list[str] = []
    prev_token = False

    def put(text: str, is_token: bool):
        nonlocal prev_token
        if out and (is_token or prev_token) and _WORD_END.search(out[-1]) and _WORD_START.match(text):
            out.append(' ')
        out.append(text)
        prev_token = is_token

    pos, end = 0, T.line_end(data)
    number, _ = split_line_number(data)
    if number is not None:
        out.append(f"{number} ")
        pos = 3
    while pos < end:
        b = data[pos]
        if b in T.LITERAL_SIZES:
            put(_literal_text(data, pos), True)
            pos += T.LITERAL_SIZES[b]
        elif b == ord('"'):
            nxt = T.skip_string(data, pos)
            put(bytes(data[pos:nxt]).decode('latin-1'), False)
            pos = nxt
        elif b in (T.REM, ord("'")):
            put("REM" if b == T.REM else "'", b == T.REM)
            out.append(bytes(data[pos + 1:end]).decode('latin-1'))
            pos = end
        elif b == T.DATA:
            put("DATA", True)
            nxt = T.data_end(data, pos + 1)
            out.append(bytes(data[pos + 1:nxt]).decode('latin-1'))
            prev_token = False
            pos = nxt
        elif b >= T.EXT_FUNCTION:
            put(T.token_name(bytes(data[pos:pos + 2])), True)
            pos += 2
        elif b >= 0x80:
            put(T.token_name(bytes([b])), True)
            pos += 1
        else:
            put(chr(b), False)
            pos += 1
    return ''.join(out)
