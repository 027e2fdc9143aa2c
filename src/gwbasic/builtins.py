## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import os
import time
import struct
import inspect
import datetime
import functools
from typing import Any, Callable

from . import numeric as N
from .mbf import ieee_to_mbf32, ieee_to_mbf64, mbf32_to_ieee, mbf64_to_ieee
from .types import ScalarType, Value, TRUE, FALSE
from .errors import IllegalFunctionCall, BasicSyntaxError, Overflow


def get_python_name(basic_name: str) -> str:
    """Map a BASIC function name to its Python function name."""
    return 'fn_' + basic_name.lower().replace('$', '_s')

def get_basic_name(py_name: str) -> str:
    """Inverse of `get_python_name`."""
    if not py_name.startswith('fn_'): raise ValueError(f"Builtin `{py_name}` requires prefix `fn_` by convention.")
    name = py_name[3:].upper()
    return name[:-2] + '$' if name.endswith('_S') else name


def _text(v: Value) -> str:
    N.require_string(v)
    return v.value

def _byte(v: Value) -> int:
    if not 0 <= (n := N.to_int16(v)) <= 255: raise IllegalFunctionCall()
    return n

def _unsigned16(v: Value) -> int:
    n = N.round_half_away(N.to_float(v))
    if -32768 <= n < 0: n += 0x10000
    if not 0 <= n <= 0xFFFF: raise Overflow()
    return n


## STRINGS
def fn_left_s(s: Value, n: Value) -> Value: return Value.string(_text(s)[:_byte(n)])
def fn_right_s(s: Value, n: Value) -> Value:
    text, count = _text(s), _byte(n)
    return Value.string(text[len(text) - count:] if count else "")
def fn_mid_s(s: Value, start: Value, length: Value | None = None) -> Value:
    text, i = _text(s), _byte(start)
    if i < 1: raise IllegalFunctionCall()
    count = 255 if length is None else _byte(length)
    return Value.string(text[i - 1:i - 1 + count])
def fn_len(s: Value) -> Value: return Value.int(len(_text(s)))
def fn_asc(s: Value) -> Value:
    if not (text := _text(s)): raise IllegalFunctionCall()
    return Value.int(ord(text[0]))
def fn_chr_s(n: Value) -> Value: return Value.string(chr(_byte(n)))
def fn_space_s(n: Value) -> Value: return Value.string(' ' * _byte(n))
def fn_string_s(n: Value, x: Value) -> Value:
    if x.is_string:
        if not x.value: raise IllegalFunctionCall()
        return Value.string(x.value[0] * _byte(n))
    return Value.string(chr(_byte(x)) * _byte(n))
def fn_str_s(x: Value) -> Value: return Value.string(N.format_number(x))
def fn_val(s: Value) -> Value: return N.val(_text(s))
def fn_hex_s(x: Value) -> Value: return Value.string(f"{_unsigned16(x):X}")
def fn_oct_s(x: Value) -> Value: return Value.string(f"{_unsigned16(x):o}")

def fn_instr(*args: Value) -> Value:
    """INSTR([start,] haystack, needle): 1-based position of `needle`, or 0."""
    if len(args) == 2: start, (s, t) = 1, args
    elif len(args) == 3: start, s, t = _byte(args[0]), args[1], args[2]
    else: raise BasicSyntaxError()
    if start < 1: raise IllegalFunctionCall()
    haystack, needle = _text(s), _text(t)
    if start > len(haystack): return Value.int(0)
    return Value.int(haystack.find(needle, start - 1) + 1)


## NUMBERS
def fn_sgn(x: Value) -> Value: return N.sgn(x)
def fn_int(x: Value) -> Value: return N.int_floor(x)
def fn_fix(x: Value) -> Value: return N.fix(x)
def fn_abs(x: Value) -> Value: return N.absolute(x)
def fn_sqr(x: Value) -> Value: return N.sqr(x)
def fn_sin(x: Value) -> Value: return N.sin(x)
def fn_cos(x: Value) -> Value: return N.cos(x)
def fn_tan(x: Value) -> Value: return N.tan(x)
def fn_atn(x: Value) -> Value: return N.atn(x)
def fn_log(x: Value) -> Value: return N.log(x)
def fn_exp(x: Value) -> Value: return N.exp(x)
def fn_cint(x: Value) -> Value: return N.cint(x)
def fn_csng(x: Value) -> Value: return N.csng(x)
def fn_cdbl(x: Value) -> Value: return N.cdbl(x)

def fn_rnd(rt, x: Value | None = None) -> Value:
    return Value.single(rt.rng.rnd(None if x is None else N.to_float(x)))


## BINARY CONVERSIONS
def _bytes_of(s: Value, size: int) -> bytes:
    if len(text := _text(s)) < size: raise IllegalFunctionCall()
    return text[:size].encode('latin-1')

def fn_cvi(s: Value) -> Value: return Value.int(struct.unpack('<h', _bytes_of(s, 2))[0])
def fn_cvs(s: Value) -> Value: return Value.single(mbf32_to_ieee(_bytes_of(s, 4)))
def fn_cvd(s: Value) -> Value: return Value.double(mbf64_to_ieee(_bytes_of(s, 8)))
def fn_mki_s(x: Value) -> Value: return Value.string(struct.pack('<h', N.to_int16(x)).decode('latin-1'))
def fn_mks_s(x: Value) -> Value: return Value.string(ieee_to_mbf32(N.to_float(x)).decode('latin-1'))
def fn_mkd_s(x: Value) -> Value: return Value.string(ieee_to_mbf64(N.to_float(x)).decode('latin-1'))


## FILES & DEVICES
def fn_eof(rt, n: Value) -> Value: return TRUE if rt.files.eof(N.to_int16(n)) else FALSE
def fn_loc(rt, n: Value) -> Value: return N.make(ScalarType.INT, rt.files.loc(N.to_int16(n)))
def fn_lof(rt, n: Value) -> Value: return N.make(ScalarType.INT, rt.files.lof(N.to_int16(n)))

def fn_input_s(rt, n: Value, f: Value | None = None) -> Value:
    count = _byte(n)
    if count < 1: raise IllegalFunctionCall()
    if f is not None: return Value.string(rt.files.input_chars(N.to_int16(f), count))
    chars = ""
    while len(chars) < count:
        chars += rt.host.inkey() or rt.host.input("")[:count - len(chars)] or "\r"
    return Value.string(chars)

def fn_inkey_s(rt) -> Value: return Value.string(rt.host.inkey()[:1])
def fn_pos(rt, x: Value) -> Value: return Value.int(rt.console.position)
def fn_lpos(rt, x: Value) -> Value: return Value.int(rt.printer.position)
def fn_csrlin(rt) -> Value: return Value.int(rt.console.row)
def fn_peek(rt, addr: Value) -> Value: return Value.int(rt.memory.peek(_unsigned16(addr)))

def fn_fre(rt, x: Value) -> Value:
    if x.is_string: rt.heap.compact()
    return N.make(ScalarType.SINGLE, rt.heap.free_bytes)

def fn_point(rt, x: Value, y: Value | None = None) -> Value:
    if y is None:
        if (which := N.to_int16(x)) not in (0, 1, 2, 3): raise IllegalFunctionCall()
        return Value.int(rt.graphics.last[which % 2])
    return Value.int(rt.graphics.point(N.to_int16(x), N.to_int16(y)))

# Hardware without an emulated device reads as idle.
def fn_inp(port: Value) -> Value:
    _unsigned16(port)
    return Value.int(0)
def fn_pen(n: Value) -> Value: return Value.int(0)
def fn_stick(n: Value) -> Value: return Value.int(0)
def fn_strig(n: Value) -> Value: return Value.int(0)
def fn_play(n: Value) -> Value: return Value.int(0)
def fn_erdev() -> Value: return Value.int(0)

def fn_usr(x: Value) -> Value: raise IllegalFunctionCall()
def fn_varptr(x: Value) -> Value: raise IllegalFunctionCall()


## SYSTEM
def fn_err(rt) -> Value: return Value.int(rt.err)
def fn_erl(rt) -> Value: return N.make(ScalarType.INT, rt.erl)

def fn_timer() -> Value:
    now = datetime.datetime.now()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return Value.single((now - midnight).total_seconds())

def fn_date_s() -> Value: return Value.string(time.strftime("%m-%d-%Y"))
def fn_time_s() -> Value: return Value.string(time.strftime("%H:%M:%S"))

def fn_environ_s(x: Value) -> Value:
    if x.is_string: return Value.string(os.environ.get(x.value.upper(), os.environ.get(x.value, "")))
    if (n := N.to_int16(x)) < 1: raise IllegalFunctionCall()
    entries = list(os.environ.items())
    return Value.string(f"{entries[n - 1][0]}={entries[n - 1][1]}" if n <= len(entries) else "")


def bind_builtin(fn: Callable[..., Value], rt: Any) -> Callable[[list[Value]], Value]:
    """Bind the runtime for builtins that take `rt`, and check the argument count BASIC passes in."""
    params = list(inspect.signature(fn).parameters.values())
    if params and params[0].name == 'rt':
        fn, params = functools.partial(fn, rt), params[1:]
    variadic = any(p.kind is p.VAR_POSITIONAL for p in params)
    low = sum(1 for p in params if p.default is p.empty and p.kind is not p.VAR_POSITIONAL)
    high = len(params)

    def call(args: list[Value]) -> Value:
        if len(args) < low or (not variadic and len(args) > high): raise BasicSyntaxError()
        return fn(*args)
    return call


def load_builtins(rt: Any) -> dict[str, Callable[[list[Value]], Value]]:
    """Table of every `fn_*` function in this module keyed by its BASIC name."""
    return {get_basic_name(k): bind_builtin(v, rt) for k, v in globals().items() if k.startswith('fn_') and callable(v)}
