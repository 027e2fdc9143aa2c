## gwbasic — Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import pytest

from gwbasic import builtins as B
from gwbasic.builtins import get_python_name, get_basic_name, bind_builtin, load_builtins
from gwbasic.runtime import Runtime
from gwbasic.host import CapturingHost
from gwbasic.types import Value
from gwbasic.errors import BasicSyntaxError, IllegalFunctionCall, Overflow


def evaluate(expression: str, host: CapturingHost | None = None) -> str:
    host = host or CapturingHost()
    rt = Runtime(host)
    assert rt.execute_immediate(f"PRINT {expression}")
    return host.text


@pytest.mark.parametrize("basic, python", [("LEFT$", "fn_left_s"), ("LEN", "fn_len"), ("INKEY$", "fn_inkey_s")])
def test_name_mapping(basic, python):
    assert get_python_name(basic) == python
    assert get_basic_name(python) == basic

def test_builtins_require_prefix():
    with pytest.raises(ValueError):
        get_basic_name("left")

def test_table_covers_every_function():
    table = load_builtins(Runtime(CapturingHost()))
    for name in ("LEFT$", "MID$", "INSTR", "CVI", "MKS$", "EOF", "PEEK", "TIMER", "ERR", "ENVIRON$"):
        assert name in table

def test_argument_counts_are_checked():
    call = bind_builtin(B.fn_mid_s, None)
    assert call([Value.string("HELLO"), Value.int(2)]) == Value.string("ELLO")
    with pytest.raises(BasicSyntaxError):
        call([Value.string("HELLO")])
    with pytest.raises(BasicSyntaxError):
        call([Value.string("A"), Value.int(1), Value.int(1), Value.int(1)])


## STRINGS
def test_substrings():
    assert B.fn_left_s(Value.string("HELLO"), Value.int(10)) == Value.string("HELLO")
    assert B.fn_right_s(Value.string("HELLO"), Value.int(0)) == Value.string("")
    with pytest.raises(IllegalFunctionCall):
        B.fn_mid_s(Value.string("HELLO"), Value.int(0))
    with pytest.raises(IllegalFunctionCall):
        B.fn_left_s(Value.string("HELLO"), Value.int(-1))

def test_instr():
    assert B.fn_instr(Value.string("BANANA"), Value.string("AN")) == Value.int(2)
    assert B.fn_instr(Value.int(3), Value.string("BANANA"), Value.string("AN")) == Value.int(4)
    assert B.fn_instr(Value.int(9), Value.string("BANANA"), Value.string("A")) == Value.int(0)

def test_character_functions():
    assert B.fn_asc(Value.string("A")) == Value.int(65)
    assert B.fn_chr_s(Value.int(66)) == Value.string("B")
    assert B.fn_string_s(Value.int(3), Value.string("xyz")) == Value.string("xxx")
    assert B.fn_string_s(Value.int(2), Value.int(42)) == Value.string("**")
    assert B.fn_space_s(Value.int(2)) == Value.string("  ")
    with pytest.raises(IllegalFunctionCall):
        B.fn_asc(Value.string(""))

def test_number_strings():
    assert B.fn_str_s(Value.int(5)) == Value.string(" 5")
    assert B.fn_val(Value.string(" -3.5")) == Value.single(-3.5)
    assert B.fn_hex_s(Value.int(-1)) == Value.string("FFFF")
    assert B.fn_oct_s(Value.int(8)) == Value.string("10")
    with pytest.raises(Overflow):
        B.fn_hex_s(Value.single(70000.0))


## BINARY CONVERSIONS
def test_binary_conversions_round_trip():
    assert B.fn_cvi(B.fn_mki_s(Value.int(-2))) == Value.int(-2)
    assert B.fn_cvs(B.fn_mks_s(Value.single(1.5))) == Value.single(1.5)
    assert B.fn_cvd(B.fn_mkd_s(Value.double(0.1))) == Value.double(0.1)
    assert B.fn_mki_s(Value.int(258)) == Value.string("\x02\x01")
    with pytest.raises(IllegalFunctionCall):
        B.fn_cvi(Value.string("A"))


## THROUGH THE INTERPRETER
def test_functions_in_expressions():
    assert evaluate('LEN("ABC") + ASC("A")') == " 68\n"
    assert evaluate('INT(-2.5); FIX(-2.5); ABS(-3); SGN(-7)') == "-3 -2  3 -1\n"
    assert evaluate('SQR(16); CINT(2.5)') == " 4  3\n"
    assert evaluate('HEX$(255); OCT$(8); STR$(7)') == "FF10 7\n"

def test_inkey_reads_queued_keys():
    host = CapturingHost(keys="Q")
    assert evaluate('INKEY$; INKEY$; "."', host) == "Q.\n"

def test_rnd_is_reproducible_after_randomize():
    first, second = CapturingHost(), CapturingHost()
    for host in (first, second):
        Runtime(host).execute_immediate("RANDOMIZE 7 : PRINT RND; RND; RND(0)")
    assert first.text == second.text

def test_err_and_erl_start_at_zero():
    assert evaluate("ERR; ERL") == " 0  0\n"

def test_peek_reads_poked_memory():
    host = CapturingHost()
    rt = Runtime(host)
    rt.execute_immediate("DEF SEG = &H100 : POKE 5, 200 : PRINT PEEK(5)")
    assert host.text == " 200\n"
    assert rt.memory.data[0x1005] == 200

def test_pos_tracks_the_cursor():
    assert evaluate('"AB"; POS(0)') == "AB 3\n"

def test_fre_reports_string_space():
    host = CapturingHost()
    rt = Runtime(host, heap_size=1000)
    rt.execute_immediate('A$ = "HELLO" : PRINT FRE("")')
    assert host.text == " 993\n"

def test_usr_is_not_supported():
    host = CapturingHost()
    assert not Runtime(host).execute_immediate("PRINT USR(0)")
    assert host.text == "Illegal function call\n"
