## gwbasic — Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import pytest

from gwbasic import numeric as N
from gwbasic.types import ScalarType, Value
from gwbasic.using import format_using
from gwbasic.errors import DivisionByZero, Overflow, TypeMismatch, IllegalFunctionCall, StringTooLong


def test_integer_addition_promotes_instead_of_wrapping():
    result = N.add(Value.int(32767), Value.int(1))
    assert result.type is ScalarType.SINGLE
    assert result.value == 32768.0

def test_mixed_arithmetic_promotes_to_widest():
    assert N.mul(Value.int(2), Value.single(1.5)).type is ScalarType.SINGLE
    assert N.add(Value.single(1.5), Value.double(1.0)).type is ScalarType.DOUBLE
    assert N.sub(Value.int(7), Value.int(2)) == Value.int(5)

def test_division_is_always_floating():
    assert N.div(Value.int(7), Value.int(2)) == Value.single(3.5)

def test_integer_division_and_mod_truncate():
    assert N.int_div(Value.int(-7), Value.int(2)) == Value.int(-3)
    assert N.mod(Value.int(-7), Value.int(2)) == Value.int(-1)
    assert N.int_div(Value.single(7.6), Value.int(2)) == Value.int(4)

@pytest.mark.parametrize("fn", [N.div, N.int_div, N.mod])
def test_division_by_zero(fn):
    with pytest.raises(DivisionByZero):
        fn(Value.int(1), Value.int(0))

def test_single_overflow():
    with pytest.raises(Overflow):
        N.mul(Value.single(1e38), Value.single(1e10))

def test_cint_rounds_half_away_and_checks_range():
    assert N.to_int16(Value.single(2.5)) == 3
    assert N.to_int16(Value.single(-2.5)) == -3
    with pytest.raises(Overflow):
        N.to_int16(Value.single(40000.0))

def test_int_floors_and_fix_truncates():
    assert N.int_floor(Value.single(-2.5)) == Value.int(-3)
    assert N.fix(Value.single(-2.5)) == Value.int(-2)

@pytest.mark.parametrize("a, b", [(1, 2), (2, 2), (3, 1), (-1, 0)])
def test_comparisons_yield_minus_one_or_zero(a, b):
    for fn in (N.equal, N.not_equal, N.less, N.greater, N.less_equal, N.greater_equal):
        assert fn(Value.int(a), Value.int(b)).value in (0, -1)
    assert N.less(Value.int(a), Value.int(b)).value == (-1 if a < b else 0)

def test_string_comparison_and_concatenation():
    assert N.less(Value.string("ABC"), Value.string("ABD")) == N.TRUE
    assert N.equal(Value.string("A"), Value.string("A")) == N.TRUE
    assert N.add(Value.string("AB"), Value.string("CD")) == Value.string("ABCD")
    with pytest.raises(StringTooLong):
        N.add(Value.string("X" * 200), Value.string("Y" * 100))

def test_mixing_strings_and_numbers_is_a_type_mismatch():
    with pytest.raises(TypeMismatch):
        N.add(Value.string("1"), Value.int(1))
    with pytest.raises(TypeMismatch):
        N.equal(Value.string("1"), Value.int(1))

def test_logical_operators_work_bitwise():
    assert N.logical_and(Value.int(12), Value.int(10)) == Value.int(8)
    assert N.logical_or(Value.int(12), Value.int(10)) == Value.int(14)
    assert N.logical_xor(Value.int(12), Value.int(10)) == Value.int(6)
    assert N.logical_not(Value.int(0)) == Value.int(-1)
    assert N.logical_and(Value.single(65535.0), Value.int(255)) == Value.int(255)

def test_evaluate_reports_error_codes():
    assert N.evaluate('+', Value.int(1), Value.int(2)) == (Value.int(3), None)
    assert N.evaluate('/', Value.int(1), Value.int(0)) == (None, 11)
    assert N.evaluate('-', Value.int(5)) == (Value.int(-5), None)

def test_power():
    assert N.power(Value.int(2), Value.int(10)).value == 1024.0
    with pytest.raises(IllegalFunctionCall):
        N.power(Value.int(-8), Value.single(0.5))

def test_math_functions_reject_bad_domains():
    with pytest.raises(IllegalFunctionCall):
        N.sqr(Value.int(-1))
    with pytest.raises(IllegalFunctionCall):
        N.log(Value.int(0))
    assert N.sgn(Value.single(-3.5)) == Value.int(-1)

def test_number_display():
    assert N.format_number(Value.int(14)) == " 14"
    assert N.format_number(Value.int(-3)) == "-3"
    assert N.format_number(Value.single(3.5)) == " 3.5"
    assert N.format_number(Value.single(0.25)) == " .25"
    assert N.format_number(Value.single(1e10)) == " 1E+10"
    assert N.format_number(Value.double(1e20)) == " 1D+20"
    assert N.format_number(Value.single(1234567.0)) == " 1234567"

def test_number_display_rejects_strings():
    with pytest.raises(TypeMismatch):
        N.format_number(Value.string("x"))

def test_parse_literal_picks_types():
    assert N.parse_literal("12")[0] == Value.int(12)
    assert N.parse_literal("40000")[0].type is ScalarType.SINGLE
    assert N.parse_literal("1.5")[0].type is ScalarType.SINGLE
    assert N.parse_literal("1.5#")[0].type is ScalarType.DOUBLE
    assert N.parse_literal("1D3")[0] == Value.double(1000.0)
    assert N.parse_literal("123456789")[0].type is ScalarType.DOUBLE
    assert N.parse_literal("&HFF")[0] == Value.int(255)
    assert N.parse_literal("&O17")[0] == Value.int(15)

def test_parse_number_and_val():
    assert N.parse_number(" -42 ") == Value.int(-42)
    assert N.parse_number("12abc") is None
    assert N.val("  12abc") == Value.int(12)
    assert N.val("abc") == Value.int(0)
    assert N.val("-1.5") == Value.single(-1.5)

def test_rnd_sequence_depends_only_on_seed():
    a, b = N.RandomGenerator(), N.RandomGenerator()
    a.randomize(42)
    b.seed(12345)
    b.randomize(42)
    assert [a.rnd() for _ in range(5)] == [b.rnd() for _ in range(5)]

def test_rnd_zero_repeats_last_value():
    rng = N.RandomGenerator()
    x = rng.rnd()
    assert rng.rnd(0) == x
    assert 0 <= x < 1


## PRINT USING
def test_using_digits_and_decimals():
    assert format_using("##.##", [Value.single(3.14159)]) == " 3.14"
    assert format_using("###", [Value.int(-5)]) == " -5"

def test_using_overflow_marks_with_percent():
    assert format_using("##", [Value.int(123)]) == "%123"

def test_using_currency_fill_and_commas():
    assert format_using("$$###.##", [Value.single(12.5)]) == "  $12.50"
    assert format_using("**###", [Value.int(42)]) == "***42"
    assert format_using("#,###", [Value.int(1234)]) == "1,234"

def test_using_signs():
    assert format_using("+##", [Value.int(5)]) == " +5"
    assert format_using("##-", [Value.int(-5)]) == " 5-"

def test_using_exponential():
    assert format_using("##.##^^^^", [Value.single(1234.0)]) == " 1.23E+03"

def test_using_string_fields():
    assert format_using("!", [Value.string("HELLO")]) == "H"
    assert format_using("\\  \\", [Value.string("HELLO")]) == "HELL"
    assert format_using("&!", [Value.string("AB"), Value.string("CD")]) == "ABC"

def test_using_cycles_template_and_literals():
    assert format_using("<#>", [Value.int(1), Value.int(2)]) == "<1><2>"
    assert format_using("_##", [Value.int(1)]) == "#1"

def test_using_type_checks():
    with pytest.raises(TypeMismatch):
        format_using("##", [Value.string("X")])
    with pytest.raises(IllegalFunctionCall):
        format_using("abc", [Value.int(1)])
