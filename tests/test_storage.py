## gwbasic — Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import pytest

from gwbasic.types import ScalarType, Value
from gwbasic.heap import StringHeap
from gwbasic.variables import DefaultTypeTable, VariableTable
from gwbasic.arrays import ArrayManager
from gwbasic.functions import UserFunctionManager
from gwbasic.expressions import ExpressionEvaluator
from gwbasic.tokenizer import crunch
from gwbasic.errors import (OutOfStringSpace, StringTooLong, TypeMismatch, DuplicateDefinition, SubscriptOutOfRange,
                            IllegalFunctionCall, UndefinedUserFunction, Overflow)


def tables(capacity: int = 1024):
    heap = StringHeap(capacity)
    deftypes = DefaultTypeTable()
    return heap, deftypes, VariableTable(heap, deftypes), ArrayManager(heap, deftypes)


## STRING HEAP
def test_heap_copies_on_allocation():
    heap = StringHeap(64)
    a = heap.store("HELLO")
    b = heap.alloc_copy(heap.read(a))
    heap.write(b, 0, b"J")
    assert heap.text(a) == "HELLO"
    assert heap.text(b) == "JELLO"

def test_heap_write_never_changes_length():
    heap = StringHeap(64)
    d = heap.store("ABC")
    heap.write(d, 1, b"XYZW")
    assert heap.text(d) == "AXY"

def test_heap_compacts_before_failing():
    heap = StringHeap(20)
    first = heap.store("A" * 8)
    second = heap.store("B" * 8)
    heap.free(first)
    third = heap.store("C" * 8)
    assert heap.text(second) == "B" * 8
    assert heap.text(third) == "C" * 8
    with pytest.raises(OutOfStringSpace):
        heap.store("D" * 8)

def test_heap_limits():
    heap = StringHeap(1024)
    with pytest.raises(StringTooLong):
        heap.store("X" * 256)
    empty = heap.store("")
    assert heap.text(empty) == "" and heap.used == 0


## VARIABLES
def test_default_type_is_single_and_suffix_overrides():
    _, deftypes, variables, _ = tables()
    variables.set("A", Value.single(1.5))
    assert variables.get("A!") == Value.single(1.5)
    assert variables.get("A%") == Value.int(0)
    assert variables.get("A$") == Value.string("")

def test_deftypes_change_unsuffixed_names():
    _, deftypes, variables, _ = tables()
    deftypes.set_range("I", "N", ScalarType.INT)
    variables.set("K", Value.single(2.6))
    assert variables.get("K") == Value.int(3)
    assert variables.get("K%") == Value.int(3)

def test_assignment_converts_and_type_checks():
    _, _, variables, _ = tables()
    variables.set("X%", Value.single(-1.5))
    assert variables.get("X%") == Value.int(-2)
    with pytest.raises(TypeMismatch):
        variables.set("S$", Value.int(1))
    with pytest.raises(Overflow):
        variables.set("X%", Value.single(1e6))

def test_string_assignment_never_aliases():
    heap, _, variables, _ = tables()
    variables.set("B$", Value.string("TEXT"))
    variables.set("A$", variables.get("B$"))
    slot = variables.get_or_create("A$")
    heap.write(slot.scalar, 0, b"N")
    assert variables.get("A$") == Value.string("NEXT")
    assert variables.get("B$") == Value.string("TEXT")

def test_reassignment_frees_old_string():
    heap, _, variables, _ = tables()
    variables.set("A$", Value.string("ONE"))
    variables.set("A$", Value.string("SECOND"))
    assert heap.used == len("SECOND") + 2

def test_swap_requires_same_type():
    _, _, variables, _ = tables()
    variables.set("A", Value.single(1))
    variables.set("B", Value.single(2))
    variables.swap("A", "B")
    assert variables.get("A") == Value.single(2)
    with pytest.raises(TypeMismatch):
        variables.swap("A", "C$")


## ARRAYS
def test_arrays_auto_dimension_to_ten():
    *_, arrays = tables()
    arrays.set_element("A", [10], Value.int(7))
    assert arrays.get_element("A", [10]) == Value.single(7)
    with pytest.raises(SubscriptOutOfRange):
        arrays.get_element("A", [11])

def test_redimension_is_a_duplicate_definition():
    *_, arrays = tables()
    arrays.create("M", [3, 4])
    with pytest.raises(DuplicateDefinition):
        arrays.create("M", [2])

def test_row_major_layout():
    *_, arrays = tables()
    array = arrays.create("M%", [2, 3])
    assert array.offset([0, 0]) == 0
    assert array.offset([0, 3]) == 3
    assert array.offset([1, 0]) == 4
    with pytest.raises(SubscriptOutOfRange):
        array.offset([1])

def test_option_base():
    *_, arrays = tables()
    arrays.option_base(1)
    array = arrays.create("B", [3])
    assert array.dims == [(1, 3)]
    with pytest.raises(SubscriptOutOfRange):
        arrays.get_element("B", [0])
    with pytest.raises(DuplicateDefinition):
        arrays.option_base(0)

def test_erase_frees_strings():
    heap, _, _, arrays = tables()
    arrays.create("S$", [2])
    arrays.set_element("S$", [1], Value.string("HI"))
    arrays.erase("S$")
    assert heap.used == 0
    with pytest.raises(IllegalFunctionCall):
        arrays.erase("S$")

def test_array_bytes_round_trip():
    *_, arrays = tables()
    arrays.create("P%", [2])
    arrays.store_bytes("P%", b'\x01\x00\xff\xff')
    assert arrays.get_element("P%", [0]) == Value.int(1)
    assert arrays.get_element("P%", [1]) == Value.int(-1)
    assert arrays.to_bytes("P%") == b'\x01\x00\xff\xff\x00\x00'

def test_single_arrays_keep_raw_pixel_bytes():
    *_, arrays = tables()
    arrays.create("A", [3])
    image = bytes([8, 0, 1, 0, 0, 3, 0, 0, 0, 0, 2, 0])
    arrays.store_bytes("A", image)
    assert arrays.to_bytes("A") == image + bytes(4)
    arrays.set_element("A", [3], Value.single(1.0))
    assert arrays.to_bytes("A")[:12] == image
    assert arrays.get_element("A", [3]) == Value.single(1.0)

def test_reassigning_strings_reuses_their_space():
    heap, _, variables, arrays = tables(300)
    variables.set("A$", Value.string("X" * 200))
    variables.set("A$", Value.string("Y" * 200))
    assert variables.get("A$") == Value.string("Y" * 200)
    variables.set("A$", Value.string(""))
    arrays.set_element("S$", [0], Value.string("X" * 200))
    arrays.set_element("S$", [0], Value.string("Y" * 200))
    assert arrays.get_element("S$", [0]) == Value.string("Y" * 200)
    assert heap.used == 202


## USER FUNCTIONS
def test_user_function_parameters_shadow_variables():
    _, _, variables, arrays = tables()
    functions = UserFunctionManager(variables)
    evaluator = ExpressionEvaluator(variables.get, arrays.get_element,
                                    lambda name, args: functions.call(name, args, evaluator.evaluate))
    body = crunch("X*X+Y")
    functions.define("SQ", ["X"], body, 0)
    variables.set("X", Value.single(100))
    variables.set("Y", Value.single(1))
    assert functions.call("FNSQ", [Value.int(3)], evaluator.evaluate) == Value.single(10)
    assert variables.get("X") == Value.single(100)

def test_undefined_user_function():
    _, _, variables, _ = tables()
    with pytest.raises(UndefinedUserFunction):
        UserFunctionManager(variables).call("FNNOPE", [], lambda buf, pos: (Value.int(0), pos))
