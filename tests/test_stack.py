## gwbasic — Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import pytest

from gwbasic.types import Value
from gwbasic.stack import RuntimeStack, ForFrame, WhileFrame, ErrorFrame, is_within, MAX_DEPTH
from gwbasic.events import EventTrapSystem, EventKind, TrapState
from gwbasic.errors import (NextWithoutFor, ReturnWithoutGosub, ResumeWithoutError, WendWithoutWhile, OutOfMemory,
                            IllegalFunctionCall)


def for_frame(var: str, limit: int = 10, step: int = 1) -> ForFrame:
    return ForFrame(var, Value.int(limit), Value.int(step), 10, 5)


@pytest.mark.parametrize("start, end, step, enters", [
    (1, 3, 1, True), (3, 1, 1, False), (3, 1, -1, True), (1, 3, -1, False), (2, 2, 0, True),
])
def test_for_entry_condition(start, end, step, enters):
    assert is_within(Value.int(start), Value.int(end), Value.int(step)) is enters

def test_for_advance():
    frame = for_frame("I!", limit=3)
    assert frame.advance(Value.int(2)) == (Value.int(3), True)
    assert frame.advance(Value.int(3)) == (Value.int(4), False)

def test_next_finds_named_loop_and_drops_inner_ones():
    stack = RuntimeStack()
    outer, inner = for_frame("I!"), for_frame("J!")
    stack.push_for(outer)
    stack.push_for(inner)
    assert stack.find_for(None) is inner
    assert stack.find_for("I!") is outer
    assert stack.loops == [outer]

def test_reentering_for_replaces_the_loop():
    stack = RuntimeStack()
    stack.push_for(for_frame("I!"))
    stack.push_for(for_frame("J!"))
    again = for_frame("I!")
    stack.push_for(again)
    assert stack.loops == [again]

def test_next_without_for():
    stack = RuntimeStack()
    with pytest.raises(NextWithoutFor):
        stack.find_for(None)
    stack.push_while(WhileFrame(10, 0))
    stack.push_for(for_frame("I!"))
    with pytest.raises(NextWithoutFor):
        stack.find_for("K!")

def test_while_frames():
    stack = RuntimeStack()
    stack.push_while(WhileFrame(10, 0))
    stack.push_while(WhileFrame(10, 0))
    assert len(stack.loops) == 1
    assert stack.pop_while() == WhileFrame(10, 0)
    with pytest.raises(WendWithoutWhile):
        stack.pop_while()

def test_return_unwinds_loops_opened_in_subroutine():
    stack = RuntimeStack()
    stack.push_for(for_frame("I!"))
    stack.push_gosub(20, 7)
    stack.push_for(for_frame("J!"))
    frame = stack.pop_gosub()
    assert (frame.return_line, frame.return_pos) == (20, 7)
    assert [f.var for f in stack.loops] == ["I!"]
    with pytest.raises(ReturnWithoutGosub):
        stack.pop_gosub()

def test_error_frames_balance():
    stack = RuntimeStack()
    assert not stack.in_handler
    stack.push_error(ErrorFrame(11, 20, 3, 20, 9, 100))
    assert stack.in_handler
    assert stack.pop_error().error_code == 11
    assert not stack.in_handler
    with pytest.raises(ResumeWithoutError):
        stack.pop_error()

def test_stack_depth_is_bounded():
    stack = RuntimeStack()
    for _ in range(MAX_DEPTH):
        stack.push_gosub(10, 0)
    with pytest.raises(OutOfMemory):
        stack.push_gosub(10, 0)


## EVENT TRAPS
def test_events_fire_only_when_armed():
    events = EventTrapSystem()
    events.set_handler(EventKind.KEY, 1, 500)
    events.trigger(EventKind.KEY, 1)
    assert events.poll() is None
    events.enable(EventKind.KEY, 1)
    events.trigger(EventKind.KEY, 1)
    trap = events.poll()
    assert trap.handler == 500 and trap.state is TrapState.STOPPED
    assert events.poll() is None
    events.rearm(trap)
    assert trap.state is TrapState.ON

def test_stopped_trap_remembers_event():
    events = EventTrapSystem()
    events.set_handler(EventKind.PLAY, 0, 300)
    events.enable(EventKind.PLAY)
    events.stop(EventKind.PLAY)
    events.trigger(EventKind.PLAY)
    assert events.poll() is None
    events.enable(EventKind.PLAY)
    assert events.poll().handler == 300

def test_timer_fires_after_interval():
    now = [0.0]
    events = EventTrapSystem(clock=lambda: now[0])
    events.set_timer(2)
    events.set_handler(EventKind.TIMER, 0, 900)
    events.enable(EventKind.TIMER)
    assert events.poll() is None
    now[0] = 2.5
    assert events.poll().handler == 900

def test_trap_indices_are_checked():
    events = EventTrapSystem()
    with pytest.raises(IllegalFunctionCall):
        events.enable(EventKind.KEY, 0)
    with pytest.raises(IllegalFunctionCall):
        events.set_timer(0)

def test_error_trap():
    events = EventTrapSystem()
    assert not events.error_armed
    events.on_error(100)
    assert events.error_armed
    events.clear()
    assert not events.error_armed
