## gwbasic — Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import pytest

from gwbasic.runtime import Runtime
from gwbasic.host import CapturingHost
from gwbasic.events import EventKind
from gwbasic.types import Value
from gwbasic.errors import BadFileMode


def run(*lines: str, inputs: list[str] | None = None) -> tuple[Runtime, CapturingHost, bool]:
    host = CapturingHost(inputs)
    rt = Runtime(host)
    rt.load("\n".join(lines))
    ok = rt.run()
    return rt, host, ok

def output(*lines: str, inputs: list[str] | None = None) -> str:
    return run(*lines, inputs=inputs)[1].text


## SCENARIOS
def test_print_string():
    assert output('10 PRINT "HELLO"') == "HELLO\n"

def test_print_integer_expression():
    assert output('10 PRINT 2+3*4') == " 14\n"

def test_semicolons_adjoin_numbers():
    assert output('10 FOR I=1 TO 3 : PRINT I; : NEXT') == " 1  2  3\n"

def test_gosub_return_order():
    assert output('10 PRINT "A"', '20 GOSUB 100', '30 PRINT "B"', '40 END',
                  '100 PRINT "SUB"', '110 RETURN') == "A\nSUB\nB\n"

def test_error_handler_sees_err_and_erl():
    text = output('10 ON ERROR GOTO 100', '20 A = 1/0', '30 PRINT "SKIPPED"',
                  '100 PRINT "ERR=";ERR;" LINE=";ERL', '110 END')
    assert "ERR= 11" in text and "LINE= 20" in text
    assert "SKIPPED" not in text

def test_read_data():
    assert output('10 DATA 1,"TWO",3.5', '20 READ A,B$,C', '30 PRINT A;B$;C') == " 1 TWO 3.5\n"


## EXPRESSIONS
def test_unary_operators_bind_tighter_than_power():
    assert output('10 PRINT -2^2; NOT 1=0; NOT 0 AND 5') == " 4  0  5\n"

def test_string_functions():
    assert output('10 A$ = "HELLO" : PRINT LEFT$(A$,2); MID$(A$,2,3); RIGHT$(A$,1); LEN(A$)') == "HEELLO 5\n"

def test_user_defined_function():
    assert output('10 DEF FNSQ(X) = X*X', '20 X = 7', '30 PRINT FNSQ(4); X') == " 16  7\n"

def test_mid_statement_and_string_copies():
    assert output('10 A$ = "AB" : B$ = A$ : MID$(A$,1,1) = "X" : PRINT A$;B$') == "XBAB\n"

def test_swap():
    assert output('10 A = 1 : B = 2 : SWAP A,B : PRINT A;B') == " 2  1\n"


## CONTROL FLOW
def test_if_then_else():
    assert output('10 X = 5',
                  '20 IF X > 3 THEN PRINT "BIG" ELSE PRINT "SMALL"',
                  '30 IF X < 3 THEN PRINT "BIG" ELSE PRINT "SMALL"',
                  '40 IF X = 5 THEN 60',
                  '50 PRINT "NO"',
                  '60 PRINT "YES"') == "BIG\nSMALL\nYES\n"

def test_on_gosub_and_out_of_range_on_goto():
    assert output('10 FOR I = 1 TO 3', '20 ON I GOSUB 100, 200, 300', '30 NEXT I',
                  '40 ON 5 GOTO 100', '50 PRINT "DONE"', '60 END',
                  '100 PRINT "ONE" : RETURN', '200 PRINT "TWO" : RETURN',
                  '300 PRINT "THREE" : RETURN') == "ONE\nTWO\nTHREE\nDONE\n"

def test_for_loop_may_run_zero_times():
    assert output('10 FOR I = 5 TO 1', '20 PRINT "BODY"', '30 NEXT I', '40 PRINT I') == " 5\n"

def test_next_closes_several_loops():
    assert output('10 FOR I = 1 TO 2', '20 FOR J = 1 TO 2', '30 PRINT I*10+J;', '40 NEXT J, I',
                  '50 PRINT') == " 11  12  21  22\n"

def test_while_wend():
    assert output('10 I = 0', '20 WHILE I < 3', '30 I = I + 1 : PRINT I;', '40 WEND',
                  '50 PRINT "END"') == " 1  2  3 END\n"

def test_return_without_gosub():
    rt, host, ok = run('10 RETURN')
    assert not ok
    assert host.text == "Error in line 10: RETURN without GOSUB\n"

def test_goto_missing_line():
    assert output('10 GOTO 50') == "Error in line 10: Undefined line number\n"

def test_run_from_line():
    host = CapturingHost()
    rt = Runtime(host)
    rt.load('10 PRINT 1\n20 PRINT 2')
    assert rt.run(20)
    assert host.text == " 2\n"


## ERROR TRAPPING
def test_resume_next_continues_after_failing_statement():
    assert output('10 ON ERROR GOTO 100', '20 PRINT "A"; : X = 1/0 : PRINT "B"', '30 END',
                  '100 PRINT "E";ERR', '110 RESUME NEXT') == "AE 11\nB\n"

def test_resume_retries_failing_statement():
    assert output('10 ON ERROR GOTO 100', '20 D = 0', '30 PRINT 10/D', '40 END',
                  '100 D = 2', '110 RESUME') == " 5\n"

def test_error_statement_raises_any_code():
    rt, host, _ = run('10 ON ERROR GOTO 50', '20 ERROR 200', '30 END', '50 PRINT ERR;ERL', '60 RESUME NEXT')
    assert host.text == " 200  20\n"
    assert rt.err == 200 and rt.erl == 20

def test_error_inside_handler_halts():
    rt, host, ok = run('10 ON ERROR GOTO 100', '20 X = 1/0', '100 Y = 1/0')
    assert not ok
    assert host.text == "Error in line 100: Division by zero\n"

def test_handler_without_resume():
    assert output('10 ON ERROR GOTO 100', '20 X = 1/0', '100 PRINT "H"') == "H\nError in line 100: No RESUME\n"

def test_direct_mode_errors_have_no_line():
    host = CapturingHost()
    rt = Runtime(host)
    assert not rt.execute_immediate("PRINT 1/0")
    assert host.text == "Division by zero\n"
    assert (rt.err, rt.erl) == (11, 65535)

def test_def_fn_is_illegal_in_direct_mode():
    host = CapturingHost()
    Runtime(host).execute_immediate("DEF FNA(X) = X")
    assert host.text == "Illegal direct\n"


## STOP / CONT / TRON
def test_stop_and_cont():
    rt, host, ok = run('10 PRINT "A"', '20 STOP', '30 PRINT "B"')
    assert ok and host.text == "A\nBreak in 20\n"
    assert rt.cont()
    assert host.text == "A\nBreak in 20\nB\n"

def test_cont_without_stop():
    host = CapturingHost()
    assert not Runtime(host).cont()
    assert host.text == "Can't continue\n"

def test_stop_request_breaks_at_next_statement():
    host = CapturingHost()
    rt = Runtime(host)
    rt.register_function("BRK", lambda rt, x: (rt.stop(), x)[1])
    rt.load('10 X = BRK(0)\n20 PRINT "AFTER"')
    assert rt.run()
    assert host.text == "Break in 20\n"
    rt.cont()
    assert host.text == "Break in 20\nAFTER\n"

def test_tron_prints_line_numbers():
    assert output('10 TRON', '20 PRINT 1', '30 TROFF') == "[20] 1\n[30]\n"


## INPUT
def test_input_redoes_bad_numbers():
    text = output('10 INPUT "N";N', '20 PRINT N*2', inputs=["abc", "21"])
    assert text == "N? abc\n?Redo from start\nN? 21\n 42\n"

def test_input_redoes_wrong_count():
    text = output('10 INPUT A,B', '20 PRINT A+B', inputs=["1", "1,2"])
    assert text == "? 1\n?Redo from start\n? 1,2\n 3\n"

def test_line_input_keeps_commas():
    text = output('10 LINE INPUT "Name: ";N$', '20 PRINT "HI ";N$', inputs=["Ada, Lovelace"])
    assert text == "Name: Ada, Lovelace\nHI Ada, Lovelace\n"

def test_end_of_input_halts_quietly():
    rt, host, ok = run('10 INPUT A', '20 PRINT "NEVER"')
    assert ok and host.text == "? "


## OUTPUT
def test_comma_moves_to_next_zone():
    assert output('10 PRINT 1,2') == " 1" + " " * 12 + " 2\n"

def test_zone_width_is_configurable():
    host = CapturingHost()
    rt = Runtime(host, zone_width=10)
    rt.execute_immediate('PRINT "A","B"')
    assert host.text == "A" + " " * 9 + "B\n"

def test_write_quotes_strings():
    assert output('10 WRITE 1, "A", 2.5') == '1,"A",2.5\n'

def test_soft_keys():
    rt, host, _ = run('10 KEY 1, "LIST"', '20 KEY LIST')
    assert rt.soft_keys == {1: "LIST"}
    assert host.text == "F1 LIST\n"


## EVENTS
def test_key_trap_runs_handler_between_statements():
    host = CapturingHost()
    rt = Runtime(host)

    def press(rt, key: Value) -> Value:
        rt.trigger(EventKind.KEY, int(key.value))
        return Value.int(0)

    rt.register_function("PRESS", press)
    rt.load('\n'.join(['10 ON KEY(1) GOSUB 100', '20 KEY(1) ON', '30 X = PRESS(1)', '40 PRINT "MAIN"', '50 END',
                       '100 PRINT "KEY"', '110 RETURN']))
    assert rt.run()
    assert host.text == "KEY\nMAIN\n"

def test_disabled_trap_ignores_events():
    host = CapturingHost()
    rt = Runtime(host)
    rt.register_function("PRESS", lambda rt, key: (rt.trigger(EventKind.KEY, 1), key)[1])
    rt.load('\n'.join(['10 ON KEY(1) GOSUB 100', '20 X = PRESS(1)', '30 PRINT "MAIN"', '40 END',
                       '100 PRINT "KEY"', '110 RETURN']))
    rt.run()
    assert host.text == "MAIN\n"


## PROGRAM EDITING
def test_enter_edits_program_and_runs_commands():
    host = CapturingHost()
    rt = Runtime(host)
    rt.enter('20 PRINT "B"')
    rt.enter('10 PRINT "A"')
    rt.enter('30 PRINT "C"')
    rt.enter('30')
    assert rt.list_lines() == ['10 PRINT "A"', '20 PRINT "B"']
    rt.enter("RUN")
    assert host.text == "A\nB\n"

def test_deleting_missing_line_is_reported():
    host = CapturingHost()
    assert not Runtime(host).enter("40")
    assert host.text == "Undefined line number\n"

def test_list_in_direct_mode():
    host = CapturingHost()
    rt = Runtime(host)
    rt.load('20 PRINT 2\n10 PRINT 1')
    rt.execute_immediate("LIST")
    assert host.text == "10 PRINT 1\n20 PRINT 2\n"
    assert rt.get_line(20) == "20 PRINT 2"

def test_tokenized_save_and_load():
    rt = Runtime(CapturingHost())
    rt.load('10 PRINT "A"\n20 GOTO 10')
    image = rt.save_bytes()
    assert image[0] == 0xFF
    other = Runtime(CapturingHost())
    other.load(image)
    assert other.list_lines() == rt.list_lines()
    assert rt.save_bytes(ascii_=True) == b'10 PRINT "A"\r\n20 GOTO 10\r\n'

def test_protected_programs_are_rejected():
    with pytest.raises(BadFileMode):
        Runtime(CapturingHost()).load(b'\xfe\x00\x00')


## EMBEDDING
def test_variables_from_python():
    host = CapturingHost()
    rt = Runtime(host)
    rt.set_variable("N", 3)
    rt.set_variable("S$", "OK")
    rt.execute_immediate("PRINT N*2; S$")
    assert host.text == " 6 OK\n"

def test_read_variables_after_run():
    rt, _, _ = run('10 A$ = "X" + "Y" : B% = 7')
    assert rt.get_variable("A$") == "XY"
    assert rt.get_variable("B%") == 7

def test_registered_function_is_callable():
    host = CapturingHost()
    rt = Runtime(host)
    rt.register_function("twice", lambda x: Value.single(x.value * 2))
    rt.execute_immediate("PRINT TWICE(21)")
    assert host.text == " 42\n"

def test_system_exits():
    with pytest.raises(SystemExit):
        Runtime(CapturingHost()).execute_immediate("SYSTEM")
