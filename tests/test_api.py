## gwbasic — Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import pytest

import gwbasic.api as G


def test_exports_core_types():
    assert G.Value.int(3).type is G.ScalarType.INT
    assert issubclass(G.DivisionByZero, G.BasicError)
    assert isinstance(G.Runtime(G.CapturingHost()), G.Runtime)


def test_module_level_runtime_executes(capsys):
    G.new()
    assert G.execute_immediate('PRINT "HI"; 1+1')
    assert capsys.readouterr().out == "HI 2\n"


def test_module_level_program_and_variables(capsys):
    G.load('10 A = A + 1\n20 PRINT A')
    G.set_variable("A", 41)
    assert G.run()
    assert capsys.readouterr().out == " 1\n"
    assert G.get_variable("A") == 1.0
    G.new()


def test_registered_functions_are_callable(capsys):
    G.register_function("TRIPLE", lambda x: G.Value.int(x.value * 3))
    assert G.execute_immediate("PRINT TRIPLE(4)")
    assert capsys.readouterr().out == " 12\n"


def test_separate_runtimes_are_isolated():
    one, two = G.CapturingHost(), G.CapturingHost()
    a, b = G.Runtime(one), G.Runtime(two)
    a.execute_immediate("X = 5")
    b.execute_immediate("PRINT X")
    assert two.text == " 0\n"


def test_errors_report_through_host():
    host = G.CapturingHost()
    assert not G.Runtime(host).execute_immediate("PRINT 1/0")
    assert host.text == "Division by zero\n"
    with pytest.raises(AttributeError):
        G.not_a_runtime_method
