## gwbasic — Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import struct

import pytest

from gwbasic.runtime import Runtime
from gwbasic.host import CapturingHost
from gwbasic.files import FileManager, FileMode
from gwbasic.errors import (BadFileMode, BadFileNumber, FileAlreadyExists, FileAlreadyOpen, FileNotFound, FieldOverflow,
                            InputPastEnd, PathNotFound)


@pytest.fixture
def runtime(tmp_path):
    host = CapturingHost()
    return Runtime(host, base_dir=tmp_path), host

def run_program(rt: Runtime, *lines: str) -> bool:
    rt.load("\n".join(lines))
    return rt.run()


## SEQUENTIAL FILES
def test_write_then_read_sequential_file(runtime, tmp_path):
    rt, host = runtime
    assert run_program(rt,
        '10 OPEN "O", #1, "DATA.TXT"',
        '20 PRINT #1, "HELLO"; 42',
        '30 WRITE #1, "A,B", 7',
        '40 CLOSE #1',
        '50 OPEN "DATA.TXT" FOR INPUT AS #2',
        '60 LINE INPUT #2, L$',
        '70 INPUT #2, S$, N',
        '80 PRINT L$ : PRINT S$; N; EOF(2)',
        '90 CLOSE')
    assert (tmp_path / "DATA.TXT").read_bytes() == b'HELLO 42\r\n"A,B",7\r\n'
    assert host.text == "HELLO 42\nA,B 7 -1\n"

def test_append_mode_extends_file(runtime, tmp_path):
    rt, _ = runtime
    (tmp_path / "LOG.TXT").write_bytes(b"ONE\r\n")
    run_program(rt, '10 OPEN "LOG.TXT" FOR APPEND AS #1', '20 PRINT #1, "TWO"', '30 CLOSE #1')
    assert (tmp_path / "LOG.TXT").read_bytes() == b"ONE\r\nTWO\r\n"

def test_missing_file_is_reported(runtime):
    rt, host = runtime
    assert not run_program(rt, '10 OPEN "NOPE.TXT" FOR INPUT AS #1')
    assert host.text == "Error in line 10: File not found\n"

def test_file_errors_can_be_trapped(runtime):
    rt, host = runtime
    run_program(rt, '10 ON ERROR GOTO 100', '20 OPEN "NOPE.TXT" FOR INPUT AS #1', '30 END',
                '100 PRINT ERR : RESUME 30')
    assert host.text == " 53\n"

def test_printing_to_unopened_file(runtime):
    rt, host = runtime
    run_program(rt, '10 PRINT #3, "X"')
    assert host.text == "Error in line 10: Bad file number\n"

def test_reading_past_end(runtime, tmp_path):
    rt, host = runtime
    (tmp_path / "EMPTY.TXT").write_bytes(b"")
    run_program(rt, '10 OPEN "I", #1, "EMPTY.TXT"', '20 INPUT #1, A$')
    assert host.text == "Error in line 20: Input past end\n"


## RANDOM ACCESS
def test_random_records_through_fields(runtime, tmp_path):
    rt, host = runtime
    run_program(rt,
        '10 OPEN "R", #1, "REC.DAT", 16',
        '20 FIELD #1, 10 AS N$, 6 AS C$',
        '30 LSET N$ = "ALICE" : RSET C$ = "42"',
        '40 PUT #1, 1',
        '50 LSET N$ = "BOB" : RSET C$ = "7"',
        '60 PUT #1, 2',
        '70 GET #1, 1',
        '80 PRINT N$; "|"; C$; "|"; LOF(1); LOC(1)',
        '90 CLOSE #1')
    assert (tmp_path / "REC.DAT").read_bytes() == b"ALICE" + b" " * 9 + b"42" + b"BOB" + b" " * 12 + b"7"
    assert host.text == "ALICE     |    42| 32  1\n"

def test_fields_must_fit_the_record(tmp_path):
    files = FileManager(tmp_path)
    files.open(1, "R.DAT", FileMode.RANDOM, 8)
    with pytest.raises(FieldOverflow):
        files.field(1, [(6, "A$"), (6, "B$")])
    files.close_all()

def test_handles_are_checked(tmp_path):
    files = FileManager(tmp_path)
    files.open(1, "OUT.TXT", FileMode.OUTPUT)
    with pytest.raises(BadFileNumber):
        files.open(1, "OTHER.TXT", FileMode.OUTPUT)
    with pytest.raises(FileAlreadyOpen):
        files.open(2, "OUT.TXT", FileMode.APPEND)
    with pytest.raises(BadFileMode):
        files.read_line(1)
    with pytest.raises(BadFileNumber):
        files.eof(9)
    files.close_all()
    assert not files.is_open(1)

def test_mode_letters():
    assert FileMode.from_letter("a") is FileMode.APPEND
    with pytest.raises(BadFileMode):
        FileMode.from_letter("X")

def test_read_line_handles_bare_line_feeds(tmp_path):
    (tmp_path / "UNIX.TXT").write_bytes(b"first\nsecond")
    files = FileManager(tmp_path)
    files.open(1, "UNIX.TXT", FileMode.INPUT)
    assert files.read_line(1) == "first"
    assert files.read_line(1) == "second"
    assert files.eof(1)
    with pytest.raises(InputPastEnd):
        files.read_line(1)


## FILE SYSTEM
def test_name_and_kill(tmp_path):
    files = FileManager(tmp_path)
    (tmp_path / "A.TXT").write_text("x")
    (tmp_path / "C.TXT").write_text("y")
    files.name("A.TXT", "B.TXT")
    assert (tmp_path / "B.TXT").exists()
    with pytest.raises(FileAlreadyExists):
        files.name("B.TXT", "C.TXT")
    with pytest.raises(FileNotFound):
        files.kill("A.TXT")
    files.kill("*.TXT")
    assert list(tmp_path.iterdir()) == []

def test_directories(tmp_path):
    files = FileManager(tmp_path)
    files.mkdir("SUB")
    files.chdir("SUB")
    assert files.cwd == (tmp_path / "SUB").resolve()
    files.chdir("..")
    files.rmdir("SUB")
    with pytest.raises(PathNotFound):
        files.chdir("SUB")

def test_files_statement_lists_directory(runtime, tmp_path):
    rt, host = runtime
    (tmp_path / "ONE.BAS").write_text("")
    (tmp_path / "TWO.BAS").write_text("")
    rt.execute_immediate('FILES "*.BAS"')
    assert host.text == "ONE.BAS" + " " * 11 + "TWO.BAS" + " " * 11 + "\n"


## PROGRAMS & MEMORY IMAGES
def test_save_and_run_program(runtime, tmp_path):
    rt, host = runtime
    rt.load('10 PRINT "SAVED"')
    rt.execute_immediate('SAVE "PROG"')
    rt.execute_immediate('SAVE "TEXT", A')
    assert (tmp_path / "PROG.BAS").read_bytes()[0] == 0xFF
    assert (tmp_path / "TEXT.BAS").read_bytes() == b'10 PRINT "SAVED"\r\n'
    rt.execute_immediate("NEW")
    assert rt.list_lines() == []
    rt.execute_immediate('RUN "PROG"')
    assert host.text == "SAVED\n"

def test_merge_keeps_existing_lines(runtime, tmp_path):
    rt, _ = runtime
    (tmp_path / "PART.BAS").write_bytes(b'20 PRINT "TWO"\r\n10 PRINT "ONE!"\r\n\x1a')
    rt.load('10 PRINT "ONE"\n30 END')
    rt.execute_immediate('MERGE "PART"')
    assert rt.list_lines() == ['10 PRINT "ONE!"', '20 PRINT "TWO"', '30 END']

def test_chain_keeps_variables(runtime, tmp_path):
    rt, host = runtime
    (tmp_path / "NEXT.BAS").write_text('10 PRINT X\r\n')
    run_program(rt, '10 X = 5 : CHAIN "NEXT"')
    assert host.text == " 5\n"

def test_bsave_and_bload(runtime, tmp_path):
    rt, host = runtime
    rt.execute_immediate('DEF SEG = 0 : POKE 100, 65 : POKE 101, 66 : BSAVE "MEM.BIN", 100, 2')
    assert (tmp_path / "MEM.BIN").read_bytes() == struct.pack('<BHHH', 0xFD, 0, 100, 2) + b"AB"
    rt.execute_immediate('BLOAD "MEM.BIN", 200 : PRINT PEEK(200); PEEK(201)')
    assert host.text == " 65  66\n"
