## gwbasic — Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import os, sys
import subprocess
from pathlib import Path


def run_cli(*cli_args: str | Path, stdin: str | None = None) -> subprocess.CompletedProcess:
    args = [sys.executable, "-m", "gwbasic", "--plain", *(str(arg) for arg in cli_args)]
    env = os.environ.copy()
    src = str(Path(__file__).resolve().parents[1] / "src")
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [src, env.get("PYTHONPATH")]))
    return subprocess.run(args, input=stdin or "", capture_output=True, text=True, env=env)


def write_program(tmp_path: Path, *lines: str) -> Path:
    path = tmp_path / "PROG.BAS"
    path.write_text("\n".join(lines) + "\n")
    return path


def test_cli_runs_program_file(tmp_path):
    result = run_cli(write_program(tmp_path, '10 FOR I = 1 TO 3', '20 PRINT I;', '30 NEXT'))
    assert result.returncode == 0
    assert result.stdout == " 1  2  3\n"

def test_cli_runs_program_from_stdin():
    result = run_cli("-", stdin='10 PRINT "PIPED"\n')
    assert result.returncode == 0
    assert result.stdout == "PIPED\n"

def test_cli_runs_direct_commands():
    result = run_cli("-c", "PRINT 1+1", "-c", 'PRINT "OK"')
    assert result.returncode == 0
    assert result.stdout == " 2\nOK\n"

def test_cli_error_sets_exit_code(tmp_path):
    result = run_cli(write_program(tmp_path, '10 PRINT 1', '20 GOTO 99'))
    assert result.returncode == 1
    assert result.stdout == " 1\nError in line 20: Undefined line number\n"

def test_cli_ignore_keeps_going(tmp_path):
    program = write_program(tmp_path, '10 GOTO 99')
    result = run_cli("--ignore", program, "-c", 'PRINT "AFTER"')
    assert result.returncode == 1
    assert result.stdout.endswith("AFTER\n")

def test_cli_zone_width_option():
    result = run_cli("--zone-width", "10", "-c", 'PRINT "A","B"')
    assert result.stdout == "A" + " " * 9 + "B\n"

def test_cli_rejects_unknown_option():
    result = run_cli("-c", "PRINT 1", "--bogus")
    assert result.returncode != 0
    assert "Unknown option" in result.stdout + result.stderr

def test_cli_load_then_list(tmp_path):
    program = write_program(tmp_path, '20 END', '10 PRINT "X"')
    result = run_cli("-l", program, "-c", "LIST")
    assert result.returncode == 0
    assert result.stdout == '10 PRINT "X"\n20 END\n'
