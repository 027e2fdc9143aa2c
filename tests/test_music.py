## gwbasic — Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

import pytest

from gwbasic.music import MusicPlayer, note_frequency
from gwbasic.runtime import Runtime
from gwbasic.host import CapturingHost
from gwbasic.types import Value
from gwbasic.errors import IllegalFunctionCall


def player() -> tuple[MusicPlayer, list]:
    sounds = []
    return MusicPlayer(lambda freq, ms: sounds.append((freq, ms))), sounds

def no_vars(name: str) -> Value:
    raise AssertionError(f"unexpected variable {name}")


def test_note_frequencies():
    assert note_frequency(69) == 440.0
    assert note_frequency(81) == 880.0

def test_default_note_is_staccato_split():
    music, sounds = player()
    music.play("A", no_vars)
    assert sounds == [(880.0, 437.5), (0, 62.5)]

def test_legato_and_dotted_notes():
    music, sounds = player()
    music.play("ML A A.", no_vars)
    assert sounds == [(880.0, 500.0), (880.0, 750.0)]

def test_length_tempo_and_octave():
    music, sounds = player()
    music.play("MLT60O3L2C", no_vars)
    assert sounds[0][0] == pytest.approx(261.6256, rel=1e-6)
    assert sounds[0][1] == 2000.0

def test_accidentals_and_note_lengths():
    music, sounds = player()
    music.play("ML O2 C#8 D-", no_vars)
    assert sounds[0] == (pytest.approx(note_frequency(49)), 250.0)
    assert sounds[1] == (pytest.approx(note_frequency(49)), 500.0)

def test_numbered_notes_and_pauses():
    music, sounds = player()
    music.play("ML N1 N0 P8", no_vars)
    assert sounds == [(pytest.approx(note_frequency(24)), 500.0), (0, 500.0), (0, 250.0)]

def test_octave_shifts_saturate():
    music, _ = player()
    music.play("O6 > >", no_vars)
    assert music.octave == 6
    music.play("O0 <", no_vars)
    assert music.octave == 0

def test_state_persists_until_reset():
    music, sounds = player()
    music.play("T240 L8", no_vars)
    music.play("MLC", no_vars)
    assert sounds[-1][1] == 125.0
    music.reset()
    assert (music.octave, music.length, music.tempo) == (4, 4, 120)

def test_argument_ranges():
    music, _ = player()
    with pytest.raises(IllegalFunctionCall):
        music.play("T20", no_vars)
    with pytest.raises(IllegalFunctionCall):
        music.play("O7", no_vars)
    with pytest.raises(IllegalFunctionCall):
        music.play("C65", no_vars)

def test_variables_and_substrings():
    music, sounds = player()
    values = {"T%": Value.int(60), "M$": Value.string("MLA")}
    music.play("T=T%; XM$;", values.__getitem__)
    assert sounds == [(880.0, 1000.0)]
    with pytest.raises(IllegalFunctionCall):
        music.play("XM$;", lambda name: Value.string("XM$;"))

def test_malformed_play_string():
    music, _ = player()
    with pytest.raises(IllegalFunctionCall):
        music.play("H", no_vars)


## STATEMENTS
def test_sound_beep_and_play_reach_host():
    host = CapturingHost()
    rt = Runtime(host)
    rt.execute_immediate('SOUND 440, 18.2 : BEEP : A$ = "MLA" : PLAY "XA$;"')
    assert host.sounds[0] == (440.0, pytest.approx(1000.0, rel=1e-5))
    assert host.sounds[1:] == [(800, 250), (880.0, 500.0)]

def test_sound_frequency_is_checked():
    host = CapturingHost()
    assert not Runtime(host).execute_immediate("SOUND 20, 1")
    assert host.text == "Illegal function call\n"
