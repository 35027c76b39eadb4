import pytest

from dsmidi.kaos import CONTROL_X, CONTROL_Y, KaosPad, kaos_values
from dsmidi.midi import MIDI_CC


@pytest.fixture
def sent():
    return []


@pytest.fixture
def pad(sent):
    return KaosPad(lambda s, d1, d2: sent.append((s, d1, d2)))


def test_corners():
    assert kaos_values(0, 191) == (0, 0)
    assert kaos_values(255, 0) == (127, 127)


def test_values_stay_in_midi_range():
    for x in range(0, 256, 17):
        for y in range(0, 192, 13):
            kx, ky = kaos_values(x, y)
            assert 0 <= kx <= 127
            assert 0 <= ky <= 127


def test_y_grows_upwards():
    assert kaos_values(10, 20)[1] > kaos_values(10, 150)[1]


def test_out_of_screen_raises():
    with pytest.raises(ValueError):
        kaos_values(256, 10)
    with pytest.raises(ValueError):
        kaos_values(10, 192)


def test_touch_sends_both_controllers(pad, sent):
    pad.touch(255, 0)
    assert sent == [(MIDI_CC, CONTROL_X, 127), (MIDI_CC, CONTROL_Y, 127)]
    assert [value for _, _, value in sent] == list(kaos_values(255, 0))
    assert pad.channel == 0


def test_single_axis_events(pad, sent):
    pad.send_x()
    pad.send_y()
    assert sent == [(0xB0, 0x00, 0x00), (0xB0, 0x01, 0x00)]
    assert pad.channel == 0


def test_channel_changes_status(pad, sent):
    pad.channel_up()
    pad.send_x()
    assert sent[-1][0] == MIDI_CC | 1
    for _ in range(30):
        pad.channel_up()
    assert pad.channel == 15
    for _ in range(30):
        pad.channel_down()
    assert pad.channel == 0