import pytest

from dsmidi.psg import (
    HEIGHT_ATTACK,
    HEIGHT_DECAY,
    LINEAR_FREQ_TABLE,
    ChannelOutput,
    EnvelopeState,
    Psg,
    note_frequency,
)


def test_frequency_table_ends():
    assert note_frequency(0) == 261
    assert note_frequency(127) == 40140
    assert len(LINEAR_FREQ_TABLE) == 128


@pytest.mark.parametrize("note", [-1, 128])
def test_frequency_out_of_range(note):
    with pytest.raises(ValueError):
        note_frequency(note)


def test_fresh_synth_is_silent():
    psg = Psg()
    assert all(c.state is EnvelopeState.INACTIVE and c.vol == 127 for c in psg.channels)
    assert psg.update() == []


def test_note_on_produces_output():
    psg = Psg()
    psg.note_on(3, 60, 100)
    outputs = psg.update()
    assert len(outputs) == 1
    out = outputs[0]
    assert isinstance(out, ChannelOutput)
    assert out.hardware_channel == 11
    assert out.duty == 4
    assert out.pan == 64
    assert out.frequency == note_frequency(60)
    assert 0 < out.volume <= HEIGHT_ATTACK


def test_envelope_runs_through_all_states_in_order():
    psg = Psg()
    psg.note_on(0, 40, 127)
    states = [EnvelopeState.ATTACK]
    peak = 0
    for _ in range(200):
        psg.update()
        channel = psg.channels[0]
        peak = max(peak, channel.envelope)
        if channel.state != states[-1]:
            states.append(channel.state)
        if channel.state is EnvelopeState.SUSTAIN:
            assert channel.envelope == HEIGHT_DECAY
        if channel.state is EnvelopeState.INACTIVE:
            break
    assert states == [
        EnvelopeState.ATTACK,
        EnvelopeState.DECAY,
        EnvelopeState.SUSTAIN,
        EnvelopeState.RELEASE,
        EnvelopeState.INACTIVE,
    ]
    assert peak == HEIGHT_ATTACK
    assert psg.update() == []


def test_midi_note_on_and_off():
    psg = Psg()
    psg.midi(0x92, 72, 100)
    assert psg.channels[2].state is EnvelopeState.ATTACK
    assert psg.channels[2].freq == note_frequency(72)
    psg.midi(0x82, 72, 0)
    assert psg.channels[2].state is EnvelopeState.RELEASE


def test_midi_on_high_channel_ignored():
    psg = Psg()
    psg.midi(0x98, 60, 100)
    assert all(c.state is EnvelopeState.INACTIVE for c in psg.channels)


def test_midi_other_commands_ignored():
    psg = Psg()
    psg.midi(0xB0, 1, 64)
    assert psg.update() == []


def test_note_off_on_silent_channel_stays_silent():
    psg = Psg()
    psg.note_off(5)
    assert psg.channels[5].state is EnvelopeState.INACTIVE


def test_note_on_invalid_channel():
    with pytest.raises(ValueError):
        Psg().note_on(8, 60, 100)


def test_retrigger_restarts_attack():
    psg = Psg()
    psg.note_on(1, 50, 100)
    for _ in range(6):
        psg.update()
    psg.note_on(1, 55, 100)
    channel = psg.channels[1]
    assert channel.state is EnvelopeState.ATTACK
    assert channel.envelope == 0
    assert channel.freq == note_frequency(55)