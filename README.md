# dsmidi

Send and receive three-byte MIDI messages and Open Sound Control (OSC)
packets over UDP broadcast or a serial cartridge reached through an SPI
bus, and play incoming MIDI on a small eight-voice pulse-wave synthesiser.
The package also holds models of three touch controllers that turn pen
input into MIDI or OSC messages.

It needs nothing outside the standard library.

## Installing

    pip install dsmidi

To run the tests:

    pip install "dsmidi[test]"
    pytest

## Modules

- `dsmidi.midi`: `MidiMessage` (a frozen dataclass with `status`,
  `data1`, `data2`, `to_bytes()`, `from_bytes()` and the `command` and
  `channel` properties), the `Interface` enum (`SERIAL`, `WIFI`) and
  helpers `note_on`, `note_off`, `control_change` and `pitch_bend`.
  Out-of-range values raise `ValueError`.
- `dsmidi.osc`: `OscBuilder` builds one OSC message of at most 256 bytes,
  an address starting with `/` followed by up to 31 int, float or string
  arguments; `decode_packet` parses a received packet into an `OscMessage`
  whose arguments are read with `next_argument()` or all at once with
  `arguments()`. `padded_string` and `padded_length` give OSC's
  NUL-terminated, 4-byte padded strings. Errors raise `OscError`.
- `dsmidi.psg`: `Psg`, eight voices on MIDI channels 0-7 with an
  attack/decay/sustain/release envelope. `Psg.midi` handles note on and
  note off; `Psg.update` advances one frame and returns a `ChannelOutput`
  (hardware channel, frequency, volume, pan, duty) for every sounding
  voice. `note_frequency` looks up the frequency table.
- `dsmidi.bus`: `CardSpi`, chip-select aware byte transfers on an
  `SpiPort`. The stock `SpiPort` is a loopback that records what was sent;
  subclass it and override `write_control` and `exchange` to reach a real
  or emulated device.
- `dsmidi.dserial`: `DSerial`, the cartridge protocol on top of `CardSpi`:
  buffers, registers, flash reads, firmware upload and verification,
  booting, two UARTs with receive and send handlers, baud rate setup,
  interrupt handling (`handle_interrupt`) and Timer2. `uart0_timer_settings`
  and `uart1_reload` compute the baud rate register values. Refusals and
  timeouts raise `DSerialError`.
- `dsmidi.gpio`: `Gpio`, digital and analog pins of a `DSerial` board
  (`pin_mode`, `read`, `write`, `read_analog`, `analog_sequence`).
- `dsmidi.client`: `Dsmi`, the connection. `connect` tries the serial
  cartridge and falls back to UDP; `write`, `read`, `osc_new`,
  `osc_add_int`, `osc_add_float`, `osc_add_string`, `osc_send` and
  `osc_read` use the default interface. Over UDP, messages go from port
  9002 to port 9000 at the broadcast address of the given `ip`/`netmask`
  (or 255.255.255.255), and are received on port 9001. `keepalive_tick`
  sends an empty message every 60th call. `Dsmi` is a context manager;
  failures raise `ConnectionError_`. `broadcast_address` computes the
  destination.
- `dsmidi.keyboard`: `Keyboard`, a two-octave touch piano with pitch bend
  and pressure from pen drags and adjustable octave and channel, and
  `SmokePlayer`, which plays a short demo tune on it tick by tick.
- `dsmidi.kaos`: `KaosPad`, an X/Y pad sending controllers 0 and 1;
  `kaos_values` maps a touch to controller values.
- `dsmidi.oscpad`: `OscPad`, three sliders and an X/Y pad that send OSC
  messages through a `Dsmi`-like client.
- `dsmidi.pulse`: `PulseSynth` reads MIDI from any callable and plays it on
  a `Psg`; `main` is the `dsmidi-pulse` command.

## Examples

```python
from dsmidi.osc import OscBuilder, decode_packet

builder = OscBuilder()
builder.set_address("/ds/slider1")
builder.add_float(0.5)
packet = builder.packet()

message = decode_packet(packet)
print(message.address, message.arguments())   # /ds/slider1 [('f', 0.5)]
```

```python
from dsmidi.midi import MidiMessage, note_on

msg = note_on(0, 60, 127)
assert MidiMessage.from_bytes(msg.to_bytes()) == msg
```

```python
from dsmidi.psg import Psg

psg = Psg()
psg.midi(0x90, 60, 127)   # note on, channel 0
outputs = psg.update()    # one frame of the envelope
```

```python
from dsmidi.client import Dsmi

with Dsmi() as dsmi:
    dsmi.connect_wifi("192.168.1.20", "255.255.255.0")
    dsmi.write(0x90, 60, 127)
```

## Command line

    dsmidi-pulse [--ip IP] [--netmask NETMASK] [--frames N]

Listens for MIDI on UDP port 9001, prints each message and feeds it to the
pulse synthesiser at 60 frames a second, for `N` frames or until
interrupted. It exits with status 1 if no connection can be made.

## What it does not do

- `Psg` produces `ChannelOutput` records; it makes no sound itself.
- No cartridge firmware image is included: `Dsmi` takes the image to
  upload as its `firmware` argument.
- MIDI arriving over the serial cartridge is dropped; `Dsmi.read` returns
  `None` on the serial interface.
- The touch-controller models keep state and send messages; they draw no
  screen.