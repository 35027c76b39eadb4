"""Play MIDI arriving over the network on the square-wave synthesiser."""

from __future__ import annotations

import argparse
import itertools
import sys
import time
from typing import Callable, Optional

from dsmidi.client import ConnectionError_, Dsmi
from dsmidi.midi import MidiMessage
from dsmidi.psg import ChannelOutput, Psg

FRAME_SECONDS = 1 / 60

Reader = Callable[[], Optional[MidiMessage]]


class PulseSynth:
    """Feeds every waiting MIDI message to a :class:`Psg` once per frame."""

    def __init__(self, read: Reader, psg: Optional[Psg] = None) -> None:
        self.read = read
        self.psg = psg if psg is not None else Psg()

    def poll(self) -> list[MidiMessage]:
        """Play all messages waiting now and return them."""
        played = []
        while (message := self.read()) is not None:
            self.psg.midi(message.status, message.data1, message.data2)
            played.append(message)
        return played

    def frame(self) -> list[ChannelOutput]:
        """Play waiting messages, then advance the synthesiser by one frame."""
        self.poll()
        return self.psg.update()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="pulseds", description="Play incoming network MIDI on a square-wave synthesiser."
    )
    parser.add_argument("--ip", help="address of this host, to derive the broadcast address")
    parser.add_argument("--netmask", help="netmask of this host's network")
    parser.add_argument("--frames", type=int, help="stop after this many frames")
    args = parser.parse_args(argv)

    with Dsmi() as dsmi:
        try:
            dsmi.connect(args.ip, args.netmask)
        except ConnectionError_:
            print("Could not connect. We apologize for the inconvenience.", file=sys.stderr)
            return 1
        print("Running.")
        synth = PulseSynth(dsmi.read)
        frames = itertools.count() if args.frames is None else range(args.frames)
        for _ in frames:
            for message in synth.poll():
                print(f"0x{message.status:x} 0x{message.data1:x} 0x{message.data2:x}")
            synth.psg.update()
            time.sleep(FRAME_SECONDS)
    return 0


if __name__ == "__main__":
    sys.exit(main())