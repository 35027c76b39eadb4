"""MIDI and OSC over UDP or a serial cartridge, a pulse synthesiser and touch-controller models."""

__version__ = "0.1.0"