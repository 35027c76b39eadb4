[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dsmidi"
version = "0.1.0"
description = "MIDI and OSC over UDP or a serial cartridge, with a small pulse-wave synthesiser and touch-controller models"
requires-python = ">=3.10"
dependencies = []
keywords = ["midi", "osc", "open sound control", "synthesiser", "psg", "serial", "udp"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Sound/Audio :: MIDI",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
dsmidi-pulse = "dsmidi.pulse:main"

[tool.hatch.build.targets.wheel]
packages = ["dsmidi"]

[tool.pytest.ini_options]
addopts = "-ra"
