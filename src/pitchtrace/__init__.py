"""PitchTrace: Hawk-Eye style reconstruction of a single cricket delivery."""

__version__ = "0.1.0"
