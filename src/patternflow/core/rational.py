"""
Rational time helpers.

All pattern times and durations are exact Fractions measured in whole notes.
These helpers coerce loose input to Fraction and fix the rounding
convention used by quantization and velocity scaling.
"""

from __future__ import annotations

import math
from fractions import Fraction

from patternflow.constants import MIDI_MAX, MIDI_MIN

HALF = Fraction(1, 2)


def as_fraction(value: Fraction | int | float | str) -> Fraction:
    """
    Coerce a value to a Fraction.

    Accepts Fractions, ints, floats, and strings like '3/8', '0.25' or '2'.
    Floats go through their shortest decimal repr, so 0.1 becomes 1/10
    rather than the binary approximation.

    Raises:
        ValueError: If the value cannot be read as a rational number
    """
    if isinstance(value, bool):
        raise ValueError(f"Expected a rational value, got {value!r}")
    if isinstance(value, Fraction):
        return value
    if isinstance(value, int):
        return Fraction(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Expected a finite value, got {value!r}")
        return Fraction(repr(value))
    if isinstance(value, str):
        try:
            return Fraction(value.strip())
        except (ValueError, ZeroDivisionError) as e:
            raise ValueError(f"Invalid rational value: {value!r}") from e
    raise ValueError(f"Expected a rational value, got {type(value).__name__}")


def round_half_up(value: Fraction | float) -> int:
    """
    Round to the nearest integer, ties toward positive infinity.

    round_half_up(Fraction(5, 2)) == 3, round_half_up(Fraction(-5, 2)) == -2.
    Python's round() rounds ties to even and is deliberately not used.
    """
    if isinstance(value, float):
        return math.floor(value + 0.5)
    return math.floor(value + HALF)


def round_to_grid(value: Fraction, grid: Fraction) -> Fraction:
    """Snap a time to the nearest multiple of grid."""
    if grid == 0:
        raise ValueError("Grid size must be non-zero")
    return grid * round_half_up(value / grid)


def clamp_midi(value: int) -> int:
    """Clamp an integer to the MIDI data range 0-127."""
    return max(MIDI_MIN, min(MIDI_MAX, value))
