"""
Core primitives - exact rational time arithmetic.

- as_fraction: Coerce loose input to Fraction
- round_half_up: The rounding convention used for grids and velocities
- round_to_grid: Snap a time to a grid multiple
- clamp_midi: Clamp to the 0-127 MIDI range
"""

from patternflow.core.rational import as_fraction, clamp_midi, round_half_up, round_to_grid

__all__ = [
    "as_fraction",
    "clamp_midi",
    "round_half_up",
    "round_to_grid",
]
