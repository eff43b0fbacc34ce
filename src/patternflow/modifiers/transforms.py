"""
Modifier algebra - pure pattern transformations.

Every function takes pattern(s) plus typed arguments and returns a new
Pattern. Nothing is modified in place. Unless noted, the output keeps the
input's explicit duration, or recomputes it from the output notes when the
input had none.

Times are exact Fractions; pitches and velocities are clamped to 0-127.
"""

from __future__ import annotations

from fractions import Fraction

from patternflow.core.rational import as_fraction, clamp_midi, round_half_up, round_to_grid
from patternflow.models.pattern import (
    Pattern,
    TimedNote,
    calculate_duration,
    create_pattern,
    effective_duration,
    sort_notes,
    with_bounds,
)


def _keep_duration(pattern: Pattern, notes: list[TimedNote]) -> Pattern:
    """Build the output, keeping an explicit duration or recomputing it."""
    duration = pattern.duration if pattern.duration is not None else calculate_duration(notes)
    return with_bounds(notes, duration)


def concat(*patterns: Pattern) -> Pattern:
    """
    Concatenate patterns end-to-end.

    Pattern k is offset by the summed effective durations of patterns
    0..k-1. Notes are appended segment by segment and not re-sorted, so
    overhanging notes of one segment can start after notes of the next.
    """
    if not patterns:
        return create_pattern()

    notes: list[TimedNote] = []
    offset = Fraction(0)
    for pattern in patterns:
        notes.extend((offset + start, note) for start, note in pattern.notes)
        offset += effective_duration(pattern)

    return with_bounds(notes, offset)


def union(*patterns: Pattern) -> Pattern:
    """
    Merge patterns aligned at time 0.

    Duration is the longest effective duration; notes are re-sorted.
    """
    if not patterns:
        return create_pattern()

    notes: list[TimedNote] = []
    duration = Fraction(0)
    for pattern in patterns:
        notes.extend(pattern.notes)
        duration = max(duration, effective_duration(pattern))

    return with_bounds(sort_notes(notes), duration)


def reverse(pattern: Pattern) -> Pattern:
    """Mirror the time axis: start' = duration - start - note.duration."""
    duration = effective_duration(pattern)
    notes = [(duration - start - note.duration, note) for start, note in pattern.notes]
    return with_bounds(sort_notes(notes), duration)


def invert(pattern: Pattern, pivot: int) -> Pattern:
    """Mirror pitches around a pivot note."""
    notes = [
        (start, note.with_changes(pitch=clamp_midi(2 * pivot - note.pitch)))
        for start, note in pattern.notes
    ]
    return _keep_duration(pattern, notes)


def transpose(pattern: Pattern, semitones: int) -> Pattern:
    """Shift all pitches by semitones."""
    notes = [
        (start, note.with_changes(pitch=clamp_midi(note.pitch + semitones)))
        for start, note in pattern.notes
    ]
    return _keep_duration(pattern, notes)


def stretch(pattern: Pattern, factor: Fraction | int | str) -> Pattern:
    """Scale start times, note durations and the pattern duration by factor."""
    f = as_fraction(factor)
    notes = [
        (start * f, note.with_changes(duration=note.duration * f))
        for start, note in pattern.notes
    ]
    return with_bounds(notes, effective_duration(pattern) * f)


def scale_duration(pattern: Pattern, factor: Fraction | int | str) -> Pattern:
    """Scale note durations only; start times stay put."""
    f = as_fraction(factor)
    notes = [(start, note.with_changes(duration=note.duration * f)) for start, note in pattern.notes]
    return _keep_duration(pattern, notes)


def set_note_duration(pattern: Pattern, duration: Fraction | int | str) -> Pattern:
    """Set every note duration to a fixed value."""
    d = as_fraction(duration)
    notes = [(start, note.with_changes(duration=d)) for start, note in pattern.notes]
    return _keep_duration(pattern, notes)


def scale_velocity(pattern: Pattern, factor: float) -> Pattern:
    """Multiply velocities by factor, rounding half up and clamping."""
    notes = [
        (start, note.with_changes(velocity=clamp_midi(round_half_up(note.velocity * factor))))
        for start, note in pattern.notes
    ]
    return _keep_duration(pattern, notes)


def set_velocity(pattern: Pattern, velocity: int) -> Pattern:
    """Set every velocity to a fixed (clamped) value."""
    vel = clamp_midi(velocity)
    notes = [(start, note.with_changes(velocity=vel)) for start, note in pattern.notes]
    return _keep_duration(pattern, notes)


def quantize(pattern: Pattern, grid: Fraction | int | str) -> Pattern:
    """Snap start times to the nearest grid multiple (ties round up)."""
    g = as_fraction(grid)
    notes = [(round_to_grid(start, g), note) for start, note in pattern.notes]
    return _keep_duration(pattern, sort_notes(notes))


def trim(pattern: Pattern, trim_end: bool = True) -> Pattern:
    """
    Remove notes outside [0, duration).

    With trim_end, notes running past the duration are shortened to end
    on it. Without it, overhanging notes are kept unchanged.
    """
    duration = effective_duration(pattern)
    notes: list[TimedNote] = []

    for start, note in pattern.notes:
        if start < 0 or start >= duration:
            continue

        if trim_end and start + note.duration > duration:
            clipped = duration - start
            if clipped > 0:
                notes.append((start, note.with_changes(duration=clipped)))
        else:
            notes.append((start, note))

    return with_bounds(notes, duration)


def view(
    pattern: Pattern,
    start_time: Fraction | int | str = 0,
    end_time: Fraction | int | str | None = None,
) -> Pattern:
    """
    Move the time window of a pattern.

    Every note is shifted by -start_time (starts may go negative; nothing
    is filtered). The duration becomes end_time - start_time, with
    end_time defaulting to the effective duration.
    """
    start = as_fraction(start_time)
    end = effective_duration(pattern) if end_time is None else as_fraction(end_time)
    notes = [(time - start, note) for time, note in pattern.notes]
    return with_bounds(notes, end - start)
