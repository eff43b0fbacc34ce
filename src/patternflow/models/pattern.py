"""
Pattern model - timed notes plus an optional explicit duration.

A Pattern is an immutable value. Notes are (start_time, Note) pairs with
exact Fraction times in whole notes. Bounds are derived from the notes when
the pattern is constructed and can never be set independently.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from fractions import Fraction

from patternflow.constants import MIDI_MAX, MIDI_MIN
from patternflow.core.rational import as_fraction

TimedNote = tuple[Fraction, "Note"]


@dataclass(frozen=True)
class Note:
    """
    A single note: duration, MIDI pitch and velocity.

    The start time lives in the containing pattern, not on the note.
    """

    duration: Fraction
    pitch: int  # MIDI note number (0-127)
    velocity: int = 64  # 0-127

    def __post_init__(self) -> None:
        """Validate MIDI ranges and normalize the duration."""
        if not MIDI_MIN <= self.pitch <= MIDI_MAX:
            raise ValueError(f"Pitch must be 0-127, got {self.pitch}")
        if not MIDI_MIN <= self.velocity <= MIDI_MAX:
            raise ValueError(f"Velocity must be 0-127, got {self.velocity}")
        object.__setattr__(self, "duration", as_fraction(self.duration))

    def with_changes(
        self,
        duration: Fraction | None = None,
        pitch: int | None = None,
        velocity: int | None = None,
    ) -> Note:
        """Return a copy with some fields replaced."""
        return Note(
            duration=self.duration if duration is None else duration,
            pitch=self.pitch if pitch is None else pitch,
            velocity=self.velocity if velocity is None else velocity,
        )


@dataclass(frozen=True)
class PatternBounds:
    """Pitch and time extent of a pattern's notes (end times included)."""

    min_pitch: int
    max_pitch: int
    min_time: Fraction
    max_time: Fraction


@dataclass(frozen=True)
class Pattern:
    """
    An ordered collection of timed notes plus an optional explicit duration.

    duration=None means "derive from the notes" (see effective_duration).
    """

    notes: tuple[TimedNote, ...] = ()
    duration: Fraction | None = None
    name: str | None = field(default=None, compare=False)
    bounds: PatternBounds | None = field(init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        notes = tuple((as_fraction(start), note) for start, note in self.notes)
        object.__setattr__(self, "notes", notes)
        if self.duration is not None:
            object.__setattr__(self, "duration", as_fraction(self.duration))
        object.__setattr__(self, "bounds", calculate_bounds(notes))

    @property
    def effective_duration(self) -> Fraction:
        """The explicit duration, or the end of the last-ending note."""
        return effective_duration(self)


def calculate_duration(notes: Iterable[TimedNote]) -> Fraction:
    """
    Calculate a duration from notes: the latest note end time.

    Returns Fraction(0) when there are no notes.
    """
    max_end = Fraction(0)
    for start, note in notes:
        end = start + note.duration
        if end > max_end:
            max_end = end
    return max_end


def effective_duration(pattern: Pattern) -> Fraction:
    """Get the pattern's explicit duration, falling back to the note extent."""
    if pattern.duration is not None:
        return pattern.duration
    return calculate_duration(pattern.notes)


def calculate_bounds(notes: Iterable[TimedNote]) -> PatternBounds | None:
    """
    Calculate pitch/time bounds for notes.

    Returns None for an empty note list.
    """
    notes = list(notes)
    if not notes:
        return None

    return PatternBounds(
        min_pitch=min(note.pitch for _, note in notes),
        max_pitch=max(note.pitch for _, note in notes),
        min_time=min(start for start, _ in notes),
        max_time=max(start + note.duration for start, note in notes),
    )


def with_bounds(notes: Iterable[TimedNote], duration: Fraction | None) -> Pattern:
    """Create a pattern from notes; bounds are always recomputed."""
    return Pattern(notes=tuple(notes), duration=duration)


def sort_notes(notes: Iterable[TimedNote]) -> list[TimedNote]:
    """Stable sort of notes ascending by start time."""
    return sorted(notes, key=lambda item: item[0])


def create_note(
    pitch: int,
    velocity: int = 64,
    duration: Fraction | int | float | str = Fraction(1, 4),
) -> Note:
    """Create a note (default: quarter note at velocity 64)."""
    return Note(duration=as_fraction(duration), pitch=pitch, velocity=velocity)


def create_pattern(duration: Fraction | None = None, name: str | None = None) -> Pattern:
    """Create an empty pattern."""
    return Pattern(notes=(), duration=duration, name=name)


def add_note(pattern: Pattern, start_time: Fraction | int | float | str, note: Note) -> Pattern:
    """
    Add a note at a start time.

    Notes are re-sorted by start time. An explicit duration is kept,
    otherwise the new pattern's duration is computed from its notes.
    """
    notes = sort_notes([*pattern.notes, (as_fraction(start_time), note)])
    duration = pattern.duration if pattern.duration is not None else calculate_duration(notes)
    return Pattern(notes=tuple(notes), duration=duration, name=pattern.name)


def remove_note(pattern: Pattern, start_time: Fraction, note_index: int | None = None) -> Pattern:
    """
    Remove notes from a pattern.

    With note_index, removes the note at that position in the note list.
    Otherwise removes every note starting at start_time.
    """
    if note_index is not None:
        notes = [item for idx, item in enumerate(pattern.notes) if idx != note_index]
    else:
        start = as_fraction(start_time)
        notes = [item for item in pattern.notes if item[0] != start]

    duration = pattern.duration if pattern.duration is not None else calculate_duration(notes)
    return Pattern(notes=tuple(notes), duration=duration, name=pattern.name)


def set_duration(pattern: Pattern, duration: Fraction | int | float | str | None) -> Pattern:
    """Return a copy with an explicit duration (None clears it)."""
    value = None if duration is None else as_fraction(duration)
    return Pattern(notes=pattern.notes, duration=value, name=pattern.name)


def clone_pattern(pattern: Pattern) -> Pattern:
    """
    Copy a pattern.

    Fractions and notes are immutable, so the copy shares them safely.
    """
    return Pattern(notes=tuple(pattern.notes), duration=pattern.duration, name=pattern.name)


def get_real_start_time(pattern: Pattern) -> Fraction:
    """Earliest note start (may be negative); 0 for an empty pattern."""
    if not pattern.notes:
        return Fraction(0)
    return min(start for start, _ in pattern.notes)


def get_real_end_time(pattern: Pattern) -> Fraction:
    """Latest note end, never below 0."""
    return calculate_duration(pattern.notes)
