"""
MIDI rendering - the preview end of the pipeline.

This module converts evaluated patterns to MIDI events and writes them
to MIDI files using mido. All operations are deterministic: same input,
same output.

Pattern time is measured in whole notes; MIDI ticks count quarter notes
(beats), so one whole note is 4 * ticks_per_beat ticks.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from fractions import Fraction

from mido import Message, MetaMessage, MidiFile, MidiTrack

from patternflow.constants import DEFAULT_TICKS_PER_BEAT, MIDI_MAX, MIDI_MIN, QUARTERS_PER_WHOLE
from patternflow.core.rational import as_fraction, round_half_up
from patternflow.models.pattern import Pattern

logger = logging.getLogger(__name__)

# (start time in whole notes, MIDI channel, pattern)
Placement = tuple[Fraction, int, Pattern]


@dataclass(frozen=True)
class MidiEvent:
    """
    A single MIDI note event.

    All times are in ticks (absolute from start of track).
    """

    pitch: int  # MIDI note number (0-127)
    start_ticks: int  # Absolute start time in ticks
    duration_ticks: int  # Duration in ticks
    velocity: int  # 0-127
    channel: int = 0  # 0-15

    def __post_init__(self) -> None:
        """Validate MIDI ranges."""
        if not MIDI_MIN <= self.pitch <= MIDI_MAX:
            raise ValueError(f"Pitch must be 0-127, got {self.pitch}")
        if not MIDI_MIN <= self.velocity <= MIDI_MAX:
            raise ValueError(f"Velocity must be 0-127, got {self.velocity}")
        if not 0 <= self.channel <= 15:
            raise ValueError(f"Channel must be 0-15, got {self.channel}")
        if self.start_ticks < 0:
            raise ValueError(f"Start ticks must be >= 0, got {self.start_ticks}")
        if self.duration_ticks < 0:
            raise ValueError(f"Duration ticks must be >= 0, got {self.duration_ticks}")


def time_to_ticks(time: Fraction | int | str, ticks_per_beat: int = DEFAULT_TICKS_PER_BEAT) -> int:
    """Convert a pattern time (whole notes) to ticks, rounding half up."""
    return round_half_up(as_fraction(time) * QUARTERS_PER_WHOLE * ticks_per_beat)


def pattern_to_events(
    pattern: Pattern,
    channel: int = 0,
    offset: Fraction | int | str = 0,
    ticks_per_beat: int = DEFAULT_TICKS_PER_BEAT,
) -> list[MidiEvent]:
    """
    Convert a pattern's notes to MIDI events.

    Args:
        pattern: Evaluated pattern
        channel: MIDI channel for every event
        offset: Time (whole notes) added to every note start
        ticks_per_beat: Resolution

    Returns:
        Events in note order. Notes that would start before tick 0
        (negative starts, e.g. from view) are skipped.
    """
    shift = as_fraction(offset)
    events: list[MidiEvent] = []
    skipped = 0

    for start, note in pattern.notes:
        start_ticks = time_to_ticks(start + shift, ticks_per_beat)
        if start_ticks < 0:
            skipped += 1
            continue
        events.append(
            MidiEvent(
                pitch=note.pitch,
                start_ticks=start_ticks,
                duration_ticks=max(0, time_to_ticks(note.duration, ticks_per_beat)),
                velocity=note.velocity,
                channel=channel,
            )
        )

    if skipped:
        logger.debug(f"Skipped {skipped} note(s) starting before time 0")
    return events


def events_to_midi(
    events: Sequence[MidiEvent],
    tempo_bpm: int = 120,
    ticks_per_beat: int = DEFAULT_TICKS_PER_BEAT,
) -> MidiFile:
    """
    Convert a sequence of MidiEvents to a MidiFile.

    Args:
        events: Sequence of MidiEvent objects
        tempo_bpm: Tempo in beats per minute
        ticks_per_beat: Resolution (default 480)

    Returns:
        A mido MidiFile ready to be saved
    """
    if tempo_bpm <= 0:
        raise ValueError(f"Tempo must be positive, got {tempo_bpm}")

    mid = MidiFile(ticks_per_beat=ticks_per_beat)
    track = MidiTrack()
    mid.tracks.append(track)

    # Tempo in microseconds per beat
    track.append(MetaMessage("set_tempo", tempo=int(60_000_000 / tempo_bpm), time=0))

    messages: list[tuple[int, Message]] = []
    for event in events:
        messages.append(
            (
                event.start_ticks,
                Message(
                    "note_on",
                    channel=event.channel,
                    note=event.pitch,
                    velocity=event.velocity,
                    time=0,
                ),
            )
        )
        messages.append(
            (
                event.start_ticks + event.duration_ticks,
                Message("note_off", channel=event.channel, note=event.pitch, velocity=0, time=0),
            )
        )

    # note_off before note_on at the same tick, so repeated pitches retrigger
    messages.sort(key=lambda x: (x[0], x[1].type != "note_off"))

    current_time = 0
    for abs_time, msg in messages:
        msg.time = abs_time - current_time
        track.append(msg)
        current_time = abs_time

    track.append(MetaMessage("end_of_track", time=0))
    return mid


def pattern_to_midi(
    pattern: Pattern,
    tempo_bpm: int = 120,
    channel: int = 0,
    ticks_per_beat: int = DEFAULT_TICKS_PER_BEAT,
) -> MidiFile:
    """Render a single pattern to a MidiFile."""
    events = pattern_to_events(pattern, channel=channel, ticks_per_beat=ticks_per_beat)
    return events_to_midi(events, tempo_bpm=tempo_bpm, ticks_per_beat=ticks_per_beat)


def patterns_to_midi(
    placements: Iterable[Placement],
    tempo_bpm: int = 120,
    ticks_per_beat: int = DEFAULT_TICKS_PER_BEAT,
) -> MidiFile:
    """
    Render several patterns placed on a timeline.

    Args:
        placements: (start, channel, pattern) triples; start in whole notes
        tempo_bpm: Tempo in beats per minute
        ticks_per_beat: Resolution

    Returns:
        A single-track MidiFile holding every placed pattern
    """
    events: list[MidiEvent] = []
    for start, channel, pattern in placements:
        events.extend(
            pattern_to_events(pattern, channel=channel, offset=start, ticks_per_beat=ticks_per_beat)
        )
    return events_to_midi(events, tempo_bpm=tempo_bpm, ticks_per_beat=ticks_per_beat)
