"""
Compiler - renders evaluated patterns to MIDI.

- MidiEvent: Lowest-level note event in ticks
- pattern_to_events / pattern_to_midi: One pattern to events or a file
- patterns_to_midi: Several placed patterns to one file
"""

from patternflow.compiler.midi import (
    MidiEvent,
    Placement,
    events_to_midi,
    pattern_to_events,
    pattern_to_midi,
    patterns_to_midi,
    time_to_ticks,
)

__all__ = [
    "MidiEvent",
    "Placement",
    "events_to_midi",
    "pattern_to_events",
    "pattern_to_midi",
    "patterns_to_midi",
    "time_to_ticks",
]
