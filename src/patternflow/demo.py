"""
Demo graph - two source phrases combined through concat, reverse and invert.

    pattern1112 = Concat(P1, P1, P1, P2)
    final       = Concat(pattern1112, Invert(Reverse(pattern1112), pivot=60))
"""

from __future__ import annotations

from fractions import Fraction

from patternflow.models.graph import (
    GraphEdge,
    ModifierNode,
    PatternGraph,
    PatternSourceNode,
    positional_port,
)
from patternflow.models.pattern import Pattern, add_note, create_note, create_pattern, set_duration

DEMO_PITCHES_1 = [60, 65, 67, 70, 67, 65]
DEMO_PITCHES_2 = [62, 63, 62, 58]


def _eighth_note_phrase(pitches: list[int], name: str) -> Pattern:
    """One quarter-length note per eighth, velocity 100, duration = len/8."""
    pattern = create_pattern(name=name)
    for i, pitch in enumerate(pitches):
        pattern = add_note(pattern, Fraction(i, 8), create_note(pitch, 100, Fraction(1, 4)))
    return set_duration(pattern, Fraction(len(pitches), 8))


def create_demo_graph() -> PatternGraph:
    """Build the demo graph snapshot."""
    nodes = [
        PatternSourceNode(
            id="pattern-1",
            pattern=_eighth_note_phrase(DEMO_PITCHES_1, "Pattern 1"),
            name="Pattern 1",
        ),
        PatternSourceNode(
            id="pattern-2",
            pattern=_eighth_note_phrase(DEMO_PITCHES_2, "Pattern 2"),
            name="Pattern 2",
        ),
        ModifierNode(
            id="concat-1112", modifier_type="concat", positional_input_count=4, name="Concat 1"
        ),
        ModifierNode(id="reverse-1", modifier_type="reverse", name="Reverse 1"),
        ModifierNode(id="invert-1", modifier_type="invert", params={"pivot": 60}, name="Invert 1"),
        ModifierNode(
            id="concat-final", modifier_type="concat", positional_input_count=2, name="Concat 2"
        ),
    ]

    sources = ["pattern-1", "pattern-1", "pattern-1", "pattern-2"]
    edges = [
        GraphEdge(id=f"e{i + 1}", source=source, target="concat-1112", target_port=positional_port(i))
        for i, source in enumerate(sources)
    ]
    edges += [
        GraphEdge(id="e5", source="concat-1112", target="reverse-1", target_port="pattern"),
        GraphEdge(id="e6", source="reverse-1", target="invert-1", target_port="pattern"),
        GraphEdge(id="e7", source="concat-1112", target="concat-final", target_port="pos-0"),
        GraphEdge(id="e8", source="invert-1", target="concat-final", target_port="pos-1"),
    ]

    return PatternGraph.from_parts(nodes, edges)
