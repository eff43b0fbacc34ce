"""
Data models for the pattern engine.

This module provides:
- Note, Pattern, PatternBounds: Immutable pattern values
- PatternGraph: Immutable node/edge graph snapshot
- PatternSourceNode, ModifierNode, GraphEdge: Graph parts
"""

from patternflow.models.graph import (
    GraphEdge,
    GraphNode,
    ModifierNode,
    PatternGraph,
    PatternSourceNode,
    is_positional_port,
    positional_index,
    positional_port,
)
from patternflow.models.pattern import (
    Note,
    Pattern,
    PatternBounds,
    add_note,
    calculate_bounds,
    calculate_duration,
    clone_pattern,
    create_note,
    create_pattern,
    effective_duration,
    get_real_end_time,
    get_real_start_time,
    remove_note,
    set_duration,
    with_bounds,
)

__all__ = [
    # Pattern
    "Note",
    "Pattern",
    "PatternBounds",
    "add_note",
    "calculate_bounds",
    "calculate_duration",
    "clone_pattern",
    "create_note",
    "create_pattern",
    "effective_duration",
    "get_real_end_time",
    "get_real_start_time",
    "remove_note",
    "set_duration",
    "with_bounds",
    # Graph
    "GraphEdge",
    "GraphNode",
    "ModifierNode",
    "PatternGraph",
    "PatternSourceNode",
    "is_positional_port",
    "positional_index",
    "positional_port",
]
