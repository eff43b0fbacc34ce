"""
Constants and enums for the pattern engine.

No magic strings - use enums and module constants for constrained values.
"""

from enum import Enum

# MIDI value range shared by pitch and velocity
MIDI_MIN = 0
MIDI_MAX = 127

# Standard ticks per beat (quarter note)
DEFAULT_TICKS_PER_BEAT = 480

# Pattern time is measured in whole notes
QUARTERS_PER_WHOLE = 4

# Positional ports are named pos-0, pos-1, ...
POSITIONAL_PORT_PREFIX = "pos-"

# Key written into every modifier parameter set
MODIFIER_PARAM_KEY = "modifier"


class NodeKind(str, Enum):
    """Kinds of graph node."""

    PATTERN_SOURCE = "pattern-source"
    MODIFIER = "modifier"


class ErrorMessages:
    """Standardized diagnostic messages."""

    UNKNOWN_NODE = "Node '{node_id}' not found in graph."
    UNKNOWN_EDGE = "Edge '{edge_id}' not found in graph."
    UNKNOWN_MODIFIER = "Unknown modifier: '{modifier_type}'."
    DUPLICATE_NODE = "Node '{node_id}' already exists."
    INVALID_PORT = "Port '{port}' is not an input of node '{node_id}'."
    MISSING_INPUT = "Modifier node '{node_id}' is missing required input '{key}'."
    TOO_FEW_INPUTS = "Modifier node '{node_id}' has {count} positional inputs, needs {min_count}."
    CYCLE = "Cycle reached while evaluating node '{node_id}'."
    TRANSFORM_FAILED = "Error applying modifier '{modifier_type}' on node '{node_id}'."
