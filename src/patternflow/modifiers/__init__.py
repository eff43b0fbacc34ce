"""
Modifier system - pure pattern transforms and their catalogue.

Transforms live in transforms.py as plain functions. The registry binds
them to declarative schemas loaded from library/catalogue.yaml.
"""

from patternflow.modifiers.models import (
    KeywordInput,
    ModifierDefinition,
    ModifierInputs,
    ParameterDefinition,
    ParameterType,
    PositionalInput,
)
from patternflow.modifiers.registry import (
    BUILTIN_TRANSFORMS,
    CATALOGUE_PATH,
    ModifierRegistry,
    build_default_registry,
    get_default_params,
)
from patternflow.modifiers.transforms import (
    concat,
    invert,
    quantize,
    reverse,
    scale_duration,
    scale_velocity,
    set_note_duration,
    set_velocity,
    stretch,
    transpose,
    trim,
    union,
    view,
)

__all__ = [
    # Schema
    "KeywordInput",
    "ModifierDefinition",
    "ModifierInputs",
    "ParameterDefinition",
    "ParameterType",
    "PositionalInput",
    # Registry
    "BUILTIN_TRANSFORMS",
    "CATALOGUE_PATH",
    "ModifierRegistry",
    "build_default_registry",
    "get_default_params",
    # Transforms
    "concat",
    "invert",
    "quantize",
    "reverse",
    "scale_duration",
    "scale_velocity",
    "set_note_duration",
    "set_velocity",
    "stretch",
    "transpose",
    "trim",
    "union",
    "view",
]
