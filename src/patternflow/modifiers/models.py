"""
Modifier schema models.

A modifier definition declares its input shape (keyword and positional
inputs) and its parameter schema. Definitions are validated when built,
so a bad catalogue entry fails at registration, not at evaluation.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction
from typing import Any, Literal, Union

from pydantic import BaseModel, Field, model_validator

from patternflow.constants import MIDI_MAX, MIDI_MIN, MODIFIER_PARAM_KEY, POSITIONAL_PORT_PREFIX
from patternflow.core.rational import as_fraction
from patternflow.models.pattern import Pattern


class ParameterType(str, Enum):
    """Types of modifier parameters."""

    NUMBER = "number"
    SLIDER = "slider"
    FRACTION = "fraction"
    MIDI_NOTE = "midi-note"
    MIDI_128 = "midi-128"
    BOOLEAN = "boolean"


class ParameterDefinition(BaseModel):
    """
    A configurable parameter of a modifier.

    Carries the default value plus the metadata a parameter form needs.
    """

    param_type: ParameterType = Field(..., alias="type", description="Parameter type")
    default_value: Any = Field(None, alias="defaultValue", description="Default value")
    range: tuple[float, float] | None = Field(None, description="Allowed range for numeric types")
    step: float | None = Field(None, description="Slider step")
    unit: str | None = Field(None, description="Unit label (e.g. 'beats')")
    label: str = Field(..., description="Display label")
    description: str | None = Field(None, description="Help text")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _coerce_default(self) -> ParameterDefinition:
        if self.default_value is not None:
            self.default_value = self.coerce(self.default_value)
        return self

    @property
    def is_integral(self) -> bool:
        """Whether values of this parameter are whole numbers."""
        if self.param_type in (ParameterType.MIDI_NOTE, ParameterType.MIDI_128):
            return True
        if self.param_type in (ParameterType.NUMBER, ParameterType.SLIDER):
            step_whole = self.step is None or float(self.step).is_integer()
            default_whole = isinstance(self.default_value, int) and not isinstance(
                self.default_value, bool
            )
            return step_whole and default_whole
        return False

    def coerce(self, value: Any) -> Any:
        """
        Convert a value to this parameter's type.

        Fractions accept '3/8' style strings, ints and floats. Integral
        numeric parameters reject non-whole values. Declared ranges are
        enforced.

        Raises:
            ValueError: If the value does not fit the parameter
        """
        if value is None:
            if self.default_value is None:
                return None
            raise ValueError(f"Parameter '{self.label}' does not accept None")

        if self.param_type == ParameterType.BOOLEAN:
            if isinstance(value, bool):
                return value
            if isinstance(value, str) and value.lower() in ("true", "false"):
                return value.lower() == "true"
            raise ValueError(f"Expected a boolean for '{self.label}', got {value!r}")

        if self.param_type == ParameterType.FRACTION:
            result: Any = as_fraction(value)
        elif isinstance(value, bool):
            raise ValueError(f"Expected a number for '{self.label}', got {value!r}")
        else:
            try:
                number = float(value)
            except (TypeError, ValueError) as e:
                raise ValueError(f"Expected a number for '{self.label}', got {value!r}") from e
            if self.is_integral:
                if not number.is_integer():
                    raise ValueError(f"Expected a whole number for '{self.label}', got {value!r}")
                result = int(number)
            else:
                result = number

        bounds = self.range
        if bounds is None and self.param_type in (ParameterType.MIDI_NOTE, ParameterType.MIDI_128):
            bounds = (MIDI_MIN, MIDI_MAX)
        if bounds is not None and not bounds[0] <= result <= bounds[1]:
            raise ValueError(
                f"Value {value!r} for '{self.label}' outside range [{bounds[0]}, {bounds[1]}]"
            )

        return result


class KeywordInput(BaseModel):
    """A single named pattern input."""

    type: Literal["keyword"] = "keyword"
    key: str = Field(..., min_length=1, description="Port key used for routing")
    label: str = Field(..., description="Display label next to the port")
    required: bool = Field(True, description="Whether a connection is required")

    model_config = {"frozen": True}


class PositionalInput(BaseModel):
    """An ordered, variable-length list of pattern inputs."""

    type: Literal["positional"] = "positional"
    min_count: int = Field(1, ge=0, alias="minCount", description="Minimum inputs")
    label: str | None = Field(None, description="Optional group label")

    model_config = {"frozen": True, "populate_by_name": True}


InputDefinition = Union[KeywordInput, PositionalInput]


@dataclass(frozen=True)
class ModifierInputs:
    """Inputs assembled for one modifier call."""

    keyword: dict[str, Pattern] = field(default_factory=dict)
    positional: list[Pattern] = field(default_factory=list)


Transform = Callable[[ModifierInputs, dict[str, Any]], Pattern]


class ModifierDefinition(BaseModel):
    """
    A registered modifier: input shape, parameter schema and transform.

    Validation rules:
    - at most one positional input
    - keyword keys are unique and do not use the positional port prefix
    - no parameter is named 'modifier'
    """

    name: str = Field(..., min_length=1, description="Unique modifier name")
    display_name: str = Field("", description="Display name")
    inputs: list[InputDefinition] = Field(default_factory=list, description="Input shape")
    parameters: dict[str, ParameterDefinition] = Field(
        default_factory=dict, description="Parameter schema"
    )
    transform: Transform = Field(..., description="Pure transform function")

    @model_validator(mode="after")
    def _check_shape(self) -> ModifierDefinition:
        positional = [i for i in self.inputs if isinstance(i, PositionalInput)]
        if len(positional) > 1:
            raise ValueError(f"Modifier '{self.name}' declares more than one positional input")

        keys = [i.key for i in self.keyword_inputs]
        if len(keys) != len(set(keys)):
            raise ValueError(f"Modifier '{self.name}' has duplicate keyword inputs")
        for key in keys:
            if key.startswith(POSITIONAL_PORT_PREFIX):
                raise ValueError(
                    f"Keyword input '{key}' of '{self.name}' uses the positional port prefix"
                )

        if MODIFIER_PARAM_KEY in self.parameters:
            raise ValueError(f"Modifier '{self.name}' may not declare a 'modifier' parameter")

        if not self.display_name:
            self.display_name = self.name
        return self

    @property
    def keyword_inputs(self) -> list[KeywordInput]:
        """Keyword inputs in declaration order."""
        return [i for i in self.inputs if isinstance(i, KeywordInput)]

    @property
    def positional_input(self) -> PositionalInput | None:
        """The positional input, if declared."""
        for i in self.inputs:
            if isinstance(i, PositionalInput):
                return i
        return None

    @property
    def min_positional_count(self) -> int:
        """Minimum positional inputs (0 if none declared)."""
        positional = self.positional_input
        return positional.min_count if positional else 0

    def accepts_port(self, port: str) -> bool:
        """Check whether a port name addresses one of this modifier's inputs."""
        if port.startswith(POSITIONAL_PORT_PREFIX):
            return self.positional_input is not None
        return any(i.key == port for i in self.keyword_inputs)


def fraction_repr(value: Any) -> Any:
    """Render Fractions as 'n/d' strings for display; pass other values through."""
    if isinstance(value, Fraction):
        return str(value)
    return value
