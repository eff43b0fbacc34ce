"""
Modifier Registry - the catalogue of available modifiers.

The registry is an explicit object: built once at startup (usually from
the packaged YAML catalogue), frozen, and then handed to the evaluator.
Lookups are by name; registering a name twice replaces the earlier entry.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from patternflow.constants import MODIFIER_PARAM_KEY
from patternflow.modifiers import transforms
from patternflow.modifiers.models import (
    KeywordInput,
    ModifierDefinition,
    ModifierInputs,
    ParameterDefinition,
    PositionalInput,
    Transform,
    fraction_repr,
)
from patternflow.models.pattern import Pattern

logger = logging.getLogger(__name__)

CATALOGUE_PATH = Path(__file__).parent / "library" / "catalogue.yaml"


def _pattern_input(inputs: ModifierInputs, key: str = "pattern") -> Pattern:
    return inputs.keyword[key]


# Transforms keyed by modifier name; catalogue entries bind to these.
BUILTIN_TRANSFORMS: dict[str, Transform] = {
    "concat": lambda inputs, params: transforms.concat(*inputs.positional),
    "union": lambda inputs, params: transforms.union(*inputs.positional),
    "reverse": lambda inputs, params: transforms.reverse(_pattern_input(inputs)),
    "invert": lambda inputs, params: transforms.invert(_pattern_input(inputs), params["pivot"]),
    "transpose": lambda inputs, params: transforms.transpose(
        _pattern_input(inputs), params["semitones"]
    ),
    "stretch": lambda inputs, params: transforms.stretch(_pattern_input(inputs), params["factor"]),
    "scaleDuration": lambda inputs, params: transforms.scale_duration(
        _pattern_input(inputs), params["factor"]
    ),
    "setDuration": lambda inputs, params: transforms.set_note_duration(
        _pattern_input(inputs), params["duration"]
    ),
    "scaleVelocity": lambda inputs, params: transforms.scale_velocity(
        _pattern_input(inputs), params["factor"]
    ),
    "setVelocity": lambda inputs, params: transforms.set_velocity(
        _pattern_input(inputs), params["velocity"]
    ),
    "quantize": lambda inputs, params: transforms.quantize(_pattern_input(inputs), params["grid"]),
    "trim": lambda inputs, params: transforms.trim(_pattern_input(inputs), params["trimEnd"]),
    "view": lambda inputs, params: transforms.view(
        _pattern_input(inputs), params["start"], params["end"]
    ),
}


def get_default_params(definition: ModifierDefinition) -> dict[str, Any]:
    """Build {'modifier': name, <param>: default, ...} for a definition."""
    params: dict[str, Any] = {MODIFIER_PARAM_KEY: definition.name}
    for key, param in definition.parameters.items():
        params[key] = param.default_value
    return params


class ModifierRegistry:
    """
    Name-keyed catalogue of modifier definitions.

    Populate once, then freeze; a frozen registry rejects registration.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._definitions: dict[str, ModifierDefinition] = {}
        self._frozen = False

    def register(self, definition: ModifierDefinition) -> None:
        """
        Register a modifier (last write wins on name collision).

        Raises:
            RuntimeError: If the registry is frozen
        """
        if self._frozen:
            raise RuntimeError(f"Registry is frozen; cannot register '{definition.name}'")
        if definition.name in self._definitions:
            logger.warning(f"Replacing modifier definition '{definition.name}'")
        self._definitions[definition.name] = definition

    def freeze(self) -> ModifierRegistry:
        """Mark the registry read-only. Returns self for chaining."""
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        """Whether the registry is read-only."""
        return self._frozen

    def get(self, name: str) -> ModifierDefinition | None:
        """Get a modifier definition by name."""
        return self._definitions.get(name)

    def has(self, name: str) -> bool:
        """Check if a modifier is registered."""
        return name in self._definitions

    def list_modifiers(self) -> list[ModifierDefinition]:
        """All definitions in registration order."""
        return list(self._definitions.values())

    def names(self) -> list[str]:
        """All registered names in registration order."""
        return list(self._definitions)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def default_params(self, modifier: str | ModifierDefinition) -> dict[str, Any]:
        """
        Default parameter set for a modifier.

        Raises:
            KeyError: If the modifier name is not registered
        """
        definition = modifier if isinstance(modifier, ModifierDefinition) else self._require(modifier)
        return get_default_params(definition)

    def coerce_params(
        self, definition: ModifierDefinition, params: Mapping[str, Any] | None
    ) -> dict[str, Any]:
        """
        Validate caller-supplied params against the definition's schema.

        Missing parameters take their defaults; present ones are coerced
        to the declared type. Unknown keys are ignored.

        Raises:
            ValueError: If a value does not fit its parameter
        """
        params = params or {}
        result: dict[str, Any] = {}

        for key, param in definition.parameters.items():
            if key in params:
                result[key] = param.coerce(params[key])
            else:
                result[key] = param.default_value

        unknown = set(params) - set(definition.parameters) - {MODIFIER_PARAM_KEY}
        if unknown:
            logger.debug(
                f"Ignoring unknown parameters for '{definition.name}': {sorted(unknown)}"
            )

        return result

    def describe(self, name: str) -> dict[str, Any]:
        """
        Plain-data description of a modifier for palettes and forms.

        Raises:
            KeyError: If the modifier name is not registered
        """
        definition = self._require(name)
        return {
            "name": definition.name,
            "display_name": definition.display_name,
            "inputs": [i.model_dump(mode="json", by_alias=True) for i in definition.inputs],
            "parameters": {
                key: {
                    **param.model_dump(
                        mode="json", by_alias=True, exclude_none=True, exclude={"default_value"}
                    ),
                    "defaultValue": fraction_repr(param.default_value),
                }
                for key, param in definition.parameters.items()
            },
        }

    def load_catalogue(
        self,
        path: Path = CATALOGUE_PATH,
        transform_table: Mapping[str, Transform] | None = None,
    ) -> list[str]:
        """
        Register every modifier declared in a YAML catalogue.

        Each entry's transform is looked up by modifier name in
        transform_table (default: the built-in transforms).

        Args:
            path: Catalogue file
            transform_table: Transform functions keyed by modifier name

        Returns:
            Names registered, in file order

        Raises:
            ValueError: If an entry has no transform or fails validation
        """
        table = BUILTIN_TRANSFORMS if transform_table is None else transform_table

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        registered = []
        for name, entry in (data.get("modifiers") or {}).items():
            if name not in table:
                raise ValueError(f"No transform available for modifier '{name}'")
            self.register(self._definition_from_yaml_dict(name, entry or {}, table[name]))
            registered.append(name)

        logger.debug(f"Loaded {len(registered)} modifiers from {path}")
        return registered

    def _definition_from_yaml_dict(
        self, name: str, data: dict[str, Any], transform: Transform
    ) -> ModifierDefinition:
        """Create a ModifierDefinition from a catalogue entry."""
        inputs: list[KeywordInput | PositionalInput] = []
        for idata in data.get("inputs", []):
            if idata.get("type") == "positional":
                inputs.append(
                    PositionalInput(min_count=idata.get("minCount", 1), label=idata.get("label"))
                )
            else:
                inputs.append(
                    KeywordInput(
                        key=idata["key"],
                        label=idata.get("label", idata["key"]),
                        required=idata.get("required", True),
                    )
                )

        parameters = {
            key: ParameterDefinition.model_validate(pdata)
            for key, pdata in (data.get("parameters") or {}).items()
        }

        return ModifierDefinition(
            name=name,
            display_name=data.get("display_name", name),
            inputs=inputs,
            parameters=parameters,
            transform=transform,
        )

    def _require(self, name: str) -> ModifierDefinition:
        definition = self.get(name)
        if definition is None:
            raise KeyError(name)
        return definition


def build_default_registry(path: Path = CATALOGUE_PATH) -> ModifierRegistry:
    """Build and freeze a registry holding the built-in modifiers."""
    registry = ModifierRegistry()
    registry.load_catalogue(path)
    return registry.freeze()
