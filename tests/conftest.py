"""
Pytest configuration and shared fixtures.
"""

import tempfile
from fractions import Fraction
from pathlib import Path

import pytest

from patternflow.demo import create_demo_graph
from patternflow.models.graph import PatternGraph
from patternflow.models.pattern import Note, Pattern
from patternflow.modifiers.registry import ModifierRegistry, build_default_registry


@pytest.fixture
def temp_dir() -> Path:
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_midi_path(temp_dir: Path) -> Path:
    """Path for a temporary MIDI file."""
    return temp_dir / "test.mid"


@pytest.fixture
def registry() -> ModifierRegistry:
    """Frozen registry holding the built-in modifiers."""
    return build_default_registry()


@pytest.fixture
def demo_graph() -> PatternGraph:
    """The built-in demo graph."""
    return create_demo_graph()


@pytest.fixture
def single_note() -> Pattern:
    """One quarter note at C4, velocity 100, no explicit duration."""
    return Pattern(notes=((Fraction(0), Note(duration=Fraction(1, 4), pitch=60, velocity=100)),))


@pytest.fixture
def phrase() -> Pattern:
    """Three notes with an explicit duration of one whole note."""
    return Pattern(
        notes=(
            (Fraction(0), Note(duration=Fraction(1, 4), pitch=60, velocity=100)),
            (Fraction(1, 4), Note(duration=Fraction(1, 8), pitch=64, velocity=90)),
            (Fraction(1, 2), Note(duration=Fraction(1, 4), pitch=67, velocity=80)),
        ),
        duration=Fraction(1),
    )
