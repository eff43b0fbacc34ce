"""
Tests for the graph evaluator.

Tests cover:
- Evaluation of sources and modifiers, including the demo graph
- Memoization and negative caching
- Invalidation over the pre-mutation snapshot
- Staleness detection when an invalidation is missed
- Cycle detection and cycles reached during evaluation
- Failure handling (unknown modifier, missing inputs, raising transform)
"""

import logging
from collections import Counter
from fractions import Fraction

import pytest

from patternflow.engine import GraphEvaluator, detect_cycles
from patternflow.models import (
    GraphEdge,
    ModifierNode,
    Pattern,
    PatternGraph,
    PatternSourceNode,
    create_note,
)
from patternflow.modifiers import (
    BUILTIN_TRANSFORMS,
    ModifierDefinition,
    ModifierRegistry,
    build_default_registry,
    concat,
    invert,
    reverse,
    transpose,
    union,
)


def _edge(edge_id: str, source: str, target: str, port: str = "pattern") -> GraphEdge:
    return GraphEdge(id=edge_id, source=source, target=target, target_port=port)


class CountingRegistry:
    """Built-in catalogue whose transforms count their calls."""

    def __init__(self) -> None:
        self.calls: Counter[str] = Counter()
        self.registry = ModifierRegistry()
        for definition in build_default_registry().list_modifiers():
            self.registry.register(
                definition.model_copy(update={"transform": self._counting(definition)})
            )
        self.registry.freeze()

    def _counting(self, definition: ModifierDefinition):
        name = definition.name
        inner = BUILTIN_TRANSFORMS[name]

        def transform(inputs, params):
            self.calls[name] += 1
            return inner(inputs, params)

        return transform


@pytest.fixture
def counting() -> CountingRegistry:
    return CountingRegistry()


@pytest.fixture
def chain(single_note: Pattern) -> PatternGraph:
    """A (source) -> B (reverse) -> C (invert 64), plus an unrelated source D."""
    return PatternGraph.from_parts(
        [
            PatternSourceNode(id="A", pattern=single_note),
            ModifierNode(id="B", modifier_type="reverse"),
            ModifierNode(id="C", modifier_type="invert", params={"pivot": 64}),
            PatternSourceNode(id="D", pattern=single_note),
        ],
        [_edge("e1", "A", "B"), _edge("e2", "B", "C")],
    )


class TestEvaluate:
    """Basic evaluation."""

    def test_unknown_node_is_none_and_not_cached(self, registry, chain) -> None:
        evaluator = GraphEvaluator(registry)
        assert evaluator.evaluate(chain, "missing") is None
        assert not evaluator.is_cached("missing")

    def test_source_returns_stored_pattern(self, registry, chain, single_note) -> None:
        evaluator = GraphEvaluator(registry)
        assert evaluator.evaluate(chain, "A") is single_note

    def test_chain(self, registry, chain, single_note) -> None:
        evaluator = GraphEvaluator(registry)
        expected = invert(reverse(single_note), 64)
        assert evaluator.evaluate(chain, "C") == expected

    def test_demo_graph(self, registry, demo_graph) -> None:
        evaluator = GraphEvaluator(registry)
        p1 = demo_graph.nodes["pattern-1"].pattern
        p2 = demo_graph.nodes["pattern-2"].pattern
        p1112 = concat(p1, p1, p1, p2)
        expected = concat(p1112, invert(reverse(p1112), 60))

        result = evaluator.evaluate(demo_graph, "concat-final")
        assert result == expected
        assert result.duration == Fraction(44, 8)
        assert len(result.notes) == 44

    def test_params_are_coerced(self, registry, single_note) -> None:
        """String fractions in params reach the transform as Fractions."""
        graph = PatternGraph.from_parts(
            [
                PatternSourceNode(id="A", pattern=single_note),
                ModifierNode(id="S", modifier_type="stretch", params={"factor": "3/2"}),
            ],
            [_edge("e1", "A", "S")],
        )
        result = GraphEvaluator(registry).evaluate(graph, "S")
        assert result.duration == Fraction(3, 8)

    def test_missing_params_use_defaults(self, registry, single_note) -> None:
        graph = PatternGraph.from_parts(
            [
                PatternSourceNode(id="A", pattern=single_note),
                ModifierNode(id="T", modifier_type="setVelocity", params={}),
            ],
            [_edge("e1", "A", "T")],
        )
        result = GraphEvaluator(registry).evaluate(graph, "T")
        assert result.notes[0][1].velocity == 80

    def test_first_edge_on_port_wins(self, registry) -> None:
        low = Pattern(notes=((Fraction(0), create_note(40)),))
        high = Pattern(notes=((Fraction(0), create_note(80)),))
        graph = PatternGraph.from_parts(
            [
                PatternSourceNode(id="low", pattern=low),
                PatternSourceNode(id="high", pattern=high),
                ModifierNode(id="R", modifier_type="reverse"),
            ],
            [_edge("e1", "low", "R"), _edge("e2", "high", "R")],
        )
        result = GraphEvaluator(registry).evaluate(graph, "R")
        assert result.notes[0][1].pitch == 40

    def test_positional_order_follows_port_index(self, registry) -> None:
        first = Pattern(notes=((Fraction(0), create_note(60)),), duration=Fraction(1, 4))
        second = Pattern(notes=((Fraction(0), create_note(72)),), duration=Fraction(1, 4))
        graph = PatternGraph.from_parts(
            [
                PatternSourceNode(id="first", pattern=first),
                PatternSourceNode(id="second", pattern=second),
                ModifierNode(id="cat", modifier_type="concat", positional_input_count=2),
            ],
            # Edges listed out of port order
            [_edge("e1", "second", "cat", "pos-1"), _edge("e2", "first", "cat", "pos-0")],
        )
        result = GraphEvaluator(registry).evaluate(graph, "cat")
        assert [n.pitch for _, n in result.notes] == [60, 72]


class TestMemoization:
    """Transforms run once per node until invalidated."""

    def test_cold_then_warm(self, counting, chain) -> None:
        evaluator = GraphEvaluator(counting.registry)
        first = evaluator.evaluate(chain, "C")
        assert counting.calls == {"reverse": 1, "invert": 1}

        second = evaluator.evaluate(chain, "C")
        assert second is first
        assert counting.calls == {"reverse": 1, "invert": 1}

    def test_shared_upstream_evaluated_once(self, counting, demo_graph) -> None:
        """concat-1112 feeds two consumers but is computed once."""
        evaluator = GraphEvaluator(counting.registry)
        evaluator.evaluate(demo_graph, "concat-final")
        assert counting.calls == {"concat": 2, "reverse": 1, "invert": 1}

    def test_negative_caching(self, counting, single_note) -> None:
        """A failed node is not retried until invalidated."""
        graph = PatternGraph.from_parts(
            [
                PatternSourceNode(id="A", pattern=single_note),
                ModifierNode(id="cat", modifier_type="concat", positional_input_count=2),
            ],
            [_edge("e1", "A", "cat", "pos-0")],
        )
        evaluator = GraphEvaluator(counting.registry)
        assert evaluator.evaluate(graph, "cat") is None
        assert evaluator.is_cached("cat")
        assert evaluator.cached_result("cat") is None
        assert evaluator.evaluate(graph, "cat") is None
        assert counting.calls["concat"] == 0

    def test_all_and_leaf_patterns(self, registry, chain) -> None:
        evaluator = GraphEvaluator(registry)
        assert list(evaluator.get_all_patterns(chain)) == ["A", "B", "C", "D"]
        assert list(evaluator.get_leaf_patterns(chain)) == ["C", "D"]

    def test_empty_results_excluded(self, registry) -> None:
        graph = PatternGraph.from_parts([PatternSourceNode(id="E", pattern=Pattern())])
        evaluator = GraphEvaluator(registry)
        assert evaluator.evaluate(graph, "E") == Pattern()
        assert evaluator.get_all_patterns(graph) == {}
        assert evaluator.get_leaf_patterns(graph) == {}


class TestInvalidation:
    """Invalidation evicts a node and everything downstream."""

    def test_evicts_downstream_only(self, registry, chain) -> None:
        evaluator = GraphEvaluator(registry)
        evaluator.get_all_patterns(chain)

        evicted = evaluator.invalidate_node(chain, "A")
        assert evicted == {"A", "B", "C"}
        for node_id in ("A", "B", "C"):
            assert not evaluator.is_cached(node_id)
        assert evaluator.is_cached("D")

    def test_recompute_after_invalidation(self, counting, chain) -> None:
        evaluator = GraphEvaluator(counting.registry)
        evaluator.evaluate(chain, "C")
        evaluator.invalidate_node(chain, "B")
        evaluator.evaluate(chain, "C")
        assert counting.calls == {"reverse": 2, "invert": 2}

    def test_invalidate_then_commit(self, registry, chain, single_note) -> None:
        """The editing protocol: invalidate on the old snapshot, then swap."""
        evaluator = GraphEvaluator(registry)
        evaluator.evaluate(chain, "C")

        new_source = Pattern(notes=((Fraction(0), create_note(48)),))
        evaluator.invalidate_node(chain, "A")
        updated = chain.update_node("A", pattern=new_source)

        assert evaluator.evaluate(updated, "C") == invert(reverse(new_source), 64)

    def test_clear_cache(self, registry, chain) -> None:
        evaluator = GraphEvaluator(registry)
        evaluator.get_all_patterns(chain)
        evaluator.clear_cache()
        assert not any(evaluator.is_cached(n) for n in chain.nodes)

    def test_invalidation_with_cycle_terminates(self, registry) -> None:
        graph = PatternGraph.from_parts(
            [
                ModifierNode(id="X", modifier_type="reverse"),
                ModifierNode(id="Y", modifier_type="reverse"),
            ],
            [_edge("e1", "X", "Y"), _edge("e2", "Y", "X")],
        )
        assert GraphEvaluator(registry).invalidate_node(graph, "X") == {"X", "Y"}


class TestStaleness:
    """Cache entries never outlive the state they were computed from."""

    def test_changed_source_detected_without_invalidation(self, counting, chain) -> None:
        evaluator = GraphEvaluator(counting.registry)
        evaluator.evaluate(chain, "C")

        new_source = Pattern(notes=((Fraction(0), create_note(48)),))
        updated = chain.update_node("A", pattern=new_source)

        assert evaluator.evaluate(updated, "C") == invert(reverse(new_source), 64)
        assert counting.calls == {"reverse": 2, "invert": 2}

    def test_changed_params_detected(self, counting, chain, single_note) -> None:
        evaluator = GraphEvaluator(counting.registry)
        evaluator.evaluate(chain, "C")

        updated = chain.update_node("C", params={"pivot": 60})
        assert evaluator.evaluate(updated, "C") == invert(reverse(single_note), 60)
        # Upstream untouched
        assert counting.calls == {"reverse": 1, "invert": 2}

    def test_changed_edges_detected(self, registry, chain) -> None:
        evaluator = GraphEvaluator(registry)
        assert evaluator.evaluate(chain, "C") is not None

        rewired = chain.without_edge("e2")
        assert evaluator.evaluate(rewired, "C") is None

    def test_unchanged_snapshot_copy_hits(self, counting, chain) -> None:
        """An equal snapshot (e.g. a rename elsewhere) reuses the cache."""
        evaluator = GraphEvaluator(counting.registry)
        evaluator.evaluate(chain, "C")

        renamed = chain.update_node("D", name="Other")
        evaluator.evaluate(renamed, "C")
        assert counting.calls == {"reverse": 1, "invert": 1}

    def test_recovered_upstream_detected(self, registry, single_note) -> None:
        """A node that read a failed input recomputes once the input succeeds."""
        graph = PatternGraph.from_parts(
            [
                PatternSourceNode(id="A", pattern=single_note),
                ModifierNode(id="B", modifier_type="reverse"),
                ModifierNode(id="C", modifier_type="transpose", params={"semitones": 2}),
            ],
            [_edge("e2", "B", "C")],
        )
        evaluator = GraphEvaluator(registry)
        assert evaluator.evaluate(graph, "C") is None

        fixed = graph.with_edge(_edge("e1", "A", "B"))
        result = evaluator.evaluate(fixed, "C")
        assert result is not None
        assert result.notes[0][1].pitch == 62

    def test_cycle_broken_elsewhere_detected(self, registry) -> None:
        """A node that failed inside a cycle recomputes once another edge breaks it."""
        low = Pattern(notes=((Fraction(0), create_note(60)),), duration=Fraction(1, 4))
        high = Pattern(notes=((Fraction(1, 4), create_note(64)),), duration=Fraction(1, 2))
        graph = PatternGraph.from_parts(
            [
                PatternSourceNode(id="S1", pattern=low),
                PatternSourceNode(id="S2", pattern=high),
                ModifierNode(id="A", modifier_type="union", positional_input_count=3),
                ModifierNode(id="B", modifier_type="reverse"),
                ModifierNode(id="C", modifier_type="reverse"),
            ],
            [
                _edge("e1", "S1", "A", "pos-0"),
                _edge("e2", "S2", "A", "pos-1"),
                _edge("e3", "C", "A", "pos-2"),
                _edge("e4", "A", "B"),
                _edge("e5", "B", "C"),
            ],
        )
        evaluator = GraphEvaluator(registry)
        evaluator.evaluate(graph, "A")
        assert evaluator.is_cached("B")
        assert evaluator.cached_result("B") is None

        # B's own node and incoming edges are unchanged
        broken = graph.without_edge("e3")
        result = evaluator.evaluate(broken, "B")
        assert result == reverse(union(low, high))
        assert result == GraphEvaluator(registry).evaluate(broken, "B")
        assert [note.pitch for _, note in result.notes] == [64, 60]


class TestNullCompaction:
    """Failed positional inputs are dropped from the sequence."""

    def test_null_positional_equals_omitted(self, registry) -> None:
        a = Pattern(notes=((Fraction(0), create_note(60)),), duration=Fraction(1, 4))
        b = Pattern(notes=((Fraction(0), create_note(64)),), duration=Fraction(1, 4))
        c = Pattern(notes=((Fraction(0), create_note(67)),), duration=Fraction(1, 4))
        graph = PatternGraph.from_parts(
            [
                PatternSourceNode(id="a", pattern=a),
                PatternSourceNode(id="b", pattern=b),
                PatternSourceNode(id="c", pattern=c),
                ModifierNode(id="broken", modifier_type="reverse"),
                ModifierNode(id="cat", modifier_type="concat", positional_input_count=4),
            ],
            [
                _edge("e1", "a", "cat", "pos-0"),
                _edge("e2", "broken", "cat", "pos-1"),
                _edge("e3", "b", "cat", "pos-2"),
                _edge("e4", "c", "cat", "pos-3"),
            ],
        )
        assert GraphEvaluator(registry).evaluate(graph, "cat") == concat(a, b, c)


class TestFailures:
    """Failures become None and are reported through logging."""

    def test_unknown_modifier(self, registry, single_note, caplog) -> None:
        graph = PatternGraph.from_parts(
            [
                PatternSourceNode(id="A", pattern=single_note),
                ModifierNode(id="M", modifier_type="wobble"),
            ],
            [_edge("e1", "A", "M")],
        )
        with caplog.at_level(logging.ERROR, logger="patternflow.engine.evaluator"):
            assert GraphEvaluator(registry).evaluate(graph, "M") is None
        assert "Unknown modifier: 'wobble'" in caplog.text

    def test_missing_required_input(self, registry) -> None:
        graph = PatternGraph.from_parts([ModifierNode(id="R", modifier_type="reverse")])
        assert GraphEvaluator(registry).evaluate(graph, "R") is None

    def test_none_keyword_input_treated_as_unconnected(self, registry) -> None:
        graph = PatternGraph.from_parts(
            [
                ModifierNode(id="R1", modifier_type="reverse"),
                ModifierNode(id="R2", modifier_type="reverse"),
            ],
            [_edge("e1", "R1", "R2")],
        )
        assert GraphEvaluator(registry).evaluate(graph, "R2") is None

    def test_raising_transform(self, single_note, caplog) -> None:
        def explode(inputs, params):
            raise ZeroDivisionError("boom")

        registry = ModifierRegistry()
        registry.register(
            build_default_registry().get("reverse").model_copy(update={"transform": explode})
        )
        graph = PatternGraph.from_parts(
            [
                PatternSourceNode(id="A", pattern=single_note),
                ModifierNode(id="R", modifier_type="reverse"),
            ],
            [_edge("e1", "A", "R")],
        )
        with caplog.at_level(logging.ERROR, logger="patternflow.engine.evaluator"):
            assert GraphEvaluator(registry.freeze()).evaluate(graph, "R") is None
        assert "Error applying modifier 'reverse' on node 'R'" in caplog.text
        assert "ZeroDivisionError" in caplog.text

    def test_invalid_param_value(self, registry, single_note, caplog) -> None:
        """Params that fail coercion are a transform failure, not an exception."""
        graph = PatternGraph.from_parts(
            [
                PatternSourceNode(id="A", pattern=single_note),
                ModifierNode(id="Q", modifier_type="quantize", params={"grid": "zero"}),
            ],
            [_edge("e1", "A", "Q")],
        )
        with caplog.at_level(logging.ERROR, logger="patternflow.engine.evaluator"):
            assert GraphEvaluator(registry).evaluate(graph, "Q") is None
        assert "Error applying modifier 'quantize'" in caplog.text

    def test_param_outside_range_fails(self, registry, single_note, caplog) -> None:
        """Slider ranges bound node params; the transform itself is unbounded."""
        graph = PatternGraph.from_parts(
            [
                PatternSourceNode(id="A", pattern=single_note),
                ModifierNode(id="T", modifier_type="transpose", params={"semitones": 60}),
                ModifierNode(id="V", modifier_type="scaleVelocity", params={"factor": 4}),
            ],
            [_edge("e1", "A", "T"), _edge("e2", "A", "V")],
        )
        evaluator = GraphEvaluator(registry)
        with caplog.at_level(logging.ERROR, logger="patternflow.engine.evaluator"):
            assert evaluator.evaluate(graph, "T") is None
            assert evaluator.evaluate(graph, "V") is None
        assert "outside range" in caplog.text
        assert transpose(single_note, 60).notes[0][1].pitch == 120

    def test_zero_grid_fails(self, registry, single_note) -> None:
        graph = PatternGraph.from_parts(
            [
                PatternSourceNode(id="A", pattern=single_note),
                ModifierNode(id="Q", modifier_type="quantize", params={"grid": 0}),
            ],
            [_edge("e1", "A", "Q")],
        )
        assert GraphEvaluator(registry).evaluate(graph, "Q") is None


class TestCycles:
    """Cycle detection and evaluation of cyclic graphs."""

    @pytest.fixture
    def loop(self, single_note: Pattern) -> PatternGraph:
        """S feeds U (union) which feeds R (reverse) which feeds back into U."""
        return PatternGraph.from_parts(
            [
                PatternSourceNode(id="S", pattern=single_note),
                ModifierNode(id="U", modifier_type="union", positional_input_count=2),
                ModifierNode(id="R", modifier_type="reverse"),
            ],
            [
                _edge("e1", "S", "U", "pos-0"),
                _edge("e2", "U", "R"),
                _edge("e3", "R", "U", "pos-1"),
            ],
        )

    def test_two_node_cycle(self) -> None:
        graph = PatternGraph.from_parts(
            [
                ModifierNode(id="A", modifier_type="reverse"),
                ModifierNode(id="B", modifier_type="reverse"),
            ],
            [_edge("e1", "A", "B"), _edge("e2", "B", "A")],
        )
        witness = detect_cycles(graph)
        assert witness == ["A", "B", "A"]

    def test_acyclic(self, chain, demo_graph) -> None:
        assert detect_cycles(chain) is None
        assert detect_cycles(demo_graph) is None

    def test_self_loop(self) -> None:
        graph = PatternGraph.from_parts(
            [ModifierNode(id="A", modifier_type="reverse")], [_edge("e1", "A", "A")]
        )
        assert detect_cycles(graph) == ["A", "A"]

    def test_witness_is_minimal_slice(self, loop) -> None:
        witness = GraphEvaluator(build_default_registry()).detect_cycles(loop)
        assert witness == ["U", "R", "U"]

    def test_deep_chain_does_not_recurse(self, registry, single_note) -> None:
        depth = 5000
        nodes = [PatternSourceNode(id="n0", pattern=single_note)]
        edges = []
        for i in range(1, depth):
            nodes.append(ModifierNode(id=f"n{i}", modifier_type="transpose", params={"semitones": 0}))
            edges.append(_edge(f"e{i}", f"n{i - 1}", f"n{i}"))
        graph = PatternGraph.from_parts(nodes, edges)

        assert detect_cycles(graph) is None
        result = GraphEvaluator(registry).evaluate(graph, f"n{depth - 1}")
        assert result == Pattern(notes=single_note.notes, duration=Fraction(1, 4))

    def test_evaluating_cycle_terminates(self, registry, loop, caplog) -> None:
        evaluator = GraphEvaluator(registry)
        with caplog.at_level(logging.ERROR, logger="patternflow.engine.evaluator"):
            result = evaluator.evaluate(loop, "U")
        # R closes the loop and fails, leaving U a single positional input
        assert "Cycle reached while evaluating node 'R'" in caplog.text
        assert result is None
        assert evaluator.is_cached("U")
        assert evaluator.is_cached("R")
        assert evaluator.cached_result("R") is None
