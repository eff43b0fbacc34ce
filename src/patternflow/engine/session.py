"""
Graph Session - owns the current graph snapshot and applies edits.

Every edit follows the same order: take the evaluator lock, invalidate the
affected node on the snapshot as it is *before* the edit, then commit the
new snapshot. Readers never see a cached pattern computed against a graph
state that no longer exists.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import replace
from typing import Any

from patternflow.constants import MODIFIER_PARAM_KEY, POSITIONAL_PORT_PREFIX, ErrorMessages
from patternflow.engine.evaluator import GraphEvaluator
from patternflow.engine.validator import GraphValidator, ValidationResult
from patternflow.models.graph import (
    GraphEdge,
    GraphNode,
    ModifierNode,
    PatternGraph,
    PatternSourceNode,
    positional_index,
    positional_port,
)
from patternflow.models.pattern import Pattern
from patternflow.modifiers.registry import ModifierRegistry

logger = logging.getLogger(__name__)

# Node fields that do not affect evaluation
_COSMETIC_FIELDS = frozenset({"name"})


class GraphSession:
    """
    Editing front end for a pattern graph.

    Holds the current snapshot and an evaluator. All mutations invalidate
    before they commit; all reads go through the shared cache.
    """

    def __init__(
        self,
        registry: ModifierRegistry,
        graph: PatternGraph | None = None,
        evaluator: GraphEvaluator | None = None,
    ):
        """
        Initialize the session.

        Args:
            registry: Modifier catalogue
            graph: Initial snapshot (default: empty graph)
            evaluator: Evaluator to share (default: a new one on registry)
        """
        self.registry = registry
        self.evaluator = evaluator or GraphEvaluator(registry)
        self._graph = graph or PatternGraph()
        self._edge_ids = itertools.count(1)

    @property
    def graph(self) -> PatternGraph:
        """The current snapshot."""
        return self._graph

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def add_node(self, node: GraphNode) -> GraphNode:
        """
        Add a node.

        Raises:
            ValueError: If a node with the same id exists
        """
        with self.evaluator.locked():
            if node.id in self._graph.nodes:
                raise ValueError(ErrorMessages.DUPLICATE_NODE.format(node_id=node.id))
            # Drop any entry left over from an earlier node with this id
            self.evaluator.invalidate_node(self._graph, node.id)
            self._graph = self._graph.with_node(node)
        return node

    def add_pattern(self, node_id: str, pattern: Pattern, name: str = "") -> PatternSourceNode:
        """Add a pattern source node."""
        node = PatternSourceNode(id=node_id, pattern=pattern, name=name or pattern.name or "")
        self.add_node(node)
        return node

    def add_modifier(
        self, node_id: str, modifier_type: str, name: str = "", **params: Any
    ) -> ModifierNode:
        """
        Add a modifier node with default parameters.

        Keyword arguments override individual defaults.

        Raises:
            KeyError: If the modifier is not registered
        """
        definition = self.registry.get(modifier_type)
        if definition is None:
            raise KeyError(ErrorMessages.UNKNOWN_MODIFIER.format(modifier_type=modifier_type))

        node = ModifierNode(
            id=node_id,
            modifier_type=modifier_type,
            params={**self.registry.default_params(definition), **params},
            positional_input_count=definition.min_positional_count,
            name=name or definition.display_name,
        )
        self.add_node(node)
        return node

    def update_node(self, node_id: str, **changes: Any) -> GraphNode:
        """
        Replace fields of a node.

        Changing modifier_type resets params to the new modifier's
        defaults unless params are given too. Name-only changes do not
        invalidate anything.

        Raises:
            KeyError: If the node does not exist
        """
        with self.evaluator.locked():
            node = self._require_node(node_id)

            if isinstance(node, ModifierNode) and "modifier_type" in changes:
                if "params" not in changes:
                    new_type = changes["modifier_type"]
                    definition = self.registry.get(new_type)
                    changes["params"] = (
                        self.registry.default_params(definition)
                        if definition
                        else {MODIFIER_PARAM_KEY: new_type}
                    )

            updated = replace(node, **changes)
            if set(changes) - _COSMETIC_FIELDS:
                self.evaluator.invalidate_node(self._graph, node_id)
            self._graph = self._graph.with_node(updated)
        return updated

    def set_pattern(self, node_id: str, pattern: Pattern) -> GraphNode:
        """Replace the pattern of a pattern source node."""
        return self.update_node(node_id, pattern=pattern)

    def set_params(self, node_id: str, **params: Any) -> GraphNode:
        """Update individual parameters of a modifier node."""
        node = self._require_node(node_id)
        if not isinstance(node, ModifierNode):
            raise ValueError(f"Node '{node_id}' is not a modifier")
        return self.update_node(node_id, params={**node.params, **params})

    def remove_node(self, node_id: str) -> None:
        """
        Remove a node and every edge touching it.

        Raises:
            KeyError: If the node does not exist
        """
        with self.evaluator.locked():
            self._require_node(node_id)
            targets = {
                e.target
                for e in self._graph.outgoing_edges(node_id)
                if e.target != node_id and e.positional_index is not None
            }

            self.evaluator.invalidate_node(self._graph, node_id)
            graph = self._graph.without_node(node_id)
            for target in targets:
                graph = self._renumber_positional(graph, target)
            self._graph = graph

    def set_positional_input_count(self, node_id: str, count: int) -> GraphNode:
        """
        Set the number of positional slots on a modifier node.

        The count never drops below the declared minimum or the number of
        connected positional edges.
        """
        node = self._require_node(node_id)
        if not isinstance(node, ModifierNode):
            raise ValueError(f"Node '{node_id}' is not a modifier")

        connected = len(self._graph.positional_edges(node_id))
        definition = self.registry.get(node.modifier_type)
        minimum = definition.min_positional_count if definition else 0
        return self.update_node(node_id, positional_input_count=max(count, connected, minimum))

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def connect(
        self,
        source: str,
        target: str,
        target_port: str = "pattern",
        edge_id: str | None = None,
    ) -> GraphEdge:
        """
        Connect source's output to one of target's input ports.

        An edge already on the same port is replaced. Connecting a
        positional port grows the target's slot count to fit.

        Raises:
            KeyError: If either node does not exist
            ValueError: If the port is not an input of the target
        """
        with self.evaluator.locked():
            self._require_node(source)
            target_node = self._require_node(target)
            self._check_port(target_node, target_port)

            edge = GraphEdge(
                id=edge_id or self._next_edge_id(),
                source=source,
                target=target,
                target_port=target_port,
            )
            if self._graph.get_edge(edge.id) is not None:
                raise ValueError(f"Edge '{edge.id}' already exists")

            self.evaluator.invalidate_node(self._graph, target)

            edges = [
                e
                for e in self._graph.edges
                if not (e.target == target and e.target_port == target_port)
            ]
            graph = self._graph.with_edges([*edges, edge])

            index = positional_index(target_port)
            if isinstance(target_node, ModifierNode) and index is not None:
                if target_node.positional_input_count < index + 1:
                    graph = graph.with_node(
                        replace(target_node, positional_input_count=index + 1)
                    )
            self._graph = graph

        logger.debug(f"Connected {source} -> {target}:{target_port}")
        return edge

    def disconnect(self, edge_id: str) -> None:
        """
        Remove an edge.

        Positional edges left on the target are renumbered densely from
        pos-0, and its slot count shrinks to max(connected, minimum).

        Raises:
            KeyError: If the edge does not exist
        """
        with self.evaluator.locked():
            edge = self._graph.get_edge(edge_id)
            if edge is None:
                raise KeyError(ErrorMessages.UNKNOWN_EDGE.format(edge_id=edge_id))

            self.evaluator.invalidate_node(self._graph, edge.target)
            graph = self._graph.without_edge(edge_id)
            if edge.positional_index is not None:
                graph = self._renumber_positional(graph, edge.target)
            self._graph = graph

    def replace_graph(self, graph: PatternGraph) -> None:
        """Swap in a whole new snapshot (e.g. after loading) and reset the cache."""
        with self.evaluator.locked():
            self.evaluator.clear_cache()
            self._graph = graph

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def evaluate(self, node_id: str) -> Pattern | None:
        """Evaluate a node of the current snapshot."""
        return self.evaluator.evaluate(self._graph, node_id)

    def all_patterns(self) -> dict[str, Pattern]:
        """Non-empty patterns of every node."""
        return self.evaluator.get_all_patterns(self._graph)

    def leaf_patterns(self) -> dict[str, Pattern]:
        """Non-empty patterns of the graph's sinks."""
        return self.evaluator.get_leaf_patterns(self._graph)

    def detect_cycles(self) -> list[str] | None:
        """Cycle witness for the current snapshot, if any."""
        return self.evaluator.detect_cycles(self._graph)

    def validate(self) -> ValidationResult:
        """Validate the current snapshot."""
        return GraphValidator(self.registry).validate(self._graph)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_node(self, node_id: str) -> GraphNode:
        node = self._graph.get_node(node_id)
        if node is None:
            raise KeyError(ErrorMessages.UNKNOWN_NODE.format(node_id=node_id))
        return node

    def _check_port(self, node: GraphNode, port: str) -> None:
        if isinstance(node, PatternSourceNode):
            raise ValueError(ErrorMessages.INVALID_PORT.format(port=port, node_id=node.id))

        definition = self.registry.get(node.modifier_type)
        if definition is None or not definition.accepts_port(port):
            raise ValueError(ErrorMessages.INVALID_PORT.format(port=port, node_id=node.id))
        if port.startswith(POSITIONAL_PORT_PREFIX) and positional_index(port) is None:
            raise ValueError(ErrorMessages.INVALID_PORT.format(port=port, node_id=node.id))

    def _next_edge_id(self) -> str:
        while True:
            edge_id = f"e{next(self._edge_ids)}"
            if self._graph.get_edge(edge_id) is None:
                return edge_id

    def _renumber_positional(self, graph: PatternGraph, node_id: str) -> PatternGraph:
        """Renumber node_id's positional edges to pos-0..pos-(n-1) and fix its count."""
        ordered = graph.positional_edges(node_id)
        renamed = {edge.id: positional_port(i) for i, edge in enumerate(ordered)}
        edges = [
            replace(e, target_port=renamed[e.id]) if e.id in renamed else e for e in graph.edges
        ]
        graph = graph.with_edges(edges)

        node = graph.get_node(node_id)
        if isinstance(node, ModifierNode) and node.positional_input_count:
            definition = self.registry.get(node.modifier_type)
            minimum = definition.min_positional_count if definition else 0
            graph = graph.with_node(
                replace(node, positional_input_count=max(len(ordered), minimum))
            )
        return graph
