"""
Graph Evaluator - memoized evaluation of a pattern graph.

Evaluating a node walks its incoming edges, evaluates upstream nodes
first (bottom-up from the pattern sources), assembles the modifier's
inputs and calls its transform. Results are cached per node id, failures
included, so nothing is recomputed until it is invalidated or goes stale.

Each cache entry remembers what it was computed from: the node value,
its incoming edges and the serial numbers of the upstream entries it
read. A lookup only hits when all of those still match the snapshot, so
a missed invalidation cannot leak a stale pattern.

Evaluation and cycle detection use explicit stacks; neither recurses.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from patternflow.constants import ErrorMessages
from patternflow.models.graph import GraphEdge, GraphNode, PatternGraph, PatternSourceNode
from patternflow.models.pattern import Pattern
from patternflow.modifiers.models import ModifierDefinition, ModifierInputs
from patternflow.modifiers.registry import ModifierRegistry

logger = logging.getLogger(__name__)

# (source node id, serial of the cache entry read, or None if nothing was read)
InputStamp = tuple[str, "int | None"]


@dataclass(frozen=True)
class CacheEntry:
    """A cached evaluation result and the state it was computed from."""

    node: GraphNode
    edges: tuple[GraphEdge, ...]
    inputs: tuple[InputStamp, ...]
    result: Pattern | None
    serial: int


def detect_cycles(graph: PatternGraph) -> list[str] | None:
    """
    Find a cycle in the graph.

    Depth-first search over outgoing edges with an explicit stack. When an
    edge leads back to a node on the current path, returns that part of
    the path closed back on itself, e.g. ['a', 'b', 'a'].

    Returns:
        The cycle witness, or None for an acyclic graph
    """
    visited: set[str] = set()

    for start in graph.nodes:
        if start in visited:
            continue

        visited.add(start)
        path = [start]
        on_path = {start}
        stack: list[Iterator[GraphEdge]] = [iter(graph.outgoing_edges(start))]

        while stack:
            edge = next(stack[-1], None)
            if edge is None:
                stack.pop()
                on_path.discard(path.pop())
                continue

            target = edge.target
            if target in on_path:
                return path[path.index(target) :] + [target]
            if target not in visited:
                visited.add(target)
                path.append(target)
                on_path.add(target)
                stack.append(iter(graph.outgoing_edges(target)))

    return None


class GraphEvaluator:
    """
    Evaluates graph nodes to patterns with caching.

    The registry is injected and only read. The cache is guarded by a
    re-entrant lock; callers that mutate the graph should hold locked()
    across invalidate_node() and the commit of the new snapshot.
    """

    def __init__(self, registry: ModifierRegistry):
        """
        Initialize the evaluator.

        Args:
            registry: Modifier catalogue used to resolve modifier nodes
        """
        self.registry = registry
        self._cache: dict[str, CacheEntry] = {}
        self._serials = itertools.count(1)
        self._lock = threading.RLock()

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the cache lock (re-entrant)."""
        with self._lock:
            yield

    def evaluate(self, graph: PatternGraph, node_id: str) -> Pattern | None:
        """
        Evaluate a node.

        Returns None for unknown nodes and for nodes that cannot be
        evaluated (unknown modifier, missing inputs, failing transform,
        cycle). Never raises for graph content.

        Args:
            graph: Graph snapshot
            node_id: Node to evaluate

        Returns:
            The node's pattern, or None
        """
        if node_id not in graph.nodes:
            return None

        with self._lock:
            self._resolve(graph, node_id)
            return self._cache[node_id].result

    def get_all_patterns(self, graph: PatternGraph) -> dict[str, Pattern]:
        """Evaluate every node; returns non-empty results keyed by node id."""
        patterns: dict[str, Pattern] = {}
        for node_id in graph.nodes:
            pattern = self.evaluate(graph, node_id)
            if pattern is not None and pattern.notes:
                patterns[node_id] = pattern
        return patterns

    def get_leaf_patterns(self, graph: PatternGraph) -> dict[str, Pattern]:
        """Evaluate nodes without outgoing edges; returns non-empty results."""
        patterns: dict[str, Pattern] = {}
        for node in graph.sinks():
            pattern = self.evaluate(graph, node.id)
            if pattern is not None and pattern.notes:
                patterns[node.id] = pattern
        return patterns

    def invalidate_node(self, graph: PatternGraph, node_id: str) -> set[str]:
        """
        Evict a node and everything downstream of it.

        Must be called with the snapshot as it was before the mutation,
        and before the new snapshot is committed.

        Returns:
            Ids of all nodes considered (the node plus its downstream)
        """
        with self._lock:
            evicted = {node_id} | self._downstream_nodes(graph, node_id)
            for evict_id in evicted:
                self._cache.pop(evict_id, None)

        logger.debug(f"Invalidated {len(evicted)} node(s) from '{node_id}'")
        return evicted

    def clear_cache(self) -> None:
        """Drop every cached result."""
        with self._lock:
            self._cache.clear()

    def is_cached(self, node_id: str) -> bool:
        """Whether a result (possibly None) is cached for node_id."""
        return node_id in self._cache

    def cached_result(self, node_id: str) -> Pattern | None:
        """The cached result for node_id, or None when absent or failed."""
        entry = self._cache.get(node_id)
        return entry.result if entry else None

    def detect_cycles(self, graph: PatternGraph) -> list[str] | None:
        """Find a cycle in the graph (see module-level detect_cycles)."""
        return detect_cycles(graph)

    def _downstream_nodes(self, graph: PatternGraph, node_id: str) -> set[str]:
        """All nodes reachable from node_id by following edges forward (BFS)."""
        downstream: set[str] = set()
        visited: set[str] = set()
        queue = deque([node_id])

        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)

            for edge in graph.outgoing_edges(current):
                if edge.target not in visited:
                    downstream.add(edge.target)
                    queue.append(edge.target)

        return downstream

    def _resolve(self, graph: PatternGraph, root_id: str) -> None:
        """Bring the cache entry for root_id and its upstream up to date."""
        fresh: dict[str, bool] = {}
        expanded: set[str] = set()
        cyclic: set[str] = set()
        stack = [root_id]

        while stack:
            node_id = stack[-1]

            if self._is_fresh(graph, node_id, fresh):
                stack.pop()
                continue

            if node_id in expanded:
                stack.pop()
                self._store(graph, node_id, node_id in cyclic, fresh)
                fresh[node_id] = True
                continue

            expanded.add(node_id)
            for source_id in reversed(self._upstream_ids(graph, node_id)):
                if self._is_fresh(graph, source_id, fresh):
                    continue
                if source_id in expanded:
                    cyclic.add(node_id)
                    continue
                stack.append(source_id)

    def _is_fresh(self, graph: PatternGraph, node_id: str, fresh: dict[str, bool]) -> bool:
        """
        Check that node_id's cache entry still matches the snapshot.

        An entry is fresh when its node and incoming edges are unchanged
        and every upstream entry it read is itself fresh with the same
        serial. Results are memoized in fresh for the current pass.
        """
        stack = [node_id]

        while stack:
            current = stack[-1]
            if current in fresh:
                stack.pop()
                continue

            entry = self._cache.get(current)
            if entry is None or not self._matches(graph, current, entry):
                fresh[current] = False
                stack.pop()
                continue

            pending = []
            valid = True
            for source_id, serial in entry.inputs:
                if serial is None:
                    if source_id in graph.nodes:
                        valid = False
                        break
                    continue
                source_entry = self._cache.get(source_id)
                if source_entry is None or source_entry.serial != serial:
                    valid = False
                    break
                if source_id not in fresh:
                    pending.append(source_id)

            if not valid:
                fresh[current] = False
                stack.pop()
            elif pending:
                # Recorded serials are older than the entry, so this terminates
                stack.extend(pending)
            else:
                fresh[current] = all(
                    fresh[source_id] for source_id, serial in entry.inputs if serial is not None
                )
                stack.pop()

        return fresh[node_id]

    def _matches(self, graph: PatternGraph, node_id: str, entry: CacheEntry) -> bool:
        node = graph.nodes.get(node_id)
        if node is None:
            return False
        if entry.node is not node and entry.node != node:
            return False
        return entry.edges == graph.incoming_edges(node_id)

    def _upstream_ids(self, graph: PatternGraph, node_id: str) -> list[str]:
        """Ids of the nodes feeding node_id's declared inputs."""
        node = graph.nodes[node_id]
        if isinstance(node, PatternSourceNode):
            return []

        definition = self.registry.get(node.modifier_type)
        if definition is None:
            return []

        sources = []
        for keyword in definition.keyword_inputs:
            edge = graph.edge_at(node_id, keyword.key)
            if edge is not None and edge.source in graph.nodes:
                sources.append(edge.source)
        if definition.positional_input is not None:
            for edge in graph.positional_edges(node_id):
                if edge.source in graph.nodes:
                    sources.append(edge.source)
        return sources

    def _store(
        self, graph: PatternGraph, node_id: str, cyclic: bool, fresh: dict[str, bool]
    ) -> None:
        """Compute node_id from its (already resolved) inputs and cache it."""
        node = graph.nodes[node_id]
        used: list[InputStamp] = []
        result = self._compute(graph, node, cyclic, fresh, used)

        self._cache[node_id] = CacheEntry(
            node=node,
            edges=graph.incoming_edges(node_id),
            inputs=tuple(used),
            result=result,
            serial=next(self._serials),
        )

    def _compute(
        self,
        graph: PatternGraph,
        node: GraphNode,
        cyclic: bool,
        fresh: dict[str, bool],
        used: list[InputStamp],
    ) -> Pattern | None:
        if isinstance(node, PatternSourceNode):
            return node.pattern

        definition = self.registry.get(node.modifier_type)
        if definition is None:
            logger.error(ErrorMessages.UNKNOWN_MODIFIER.format(modifier_type=node.modifier_type))
            return None

        if cyclic:
            # A None stamp keeps this entry from being reused while the source exists
            for source_id in self._upstream_ids(graph, node.id):
                entry = self._cache.get(source_id)
                serial = entry.serial if entry is not None and fresh.get(source_id) else None
                used.append((source_id, serial))
            logger.error(ErrorMessages.CYCLE.format(node_id=node.id))
            return None

        inputs = self._gather_inputs(graph, node.id, definition, fresh, used)
        if not self._inputs_satisfied(node.id, definition, inputs):
            return None

        try:
            params = self.registry.coerce_params(definition, node.params)
            return definition.transform(inputs, params)
        except Exception:
            logger.exception(
                ErrorMessages.TRANSFORM_FAILED.format(
                    modifier_type=node.modifier_type, node_id=node.id
                )
            )
            return None

    def _gather_inputs(
        self,
        graph: PatternGraph,
        node_id: str,
        definition: ModifierDefinition,
        fresh: dict[str, bool],
        used: list[InputStamp],
    ) -> ModifierInputs:
        """
        Assemble keyword and positional inputs from upstream results.

        Keyword inputs bind the first edge on their key. Positional inputs
        follow pos-N order; failed (None) upstreams are dropped from the
        list, so later inputs move up a slot.
        """

        def upstream(source_id: str) -> Pattern | None:
            entry = self._cache.get(source_id)
            if entry is None or not fresh.get(source_id):
                used.append((source_id, None))
                return None
            used.append((source_id, entry.serial))
            return entry.result

        inputs = ModifierInputs()

        for keyword in definition.keyword_inputs:
            edge = graph.edge_at(node_id, keyword.key)
            if edge is None:
                continue
            pattern = upstream(edge.source)
            if pattern is not None:
                inputs.keyword[keyword.key] = pattern

        if definition.positional_input is not None:
            for edge in graph.positional_edges(node_id):
                pattern = upstream(edge.source)
                if pattern is not None:
                    inputs.positional.append(pattern)

        return inputs

    def _inputs_satisfied(
        self, node_id: str, definition: ModifierDefinition, inputs: ModifierInputs
    ) -> bool:
        """Check required keyword inputs and the positional minimum."""
        for keyword in definition.keyword_inputs:
            if keyword.required and keyword.key not in inputs.keyword:
                logger.debug(ErrorMessages.MISSING_INPUT.format(node_id=node_id, key=keyword.key))
                return False

        positional = definition.positional_input
        if positional is not None and len(inputs.positional) < positional.min_count:
            logger.debug(
                ErrorMessages.TOO_FEW_INPUTS.format(
                    node_id=node_id, count=len(inputs.positional), min_count=positional.min_count
                )
            )
            return False

        return True
