"""
Graph model - immutable snapshots of the node/edge graph.

The editing side owns the graph and replaces snapshots on every change;
the evaluator only ever reads a snapshot. Update helpers return new
snapshots and never modify the receiver.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any, ClassVar, Union

from patternflow.constants import MODIFIER_PARAM_KEY, POSITIONAL_PORT_PREFIX, NodeKind
from patternflow.models.pattern import Pattern


def positional_port(index: int) -> str:
    """Name of the positional port at index (pos-0, pos-1, ...)."""
    if index < 0:
        raise ValueError(f"Positional index must be >= 0, got {index}")
    return f"{POSITIONAL_PORT_PREFIX}{index}"


def positional_index(port: str | None) -> int | None:
    """
    Parse a positional port name.

    Returns the slot index for 'pos-N', or None for keyword ports and
    malformed names.
    """
    if not port or not port.startswith(POSITIONAL_PORT_PREFIX):
        return None
    suffix = port[len(POSITIONAL_PORT_PREFIX) :]
    if not suffix.isdigit():
        return None
    return int(suffix)


def is_positional_port(port: str | None) -> bool:
    """Check whether a port name addresses a positional slot."""
    return positional_index(port) is not None


@dataclass(frozen=True)
class GraphEdge:
    """A connection from one node's output to another node's input port."""

    id: str
    source: str
    target: str
    target_port: str

    @property
    def positional_index(self) -> int | None:
        """Slot index when the port is positional, else None."""
        return positional_index(self.target_port)


@dataclass(frozen=True)
class PatternSourceNode:
    """A node holding a raw pattern."""

    kind: ClassVar[NodeKind] = NodeKind.PATTERN_SOURCE

    id: str
    pattern: Pattern
    name: str = field(default="", compare=False)


@dataclass(frozen=True)
class ModifierNode:
    """
    A node applying a registered modifier to its inputs.

    params always carries the 'modifier' key naming the modifier type,
    plus whatever parameters the modifier declares.
    """

    kind: ClassVar[NodeKind] = NodeKind.MODIFIER

    id: str
    modifier_type: str
    params: Mapping[str, Any] = field(default_factory=dict)
    positional_input_count: int = 0
    name: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        params = dict(self.params)
        params.setdefault(MODIFIER_PARAM_KEY, self.modifier_type)
        object.__setattr__(self, "params", params)
        if self.positional_input_count < 0:
            raise ValueError(
                f"Positional input count must be >= 0, got {self.positional_input_count}"
            )


GraphNode = Union[PatternSourceNode, ModifierNode]


@dataclass(frozen=True)
class PatternGraph:
    """
    An immutable graph snapshot.

    Nodes are keyed by id (insertion ordered); edges keep their order.
    Incoming and outgoing edge indexes are built once per snapshot.
    """

    nodes: Mapping[str, GraphNode] = field(default_factory=dict)
    edges: tuple[GraphEdge, ...] = ()
    _incoming: dict[str, tuple[GraphEdge, ...]] = field(
        init=False, repr=False, compare=False, hash=False
    )
    _outgoing: dict[str, tuple[GraphEdge, ...]] = field(
        init=False, repr=False, compare=False, hash=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", dict(self.nodes))
        object.__setattr__(self, "edges", tuple(self.edges))

        incoming: dict[str, list[GraphEdge]] = {}
        outgoing: dict[str, list[GraphEdge]] = {}
        for edge in self.edges:
            incoming.setdefault(edge.target, []).append(edge)
            outgoing.setdefault(edge.source, []).append(edge)

        object.__setattr__(self, "_incoming", {k: tuple(v) for k, v in incoming.items()})
        object.__setattr__(self, "_outgoing", {k: tuple(v) for k, v in outgoing.items()})

    @classmethod
    def from_parts(
        cls, nodes: Iterable[GraphNode] = (), edges: Iterable[GraphEdge] = ()
    ) -> PatternGraph:
        """Build a snapshot from a node list and an edge list."""
        return cls(nodes={node.id: node for node in nodes}, edges=tuple(edges))

    def get_node(self, node_id: str) -> GraphNode | None:
        """Get a node by id."""
        return self.nodes.get(node_id)

    def get_edge(self, edge_id: str) -> GraphEdge | None:
        """Get an edge by id."""
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None

    def incoming_edges(self, node_id: str) -> tuple[GraphEdge, ...]:
        """Edges whose target is node_id, in graph order."""
        return self._incoming.get(node_id, ())

    def outgoing_edges(self, node_id: str) -> tuple[GraphEdge, ...]:
        """Edges whose source is node_id, in graph order."""
        return self._outgoing.get(node_id, ())

    def edge_at(self, node_id: str, port: str) -> GraphEdge | None:
        """The first edge targeting (node_id, port)."""
        for edge in self.incoming_edges(node_id):
            if edge.target_port == port:
                return edge
        return None

    def positional_edges(self, node_id: str) -> list[GraphEdge]:
        """Positional edges into node_id, sorted by slot index."""
        edges = [e for e in self.incoming_edges(node_id) if e.positional_index is not None]
        return sorted(edges, key=lambda e: e.positional_index or 0)

    def sinks(self) -> list[GraphNode]:
        """Nodes with no outgoing edge (the graph's final outputs)."""
        return [node for node_id, node in self.nodes.items() if node_id not in self._outgoing]

    def with_node(self, node: GraphNode) -> PatternGraph:
        """Return a snapshot with node added or replaced."""
        nodes = dict(self.nodes)
        nodes[node.id] = node
        return PatternGraph(nodes=nodes, edges=self.edges)

    def without_node(self, node_id: str) -> PatternGraph:
        """Return a snapshot without node_id and without its edges."""
        nodes = {k: v for k, v in self.nodes.items() if k != node_id}
        edges = tuple(e for e in self.edges if node_id not in (e.source, e.target))
        return PatternGraph(nodes=nodes, edges=edges)

    def with_edge(self, edge: GraphEdge) -> PatternGraph:
        """Return a snapshot with edge appended."""
        return PatternGraph(nodes=self.nodes, edges=(*self.edges, edge))

    def without_edge(self, edge_id: str) -> PatternGraph:
        """Return a snapshot without edge_id."""
        return PatternGraph(nodes=self.nodes, edges=tuple(e for e in self.edges if e.id != edge_id))

    def with_edges(self, edges: Iterable[GraphEdge]) -> PatternGraph:
        """Return a snapshot with the edge list replaced."""
        return PatternGraph(nodes=self.nodes, edges=tuple(edges))

    def update_node(self, node_id: str, **changes: Any) -> PatternGraph:
        """Return a snapshot with fields of node_id replaced."""
        node = self.nodes.get(node_id)
        if node is None:
            raise KeyError(node_id)
        return self.with_node(replace(node, **changes))
