"""
Graph Validator - validates graph structure before evaluation.

Validates:
- The graph is acyclic (with a witness path when it is not)
- Edges reference existing nodes and valid ports
- Each input port has at most one edge
- Modifier types are registered and their parameters fit the schema
- Required inputs are connected and positional minimums are met
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import Enum

from patternflow.engine.evaluator import detect_cycles
from patternflow.models.graph import ModifierNode, PatternGraph, PatternSourceNode
from patternflow.modifiers.models import ModifierDefinition
from patternflow.modifiers.registry import ModifierRegistry


class ValidationSeverity(str, Enum):
    """Severity level for validation issues."""

    ERROR = "error"  # Node (or graph) will not evaluate
    WARNING = "warning"  # Evaluates, but probably not as intended
    INFO = "info"  # Informational only


@dataclass
class ValidationIssue:
    """A single validation issue."""

    severity: ValidationSeverity
    code: str
    message: str
    location: str | None = None

    def __str__(self) -> str:
        prefix = f"[{self.severity.value.upper()}]"
        location = f" at {self.location}" if self.location else ""
        return f"{prefix} {self.code}: {self.message}{location}"


class ValidationResult:
    """Result of validating a graph."""

    def __init__(self) -> None:
        self.issues: list[ValidationIssue] = []
        self.cycle: list[str] | None = None

    def add_error(self, code: str, message: str, location: str | None = None) -> None:
        """Add an error issue."""
        self.issues.append(ValidationIssue(ValidationSeverity.ERROR, code, message, location))

    def add_warning(self, code: str, message: str, location: str | None = None) -> None:
        """Add a warning issue."""
        self.issues.append(ValidationIssue(ValidationSeverity.WARNING, code, message, location))

    def add_info(self, code: str, message: str, location: str | None = None) -> None:
        """Add an info issue."""
        self.issues.append(ValidationIssue(ValidationSeverity.INFO, code, message, location))

    @property
    def is_valid(self) -> bool:
        """Return True if no errors (warnings/info are OK)."""
        return not any(i.severity == ValidationSeverity.ERROR for i in self.issues)

    @property
    def errors(self) -> list[ValidationIssue]:
        """Get all error issues."""
        return [i for i in self.issues if i.severity == ValidationSeverity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        """Get all warning issues."""
        return [i for i in self.issues if i.severity == ValidationSeverity.WARNING]

    def codes(self) -> list[str]:
        """Issue codes in report order."""
        return [i.code for i in self.issues]

    def __bool__(self) -> bool:
        """Boolean conversion returns is_valid."""
        return self.is_valid

    def __str__(self) -> str:
        if not self.issues:
            return "Validation passed: no issues found"
        return "\n".join(str(issue) for issue in self.issues)


class GraphValidator:
    """Validates graph structure against the modifier registry."""

    def __init__(self, registry: ModifierRegistry):
        self.registry = registry

    def validate(self, graph: PatternGraph) -> ValidationResult:
        """
        Validate a graph snapshot.

        Args:
            graph: The graph to validate

        Returns:
            ValidationResult with any issues found
        """
        result = ValidationResult()

        if not graph.nodes:
            result.add_info("NO_NODES", "Graph has no nodes", "nodes")
            return result

        self._validate_cycles(graph, result)
        self._validate_edges(graph, result)
        self._validate_nodes(graph, result)

        return result

    def _validate_cycles(self, graph: PatternGraph, result: ValidationResult) -> None:
        cycle = detect_cycles(graph)
        if cycle:
            result.cycle = cycle
            result.add_error(
                "CYCLE_DETECTED",
                f"Graph contains a cycle: {' -> '.join(cycle)}",
                f"nodes/{cycle[0]}",
            )

    def _validate_edges(self, graph: PatternGraph, result: ValidationResult) -> None:
        """Check edge endpoints, ports and port uniqueness."""
        for edge in graph.edges:
            location = f"edges/{edge.id}"
            missing = [n for n in (edge.source, edge.target) if n not in graph.nodes]
            if missing:
                result.add_error(
                    "DANGLING_EDGE",
                    f"Edge '{edge.id}' references unknown node(s): {', '.join(missing)}",
                    location,
                )
                continue

            target = graph.nodes[edge.target]
            if isinstance(target, PatternSourceNode):
                result.add_error(
                    "INVALID_PORT",
                    f"Pattern source '{target.id}' has no input port '{edge.target_port}'",
                    location,
                )
                continue

            definition = self.registry.get(target.modifier_type)
            if definition is not None and not definition.accepts_port(edge.target_port):
                result.add_error(
                    "INVALID_PORT",
                    f"Modifier '{target.modifier_type}' has no input port '{edge.target_port}'",
                    location,
                )

        ports = Counter((e.target, e.target_port) for e in graph.edges)
        for (target, port), count in ports.items():
            if count > 1:
                result.add_warning(
                    "DUPLICATE_PORT",
                    f"{count} edges target port '{port}'; only the first is used",
                    f"nodes/{target}/{port}",
                )

    def _validate_nodes(self, graph: PatternGraph, result: ValidationResult) -> None:
        for node in graph.nodes.values():
            if isinstance(node, PatternSourceNode):
                if not node.pattern.notes:
                    result.add_info(
                        "EMPTY_PATTERN",
                        f"Pattern source '{node.id}' has no notes",
                        f"nodes/{node.id}",
                    )
                continue

            definition = self.registry.get(node.modifier_type)
            if definition is None:
                result.add_error(
                    "UNKNOWN_MODIFIER",
                    f"Unknown modifier: {node.modifier_type}",
                    f"nodes/{node.id}",
                )
                continue

            self._validate_inputs(graph, node, definition, result)
            self._validate_params(node, definition, result)

    def _validate_inputs(
        self,
        graph: PatternGraph,
        node: ModifierNode,
        definition: ModifierDefinition,
        result: ValidationResult,
    ) -> None:
        location = f"nodes/{node.id}"

        for keyword in definition.keyword_inputs:
            if keyword.required and graph.edge_at(node.id, keyword.key) is None:
                result.add_error(
                    "MISSING_REQUIRED_INPUT",
                    f"Input '{keyword.key}' of '{node.id}' is not connected",
                    location,
                )

        positional = definition.positional_input
        if positional is None:
            return

        connected = len(graph.positional_edges(node.id))
        if connected < positional.min_count:
            result.add_error(
                "TOO_FEW_POSITIONAL_INPUTS",
                f"'{node.id}' has {connected} positional inputs, needs {positional.min_count}",
                location,
            )
        if node.positional_input_count < max(connected, positional.min_count):
            result.add_warning(
                "POSITIONAL_COUNT_TOO_LOW",
                f"'{node.id}' declares {node.positional_input_count} positional slots "
                f"but needs {max(connected, positional.min_count)}",
                location,
            )

    def _validate_params(
        self, node: ModifierNode, definition: ModifierDefinition, result: ValidationResult
    ) -> None:
        for key, value in node.params.items():
            if key == "modifier":
                continue
            location = f"nodes/{node.id}/params/{key}"
            param = definition.parameters.get(key)
            if param is None:
                result.add_warning(
                    "UNKNOWN_PARAMETER",
                    f"Modifier '{definition.name}' has no parameter '{key}'",
                    location,
                )
                continue
            try:
                param.coerce(value)
            except ValueError as e:
                result.add_error("INVALID_PARAMETER", str(e), location)


def validate_graph(graph: PatternGraph, registry: ModifierRegistry) -> ValidationResult:
    """
    Convenience function to validate a graph.

    Args:
        graph: The graph to validate
        registry: Modifier catalogue

    Returns:
        ValidationResult with any issues found
    """
    return GraphValidator(registry).validate(graph)
