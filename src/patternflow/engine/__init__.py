"""
Graph engine - evaluation, editing and validation of pattern graphs.

- GraphEvaluator: Memoized, iterative evaluation with invalidation
- GraphSession: Snapshot owner that invalidates before committing edits
- GraphValidator: Structural checks with coded issues
"""

from patternflow.engine.evaluator import CacheEntry, GraphEvaluator, detect_cycles
from patternflow.engine.session import GraphSession
from patternflow.engine.validator import (
    GraphValidator,
    ValidationIssue,
    ValidationResult,
    ValidationSeverity,
    validate_graph,
)

__all__ = [
    "CacheEntry",
    "GraphEvaluator",
    "GraphSession",
    "GraphValidator",
    "ValidationIssue",
    "ValidationResult",
    "ValidationSeverity",
    "detect_cycles",
    "validate_graph",
]
