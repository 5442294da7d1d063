"""Criteria tree interpretation: building, resolution, boolean and value walks."""
from .tree_builder import build_tree
from .tree_resolver import TreeResolver
from .library_resolver import LibraryResolver, tail_id
from .walker import TreeWalker, WalkContext
from .boolean_evaluator import BooleanEvaluator, read_boolean
from .value_collector import ValueCollector
from .batch import CancellableGateway, CancellationToken, SubjectBatch

__all__ = [
    "build_tree",
    "TreeResolver",
    "LibraryResolver",
    "tail_id",
    "TreeWalker",
    "WalkContext",
    "BooleanEvaluator",
    "read_boolean",
    "ValueCollector",
    "CancellableGateway",
    "CancellationToken",
    "SubjectBatch",
]
