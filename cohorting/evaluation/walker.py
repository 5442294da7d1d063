"""Shared traversal machinery for criteria tree visitors.

Handles the two concerns every walk has in common: lexical library scoping
(a node's own marker wins, otherwise the resolved ancestor id is inherited,
including across reference edges) and following references with a cycle
guard and depth bound.
"""

from dataclasses import dataclass, replace
from typing import Optional, Tuple

from cohorting.exceptions import ReferenceCycleError
from cohorting.models.criteria import CriteriaTree, CriteriaVisitor, LeafReference
from cohorting.models.parameters import Parameters
from cohorting.evaluation.library_resolver import LibraryResolver
from cohorting.evaluation.tree_resolver import TreeResolver
from cohorting.config.settings import get_settings


@dataclass(frozen=True)
class WalkContext:
    """Per-subject, per-frame evaluation context."""
    subject_id: Optional[str]
    base_params: Parameters
    library_id: Optional[str]
    trail: Tuple[str, ...] = ()  # ids of the trees currently being visited

    def with_library(self, library_id: Optional[str]) -> "WalkContext":
        if library_id == self.library_id:
            return self
        return replace(self, library_id=library_id)


class TreeWalker(CriteriaVisitor):
    """Base visitor with library scoping and reference following."""

    def __init__(
        self,
        library_resolver: LibraryResolver,
        tree_resolver: TreeResolver,
        max_reference_depth: Optional[int] = None,
    ):
        self.library_resolver = library_resolver
        self.tree_resolver = tree_resolver
        self.max_reference_depth = (
            get_settings().max_reference_depth if max_reference_depth is None else max_reference_depth
        )

    def scoped(self, marker_holder, context: WalkContext) -> WalkContext:
        """Context whose library id accounts for the holder's own marker."""
        return context.with_library(self.library_resolver.resolve(marker_holder, context.library_id))

    def enter_reference(self, node: LeafReference, context: WalkContext) -> Tuple[CriteriaTree, WalkContext]:
        """Resolve a reference and build the context for walking its target."""
        tree = self.tree_resolver.resolve(node.target)
        if tree.tree_id in context.trail:
            chain = " -> ".join(context.trail + (tree.tree_id,))
            raise ReferenceCycleError(f"Circular EvidenceVariable reference: {chain}")
        if len(context.trail) > self.max_reference_depth:
            raise ReferenceCycleError(
                f"EvidenceVariable references nested deeper than {self.max_reference_depth} at '{node.target}'"
            )
        return tree, replace(context, trail=context.trail + (tree.tree_id,))
