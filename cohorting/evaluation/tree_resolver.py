"""Resolves LeafReference targets to criteria trees."""

import threading
from typing import Dict

from cohorting.exceptions import ResourceNotFoundError, UnresolvedReferenceError
from cohorting.models.criteria import CriteriaTree
from cohorting.evaluation.tree_builder import build_tree
from cohorting.storage.repository import ResourceRepository, split_reference
from cohorting.config.logging_config import get_logger

logger = get_logger(__name__)


def is_canonical(target: str) -> bool:
    return target.startswith("http://") or target.startswith("https://")


class TreeResolver:
    """Looks up EvidenceVariables by canonical URL or id; trees are cached per resolver."""

    def __init__(self, repository: ResourceRepository):
        self.repository = repository
        self._cache: Dict[str, CriteriaTree] = {}
        self._lock = threading.Lock()

    def resolve(self, target: str) -> CriteriaTree:
        with self._lock:
            cached = self._cache.get(target)
        if cached is not None:
            return cached

        if is_canonical(target):
            matches = self.repository.search_by_canonical("EvidenceVariable", target)
            if not matches:
                raise UnresolvedReferenceError(
                    f"EvidenceVariable resource with canonical '{target}' was not found"
                )
            resource = matches[0]
        else:
            _, resource_id = split_reference(target, "EvidenceVariable")
            try:
                resource = self.repository.read("EvidenceVariable", resource_id)
            except ResourceNotFoundError as e:
                raise UnresolvedReferenceError(
                    f"EvidenceVariable resource '{target}' was not found"
                ) from e

        tree = build_tree(resource)
        with self._lock:
            self._cache[target] = tree
        logger.debug("Reference resolved", target=target, tree=tree.tree_id)
        return tree

    def clear(self) -> None:
        """Forget every built tree so the next lookup reads the repository again."""
        with self._lock:
            self._cache.clear()
