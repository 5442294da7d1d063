"""Library Resolver — canonical Library URL to the id used in $evaluate calls.

Resolution order:
1. search the repository for the Library by canonical URL, use the first hit's id
2. no hit (or a tolerated search error): last path segment of the canonical,
   with any '|version' suffix removed
3. no canonical declared: the caller's fallback id, unchanged

Whether a search *error* falls through to step 2 (LENIENT) or raises
LibraryNotFoundError (STRICT) is one policy for every call path.
"""

import threading
from typing import Any, Dict, Optional

from cohorting.exceptions import LibraryNotFoundError
from cohorting.models.enums import LibraryResolutionPolicy
from cohorting.storage.repository import ResourceRepository
from cohorting.config.logging_config import get_logger
from cohorting.config.settings import get_settings

logger = get_logger(__name__)


class _SearchFailed(Exception):
    """Canonical search raised and the policy tolerates it."""


def tail_id(canonical: Optional[str]) -> Optional[str]:
    """Terminal id of a canonical URL, ignoring any version suffix."""
    if canonical is None:
        return None
    unversioned = canonical.split("|")[0]
    slash = unversioned.rfind("/")
    tail = unversioned[slash + 1:] if slash >= 0 else unversioned
    return tail or None


class LibraryResolver:
    """Resolves library markers for criteria nodes and trees."""

    def __init__(
        self,
        repository: ResourceRepository,
        policy: Optional[LibraryResolutionPolicy] = None,
        use_cache: Optional[bool] = None,
    ):
        settings = get_settings()
        self.repository = repository
        self.policy = policy or settings.library_resolution_policy
        self.use_cache = settings.cache_library_resolution if use_cache is None else use_cache
        self._cache: Dict[str, str] = {}
        self._lock = threading.Lock()

    def resolve(self, marker_holder: Any, fallback_id: Optional[str]) -> Optional[str]:
        """Library id for a node or tree carrying an optional ``library`` marker."""
        return self.resolve_canonical(getattr(marker_holder, "library", None), fallback_id)

    def resolve_canonical(self, canonical: Optional[str], fallback_id: Optional[str]) -> Optional[str]:
        if canonical is None:
            return fallback_id

        if self.use_cache:
            with self._lock:
                cached = self._cache.get(canonical)
            if cached is not None:
                return cached

        try:
            library_id = self._search(canonical)
        except _SearchFailed:
            # a tolerated error is not an answer; the next call searches again
            return tail_id(canonical) or fallback_id
        if library_id is None:
            library_id = tail_id(canonical)
        if library_id is None:
            return fallback_id

        if self.use_cache:
            with self._lock:
                self._cache[canonical] = library_id
        return library_id

    def _search(self, canonical: str) -> Optional[str]:
        try:
            matches = self.repository.search_by_canonical("Library", canonical)
        except Exception as e:
            if self.policy == LibraryResolutionPolicy.STRICT:
                raise LibraryNotFoundError(f"Unable to find Library with url: {canonical}") from e
            logger.warning("Library search failed, using canonical tail", canonical=canonical, error=str(e))
            raise _SearchFailed() from e

        if matches and matches[0].get("id"):
            return matches[0]["id"]
        logger.debug("No Library matches canonical", canonical=canonical)
        return None

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
