"""Tests for canonical Library resolution and its error policy."""

import pytest

from cohorting.evaluation.library_resolver import LibraryResolver, tail_id
from cohorting.exceptions import LibraryNotFoundError
from cohorting.models.enums import LibraryResolutionPolicy
from cohorting.storage.repository import InMemoryRepository
from tests.helpers import leaf, library


class FailingSearchRepository(InMemoryRepository):
    """Repository whose canonical search raises."""

    def __init__(self):
        super().__init__()
        self.searches = 0

    def search_by_canonical(self, resource_type, canonical):
        self.searches += 1
        raise RuntimeError("search backend unavailable")


class CountingRepository(InMemoryRepository):

    def __init__(self, resources=None):
        super().__init__(resources)
        self.searches = 0

    def search_by_canonical(self, resource_type, canonical):
        self.searches += 1
        return super().search_by_canonical(resource_type, canonical)

class FlakySearchRepository(InMemoryRepository):
    """Repository whose first canonical search raises."""

    def __init__(self, resources=None):
        super().__init__(resources)
        self.searches = 0

    def search_by_canonical(self, resource_type, canonical):
        self.searches += 1
        if self.searches == 1:
            raise ConnectionError("search backend unavailable")
        return super().search_by_canonical(resource_type, canonical)


class TestTailId:

    @pytest.mark.parametrize(
        "canonical, expected",
        [
            ("http://x/Library/Foo|2.0", "Foo"),
            ("http://x/Library/Foo", "Foo"),
            ("Foo", "Foo"),
            ("http://x/Library/", None),
            (None, None),
        ],
    )
    def test_tail_id(self, canonical, expected):
        assert tail_id(canonical) == expected


class TestResolve:

    def test_versioned_canonical_with_empty_search_falls_back_to_tail(self, repository):
        resolver = LibraryResolver(repository)
        assert resolver.resolve_canonical("http://x/Library/Foo|2.0", "CallerFallback") == "Foo"

    def test_found_library_id_wins(self, repository):
        repository.add(library("lib-42", "http://x/Library/Foo|2.0"))
        resolver = LibraryResolver(repository)
        assert resolver.resolve_canonical("http://x/Library/Foo|2.0", "CallerFallback") == "lib-42"

    def test_version_mismatch_is_not_a_match(self, repository):
        repository.add(library("lib-42", "http://x/Library/Foo|1.0"))
        resolver = LibraryResolver(repository)
        assert resolver.resolve_canonical("http://x/Library/Foo|2.0", None) == "Foo"

    def test_no_marker_returns_fallback_unchanged(self, repository):
        resolver = LibraryResolver(repository)
        assert resolver.resolve(leaf("A"), "CallerFallback") == "CallerFallback"
        assert resolver.resolve(leaf("A"), None) is None

    def test_marker_on_node(self, repository):
        resolver = LibraryResolver(repository)
        assert resolver.resolve(leaf("A", library="http://x/Library/Bar"), "CallerFallback") == "Bar"

    def test_empty_tail_returns_fallback(self, repository):
        resolver = LibraryResolver(repository)
        assert resolver.resolve_canonical("http://x/Library/", "CallerFallback") == "CallerFallback"


class TestErrorPolicy:

    def test_lenient_search_error_falls_back_to_tail(self):
        resolver = LibraryResolver(FailingSearchRepository(), policy=LibraryResolutionPolicy.LENIENT)
        assert resolver.resolve_canonical("http://x/Library/Foo|2.0", "CallerFallback") == "Foo"

    def test_strict_search_error_raises(self):
        resolver = LibraryResolver(FailingSearchRepository(), policy=LibraryResolutionPolicy.STRICT)
        with pytest.raises(LibraryNotFoundError) as exc_info:
            resolver.resolve_canonical("http://x/Library/Foo|2.0", "CallerFallback")
        assert "http://x/Library/Foo|2.0" in str(exc_info.value)

    def test_strict_empty_result_still_falls_back_to_tail(self, repository):
        resolver = LibraryResolver(repository, policy=LibraryResolutionPolicy.STRICT)
        assert resolver.resolve_canonical("http://x/Library/Foo|2.0", None) == "Foo"


class TestMemoization:

    def test_cached_per_resolver(self):
        repository = CountingRepository([library("lib-42", "http://x/Library/Foo")])
        resolver = LibraryResolver(repository, use_cache=True)

        for _ in range(3):
            assert resolver.resolve_canonical("http://x/Library/Foo", None) == "lib-42"
        assert repository.searches == 1

    def test_cache_disabled(self):
        repository = CountingRepository([library("lib-42", "http://x/Library/Foo")])
        resolver = LibraryResolver(repository, use_cache=False)

        for _ in range(3):
            resolver.resolve_canonical("http://x/Library/Foo", None)
        assert repository.searches == 3

    def test_tolerated_search_error_is_not_cached(self):
        repository = FlakySearchRepository([library("lib-42", "http://x/Library/Foo")])
        resolver = LibraryResolver(repository, policy=LibraryResolutionPolicy.LENIENT, use_cache=True)

        assert resolver.resolve_canonical("http://x/Library/Foo", None) == "Foo"
        assert resolver.resolve_canonical("http://x/Library/Foo", None) == "lib-42"
        assert resolver.resolve_canonical("http://x/Library/Foo", None) == "lib-42"
        assert repository.searches == 2

    def test_empty_search_result_is_cached(self):
        repository = CountingRepository()
        resolver = LibraryResolver(repository, use_cache=True)

        for _ in range(2):
            assert resolver.resolve_canonical("http://x/Library/Foo", None) == "Foo"
        assert repository.searches == 1

    def test_clear(self):
        repository = CountingRepository([library("lib-42", "http://x/Library/Foo")])
        resolver = LibraryResolver(repository, use_cache=True)

        resolver.resolve_canonical("http://x/Library/Foo", None)
        resolver.clear()
        resolver.resolve_canonical("http://x/Library/Foo", None)
        assert repository.searches == 2
