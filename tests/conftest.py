"""Shared fixtures."""

import pytest

from cohorting.evaluation.library_resolver import LibraryResolver
from cohorting.evaluation.tree_resolver import TreeResolver
from cohorting.models.enums import LibraryResolutionPolicy
from cohorting.privacy.pseudonymizer import Pseudonymizer
from cohorting.storage.repository import InMemoryRepository


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def pseudonymizer():
    return Pseudonymizer("test-secret")


@pytest.fixture
def library_resolver(repository):
    return LibraryResolver(repository, policy=LibraryResolutionPolicy.LENIENT, use_cache=True)


@pytest.fixture
def tree_resolver(repository):
    return TreeResolver(repository)
