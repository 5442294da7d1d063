"""Resource storage collaborators."""
from .repository import InMemoryRepository, ResourceRepository, split_reference

__all__ = ["InMemoryRepository", "ResourceRepository", "split_reference"]
