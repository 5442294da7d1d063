"""Read, search and create access to FHIR-shaped resources.

The engine only needs read-by-id, search-by-canonical-URL and
search-by-identifier semantics. ``ResourceRepository`` is the protocol the
processors depend on; ``InMemoryRepository`` is a dict-backed implementation
for wiring, fixtures and tests.
"""

import copy
import json
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple
from uuid import uuid4

from cohorting.exceptions import ResourceNotFoundError
from cohorting.config.logging_config import get_logger

logger = get_logger(__name__)

Resource = Dict[str, Any]


def split_reference(reference: str, default_type: Optional[str] = None) -> Tuple[Optional[str], str]:
    """Split 'Type/id' (optionally with a /_history suffix) into (type, id)."""
    parts = [p for p in reference.split("/") if p]
    if "_history" in parts:
        parts = parts[:parts.index("_history")]
    if len(parts) >= 2:
        return parts[-2], parts[-1]
    return default_type, parts[-1] if parts else ""


class ResourceRepository(Protocol):
    """Collaborator interface used by the engine."""

    def read(self, resource_type: str, resource_id: str) -> Resource: ...

    def search_by_canonical(self, resource_type: str, canonical: str) -> List[Resource]: ...

    def search_by_identifier(self, resource_type: str, system: Optional[str], value: str) -> List[Resource]: ...

    def list_ids(self, resource_type: str) -> List[str]: ...

    def create(self, resource: Resource) -> str: ...


class InMemoryRepository:
    """Dict-backed repository keyed by (resourceType, id)."""

    def __init__(self, resources: Optional[List[Resource]] = None):
        self._resources: Dict[Tuple[str, str], Resource] = {}
        self._lock = threading.Lock()
        for resource in resources or []:
            self.add(resource)

    def add(self, resource: Resource) -> str:
        """Store (or replace) a resource; assigns an id when missing."""
        resource_type = resource.get("resourceType")
        if not resource_type:
            raise ValueError("Resource has no resourceType")
        resource_id = resource.get("id") or str(uuid4())
        stored = copy.deepcopy(resource)
        stored["id"] = resource_id
        with self._lock:
            self._resources[(resource_type, resource_id)] = stored
        return resource_id

    def create(self, resource: Resource) -> str:
        resource_id = self.add({**resource, "id": str(uuid4())})
        logger.debug("Resource created", resource_type=resource.get("resourceType"), id=resource_id)
        return resource_id

    def read(self, resource_type: str, resource_id: str) -> Resource:
        _, bare_id = split_reference(resource_id, resource_type)
        with self._lock:
            resource = self._resources.get((resource_type, bare_id))
        if resource is None:
            raise ResourceNotFoundError(f"{resource_type}/{bare_id} not found")
        return copy.deepcopy(resource)

    def search_by_canonical(self, resource_type: str, canonical: str) -> List[Resource]:
        url, _, version = canonical.partition("|")
        return [
            copy.deepcopy(r) for r in self._of_type(resource_type)
            if r.get("url") == url and (not version or r.get("version") == version)
        ]

    def search_by_identifier(self, resource_type: str, system: Optional[str], value: str) -> List[Resource]:
        matches = []
        for resource in self._of_type(resource_type):
            for identifier in resource.get("identifier", []):
                if identifier.get("value") == value and (system is None or identifier.get("system") == system):
                    matches.append(copy.deepcopy(resource))
                    break
        return matches

    def list_ids(self, resource_type: str) -> List[str]:
        return [f"{resource_type}/{r['id']}" for r in self._of_type(resource_type)]

    def _of_type(self, resource_type: str) -> List[Resource]:
        with self._lock:
            return [r for (rtype, _), r in self._resources.items() if rtype == resource_type]

    def load_directory(self, directory: Path) -> int:
        """Load every *.json resource (or Bundle of resources) under a directory."""
        count = 0
        for path in sorted(Path(directory).glob("**/*.json")):
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if data.get("resourceType") == "Bundle":
                for entry in data.get("entry", []):
                    if entry.get("resource"):
                        self.add(entry["resource"])
                        count += 1
            else:
                self.add(data)
                count += 1
        logger.info("Resources loaded", directory=str(directory), count=count)
        return count
