"""Tests for the in-memory resource repository."""

import json

import pytest

from cohorting.exceptions import ResourceNotFoundError
from cohorting.storage.repository import InMemoryRepository, split_reference
from tests.helpers import IDENTIFIER_SYSTEM, library, patient


class TestSplitReference:

    @pytest.mark.parametrize(
        "reference, expected",
        [
            ("Patient/123", ("Patient", "123")),
            ("123", (None, "123")),
            ("http://example.org/fhir/Patient/123", ("Patient", "123")),
            ("Patient/123/_history/2", ("Patient", "123")),
        ],
    )
    def test_split(self, reference, expected):
        assert split_reference(reference) == expected

    def test_default_type(self):
        assert split_reference("123", "Patient") == ("Patient", "123")


class TestInMemoryRepository:

    def test_read_by_id_and_reference(self, repository):
        repository.add(patient("p1", "MRN-1"))
        assert repository.read("Patient", "p1")["id"] == "p1"
        assert repository.read("Patient", "Patient/p1")["id"] == "p1"

    def test_read_missing(self, repository):
        with pytest.raises(ResourceNotFoundError):
            repository.read("Patient", "nobody")

    def test_read_returns_a_copy(self, repository):
        repository.add(patient("p1", "MRN-1"))
        repository.read("Patient", "p1")["identifier"].clear()
        assert repository.read("Patient", "p1")["identifier"]

    def test_search_by_canonical_with_version(self, repository):
        repository.add(library("v1", "http://x/Library/Foo|1.0"))
        repository.add(library("v2", "http://x/Library/Foo|2.0"))

        assert {r["id"] for r in repository.search_by_canonical("Library", "http://x/Library/Foo")} == {"v1", "v2"}
        assert [r["id"] for r in repository.search_by_canonical("Library", "http://x/Library/Foo|2.0")] == ["v2"]
        assert repository.search_by_canonical("Library", "http://x/Library/Bar") == []

    def test_search_by_identifier(self, repository):
        repository.add(patient("p1", "MRN-1"))
        repository.add(patient("p2", "MRN-2"))

        assert [r["id"] for r in repository.search_by_identifier("Patient", IDENTIFIER_SYSTEM, "MRN-2")] == ["p2"]
        assert [r["id"] for r in repository.search_by_identifier("Patient", None, "MRN-1")] == ["p1"]
        assert repository.search_by_identifier("Patient", "urn:other", "MRN-1") == []

    def test_list_ids(self, repository):
        repository.add(patient("p1"))
        repository.add(patient("p2"))
        repository.add(library("lib", "http://x/Library/Foo"))
        assert repository.list_ids("Patient") == ["Patient/p1", "Patient/p2"]

    def test_create_assigns_new_id(self, repository):
        created = repository.create({"resourceType": "Parameters", "id": "ignored", "parameter": []})
        assert created != "ignored"
        assert repository.read("Parameters", created)["parameter"] == []

    def test_resource_type_required(self, repository):
        with pytest.raises(ValueError):
            repository.add({"id": "x"})

    def test_load_directory(self, tmp_path):
        (tmp_path / "patient.json").write_text(json.dumps(patient("p1", "MRN-1")))
        bundle = {
            "resourceType": "Bundle",
            "type": "collection",
            "entry": [{"resource": patient("p2")}, {"resource": library("lib", "http://x/Library/Foo")}],
        }
        (tmp_path / "nested").mkdir()
        (tmp_path / "nested" / "bundle.json").write_text(json.dumps(bundle))

        repository = InMemoryRepository()
        assert repository.load_directory(tmp_path) == 3
        assert sorted(repository.list_ids("Patient")) == ["Patient/p1", "Patient/p2"]
        assert repository.read("Library", "lib")["url"] == "http://x/Library/Foo"
