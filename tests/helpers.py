"""Builders and fakes shared by the test modules."""

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from cohorting.gateway.base import EvaluationGateway
from cohorting.models.criteria import Combination, CriteriaTree, LeafExpression, LeafReference
from cohorting.models.enums import CombinationOperator
from cohorting.models.parameters import EVALUATION_ERROR, Parameters

LIBRARY_CANONICAL = "http://example.org/Library/Eligibility|1.0"
IDENTIFIER_SYSTEM = "urn:oid:1.2.250.1.71.4.2.7"


def _value_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "decimal"
    return "string"


def bag(values: Dict[str, Any]) -> Parameters:
    """Result bag with one typed value per name."""
    params = Parameters()
    for name, value in values.items():
        params.add_value(name, _value_type(value), value)
    return params


def failure_bag(text: str) -> Parameters:
    outcome = {
        "resourceType": "OperationOutcome",
        "issue": [{"severity": "error", "code": "exception", "details": {"text": text}}],
    }
    return Parameters().add_resource(EVALUATION_ERROR, outcome)


@dataclass
class Call:
    library_id: Optional[str]
    subject_id: str
    parameters: Parameters


class ScriptedGateway(EvaluationGateway):
    """Fake gateway answering from a function and recording every call."""

    def __init__(self, responder: Callable[[Optional[str], str, Parameters], Optional[Parameters]]):
        self.responder = responder
        self.calls: List[Call] = []
        self._lock = threading.Lock()

    @classmethod
    def from_table(cls, table: Dict[str, Dict[str, Any]]) -> "ScriptedGateway":
        """Gateway returning ``table[subject]`` as a bag, whatever the library."""
        return cls(lambda library_id, subject_id, params: bag(table[subject_id]))

    def evaluate(self, library_id: Optional[str], subject_id: str, parameters: Parameters) -> Optional[Parameters]:
        with self._lock:
            self.calls.append(Call(library_id, subject_id, parameters.clone()))
        return self.responder(library_id, subject_id, parameters)

    def calls_for(self, subject_id: str) -> List[Call]:
        return [c for c in self.calls if c.subject_id == subject_id]


# Criteria tree builders

def leaf(name: Optional[str], **kwargs) -> LeafExpression:
    return LeafExpression(name=name, **kwargs)


def ref(target: str, **kwargs) -> LeafReference:
    return LeafReference(target=target, **kwargs)


def combine(operator: CombinationOperator, *children, **kwargs) -> Combination:
    return Combination(operator=operator, children=tuple(children), **kwargs)


def tree(*nodes, tree_id: str = "EvidenceVariable/root", **kwargs) -> CriteriaTree:
    return CriteriaTree(tree_id=tree_id, nodes=tuple(nodes), **kwargs)


# FHIR resource builders

def library_marker(canonical: str) -> Dict[str, Any]:
    return {"url": "http://hl7.org/fhir/StructureDefinition/cqf-library", "valueCanonical": canonical}


def expression_characteristic(name: str, exclude: bool = False, **extra) -> Dict[str, Any]:
    characteristic = {
        "linkId": name,
        "definitionExpression": {"language": "text/cql-identifier", "expression": name},
        **extra,
    }
    if exclude:
        characteristic["exclude"] = True
    return characteristic


def evidence_variable(
    resource_id: str,
    characteristics: List[Dict[str, Any]],
    url: Optional[str] = None,
    library: Optional[str] = None,
) -> Dict[str, Any]:
    resource = {
        "resourceType": "EvidenceVariable",
        "id": resource_id,
        "status": "active",
        "characteristic": characteristics,
    }
    if url:
        resource["url"] = url
    if library:
        resource["extension"] = [library_marker(library)]
    return resource


def library(resource_id: str, canonical: str) -> Dict[str, Any]:
    url, _, version = canonical.partition("|")
    resource = {"resourceType": "Library", "id": resource_id, "url": url, "status": "active"}
    if version:
        resource["version"] = version
    return resource


def patient(resource_id: str, value: Optional[str] = None) -> Dict[str, Any]:
    resource = {"resourceType": "Patient", "id": resource_id}
    if value is not None:
        resource["identifier"] = [{"system": IDENTIFIER_SYSTEM, "value": value}]
    return resource
