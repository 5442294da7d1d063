"""FHIR Parameters bag exchanged with the $evaluate service.

The same structure carries the request (subject, endpoints, nested
expression parameters) and the response (one entry per expression name,
or the reserved "evaluation error" entry holding an OperationOutcome).
Values keep their FHIR ``value[x]`` suffix in ``value_type`` so that a
``valueBoolean`` can be told apart from a ``valueString`` holding "true".
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

# Reserved parameter names
EVALUATION_ERROR = "evaluation error"
SUBJECT = "subject"
NESTED_PARAMETERS = "parameters"

DATA_ENDPOINT = "dataEndpoint"
CONTENT_ENDPOINT = "contentEndpoint"
TERMINOLOGY_ENDPOINT = "terminologyEndpoint"


class ParameterComponent(BaseModel):
    """One named entry of a Parameters bag."""
    name: str = Field(..., description="Parameter name")
    value_type: Optional[str] = Field(None, description="FHIR value[x] suffix, e.g. 'boolean', 'string'")
    value: Any = Field(None, description="Primitive or complex-type value")
    resource: Optional[Dict[str, Any]] = Field(None, description="Embedded resource payload")

    def has_value(self) -> bool:
        return self.value is not None

    def is_boolean(self) -> bool:
        return self.value_type == "boolean" and isinstance(self.value, bool)

    @classmethod
    def from_fhir(cls, data: Dict[str, Any]) -> "ParameterComponent":
        value_type = None
        value = None
        for key, item in data.items():
            if key.startswith("value") and len(key) > len("value"):
                suffix = key[len("value"):]
                value_type = suffix[0].lower() + suffix[1:]
                value = item
                break
        return cls(
            name=data.get("name", ""),
            value_type=value_type,
            value=value,
            resource=data.get("resource"),
        )

    def to_fhir(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name}
        if self.value is not None and self.value_type:
            out["value" + self.value_type[0].upper() + self.value_type[1:]] = self.value
        if self.resource is not None:
            out["resource"] = self.resource
        return out


class Parameters(BaseModel):
    """Ordered, name-addressable parameter bag (a.k.a. result bag)."""
    parameter: List[ParameterComponent] = Field(default_factory=list)

    def get(self, name: str) -> Optional[ParameterComponent]:
        """First parameter with the given name, or None."""
        for component in self.parameter:
            if component.name == name:
                return component
        return None

    def has(self, name: str) -> bool:
        return self.get(name) is not None

    def names(self) -> List[str]:
        return [p.name for p in self.parameter]

    def add_value(self, name: str, value_type: Optional[str], value: Any) -> "Parameters":
        self.parameter.append(ParameterComponent(name=name, value_type=value_type, value=value))
        return self

    def add_resource(self, name: str, resource: Dict[str, Any]) -> "Parameters":
        self.parameter.append(ParameterComponent(name=name, resource=resource))
        return self

    def add(self, component: ParameterComponent) -> "Parameters":
        self.parameter.append(component.model_copy(deep=True))
        return self

    def clone(self) -> "Parameters":
        return self.model_copy(deep=True)

    def without(self, name: str) -> "Parameters":
        """Deep copy with every parameter called ``name`` removed."""
        return Parameters(parameter=[p.model_copy(deep=True) for p in self.parameter if p.name != name])

    def with_subject(self, subject_id: str) -> "Parameters":
        """Copy whose only ``subject`` entry is ``subject_id``."""
        return self.without(SUBJECT).add_value(SUBJECT, "string", subject_id)

    @classmethod
    def from_fhir(cls, data: Optional[Dict[str, Any]]) -> Optional["Parameters"]:
        if data is None:
            return None
        resource_type = data.get("resourceType")
        if resource_type != "Parameters":
            raise ValueError(f"Expected a Parameters resource, got '{resource_type}'")
        return cls(parameter=[ParameterComponent.from_fhir(p) for p in data.get("parameter", [])])

    def to_fhir(self) -> Dict[str, Any]:
        return {
            "resourceType": "Parameters",
            "parameter": [p.to_fhir() for p in self.parameter],
        }


def _endpoint(address: str) -> Dict[str, Any]:
    return {"resourceType": "Endpoint", "status": "active", "address": address}


def base_parameters(
    data_endpoint: Optional[str] = None,
    content_endpoint: Optional[str] = None,
    terminology_endpoint: Optional[str] = None,
) -> Parameters:
    """Build the caller-supplied base bag pointing the engine at its data sources."""
    params = Parameters()
    if data_endpoint:
        params.add_resource(DATA_ENDPOINT, _endpoint(data_endpoint))
    if content_endpoint:
        params.add_resource(CONTENT_ENDPOINT, _endpoint(content_endpoint))
    if terminology_endpoint:
        params.add_resource(TERMINOLOGY_ENDPOINT, _endpoint(terminology_endpoint))
    return params


def outcome_text(outcome: Optional[Dict[str, Any]]) -> str:
    """Diagnostic text of the first OperationOutcome issue, if any."""
    if not outcome:
        return ""
    issues = outcome.get("issue") or []
    if not issues:
        return ""
    issue = issues[0]
    details = issue.get("details") or {}
    return details.get("text") or issue.get("diagnostics") or ""
