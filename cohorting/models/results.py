"""Outputs of the cohort (boolean) and datamart (collection) operations."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from cohorting.models.identifiers import Identifier


class ExpressionInfo(BaseModel):
    """An expression name and the library it is evaluated in; equality drives de-duplication."""
    model_config = ConfigDict(frozen=True)

    expression_name: str
    library_id: Optional[str] = None


class CohortResult(BaseModel):
    """Eligible subjects of a study, as pseudonymized identifiers."""
    group_id: str
    name: str = ""
    description: Optional[str] = None
    members: List[Identifier] = Field(default_factory=list)

    def add_member(self, identifier: Identifier) -> bool:
        """Add unless already present; returns True if added."""
        if identifier in self.members:
            return False
        self.members.append(identifier)
        return True

    def to_fhir_group(self) -> Dict[str, Any]:
        group: Dict[str, Any] = {
            "resourceType": "Group",
            "id": self.group_id,
            "type": "person",
            "active": True,
            "name": self.name,
            "member": [{"entity": {"identifier": m.to_fhir()}} for m in self.members],
        }
        if self.description:
            group["description"] = self.description
        return group


class DatamartResult(BaseModel):
    """One persisted evaluation record reference per subject, in subject order."""
    title: str = ""
    entries: List[str] = Field(default_factory=list, description="References such as 'Parameters/<id>'")

    def to_fhir_list(self) -> Dict[str, Any]:
        return {
            "resourceType": "List",
            "status": "current",
            "mode": "snapshot",
            "title": self.title,
            "entry": [{"item": {"reference": ref}} for ref in self.entries],
        }
