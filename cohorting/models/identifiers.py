"""Business identifiers carried by subjects and cohort members."""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class Identifier(BaseModel):
    """A (system, value) pair, e.g. a hospital medical record number."""
    model_config = ConfigDict(frozen=True)

    system: Optional[str] = Field(None, description="Namespace URI of the value")
    value: str = Field("", description="Identifier value")

    @classmethod
    def from_fhir(cls, data: Dict[str, Any]) -> "Identifier":
        return cls(system=data.get("system"), value=data.get("value") or "")

    def to_fhir(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"value": self.value}
        if self.system is not None:
            out["system"] = self.system
        return out

    def __str__(self) -> str:
        return f"{self.system or ''}|{self.value}"
