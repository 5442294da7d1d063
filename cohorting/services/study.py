"""ResearchStudy helpers shared by the cohort and datamart processors.

A study points at its criteria through references the processors follow:
- recruitment.eligibility: EvidenceVariable used for cohorting
- EXT-Datamart / variable: EvidenceVariable whose leaves form the datamart
- recruitment.actualGroup: Group of (pseudonymized) eligible subjects
"""

from typing import Any, Dict, List, Optional

from cohorting.exceptions import InvalidStudyError, LibraryNotFoundError
from cohorting.models.criteria import CriteriaTree
from cohorting.models.identifiers import Identifier
from cohorting.storage.repository import ResourceRepository, split_reference
from cohorting.evaluation.library_resolver import tail_id
from cohorting.config.logging_config import get_logger

logger = get_logger(__name__)

EXT_DATAMART = "https://www.centreantoinelacassagne.org/StructureDefinition/EXT-Datamart"
DATAMART_VARIABLE = "variable"


def _typed_reference_id(reference: Optional[Dict[str, Any]], expected_type: str) -> Optional[str]:
    """Id part of a reference when it targets ``expected_type``, else None."""
    if not reference or not reference.get("reference"):
        return None
    resource_type, resource_id = split_reference(reference["reference"])
    if resource_type != expected_type or not resource_id:
        return None
    return resource_id


def study_label(study: Dict[str, Any]) -> str:
    return study.get("url") or f"ResearchStudy/{study.get('id', '')}"


def eligibility_variable_id(study: Dict[str, Any]) -> str:
    """Id of the EvidenceVariable referenced by recruitment.eligibility."""
    recruitment = study.get("recruitment") or {}
    if not recruitment.get("eligibility"):
        raise InvalidStudyError(
            f"ResearchStudy {study_label(study)} does not have an eligibility variable specified"
        )
    variable_id = _typed_reference_id(recruitment["eligibility"], "EvidenceVariable")
    if variable_id is None:
        raise InvalidStudyError(
            f"ResearchStudy {study_label(study)} does not have a valid eligibility reference to an EvidenceVariable"
        )
    return variable_id


def datamart_variable_id(study: Dict[str, Any]) -> str:
    """Id of the EvidenceVariable referenced by the datamart extension."""
    extension = next((e for e in study.get("extension", []) if e.get("url") == EXT_DATAMART), None)
    if extension is None:
        raise InvalidStudyError(
            f"ResearchStudy {study_label(study)} does not contain extension {EXT_DATAMART}"
        )
    variable = next((e for e in extension.get("extension", []) if e.get("url") == DATAMART_VARIABLE), None)
    if variable is None:
        raise InvalidStudyError(
            f"Extension {EXT_DATAMART} does not contain sub-extension '{DATAMART_VARIABLE}'"
        )
    variable_id = _typed_reference_id(variable.get("valueReference"), "EvidenceVariable")
    if variable_id is None:
        raise InvalidStudyError(
            f"ResearchStudy {study_label(study)} does not have a valid datamart reference to an EvidenceVariable"
        )
    return variable_id


def eligible_group(study: Dict[str, Any], repository: ResourceRepository) -> Dict[str, Any]:
    """The Group referenced by recruitment.actualGroup; must have members."""
    recruitment = study.get("recruitment") or {}
    if not recruitment.get("actualGroup"):
        raise InvalidStudyError(
            f"ResearchStudy {study_label(study)} does not have an actualGroup defined in recruitment"
        )
    group_id = _typed_reference_id(recruitment["actualGroup"], "Group")
    if group_id is None:
        raise InvalidStudyError(f"ResearchStudy {study_label(study)} has an invalid actualGroup reference")

    group = repository.read("Group", group_id)
    if not group.get("member"):
        raise InvalidStudyError(f"Group {group_id} contains no members and thus no eligible patients")
    return group


def member_identifiers(group: Dict[str, Any]) -> List[Identifier]:
    """Identifiers carried by group members, in member order."""
    identifiers = []
    for member in group.get("member", []):
        identifier = (member.get("entity") or {}).get("identifier")
        if identifier is None:
            logger.warning("Group member without identifier skipped", group=group.get("id"))
            continue
        identifiers.append(Identifier.from_fhir(identifier))
    return identifiers


def root_library_id(tree: CriteriaTree, repository: ResourceRepository) -> Optional[str]:
    """
    Fallback library id for a root tree.

    The root's library marker must match a Library in the repository; its
    id is then the tail of the canonical. Trees without a marker have no
    fallback.
    """
    if tree.library is None:
        return None
    if not repository.search_by_canonical("Library", tree.library):
        raise LibraryNotFoundError(f"Unable to find Library with url: {tree.library}")
    return tail_id(tree.library)
