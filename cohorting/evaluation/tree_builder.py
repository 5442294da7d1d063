"""Converts EvidenceVariable JSON into a CriteriaTree.

Reads three marker extensions, all opaque to the interpreter beyond lookup:
- cqf-library: canonical URL of the Library holding the expressions
- EXT-Exclusive-OR: boolean overriding the combination code with XOR
- EXT-EVParametrisation: repeated name/value pairs for one expression
"""

from typing import Any, Dict, List, Optional

from cohorting.exceptions import UnresolvedReferenceError, UnsupportedNodeKindError
from cohorting.models.criteria import Combination, CriteriaTree, LeafExpression, LeafReference
from cohorting.models.enums import CombinationOperator
from cohorting.models.parameters import ParameterComponent
from cohorting.config.logging_config import get_logger

logger = get_logger(__name__)

EXT_CQF_LIBRARY = "http://hl7.org/fhir/StructureDefinition/cqf-library"
EXT_XOR = "https://www.isis.com/StructureDefinition/EXT-Exclusive-OR"
EXT_EV_PARAM = "https://www.isis.com/StructureDefinition/EXT-EVParametrisation"

_SUB_NAME = "name"
_SUB_VALUE = "value"

_COMBINATION_CODES = {
    "all-of": CombinationOperator.AND,
    "any-of": CombinationOperator.OR,
}


def _extensions(element: Dict[str, Any], url: str) -> List[Dict[str, Any]]:
    return [e for e in element.get("extension", []) if e.get("url") == url]


def _value_of(extension: Dict[str, Any]) -> Any:
    for key, item in extension.items():
        if key.startswith("value"):
            return item
    return None


def read_library_marker(element: Dict[str, Any]) -> Optional[str]:
    """Canonical URL of the cqf-library extension, if present."""
    for extension in _extensions(element, EXT_CQF_LIBRARY):
        canonical = _value_of(extension)
        if isinstance(canonical, str) and canonical.strip():
            return canonical.strip()
    return None


def has_xor_marker(element: Dict[str, Any]) -> bool:
    for extension in _extensions(element, EXT_XOR):
        value = extension.get("valueBoolean")
        if isinstance(value, bool):
            return value
    return False


def read_inline_parameters(expression: Dict[str, Any]) -> List[ParameterComponent]:
    """Name/value pairs from EXT-EVParametrisation; incomplete pairs are skipped."""
    params = []
    for extension in _extensions(expression, EXT_EV_PARAM):
        name_ext = next((e for e in extension.get("extension", []) if e.get("url") == _SUB_NAME), None)
        value_ext = next((e for e in extension.get("extension", []) if e.get("url") == _SUB_VALUE), None)
        if not name_ext or not value_ext:
            continue
        name = name_ext.get("valueString")
        value_fields = {k: v for k, v in value_ext.items() if k.startswith("value") and v is not None}
        if not name or not value_fields:
            logger.debug("Skipping incomplete expression parameter", name=name)
            continue
        params.append(ParameterComponent.from_fhir({"name": name, **value_fields}))
    return params


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip()


def build_node(characteristic: Dict[str, Any], owner: str):
    """Build one node from an EvidenceVariable characteristic."""
    common = {
        "exclude": bool(characteristic.get("exclude", False)),
        "library": read_library_marker(characteristic),
        "link_id": characteristic.get("linkId"),
    }

    if "definitionByCombination" in characteristic:
        combination = characteristic["definitionByCombination"]
        operator = _COMBINATION_CODES.get(combination.get("code"), CombinationOperator.AND)
        if has_xor_marker(combination):
            operator = CombinationOperator.XOR
        children = tuple(build_node(c, owner) for c in combination.get("characteristic", []))
        return Combination(operator=operator, children=children, **common)

    if "definitionExpression" in characteristic:
        expression = characteristic["definitionExpression"]
        return LeafExpression(
            name=_blank_to_none(expression.get("expression")),
            inline_parameters=tuple(read_inline_parameters(expression)),
            **common,
        )

    if "definitionCanonical" in characteristic or "definitionReference" in characteristic:
        target = characteristic.get("definitionCanonical")
        if target is None:
            target = (characteristic.get("definitionReference") or {}).get("reference")
        target = _blank_to_none(target)
        if target is None:
            raise UnresolvedReferenceError(
                f"Blank reference in EvidenceVariable '{owner}' (characteristic linkId='{common['link_id']}')"
            )
        return LeafReference(target=target, **common)

    raise UnsupportedNodeKindError(
        f"This type of 'characteristic.definition[x]' is not supported for EvidenceVariable '{owner}' "
        f"(characteristic linkId='{common['link_id']}'). Supported: definitionExpression, "
        "definitionCanonical, definitionReference, definitionByCombination."
    )


def build_tree(resource: Dict[str, Any]) -> CriteriaTree:
    """Build a CriteriaTree from an EvidenceVariable resource."""
    if resource.get("resourceType") != "EvidenceVariable":
        raise UnsupportedNodeKindError(
            f"Expected an EvidenceVariable, got '{resource.get('resourceType')}'"
        )
    tree_id = f"EvidenceVariable/{resource.get('id', '')}"
    owner = resource.get("url") or tree_id
    nodes = tuple(build_node(c, owner) for c in resource.get("characteristic", []))
    tree = CriteriaTree(
        tree_id=tree_id,
        url=resource.get("url"),
        version=resource.get("version"),
        title=resource.get("title") or resource.get("name"),
        library=read_library_marker(resource),
        nodes=nodes,
    )
    logger.debug("Criteria tree built", tree=tree.describe(), root_nodes=len(nodes))
    return tree
