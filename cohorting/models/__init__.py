"""Data models for the cohorting engine."""
from .enums import CombinationOperator, LibraryResolutionPolicy
from .identifiers import Identifier
from .parameters import (
    EVALUATION_ERROR,
    NESTED_PARAMETERS,
    SUBJECT,
    ParameterComponent,
    Parameters,
    base_parameters,
)
from .criteria import (
    Combination,
    CriteriaNode,
    CriteriaTree,
    CriteriaVisitor,
    LeafExpression,
    LeafReference,
    dispatch,
)
from .results import CohortResult, DatamartResult, ExpressionInfo

__all__ = [
    "CombinationOperator",
    "LibraryResolutionPolicy",
    "Identifier",
    "EVALUATION_ERROR",
    "NESTED_PARAMETERS",
    "SUBJECT",
    "ParameterComponent",
    "Parameters",
    "base_parameters",
    "Combination",
    "CriteriaNode",
    "CriteriaTree",
    "CriteriaVisitor",
    "LeafExpression",
    "LeafReference",
    "dispatch",
    "CohortResult",
    "DatamartResult",
    "ExpressionInfo",
]
