"""Exceptions for the cohorting engine.

Any of these raised while walking one subject aborts the whole
cohort/datamart operation. Transport errors from the evaluation service
are not wrapped: they surface as ``requests`` exceptions (TransportFailure).
"""
from typing import Any, Dict, Optional

from requests import RequestException

# Network / HTTP / decoding failures of the $evaluate call, propagated unchanged
TransportFailure = RequestException


class CohortingError(Exception):
    """Base class for engine errors."""
    pass


class MissingExpressionError(CohortingError):
    """A leaf expression has no expression name."""
    pass


class UnresolvedReferenceError(CohortingError):
    """A referenced criteria tree could not be found."""
    pass


class ReferenceCycleError(CohortingError):
    """Criteria tree references loop back on themselves or nest too deeply."""
    pass


class UnsupportedNodeKindError(CohortingError):
    """A criteria node (or characteristic definition) of unknown kind."""
    pass


class RemoteComputationFailure(CohortingError):
    """The evaluation service reported an in-band 'evaluation error'."""

    def __init__(
        self,
        message: str,
        expression_name: Optional[str] = None,
        outcome: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.expression_name = expression_name
        self.outcome = outcome


class TypeMismatchError(CohortingError):
    """An expression result exists but is not of the required type."""
    pass


class MissingOutputError(CohortingError):
    """The result bag is null or lacks a value for the expression."""
    pass


class LibraryNotFoundError(CohortingError):
    """A Library canonical URL could not be resolved."""
    pass


class ResourceNotFoundError(CohortingError):
    """Requested resource not found in repository."""
    pass


class InvalidSubjectReferenceError(CohortingError):
    """Subject reference is not of the form {type}/{id}."""
    pass


class InvalidStudyError(CohortingError):
    """ResearchStudy lacks the references needed to run the operation."""
    pass


class PseudonymizationError(CohortingError):
    """Pseudonym could not be produced or reversed."""
    pass


class EvaluationDeadlineExceededError(CohortingError):
    """The overall deadline of a subject batch expired."""
    pass


class BatchCancelledError(CohortingError):
    """Subject walk stopped because another subject of the batch failed."""
    pass
