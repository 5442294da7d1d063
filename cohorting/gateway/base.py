"""Evaluation gateway interface."""
from abc import ABC, abstractmethod
from typing import Optional

from cohorting.models.parameters import Parameters


class EvaluationGateway(ABC):
    """Computes the expressions of one library for one subject."""

    @abstractmethod
    def evaluate(
        self,
        library_id: Optional[str],
        subject_id: str,
        parameters: Parameters,
    ) -> Optional[Parameters]:
        """
        Evaluate a library for a subject.

        Args:
            library_id: Library to evaluate
            subject_id: Subject the expressions are computed for
            parameters: Base parameters (endpoints, nested expression parameters);
                any 'subject' entry is replaced by ``subject_id``

        Returns:
            Result bag: one entry per expression, or an 'evaluation error' entry

        Raises:
            TransportFailure: network/HTTP/decoding failures, unchanged
        """
