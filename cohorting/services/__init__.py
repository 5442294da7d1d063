"""Study-level operations built on the evaluation engine."""
from .cohort_processor import CohortProcessor
from .datamart_processor import DatamartProcessor, subject_type_and_id

__all__ = ["CohortProcessor", "DatamartProcessor", "subject_type_and_id"]
