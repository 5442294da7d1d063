"""Datamart Processor — raw expression values for a study's eligible subjects.

Eligible subjects come from the study's actualGroup, whose members carry
pseudonymized identifiers: each is reversed and looked up to find the
subject. One merged record per subject is persisted through the repository
and the result lists their references in subject order.
"""

from typing import List, Optional, Tuple

from cohorting.exceptions import InvalidSubjectReferenceError, ResourceNotFoundError
from cohorting.gateway.base import EvaluationGateway
from cohorting.models.parameters import Parameters
from cohorting.models.results import DatamartResult
from cohorting.privacy.pseudonymizer import Pseudonymizer
from cohorting.storage.repository import ResourceRepository
from cohorting.evaluation.batch import CancellableGateway, CancellationToken, SubjectBatch
from cohorting.evaluation.library_resolver import LibraryResolver
from cohorting.evaluation.tree_resolver import TreeResolver
from cohorting.evaluation.value_collector import ValueCollector
from cohorting.services.study import (
    datamart_variable_id,
    eligible_group,
    member_identifiers,
    root_library_id,
    study_label,
)
from cohorting.config.logging_config import get_logger

logger = get_logger(__name__)


def subject_type_and_id(subject_id: Optional[str]) -> Tuple[str, str]:
    """Split a '{type}/{id}' subject reference."""
    if subject_id is None:
        raise InvalidSubjectReferenceError("SubjectId is required in order to calculate.")
    parts = subject_id.split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise InvalidSubjectReferenceError(
            f"Unable to determine Subject type for id: {subject_id}. "
            "SubjectIds must be in the format {subjectType}/{subjectId} (e.g. Patient/123)"
        )
    return parts[0], parts[1]


class DatamartProcessor:
    """Runs the value collection walk of a study's datamart variable."""

    def __init__(
        self,
        repository: ResourceRepository,
        gateway: EvaluationGateway,
        pseudonymizer: Optional[Pseudonymizer] = None,
        library_resolver: Optional[LibraryResolver] = None,
        tree_resolver: Optional[TreeResolver] = None,
        batch: Optional[SubjectBatch] = None,
    ):
        self.repository = repository
        self.gateway = gateway
        self.pseudonymizer = pseudonymizer or Pseudonymizer()
        self.library_resolver = library_resolver or LibraryResolver(repository)
        self.tree_resolver = tree_resolver or TreeResolver(repository)
        self.batch = batch or SubjectBatch()

    def generate_datamart(self, study_id: str, base_params: Optional[Parameters] = None) -> DatamartResult:
        """
        Generate one evaluation record per eligible subject.

        Args:
            study_id: ResearchStudy id
            base_params: Endpoint parameters forwarded to every $evaluate call

        Returns:
            DatamartResult listing 'Parameters/<id>' references in subject order
        """
        self.tree_resolver.clear()
        self.library_resolver.clear()
        study = self.repository.read("ResearchStudy", study_id)
        group = eligible_group(study, self.repository)
        tree = self.tree_resolver.resolve(f"EvidenceVariable/{datamart_variable_id(study)}")
        fallback_library_id = root_library_id(tree, self.repository)
        subjects = self.eligible_subjects(group)

        logger.info(
            "Generating datamart",
            study=study_label(study),
            tree=tree.describe(),
            library_id=fallback_library_id,
            subjects=len(subjects),
        )

        leaves = ValueCollector(
            self.gateway, self.library_resolver, self.tree_resolver
        ).collect_leaves(tree, fallback_library_id)
        base_params = base_params or Parameters()

        def collect_subject(subject_id: str, token: CancellationToken) -> Parameters:
            _, bare_id = subject_type_and_id(subject_id)
            collector = ValueCollector(
                CancellableGateway(self.gateway, token),
                self.library_resolver,
                self.tree_resolver,
                pseudonymizer=self.pseudonymizer,
                repository=self.repository,
            )
            return collector.collect_for_subject(leaves, bare_id, base_params)

        records = self.batch.run(subjects, collect_subject)

        result = DatamartResult(title=f"Evaluation parameters for study {study_label(study)}")
        for record in records:
            record_id = self.repository.create(record.to_fhir())
            result.entries.append(f"Parameters/{record_id}")

        logger.info("Datamart generated", study=study_id, records=len(result.entries))
        return result

    def eligible_subjects(self, group) -> List[str]:
        """Subject references of the group members, recovered from their pseudonyms."""
        subjects = []
        for pseudonym in member_identifiers(group):
            identifier = self.pseudonymizer.from_pseudonym(pseudonym)
            matches = self.repository.search_by_identifier("Patient", identifier.system, identifier.value)
            if not matches:
                raise ResourceNotFoundError(f"No Patient found for identifier {identifier.system}|<redacted>")
            subjects.append(f"Patient/{matches[0]['id']}")
        return subjects
