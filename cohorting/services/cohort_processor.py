"""Cohort Processor — which subjects satisfy a study's eligibility criteria.

Flow:
1. Read the ResearchStudy and its recruitment.eligibility EvidenceVariable
2. Check the root library exists; its id is the fallback for every leaf
3. Evaluate the criteria tree for each subject (fail-fast batch)
4. Emit included subjects as pseudonymized identifiers
"""

from typing import List, Optional

from cohorting.gateway.base import EvaluationGateway
from cohorting.models.criteria import CriteriaTree
from cohorting.models.identifiers import Identifier
from cohorting.models.parameters import Parameters
from cohorting.models.results import CohortResult
from cohorting.privacy.pseudonymizer import Pseudonymizer
from cohorting.storage.repository import ResourceRepository, split_reference
from cohorting.evaluation.batch import CancellableGateway, CancellationToken, SubjectBatch
from cohorting.evaluation.boolean_evaluator import BooleanEvaluator
from cohorting.evaluation.library_resolver import LibraryResolver
from cohorting.evaluation.tree_resolver import TreeResolver
from cohorting.services.study import eligibility_variable_id, root_library_id
from cohorting.config.logging_config import get_logger

logger = get_logger(__name__)


class CohortProcessor:
    """Runs the boolean walk of a study's eligibility tree over a population."""

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

    def cohorting(
        self,
        study_id: str,
        base_params: Optional[Parameters] = None,
        subjects: Optional[List[str]] = None,
    ) -> CohortResult:
        """
        Compute the eligible cohort of a study.

        Args:
            study_id: ResearchStudy id
            base_params: Endpoint parameters forwarded to every $evaluate call
            subjects: Subject references; defaults to every Patient in the repository

        Returns:
            CohortResult whose members are pseudonymized subject identifiers
        """
        # trees and library ids are built once per operation
        self.tree_resolver.clear()
        self.library_resolver.clear()
        study = self.repository.read("ResearchStudy", study_id)
        tree = self.tree_resolver.resolve(f"EvidenceVariable/{eligibility_variable_id(study)}")
        fallback_library_id = root_library_id(tree, self.repository)

        if subjects is None:
            subjects = self.repository.list_ids("Patient")

        logger.info(
            "Cohorting started",
            study=study.get("url") or study_id,
            tree=tree.describe(),
            library_id=fallback_library_id,
            subjects=len(subjects),
        )

        result = CohortResult(
            group_id=f"group-{study.get('id', study_id)}",
            name=f"Patient Eligible for: {study.get('name') or study.get('title') or ''}",
            description=study.get("description"),
        )
        for subject_id in self.evaluate_cohort(tree, subjects, base_params, fallback_library_id):
            identifier = self._pseudonymized_identifier(subject_id)
            if identifier is not None:
                result.add_member(identifier)

        logger.info("Cohorting completed", study=study_id, members=len(result.members))
        return result

    def evaluate_cohort(
        self,
        tree: CriteriaTree,
        subjects: List[str],
        base_params: Optional[Parameters] = None,
        fallback_library_id: Optional[str] = None,
    ) -> List[str]:
        """Subjects (in input order) for which the tree evaluates to true."""
        base_params = base_params or Parameters()

        def evaluate_subject(subject_id: str, token: CancellationToken) -> bool:
            evaluator = BooleanEvaluator(
                CancellableGateway(self.gateway, token),
                self.library_resolver,
                self.tree_resolver,
            )
            return evaluator.evaluate(tree, subject_id, base_params, fallback_library_id)

        included = self.batch.run(subjects, evaluate_subject)
        return [subject for subject, keep in zip(subjects, included) if keep]

    def _pseudonymized_identifier(self, subject_id: str) -> Optional[Identifier]:
        _, patient_id = split_reference(subject_id, "Patient")
        patient = self.repository.read("Patient", patient_id)
        identifiers = patient.get("identifier") or []
        if not identifiers:
            logger.warning("Eligible subject has no identifier, not added to cohort", subject=subject_id)
            return None
        return self.pseudonymizer.to_pseudonym(Identifier.from_fhir(identifiers[0]))
