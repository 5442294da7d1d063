"""Value Collector: raw expression values per subject (datamart records).

Phase 1 walks the criteria tree once, without evaluating anything, and lists
the distinct (expression, library) pairs it contains. Phase 2 runs per
subject: one gateway call per library, outputs merged into a single record
headed by the subject's pseudonymized identifier.
"""

from typing import Dict, List, Optional

from cohorting.exceptions import MissingExpressionError
from cohorting.gateway.base import EvaluationGateway
from cohorting.models.criteria import Combination, CriteriaTree, LeafExpression, LeafReference, dispatch
from cohorting.models.identifiers import Identifier
from cohorting.models.parameters import SUBJECT, ParameterComponent, Parameters
from cohorting.models.results import ExpressionInfo
from cohorting.privacy.pseudonymizer import Pseudonymizer
from cohorting.storage.repository import ResourceRepository, split_reference
from cohorting.evaluation.boolean_evaluator import raise_if_failed
from cohorting.evaluation.library_resolver import LibraryResolver
from cohorting.evaluation.tree_resolver import TreeResolver
from cohorting.evaluation.walker import TreeWalker, WalkContext
from cohorting.config.logging_config import get_logger

logger = get_logger(__name__)

# Name of the record entry holding the pseudonymized subject identifier
SUBJECT_IDENTIFIER = "Patient"


class _LeafCollector(TreeWalker):
    """Lists leaf expressions in traversal order, following references."""

    def visit_tree(self, tree: CriteriaTree, context: WalkContext) -> List[ExpressionInfo]:
        context = self.scoped(tree, context)
        leaves: List[ExpressionInfo] = []
        for node in tree.nodes:
            leaves.extend(dispatch(node, self, context))
        return leaves

    def visit_expression(self, node: LeafExpression, context: WalkContext) -> List[ExpressionInfo]:
        context = self.scoped(node, context)
        if not node.name:
            raise MissingExpressionError(
                f"Expression is missing for EvidenceVariable '{context.trail[-1]}' "
                f"(characteristic linkId='{node.link_id}')."
            )
        return [ExpressionInfo(expression_name=node.name, library_id=context.library_id)]

    def visit_reference(self, node: LeafReference, context: WalkContext) -> List[ExpressionInfo]:
        context = self.scoped(node, context)
        tree, nested_context = self.enter_reference(node, context)
        return tree.accept(self, nested_context)

    def visit_combination(self, node: Combination, context: WalkContext) -> List[ExpressionInfo]:
        context = self.scoped(node, context)
        leaves: List[ExpressionInfo] = []
        for child in node.children:
            leaves.extend(dispatch(child, self, context))
        return leaves


class ValueCollector:
    """
    Collects raw expression outputs for subjects.

    The leaf list is computed once per tree with ``collect_leaves`` and then
    reused for every subject with ``collect_for_subject``.
    """

    def __init__(
        self,
        gateway: EvaluationGateway,
        library_resolver: LibraryResolver,
        tree_resolver: TreeResolver,
        pseudonymizer: Optional[Pseudonymizer] = None,
        repository: Optional[ResourceRepository] = None,
        max_reference_depth: Optional[int] = None,
    ):
        self.gateway = gateway
        self.pseudonymizer = pseudonymizer
        self.repository = repository
        self._walker = _LeafCollector(library_resolver, tree_resolver, max_reference_depth)

    def collect_leaves(self, tree: CriteriaTree, fallback_library_id: Optional[str] = None) -> List[ExpressionInfo]:
        """Distinct (expression, library) pairs of a tree, in first-seen order."""
        context = WalkContext(
            subject_id=None,
            base_params=Parameters(),
            library_id=fallback_library_id,
            trail=(tree.tree_id,),
        )
        leaves = list(dict.fromkeys(tree.accept(self._walker, context)))
        if not leaves:
            logger.warning("No expression definitions found", tree=tree.describe())
        else:
            logger.info(
                "Expression definitions collected",
                tree=tree.describe(),
                count=len(leaves),
                libraries=len({leaf.library_id for leaf in leaves}),
            )
        return leaves

    def collect_for_subject(
        self,
        leaves: List[ExpressionInfo],
        subject_id: str,
        base_params: Optional[Parameters] = None,
    ) -> Parameters:
        """
        Evaluate every collected leaf for one subject.

        Args:
            leaves: Output of ``collect_leaves``
            subject_id: Subject id (bare id or 'Patient/<id>')
            base_params: Caller parameters (endpoints) copied into every call

        Returns:
            Merged record: the pseudonymized identifier (when available)
            followed by one entry per leaf
        """
        base_params = base_params or Parameters()
        record = Parameters()

        identifier = self._pseudonymized_identifier(subject_id)
        if identifier is not None:
            record.add_value(SUBJECT_IDENTIFIER, "identifier", identifier.to_fhir())

        for library_id, group in self._group_by_library(leaves).items():
            call_params = base_params.without(SUBJECT).add_value(SUBJECT, "string", subject_id)
            result = self.gateway.evaluate(library_id, subject_id, call_params)
            names = [leaf.expression_name for leaf in group]
            if result is None:
                logger.warning(
                    "Remote $evaluate returned no parameters",
                    subject=subject_id,
                    library_id=library_id,
                    expressions=names,
                )
            else:
                raise_if_failed(result, ", ".join(names))

            for name in names:
                record.add(self._copy_output(result, name))

        logger.debug("Subject record collected", subject=subject_id, entries=len(record.parameter))
        return record

    @staticmethod
    def _group_by_library(leaves: List[ExpressionInfo]) -> Dict[Optional[str], List[ExpressionInfo]]:
        groups: Dict[Optional[str], List[ExpressionInfo]] = {}
        for leaf in leaves:
            groups.setdefault(leaf.library_id, []).append(leaf)
        return groups

    @staticmethod
    def _copy_output(result: Optional[Parameters], name: str) -> ParameterComponent:
        found = result.get(name) if result is not None else None
        if found is None:
            return ParameterComponent(name=name)
        if found.has_value():
            return ParameterComponent(name=name, value_type=found.value_type, value=found.value)
        return ParameterComponent(name=name, resource=found.resource)

    def _pseudonymized_identifier(self, subject_id: str) -> Optional[Identifier]:
        """First identifier of the subject, pseudonymized; None when unavailable."""
        if self.repository is None or self.pseudonymizer is None:
            return None
        try:
            _, patient_id = split_reference(subject_id, "Patient")
            patient = self.repository.read("Patient", patient_id)
            identifiers = patient.get("identifier") or []
            if not identifiers:
                logger.debug("Subject has no identifier", subject=subject_id)
                return None
            return self.pseudonymizer.to_pseudonym(Identifier.from_fhir(identifiers[0]))
        except Exception as e:
            logger.debug("Subject identifier lookup failed", subject=subject_id, error=str(e))
            return None
