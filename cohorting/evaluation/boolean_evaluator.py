"""Boolean Criteria Evaluator — is a subject in the cohort?

Walks a criteria tree for one subject, delegating every leaf expression to
the evaluation gateway and combining results with AND / OR / XOR.

Design principles:
- No short-circuit: every child of a combination (and every root node) is
  evaluated before the reduction, so the number of remote calls per subject
  only depends on the tree, never on intermediate results
- An empty tree is vacuously true
- Remote results are untrusted: a missing, null or non-boolean output is an
  error, never a silent False
"""

from typing import List, Optional

from cohorting.exceptions import (
    MissingExpressionError,
    MissingOutputError,
    RemoteComputationFailure,
    TypeMismatchError,
)
from cohorting.gateway.base import EvaluationGateway
from cohorting.models.criteria import Combination, CriteriaTree, LeafExpression, LeafReference, dispatch
from cohorting.models.enums import CombinationOperator
from cohorting.models.parameters import EVALUATION_ERROR, NESTED_PARAMETERS, Parameters, outcome_text
from cohorting.evaluation.library_resolver import LibraryResolver
from cohorting.evaluation.tree_resolver import TreeResolver
from cohorting.evaluation.walker import TreeWalker, WalkContext
from cohorting.config.logging_config import get_logger

logger = get_logger(__name__)


def raise_if_failed(result: Optional[Parameters], expression_name: str) -> None:
    """Raise RemoteComputationFailure when the bag carries the in-band failure signal."""
    if result is None:
        return
    failure = result.get(EVALUATION_ERROR)
    if failure is None:
        return
    outcome = failure.resource
    detail = outcome_text(outcome) or "no diagnostic details"
    raise RemoteComputationFailure(
        f"expression '{expression_name}' evaluation error: {detail}",
        expression_name=expression_name,
        outcome=outcome,
    )


def read_boolean(result: Optional[Parameters], name: str) -> bool:
    """Read a boolean expression output from an $evaluate result bag."""
    if result is None:
        raise MissingOutputError(
            f"Remote $evaluate returned null Parameters (expected a boolean parameter named '{name}')."
        )
    raise_if_failed(result, name)

    param = result.get(name)
    if param is None or not param.has_value():
        raise MissingOutputError(f"$evaluate parameter '{name}' is null (expected boolean).")
    if not param.is_boolean():
        raise TypeMismatchError(
            f"Remote $evaluate parameter '{name}' has type {param.value_type} (expected boolean)."
        )
    return param.value


def reduce_results(values: List[bool], operator: CombinationOperator) -> bool:
    """Combine already-computed child results."""
    if operator == CombinationOperator.OR:
        return any(values)
    if operator == CombinationOperator.XOR:
        return sum(1 for v in values if v) == 1
    return all(values)


class BooleanEvaluator(TreeWalker):
    """Evaluates a criteria tree to a boolean for one subject at a time."""

    def __init__(
        self,
        gateway: EvaluationGateway,
        library_resolver: LibraryResolver,
        tree_resolver: TreeResolver,
        max_reference_depth: Optional[int] = None,
    ):
        super().__init__(library_resolver, tree_resolver, max_reference_depth)
        self.gateway = gateway

    def evaluate(
        self,
        tree: CriteriaTree,
        subject_id: str,
        base_params: Optional[Parameters] = None,
        fallback_library_id: Optional[str] = None,
    ) -> bool:
        """
        Evaluate a tree for a subject.

        Args:
            tree: Root criteria tree
            subject_id: Subject reference passed to the gateway (e.g. 'Patient/123')
            base_params: Caller parameters (endpoints) forwarded on every call
            fallback_library_id: Library used when no marker applies

        Returns:
            True if the subject satisfies the tree
        """
        context = WalkContext(
            subject_id=subject_id,
            base_params=base_params or Parameters(),
            library_id=fallback_library_id,
            trail=(tree.tree_id,),
        )
        result = tree.accept(self, context)
        logger.debug("Subject evaluated", subject=subject_id, tree=tree.describe(), included=result)
        return result

    def visit_tree(self, tree: CriteriaTree, context: WalkContext) -> bool:
        if tree.is_empty():
            return True  # vacuous truth
        context = self.scoped(tree, context)
        results = [dispatch(node, self, context) for node in tree.nodes]
        return all(results)

    def visit_expression(self, node: LeafExpression, context: WalkContext) -> bool:
        context = self.scoped(node, context)
        if not node.name:
            raise MissingExpressionError(
                f"Expression is missing for EvidenceVariable '{context.trail[-1]}' "
                f"(characteristic linkId='{node.link_id}')."
            )

        params = context.base_params
        if node.inline_parameters:
            nested = Parameters(parameter=[p.model_copy(deep=True) for p in node.inline_parameters])
            params = params.clone().add_resource(NESTED_PARAMETERS, nested.to_fhir())

        result = self.gateway.evaluate(context.library_id, context.subject_id, params)
        value = read_boolean(result, node.name)
        logger.debug(
            "Expression evaluated",
            subject=context.subject_id,
            library_id=context.library_id,
            expression=node.name,
            value=value,
        )
        return not value if node.exclude else value

    def visit_reference(self, node: LeafReference, context: WalkContext) -> bool:
        context = self.scoped(node, context)
        tree, nested_context = self.enter_reference(node, context)
        value = tree.accept(self, nested_context)
        return not value if node.exclude else value

    def visit_combination(self, node: Combination, context: WalkContext) -> bool:
        context = self.scoped(node, context)
        child_results = [dispatch(child, self, context) for child in node.children]
        value = reduce_results(child_results, node.operator)
        return not value if node.exclude else value
