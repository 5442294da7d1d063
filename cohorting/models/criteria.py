"""
Criteria Tree - eligibility definition as an immutable node variant

A criteria tree is the in-memory form of one EvidenceVariable: an ordered
list of root characteristics, each of which is one of three node kinds:

- LeafExpression: a named expression computed remotely per subject
- LeafReference: points at another criteria tree, resolved on demand
- Combination: AND / OR / XOR over child nodes

Every node carries an ``exclude`` flag (negation of the node's own result)
and an optional ``library`` marker (canonical Library URL). Nodes without a
marker use the library resolved for their nearest ancestor.

Trees are built once per operation and never mutated afterwards; all
sequences are tuples and all models are frozen.
"""

from abc import ABC, abstractmethod
from typing import Annotated, Any, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from cohorting.exceptions import UnsupportedNodeKindError
from cohorting.models.enums import CombinationOperator
from cohorting.models.parameters import ParameterComponent


class _Node(BaseModel):
    model_config = ConfigDict(frozen=True)

    exclude: bool = Field(False, description="Negate this node's result")
    library: Optional[str] = Field(None, description="Canonical URL of the Library for this subtree")
    link_id: Optional[str] = Field(None, description="Author-facing id, used in error messages")


class LeafExpression(_Node):
    """A single named computable criterion."""
    kind: Literal["expression"] = "expression"
    name: Optional[str] = Field(None, description="Expression name inside the library")
    inline_parameters: Tuple[ParameterComponent, ...] = Field(
        default_factory=tuple,
        description="Name/value pairs injected as nested 'parameters' in the remote call"
    )


class LeafReference(_Node):
    """Reference to another criteria tree (canonical URL or EvidenceVariable/<id>)."""
    kind: Literal["reference"] = "reference"
    target: str = Field(..., description="Canonical URL or resource reference of the target tree")


class Combination(_Node):
    """Reduction of child nodes with a logical operator."""
    kind: Literal["combination"] = "combination"
    operator: CombinationOperator = Field(CombinationOperator.AND, description="AND, OR or XOR")
    children: Tuple["CriteriaNode", ...] = Field(default_factory=tuple)


CriteriaNode = Annotated[
    Union[LeafExpression, LeafReference, Combination],
    Field(discriminator="kind"),
]

Combination.model_rebuild()


class CriteriaTree(BaseModel):
    """One eligibility definition; root nodes are combined with AND."""
    model_config = ConfigDict(frozen=True)

    tree_id: str = Field(..., description="Resource id, e.g. 'EvidenceVariable/inclusion'")
    url: Optional[str] = Field(None, description="Canonical URL")
    version: Optional[str] = Field(None, description="Business version")
    title: Optional[str] = Field(None, description="Human-readable title")
    library: Optional[str] = Field(None, description="Canonical URL of the default Library")
    nodes: Tuple[CriteriaNode, ...] = Field(default_factory=tuple)

    def is_empty(self) -> bool:
        return not self.nodes

    def accept(self, visitor: "CriteriaVisitor", context: Any) -> Any:
        """Single traversal entry point."""
        return visitor.visit_tree(self, context)

    def describe(self) -> str:
        return self.url or self.tree_id


class CriteriaVisitor(ABC):
    """Handles every node kind; dispatch() guarantees no kind is skipped."""

    @abstractmethod
    def visit_tree(self, tree: CriteriaTree, context: Any) -> Any: ...

    @abstractmethod
    def visit_expression(self, node: LeafExpression, context: Any) -> Any: ...

    @abstractmethod
    def visit_reference(self, node: LeafReference, context: Any) -> Any: ...

    @abstractmethod
    def visit_combination(self, node: Combination, context: Any) -> Any: ...


def dispatch(node: Any, visitor: CriteriaVisitor, context: Any) -> Any:
    """Route a node to the matching visitor method."""
    match node:
        case LeafExpression():
            return visitor.visit_expression(node, context)
        case LeafReference():
            return visitor.visit_reference(node, context)
        case Combination():
            return visitor.visit_combination(node, context)
        case _:
            raise UnsupportedNodeKindError(
                f"Unsupported criteria node kind '{type(node).__name__}'"
            )
