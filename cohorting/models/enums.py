"""Enumeration types for the cohorting engine."""
from enum import Enum


class CombinationOperator(str, Enum):
    """How the children of a combination node are reduced."""
    AND = "AND"
    OR = "OR"
    XOR = "XOR"


class LibraryResolutionPolicy(str, Enum):
    """Behaviour when the Library search by canonical URL raises."""
    LENIENT = "lenient"  # log, then derive the id from the canonical tail
    STRICT = "strict"    # raise LibraryNotFoundError
