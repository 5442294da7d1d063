"""Privacy-preserving identifier handling."""
from .pseudonymizer import Pseudonymizer

__all__ = ["Pseudonymizer"]
