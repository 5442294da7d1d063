"""Cohorting: criteria tree evaluation over a remote expression service."""

__version__ = "0.1.0"
