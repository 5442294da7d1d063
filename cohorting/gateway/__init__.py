"""Gateway to the remote expression-evaluation service."""
from .base import EvaluationGateway
from .remote_cql_client import RemoteCqlClient

__all__ = ["EvaluationGateway", "RemoteCqlClient"]
