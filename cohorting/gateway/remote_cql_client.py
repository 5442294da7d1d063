"""Remote CQL client for Library/$evaluate over HTTP.

Transport failures are not reclassified: connection errors are retried with
tenacity and, once attempts are exhausted, the original requests exception is
re-raised; HTTP status and decoding errors propagate as-is.
"""
from typing import Any, Dict, Optional

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from cohorting.exceptions import LibraryNotFoundError
from cohorting.gateway.base import EvaluationGateway
from cohorting.models.parameters import Parameters
from cohorting.config.logging_config import get_logger
from cohorting.config.settings import get_settings

logger = get_logger(__name__)

FHIR_JSON = "application/fhir+json"


class RemoteCqlClient(EvaluationGateway):
    """Evaluation gateway backed by a FHIR server exposing Library/$evaluate."""

    def __init__(
        self,
        endpoint: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        retry_wait: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        settings = get_settings()
        self.endpoint = (endpoint or settings.evaluation_endpoint).rstrip("/")
        self.timeout = settings.evaluation_timeout_seconds if timeout is None else timeout
        attempts = settings.evaluation_retry_attempts if retry_attempts is None else retry_attempts
        wait = settings.evaluation_retry_wait_seconds if retry_wait is None else retry_wait
        self.session = session or requests.Session()
        self._retrying = Retrying(
            stop=stop_after_attempt(max(1, attempts)),
            wait=wait_exponential(multiplier=wait, min=wait, max=max(wait, 10 * wait)),
            retry=retry_if_exception_type(requests.ConnectionError),
            reraise=True,
        )
        logger.info("Remote CQL client initialized", endpoint=self.endpoint, timeout=self.timeout)

    def evaluate(
        self,
        library_id: Optional[str],
        subject_id: str,
        parameters: Parameters,
    ) -> Optional[Parameters]:
        if not library_id:
            raise LibraryNotFoundError(f"No library id to evaluate for subject '{subject_id}'")
        url = f"{self.endpoint}/Library/{library_id}/$evaluate"
        payload = parameters.with_subject(subject_id).to_fhir()

        logger.debug("Calling $evaluate", library_id=library_id, subject=subject_id)
        body = self._retrying.copy()(self._post, url, payload)
        return Parameters.from_fhir(body)

    def _post(self, url: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        response = self.session.post(
            url,
            json=payload,
            headers={"Content-Type": FHIR_JSON, "Accept": FHIR_JSON},
            timeout=self.timeout,
        )
        response.raise_for_status()
        if not response.content:
            return None
        return response.json()

    def close(self) -> None:
        self.session.close()
