"""Subject Batch — fail-fast execution of independent per-subject walks.

Subjects share no data, so each subject is one task. The batch is
all-or-nothing: the first failure cancels the remaining subjects and is
re-raised, and an overall deadline bounds the whole operation. The batch
returns as soon as it fails; in-flight walks observe cancellation at their
next gateway call and finish in the background.
"""

import threading
import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from cohorting.exceptions import BatchCancelledError, EvaluationDeadlineExceededError
from cohorting.gateway.base import EvaluationGateway
from cohorting.models.parameters import Parameters
from cohorting.config.logging_config import get_logger
from cohorting.config.settings import get_settings

logger = get_logger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Shared flag set once the batch must stop."""

    def __init__(self, deadline: Optional[float] = None):
        self._event = threading.Event()
        self.deadline = deadline  # time.monotonic() value

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def raise_if_stopped(self) -> None:
        if self.cancelled:
            raise BatchCancelledError("Subject evaluation cancelled: another subject failed")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise EvaluationDeadlineExceededError("Batch deadline exceeded")


class CancellableGateway(EvaluationGateway):
    """Checks the batch token before every remote call."""

    def __init__(self, gateway: EvaluationGateway, token: CancellationToken):
        self.gateway = gateway
        self.token = token

    def evaluate(self, library_id: Optional[str], subject_id: str, parameters: Parameters) -> Optional[Parameters]:
        self.token.raise_if_stopped()
        return self.gateway.evaluate(library_id, subject_id, parameters)


class SubjectBatch:
    """Runs one task per subject, sequentially or on a thread pool."""

    def __init__(self, max_workers: Optional[int] = None, deadline_seconds: Optional[float] = None):
        settings = get_settings()
        self.max_workers = settings.batch_max_workers if max_workers is None else max_workers
        self.deadline_seconds = settings.batch_deadline_seconds if deadline_seconds is None else deadline_seconds

    def run(
        self,
        subjects: Sequence[str],
        task: Callable[[str, CancellationToken], T],
    ) -> List[T]:
        """
        Run ``task(subject, token)`` for every subject.

        Returns:
            Task results in input order

        Raises:
            The first task failure (in input order among failed subjects), or
            EvaluationDeadlineExceededError when the deadline expires first
        """
        deadline = None
        if self.deadline_seconds is not None:
            deadline = time.monotonic() + self.deadline_seconds
        token = CancellationToken(deadline)

        if self.max_workers <= 1 or len(subjects) <= 1:
            return self._run_sequential(subjects, task, token)
        return self._run_parallel(subjects, task, token)

    def _run_sequential(self, subjects, task, token: CancellationToken) -> List[T]:
        results = []
        for subject in subjects:
            token.raise_if_stopped()
            results.append(task(subject, token))
        return results

    @staticmethod
    def _run_one(task, subject, token: CancellationToken):
        token.raise_if_stopped()
        return task(subject, token)

    def _run_parallel(self, subjects, task, token: CancellationToken) -> List[T]:
        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="subject")
        futures: Dict[Future, int] = {}
        try:
            for index, subject in enumerate(subjects):
                futures[executor.submit(self._run_one, task, subject, token)] = index

            done, not_done = wait(futures, timeout=token.remaining(), return_when=FIRST_EXCEPTION)
            failed = sorted(
                (f for f in done if f.exception() is not None and not isinstance(f.exception(), BatchCancelledError)),
                key=futures.get,
            )
            if failed:
                token.cancel()
                error = failed[0].exception()
                logger.error(
                    "Subject evaluation failed, cancelling batch",
                    subject=subjects[futures[failed[0]]],
                    error=str(error),
                    pending=len(not_done),
                )
                raise error
            if not_done:
                token.cancel()
                logger.error("Batch deadline exceeded", pending=len(not_done), deadline=self.deadline_seconds)
                raise EvaluationDeadlineExceededError(
                    f"Batch deadline of {self.deadline_seconds}s exceeded with {len(not_done)} subject(s) pending"
                )
            return [f.result() for f in sorted(futures, key=futures.get)]
        finally:
            # in-flight walks stop at their next gateway call; do not wait for them
            executor.shutdown(wait=False, cancel_futures=True)
