"""Error classification, retry decision, exponential backoff and rollback."""

import logging
import random
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from task_engine.errors import StepError
from task_engine.interfaces import Clock, SystemClock
from task_engine.models import StepStatus, Task, TaskStatus

logger = logging.getLogger(__name__)

ROLLBACK_ERROR = "rollback performed"

_TEMPORARY_WORDS = ("timeout", "timed out", "network", "connection", "econnrefused")
_TEMPORARY_TYPE_WORDS = ("timeout", "network", "connection")
_NON_RECOVERABLE_WORDS = ("syntax", "invalid", "not found", "unauthorized", "forbidden")
_NON_RECOVERABLE_TYPE_WORDS = ("syntax", "type")


class ErrorType(StrEnum):
    RECOVERABLE = "recoverable"
    TEMPORARY = "temporary"
    NON_RECOVERABLE = "non_recoverable"


@dataclass(frozen=True)
class ErrorHandlingResult:
    should_retry: bool
    error_type: ErrorType
    message: str
    rollback_needed: bool
    retry_delay: float | None = None


def _type_names(error: BaseException) -> list[str]:
    names = [type(error).__name__.lower()]
    if isinstance(error, StepError):
        names.append(type(error.cause).__name__.lower())
    return names


class ErrorHandler:
    """Keyword-based classifier plus the retry/rollback bookkeeping for tasks.

    prepare_for_retry() is the only place retry_count changes.
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        jitter: float = 0.3,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._clock = clock or SystemClock()
        self._rng = rng or random.Random()

    def classify(self, error: BaseException) -> ErrorType:
        message = str(error).lower()
        names = _type_names(error)
        if any(w in message for w in _TEMPORARY_WORDS) or any(
            w in n for n in names for w in _TEMPORARY_TYPE_WORDS
        ):
            return ErrorType.TEMPORARY
        if any(w in message for w in _NON_RECOVERABLE_WORDS) or any(
            w in n for n in names for w in _NON_RECOVERABLE_TYPE_WORDS
        ):
            return ErrorType.NON_RECOVERABLE
        return ErrorType.RECOVERABLE

    def handle(
        self, error: BaseException, task: Task, context: dict[str, Any] | None = None
    ) -> ErrorHandlingResult:
        context = context or {}
        error_type = self.classify(error)
        should_retry = self._should_retry(error_type, task)
        result = ErrorHandlingResult(
            should_retry=should_retry,
            retry_delay=self.retry_delay(task.retry_count) if should_retry else None,
            error_type=error_type,
            message=str(error),
            rollback_needed=self._needs_rollback(error_type, context),
        )
        logger.debug(
            "task_engine: task %s error classified %s (retry=%s, rollback=%s)",
            task.id,
            error_type,
            result.should_retry,
            result.rollback_needed,
        )
        return result

    @staticmethod
    def _should_retry(error_type: ErrorType, task: Task) -> bool:
        if task.retry_count >= task.max_retries:
            return False
        return error_type in (ErrorType.TEMPORARY, ErrorType.RECOVERABLE)

    def expected_delay(self, retry_count: int) -> float:
        """Backoff without jitter: min(max_delay, base * 2^n)."""
        return min(self.max_delay, self.base_delay * (2**retry_count))

    def retry_delay(self, retry_count: int) -> float:
        """Exponential backoff with jitter, capped at max_delay."""
        exponential = self.base_delay * (2**retry_count)
        jitter = self._rng.uniform(0, self.jitter * exponential)
        return min(self.max_delay, exponential + jitter)

    @staticmethod
    def _needs_rollback(error_type: ErrorType, context: dict[str, Any]) -> bool:
        if error_type == ErrorType.NON_RECOVERABLE and context.get("completed_steps", 0) > 0:
            return True
        return bool(context.get("data_corrupted"))

    def prepare_for_retry(self, task: Task) -> None:
        task.retry_count += 1
        task.status = TaskStatus.RETRYING
        for step in task.steps:
            if step.status == StepStatus.FAILED and task.retry_count <= task.max_retries:
                step.reset()
        for i, step in enumerate(task.steps):
            if step.status == StepStatus.PENDING:
                task.current_step_index = i
                break

    def perform_rollback(self, task: Task) -> None:
        """Discard all completed work and artifacts; the next attempt redoes every step."""
        rolled_back = 0
        for step in task.steps:
            if step.status == StepStatus.COMPLETED:
                step.status = StepStatus.FAILED
                step.error = ROLLBACK_ERROR
                rolled_back += 1
        task.current_step_index = 0
        task.metadata = {
            "rollback_performed": True,
            "rollback_timestamp": self._clock.now(),
        }
        logger.warning("task_engine: task %s rolled back %d step(s)", task.id, rolled_back)
