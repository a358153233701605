"""Task Engine error taxonomy."""


class TaskEngineError(Exception):
    """Base class for task engine failures."""


class PlanningError(TaskEngineError):
    """Task could not be planned (bad input, empty or cyclic plan). Task is never stored."""


class InvalidPlanError(PlanningError):
    """Planner input was rejected before a plan was built."""


class UnknownCategoryError(TaskEngineError):
    """No worker is registered for the task category. Never retried."""


class OrchestrationError(TaskEngineError):
    """Unexpected failure inside the scheduling pass for one task."""


class TaskCancelledError(TaskEngineError):
    """Task was cancelled while a worker was running it."""


class DataCorruptionError(TaskEngineError):
    """Raised by a step handler when task artifacts can no longer be trusted."""


class StepError(TaskEngineError):
    """A step handler failed. Wraps the original exception.

    The message is the handler's message so that classification sees the same
    vocabulary the handler used.
    """

    def __init__(self, step_id: str, cause: BaseException) -> None:
        super().__init__(str(cause) or type(cause).__name__)
        self.step_id = step_id
        self.cause = cause

    @property
    def data_corrupted(self) -> bool:
        return isinstance(self.cause, DataCorruptionError)
