"""Task Engine data model: tasks, steps, logs, reports.

Internal state is plain dataclasses so that workers can mutate steps and the
metadata bag in place. Every type round-trips through ``to_dict``/``from_dict``;
the persisted snapshot uses exactly these dicts.
"""

import json
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any


def json_dumps_unicode(obj: object) -> str:
    """Serialize to JSON for DB storage; Unicode is stored as-is (no \\uXXXX escaping)."""
    return json.dumps(obj, ensure_ascii=False, default=str)


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}
)
ACTIVE_STATUSES = frozenset({TaskStatus.IN_PROGRESS, TaskStatus.RETRYING})


class StepStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskCategory(StrEnum):
    """Closed set of task categories. Unknown input plans as GENERIC."""

    RESEARCH = "research"
    ANALYSIS = "analysis"
    CREATION = "creation"
    GENERIC = "generic"

    @classmethod
    def parse(cls, value: "str | TaskCategory") -> "TaskCategory":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.GENERIC


class StepKind(StrEnum):
    """Operation a step performs. Resolved at plan time, used for handler dispatch."""

    SEARCH = "search"
    VERIFY = "verify"
    SYNTHESIZE = "synthesize"
    EXTRACTION = "extraction"
    PATTERN_DETECTION = "pattern_detection"
    SYNTHESIS = "synthesis"
    INSIGHTS = "insights"
    STRUCTURE = "structure"
    GENERATION = "generation"
    VALIDATION = "validation"
    REVIEW = "review"
    GENERIC = "generic"


class LogLevel(StrEnum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    SUCCESS = "success"


@dataclass
class LogEntry:
    timestamp: float
    level: LogLevel
    message: str
    step_id: str | None = None
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "LogEntry":
        return cls(
            timestamp=d.get("timestamp", 0.0),
            level=LogLevel(d.get("level", LogLevel.INFO)),
            message=d.get("message", ""),
            step_id=d.get("step_id"),
            metadata=d.get("metadata"),
        )


@dataclass
class Step:
    """A unit of work inside a task."""

    id: str
    name: str
    description: str
    kind: StepKind = StepKind.GENERIC
    status: StepStatus = StepStatus.PENDING
    dependencies: list[str] = field(default_factory=list)
    result: Any = None
    error: str | None = None
    started_at: float | None = None
    completed_at: float | None = None
    duration: float | None = None

    def reset(self) -> None:
        """Back to pending with no trace of the previous attempt."""
        self.status = StepStatus.PENDING
        self.error = None
        self.started_at = None
        self.completed_at = None
        self.duration = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Step":
        return cls(
            id=d["id"],
            name=d.get("name", ""),
            description=d.get("description", ""),
            kind=StepKind(d.get("kind", StepKind.GENERIC)),
            status=StepStatus(d.get("status", StepStatus.PENDING)),
            dependencies=list(d.get("dependencies") or []),
            result=d.get("result"),
            error=d.get("error"),
            started_at=d.get("started_at"),
            completed_at=d.get("completed_at"),
            duration=d.get("duration"),
        )


@dataclass
class Task:
    """Unit of scheduling. Created pending by the planner."""

    id: str
    category: TaskCategory
    description: str
    steps: list[Step]
    created_at: float
    status: TaskStatus = TaskStatus.PENDING
    current_step_index: int = 0
    result: Any = None
    error: str | None = None
    retry_count: int = 0
    max_retries: int = 3
    started_at: float | None = None
    completed_at: float | None = None
    estimated_duration: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    def get_step(self, step_id: str) -> Step | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def steps_with_status(self, status: StepStatus) -> list[Step]:
        return [s for s in self.steps if s.status == status]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json_dumps_unicode(self.to_dict())

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Task":
        return cls(
            id=d["id"],
            category=TaskCategory.parse(d.get("category", TaskCategory.GENERIC)),
            description=d.get("description", ""),
            steps=[Step.from_dict(s) for s in d.get("steps") or []],
            created_at=d.get("created_at", 0.0),
            status=TaskStatus(d.get("status", TaskStatus.PENDING)),
            current_step_index=d.get("current_step_index", 0),
            result=d.get("result"),
            error=d.get("error"),
            retry_count=d.get("retry_count", 0),
            max_retries=d.get("max_retries", 3),
            started_at=d.get("started_at"),
            completed_at=d.get("completed_at"),
            estimated_duration=d.get("estimated_duration", 0.0),
            metadata=dict(d.get("metadata") or {}),
        )

    @classmethod
    def from_json(cls, data: str) -> "Task":
        if not data or not data.strip():
            raise ValueError("Empty task data")
        return cls.from_dict(json.loads(data))


@dataclass
class TaskResult:
    """Outcome of one worker or executor run."""

    success: bool
    result: Any = None
    error: str | None = None
    logs: list[LogEntry] = field(default_factory=list)
    duration: float = 0.0


@dataclass(frozen=True)
class ReportMetrics:
    total_duration: float
    average_step_duration: float
    success_rate: float
    retry_rate: float


@dataclass(frozen=True)
class Report:
    """Read-only projection of a task. Regenerated, never appended to."""

    task_id: str
    category: TaskCategory
    status: TaskStatus
    created_at: float
    started_at: float | None
    completed_at: float | None
    duration: float
    steps_completed: int
    steps_total: int
    steps_failed: int
    retry_count: int
    logs: list[LogEntry]
    result: Any
    error: str | None
    conclusion: str
    metrics: ReportMetrics
    recommendations: list[str]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json_dumps_unicode(self.to_dict())

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Report":
        m = d.get("metrics") or {}
        return cls(
            task_id=d["task_id"],
            category=TaskCategory.parse(d.get("category", TaskCategory.GENERIC)),
            status=TaskStatus(d.get("status", TaskStatus.PENDING)),
            created_at=d.get("created_at", 0.0),
            started_at=d.get("started_at"),
            completed_at=d.get("completed_at"),
            duration=d.get("duration", 0.0),
            steps_completed=d.get("steps_completed", 0),
            steps_total=d.get("steps_total", 0),
            steps_failed=d.get("steps_failed", 0),
            retry_count=d.get("retry_count", 0),
            logs=[LogEntry.from_dict(e) for e in d.get("logs") or []],
            result=d.get("result"),
            error=d.get("error"),
            conclusion=d.get("conclusion", ""),
            metrics=ReportMetrics(
                total_duration=m.get("total_duration", 0.0),
                average_step_duration=m.get("average_step_duration", 0.0),
                success_rate=m.get("success_rate", 0.0),
                retry_rate=m.get("retry_rate", 0.0),
            ),
            recommendations=list(d.get("recommendations") or []),
        )

    @classmethod
    def from_json(cls, data: str) -> "Report":
        if not data or not data.strip():
            raise ValueError("Empty report data")
        return cls.from_dict(json.loads(data))
