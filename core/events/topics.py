"""EventBus topics published by the kernel and the task engine."""


class SystemTopics:
    """Guaranteed system topics."""

    # Deliver a message to the user immediately via all active channels
    USER_NOTIFY = "system.user.notify"


class TaskTopics:
    """Task lifecycle notifications. Payloads always carry task_id."""

    # New task planned and queued
    CREATED = "task.created"

    # Task or report changed (finished, cancelled, deleted)
    UPDATED = "task.updated"

    # Top-level status transition inside the executor
    STATUS_CHANGED = "task.status_changed"


# Payload contracts (documentation)
USER_NOTIFY_PAYLOAD = {"text": "str", "channel_id": "str | None"}
TASK_CREATED_PAYLOAD = {"task_id": "str", "category": "str", "description": "str"}
TASK_UPDATED_PAYLOAD = {"task_id": "str", "status": "str | None", "deleted": "bool"}
TASK_STATUS_CHANGED_PAYLOAD = {"task_id": "str", "status": "str"}
