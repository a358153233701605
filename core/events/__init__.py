"""Event Bus: in-process notifications from the task engine to subscribers."""

from core.events.bus import EventBus
from core.events.models import Event
from core.events.topics import SystemTopics, TaskTopics

__all__ = ["Event", "EventBus", "SystemTopics", "TaskTopics"]
