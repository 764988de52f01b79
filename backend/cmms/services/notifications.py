"""Notification boundary. Delivery (push, email) lives outside this package."""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

WORK_STARTED = 'work_started'
WORK_COMPLETED = 'work_completed'
SUPERVISOR_APPROVED = 'supervisor_approved'
ENGINEER_APPROVED = 'engineer_approved'
CUSTOMER_REVIEWED = 'customer_reviewed'
REJECTED = 'rejected'
FINAL_APPROVED = 'final_approved'
AUTO_CLOSED = 'auto_closed'


@dataclass(frozen=True)
class NotificationEvent:
    work_order_id: int
    event_type: str
    actor_id: Optional[int]
    extra: Dict[str, Any] = field(default_factory=dict)


class Notifier:
    async def notify(self, event: NotificationEvent) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Default notifier: records the event in the application log."""

    async def notify(self, event: NotificationEvent) -> None:
        logger.info('notify work_order=%s event=%s actor=%s extra=%s',
                    event.work_order_id, event.event_type, event.actor_id, event.extra)


class RecordingNotifier(Notifier):
    def __init__(self):
        self.events: List[NotificationEvent] = []

    async def notify(self, event: NotificationEvent) -> None:
        self.events.append(event)
