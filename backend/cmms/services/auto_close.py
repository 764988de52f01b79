from __future__ import annotations
"""Auto-close sweep for orders left waiting on the reporter.

After the engineer review an order waits in ``pending_reporter_closure``. When
the reporter neither closes nor rejects it within the window it moves to
``auto_closed``. Run from ``scripts/auto_close.py`` (cron), not in-process.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from cmms.models.work_order import WorkOrder
from cmms.services import notifications
from cmms.services.notifications import NotificationEvent
from cmms.utils.fsm import field_value
from cmms.utils.timestamps import as_utc, isoformat_z, utcnow

logger = logging.getLogger(__name__)

DEFAULT_AUTO_CLOSE_HOURS = 24


@dataclass(frozen=True)
class AutoCloseInfo:
    pending: bool
    deadline: Optional[datetime] = None
    hours_remaining: Optional[float] = None

    def as_dict(self):
        return {
            'pending': self.pending,
            'deadline': isoformat_z(self.deadline) if self.deadline else None,
            'hours_remaining': self.hours_remaining,
        }


def auto_close_info(record: Any, now: Optional[datetime] = None, hours: int = DEFAULT_AUTO_CLOSE_HOURS) -> AutoCloseInfo:
    if field_value(record, 'status') != WorkOrder.STATUS_PENDING_REPORTER_CLOSURE:
        return AutoCloseInfo(False)
    since = as_utc(field_value(record, 'pending_closure_since'))
    if since is None:
        return AutoCloseInfo(False)
    now = as_utc(now or utcnow())
    deadline = since + timedelta(hours=hours)
    remaining = (deadline - now).total_seconds() / 3600
    return AutoCloseInfo(True, deadline, round(max(remaining, 0.0), 2))


async def auto_close_stale(store, notifier, now: Optional[datetime] = None,
                           hours: int = DEFAULT_AUTO_CLOSE_HOURS) -> List[Dict[str, Any]]:
    """Close every order whose closure window has elapsed; returns the closed records."""
    now = as_utc(now or utcnow())
    closed = await store.auto_close(now - timedelta(hours=hours), now)
    for record in closed:
        event = NotificationEvent(record['id'], notifications.AUTO_CLOSED, None,
                                  {'recipient_id': record.get('reported_by')})
        try:
            await notifier.notify(event)
        except Exception:
            logger.exception('Auto-close notification for work order %s failed', record['id'])
    if closed:
        logger.info('Auto-closed %d work order(s)', len(closed))
    return closed
