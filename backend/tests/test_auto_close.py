import asyncio
import logging
from datetime import datetime, timedelta, timezone
from cmms.services.auto_close import auto_close_info, auto_close_stale
from cmms.services.notifications import RecordingNotifier, Notifier

NOW = datetime(2024, 5, 2, 12, 0, tzinfo=timezone.utc)


class FakeStore:
    def __init__(self, closed):
        self.closed = closed
        self.calls = []

    async def auto_close(self, cutoff, now):
        self.calls.append((cutoff, now))
        return self.closed


class BoomNotifier(Notifier):
    async def notify(self, event):
        raise RuntimeError('queue full')


def test_info_for_pending_order():
    record = {'status': 'pending_reporter_closure', 'pending_closure_since': NOW - timedelta(hours=6)}
    info = auto_close_info(record, NOW)
    assert info.pending is True
    assert info.hours_remaining == 18.0
    assert info.deadline == NOW + timedelta(hours=18)
    assert info.as_dict()['deadline'] == '2024-05-03T06:00:00Z'


def test_info_accepts_naive_database_timestamps():
    record = {'status': 'pending_reporter_closure', 'pending_closure_since': datetime(2024, 5, 2, 0, 0)}
    assert auto_close_info(record, NOW, hours=24).hours_remaining == 12.0


def test_info_never_negative_and_not_pending_otherwise():
    record = {'status': 'pending_reporter_closure', 'pending_closure_since': NOW - timedelta(hours=40)}
    assert auto_close_info(record, NOW).hours_remaining == 0.0
    assert auto_close_info({'status': 'completed'}, NOW).pending is False
    assert auto_close_info({'status': 'pending_reporter_closure'}, NOW).pending is False


def test_sweep_uses_window_and_notifies_reporter():
    store = FakeStore([{'id': 5, 'reported_by': 70, 'status': 'auto_closed'}])
    notifier = RecordingNotifier()
    closed = asyncio.run(auto_close_stale(store, notifier, NOW, hours=24))
    assert closed[0]['id'] == 5
    assert store.calls == [(NOW - timedelta(hours=24), NOW)]
    (event,) = notifier.events
    assert (event.work_order_id, event.event_type, event.actor_id) == (5, 'auto_closed', None)
    assert event.extra == {'recipient_id': 70}


def test_sweep_survives_notification_failure(caplog):
    store = FakeStore([{'id': 5, 'reported_by': 70}, {'id': 6, 'reported_by': 71}])
    with caplog.at_level(logging.ERROR, logger='cmms.services.auto_close'):
        closed = asyncio.run(auto_close_stale(store, BoomNotifier(), NOW))
    assert len(closed) == 2
    assert 'work order 6 failed' in caplog.text
