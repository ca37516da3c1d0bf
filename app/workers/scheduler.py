"""Reminder scheduler.

Once per period, for every scheduled reminder dated today or earlier:

1. look up the subscriber (skip on failure; nothing has been written yet),
2. reuse the live update code or issue one (a live code means an earlier
   cycle issued it but failed to send or reschedule),
3. hand an ``update-reminder`` notification to delivery,
4. only if that hand-off succeeded, push the reminder forward one interval.

A failed step 3 leaves the reminder untouched. A failed step 4 is logged and
not retried. Either way the reminder keeps its date and a later cycle sends it
again with the same code (at-least-once delivery).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

import db
from app.celery_app import celery_app
from app.services import code_authority
from app.services.notifications import NotificationQueue, Sender, dispatch
from app.types.errors import SubscriptionError
from app.types.subscription_contract import ById, CodePurpose, NotificationKind
from app.workers._runner import run

_LOGGER = logging.getLogger(__name__)


async def schedule_reminders(now: Optional[datetime] = None, send: Sender = dispatch) -> int:
    """Process reminders due by the end of today; returns how many were handed off."""
    now = now or db.utcnow()
    _LOGGER.info("Handling scheduled reminders at %s", now.isoformat())

    try:
        due = await db.select_reminders_due_by(now.date())
    except SubscriptionError as exc:
        _LOGGER.warning("Could not load due reminders: %s", exc)
        return 0

    outbox = NotificationQueue(maxsize=0)
    processed = 0
    for reminder in due:
        sub_id = reminder.sub_id
        try:
            subscriber = await db.select_subscriber(ById(value=sub_id))
            if subscriber is None:
                continue
            update_code = await code_authority.obtain(CodePurpose.UPDATE, sub_id, now=now)
        except SubscriptionError as exc:
            _LOGGER.warning("Skipping reminder for subscriber %s until next cycle: %s", sub_id, exc)
            continue

        if not outbox.enqueue(NotificationKind.UPDATE_REMINDER, subscriber.email, sub_id, update_code.code):
            continue
        # Hand off before rescheduling; a refused send leaves the date for the next cycle.
        if await outbox.drain(send) != 1:
            continue
        processed += 1

        try:
            freq = await db.get_frequency_by_id(subscriber.freq_id)
            advanced = await db.advance_scheduled_reminder(sub_id, freq.num_days) if freq else None
        except SubscriptionError as exc:
            _LOGGER.error("Reschedule failed for subscriber %s (update code %s): %s", sub_id, update_code.code, exc)
            continue
        if advanced is None:
            _LOGGER.error("Reschedule failed for subscriber %s (update code %s)", sub_id, update_code.code)

    _LOGGER.info("Scheduled reminders: %d of %d handed to delivery", processed, len(due))
    return processed


# ---------------------------------------------------------------------------
# Celery Tasks
# ---------------------------------------------------------------------------

@celery_app.task(name="app.workers.scheduler.schedule", bind=True)
def schedule(self):  # noqa: D401
    """Run one scheduler cycle."""
    return run(schedule_reminders())
