"""Expiration reaper: deletes one-time-code rows past their expiry.

An expired confirmation code means the signup was abandoned, so the whole
subscriber goes (measurements and the rest cascade), unless they confirmed in
the meantime. For the other variants only the code row is removed.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

import db
from app.celery_app import celery_app
from app.types.errors import SubscriptionError
from app.types.subscription_contract import ByCode, CodePurpose
from app.workers._runner import run

_LOGGER = logging.getLogger(__name__)


async def reap_expired(purpose: CodePurpose, now: Optional[datetime] = None) -> int:
    """Delete expired rows of one variant; returns the number deleted."""
    purpose = CodePurpose(purpose)
    now = now or db.utcnow()
    try:
        expired = await db.select_expired_codes(purpose, now)
    except SubscriptionError as exc:
        _LOGGER.warning("Could not load expired %s rows: %s", purpose.value, exc)
        return 0

    deleted = 0
    for row in expired:
        try:
            if purpose is CodePurpose.CONFIRMATION:
                # Skips a subscriber who confirmed after the sweep read the row.
                deleted += await db.delete_pending_subscriber(row.sub_id)
            else:
                deleted += await db.delete_code(purpose, ByCode(value=row.code))
        except SubscriptionError as exc:
            _LOGGER.warning("Could not delete expired %s for subscriber %s: %s", purpose.value, row.sub_id, exc)

    if deleted:
        _LOGGER.info("%d record(s) deleted from %s", deleted, purpose.value)
    return deleted


# ---------------------------------------------------------------------------
# Celery Tasks
# ---------------------------------------------------------------------------

@celery_app.task(name="app.workers.reaper.reap", bind=True)
def reap(self, purpose: str):  # noqa: D401
    """Sweep one code table."""
    return run(reap_expired(CodePurpose(purpose)))
