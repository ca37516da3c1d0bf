"""Notification delivery task.

Composes the email for a ``NotificationRequest``, sends it and records it in
``email_sent``. Transport errors are retried with Celery back-off; a failed
audit insert is only logged, since the email already went out.
"""

from __future__ import annotations

import logging
from typing import Dict

import db
from app.celery_app import celery_app
from app.services.notifications import compose
from app.types.errors import SubscriptionError
from app.types.subscription_contract import NotificationRequest
from app.utils import email as email_util
from app.workers._runner import run

_LOGGER = logging.getLogger(__name__)


@celery_app.task(name="app.workers.notifier.deliver", bind=True, max_retries=3)
def deliver(self, payload: Dict):  # noqa: D401
    """Send one notification email and log it."""
    request = NotificationRequest.model_validate(payload)
    subject, body = compose(request)
    try:
        email_util.send_email(request.recipient, subject, body)
    except Exception as exc:  # noqa: BLE001
        raise self.retry(exc=exc, countdown=30)

    try:
        run(db.insert_email_sent(request.kind.value, request.recipient, subject, body))
    except SubscriptionError as exc:
        _LOGGER.error("Email to %s sent but not logged: %s", request.recipient, exc)
