"""
Outbound notification queue.

The lifecycle engine and the periodic tasks never talk to the mail transport
directly: they put a ``NotificationRequest`` on a bounded ``NotificationQueue``
and a consumer hands each request to the Celery ``deliver`` task, which
composes the email, sends it and records it in ``email_sent``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from config import settings
from app.types.subscription_contract import NotificationKind, NotificationRequest

_LOGGER = logging.getLogger(__name__)

Sender = Callable[[NotificationRequest], Awaitable[bool]]


class NotificationQueue:
    """Bounded FIFO of outbound notification requests with one owner."""

    def __init__(self, maxsize: int | None = None):
        self._queue: asyncio.Queue[NotificationRequest] = asyncio.Queue(
            maxsize=settings.OUTBOX_MAXSIZE if maxsize is None else maxsize
        )

    def __len__(self) -> int:
        return self._queue.qsize()

    def enqueue(self, kind: NotificationKind, recipient: str, subscriber_id: int, code: int) -> bool:
        """Accept a request; False when the queue is full or the request is incomplete."""
        try:
            request = NotificationRequest(
                kind=kind, recipient=recipient, subscriber_id=subscriber_id, code=code
            )
        except ValueError as exc:
            _LOGGER.warning("Rejected malformed notification request: %s", exc)
            return False
        try:
            self._queue.put_nowait(request)
        except asyncio.QueueFull:
            _LOGGER.error("Notification queue full; dropped %s for subscriber %s", kind, subscriber_id)
            return False
        return True

    async def drain(self, send: Sender) -> int:
        """Hand every queued request to *send*; returns how many were accepted."""
        accepted = 0
        while not self._queue.empty():
            request = self._queue.get_nowait()
            if await _send_one(send, request):
                accepted += 1
        return accepted

    async def run(self, send: Sender) -> None:
        """Long-lived consumer; cancel the task to stop it."""
        while True:
            request = await self._queue.get()
            await _send_one(send, request)


async def _send_one(send: Sender, request: NotificationRequest) -> bool:
    try:
        ok = await send(request)
    except Exception as exc:  # noqa: BLE001
        # A failed hand-off must not stop the rest of the batch.
        _LOGGER.exception("Sending %s to subscriber %s failed: %s", request.kind.value, request.subscriber_id, exc)
        return False
    if not ok:
        _LOGGER.warning("Sending %s to subscriber %s was refused", request.kind.value, request.subscriber_id)
    return bool(ok)


async def dispatch(request: NotificationRequest) -> bool:
    """Hand a request to the Celery ``deliver`` task."""
    from app.celery_app import celery_app

    await asyncio.to_thread(
        celery_app.send_task,
        "app.workers.notifier.deliver",
        args=[request.model_dump(mode="json")],
        queue="notify",
    )
    return True


# ──────────────────────────────────────────────────────────────────────────
# Email composition
# ──────────────────────────────────────────────────────────────────────────

def _link(path: str) -> str:
    return settings.BASE_URL.rstrip("/") + "/" + path


def compose(request: NotificationRequest) -> tuple[str, str]:
    """Return ``(subject, body)`` for the request's kind."""
    sub_id, code = request.subscriber_id, request.code
    unsubscribe_info = f"\nTo stop receiving emails, please follow instructions at {_link('unsubscribe')}"

    if request.kind is NotificationKind.SIGNUP_CONFIRM:
        subject = "Please confirm your email to start receiving reminders!"
        body = (
            "To begin receiving reminders to update your BMR/TDEE, please confirm your email at "
            f"{_link(f'user/confirm/{sub_id}/{code}')}\n\n"
            "This confirmation link will expire in 7 days."
        )
    elif request.kind is NotificationKind.UPDATE_CONFIRM:
        subject = "Were you trying to update your measurements?"
        body = (
            "To view and approve these pending changes, click here: "
            f"{_link(f'update/review/{sub_id}/{code}')}\n\n"
            "This confirmation link will expire in 30 minutes. "
            "If you did not request this change, please ignore this email."
            + unsubscribe_info
        )
    elif request.kind is NotificationKind.UPDATE_REMINDER:
        subject = "It's time to update your measurements!"
        body = (
            "To update your previously saved measurements and calculate a new BMR/TDEE, please click here: "
            f"{_link(f'update/{sub_id}/{code}')}\n\n"
            "This link will expire in 7 days or once you save your updated measurements. "
            "Measurements can also be updated at any time by entering your email on the homepage."
            + unsubscribe_info
        )
    else:
        subject = "Please confirm you would like to unsubscribe from receiving reminders"
        body = (
            "To stop receiving reminders from us, click here: "
            f"{_link(f'unsubscribe/{sub_id}/{code}')}\n\n"
            "This link will expire in 30 minutes. If you did not request this, please ignore this email."
        )
    return subject, body
