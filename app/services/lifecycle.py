"""
Subscriber lifecycle engine.

States: NonExistent → Pending → Confirmed, with a transient staged change
(``pending_update``) hanging off Confirmed until it is approved or rejected.

Each transition below runs as one ``db.transaction()``: every write commits
together or none does. Failures are logged and surface as ``None`` / ``False``
/ ``0``; nothing raises past this module. Callers acting on a code received
from outside must pass ``code_authority.verify`` first.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from pydantic import ValidationError

import db
from app.services import code_authority
from app.services.notifications import NotificationQueue
from app.types.errors import Conflict, NotFound, SubscriptionError, ValidationFailure
from app.types.subscription_contract import (
    MEASUREMENT_FIELDS,
    ByCode,
    ByEmail,
    ById,
    BySubscriberId,
    CodePurpose,
    MeasurementUpdate,
    MeasurementValues,
    NewSubscriber,
    NotificationKind,
    UpdateRequestOutcome,
)
from app.utils import units

_LOGGER = logging.getLogger(__name__)


def _parse(model, data):
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ValidationFailure(str(exc)) from exc


def _is_id(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class LifecycleEngine:
    """Owns the subscriber transitions and the outbox they notify through."""

    def __init__(self, outbox: NotificationQueue | None = None):
        self.outbox = NotificationQueue() if outbox is None else outbox

    # ------------------------------------------------------------------
    # NonExistent → Pending
    # ------------------------------------------------------------------
    async def _subscribe(self, sub: NewSubscriber, now: datetime) -> tuple[int, int]:
        async with db.transaction() as s:
            freq = await db.get_frequency(sub.freq, session=s)
            if freq is None:
                raise NotFound(f"unknown frequency {sub.freq!r}")
            row = await db.insert_subscriber(s, sub.email, freq.id)
            await db.insert_measurements(s, row.id, sub, now)
            code = await code_authority.issue(CodePurpose.CONFIRMATION, row.id, session=s, now=now)
            return row.id, code.code

    async def subscribe(self, data: Any, *, now: Optional[datetime] = None) -> int | None:
        """Create subscriber + measurements + confirmation code; returns the new id."""
        try:
            sub = _parse(NewSubscriber, data)
            sub_id, code = await self._subscribe(sub, now or db.utcnow())
        except SubscriptionError as exc:
            _LOGGER.warning("Subscribe failed: %s", exc)
            return None
        _LOGGER.info("Subscriber %s created (pending)", sub_id)
        self.outbox.enqueue(NotificationKind.SIGNUP_CONFIRM, sub.email, sub_id, code)
        return sub_id

    # ------------------------------------------------------------------
    # Pending → Confirmed
    # ------------------------------------------------------------------
    async def confirm_subscriber(self, sub_id: int, *, now: Optional[datetime] = None) -> bool:
        if not _is_id(sub_id):
            return False
        now = now or db.utcnow()
        try:
            sub = await db.select_subscriber(ById(value=sub_id))
            if sub is None:
                _LOGGER.info("No subscriber exists with id %s", sub_id)
                return False
            if sub.confirmed:
                _LOGGER.info("Subscriber %s already confirmed on %s", sub_id, sub.date_confirmed)
                return False
            async with db.transaction() as s:
                if await db.mark_confirmed(s, sub_id, now) != 1:
                    raise Conflict(f"subscriber {sub_id} confirmed concurrently")
                await code_authority.revoke(CodePurpose.CONFIRMATION, BySubscriberId(value=sub_id), session=s)
                freq = await db.get_frequency_by_id(sub.freq_id, session=s)
                if freq is None:
                    raise NotFound(f"unknown frequency id {sub.freq_id}")
                await db.insert_scheduled_reminder(s, sub_id, now + timedelta(days=freq.num_days))
        except SubscriptionError as exc:
            _LOGGER.warning("Confirming subscriber %s failed: %s", sub_id, exc)
            return False
        _LOGGER.info("Subscriber %s confirmed", sub_id)
        return True

    # ------------------------------------------------------------------
    # Submitted form for an email: dispatch on the subscriber's state
    # ------------------------------------------------------------------
    async def request_update(self, data: Any, *, now: Optional[datetime] = None) -> UpdateRequestOutcome | None:
        """Confirmed → stage a pending update; Pending → replace measurements
        and reissue the confirmation code; unknown email → subscribe."""
        now = now or db.utcnow()
        try:
            sub = _parse(NewSubscriber, data)
            existing = await db.select_subscriber(ByEmail(value=sub.email))
            if existing is None:
                sub_id, code = await self._subscribe(sub, now)
                outcome = UpdateRequestOutcome(action="subscribed", subscriber_id=sub_id, code=code)
                kind = NotificationKind.SIGNUP_CONFIRM
            elif existing.confirmed:
                async with db.transaction() as s:
                    # Newest staged change replaces any older one.
                    await code_authority.revoke(
                        CodePurpose.PENDING_UPDATE, BySubscriberId(value=existing.id), session=s
                    )
                    row = await code_authority.issue(
                        CodePurpose.PENDING_UPDATE, existing.id, payload=sub, session=s, now=now
                    )
                outcome = UpdateRequestOutcome(action="staged", subscriber_id=existing.id, code=row.code)
                kind = NotificationKind.UPDATE_CONFIRM
            else:
                async with db.transaction() as s:
                    await db.replace_measurements(s, existing.id, sub, now)
                    await code_authority.revoke(
                        CodePurpose.CONFIRMATION, BySubscriberId(value=existing.id), session=s
                    )
                    row = await code_authority.issue(CodePurpose.CONFIRMATION, existing.id, session=s, now=now)
                outcome = UpdateRequestOutcome(action="reissued", subscriber_id=existing.id, code=row.code)
                kind = NotificationKind.SIGNUP_CONFIRM
        except SubscriptionError as exc:
            _LOGGER.warning("Update request failed: %s", exc)
            return None
        _LOGGER.info("Update request for subscriber %s: %s", outcome.subscriber_id, outcome.action)
        self.outbox.enqueue(kind, sub.email, outcome.subscriber_id, outcome.code)
        return outcome

    # ------------------------------------------------------------------
    # Staged change: approve / reject
    # ------------------------------------------------------------------
    async def confirm_pending_update(self, sub_id: int, *, now: Optional[datetime] = None) -> bool:
        if not _is_id(sub_id):
            return False
        now = now or db.utcnow()
        try:
            async with db.transaction() as s:
                staged = await db.select_code(
                    CodePurpose.PENDING_UPDATE, BySubscriberId(value=sub_id), session=s, live_at=now
                )
                if staged is None:
                    raise NotFound(f"no pending update for subscriber {sub_id}")
                values = MeasurementValues.model_validate(
                    {name: getattr(staged, name) for name in MEASUREMENT_FIELDS}
                )
                await db.replace_measurements(s, sub_id, values, now)
                if await code_authority.revoke(
                    CodePurpose.PENDING_UPDATE, BySubscriberId(value=sub_id), session=s
                ) != 1:
                    raise Conflict(f"pending update for subscriber {sub_id} already resolved")
        except (SubscriptionError, ValidationError) as exc:
            _LOGGER.warning("Confirming pending update for %s failed: %s", sub_id, exc)
            return False
        _LOGGER.info("Pending update applied for subscriber %s", sub_id)
        return True

    async def reject_pending_update(self, code: int) -> int:
        """Drop a staged change by its code; measurements stay as they are."""
        if not _is_id(code):
            return 0
        try:
            return await code_authority.revoke(CodePurpose.PENDING_UPDATE, ByCode(value=code))
        except SubscriptionError as exc:
            _LOGGER.warning("Rejecting pending update %s failed: %s", code, exc)
            return 0

    # ------------------------------------------------------------------
    # Reminder-triggered update
    # ------------------------------------------------------------------
    async def update_measurements(self, sub_id: int, new_values: Any, *, now: Optional[datetime] = None):
        """Write only the fields that changed, always refresh the timestamp,
        and spend the subscriber's update code. Returns the refreshed row."""
        if not _is_id(sub_id):
            return None
        now = now or db.utcnow()
        try:
            changes = _parse(MeasurementUpdate, new_values).present()
            async with db.transaction() as s:
                current = await db.select_measurements(BySubscriberId(value=sub_id), session=s)
                if current is None:
                    raise NotFound(f"no measurements for subscriber {sub_id}")
                for column, value in changes.items():
                    if getattr(current, column) != value:
                        await db.update_measurement_column(s, sub_id, column, value)
                await db.touch_measurements(s, sub_id, now)
                await code_authority.revoke(CodePurpose.UPDATE, BySubscriberId(value=sub_id), session=s)
            return await db.select_measurements(BySubscriberId(value=sub_id))
        except SubscriptionError as exc:
            _LOGGER.warning("Updating measurements for %s failed: %s", sub_id, exc)
            return None

    # ------------------------------------------------------------------
    # → NonExistent
    # ------------------------------------------------------------------
    async def request_unsubscribe(self, email: str, *, now: Optional[datetime] = None) -> bool:
        """Mail a short-lived unsubscribe code to a confirmed subscriber."""
        if not isinstance(email, str) or not email.strip():
            return False
        try:
            sub = await db.select_subscriber(ByEmail(value=email.strip()))
            if sub is None or not sub.confirmed:
                return False
            row = await code_authority.issue(CodePurpose.UNSUBSCRIBE, sub.id, now=now)
        except SubscriptionError as exc:
            _LOGGER.warning("Unsubscribe request failed: %s", exc)
            return False
        return self.outbox.enqueue(NotificationKind.UNSUBSCRIBE_CONFIRM, sub.email, sub.id, row.code)

    async def unsubscribe(self, sub_id: int) -> bool:
        if not _is_id(sub_id):
            return False
        try:
            deleted = await db.delete_subscriber(ById(value=sub_id))
        except SubscriptionError as exc:
            _LOGGER.warning("Unsubscribing %s failed: %s", sub_id, exc)
            return False
        if deleted:
            _LOGGER.info("Subscriber %s unsubscribed", sub_id)
        return deleted == 1

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------
    async def is_valid_id(self, sub_id: int) -> bool:
        if not _is_id(sub_id):
            return False
        try:
            return await db.select_subscriber(ById(value=sub_id)) is not None
        except SubscriptionError:
            return False

    async def get_measurements(self, sub_id: int) -> dict | None:
        """Stored measurements in calculator input format."""
        if not _is_id(sub_id):
            return None
        try:
            row = await db.select_measurements(BySubscriberId(value=sub_id))
        except SubscriptionError as exc:
            _LOGGER.warning("Reading measurements for %s failed: %s", sub_id, exc)
            return None
        return units.to_input_format(row) if row is not None else None

    async def get_pending_measurements(self, sub_id: int, *, now: Optional[datetime] = None) -> dict | None:
        """Staged (not yet approved) measurements in calculator input format."""
        if not _is_id(sub_id):
            return None
        try:
            row = await db.select_code(
                CodePurpose.PENDING_UPDATE, BySubscriberId(value=sub_id), live_at=now or db.utcnow()
            )
        except SubscriptionError as exc:
            _LOGGER.warning("Reading pending update for %s failed: %s", sub_id, exc)
            return None
        return units.to_input_format(row) if row is not None else None


engine = LifecycleEngine()
