"""
One-time code authority.

Issues, validates and revokes the 8-digit codes mailed to subscribers. Each
code belongs to exactly one subscriber and one purpose (table). Values are
unique per table; a clash is resampled up to ``MAX_ATTEMPTS`` times and
then reported as ``CodeSpaceExhausted``.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import RetryError, retry, retry_if_exception_type, stop_after_attempt

import db
from app.types.errors import CodeSpaceExhausted, SubscriptionError, ValidationFailure
from app.types.subscription_contract import ByCode, BySubscriberId, CodePurpose, MeasurementValues

_LOGGER = logging.getLogger(__name__)

CODE_MIN = 10_000_000
CODE_MAX = 99_999_999
MAX_ATTEMPTS = 15

EXPIRY_WINDOWS: dict[CodePurpose, timedelta] = {
    CodePurpose.CONFIRMATION: timedelta(days=7),
    CodePurpose.UPDATE: timedelta(days=7),
    CodePurpose.UNSUBSCRIBE: timedelta(minutes=30),
    CodePurpose.PENDING_UPDATE: timedelta(minutes=30),
}

# Variants rewritten in place instead of inserted twice.
UPSERT_PURPOSES = frozenset({CodePurpose.UPDATE, CodePurpose.UNSUBSCRIBE})

_rng = random.SystemRandom()


def draw_code() -> int:
    return _rng.randint(CODE_MIN, CODE_MAX)


class _CodeTaken(Exception):
    pass


@retry(stop=stop_after_attempt(MAX_ATTEMPTS), retry=retry_if_exception_type(_CodeTaken))
async def _free_code(purpose: CodePurpose, session: AsyncSession) -> int:
    code = draw_code()
    if await db.select_code(purpose, ByCode(value=code), session=session) is not None:
        raise _CodeTaken(code)
    return code


async def _issue(
    session: AsyncSession,
    purpose: CodePurpose,
    sub_id: int,
    payload: MeasurementValues | None,
    now: datetime,
):
    try:
        code = await _free_code(purpose, session)
    except RetryError as exc:
        raise CodeSpaceExhausted(
            f"no free {purpose.value} value after {MAX_ATTEMPTS} attempts"
        ) from exc

    expires = now + EXPIRY_WINDOWS[purpose]
    if purpose in UPSERT_PURPOSES:
        row = await db.update_code_value(session, purpose, sub_id, code, now, expires)
        if row is not None:
            return row
    return await db.insert_code(session, purpose, sub_id, code, now, expires, payload)


async def issue(
    purpose: CodePurpose,
    sub_id: int,
    payload: MeasurementValues | None = None,
    *,
    session: AsyncSession | None = None,
    now: datetime | None = None,
):
    """Create (or for update/unsubscribe codes, refresh) the subscriber's code.

    ``payload`` carries the staged measurements and is required for
    ``PENDING_UPDATE``. Raises ``CodeSpaceExhausted`` or a store error; when
    ``session`` is given the caller's transaction rolls back as a whole.
    """
    purpose = CodePurpose(purpose)
    if purpose is CodePurpose.PENDING_UPDATE and payload is None:
        raise ValidationFailure("a pending update needs staged measurements")
    now = now or db.utcnow()
    if session is not None:
        return await _issue(session, purpose, sub_id, payload, now)
    async with db.transaction() as s:
        return await _issue(s, purpose, sub_id, payload, now)


async def obtain(
    purpose: CodePurpose,
    sub_id: int,
    *,
    session: AsyncSession | None = None,
    now: datetime | None = None,
):
    """Return the subscriber's live code for *purpose*, issuing one if needed."""
    now = now or db.utcnow()
    live = await db.select_code(purpose, BySubscriberId(value=sub_id), session=session, live_at=now)
    if live is not None:
        return live
    return await issue(purpose, sub_id, session=session, now=now)


def _is_code(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


async def validate(purpose: CodePurpose, code, now: datetime | None = None) -> bool:
    """True iff a live row holds *code*. Ownership is not checked here."""
    if not _is_code(code):
        return False
    try:
        row = await db.select_code(purpose, ByCode(value=code), live_at=now or db.utcnow())
    except SubscriptionError as exc:
        _LOGGER.warning("Code lookup failed for %s: %s", CodePurpose(purpose).value, exc)
        return False
    return row is not None


async def belongs_to(purpose: CodePurpose, code, sub_id) -> bool:
    """True iff the row holding *code* was issued to *sub_id*."""
    if not _is_code(code) or not _is_code(sub_id):
        return False
    try:
        row = await db.select_code(purpose, ByCode(value=code))
    except SubscriptionError as exc:
        _LOGGER.warning("Code lookup failed for %s: %s", CodePurpose(purpose).value, exc)
        return False
    return row is not None and row.sub_id == sub_id


async def verify(purpose: CodePurpose, code, sub_id, now: datetime | None = None) -> bool:
    """Two-factor check required before acting on a code from outside."""
    return await validate(purpose, code, now=now) and await belongs_to(purpose, code, sub_id)


async def revoke(purpose: CodePurpose, lookup, *, session: AsyncSession | None = None) -> int:
    """Delete by ``ByCode`` or ``BySubscriberId``; returns 0 or 1."""
    return await db.delete_code(purpose, lookup, session=session)
