"""
Async persistence gateway for the subscription core.
Uses SQLAlchemy 2.0 + asyncpg driver – no raw SQL strings in app code.

Every helper takes an optional ``session``: pass the one yielded by
``transaction()`` to make the call part of a larger all-or-nothing unit,
or omit it to run the call in its own short transaction.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import date, datetime, time, timedelta, timezone
from typing import AsyncIterator, Sequence

from sqlalchemy import delete, event, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.types.errors import Conflict, NotFound, TransactionAborted, ValidationFailure
from app.types.subscription_contract import (
    ByCode,
    ByEmail,
    ById,
    BySubscriberId,
    CodePurpose,
    MeasurementValues,
)
from db.models import (
    CODE_MODELS,
    Base,
    CodeRow,
    EmailSent,
    Frequency,
    Measurements,
    ScheduledReminder,
    Subscriber,
)

_LOGGER = logging.getLogger(__name__)

FREQUENCIES: tuple[tuple[int, str, int], ...] = (
    (1, "monthly", 30),
    (2, "bimonthly", 60),
    (3, "quarterly", 90),
    (4, "biannually", 182),
    (5, "yearly", 365),
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive values read back from stores without tz support."""
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


# ──────────────────────────────────────────────────────────────────────
# 1. Lazy engine / session factory
# ──────────────────────────────────────────────────────────────────────
_engine = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def _build_url() -> str:
    url = os.getenv("DATABASE_URL") or os.getenv("DATABASE_PUBLIC_URL")
    if not url:
        raise RuntimeError("DATABASE_URL not set")
    if url.startswith("sqlite"):
        return url
    if "+asyncpg" not in url:
        url = url.replace("postgres://", "postgresql+asyncpg://", 1).replace(
            "postgresql://", "postgresql+asyncpg://", 1
        )
    return url


def _enable_sqlite_foreign_keys(dbapi_conn, _record) -> None:
    # SQLite ignores ON DELETE CASCADE unless asked per connection.
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine():
    global _engine
    if _engine is None:
        url = _build_url()
        if url.startswith("sqlite"):
            _engine = create_async_engine(
                url, poolclass=StaticPool, connect_args={"check_same_thread": False}
            )
            event.listen(_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        else:
            _engine = create_async_engine(url, pool_size=5, max_overflow=5)
    return _engine


def _get_session_maker() -> async_sessionmaker[AsyncSession]:
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_maker


@asynccontextmanager
async def transaction() -> AsyncIterator[AsyncSession]:
    """BEGIN … COMMIT around the block; ROLLBACK on any error.

    The connection goes back to the pool on every exit path. Store errors are
    re-raised as ``Conflict`` (unique/foreign-key violations) or
    ``TransactionAborted`` (everything else).
    """
    async with _get_session_maker()() as session:
        try:
            async with session.begin():
                yield session
        except IntegrityError as exc:
            raise Conflict(str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            raise TransactionAborted(str(exc)) from exc


@asynccontextmanager
async def _using(session: AsyncSession | None) -> AsyncIterator[AsyncSession]:
    if session is not None:
        yield session
    else:
        async with transaction() as s:
            yield s


async def create_all():
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_all():
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def dispose_engine():
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None


# ──────────────────────────────────────────────────────────────────────
# 2. Query-intent resolution
# ──────────────────────────────────────────────────────────────────────
_LOOKUP_COLUMNS = {
    ById: "id",
    ByEmail: "email",
    BySubscriberId: "sub_id",
    ByCode: "code",
}


def _where(model, lookup):
    """Resolve a lookup against *model* before any SQL is built."""
    column_name = _LOOKUP_COLUMNS.get(type(lookup))
    column = getattr(model, column_name, None) if column_name else None
    if column is None:
        raise ValidationFailure(f"{model.__tablename__} cannot be looked up by {getattr(lookup, 'kind', lookup)!r}")
    return column == lookup.value


# ──────────────────────────────────────────────────────────────────────
# 3. Frequency (read-only reference data)
# ──────────────────────────────────────────────────────────────────────

async def seed_frequencies(session: AsyncSession | None = None):
    async with _using(session) as s:
        existing = set((await s.execute(select(Frequency.id))).scalars())
        for freq_id, descriptor, num_days in FREQUENCIES:
            if freq_id not in existing:
                s.add(Frequency(id=freq_id, descriptor=descriptor, num_days=num_days))


async def get_frequency(descriptor: str, session: AsyncSession | None = None) -> Frequency | None:
    async with _using(session) as s:
        res = await s.execute(select(Frequency).where(Frequency.descriptor == descriptor))
        return res.scalar_one_or_none()


async def get_frequency_by_id(freq_id: int, session: AsyncSession | None = None) -> Frequency | None:
    async with _using(session) as s:
        return await s.get(Frequency, freq_id)


# ──────────────────────────────────────────────────────────────────────
# 4. Subscriber
# ──────────────────────────────────────────────────────────────────────

async def select_subscriber(lookup, session: AsyncSession | None = None) -> Subscriber | None:
    criterion = _where(Subscriber, lookup)
    async with _using(session) as s:
        res = await s.execute(select(Subscriber).where(criterion))
        return res.scalar_one_or_none()


async def insert_subscriber(session: AsyncSession, email: str, freq_id: int) -> Subscriber:
    sub = Subscriber(email=email, freq_id=freq_id, confirmed=False)
    session.add(sub)
    await session.flush()
    return sub


async def mark_confirmed(session: AsyncSession, sub_id: int, now: datetime) -> int:
    """Flip ``confirmed`` false→true; returns 0 when it was already true."""
    res = await session.execute(
        update(Subscriber)
        .where(Subscriber.id == sub_id, Subscriber.confirmed.is_(False))
        .values(confirmed=True, date_confirmed=now)
    )
    return res.rowcount


async def delete_subscriber(lookup, session: AsyncSession | None = None) -> int:
    """Delete a subscriber; measurements, codes and reminder cascade."""
    criterion = _where(Subscriber, lookup)
    async with _using(session) as s:
        res = await s.execute(delete(Subscriber).where(criterion))
        return res.rowcount


async def delete_pending_subscriber(sub_id: int, session: AsyncSession | None = None) -> int:
    """Delete a subscriber only while still unconfirmed; 0 once confirmed."""
    async with _using(session) as s:
        res = await s.execute(
            delete(Subscriber).where(Subscriber.id == sub_id, Subscriber.confirmed.is_(False))
        )
        return res.rowcount


# ──────────────────────────────────────────────────────────────────────
# 5. Measurements
# ──────────────────────────────────────────────────────────────────────

async def select_measurements(lookup, session: AsyncSession | None = None) -> Measurements | None:
    criterion = _where(Measurements, lookup)
    async with _using(session) as s:
        res = await s.execute(select(Measurements).where(criterion))
        return res.scalar_one_or_none()


async def insert_measurements(
    session: AsyncSession, sub_id: int, values: MeasurementValues, now: datetime
) -> Measurements:
    row = Measurements(sub_id=sub_id, date_last_updated=now, **values.columns())
    session.add(row)
    await session.flush()
    return row


async def replace_measurements(
    session: AsyncSession, sub_id: int, values: MeasurementValues, now: datetime
) -> None:
    """Overwrite every measurement column of the subscriber's single row."""
    res = await session.execute(
        update(Measurements)
        .where(Measurements.sub_id == sub_id)
        .values(date_last_updated=now, **values.columns())
    )
    if res.rowcount != 1:
        raise NotFound(f"no measurements for subscriber {sub_id}")


async def update_measurement_column(session: AsyncSession, sub_id: int, column: str, value) -> None:
    await session.execute(
        update(Measurements).where(Measurements.sub_id == sub_id).values({column: value})
    )


async def touch_measurements(session: AsyncSession, sub_id: int, now: datetime) -> None:
    await session.execute(
        update(Measurements).where(Measurements.sub_id == sub_id).values(date_last_updated=now)
    )


# ──────────────────────────────────────────────────────────────────────
# 6. One-time codes (all four variants)
# ──────────────────────────────────────────────────────────────────────

def _code_model(purpose: CodePurpose):
    return CODE_MODELS[CodePurpose(purpose)]


async def select_code(
    purpose: CodePurpose,
    lookup,
    session: AsyncSession | None = None,
    live_at: datetime | None = None,
) -> CodeRow | None:
    """Fetch a code row; with ``live_at`` expired rows are ignored."""
    model = _code_model(purpose)
    stmt = select(model).where(_where(model, lookup))
    if live_at is not None:
        stmt = stmt.where(model.date_expires > live_at)
    async with _using(session) as s:
        res = await s.execute(stmt)
        return res.scalar_one_or_none()


async def insert_code(
    session: AsyncSession,
    purpose: CodePurpose,
    sub_id: int,
    code: int,
    created: datetime,
    expires: datetime,
    payload: MeasurementValues | None = None,
) -> CodeRow:
    model = _code_model(purpose)
    extra = payload.columns() if payload is not None else {}
    row = model(sub_id=sub_id, code=code, date_created=created, date_expires=expires, **extra)
    session.add(row)
    await session.flush()
    return row


async def update_code_value(
    session: AsyncSession,
    purpose: CodePurpose,
    sub_id: int,
    code: int,
    created: datetime,
    expires: datetime,
) -> CodeRow | None:
    """Rewrite the subscriber's existing row in place (upsert's update half)."""
    model = _code_model(purpose)
    res = await session.execute(
        update(model)
        .where(model.sub_id == sub_id)
        .values(code=code, date_created=created, date_expires=expires)
    )
    if res.rowcount != 1:
        return None
    return await select_code(purpose, BySubscriberId(value=sub_id), session=session)


async def delete_code(purpose: CodePurpose, lookup, session: AsyncSession | None = None) -> int:
    model = _code_model(purpose)
    criterion = _where(model, lookup)
    async with _using(session) as s:
        res = await s.execute(delete(model).where(criterion))
        return res.rowcount


async def select_expired_codes(
    purpose: CodePurpose, now: datetime, session: AsyncSession | None = None
) -> Sequence[CodeRow]:
    model = _code_model(purpose)
    async with _using(session) as s:
        res = await s.execute(select(model).where(model.date_expires < now).order_by(model.date_expires))
        return res.scalars().all()


# ──────────────────────────────────────────────────────────────────────
# 7. Scheduled reminders
# ──────────────────────────────────────────────────────────────────────

async def insert_scheduled_reminder(session: AsyncSession, sub_id: int, when: datetime) -> ScheduledReminder:
    row = ScheduledReminder(sub_id=sub_id, date_scheduled=when)
    session.add(row)
    await session.flush()
    return row


async def select_scheduled_reminder(lookup, session: AsyncSession | None = None) -> ScheduledReminder | None:
    criterion = _where(ScheduledReminder, lookup)
    async with _using(session) as s:
        res = await s.execute(select(ScheduledReminder).where(criterion))
        return res.scalar_one_or_none()


async def select_reminders_due_by(day: date, session: AsyncSession | None = None) -> Sequence[ScheduledReminder]:
    """All reminders dated on or before *day* (UTC calendar day).

    Overdue rows are included so a day of failed cycles is picked up later.
    """
    end = datetime.combine(day, time.min, tzinfo=timezone.utc) + timedelta(days=1)
    async with _using(session) as s:
        res = await s.execute(
            select(ScheduledReminder)
            .where(ScheduledReminder.date_scheduled < end)
            .order_by(ScheduledReminder.date_scheduled)
        )
        return res.scalars().all()


async def advance_scheduled_reminder(
    sub_id: int, days: int, session: AsyncSession | None = None
) -> ScheduledReminder | None:
    """Push the reminder forward by exactly *days* from its stored date."""
    async with _using(session) as s:
        row = await s.get(ScheduledReminder, sub_id)
        if row is None:
            return None
        row.date_scheduled = as_utc(row.date_scheduled) + timedelta(days=days)
        await s.flush()
        return row


# ──────────────────────────────────────────────────────────────────────
# 8. Sent-email audit log
# ──────────────────────────────────────────────────────────────────────

async def insert_email_sent(
    category: str,
    recipient: str,
    subject: str,
    contents: str,
    date_sent: datetime | None = None,
    session: AsyncSession | None = None,
) -> EmailSent:
    row = EmailSent(
        category=category,
        recipient=recipient,
        subject=subject,
        contents=contents,
        date_sent=date_sent or utcnow(),
    )
    async with _using(session) as s:
        s.add(row)
        await s.flush()
    return row
