import itertools
from datetime import datetime, timedelta, timezone

import pytest

import db
from app.services import code_authority
from app.types.errors import CodeSpaceExhausted, ValidationFailure
from app.types.subscription_contract import ByCode, BySubscriberId, CodePurpose, MeasurementValues

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


async def _new_subscriber(lifecycle, signup_form, email="a@b.com"):
    sub_id = await lifecycle.subscribe(signup_form(email=email), now=NOW)
    assert sub_id is not None
    return sub_id


@pytest.mark.asyncio
async def test_issue_returns_eight_digit_code_with_expiry(store, lifecycle, signup_form):
    sub_id = await _new_subscriber(lifecycle, signup_form)

    row = await code_authority.issue(CodePurpose.UNSUBSCRIBE, sub_id, now=NOW)

    assert code_authority.CODE_MIN <= row.code <= code_authority.CODE_MAX
    assert row.sub_id == sub_id
    assert db.as_utc(row.date_expires) == NOW + timedelta(minutes=30)


@pytest.mark.asyncio
async def test_repeated_draw_is_resampled(store, lifecycle, signup_form, monkeypatch):
    first = await _new_subscriber(lifecycle, signup_form, "first@b.com")
    second = await _new_subscriber(lifecycle, signup_form, "second@b.com")

    draws = iter([11111111, 11111111, 11111111, 22222222])
    monkeypatch.setattr(code_authority, "draw_code", lambda: next(draws))

    taken = await code_authority.issue(CodePurpose.UPDATE, first, now=NOW)
    fresh = await code_authority.issue(CodePurpose.UPDATE, second, now=NOW)

    assert taken.code == 11111111
    assert fresh.code == 22222222


@pytest.mark.asyncio
async def test_exhausted_code_space_raises(store, lifecycle, signup_form, monkeypatch):
    first = await _new_subscriber(lifecycle, signup_form, "first@b.com")
    second = await _new_subscriber(lifecycle, signup_form, "second@b.com")

    monkeypatch.setattr(code_authority, "draw_code", lambda: 33333333)
    await code_authority.issue(CodePurpose.UPDATE, first, now=NOW)

    calls = itertools.count()

    def always_taken():
        next(calls)
        return 33333333

    monkeypatch.setattr(code_authority, "draw_code", always_taken)
    with pytest.raises(CodeSpaceExhausted):
        await code_authority.issue(CodePurpose.UPDATE, second, now=NOW)
    assert next(calls) == code_authority.MAX_ATTEMPTS
    assert await db.select_code(CodePurpose.UPDATE, BySubscriberId(value=second)) is None


@pytest.mark.asyncio
async def test_codes_are_unique_per_variant_only(store, lifecycle, signup_form, monkeypatch):
    sub_id = await _new_subscriber(lifecycle, signup_form)
    monkeypatch.setattr(code_authority, "draw_code", lambda: 44444444)

    update = await code_authority.issue(CodePurpose.UPDATE, sub_id, now=NOW)
    unsubscribe = await code_authority.issue(CodePurpose.UNSUBSCRIBE, sub_id, now=NOW)

    assert update.code == unsubscribe.code == 44444444


@pytest.mark.asyncio
async def test_validate_respects_expiry(store, lifecycle, signup_form):
    sub_id = await _new_subscriber(lifecycle, signup_form)
    row = await code_authority.issue(CodePurpose.UNSUBSCRIBE, sub_id, now=NOW)

    assert await code_authority.validate(CodePurpose.UNSUBSCRIBE, row.code, now=NOW + timedelta(minutes=29))
    assert not await code_authority.validate(CodePurpose.UNSUBSCRIBE, row.code, now=NOW + timedelta(minutes=31))
    # Same value under another variant is a different code.
    assert not await code_authority.validate(CodePurpose.UPDATE, row.code, now=NOW)


@pytest.mark.asyncio
async def test_validate_rejects_non_integer_codes(store):
    assert not await code_authority.validate(CodePurpose.CONFIRMATION, "12345678", now=NOW)
    assert not await code_authority.validate(CodePurpose.CONFIRMATION, True, now=NOW)
    assert not await code_authority.validate(CodePurpose.CONFIRMATION, None, now=NOW)


@pytest.mark.asyncio
async def test_belongs_to_and_verify(store, lifecycle, signup_form):
    owner = await _new_subscriber(lifecycle, signup_form, "owner@b.com")
    other = await _new_subscriber(lifecycle, signup_form, "other@b.com")
    row = await db.select_code(CodePurpose.CONFIRMATION, BySubscriberId(value=owner))

    assert await code_authority.belongs_to(CodePurpose.CONFIRMATION, row.code, owner)
    assert not await code_authority.belongs_to(CodePurpose.CONFIRMATION, row.code, other)
    assert await code_authority.verify(CodePurpose.CONFIRMATION, row.code, owner, now=NOW)
    assert not await code_authority.verify(CodePurpose.CONFIRMATION, row.code, other, now=NOW)
    assert not await code_authority.verify(CodePurpose.CONFIRMATION, row.code, owner, now=NOW + timedelta(days=8))


@pytest.mark.asyncio
async def test_revoke_reports_rows_deleted(store, lifecycle, signup_form):
    sub_id = await _new_subscriber(lifecycle, signup_form)
    row = await code_authority.issue(CodePurpose.UPDATE, sub_id, now=NOW)

    assert await code_authority.revoke(CodePurpose.UPDATE, ByCode(value=row.code)) == 1
    assert await code_authority.revoke(CodePurpose.UPDATE, ByCode(value=row.code)) == 0
    assert await code_authority.revoke(CodePurpose.UPDATE, BySubscriberId(value=sub_id)) == 0


@pytest.mark.asyncio
async def test_update_code_is_rewritten_in_place(store, lifecycle, signup_form, monkeypatch):
    sub_id = await _new_subscriber(lifecycle, signup_form)
    draws = iter([55555555, 66666666])
    monkeypatch.setattr(code_authority, "draw_code", lambda: next(draws))

    await code_authority.issue(CodePurpose.UPDATE, sub_id, now=NOW)
    later = NOW + timedelta(days=1)
    row = await code_authority.issue(CodePurpose.UPDATE, sub_id, now=later)

    assert row.code == 66666666
    assert db.as_utc(row.date_expires) == later + timedelta(days=7)
    assert await db.select_code(CodePurpose.UPDATE, ByCode(value=55555555)) is None


@pytest.mark.asyncio
async def test_obtain_reuses_live_code(store, lifecycle, signup_form):
    sub_id = await _new_subscriber(lifecycle, signup_form)

    first = await code_authority.obtain(CodePurpose.UPDATE, sub_id, now=NOW)
    again = await code_authority.obtain(CodePurpose.UPDATE, sub_id, now=NOW + timedelta(days=1))
    expired = await code_authority.obtain(CodePurpose.UPDATE, sub_id, now=NOW + timedelta(days=8))

    assert again.code == first.code
    assert db.as_utc(expired.date_expires) == NOW + timedelta(days=15)


@pytest.mark.asyncio
async def test_pending_update_requires_payload(store, lifecycle, signup_form):
    sub_id = await _new_subscriber(lifecycle, signup_form)

    with pytest.raises(ValidationFailure):
        await code_authority.issue(CodePurpose.PENDING_UPDATE, sub_id, now=NOW)

    payload = MeasurementValues.model_validate(signup_form(est_bmr=1900))
    row = await code_authority.issue(CodePurpose.PENDING_UPDATE, sub_id, payload=payload, now=NOW)
    assert row.est_bmr == 1900
