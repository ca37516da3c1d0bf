import pytest

import db
from app.services import notifications
from app.services.notifications import NotificationQueue, compose
from app.types.subscription_contract import NotificationKind, NotificationRequest
from app.utils import email as email_util
from app.workers import notifier


@pytest.mark.asyncio
async def test_queue_is_bounded_and_fifo():
    outbox = NotificationQueue(maxsize=2)

    assert outbox.enqueue(NotificationKind.SIGNUP_CONFIRM, "a@b.com", 1, 11111111)
    assert outbox.enqueue(NotificationKind.UPDATE_REMINDER, "c@d.com", 2, 22222222)
    assert not outbox.enqueue(NotificationKind.UPDATE_REMINDER, "e@f.com", 3, 33333333)
    assert len(outbox) == 2

    seen = []

    async def send(request):
        seen.append(request.subscriber_id)
        return True

    assert await outbox.drain(send) == 2
    assert seen == [1, 2]
    assert len(outbox) == 0


def test_incomplete_request_is_rejected():
    outbox = NotificationQueue(maxsize=5)

    assert not outbox.enqueue(NotificationKind.SIGNUP_CONFIRM, None, 1, 11111111)
    assert not outbox.enqueue(NotificationKind.SIGNUP_CONFIRM, "a@b.com", 1, None)
    assert len(outbox) == 0


@pytest.mark.asyncio
async def test_failed_send_does_not_stop_the_batch():
    outbox = NotificationQueue(maxsize=5)
    for sub_id in (1, 2, 3):
        outbox.enqueue(NotificationKind.UPDATE_REMINDER, f"s{sub_id}@b.com", sub_id, 10000000 + sub_id)

    async def send(request):
        if request.subscriber_id == 2:
            raise RuntimeError("transport down")
        return request.subscriber_id != 3

    assert await outbox.drain(send) == 1
    assert len(outbox) == 0


@pytest.mark.asyncio
async def test_dispatch_hands_request_to_celery(monkeypatch):
    from app.celery_app import celery_app

    calls = []
    monkeypatch.setattr(celery_app, "send_task", lambda name, **kw: calls.append((name, kw)))
    request = NotificationRequest(
        kind=NotificationKind.UNSUBSCRIBE_CONFIRM, recipient="a@b.com", subscriber_id=4, code=12345678
    )

    assert await notifications.dispatch(request)

    [(name, kwargs)] = calls
    assert name == "app.workers.notifier.deliver"
    assert kwargs["queue"] == "notify"
    assert kwargs["args"][0]["kind"] == "unsubscribe-confirm"


@pytest.mark.parametrize(
    "kind, path",
    [
        (NotificationKind.SIGNUP_CONFIRM, "user/confirm/7/12345678"),
        (NotificationKind.UPDATE_CONFIRM, "update/review/7/12345678"),
        (NotificationKind.UPDATE_REMINDER, "update/7/12345678"),
        (NotificationKind.UNSUBSCRIBE_CONFIRM, "unsubscribe/7/12345678"),
    ],
)
def test_compose_links_to_the_right_page(kind, path):
    request = NotificationRequest(kind=kind, recipient="a@b.com", subscriber_id=7, code=12345678)

    subject, body = compose(request)

    assert subject
    assert notifications._link(path) in body


def test_deliver_sends_and_records(monkeypatch):
    sent, logged = [], []
    monkeypatch.setattr(email_util, "send_email", lambda to, subject, body: sent.append((to, subject)))

    async def fake_insert(category, recipient, subject, contents, **_kw):
        logged.append((category, recipient))

    monkeypatch.setattr(db, "insert_email_sent", fake_insert)
    payload = NotificationRequest(
        kind=NotificationKind.UPDATE_REMINDER, recipient="a@b.com", subscriber_id=7, code=12345678
    ).model_dump(mode="json")

    notifier.deliver.apply(args=[payload]).get()

    assert [to for to, _ in sent] == ["a@b.com"]
    assert logged == [("update-reminder", "a@b.com")]
