from __future__ import annotations

"""One-shot sweep for hosts without a Celery beat process.
Run via a platform cron schedule:
    python -m app.scripts.scan_due_reminders
"""

import asyncio

import db
from app.types.subscription_contract import CodePurpose
from app.workers.reaper import reap_expired
from app.workers.scheduler import schedule_reminders


async def main() -> None:
    now = db.utcnow()
    try:
        sent = await schedule_reminders(now)
        print("Reminders enqueued", sent)
        for purpose in CodePurpose:
            deleted = await reap_expired(purpose, now)
            if deleted:
                print("Expired rows deleted", purpose.value, deleted)
    finally:
        await db.dispose_engine()


if __name__ == "__main__":  # pragma: no cover
    print("[CRON] scan_due_reminders: job started")
    try:
        asyncio.run(main())
        print("[CRON] scan_due_reminders: job completed successfully")
    except Exception as e:
        print(f"[CRON] scan_due_reminders: job failed: {e}")
