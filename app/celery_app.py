"""Celery application instance shared across the backend.

Start a worker (with the beat scheduler embedded) with:
    celery -A app.celery_app worker -B -Q celery,notify -l info --concurrency=1
"""

from celery import Celery

from config import settings
from app.types.subscription_contract import CodePurpose

BROKER_URL = settings.REDIS_URL

celery_app = Celery("bmr_reminders", broker=BROKER_URL, backend=BROKER_URL)

# Global task settings
celery_app.conf.task_acks_late = True
celery_app.conf.task_reject_on_worker_lost = True
celery_app.conf.task_default_retry_delay = 30  # seconds

celery_app.conf.task_routes = {
    "app.workers.notifier.deliver": {"queue": "notify"},
}

# Beat schedule: one named recurring task per job, each with its own period
celery_app.conf.beat_schedule = {
    "schedule-reminders": {
        "task": "app.workers.scheduler.schedule",
        "schedule": settings.REMINDER_SCAN_INTERVAL,
    },
    "reap-confirmation-codes": {
        "task": "app.workers.reaper.reap",
        "schedule": settings.REAP_CONFIRMATION_INTERVAL,
        "args": (CodePurpose.CONFIRMATION.value,),
    },
    "reap-update-codes": {
        "task": "app.workers.reaper.reap",
        "schedule": settings.REAP_UPDATE_INTERVAL,
        "args": (CodePurpose.UPDATE.value,),
    },
    "reap-pending-updates": {
        "task": "app.workers.reaper.reap",
        "schedule": settings.REAP_PENDING_INTERVAL,
        "args": (CodePurpose.PENDING_UPDATE.value,),
    },
    "reap-unsubscribe-codes": {
        "task": "app.workers.reaper.reap",
        "schedule": settings.REAP_UNSUBSCRIBE_INTERVAL,
        "args": (CodePurpose.UNSUBSCRIBE.value,),
    },
}

# --- Ensure tasks are registered ---
import app.workers.notifier
import app.workers.reaper
import app.workers.scheduler
