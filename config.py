import os

from dotenv import load_dotenv

load_dotenv()


class Settings:
    # --- Database ---
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_PUBLIC_URL = os.environ.get("DATABASE_PUBLIC_URL")

    # --- Redis (Celery broker / result backend) ---
    REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

    # --- Links embedded in outgoing emails ---
    BASE_URL = os.environ.get("BASE_URL", "http://localhost:8000/")

    # --- SMTP transport ---
    SMTP_HOST = os.environ.get("SMTP_HOST")
    SMTP_PORT = int(os.environ.get("SMTP_PORT", "587"))
    SMTP_USERNAME = os.environ.get("SMTP_USERNAME")
    SMTP_PASSWORD = os.environ.get("SMTP_PASSWORD")
    EMAIL_FROM = os.environ.get("EMAIL_FROM")

    # --- Background task periods (seconds) ---
    REMINDER_SCAN_INTERVAL = float(os.environ.get("REMINDER_SCAN_INTERVAL", "3600"))
    REAP_CONFIRMATION_INTERVAL = float(os.environ.get("REAP_CONFIRMATION_INTERVAL", "1800"))
    REAP_UPDATE_INTERVAL = float(os.environ.get("REAP_UPDATE_INTERVAL", "1800"))
    REAP_PENDING_INTERVAL = float(os.environ.get("REAP_PENDING_INTERVAL", "60"))
    REAP_UNSUBSCRIBE_INTERVAL = float(os.environ.get("REAP_UNSUBSCRIBE_INTERVAL", "60"))

    # --- Outbound notification queue ---
    OUTBOX_MAXSIZE = int(os.environ.get("OUTBOX_MAXSIZE", "1000"))


settings = Settings()
