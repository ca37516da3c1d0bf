from .db import (
    FREQUENCIES,
    advance_scheduled_reminder,
    as_utc,
    create_all,
    delete_code,
    delete_pending_subscriber,
    delete_subscriber,
    dispose_engine,
    drop_all,
    get_engine,
    get_frequency,
    get_frequency_by_id,
    insert_code,
    insert_email_sent,
    insert_measurements,
    insert_scheduled_reminder,
    insert_subscriber,
    mark_confirmed,
    replace_measurements,
    seed_frequencies,
    select_code,
    select_expired_codes,
    select_measurements,
    select_reminders_due_by,
    select_scheduled_reminder,
    select_subscriber,
    touch_measurements,
    transaction,
    update_code_value,
    update_measurement_column,
    utcnow,
)  # noqa: F401
