from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.types.subscription_contract import CodePurpose, MeasurementSystem, Sex


def _enum(cls, name: str) -> Enum:
    return Enum(cls, name=name, native_enum=False, values_callable=lambda e: [m.value for m in e])


class Base(DeclarativeBase):
    pass


class Frequency(Base):
    __tablename__ = "frequency"

    id:         Mapped[int] = mapped_column(Integer, primary_key=True)
    descriptor: Mapped[str] = mapped_column(String(32), unique=True)
    num_days:   Mapped[int]


class Subscriber(Base):
    __tablename__ = "subscriber"

    id:             Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email:          Mapped[str] = mapped_column(String(320), unique=True)
    freq_id:        Mapped[int] = mapped_column(ForeignKey("frequency.id"))
    confirmed:      Mapped[bool] = mapped_column(default=False)
    date_confirmed: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class _MeasurementColumns:
    sex:             Mapped[Sex] = mapped_column(_enum(Sex, "sex"))
    age:             Mapped[int]
    measurement_sys: Mapped[MeasurementSystem] = mapped_column(_enum(MeasurementSystem, "measurement_sys"))
    weight_value:    Mapped[float]
    height_value:    Mapped[float]
    est_bmr:         Mapped[int]
    est_tdee:        Mapped[int]


class Measurements(_MeasurementColumns, Base):
    __tablename__ = "subscriber_measurements"

    sub_id:            Mapped[int] = mapped_column(
        ForeignKey("subscriber.id", ondelete="CASCADE"), primary_key=True
    )
    date_last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class _CodeColumns:
    """One live code per subscriber: ``sub_id`` is the primary key."""

    sub_id:       Mapped[int] = mapped_column(ForeignKey("subscriber.id", ondelete="CASCADE"), primary_key=True)
    code:         Mapped[int] = mapped_column(Integer, unique=True)
    date_created: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    date_expires: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)


class ConfirmationCode(_CodeColumns, Base):
    __tablename__ = "confirmation_code"


class UpdateCode(_CodeColumns, Base):
    __tablename__ = "update_code"


class UnsubscribeCode(_CodeColumns, Base):
    __tablename__ = "unsubscribe_code"


class PendingUpdate(_CodeColumns, _MeasurementColumns, Base):
    __tablename__ = "pending_update"


class ScheduledReminder(Base):
    __tablename__ = "scheduled_reminder"

    sub_id:         Mapped[int] = mapped_column(ForeignKey("subscriber.id", ondelete="CASCADE"), primary_key=True)
    date_scheduled: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)


class EmailSent(Base):
    __tablename__ = "email_sent"

    id:        Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    date_sent: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    category:  Mapped[str] = mapped_column(String(32))
    recipient: Mapped[str] = mapped_column(String(320))
    subject:   Mapped[str] = mapped_column(Text)
    contents:  Mapped[str] = mapped_column(Text)


CodeRow = ConfirmationCode | UpdateCode | UnsubscribeCode | PendingUpdate

CODE_MODELS: dict[CodePurpose, type] = {
    CodePurpose.CONFIRMATION: ConfirmationCode,
    CodePurpose.UPDATE: UpdateCode,
    CodePurpose.UNSUBSCRIBE: UnsubscribeCode,
    CodePurpose.PENDING_UPDATE: PendingUpdate,
}
