"""Pydantic models that define the contract between the HTTP layer, the
lifecycle engine, the background workers and the persistence gateway.

These classes are intentionally framework-agnostic so they can be reused by
workers, API responses, and tests without pulling in FastAPI or database
layers.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional, Union
from typing_extensions import Annotated

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PositiveFloat,
    PositiveInt,
    StrictInt,
    StrictStr,
    field_validator,
)


class Sex(str, Enum):
    MALE = "male"
    FEMALE = "female"


class MeasurementSystem(str, Enum):
    IMPERIAL = "imperial"
    METRIC = "metric"


class CodePurpose(str, Enum):
    """The four one-time-code variants; values double as table names."""

    CONFIRMATION = "confirmation_code"
    UPDATE = "update_code"
    UNSUBSCRIBE = "unsubscribe_code"
    PENDING_UPDATE = "pending_update"


class NotificationKind(str, Enum):
    SIGNUP_CONFIRM = "signup-confirm"
    UPDATE_CONFIRM = "update-confirm"
    UPDATE_REMINDER = "update-reminder"
    UNSUBSCRIBE_CONFIRM = "unsubscribe-confirm"


# ──────────────────────────────
# Measurements
# ──────────────────────────────

MEASUREMENT_FIELDS = (
    "sex",
    "age",
    "measurement_sys",
    "weight_value",
    "height_value",
    "est_bmr",
    "est_tdee",
)


class MeasurementValues(BaseModel):
    """A complete set of stored measurement fields.

    ``weight`` / ``height`` are accepted as aliases of the storage names so
    callers can pass the calculator's loose keys straight through.
    """

    model_config = ConfigDict(populate_by_name=True)

    sex: Sex
    age: PositiveInt
    measurement_sys: MeasurementSystem
    weight_value: PositiveFloat = Field(validation_alias=AliasChoices("weight_value", "weight"))
    height_value: PositiveFloat = Field(validation_alias=AliasChoices("height_value", "height"))
    est_bmr: PositiveInt
    est_tdee: PositiveInt

    def columns(self) -> dict:
        return {name: getattr(self, name) for name in MEASUREMENT_FIELDS}


class NewSubscriber(MeasurementValues):
    email: str
    freq: str

    @field_validator("email")
    def _validate_email(cls, v: str):  # noqa: N805
        # Emails are case-sensitive identifiers here: no lower-casing.
        v = v.strip()
        if not v or "@" not in v:
            raise ValueError("email must be a non-empty address")
        return v

    @field_validator("freq")
    def _validate_freq(cls, v: str):  # noqa: N805
        if not v.strip():
            raise ValueError("freq must be a non-empty descriptor")
        return v.strip()


class MeasurementUpdate(BaseModel):
    """Partial measurement values; absent fields are left untouched."""

    model_config = ConfigDict(populate_by_name=True)

    sex: Optional[Sex] = None
    age: Optional[PositiveInt] = None
    measurement_sys: Optional[MeasurementSystem] = None
    weight_value: Optional[PositiveFloat] = Field(
        default=None, validation_alias=AliasChoices("weight_value", "weight")
    )
    height_value: Optional[PositiveFloat] = Field(
        default=None, validation_alias=AliasChoices("height_value", "height")
    )
    est_bmr: Optional[PositiveInt] = None
    est_tdee: Optional[PositiveInt] = None

    def present(self) -> dict:
        return {name: getattr(self, name) for name in MEASUREMENT_FIELDS if getattr(self, name) is not None}


# ──────────────────────────────
# Query intents
# ──────────────────────────────


class ById(BaseModel):
    kind: Literal["id"] = "id"
    value: StrictInt


class ByEmail(BaseModel):
    kind: Literal["email"] = "email"
    value: StrictStr


class BySubscriberId(BaseModel):
    kind: Literal["sub_id"] = "sub_id"
    value: StrictInt


class ByCode(BaseModel):
    kind: Literal["code"] = "code"
    value: StrictInt


Lookup = Annotated[Union[ById, ByEmail, BySubscriberId, ByCode], Field(discriminator="kind")]


# ──────────────────────────────
# Outbound notifications and outcomes
# ──────────────────────────────


class NotificationRequest(BaseModel):
    kind: NotificationKind
    recipient: str
    subscriber_id: int
    code: int


class UpdateRequestOutcome(BaseModel):
    """What ``request_update`` ended up doing for a submitted email."""

    action: Literal["subscribed", "reissued", "staged"]
    subscriber_id: int
    code: int
