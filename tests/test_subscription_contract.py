import pytest
from pydantic import TypeAdapter, ValidationError

import db
from app.types.errors import ValidationFailure
from app.types.subscription_contract import (
    ByCode,
    ByEmail,
    ById,
    Lookup,
    MeasurementUpdate,
    MeasurementValues,
    NewSubscriber,
)


def _form(**overrides):
    data = {
        "email": "  a@b.com ",
        "freq": "monthly",
        "sex": "female",
        "age": 41,
        "measurement_sys": "metric",
        "weight": 61.5,
        "height": 165,
        "est_bmr": 1300,
        "est_tdee": 1800,
    }
    data.update(overrides)
    return data


def test_new_subscriber_accepts_loose_keys():
    sub = NewSubscriber.model_validate(_form())

    assert sub.email == "a@b.com"
    assert sub.weight_value == 61.5
    assert sub.height_value == 165.0
    assert set(sub.columns()) == {
        "sex", "age", "measurement_sys", "weight_value", "height_value", "est_bmr", "est_tdee",
    }


def test_new_subscriber_keeps_email_case():
    assert NewSubscriber.model_validate(_form(email="Mixed@Case.org")).email == "Mixed@Case.org"


@pytest.mark.parametrize(
    "overrides",
    [
        {"email": ""},
        {"email": "no-at-sign"},
        {"freq": " "},
        {"age": 0},
        {"weight": -1},
        {"sex": "other"},
        {"measurement_sys": "cubits"},
    ],
)
def test_new_subscriber_rejects_bad_fields(overrides):
    with pytest.raises(ValidationError):
        NewSubscriber.model_validate(_form(**overrides))


def test_measurement_values_needs_every_field():
    data = _form()
    del data["est_tdee"]
    with pytest.raises(ValidationError):
        MeasurementValues.model_validate(data)


def test_measurement_update_reports_only_present_fields():
    update = MeasurementUpdate.model_validate({"age": 42, "weight": 60})

    assert update.present() == {"age": 42, "weight_value": 60.0}


def test_lookup_is_discriminated_by_kind():
    adapter = TypeAdapter(Lookup)

    assert isinstance(adapter.validate_python({"kind": "email", "value": "a@b.com"}), ByEmail)
    assert isinstance(adapter.validate_python({"kind": "code", "value": 12345678}), ByCode)
    with pytest.raises(ValidationError):
        adapter.validate_python({"kind": "phone", "value": "555"})


def test_lookup_values_are_strict():
    with pytest.raises(ValidationError):
        ById(value="1")
    with pytest.raises(ValidationError):
        ByEmail(value=1)


@pytest.mark.asyncio
async def test_unsupported_lookup_is_rejected_before_querying():
    with pytest.raises(ValidationFailure):
        await db.select_measurements(ByEmail(value="a@b.com"))
    with pytest.raises(ValidationFailure):
        await db.select_subscriber(ByCode(value=12345678))
