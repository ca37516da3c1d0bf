"""Convert between calculator input (feet/inches/lbs or cm/kg) and the
stored ``height_value`` / ``weight_value`` pair."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from app.services import calculator
from app.types.subscription_contract import MEASUREMENT_FIELDS, MeasurementSystem


def to_storage_format(form: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    """Return a copy of *form* with storage fields filled in, or None if incomplete.

    Imperial heights are stored in total inches, metric heights in cm. When
    ``est_bmr`` / ``est_tdee`` are missing they are computed, the latter only
    if an ``activity_level`` is given.
    """
    sub = dict(form)
    system = form.get("measurement_sys")
    if system == MeasurementSystem.IMPERIAL.value:
        feet, inches, lbs = form.get("feet"), form.get("inches"), form.get("lbs")
        if not feet or inches is None or not lbs:
            return None
        sub["weight_value"] = lbs
        sub["height_value"] = feet * 12 + inches
    elif system == MeasurementSystem.METRIC.value:
        cm, kg = form.get("cm"), form.get("kg")
        if not cm or not kg:
            return None
        sub["weight_value"] = kg
        sub["height_value"] = cm
    else:
        return None

    if not sub.get("est_bmr") and form.get("age") and form.get("sex"):
        try:
            if system == MeasurementSystem.IMPERIAL.value:
                sub["est_bmr"] = calculator.calc_bmr_imperial(form["age"], form["sex"], feet, inches, lbs)
            else:
                sub["est_bmr"] = calculator.calc_bmr_metric(form["age"], form["sex"], cm, kg)
        except (KeyError, ValueError):
            return None
    if not sub.get("est_tdee") and sub.get("est_bmr") and form.get("activity_level"):
        try:
            sub["est_tdee"] = calculator.calc_tdee(sub["est_bmr"], form["activity_level"])
        except ValueError:
            return None
    return sub


def to_input_format(row: Any) -> Optional[Dict[str, Any]]:
    """Expand a stored measurements row (ORM object or mapping) for the calculator."""
    if isinstance(row, Mapping):
        values = {name: row.get(name) for name in MEASUREMENT_FIELDS}
    else:
        values = {name: getattr(row, name, None) for name in MEASUREMENT_FIELDS}
    system = values["measurement_sys"]
    system = getattr(system, "value", system)
    values["measurement_sys"] = system
    values["sex"] = getattr(values["sex"], "value", values["sex"])

    if system == MeasurementSystem.IMPERIAL.value:
        height = values["height_value"]
        values["feet"] = int(height // 12)
        values["inches"] = height % 12
        values["lbs"] = values["weight_value"]
    elif system == MeasurementSystem.METRIC.value:
        values["cm"] = values["height_value"]
        values["kg"] = values["weight_value"]
    else:
        return None
    return values
