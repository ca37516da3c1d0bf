import asyncio
import logging
from typing import Any, Dict

from fastapi import Body, FastAPI, HTTPException

import db
from app.services import code_authority
from app.services.lifecycle import engine
from app.services.notifications import dispatch
from app.types.subscription_contract import CodePurpose
from app.utils import units

logging.basicConfig(level=logging.INFO)
_LOGGER = logging.getLogger(__name__)

app = FastAPI()

# Keys that mean the form still carries calculator units
_FORM_KEYS = ("feet", "inches", "lbs", "cm", "kg")


@app.on_event("startup")
async def startup_event():
    # Tables are managed via Alembic migrations
    app.state.outbox_consumer = asyncio.create_task(engine.outbox.run(dispatch))


@app.on_event("shutdown")
async def shutdown_event():
    consumer = getattr(app.state, "outbox_consumer", None)
    if consumer is not None:
        consumer.cancel()
    await db.dispose_engine()


# --------------------------------------------
# Helpers
# --------------------------------------------

def _storage_form(body: Dict[str, Any]) -> Dict[str, Any]:
    if not any(key in body for key in _FORM_KEYS):
        return body
    converted = units.to_storage_format(body)
    if converted is None:
        raise HTTPException(400, "Incomplete measurements")
    return converted


async def _require(purpose: CodePurpose, sub_id: int, code: int) -> None:
    if not await code_authority.verify(purpose, code, sub_id):
        raise HTTPException(400, "Invalid or expired link")


# --------------------------------------------
# Signup and confirmation
# --------------------------------------------

@app.post("/subscribe")
async def subscribe(body: Dict[str, Any] = Body(...)):
    outcome = await engine.request_update(_storage_form(body))
    if outcome is None:
        raise HTTPException(400, "Unable to process request")
    return {"status": outcome.action}


@app.get("/user/confirm/{sub_id}/{code}")
async def review_signup(sub_id: int, code: int):
    await _require(CodePurpose.CONFIRMATION, sub_id, code)
    measurements = await engine.get_measurements(sub_id)
    if measurements is None:
        raise HTTPException(500, "Unable to load measurements")
    return measurements


@app.put("/user/confirm/{sub_id}/{code}")
async def confirm_signup(sub_id: int, code: int):
    await _require(CodePurpose.CONFIRMATION, sub_id, code)
    if not await engine.confirm_subscriber(sub_id):
        raise HTTPException(500, "Unable to confirm subscription")
    return {"status": "confirmed"}


# --------------------------------------------
# Unsubscribe
# --------------------------------------------

@app.post("/unsubscribe")
async def request_unsubscribe(body: Dict[str, Any] = Body(...)):
    email = body.get("email")
    if not isinstance(email, str) or not email.strip():
        raise HTTPException(400, "Email required")
    # Same answer whether or not the address is subscribed
    if not await engine.request_unsubscribe(email.strip()):
        _LOGGER.info("Unsubscribe request not sent for submitted address")
    return {"status": "requested"}


@app.get("/unsubscribe/{sub_id}/{code}")
async def review_unsubscribe(sub_id: int, code: int):
    await _require(CodePurpose.UNSUBSCRIBE, sub_id, code)
    return {"status": "valid"}


@app.delete("/unsubscribe/{sub_id}/{code}")
async def unsubscribe(sub_id: int, code: int):
    await _require(CodePurpose.UNSUBSCRIBE, sub_id, code)
    if not await engine.unsubscribe(sub_id):
        raise HTTPException(500, "Unable to unsubscribe")
    return {"status": "unsubscribed"}


# --------------------------------------------
# Measurement updates
# --------------------------------------------

@app.get("/update/review/{sub_id}/{code}")
async def review_pending_update(sub_id: int, code: int):
    await _require(CodePurpose.PENDING_UPDATE, sub_id, code)
    current = await engine.get_measurements(sub_id)
    pending = await engine.get_pending_measurements(sub_id)
    if current is None or pending is None:
        raise HTTPException(500, "Unable to load measurements")
    return {"current": current, "pending": pending}


@app.put("/update/confirm/{sub_id}/{code}")
async def confirm_pending_update(sub_id: int, code: int):
    await _require(CodePurpose.PENDING_UPDATE, sub_id, code)
    if not await engine.confirm_pending_update(sub_id):
        raise HTTPException(500, "Unable to apply update")
    return {"status": "updated"}


@app.delete("/update/reject/{sub_id}/{code}")
async def reject_pending_update(sub_id: int, code: int):
    await _require(CodePurpose.PENDING_UPDATE, sub_id, code)
    if await engine.reject_pending_update(code) != 1:
        raise HTTPException(500, "Unable to discard update")
    return {"status": "discarded"}


@app.get("/update/{sub_id}/{code}")
async def load_measurements(sub_id: int, code: int):
    await _require(CodePurpose.UPDATE, sub_id, code)
    measurements = await engine.get_measurements(sub_id)
    if measurements is None:
        raise HTTPException(500, "Unable to load measurements")
    return measurements


@app.put("/update/{sub_id}/{code}")
async def save_measurements(sub_id: int, code: int, body: Dict[str, Any] = Body(...)):
    await _require(CodePurpose.UPDATE, sub_id, code)
    row = await engine.update_measurements(sub_id, _storage_form(body))
    if row is None:
        raise HTTPException(500, "Unable to save measurements")
    return units.to_input_format(row)
