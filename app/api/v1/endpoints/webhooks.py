"""Twilio webhook handlers.

Thin HTTP layer - reply and unsubscribe handling lives in
app.services.stop_conditions.
"""

import logging

from fastapi import APIRouter, Request, HTTPException, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.services.stop_conditions import handle_inbound_sms

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/twilio/sms")
async def twilio_sms_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """Receive inbound SMS replies from leads."""
    form = await request.form()
    from_number = form.get("From", "")
    to_number = form.get("To") or None
    body = (form.get("Body") or "").strip()

    if not from_number:
        raise HTTPException(status_code=400, detail="Missing From")

    logger.info("Inbound SMS from %s: %s", from_number, body[:100])
    result = await handle_inbound_sms(db, from_number, body, to_number=to_number)

    if not result.matched_leads:
        return {"status": "ok", "message": "unknown_sender"}
    return {
        "status": "ok",
        "message": "unsubscribed" if result.unsubscribed else "reply_recorded",
        "leads": [str(lead_id) for lead_id in result.matched_leads],
        "canceled_enrollments": result.canceled,
    }
