"""Mock OTP delivery API — stands in for the remote messaging service.

Endpoints
---------
POST /otp/send   → "deliver" a code (logged, nothing is sent)

Mounted only outside production; point ``OTP_REMOTE_BASE_URL`` at
``http://<host>/external/v1`` to use it.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter
from pydantic import BaseModel

from auth_gateway.models.records import ContactKind

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/external/v1", tags=["mock-external-api"])


# ── Request / response models ────────────────────────────

class OTPSendRequest(BaseModel):
    type: ContactKind
    contact: str
    otp: str


class OTPSendResponse(BaseModel):
    success: bool
    message: str


# ── Endpoints ────────────────────────────────────────────

@router.post("/otp/send", response_model=OTPSendResponse)
async def send_otp(body: OTPSendRequest):
    """Pretend to dispatch an SMS/email; the code only goes to the log."""
    logger.info("📧 OTP for %s (%s): %s", body.contact, body.type.value, body.otp)
    return OTPSendResponse(success=True, message=f"OTP sent to {body.contact}")
