"""
USSD Router
===========

The USSD gateway (e.g. Africa's Talking) POSTs a form here for every key
press and shows our plain-text reply on the phone.

Endpoint:
  POST /ussd  - form fields: sessionId, serviceCode, phoneNumber, text
"""

import logging

from fastapi import APIRouter, Depends, Form
from fastapi.responses import PlainTextResponse

from watermonitor.routers.readings import get_store
from watermonitor.services.ussd_service import SYSTEM_ERROR, UssdService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ussd", tags=["ussd"])


@router.post("", response_class=PlainTextResponse)
def handle_ussd(
    session_id: str = Form("", alias="sessionId"),
    service_code: str = Form("", alias="serviceCode"),
    phone_number: str = Form("", alias="phoneNumber"),
    text: str = Form(""),
    store=Depends(get_store)
):
    logger.info(
        f"[USSD] Incoming request session={session_id} code={service_code} "
        f"phone={phone_number} text={text!r}"
    )

    try:
        return UssdService(store).respond(text)
    except Exception as e:
        logger.error(f"[USSD] Handler error: {e}", exc_info=True)
        return SYSTEM_ERROR
