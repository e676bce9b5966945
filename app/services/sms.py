"""SMS delivery for LeadFlow.

Twilio is the primary gateway. A business may instead point at its own HTTP
SMS gateway (`sms_provider = gateway`), which receives a JSON POST with a
bearer key. Both paths return a DispatchResult and never raise.
"""

import asyncio
import logging
from typing import Optional

import httpx
from twilio.rest import Client
from twilio.http.http_client import TwilioHttpClient
from twilio.base.exceptions import TwilioRestException

from app.core.config import EngineConfig
from app.schemas.dispatch import DispatchResult

logger = logging.getLogger(__name__)


def _get_twilio_client(config: EngineConfig, account_sid: Optional[str] = None) -> Client:
    # Platform credentials authenticate; a business subaccount SID scopes the send.
    return Client(
        config.twilio_account_sid,
        config.twilio_auth_token,
        account_sid=account_sid or None,
        http_client=TwilioHttpClient(timeout=config.dispatch_timeout_seconds),
    )


async def send_twilio_sms(
    config: EngineConfig,
    to: str,
    body: str,
    from_number: Optional[str] = None,
    account_sid: Optional[str] = None,
) -> DispatchResult:
    """Send an SMS via Twilio."""
    from_number = from_number or config.twilio_phone_number
    if not all([config.twilio_account_sid, config.twilio_auth_token, from_number]):
        logger.warning("Twilio credentials not configured, skipping SMS to %s", to)
        return DispatchResult(success=False, error="Twilio credentials not configured")

    def _create():
        client = _get_twilio_client(config, account_sid)
        return client.messages.create(body=body, from_=from_number, to=to)

    try:
        message = await asyncio.wait_for(asyncio.to_thread(_create), timeout=config.dispatch_timeout_seconds)
    except asyncio.TimeoutError:
        logger.error("Twilio timed out sending SMS to %s", to)
        return DispatchResult(success=False, error="Twilio request timed out")
    except TwilioRestException as e:
        logger.error("Twilio error sending SMS to %s: %s", to, e)
        return DispatchResult(success=False, error=f"Twilio error {e.code}: {e.msg}")
    except Exception as e:
        logger.error("Unexpected error sending SMS to %s: %s", to, e)
        return DispatchResult(success=False, error=str(e))

    logger.info("SMS sent to %s, SID: %s", to, message.sid)
    return DispatchResult(success=True, provider_message_id=message.sid)


async def send_gateway_sms(
    config: EngineConfig,
    gateway_url: Optional[str],
    api_key: Optional[str],
    to: str,
    body: str,
    from_name: Optional[str] = None,
) -> DispatchResult:
    """Send an SMS through a business-configured HTTP gateway."""
    if not gateway_url or not api_key:
        logger.warning("SMS gateway not configured, skipping SMS to %s", to)
        return DispatchResult(success=False, error="SMS gateway not configured")

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    payload = {"to": to, "body": body, "from_name": from_name}

    try:
        async with httpx.AsyncClient(timeout=config.dispatch_timeout_seconds) as client:
            response = await client.post(gateway_url, headers=headers, json=payload)
    except httpx.TimeoutException:
        logger.error("SMS gateway timed out sending to %s", to)
        return DispatchResult(success=False, error="SMS gateway request timed out")
    except httpx.HTTPError as e:
        logger.error("SMS gateway error sending to %s: %s", to, e)
        return DispatchResult(success=False, error=str(e))

    if response.status_code < 200 or response.status_code >= 300:
        logger.error("SMS gateway rejected SMS to %s: %s %s", to, response.status_code, response.text[:200])
        return DispatchResult(success=False, error=f"SMS gateway error: {response.status_code}")

    message_id = None
    try:
        data = response.json()
        if isinstance(data, dict):
            message_id = data.get("id") or data.get("message_id")
    except ValueError:
        pass

    logger.info("SMS sent to %s via gateway, id: %s", to, message_id)
    return DispatchResult(success=True, provider_message_id=str(message_id) if message_id else None)
