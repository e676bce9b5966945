"""Channel dispatcher: one `send` for every outbound sequence message.

Provider selection happens here, from the business's sender identity, so the
executor never knows which gateway delivered a message.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from app.core.config import EngineConfig
from app.models.business import Business, SmsProvider
from app.models.sequence import Channel
from app.schemas.dispatch import DispatchResult
from app.services.email_service import EmailService, plain_to_html
from app.services.sms import send_gateway_sms, send_twilio_sms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SenderIdentity:
    """Who a message comes from and through which gateway."""
    name: str
    sms_provider: SmsProvider = SmsProvider.TWILIO
    twilio_account_sid: Optional[str] = None
    from_number: Optional[str] = None
    gateway_url: Optional[str] = None
    gateway_api_key: Optional[str] = None
    reply_to: Optional[str] = None

    @classmethod
    def for_business(cls, business: Business, config: EngineConfig) -> "SenderIdentity":
        return cls(
            name=business.display_name,
            sms_provider=business.sms_provider or SmsProvider.TWILIO,
            twilio_account_sid=business.twilio_account_sid,
            from_number=business.twilio_phone_number or config.twilio_phone_number,
            gateway_url=business.sms_gateway_url,
            gateway_api_key=business.sms_gateway_api_key,
            reply_to=business.owner_email,
        )


class ChannelDispatcher:
    def __init__(self, config: EngineConfig, email_service: Optional[EmailService] = None):
        self.config = config
        self.email = email_service or EmailService(config)

    async def send(
        self,
        channel: Channel,
        destination: str,
        body: str,
        sender: SenderIdentity,
        subject: Optional[str] = None,
    ) -> DispatchResult:
        if channel == Channel.SMS:
            if sender.sms_provider == SmsProvider.GATEWAY:
                return await send_gateway_sms(
                    self.config, sender.gateway_url, sender.gateway_api_key,
                    destination, body, from_name=sender.name,
                )
            return await send_twilio_sms(
                self.config, destination, body,
                from_number=sender.from_number,
                account_sid=sender.twilio_account_sid,
            )

        if channel == Channel.EMAIL:
            return await self.email.send_email(
                destination,
                subject or f"A message from {sender.name}",
                plain_to_html(body),
                plain_body=body,
                from_name=sender.name,
                reply_to=sender.reply_to,
            )

        logger.error("Unsupported channel %s for %s", channel, destination)
        return DispatchResult(success=False, error=f"Unsupported channel: {channel}")

    async def alert_owner(self, business: Business, title: str, message: str, lead_name: Optional[str] = None) -> None:
        """Best-effort owner email; the in-app notification is the record."""
        if not business.owner_email:
            return
        result = await self.email.send_owner_alert(business.owner_email, business.display_name, title, message, lead_name)
        if not result.success:
            logger.warning("Owner alert to %s failed: %s", business.owner_email, result.error)
