"""Email delivery using SendGrid."""

import asyncio
import html
import logging
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, ReplyTo

from app.core.config import EngineConfig
from app.schemas.dispatch import DispatchResult

logger = logging.getLogger(__name__)


def plain_to_html(text: str) -> str:
    paragraphs = [p.strip() for p in text.split("\n\n") if p.strip()]
    body = "".join(
        f"<p>{html.escape(p).replace(chr(10), '<br>')}</p>" for p in paragraphs
    )
    return (
        '<html><body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">'
        f'<div style="max-width: 600px; margin: 0 auto; padding: 20px;">{body}</div>'
        "</body></html>"
    )


class EmailService:
    """Email service for sequence messages and owner alerts."""

    def __init__(self, config: EngineConfig):
        self.config = config
        self.from_email = config.sendgrid_from_email
        self.from_name = config.sendgrid_from_name

        if not config.sendgrid_api_key:
            logger.warning("SENDGRID_API_KEY not configured. Emails will not be sent.")
            self.client = None
            self.enabled = False
        else:
            self.client = SendGridAPIClient(config.sendgrid_api_key)
            self.enabled = True

    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        plain_body: Optional[str] = None,
        from_name: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> DispatchResult:
        """
        Send an email.

        Args:
            to: Recipient email address
            subject: Email subject
            html_body: HTML body content
            plain_body: Plain text body (optional)
            from_name: Display name, defaults to SENDGRID_FROM_NAME
            reply_to: Address replies should go to (the business owner)
        """
        if not self.enabled:
            logger.info("Email service disabled. Would have sent to %s: %s", to, subject)
            return DispatchResult(success=False, error="SendGrid not configured")

        message = Mail(
            from_email=(self.from_email, from_name or self.from_name),
            to_emails=to,
            subject=subject,
            html_content=html_body,
        )
        if plain_body:
            message.plain_text_content = plain_body
        if reply_to:
            message.reply_to = ReplyTo(reply_to)

        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(self.client.send, message),
                timeout=self.config.dispatch_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error("SendGrid timed out sending email to %s", to)
            return DispatchResult(success=False, error="SendGrid request timed out")
        except Exception as e:
            # python-http-client raises HTTPError subclasses for 4xx/5xx
            logger.error("Error sending email to %s: %s", to, e)
            return DispatchResult(success=False, error=str(e))

        if 200 <= response.status_code < 300:
            message_id = None
            if response.headers:
                message_id = response.headers.get("X-Message-Id")
            logger.info("Email sent successfully to %s: %s", to, subject)
            return DispatchResult(success=True, provider_message_id=message_id)

        logger.error("Failed to send email to %s: %s %s", to, response.status_code, response.body)
        return DispatchResult(success=False, error=f"SendGrid error: {response.status_code}")

    async def send_owner_alert(
        self,
        owner_email: str,
        business_name: str,
        title: str,
        message: str,
        lead_name: Optional[str] = None,
    ) -> DispatchResult:
        """Email the business owner about something a sequence needs them to see."""
        subject = f"{title} - {business_name}"
        lines = [message]
        if lead_name:
            lines.append(f"Lead: {lead_name}")
        lines.append("This alert was sent by your LeadFlow follow-up sequences.")
        plain_body = "\n\n".join(lines)
        return await self.send_email(owner_email, subject, plain_to_html(plain_body), plain_body)
