"""
AI-generated follow-up messages for sequence steps.

Two interchangeable providers (Azure OpenAI chat completions and the
Anthropic messages API) sit behind one `ContentGenerator` interface. Every
provider failure surfaces as `GenerationUnavailable`; `generate_with_fallback`
turns that into the step's template so a message step always has a body.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx

from app.core.config import EngineConfig
from app.core.exceptions import GenerationUnavailable
from app.models.business import Business, MessageTone
from app.models.lead import Lead
from app.models.sequence import Channel

logger = logging.getLogger(__name__)

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"


class MessageType(str, enum.Enum):
    INITIAL = "initial"
    FOLLOWUP_1 = "followup_1"
    FOLLOWUP_2 = "followup_2"
    FINAL = "final"


MESSAGE_TYPES = [MessageType.INITIAL, MessageType.FOLLOWUP_1, MessageType.FOLLOWUP_2, MessageType.FINAL]


def message_type_for_step(step_order: int) -> MessageType:
    """Steps 0..2 map one-to-one; every later step is the final nudge."""
    return MESSAGE_TYPES[min(max(step_order, 0), len(MESSAGE_TYPES) - 1)]


_GOALS = {
    MessageType.INITIAL: "Respond to their inquiry with helpful info and make it feel like first contact",
    MessageType.FOLLOWUP_1: "Follow up without being pushy and acknowledge this is a follow-up",
    MessageType.FOLLOWUP_2: "Gently remind them about booking and offer to answer questions",
    MessageType.FINAL: "Make a last, low-pressure offer to schedule and leave the door open",
}

_TONES = {
    MessageTone.FRIENDLY: "Warm, casual, personable",
    MessageTone.PREMIUM: "Professional, high-end, sophisticated",
    MessageTone.DIRECT: "Concise, no-nonsense, efficient",
}

DEFAULT_TEMPLATES = {
    MessageType.INITIAL: "Hi {name}, thanks for reaching out to {business} about {service}! When is a good time for a quick quote?",
    MessageType.FOLLOWUP_1: "Hi {name}, just following up on your {service} request. Any questions I can answer?",
    MessageType.FOLLOWUP_2: "Hi {name}, we still have openings for {service} this week. Want us to hold a spot for you?",
    MessageType.FINAL: "Hi {name}, last check-in from {business} about {service}. Reply any time if you'd like to book.",
}


@dataclass(frozen=True)
class LeadContext:
    name: Optional[str] = None
    interested_service: Optional[str] = None
    estimated_value: Optional[float] = None
    notes: Optional[str] = None

    @property
    def first_name(self) -> Optional[str]:
        if not self.name or self.name.strip().lower() == "unknown":
            return None
        return self.name.strip().split()[0]

    @classmethod
    def from_lead(cls, lead: Lead) -> "LeadContext":
        return cls(
            name=lead.name,
            interested_service=lead.interested_service,
            estimated_value=lead.estimated_value,
            notes=lead.notes,
        )


@dataclass(frozen=True)
class BusinessContext:
    name: str
    sender_name: Optional[str] = None
    phone: Optional[str] = None
    tone: MessageTone = MessageTone.FRIENDLY

    @classmethod
    def from_business(cls, business: Business) -> "BusinessContext":
        return cls(
            name=business.name,
            sender_name=business.sender_name,
            phone=business.owner_phone,
            tone=business.default_tone or MessageTone.FRIENDLY,
        )


@dataclass
class GeneratedMessage:
    text: str
    used_fallback: bool = False
    error: Optional[str] = None


def build_prompt(
    lead: LeadContext,
    business: BusinessContext,
    message_type: MessageType,
    previous_messages: Sequence[str],
    channel: Channel,
    max_chars: int,
) -> str:
    sender = business.sender_name or business.name
    lines = [
        f"You are {sender}, a local field-service business. Generate a {channel.value} message for this lead.",
        "",
        "LEAD INFO:",
        f"- Name: {lead.name or 'Unknown'}",
        f"- Service Interest: {lead.interested_service or 'our services'}",
    ]
    if lead.estimated_value:
        lines.append(f"- Estimated Cost: ${lead.estimated_value:,.0f}")
    if lead.notes:
        lines.append(f'- Their Message: "{lead.notes[:500]}"')

    lines += ["", "CONTEXT:", f"- Message Type: {message_type.value}"]
    if previous_messages:
        lines.append("- Previous Messages:")
        lines += [f'  {i}. "{m}"' for i, m in enumerate(previous_messages, 1)]

    lines += ["", "BUSINESS INFO:", f"- Name: {business.name}"]
    if business.phone:
        lines.append(f"- Phone: {business.phone}")

    lines += ["", f"TONE: {business.tone.value}", f"- {_TONES.get(business.tone, _TONES[MessageTone.FRIENDLY])}"]

    lines += ["", f"CHANNEL: {channel.value}"]
    if channel == Channel.SMS:
        lines.append(f"- Keep it SHORT (under 160 characters ideal, max {max_chars})")
    else:
        lines.append("- Can be longer and more detailed, include a greeting and closing")

    lines += [
        "",
        "GUIDELINES:",
        "1. Sound human and natural",
        "2. Address the lead by first name and mention the service they asked about",
        f"3. {_GOALS[message_type]}",
        "4. Include a clear call-to-action",
        "5. Price only if an estimated cost is given, otherwise offer a quote",
        "6. Never repeat a previous message word for word",
        "",
        "Return ONLY the message text, no subject line and no preamble.",
    ]
    return "\n".join(lines)


def _strip_markdown(text: str) -> str:
    text = text.replace("```", "").replace("**", "").replace("*", "")
    return text.strip().strip('"').strip()


def fit_to_channel(text: str, channel: Channel, config: EngineConfig) -> str:
    limit = config.sms_max_chars if channel == Channel.SMS else config.email_max_chars
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def render_template(
    template: Optional[str],
    lead: LeadContext,
    business: BusinessContext,
    message_type: MessageType,
) -> str:
    """Substitute {name}, {service} and {business} into a step template."""
    body = template if template and template.strip() else DEFAULT_TEMPLATES[message_type]
    return (
        body.replace("{name}", lead.name or "there")
        .replace("{service}", lead.interested_service or "service")
        .replace("{business}", business.sender_name or business.name)
    )


class ContentGenerator:
    """Provider-agnostic generation, validation and channel fitting."""

    provider = "base"

    def __init__(self, config: EngineConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client

    async def generate(
        self,
        lead: LeadContext,
        business: BusinessContext,
        message_type: MessageType,
        previous_messages: Sequence[str],
        channel: Channel,
    ) -> str:
        max_chars = self.config.sms_max_chars if channel == Channel.SMS else self.config.email_max_chars
        prompt = build_prompt(lead, business, message_type, previous_messages, channel, max_chars)
        raw = await self._complete(prompt)
        return self._finalize(raw, lead, previous_messages, channel)

    async def _complete(self, prompt: str) -> str:
        raise NotImplementedError

    def _finalize(
        self,
        raw: str,
        lead: LeadContext,
        previous_messages: Sequence[str],
        channel: Channel,
    ) -> str:
        text = _strip_markdown(raw or "")
        if not text:
            raise GenerationUnavailable(f"{self.provider} returned an empty message")

        first_name = lead.first_name
        if first_name and first_name.lower() not in text.lower():
            text = f"Hi {first_name}, {text}"

        text = fit_to_channel(text, channel, self.config)
        if text.strip() in {m.strip() for m in previous_messages if m}:
            raise GenerationUnavailable(f"{self.provider} repeated a previous message")
        return text

    async def _post_json(self, url: str, headers: dict, payload: dict) -> dict:
        try:
            if self._client is not None:
                response = await self._client.post(
                    url, headers=headers, json=payload, timeout=self.config.content_timeout_seconds
                )
            else:
                async with httpx.AsyncClient(timeout=self.config.content_timeout_seconds) as client:
                    response = await client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException as e:
            raise GenerationUnavailable(f"{self.provider} timed out") from e
        except httpx.HTTPError as e:
            raise GenerationUnavailable(f"{self.provider} request failed: {e}") from e

        if response.status_code < 200 or response.status_code >= 300:
            raise GenerationUnavailable(
                f"{self.provider} API error: {response.status_code} - {response.text[:200]}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise GenerationUnavailable(f"{self.provider} returned invalid JSON") from e


class AzureOpenAIGenerator(ContentGenerator):
    provider = "azure_openai"

    async def _complete(self, prompt: str) -> str:
        if not self.config.azure_openai_api_key or not self.config.azure_openai_endpoint:
            raise GenerationUnavailable("Azure OpenAI not configured")

        url = (
            f"{self.config.azure_openai_endpoint}/openai/deployments/"
            f"{self.config.azure_openai_deployment}/chat/completions"
            f"?api-version={self.config.azure_openai_api_version}"
        )
        headers = {
            "api-key": self.config.azure_openai_api_key,
            "Content-Type": "application/json",
        }
        payload = {
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 0.7,
            "max_tokens": 500,
        }
        data = await self._post_json(url, headers, payload)
        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationUnavailable("Azure OpenAI response missing message content") from e


class AnthropicGenerator(ContentGenerator):
    provider = "anthropic"

    async def _complete(self, prompt: str) -> str:
        if not self.config.anthropic_api_key:
            raise GenerationUnavailable("ANTHROPIC_API_KEY not configured")

        headers = {
            "x-api-key": self.config.anthropic_api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.config.anthropic_model,
            "max_tokens": 500,
            "messages": [{"role": "user", "content": prompt}],
        }
        data = await self._post_json(ANTHROPIC_URL, headers, payload)
        try:
            return data["content"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationUnavailable("Anthropic response missing message content") from e


_PROVIDERS = {
    AzureOpenAIGenerator.provider: AzureOpenAIGenerator,
    AnthropicGenerator.provider: AnthropicGenerator,
}


def build_content_generator(config: EngineConfig) -> Optional[ContentGenerator]:
    """Instantiate the configured provider; None disables generation."""
    provider = (config.content_provider or "").strip().lower()
    if provider in ("", "none", "template"):
        logger.info("Content generation disabled, sequence messages use step templates")
        return None
    generator_cls = _PROVIDERS.get(provider)
    if generator_cls is None:
        logger.warning("Unknown CONTENT_PROVIDER '%s', sequence messages use step templates", provider)
        return None
    return generator_cls(config)


async def generate_with_fallback(
    generator: Optional[ContentGenerator],
    config: EngineConfig,
    lead: LeadContext,
    business: BusinessContext,
    message_type: MessageType,
    previous_messages: Sequence[str],
    channel: Channel,
    template: Optional[str],
) -> GeneratedMessage:
    """Generate a message; on any failure render the step template instead."""
    if generator is not None:
        try:
            text = await generator.generate(lead, business, message_type, previous_messages, channel)
            return GeneratedMessage(text=text)
        except GenerationUnavailable as e:
            logger.warning("AI generation failed, using template: %s", e)
            error = str(e)
        except Exception as e:
            logger.exception("Unexpected content generator error, using template")
            error = f"unexpected error: {e}"
    else:
        error = "content generator not configured"

    text = fit_to_channel(render_template(template, lead, business, message_type), channel, config)
    return GeneratedMessage(text=text, used_fallback=True, error=error)
