"""
AI Reply Generator - Drafts follow-up text with Claude.

Generation never raises: a missing API key, an API error or an empty
completion all produce a canned fallback so the worker can still send
something human-sounding.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from outreach.ai_agent.brand_context import BrandContext
from outreach.models.lead import Lead
from outreach.models.message import Message
from outreach.utils.constants import CHANNEL_CONTEXT, Credentials

logger = logging.getLogger(__name__)

FALLBACK_MODEL = "fallback"
FALLBACK_TEXT = "Hi there! Just following up to see if you had any questions. Happy to help whenever you're ready."

HISTORY_WINDOW = 5


@dataclass
class GeneratedReply:
    text: str
    tokens_used: int = 0
    model: str = FALLBACK_MODEL
    is_fallback: bool = False


class AIReplyGenerator:
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client=None):
        creds = Credentials()
        self.api_key = api_key or creds.ANTHROPIC_API_KEY
        self.model = model or creds.AI_MODEL
        self._client = client

    def _get_client(self):
        # A fresh client per call: each worker tick runs in its own event loop
        if self._client is not None:
            return self._client
        if not self.api_key:
            return None
        import anthropic
        return anthropic.AsyncAnthropic(api_key=self.api_key)

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 200,
    ) -> GeneratedReply:
        """
        Generate a reply. Falls back to a canned message on any failure.

        Args:
            system_prompt: Persona and rules
            user_prompt: Lead, history and task
            temperature: Sampling temperature
            max_tokens: Completion budget

        Returns:
            GeneratedReply (``is_fallback`` set when the model was not used)
        """
        client = self._get_client()
        if client is None:
            logger.warning("ANTHROPIC_API_KEY not set - using fallback reply")
            return self._fallback()

        try:
            response = await client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )
            text = "".join(
                block.text for block in response.content if getattr(block, "type", "text") == "text"
            ).strip()
            if not text:
                logger.warning("Empty completion from model - using fallback reply")
                return self._fallback()

            return GeneratedReply(
                text=text,
                tokens_used=response.usage.input_tokens + response.usage.output_tokens,
                model=response.model,
            )
        except Exception as e:
            logger.error(f"Error generating reply: {e}")
            return self._fallback()

    @staticmethod
    def _fallback(text: str = FALLBACK_TEXT) -> GeneratedReply:
        return GeneratedReply(text=text, is_fallback=True)

    async def draft_follow_up(
        self,
        lead: Lead,
        history: Sequence[Message],
        brand: BrandContext,
        temperature_label: Optional[str] = None,
    ) -> GeneratedReply:
        """Draft the next follow-up for ``lead`` in its channel's register."""
        system_prompt = build_system_prompt(brand, lead.channel)
        user_prompt = build_follow_up_prompt(lead, history, brand, temperature_label)
        reply = await self.generate(system_prompt, user_prompt, temperature=0.7, max_tokens=200)

        if reply.is_fallback:
            reply.text = personalized_fallback(lead, brand)
        return reply

    async def draft_reply(
        self,
        lead: Lead,
        history: Sequence[Message],
        brand: BrandContext,
        temperature_label: Optional[str] = None,
    ) -> GeneratedReply:
        """Draft an answer to the lead's latest inbound message."""
        system_prompt = build_system_prompt(brand, lead.channel)
        user_prompt = build_reply_prompt(lead, history, brand, temperature_label)
        reply = await self.generate(system_prompt, user_prompt, temperature=0.7, max_tokens=200)

        if reply.is_fallback:
            reply.text = reply_fallback(lead, brand)
        return reply


def reply_fallback(lead: Lead, brand: BrandContext) -> str:
    sender = brand.sender_name or brand.business_name
    return f"Hey {lead.first_name}, thanks for getting back to me! {sender} here. Let me get you an answer shortly."


def latest_inbound(history: Sequence[Message]) -> Optional[Message]:
    return next((m for m in reversed(list(history)) if m.is_inbound), None)


def personalized_fallback(lead: Lead, brand: BrandContext) -> str:
    sender = brand.sender_name or brand.business_name
    return (
        f"Hey {lead.first_name}! {sender} here. Just checking in - "
        f"did you have any questions? Happy to help whenever you're ready."
    )


def build_system_prompt(brand: BrandContext, channel: str) -> str:
    return f"""You are a friendly human sales rep re-connecting with leads for {brand.business_name}.

BRAND INFORMATION:
{brand.to_prompt()}

{CHANNEL_CONTEXT.get(channel, '')}

Never mention you're an AI. Reply with the message text only."""


def format_history(history: Sequence[Message]) -> str:
    return "\n".join(
        f"{'Lead' if message.is_inbound else 'You'}: {message.body}"
        for message in list(history)[-HISTORY_WINDOW:]
    )


def build_follow_up_prompt(
    lead: Lead,
    history: Sequence[Message],
    brand: BrandContext,
    temperature_label: Optional[str] = None,
) -> str:
    follow_up_number = lead.follow_up_count + 1
    history_str = format_history(history)
    status = lead.status.value if lead.status else "new"

    return f"""LEAD INFORMATION:
- Name: {lead.first_name}
- Channel: {lead.channel}
- Status: {status}
- Follow-up #: {follow_up_number}
- Engagement: {temperature_label or 'unknown'}

CONVERSATION HISTORY:
{history_str or 'This is the first message'}

RULES:
1. ALWAYS address the lead by their first name ({lead.first_name})
2. Keep it under 150 characters for WhatsApp, under 200 for Instagram. Emails can be longer but concise.
3. Be conversational and human-like.
4. If this is follow-up #1, introduce yourself briefly.
5. If this is follow-up #3+, be more direct or offer something specific.
6. End with a soft call-to-action or question.

Generate a natural follow-up message:"""


def build_reply_prompt(
    lead: Lead,
    history: Sequence[Message],
    brand: BrandContext,
    temperature_label: Optional[str] = None,
) -> str:
    last = latest_inbound(history)
    last_text = last.body if last else ""
    status = lead.status.value if lead.status else "new"

    return f"""LEAD INFORMATION:
- Name: {lead.first_name}
- Channel: {lead.channel}
- Status: {status}
- Engagement: {temperature_label or 'unknown'}

CONVERSATION HISTORY:
{format_history(history) or 'No earlier messages'}

THE LEAD JUST SAID:
"{last_text}"

RULES:
1. Answer what the lead just said directly. Do not re-introduce yourself.
2. Use their first name ({lead.first_name}) at most once.
3. Keep it under 150 characters for WhatsApp, under 200 for Instagram. Emails can be longer but concise.
4. If they asked a question you can't answer from the brand information, say you'll find out.
5. End with a question that keeps the conversation going.

Write your reply:"""
