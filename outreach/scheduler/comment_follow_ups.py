"""
Comment Follow-Ups - Second touch for leads captured from post comments.

When a comment automation DMs a commenter, it leaves an unread ``info``
notification carrying ``followUpType: comment_automation`` and a
``scheduledFor`` time (six hours later). Each worker tick drains the due
ones: draft a short nudge based on what was sent and whether the lead
engaged with it, deliver it, and mark the notification read.

Every notification gets exactly one attempt. It is marked read whether the
send succeeded, failed or was skipped.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from outreach.models.base_model import utcnow
from outreach.models.message import Message, MessageDirection
from outreach.utils.exceptions import DeliveryError
from outreach.utils.worker_error_logger import log_worker_error

logger = logging.getLogger(__name__)

HOURS_AFTER_INITIAL = 6

SYSTEM_PROMPT = "You are a skilled sales professional creating thoughtful follow-up messages."


def engagement_status(opened: bool, clicked: bool) -> str:
    if not opened:
        return "never opened the message"
    if clicked:
        return "opened and clicked"
    return "opened but didn't click the link"


def build_comment_follow_up_prompt(
    lead_name: str,
    intent: str,
    opened: bool,
    clicked: bool,
    post_context: str,
) -> str:
    return f"""Generate a gentle follow-up DM for someone who commented {HOURS_AFTER_INITIAL} hours ago.

Lead Name: {lead_name}
Original Intent: {intent}
Engagement: {engagement_status(opened, clicked)}
Post Context: {post_context}

Guidelines:
- Use their name naturally (once at start)
- Acknowledge you sent something earlier (don't be pushy)
- For offers: create gentle urgency
- For info/links: check if they had a chance to look
- For products: soft reminder with a benefit highlight
- Keep it friendly and conversational (60-80 words max)
- End with a question or gentle CTA

Generate the follow-up:"""


class CommentFollowUpProcessor:
    def __init__(self, storage, reply_generator, dispatcher):
        self.storage = storage
        self.reply_generator = reply_generator
        self.dispatcher = dispatcher

    async def process_due(self, now: Optional[datetime] = None) -> int:
        """
        Send every due comment follow-up.

        Returns:
            Number of follow-ups delivered
        """
        now = now or utcnow()
        notifications = self.storage.get_due_comment_follow_ups(now)
        sent = 0

        for notification in notifications:
            try:
                if await self._process_notification(notification, now):
                    sent += 1
            except Exception as e:
                logger.error(f"Comment follow-up {notification.get('id')} failed: {e}")
                log_worker_error(e, {
                    "component": "comment_follow_ups",
                    "notification_id": notification.get("id"),
                })
            finally:
                self.storage.mark_notification_read(notification["id"])

        if sent:
            logger.info(f"Sent {sent} comment follow-ups")
        return sent

    async def _process_notification(self, notification: Dict[str, Any], now: datetime) -> bool:
        metadata = notification.get("metadata") or {}
        lead_id = metadata.get("leadId")
        intent = metadata.get("intent") or "general"
        post_context = metadata.get("postContext") or ""

        lead = self.storage.get_lead_by_id(lead_id) if lead_id else None
        if lead is None:
            logger.warning(f"Comment follow-up {notification.get('id')} references missing lead {lead_id}")
            return False

        if lead.ai_paused or lead.is_terminal:
            logger.info(f"Skipping comment follow-up for lead {lead.id} (paused or {lead.status.value})")
            return False

        messages = self.storage.get_messages_by_lead_id(lead.id)
        last_metadata = (messages[-1].metadata or {}) if messages else {}
        opened = bool(last_metadata.get("opened"))
        clicked = bool(last_metadata.get("clicked"))

        reply = await self.reply_generator.generate(
            SYSTEM_PROMPT,
            build_comment_follow_up_prompt(lead.first_name, intent, opened, clicked, post_context),
            temperature=0.8,
            max_tokens=180,
        )
        text = reply.text
        if reply.is_fallback:
            text = f"Hey {lead.first_name}, just following up on the {intent} I shared. Still interested?"

        try:
            delivery = await self.dispatcher.deliver(lead, text, lead.channel)
        except DeliveryError as e:
            logger.error(f"Comment follow-up for lead {lead.id} failed: {e}")
            log_worker_error(e, {
                "component": "comment_follow_ups",
                "lead_id": lead.id,
                "notification_id": notification.get("id"),
            }, level="warning")
            return False

        self.storage.create_message(Message.build(
            lead_id=lead.id,
            user_id=notification.get("user_id") or lead.user_id,
            direction=MessageDirection.OUTBOUND,
            body=text,
            provider=delivery.channel,
            metadata={
                "ai_generated": not reply.is_fallback,
                "automation_type": "comment_followup",
                "hours_after_initial": HOURS_AFTER_INITIAL,
                "delivered_via": delivery.channel,
            },
            created_at=now,
        ))
        self.storage.update_lead(lead.id, {"last_message_at": now})

        logger.info(f"Sent {HOURS_AFTER_INITIAL}-hour follow-up to {lead.name}")
        return True
