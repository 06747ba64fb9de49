import logging
import random
from datetime import datetime
from typing import Optional, Dict, Any

from outreach.ai_agent.conversation_classifier import auto_update_lead_status
from outreach.models.base_model import utcnow
from outreach.models.follow_up_job import FollowUpJob
from outreach.models.message import Message, MessageDirection
from outreach.utils.constants import WorkerSettings
from outreach.utils.exceptions import LeadNotFoundError

logger = logging.getLogger(__name__)


class InboundMessageProcessor:
    """
    Ingests a message from a lead: store it, reclassify the lead, and queue
    a human-paced reply unless the lead is paused or terminal.
    """

    def __init__(
        self,
        storage,
        queue,
        notifier=None,
        settings: Optional[WorkerSettings] = None,
        rng: Optional[random.Random] = None,
    ):
        self.storage = storage
        self.queue = queue
        self.notifier = notifier
        self.settings = settings or WorkerSettings()
        self.rng = rng

    def handle_inbound(
        self,
        lead_id: str,
        body: str,
        provider: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> Optional[FollowUpJob]:
        """
        Returns:
            The reply job scheduled for the lead, or None if none was
        """
        now = now or utcnow()
        lead = self.storage.get_lead_by_id(lead_id)
        if lead is None:
            raise LeadNotFoundError(lead_id)

        self.storage.create_message(Message.build(
            lead_id=lead.id,
            user_id=lead.user_id,
            direction=MessageDirection.INBOUND,
            body=body,
            provider=provider or lead.channel,
            metadata=metadata,
            created_at=now,
        ))
        self.storage.update_lead(lead.id, {"last_message_at": now})
        lead.last_message_at = now

        messages = self.storage.get_messages_by_lead_id(lead.id)
        new_status = auto_update_lead_status(
            self.storage,
            lead.id,
            messages,
            notifier=self.notifier,
            now=now,
            confidence_threshold=self.settings.status_confidence_threshold,
        )
        if new_status is not None:
            lead.status = new_status

        if lead.ai_paused or lead.is_terminal:
            logger.info(f"Inbound from lead {lead.id} stored - no auto-reply (paused or {lead.status.value})")
            return None

        return self.queue.schedule_reply(lead, messages, now=now, rng=self.rng)
