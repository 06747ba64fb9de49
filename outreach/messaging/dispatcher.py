"""
Channel Dispatcher - Multi-channel delivery with fallback.

Tries the lead's preferred channel first, then WhatsApp, email and Instagram,
skipping any channel the lead has no handle for. The first successful send
wins. If WhatsApp refuses because the 24-hour customer window closed, the
lead is flagged for manual outreach and the next channel is tried.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from outreach.messaging.base import ChannelSender
from outreach.models.base_model import utcnow
from outreach.models.lead import Channel, Lead
from outreach.utils.exceptions import DeliveryError, MessagingWindowError

logger = logging.getLogger(__name__)

FALLBACK_ORDER = (Channel.WHATSAPP.value, Channel.EMAIL.value, Channel.INSTAGRAM.value)


@dataclass
class DeliveryResult:
    channel: str
    message_id: str = ""
    attempts: int = 1


class ChannelDispatcher:
    def __init__(self, senders: Iterable[ChannelSender], storage=None):
        self.senders: Dict[str, ChannelSender] = {sender.channel: sender for sender in senders}
        self.storage = storage

    def get_channel_priority(self, preferred: Optional[str], lead: Lead) -> List[str]:
        """Preferred channel first, then the fallbacks, limited to channels the lead can be reached on."""
        preferred = getattr(preferred, "value", preferred) or lead.channel
        ordered = [preferred] + [c for c in FALLBACK_ORDER if c != preferred]
        return [channel for channel in ordered if lead.contact_handle(channel)]

    async def deliver(self, lead: Lead, text: str, preferred: Optional[str] = None) -> DeliveryResult:
        """
        Send ``text`` to ``lead`` over the first channel that accepts it.

        Raises:
            DeliveryError: every candidate channel failed (or none was usable)
        """
        attempts: List[Tuple[str, str]] = []

        for channel in self.get_channel_priority(preferred, lead):
            sender = self.senders.get(channel)
            if sender is None:
                attempts.append((channel, "no sender configured"))
                continue

            recipient = lead.contact_handle(channel)
            try:
                message_id = await sender.send(lead.user_id, recipient, text)
            except MessagingWindowError as e:
                logger.warning(f"{channel} follow-up blocked for lead {lead.id}: {e}")
                attempts.append((channel, str(e)))
                self._flag_manual_outreach(lead)
                continue
            except Exception as e:
                logger.error(f"Failed to send via {channel} to lead {lead.id}: {e}")
                attempts.append((channel, str(e)))
                continue

            if attempts:
                logger.info(f"Delivered to lead {lead.id} via fallback channel {channel}")
            return DeliveryResult(channel=channel, message_id=message_id or "", attempts=len(attempts) + 1)

        raise DeliveryError(lead.id, attempts)

    def _flag_manual_outreach(self, lead: Lead) -> None:
        metadata = dict(lead.metadata or {})
        metadata.update({
            "last_follow_up_failed": utcnow().isoformat(),
            "follow_up_failure_reason": "messaging_window_restriction",
            "needs_manual_outreach": True,
        })
        lead.metadata = metadata

        if self.storage is None:
            return
        try:
            self.storage.update_lead(lead.id, {"metadata": metadata})
        except Exception as e:
            logger.error(f"Error flagging lead {lead.id} for manual outreach: {e}")
