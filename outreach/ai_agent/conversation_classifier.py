"""
Conversation Classifier - Lead lifecycle status from message history.

Pure keyword and recency rules, evaluated in a fixed precedence order:

1. Rejection keywords             -> not_interested (0.90)
2. Conversion keywords + engaged  -> converted      (0.85)
3. Engaged + inbound in last 24h  -> replied        (0.80)
4. Engaged (2+ inbound messages)  -> open           (0.70)
5. Last inbound older than 3 days -> cold           (0.75)
6. Anything else                  -> open           (0.60)

An empty history is ``new`` (1.0). Keywords are matched case-insensitively
as substrings of the last five messages.

``assess_lead_warmth`` is a separate, looser engagement signal used for
prompting and job context. Its thresholds intentionally differ from the
status rules and the two are not merged.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, List, Sequence

from outreach.models.base_model import utcnow
from outreach.models.lead import LeadStatus, TERMINAL_STATUSES
from outreach.models.message import Message, MessageDirection

logger = logging.getLogger(__name__)


REJECTION_KEYWORDS = (
    "not interested",
    "no thanks",
    "remove me",
    "stop",
    "unsubscribe",
    "leave me alone",
)

CONVERSION_KEYWORDS = (
    "yes",
    "book",
    "schedule",
    "ready",
    "let's do it",
    "sign me up",
    "interested",
    "when can we",
)

KEYWORD_WINDOW = 5
ENGAGED_INBOUND_COUNT = 2
RECENT_WINDOW = timedelta(hours=24)
COLD_AFTER = timedelta(days=3)
DEFAULT_CONFIDENCE_THRESHOLD = 0.7


@dataclass(frozen=True)
class ConversationStatusResult:
    status: LeadStatus
    confidence: float
    reason: Optional[str] = None
    should_use_voice: bool = False

    def to_dict(self):
        return {
            "status": self.status.value,
            "confidence": self.confidence,
            "reason": self.reason,
            "should_use_voice": self.should_use_voice,
        }


def _inbound(messages: Sequence[Message]) -> List[Message]:
    return [m for m in messages if m.direction == MessageDirection.INBOUND]


def _has_recent_inbound(inbound: Sequence[Message], now: datetime) -> bool:
    return any(
        m.created_at is not None and now - m.created_at < RECENT_WINDOW
        for m in inbound
    )


def detect_conversation_status(
    messages: Sequence[Message],
    now: Optional[datetime] = None,
) -> ConversationStatusResult:
    """
    Classify a conversation into a lead status.

    Args:
        messages: Full message history for the lead, oldest first
        now: Reference time (defaults to current UTC time)

    Returns:
        ConversationStatusResult with status, confidence and voice hint
    """
    if not messages:
        return ConversationStatusResult(LeadStatus.NEW, 1.0, "No messages yet")

    now = now or utcnow()

    recent_text = " ".join(
        (m.body or "").lower() for m in messages[-KEYWORD_WINDOW:]
    )
    has_rejection = any(keyword in recent_text for keyword in REJECTION_KEYWORDS)
    has_conversion_signal = any(keyword in recent_text for keyword in CONVERSION_KEYWORDS)

    inbound = _inbound(messages)
    has_engagement = len(inbound) >= ENGAGED_INBOUND_COUNT
    recent_engagement = _has_recent_inbound(inbound, now)

    if has_rejection:
        return ConversationStatusResult(
            LeadStatus.NOT_INTERESTED, 0.9, "Lead explicitly declined", False
        )

    if has_conversion_signal and has_engagement:
        return ConversationStatusResult(
            LeadStatus.CONVERTED, 0.85, "Lead showed strong buying intent", True
        )

    if has_engagement and recent_engagement:
        return ConversationStatusResult(
            LeadStatus.REPLIED, 0.8, "Lead actively responding", True
        )

    if has_engagement:
        return ConversationStatusResult(
            LeadStatus.OPEN, 0.7, "Lead engaged in conversation", False
        )

    last_inbound = next(
        (m for m in reversed(inbound) if m.created_at is not None), None
    )
    if last_inbound and now - last_inbound.created_at > COLD_AFTER:
        return ConversationStatusResult(
            LeadStatus.COLD, 0.75, "No response in 3+ days", False
        )

    return ConversationStatusResult(LeadStatus.OPEN, 0.6, "Conversation open", False)


def assess_lead_warmth(
    messages: Sequence[Message],
    now: Optional[datetime] = None,
) -> bool:
    """
    A lead is warm with 3+ messages and either 2+ inbound messages, or at
    least one inbound message inside the last 24 hours.
    """
    if len(messages) < 3:
        return False

    inbound = _inbound(messages)
    if len(inbound) >= 2:
        return True

    if inbound and _has_recent_inbound(inbound, now or utcnow()):
        return True

    return False


def assess_lead_temperature(
    messages: Sequence[Message],
    now: Optional[datetime] = None,
) -> str:
    """hot / warm / cold from inbound activity in the last 24 hours."""
    now = now or utcnow()
    inbound_last_day = [
        m for m in _inbound(messages)
        if m.created_at is not None and now - m.created_at < RECENT_WINDOW
    ]
    if len(inbound_last_day) >= 2:
        return "hot"
    if inbound_last_day or assess_lead_warmth(messages, now):
        return "warm"
    return "cold"


def auto_update_lead_status(
    storage,
    lead_id: str,
    messages: Sequence[Message],
    notifier=None,
    now: Optional[datetime] = None,
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
) -> Optional[LeadStatus]:
    """
    Commit the classifier's verdict to the lead when it is confident enough.

    Terminal statuses are sticky: a converted or not-interested lead only
    changes through ``override_lead_status``.

    Returns:
        The newly committed status, or None if nothing changed
    """
    detection = detect_conversation_status(messages, now=now)

    if detection.confidence < confidence_threshold:
        logger.info(
            f"Low confidence ({detection.confidence}) - skipping auto-update for lead {lead_id}"
        )
        return None

    lead = storage.get_lead_by_id(lead_id)
    if not lead:
        logger.warning(f"Lead {lead_id} not found - cannot auto-update status")
        return None

    old_status = lead.status
    new_status = detection.status

    if old_status == new_status:
        return None

    if old_status in TERMINAL_STATUSES:
        logger.info(
            f"Lead {lead_id} is {old_status.value} - ignoring detected status {new_status.value}"
        )
        return None

    metadata = dict(lead.metadata or {})
    metadata.update({
        "status_auto_updated": True,
        "status_update_reason": detection.reason,
        "status_update_confidence": detection.confidence,
        "previous_status": old_status.value if old_status else None,
        "status_updated_at": (now or utcnow()).isoformat(),
    })
    storage.update_lead(lead_id, {"status": new_status, "metadata": metadata})

    logger.info(
        f"Auto-updated lead {lead_id} status: {old_status.value} -> {new_status.value} "
        f"({detection.reason})"
    )

    if new_status == LeadStatus.CONVERTED and notifier is not None:
        notifier.notify(
            lead.user_id,
            title=f"Lead converted: {lead.name}",
            message=f"{lead.name} showed strong buying intent. Follow-ups have stopped.",
            notification_type="lead_converted",
            metadata={"lead_id": lead_id, "confidence": detection.confidence},
        )

    return new_status


def override_lead_status(
    storage,
    lead_id: str,
    status: LeadStatus,
    actor: str,
    now: Optional[datetime] = None,
) -> Optional[LeadStatus]:
    """Explicit human status change. The only way out of a terminal status."""
    lead = storage.get_lead_by_id(lead_id)
    if not lead:
        logger.warning(f"Lead {lead_id} not found - cannot override status")
        return None

    metadata = dict(lead.metadata or {})
    metadata.update({
        "status_auto_updated": False,
        "status_overridden_by": actor,
        "previous_status": lead.status.value if lead.status else None,
        "status_updated_at": (now or utcnow()).isoformat(),
    })
    storage.update_lead(lead_id, {"status": status, "metadata": metadata})
    logger.info(f"Lead {lead_id} status overridden by {actor}: {lead.status.value} -> {status.value}")
    return status
