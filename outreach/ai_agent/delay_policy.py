"""
Delay Policy - Human-like send timing for automated messages.

Fixed delays are easy to spot as automation, so every delay here is drawn
from a window:

- Follow-ups: 6-12 hours plus up to an hour of jitter, so a batch of
  follow-ups never fires in lockstep.
- Replies to a lead who is actively replying: 50-60 seconds.
- Other replies: 2-4 minutes.

Instagram caps outbound DMs at roughly 20 per hour, so a reply there is
never sent sooner than 3 minutes, however eager the lead looks.

The random source is injectable so callers and tests can pass a seeded
``random.Random``.
"""

import logging
import random
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from outreach.models.base_model import utcnow
from outreach.models.follow_up_job import MessageType
from outreach.models.lead import Channel
from outreach.models.message import Message, MessageDirection

logger = logging.getLogger(__name__)

SECOND_MS = 1000
MINUTE_MS = 60 * SECOND_MS
HOUR_MS = 60 * MINUTE_MS

# Follow-up window: base 6h + up to 6h + up to 60 minutes of jitter
FOLLOWUP_BASE_MS = 6 * HOUR_MS
FOLLOWUP_SPREAD_MS = 6 * HOUR_MS
FOLLOWUP_JITTER_MS = 60 * MINUTE_MS

# Active conversation: 50-60 seconds
ACTIVE_REPLY_MIN_MS = 50 * SECOND_MS
ACTIVE_REPLY_MAX_MS = 60 * SECOND_MS

# Normal reply: 2-4 minutes
NORMAL_REPLY_MIN_MS = 2 * MINUTE_MS
NORMAL_REPLY_MAX_MS = 4 * MINUTE_MS

# ~20 DMs/hour => one every 3 minutes
INSTAGRAM_MIN_REPLY_MS = 3 * MINUTE_MS

ACTIVE_REPLY_WINDOW = timedelta(minutes=5)

# Delay before follow-up #n (n = follow-ups already sent)
FOLLOW_UP_SCHEDULE = [
    timedelta(hours=2),
    timedelta(days=1),
    timedelta(days=2),
    timedelta(days=3),
    timedelta(weeks=1),
]
FOLLOW_UP_SCHEDULE_DEFAULT = timedelta(weeks=1)
FOLLOW_UP_JITTER = 0.15

_default_rng = random.Random()


def is_lead_actively_replying(messages: Sequence[Message]) -> bool:
    """
    True when the last two messages are our outbound followed by the lead's
    inbound answer, less than five minutes apart.
    """
    if len(messages) < 2:
        return False

    previous_message, last_message = messages[-2], messages[-1]

    if last_message.direction != MessageDirection.INBOUND:
        return False
    if previous_message.direction != MessageDirection.OUTBOUND:
        return False
    if not last_message.created_at or not previous_message.created_at:
        return False

    gap = last_message.created_at - previous_message.created_at
    return timedelta(0) <= gap < ACTIVE_REPLY_WINDOW


def calculate_reply_delay(
    message_type: str,
    recent_messages: Optional[List[Message]] = None,
    channel: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> int:
    """
    Compute the delay in milliseconds before sending an automated message.

    Args:
        message_type: "reply" or "followup"
        recent_messages: Lead's message history, oldest first
        channel: Target channel ("instagram", "email", "whatsapp")
        rng: Random source (defaults to a module-level ``random.Random``)

    Returns:
        Delay in milliseconds
    """
    rng = rng or _default_rng
    message_type = getattr(message_type, "value", message_type)
    channel = getattr(channel, "value", channel)

    if message_type == MessageType.FOLLOWUP.value:
        delay = (
            FOLLOWUP_BASE_MS
            + rng.random() * FOLLOWUP_SPREAD_MS
            + rng.random() * FOLLOWUP_JITTER_MS
        )
        return int(delay)

    if message_type != MessageType.REPLY.value:
        raise ValueError(f"Unknown message type: {message_type}")

    if is_lead_actively_replying(recent_messages or []):
        delay = int(rng.uniform(ACTIVE_REPLY_MIN_MS, ACTIVE_REPLY_MAX_MS))
        if channel == Channel.INSTAGRAM.value and delay < INSTAGRAM_MIN_REPLY_MS:
            logger.info("Lead is actively engaged but respecting Instagram limit - replying in 3min")
            return INSTAGRAM_MIN_REPLY_MS
        logger.info(f"Lead is actively engaged - replying in {round(delay / SECOND_MS)}s")
        return delay

    return int(rng.uniform(NORMAL_REPLY_MIN_MS, NORMAL_REPLY_MAX_MS))


def next_follow_up_delay(
    follow_up_count: int,
    rng: Optional[random.Random] = None,
) -> timedelta:
    """
    Delay before the next follow-up, from the per-ordinal schedule
    (2h, 1d, 2d, 3d, 1 week, then 1 week) with +/-15% jitter.
    """
    rng = rng or _default_rng
    if 0 <= follow_up_count < len(FOLLOW_UP_SCHEDULE):
        base = FOLLOW_UP_SCHEDULE[follow_up_count]
    else:
        base = FOLLOW_UP_SCHEDULE_DEFAULT

    factor = rng.uniform(1 - FOLLOW_UP_JITTER, 1 + FOLLOW_UP_JITTER)
    return base * factor


def delay_to_datetime(delay_ms: int, now: Optional[datetime] = None) -> datetime:
    """Turn a millisecond delay into an absolute send time."""
    return (now or utcnow()) + timedelta(milliseconds=delay_ms)
