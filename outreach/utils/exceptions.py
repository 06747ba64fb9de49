"""Exception hierarchy for the follow-up engine."""

from typing import List, Tuple


class OutreachError(Exception):
    """Base error for the outreach package."""


class StorageError(OutreachError):
    """The persistence layer rejected or failed an operation."""


class LeadNotFoundError(OutreachError):
    def __init__(self, lead_id: str):
        super().__init__(f"Lead not found: {lead_id}")
        self.lead_id = lead_id


class ChannelSendError(OutreachError):
    """A channel sender could not deliver a message."""

    def __init__(self, channel: str, message: str):
        super().__init__(f"[{channel}] {message}")
        self.channel = channel


class MessagingWindowError(ChannelSendError):
    """WhatsApp refuses free-form messages outside the 24-hour customer window."""


class DeliveryError(OutreachError):
    """Every candidate channel failed for a lead."""

    def __init__(self, lead_id: str, attempts: List[Tuple[str, str]]):
        self.lead_id = lead_id
        self.attempts = attempts
        if attempts:
            detail = "; ".join(f"{channel}: {error}" for channel, error in attempts)
        else:
            detail = "no channel with a usable contact handle"
        super().__init__(f"Failed to deliver to lead {lead_id} ({detail})")
