from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any

from outreach.models.base_model import BaseModel


class MessageDirection(Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class Message(BaseModel):
    """One conversation turn. Rows are never updated after insert."""

    ENUM_FIELDS = {"direction": MessageDirection}

    def __init__(self):
        self.id: str = None
        self.lead_id: str = None
        self.user_id: str = None
        self.provider: Optional[str] = None
        self.direction: MessageDirection = MessageDirection.INBOUND
        self.body: str = ""
        self.audio_url: Optional[str] = None
        self.metadata: Dict[str, Any] = {}
        self.created_at: Optional[datetime] = None

    @property
    def is_inbound(self) -> bool:
        return self.direction == MessageDirection.INBOUND

    @classmethod
    def build(
        cls,
        lead_id: str,
        user_id: str,
        direction: MessageDirection,
        body: str,
        provider: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> "Message":
        message = cls()
        message.lead_id = lead_id
        message.user_id = user_id
        message.direction = direction
        message.body = body or ""
        message.provider = provider
        message.metadata = dict(metadata or {})
        message.created_at = created_at
        return message
