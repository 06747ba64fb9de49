from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any

from outreach.models.base_model import BaseModel


class LeadStatus(Enum):
    """Lifecycle of a lead. ``converted`` and ``not_interested`` are terminal."""
    NEW = "new"
    OPEN = "open"
    REPLIED = "replied"
    CONVERTED = "converted"
    NOT_INTERESTED = "not_interested"
    COLD = "cold"


TERMINAL_STATUSES = frozenset({LeadStatus.CONVERTED, LeadStatus.NOT_INTERESTED})


class Channel(Enum):
    INSTAGRAM = "instagram"
    EMAIL = "email"
    WHATSAPP = "whatsapp"


class Lead(BaseModel):
    ENUM_FIELDS = {"status": LeadStatus}

    def __init__(self):
        self.id: str = None
        self.user_id: str = None
        self.name: str = ""
        self.channel: str = Channel.EMAIL.value
        self.external_id: Optional[str] = None
        self.email: Optional[str] = None
        self.phone: Optional[str] = None
        self.status: LeadStatus = LeadStatus.NEW
        self.follow_up_count: int = 0
        self.last_message_at: Optional[datetime] = None
        self.ai_paused: bool = False
        self.created_at: Optional[datetime] = None
        self.metadata: Dict[str, Any] = {}

    @property
    def first_name(self) -> str:
        preferred = (self.metadata or {}).get("preferred_name")
        if preferred:
            return preferred
        parts = (self.name or "").split()
        return parts[0] if parts else "there"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def contact_handle(self, channel: str) -> Optional[str]:
        """Return the address this lead can be reached at on ``channel``, if any."""
        if channel == Channel.INSTAGRAM.value:
            return self.external_id or None
        if channel == Channel.WHATSAPP.value:
            return self.phone or None
        if channel == Channel.EMAIL.value:
            return self.email or None
        return None
