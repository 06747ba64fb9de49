from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any

from outreach.models.base_model import BaseModel


class JobStatus(Enum):
    """pending -> processing -> completed | pending (retry) | failed"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_JOB_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING)


class MessageType(Enum):
    REPLY = "reply"
    FOLLOWUP = "followup"


class FollowUpJob(BaseModel):
    ENUM_FIELDS = {"status": JobStatus}

    def __init__(self):
        self.id: str = None
        self.user_id: str = None
        self.lead_id: str = None
        self.channel: str = None
        self.scheduled_at: Optional[datetime] = None
        self.status: JobStatus = JobStatus.PENDING
        self.retry_count: int = 0
        self.error_message: Optional[str] = None
        self.processed_at: Optional[datetime] = None
        self.claimed_at: Optional[datetime] = None
        self.created_at: Optional[datetime] = None
        self.context: Dict[str, Any] = {}

    @property
    def message_type(self) -> str:
        return (self.context or {}).get("message_type", MessageType.FOLLOWUP.value)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_JOB_STATUSES
