"""
Storage - Persistence interface consumed by the scheduler core.

``Storage`` is the narrow CRUD contract the worker, queue and classifier talk
to. ``SupabaseStorage`` implements it over these tables:

- leads              (id, user_id, name, channel, external_id, email, phone,
                      status, follow_up_count, last_message_at, ai_paused,
                      created_at, metadata)
- messages           (id, lead_id, user_id, provider, direction, body,
                      audio_url, metadata, created_at)
- follow_up_queue    (id, user_id, lead_id, channel, scheduled_at, status,
                      retry_count, error_message, claimed_at, processed_at, created_at,
                      context)
- users              (id, company, reply_tone, display_name, role)
- brand_embeddings   (user_id, snippet, color)
- notifications      (id, user_id, type, title, message, metadata, read,
                      created_at)

The job claim is a conditional update (``... WHERE id = ? AND status =
'pending'``); whichever caller gets a row back owns the job.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List

from outreach.models.base_model import parse_datetime, utcnow
from outreach.models.follow_up_job import FollowUpJob, JobStatus
from outreach.models.lead import Lead
from outreach.models.message import Message
from outreach.utils.exceptions import StorageError

logger = logging.getLogger(__name__)


def serialize_row(values: Dict[str, Any]) -> Dict[str, Any]:
    """Make a dict safe to send to the database (ISO datetimes, enum values)."""
    row = {}
    for key, value in values.items():
        if isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, Enum):
            value = value.value
        elif isinstance(value, dict):
            value = serialize_row(value)
        row[key] = value
    return row


class Storage(ABC):
    """CRUD contract for leads, messages, follow-up jobs and notifications."""

    # ---- Leads ----
    @abstractmethod
    def get_lead_by_id(self, lead_id: str) -> Optional[Lead]:
        ...

    @abstractmethod
    def update_lead(self, lead_id: str, updates: Dict[str, Any]) -> Optional[Lead]:
        ...

    # ---- Messages ----
    @abstractmethod
    def get_messages_by_lead_id(self, lead_id: str, limit: Optional[int] = None) -> List[Message]:
        """Messages for a lead, oldest first. ``limit`` keeps the most recent ones."""

    @abstractmethod
    def create_message(self, message: Message) -> Message:
        ...

    # ---- Follow-up queue ----
    @abstractmethod
    def create_follow_up(self, job: FollowUpJob) -> FollowUpJob:
        ...

    @abstractmethod
    def get_follow_up(self, job_id: str) -> Optional[FollowUpJob]:
        ...

    @abstractmethod
    def get_due_follow_ups(self, now: datetime, limit: int) -> List[FollowUpJob]:
        """Pending jobs with scheduled_at <= now, oldest scheduled_at first."""

    @abstractmethod
    def get_active_follow_up(self, lead_id: str) -> Optional[FollowUpJob]:
        """The lead's pending or processing job, if any."""

    @abstractmethod
    def update_follow_up(
        self,
        job_id: str,
        updates: Dict[str, Any],
        expected_status: Optional[JobStatus] = None,
    ) -> bool:
        """
        Apply ``updates`` to a job. With ``expected_status`` the update only
        lands if the job is still in that status. Returns True if a row changed.
        """

    def claim_follow_up(self, job_id: str, claimed_at: Optional[datetime] = None) -> bool:
        """Compare-and-set pending -> processing, stamping the claim time."""
        return self.update_follow_up(
            job_id,
            {"status": JobStatus.PROCESSING, "claimed_at": claimed_at or utcnow()},
            expected_status=JobStatus.PENDING,
        )

    @abstractmethod
    def get_stale_claims(self, claimed_before: datetime) -> List[FollowUpJob]:
        """Jobs still ``processing`` whose claim is older than ``claimed_before``."""

    # ---- Users / brand ----
    @abstractmethod
    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def get_brand_snippets(self, user_id: str, limit: int = 5) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def get_admin_user_ids(self) -> List[str]:
        ...

    # ---- Notifications ----
    @abstractmethod
    def create_notification(self, user_id: str, notification: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    def get_due_comment_follow_ups(self, now: datetime) -> List[Dict[str, Any]]:
        """Unread comment-automation notifications whose scheduledFor has passed."""

    @abstractmethod
    def mark_notification_read(self, notification_id: str) -> None:
        ...


class SupabaseStorage(Storage):
    LEADS_TABLE = "leads"
    MESSAGES_TABLE = "messages"
    QUEUE_TABLE = "follow_up_queue"
    USERS_TABLE = "users"
    BRAND_TABLE = "brand_embeddings"
    NOTIFICATIONS_TABLE = "notifications"

    def __init__(self, supabase_client=None):
        """
        Args:
            supabase_client: Optional Supabase client (defaults to singleton)
        """
        if supabase_client is None:
            from outreach.database.supabase_client import SupabaseClientSingleton
            supabase_client = SupabaseClientSingleton.get_instance()
        self.supabase = supabase_client

    # ---- Leads ----
    def get_lead_by_id(self, lead_id: str) -> Optional[Lead]:
        result = self.supabase.table(self.LEADS_TABLE).select("*").eq(
            "id", lead_id
        ).limit(1).execute()
        if not result.data:
            return None
        return Lead.from_dict(result.data[0])

    def update_lead(self, lead_id: str, updates: Dict[str, Any]) -> Optional[Lead]:
        result = self.supabase.table(self.LEADS_TABLE).update(
            serialize_row(updates)
        ).eq("id", lead_id).execute()
        if not result.data:
            return None
        return Lead.from_dict(result.data[0])

    # ---- Messages ----
    def get_messages_by_lead_id(self, lead_id: str, limit: Optional[int] = None) -> List[Message]:
        query = self.supabase.table(self.MESSAGES_TABLE).select("*").eq("lead_id", lead_id)
        if limit:
            # Newest first so the limit keeps the most recent turns
            result = query.order("created_at", desc=True).limit(limit).execute()
            rows = list(reversed(result.data or []))
        else:
            result = query.order("created_at").execute()
            rows = result.data or []
        return [Message.from_dict(row) for row in rows]

    def create_message(self, message: Message) -> Message:
        row = message.to_dict()
        row.pop("id", None)
        if not row.get("created_at"):
            row["created_at"] = utcnow().isoformat()
        result = self.supabase.table(self.MESSAGES_TABLE).insert(serialize_row(row)).execute()
        if not result.data:
            raise StorageError(f"Failed to insert message for lead {message.lead_id}")
        return Message.from_dict(result.data[0])

    # ---- Follow-up queue ----
    def create_follow_up(self, job: FollowUpJob) -> FollowUpJob:
        row = job.to_dict()
        row.pop("id", None)
        if not row.get("created_at"):
            row["created_at"] = utcnow().isoformat()
        result = self.supabase.table(self.QUEUE_TABLE).insert(serialize_row(row)).execute()
        if not result.data:
            raise StorageError(f"Failed to insert follow-up job for lead {job.lead_id}")
        return FollowUpJob.from_dict(result.data[0])

    def get_follow_up(self, job_id: str) -> Optional[FollowUpJob]:
        result = self.supabase.table(self.QUEUE_TABLE).select("*").eq(
            "id", job_id
        ).limit(1).execute()
        if not result.data:
            return None
        return FollowUpJob.from_dict(result.data[0])

    def get_due_follow_ups(self, now: datetime, limit: int) -> List[FollowUpJob]:
        result = self.supabase.table(self.QUEUE_TABLE).select("*").eq(
            "status", JobStatus.PENDING.value
        ).lte("scheduled_at", now.isoformat()).order("scheduled_at").limit(limit).execute()
        return [FollowUpJob.from_dict(row) for row in result.data or []]

    def get_active_follow_up(self, lead_id: str) -> Optional[FollowUpJob]:
        result = self.supabase.table(self.QUEUE_TABLE).select("*").eq(
            "lead_id", lead_id
        ).in_(
            "status", [JobStatus.PENDING.value, JobStatus.PROCESSING.value]
        ).order("scheduled_at").limit(1).execute()
        if not result.data:
            return None
        return FollowUpJob.from_dict(result.data[0])

    def update_follow_up(
        self,
        job_id: str,
        updates: Dict[str, Any],
        expected_status: Optional[JobStatus] = None,
    ) -> bool:
        query = self.supabase.table(self.QUEUE_TABLE).update(
            serialize_row(updates)
        ).eq("id", job_id)
        if expected_status is not None:
            query = query.eq("status", expected_status.value)
        result = query.execute()
        return bool(result.data)

    def get_stale_claims(self, claimed_before: datetime) -> List[FollowUpJob]:
        result = self.supabase.table(self.QUEUE_TABLE).select("*").eq(
            "status", JobStatus.PROCESSING.value
        ).lt("claimed_at", claimed_before.isoformat()).execute()
        return [FollowUpJob.from_dict(row) for row in result.data or []]

    # ---- Users / brand ----
    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table(self.USERS_TABLE).select("*").eq(
            "id", user_id
        ).limit(1).execute()
        return result.data[0] if result.data else None

    def get_brand_snippets(self, user_id: str, limit: int = 5) -> List[Dict[str, Any]]:
        result = self.supabase.table(self.BRAND_TABLE).select("snippet, color").eq(
            "user_id", user_id
        ).limit(limit).execute()
        return result.data or []

    def get_admin_user_ids(self) -> List[str]:
        result = self.supabase.table(self.USERS_TABLE).select("id").eq("role", "admin").execute()
        return [row["id"] for row in result.data or []]

    # ---- Notifications ----
    def create_notification(self, user_id: str, notification: Dict[str, Any]) -> Dict[str, Any]:
        row = {
            "user_id": user_id,
            "read": False,
            "created_at": utcnow().isoformat(),
            **notification,
        }
        result = self.supabase.table(self.NOTIFICATIONS_TABLE).insert(serialize_row(row)).execute()
        return result.data[0] if result.data else {}

    def get_due_comment_follow_ups(self, now: datetime) -> List[Dict[str, Any]]:
        result = self.supabase.table(self.NOTIFICATIONS_TABLE).select("*").eq(
            "type", "info"
        ).eq("read", False).eq(
            "metadata->>followUpType", "comment_automation"
        ).execute()

        due = []
        for row in result.data or []:
            scheduled_for = parse_datetime((row.get("metadata") or {}).get("scheduledFor"))
            if scheduled_for and scheduled_for <= now:
                due.append(row)
        return due

    def mark_notification_read(self, notification_id: str) -> None:
        self.supabase.table(self.NOTIFICATIONS_TABLE).update(
            {"read": True}
        ).eq("id", notification_id).execute()
