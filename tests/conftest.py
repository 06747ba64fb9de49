"""
Shared test fixtures for the follow-up engine test suite.

Provides an in-memory Storage with real compare-and-set semantics, stub
channel senders, a stub reply generator, a seeded random source and a
fixed clock.
"""

import asyncio
import itertools
import random
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from outreach.ai_agent.brand_context import BrandContextProvider
from outreach.ai_agent.reply_generator import GeneratedReply
from outreach.database.storage import Storage
from outreach.messaging.base import ChannelSender
from outreach.messaging.dispatcher import ChannelDispatcher
from outreach.models.base_model import parse_datetime
from outreach.models.follow_up_job import FollowUpJob, JobStatus, ACTIVE_JOB_STATUSES
from outreach.models.lead import Lead, LeadStatus
from outreach.models.message import Message, MessageDirection
from outreach.monitoring.worker_health import WorkerHealthMonitor
from outreach.scheduler.follow_up_queue import FollowUpQueue
from outreach.scheduler.follow_up_worker import FollowUpWorker
from outreach.utils.constants import WorkerSettings


NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# IN-MEMORY STORAGE
# =============================================================================

class InMemoryStorage(Storage):
    """Dict-backed Storage. Reads return copies, so callers never share state."""

    def __init__(self):
        self.leads: Dict[str, Lead] = {}
        self.messages: List[Message] = []
        self.jobs: Dict[str, FollowUpJob] = {}
        self.users: Dict[str, Dict[str, Any]] = {}
        self.brand_snippets: Dict[str, List[Dict[str, Any]]] = {}
        self.admin_ids: List[str] = []
        self.notifications: List[Dict[str, Any]] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    @staticmethod
    def _copy(model):
        return type(model).from_dict(model.to_dict())

    # ---- Leads ----
    def add_lead(self, lead: Lead) -> Lead:
        if not lead.id:
            lead.id = self._next_id("lead")
        self.leads[lead.id] = self._copy(lead)
        return lead

    def get_lead_by_id(self, lead_id: str) -> Optional[Lead]:
        lead = self.leads.get(lead_id)
        return self._copy(lead) if lead else None

    def update_lead(self, lead_id: str, updates: Dict[str, Any]) -> Optional[Lead]:
        lead = self.leads.get(lead_id)
        if lead is None:
            return None
        for key, value in updates.items():
            setattr(lead, key, value)
        return self._copy(lead)

    # ---- Messages ----
    def get_messages_by_lead_id(self, lead_id: str, limit: Optional[int] = None) -> List[Message]:
        rows = sorted(
            (m for m in self.messages if m.lead_id == lead_id),
            key=lambda m: m.created_at,
        )
        if limit:
            rows = rows[-limit:]
        return [self._copy(m) for m in rows]

    def create_message(self, message: Message) -> Message:
        stored = self._copy(message)
        stored.id = self._next_id("msg")
        stored.created_at = stored.created_at or NOW
        self.messages.append(stored)
        return self._copy(stored)

    # ---- Follow-up queue ----
    def create_follow_up(self, job: FollowUpJob) -> FollowUpJob:
        stored = self._copy(job)
        stored.id = self._next_id("job")
        stored.created_at = stored.created_at or NOW
        self.jobs[stored.id] = stored
        return self._copy(stored)

    def get_follow_up(self, job_id: str) -> Optional[FollowUpJob]:
        job = self.jobs.get(job_id)
        return self._copy(job) if job else None

    def get_due_follow_ups(self, now: datetime, limit: int) -> List[FollowUpJob]:
        due = sorted(
            (j for j in self.jobs.values()
             if j.status == JobStatus.PENDING and j.scheduled_at <= now),
            key=lambda j: j.scheduled_at,
        )
        return [self._copy(j) for j in due[:limit]]

    def get_active_follow_up(self, lead_id: str) -> Optional[FollowUpJob]:
        active = sorted(
            (j for j in self.jobs.values()
             if j.lead_id == lead_id and j.status in ACTIVE_JOB_STATUSES),
            key=lambda j: j.scheduled_at,
        )
        return self._copy(active[0]) if active else None

    def update_follow_up(self, job_id: str, updates: Dict[str, Any], expected_status=None) -> bool:
        with self._lock:
            job = self.jobs.get(job_id)
            if job is None:
                return False
            if expected_status is not None and job.status != expected_status:
                return False
            for key, value in updates.items():
                setattr(job, key, value)
            return True

    def get_stale_claims(self, claimed_before: datetime) -> List[FollowUpJob]:
        return [
            self._copy(j) for j in self.jobs.values()
            if j.status == JobStatus.PROCESSING and j.claimed_at and j.claimed_at < claimed_before
        ]

    def jobs_for(self, lead_id: str) -> List[FollowUpJob]:
        return [self._copy(j) for j in self.jobs.values() if j.lead_id == lead_id]

    # ---- Users / brand ----
    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self.users.get(user_id)

    def get_brand_snippets(self, user_id: str, limit: int = 5) -> List[Dict[str, Any]]:
        return self.brand_snippets.get(user_id, [])[:limit]

    def get_admin_user_ids(self) -> List[str]:
        return list(self.admin_ids)

    # ---- Notifications ----
    def create_notification(self, user_id: str, notification: Dict[str, Any]) -> Dict[str, Any]:
        row = {"id": self._next_id("notif"), "user_id": user_id, "read": False, **notification}
        self.notifications.append(row)
        return row

    def get_due_comment_follow_ups(self, now: datetime) -> List[Dict[str, Any]]:
        due = []
        for row in self.notifications:
            metadata = row.get("metadata") or {}
            if row.get("type") != "info" or row.get("read"):
                continue
            if metadata.get("followUpType") != "comment_automation":
                continue
            scheduled_for = parse_datetime(metadata.get("scheduledFor"))
            if scheduled_for and scheduled_for <= now:
                due.append(row)
        return due

    def mark_notification_read(self, notification_id: str) -> None:
        for row in self.notifications:
            if row["id"] == notification_id:
                row["read"] = True


# =============================================================================
# COLLABORATOR STUBS
# =============================================================================

class StubSender(ChannelSender):
    """Records sends; raises ``error`` instead when set."""

    def __init__(self, channel: str, error: Optional[Exception] = None):
        self.channel = channel
        self.error = error
        self.sent = []

    async def send(self, user_id: str, recipient: str, text: str) -> str:
        # Yield so concurrent jobs interleave
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        self.sent.append((user_id, recipient, text))
        return f"{self.channel}-msg-{len(self.sent)}"


class StubReplyGenerator:
    def __init__(self, text: str = "Hey there, just checking in!", is_fallback: bool = False):
        self.text = text
        self.is_fallback = is_fallback
        self.drafts = 0
        self.replies = 0

    def _reply(self):
        return GeneratedReply(text=self.text, tokens_used=12, model="stub", is_fallback=self.is_fallback)

    async def generate(self, system_prompt, user_prompt, temperature=0.7, max_tokens=200):
        return self._reply()

    async def draft_follow_up(self, lead, history, brand, temperature_label=None):
        self.drafts += 1
        await asyncio.sleep(0)
        return self._reply()

    async def draft_reply(self, lead, history, brand, temperature_label=None):
        self.replies += 1
        await asyncio.sleep(0)
        return self._reply()


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def now():
    return NOW


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def settings():
    return WorkerSettings()


@pytest.fixture
def make_lead(storage):
    """Factory: create and persist a lead."""

    def _make_lead(**overrides) -> Lead:
        lead = Lead()
        lead.user_id = "user-1"
        lead.name = "Ana Lopez"
        lead.channel = "email"
        lead.email = "ana@example.com"
        lead.status = LeadStatus.NEW
        lead.created_at = NOW - timedelta(days=2)
        for key, value in overrides.items():
            setattr(lead, key, value)
        return storage.add_lead(lead)

    return _make_lead


@pytest.fixture
def make_message():
    """Factory: build (not persist) a message ``minutes_ago`` before NOW."""

    def _make_message(direction, body="", minutes_ago=0, lead_id="lead-1", **metadata) -> Message:
        if isinstance(direction, str):
            direction = MessageDirection(direction)
        return Message.build(
            lead_id=lead_id,
            user_id="user-1",
            direction=direction,
            body=body,
            metadata=metadata,
            created_at=NOW - timedelta(minutes=minutes_ago),
        )

    return _make_message


@pytest.fixture
def add_messages(storage, make_message):
    """Factory: persist messages for a lead."""

    def _add_messages(lead_id: str, *specs):
        for direction, body, minutes_ago in specs:
            storage.create_message(make_message(direction, body, minutes_ago, lead_id=lead_id))

    return _add_messages


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def health_monitor(notifier):
    return WorkerHealthMonitor(notifier=notifier)


@pytest.fixture
def senders():
    return {
        "email": StubSender("email"),
        "whatsapp": StubSender("whatsapp"),
        "instagram": StubSender("instagram"),
    }


@pytest.fixture
def dispatcher(senders, storage):
    return ChannelDispatcher(senders.values(), storage=storage)


@pytest.fixture
def reply_generator():
    return StubReplyGenerator()


@pytest.fixture
def queue(storage, settings):
    return FollowUpQueue(storage, settings)


@pytest.fixture
def worker(storage, queue, reply_generator, dispatcher, health_monitor, notifier, settings, rng):
    return FollowUpWorker(
        storage=storage,
        queue=queue,
        reply_generator=reply_generator,
        dispatcher=dispatcher,
        brand_provider=BrandContextProvider(storage),
        health_monitor=health_monitor,
        notifier=notifier,
        settings=settings,
        rng=rng,
    )
