"""
Follow-Up Queue - Persisted scheduled jobs for automated outreach.

Job lifecycle:

    pending --claim--> processing --mark_completed--> completed
                           |
                           +--record_failure--> pending (retry in 5 min)
                           +--record_failure--> failed  (after 3 attempts)
                           +--expire_stale_claims--> failed (claim older than 15 min)

A lead has at most one actionable (pending or processing) job; ``enqueue``
merges into the existing one instead of inserting a second.
"""

import logging
import random
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List, Sequence

from outreach.ai_agent.conversation_classifier import assess_lead_temperature
from outreach.ai_agent.delay_policy import (
    calculate_reply_delay,
    delay_to_datetime,
    next_follow_up_delay,
)
from outreach.models.base_model import utcnow
from outreach.models.follow_up_job import FollowUpJob, JobStatus, MessageType
from outreach.models.lead import Lead, LeadStatus
from outreach.models.message import Message
from outreach.utils.constants import WorkerSettings

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 10


class FollowUpQueue:
    def __init__(self, storage, settings: Optional[WorkerSettings] = None):
        self.storage = storage
        self.settings = settings or WorkerSettings()

    # ---- Insertion ----
    def enqueue(
        self,
        user_id: str,
        lead_id: str,
        channel: str,
        scheduled_at: datetime,
        context: Optional[Dict[str, Any]] = None,
    ) -> Optional[FollowUpJob]:
        """
        Schedule a job for a lead, merging into its active job if there is one.

        Returns:
            The lead's actionable job, or None if a job is already processing
        """
        existing = self.storage.get_active_follow_up(lead_id)

        if existing is not None:
            if existing.status == JobStatus.PROCESSING:
                logger.info(f"Lead {lead_id} has job {existing.id} in flight - not scheduling another")
                return None

            if existing.scheduled_at and existing.scheduled_at <= scheduled_at:
                logger.info(f"Lead {lead_id} already has pending job {existing.id} at {existing.scheduled_at}")
                return existing

            merged_context = {**(existing.context or {}), **(context or {})}
            moved = self.storage.update_follow_up(
                existing.id,
                {"scheduled_at": scheduled_at, "context": merged_context},
                expected_status=JobStatus.PENDING,
            )
            if not moved:
                # Claimed between the read and the write
                logger.info(f"Job {existing.id} was claimed before it could be rescheduled")
                return None

            existing.scheduled_at = scheduled_at
            existing.context = merged_context
            logger.info(f"Pulled job {existing.id} for lead {lead_id} forward to {scheduled_at}")
            return existing

        job = FollowUpJob()
        job.user_id = user_id
        job.lead_id = lead_id
        job.channel = channel
        job.scheduled_at = scheduled_at
        job.status = JobStatus.PENDING
        job.context = dict(context or {})

        created = self.storage.create_follow_up(job)
        logger.info(f"Scheduled {job.message_type} job {created.id} for lead {lead_id} at {scheduled_at}")
        return created

    # ---- Claiming ----
    def fetch_due(self, limit: Optional[int] = None, now: Optional[datetime] = None) -> List[FollowUpJob]:
        return self.storage.get_due_follow_ups(now or utcnow(), limit or self.settings.batch_size)

    def claim(self, job: FollowUpJob, now: Optional[datetime] = None) -> bool:
        """Compare-and-set pending -> processing. False if someone else got there first."""
        claimed_at = now or utcnow()
        if not self.storage.claim_follow_up(job.id, claimed_at):
            logger.debug(f"Job {job.id} already claimed")
            return False
        job.status = JobStatus.PROCESSING
        job.claimed_at = claimed_at
        return True

    def claim_due(self, limit: Optional[int] = None, now: Optional[datetime] = None) -> List[FollowUpJob]:
        now = now or utcnow()
        return [job for job in self.fetch_due(limit, now) if self.claim(job, now)]

    def expire_stale_claims(self, now: Optional[datetime] = None) -> List[str]:
        """
        Fail jobs left in ``processing`` longer than ``stale_claim_minutes``.

        A stale claim means the worker died or lost storage mid-job, so the
        message may already have gone out. Such jobs are failed, never
        retried, which also unblocks ``enqueue`` for the lead.

        Returns:
            Ids of the expired jobs
        """
        now = now or utcnow()
        cutoff = now - timedelta(minutes=self.settings.stale_claim_minutes)
        expired = []
        for job in self.storage.get_stale_claims(cutoff):
            if self.storage.update_follow_up(job.id, {
                "status": JobStatus.FAILED,
                "error_message": "Claim expired before completion; delivery state unknown",
                "processed_at": now,
            }, expected_status=JobStatus.PROCESSING):
                expired.append(job.id)
                logger.warning(f"Expired stale claim on job {job.id} for lead {job.lead_id}")
        return expired

    # ---- Outcomes ----
    def mark_completed(
        self,
        job: FollowUpJob,
        context_updates: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> None:
        context = {**(job.context or {}), **(context_updates or {})}
        self.storage.update_follow_up(job.id, {
            "status": JobStatus.COMPLETED,
            "processed_at": now or utcnow(),
            "error_message": None,
            "context": context,
        })
        job.status = JobStatus.COMPLETED
        job.context = context

    def record_failure(self, job: FollowUpJob, error: str, now: Optional[datetime] = None) -> JobStatus:
        """
        Count a failed attempt. The job retries after a fixed delay until
        ``max_retries`` attempts have failed, then fails for good.

        Returns:
            The job's new status (PENDING or FAILED)
        """
        now = now or utcnow()
        retry_count = job.retry_count + 1

        if retry_count >= self.settings.max_retries:
            updates = {
                "status": JobStatus.FAILED,
                "retry_count": retry_count,
                "error_message": error,
                "processed_at": now,
            }
            new_status = JobStatus.FAILED
        else:
            updates = {
                "status": JobStatus.PENDING,
                "retry_count": retry_count,
                "error_message": error,
                "scheduled_at": now + timedelta(minutes=self.settings.retry_delay_minutes),
            }
            new_status = JobStatus.PENDING

        self.storage.update_follow_up(job.id, updates, expected_status=JobStatus.PROCESSING)
        job.status = new_status
        job.retry_count = retry_count
        job.error_message = error

        if new_status == JobStatus.FAILED:
            logger.error(f"Job {job.id} failed permanently after {retry_count} attempts: {error}")
        else:
            logger.warning(f"Job {job.id} attempt {retry_count} failed, retrying: {error}")
        return new_status

    # ---- Scheduling policy ----
    def _history(self, lead: Lead, messages: Optional[Sequence[Message]]) -> Sequence[Message]:
        if messages is not None:
            return messages
        return self.storage.get_messages_by_lead_id(lead.id, limit=HISTORY_LIMIT)

    def schedule_next_follow_up(
        self,
        lead: Lead,
        previous_status: Optional[LeadStatus] = None,
        now: Optional[datetime] = None,
        rng: Optional[random.Random] = None,
        messages: Optional[Sequence[Message]] = None,
    ) -> Optional[FollowUpJob]:
        """
        Queue the lead's next follow-up on the per-ordinal schedule.

        Nothing is scheduled once the lead has had ``max_follow_ups``
        follow-ups, is in a terminal status, or has AI paused.
        """
        if lead.follow_up_count >= self.settings.max_follow_ups:
            logger.info(f"Max follow-ups reached for lead {lead.id}")
            return None
        if lead.is_terminal:
            logger.info(f"Lead {lead.id} is {lead.status.value} - no further follow-ups")
            return None
        if lead.ai_paused:
            logger.info(f"AI paused for lead {lead.id} - no further follow-ups")
            return None

        now = now or utcnow()
        scheduled_at = now + next_follow_up_delay(lead.follow_up_count, rng=rng)
        temperature = assess_lead_temperature(self._history(lead, messages), now=now)

        previous = previous_status if previous_status is not None else lead.status
        context = {
            "follow_up_number": lead.follow_up_count + 1,
            "message_type": MessageType.FOLLOWUP.value,
            "previous_status": previous.value if previous else None,
            "temperature": temperature,
        }

        logger.info(
            f"Scheduling {temperature} lead {lead.id} - follow-up #{context['follow_up_number']} "
            f"at {scheduled_at.isoformat()}"
        )
        return self.enqueue(lead.user_id, lead.id, lead.channel, scheduled_at, context)

    def schedule_reply(
        self,
        lead: Lead,
        messages: Optional[Sequence[Message]] = None,
        now: Optional[datetime] = None,
        rng: Optional[random.Random] = None,
    ) -> Optional[FollowUpJob]:
        """
        Queue a reply to the lead's latest message after a human-like delay.

        Replies count toward ``max_follow_ups``, so a capped lead gets none.
        """
        if lead.follow_up_count >= self.settings.max_follow_ups:
            logger.info(f"Max follow-ups reached for lead {lead.id} - not scheduling a reply")
            return None
        if lead.is_terminal or lead.ai_paused:
            logger.info(f"Not scheduling reply for lead {lead.id} (paused or {lead.status.value})")
            return None

        history = list(self._history(lead, messages))
        delay_ms = calculate_reply_delay(
            MessageType.REPLY.value, history, channel=lead.channel, rng=rng
        )
        now = now or utcnow()
        context = {
            "follow_up_number": lead.follow_up_count + 1,
            "message_type": MessageType.REPLY.value,
            "previous_status": lead.status.value if lead.status else None,
            "temperature": assess_lead_temperature(history, now=now),
        }
        return self.enqueue(lead.user_id, lead.id, lead.channel, delay_to_datetime(delay_ms, now), context)
