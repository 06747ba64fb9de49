"""
Follow-Up Worker - Polls the follow-up queue and delivers due messages.

Each tick:
1. Drains due comment-automation follow-ups
2. Fails jobs whose claim went stale (worker died mid-job)
3. Claims up to ``batch_size`` due jobs (compare-and-set, so overlapping
   ticks never process the same job twice)
4. Processes the claimed jobs concurrently; one job's failure never
   affects another's
5. Reports the tick outcome to the health monitor

Per job: load lead -> skip if paused/terminal -> draft with AI (a reply to
the latest inbound message, or a follow-up) -> deliver with channel
fallback -> persist the outbound message, bump the lead's follow-up count,
reclassify on what the lead has said, and schedule the next follow-up.
Delivery failures go back to the queue for retry; nothing after a
successful send ever does.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from outreach.ai_agent.conversation_classifier import (
    assess_lead_temperature,
    auto_update_lead_status,
)
from outreach.models.base_model import utcnow
from outreach.models.follow_up_job import FollowUpJob, JobStatus, MessageType
from outreach.models.lead import Lead
from outreach.models.message import Message, MessageDirection
from outreach.notifications.notifier import NotificationType
from outreach.scheduler.ticker import IntervalTicker
from outreach.utils.constants import WorkerSettings
from outreach.utils.exceptions import DeliveryError, LeadNotFoundError
from outreach.utils.worker_error_logger import log_job_failure, log_worker_error

logger = logging.getLogger(__name__)

WORKER_NAME = "follow_up_worker"


class JobOutcome(Enum):
    COMPLETED = "completed"
    RETRIED = "retried"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class TickResult:
    claimed: int = 0
    completed: int = 0
    retried: int = 0
    failed: int = 0
    skipped: int = 0

    def record(self, outcome: JobOutcome) -> None:
        field_name = outcome.value
        setattr(self, field_name, getattr(self, field_name) + 1)


class FollowUpWorker:
    def __init__(
        self,
        storage,
        queue,
        reply_generator,
        dispatcher,
        brand_provider,
        health_monitor,
        notifier,
        comment_processor=None,
        settings: Optional[WorkerSettings] = None,
        rng: Optional[random.Random] = None,
    ):
        self.storage = storage
        self.queue = queue
        self.reply_generator = reply_generator
        self.dispatcher = dispatcher
        self.brand_provider = brand_provider
        self.health_monitor = health_monitor
        self.notifier = notifier
        self.comment_processor = comment_processor
        self.settings = settings or WorkerSettings()
        self.rng = rng
        self._ticker: Optional[IntervalTicker] = None

        if self.health_monitor.get_worker_health(WORKER_NAME) is None:
            self.health_monitor.register_worker(WORKER_NAME)

    # ---- Lifecycle ----
    def start(self) -> None:
        if self.is_running:
            logger.info("Follow-up worker is already running")
            return

        logger.info("Starting follow-up worker...")
        self._ticker = IntervalTicker(
            self.run_tick,
            interval_seconds=self.settings.poll_interval_seconds,
            name=WORKER_NAME,
            run_immediately=True,
        )
        self._ticker.start()

    def stop(self) -> None:
        if self._ticker:
            self._ticker.stop()
            self._ticker = None
        logger.info("Follow-up worker stopped")

    @property
    def is_running(self) -> bool:
        return bool(self._ticker and self._ticker.running)

    def run_tick(self) -> TickResult:
        """Synchronous entry point for the ticker thread."""
        return asyncio.run(self.process_queue())

    # ---- Tick ----
    async def process_queue(self, now: Optional[datetime] = None) -> TickResult:
        now = now or utcnow()
        result = TickResult()

        try:
            if self.comment_processor is not None:
                try:
                    await self.comment_processor.process_due(now)
                except Exception as e:
                    logger.error(f"Comment follow-up processing error: {e}")
                    log_worker_error(e, {"component": "comment_follow_ups"})

            expired = self.queue.expire_stale_claims(now)
            if expired:
                logger.warning(f"Expired {len(expired)} stale follow-up claims")

            jobs = self.queue.claim_due(self.settings.batch_size, now)
            result.claimed = len(jobs)
            if not jobs:
                self.health_monitor.record_success(WORKER_NAME, now)
                return result

            logger.info(f"Processing {len(jobs)} follow-up jobs...")
            outcomes = await asyncio.gather(
                *(self.process_job(job, now) for job in jobs),
                return_exceptions=True,
            )

            for job, outcome in zip(jobs, outcomes):
                if isinstance(outcome, Exception):
                    logger.error(f"Error processing job {job.id}: {outcome}")
                    try:
                        outcome = self._handle_failure(job, outcome, now)
                    except Exception as e:
                        # Left in processing; expire_stale_claims fails it later
                        logger.error(f"Could not record failure for job {job.id}: {e}")
                        log_worker_error(e, {"component": WORKER_NAME, "job_id": job.id})
                        outcome = JobOutcome.FAILED
                result.record(outcome)

            logger.info(
                f"Tick done: {result.completed} sent, {result.skipped} skipped, "
                f"{result.retried} retrying, {result.failed} failed"
            )
            self.health_monitor.record_success(WORKER_NAME, now)
        except Exception as e:
            logger.error(f"Queue processing error: {e}", exc_info=True)
            log_worker_error(e, {"component": WORKER_NAME, "stage": "tick"})
            self.health_monitor.record_error(WORKER_NAME, str(e))

        return result

    # ---- Job ----
    async def process_job(self, job: FollowUpJob, now: Optional[datetime] = None) -> JobOutcome:
        """Process one claimed job. Unexpected exceptions propagate to the tick."""
        now = now or utcnow()

        lead = self.storage.get_lead_by_id(job.lead_id)
        if lead is None:
            return self._handle_failure(job, LeadNotFoundError(job.lead_id), now)

        if lead.ai_paused or lead.is_terminal:
            reason = "ai_paused" if lead.ai_paused else f"lead_{lead.status.value}"
            logger.info(f"Skipping job {job.id} for lead {lead.id}: {reason}")
            self.queue.mark_completed(job, {"skipped": reason}, now=now)
            return JobOutcome.SKIPPED

        history = self.storage.get_messages_by_lead_id(lead.id)
        brand = self.brand_provider.get_brand_context(job.user_id)
        temperature = (job.context or {}).get("temperature") or assess_lead_temperature(history, now=now)

        if job.message_type == MessageType.REPLY.value:
            reply = await self.reply_generator.draft_reply(lead, history, brand, temperature)
        else:
            reply = await self.reply_generator.draft_follow_up(lead, history, brand, temperature)

        try:
            delivery = await self.dispatcher.deliver(lead, reply.text, job.channel or lead.channel)
        except DeliveryError as e:
            return self._handle_failure(job, e, now, lead)

        try:
            self._record_delivery(job, lead, history, reply, delivery, now)
        except Exception as e:
            # Already sent: a retry here would message the lead twice
            logger.error(f"Job {job.id} delivered but bookkeeping failed: {e}")
            log_worker_error(e, {"component": WORKER_NAME, "job_id": job.id, "lead_id": lead.id})
            try:
                self.queue.mark_completed(job, {
                    "delivered_via": delivery.channel,
                    "bookkeeping_error": str(e),
                }, now=now)
            except Exception as mark_error:
                # Stays in processing until expire_stale_claims fails it
                logger.error(f"Job {job.id} could not be marked completed: {mark_error}")
                log_worker_error(mark_error, {"component": WORKER_NAME, "job_id": job.id, "stage": "mark_completed"})
        return JobOutcome.COMPLETED

    def _record_delivery(self, job: FollowUpJob, lead: Lead, history, reply, delivery, now: datetime) -> None:
        follow_up_number = lead.follow_up_count + 1
        previous_status = lead.status

        message = Message.build(
            lead_id=lead.id,
            user_id=job.user_id,
            direction=MessageDirection.OUTBOUND,
            body=reply.text,
            provider=delivery.channel,
            metadata={
                "ai_generated": not reply.is_fallback,
                "follow_up_number": follow_up_number,
                "job_id": job.id,
                "delivered_via": delivery.channel,
            },
            created_at=now,
        )
        message = self.storage.create_message(message)

        self.storage.update_lead(lead.id, {
            "follow_up_count": follow_up_number,
            "last_message_at": now,
        })
        lead.follow_up_count = follow_up_number
        lead.last_message_at = now

        self.queue.mark_completed(job, {
            "delivered_via": delivery.channel,
            "ai_fallback": reply.is_fallback,
            "tokens_used": reply.tokens_used,
        }, now=now)
        logger.info(f"Follow-up #{follow_up_number} sent to lead {lead.id} via {delivery.channel}")

        # Our own text must never drive the lead's status
        said_by_lead = history_through_last_inbound(history)
        if said_by_lead:
            new_status = auto_update_lead_status(
                self.storage,
                lead.id,
                said_by_lead,
                notifier=self.notifier,
                now=now,
                confidence_threshold=self.settings.status_confidence_threshold,
            )
            if new_status is not None:
                lead.status = new_status

        messages = list(history) + [message]

        self.queue.schedule_next_follow_up(
            lead,
            previous_status=previous_status,
            now=now,
            rng=self.rng,
            messages=messages,
        )

    def _handle_failure(
        self,
        job: FollowUpJob,
        error: Exception,
        now: datetime,
        lead: Optional[Lead] = None,
    ) -> JobOutcome:
        status = self.queue.record_failure(job, str(error), now=now)
        permanent = status == JobStatus.FAILED
        log_job_failure(error, job.id, job.lead_id, job.retry_count, permanent)

        if not permanent:
            return JobOutcome.RETRIED

        if self.notifier is not None:
            lead_name = lead.name if lead else job.lead_id
            self.notifier.notify(
                job.user_id,
                title="Follow-up failed",
                message=(
                    f"We couldn't deliver a follow-up to {lead_name} after "
                    f"{job.retry_count} attempts: {error}"
                ),
                notification_type=NotificationType.FOLLOW_UP_FAILED,
                metadata={"lead_id": job.lead_id, "job_id": job.id},
            )
        return JobOutcome.FAILED



def history_through_last_inbound(history):
    """Conversation up to and including the lead's most recent message."""
    messages = list(history)
    for index in range(len(messages) - 1, -1, -1):
        if messages[index].is_inbound:
            return messages[:index + 1]
    return []
