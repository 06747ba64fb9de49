"""
Inbound message processor tests.

Run with: pytest tests/test_inbound_processor.py -v
"""

from datetime import timedelta

import pytest

from outreach.models.follow_up_job import JobStatus
from outreach.models.lead import LeadStatus
from outreach.models.message import MessageDirection
from outreach.scheduler.inbound_processor import InboundMessageProcessor
from outreach.utils.exceptions import LeadNotFoundError


@pytest.fixture
def processor(storage, queue, notifier, settings, rng):
    return InboundMessageProcessor(storage, queue, notifier=notifier, settings=settings, rng=rng)


class TestHandleInbound:

    def test_stores_message_and_schedules_reply(self, processor, storage, make_lead, now):
        lead = make_lead()

        job = processor.handle_inbound(lead.id, "hi, got a question", now=now)

        messages = storage.get_messages_by_lead_id(lead.id)
        assert [(m.direction, m.body) for m in messages] == [(MessageDirection.INBOUND, "hi, got a question")]
        assert messages[0].provider == "email"
        assert storage.get_lead_by_id(lead.id).last_message_at == now

        assert job.context["message_type"] == "reply"
        assert now + timedelta(minutes=2) <= job.scheduled_at <= now + timedelta(minutes=4)

    def test_quick_back_and_forth_replies_fast(self, processor, make_lead, add_messages, now):
        lead = make_lead(channel="whatsapp", phone="+15550001111")
        add_messages(lead.id, ("outbound", "hey Ana!", 2))

        job = processor.handle_inbound(lead.id, "hey!", now=now)

        assert now + timedelta(seconds=50) <= job.scheduled_at <= now + timedelta(seconds=60)

    def test_reply_pulls_pending_follow_up_forward(self, processor, storage, queue, make_lead, now):
        lead = make_lead()
        follow_up = queue.enqueue(lead.user_id, lead.id, lead.channel, now + timedelta(hours=20), {"message_type": "followup"})

        job = processor.handle_inbound(lead.id, "hello?", now=now)

        assert job.id == follow_up.id
        pending = [j for j in storage.jobs_for(lead.id) if j.status == JobStatus.PENDING]
        assert len(pending) == 1
        assert pending[0].scheduled_at < now + timedelta(minutes=5)
        assert pending[0].context["message_type"] == "reply"

    def test_rejection_stops_replies(self, processor, storage, make_lead, now):
        lead = make_lead(status=LeadStatus.OPEN)

        assert processor.handle_inbound(lead.id, "Please STOP messaging me", now=now) is None

        assert storage.get_lead_by_id(lead.id).status == LeadStatus.NOT_INTERESTED
        assert storage.jobs_for(lead.id) == []

    def test_conversion_notifies_owner(self, processor, storage, notifier, make_lead, add_messages, now):
        lead = make_lead(status=LeadStatus.REPLIED)
        add_messages(lead.id, ("outbound", "want to hop on a call?", 30), ("inbound", "sure", 20))

        assert processor.handle_inbound(lead.id, "sign me up", now=now) is None

        assert storage.get_lead_by_id(lead.id).status == LeadStatus.CONVERTED
        notifier.notify.assert_called_once()

    def test_paused_lead_gets_no_reply(self, processor, storage, make_lead, now):
        lead = make_lead(ai_paused=True)

        assert processor.handle_inbound(lead.id, "hello", now=now) is None
        assert len(storage.get_messages_by_lead_id(lead.id)) == 1
        assert storage.jobs_for(lead.id) == []

    def test_missing_lead_raises(self, processor, now):
        with pytest.raises(LeadNotFoundError):
            processor.handle_inbound("missing", "hello", now=now)

    def test_capped_lead_gets_no_reply(self, processor, storage, make_lead, now):
        lead = make_lead(status=LeadStatus.OPEN, follow_up_count=5)

        assert processor.handle_inbound(lead.id, "hmm ok", now=now) is None
        assert len(storage.get_messages_by_lead_id(lead.id)) == 1
        assert storage.jobs_for(lead.id) == []
