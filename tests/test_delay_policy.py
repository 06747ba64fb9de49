"""
Delay policy tests.

Run with: pytest tests/test_delay_policy.py -v
"""

import random
from datetime import timedelta

import pytest

from outreach.ai_agent.delay_policy import (
    FOLLOW_UP_SCHEDULE,
    HOUR_MS,
    MINUTE_MS,
    calculate_reply_delay,
    delay_to_datetime,
    is_lead_actively_replying,
    next_follow_up_delay,
)
from outreach.models.follow_up_job import MessageType


class TestFollowUpDelay:

    def test_follow_up_delay_within_window(self):
        rng = random.Random(7)
        for _ in range(500):
            delay = calculate_reply_delay("followup", rng=rng)
            assert 6 * HOUR_MS <= delay <= 12 * HOUR_MS + 60 * MINUTE_MS

    def test_follow_up_accepts_enum(self, rng):
        delay = calculate_reply_delay(MessageType.FOLLOWUP, rng=rng)
        assert delay >= 6 * HOUR_MS

    def test_follow_up_ignores_conversation(self, make_message, rng):
        messages = [make_message("outbound", "hi", 3), make_message("inbound", "hey", 2)]
        delay = calculate_reply_delay("followup", messages, "instagram", rng=rng)
        assert delay >= 6 * HOUR_MS

    def test_unknown_type_raises(self, rng):
        with pytest.raises(ValueError):
            calculate_reply_delay("broadcast", rng=rng)


class TestReplyDelay:

    def test_normal_reply_two_to_four_minutes(self):
        rng = random.Random(3)
        for channel in ("email", "whatsapp", "instagram", None):
            for _ in range(200):
                delay = calculate_reply_delay("reply", [], channel, rng=rng)
                assert 120000 <= delay <= 240000

    def test_active_reply_under_a_minute(self, make_message):
        rng = random.Random(11)
        messages = [make_message("outbound", "hi", 3), make_message("inbound", "hey!", 1)]
        for _ in range(200):
            delay = calculate_reply_delay("reply", messages, "whatsapp", rng=rng)
            assert 50000 <= delay <= 60000

    def test_active_reply_on_instagram_floored(self, make_message, rng):
        messages = [make_message("outbound", "hi", 3), make_message("inbound", "hey!", 1)]
        assert calculate_reply_delay("reply", messages, "instagram", rng=rng) == 180000

    def test_instagram_never_below_floor(self, make_message):
        rng = random.Random(99)
        active = [make_message("outbound", "hi", 3), make_message("inbound", "hey!", 1)]
        for messages in ([], active):
            for _ in range(100):
                assert calculate_reply_delay("reply", messages, "instagram", rng=rng) >= 120000


class TestActivelyReplying:

    def test_outbound_then_quick_inbound(self, make_message):
        messages = [make_message("outbound", "hi", 4), make_message("inbound", "yo", 0)]
        assert is_lead_actively_replying(messages)

    def test_gap_of_five_minutes_is_not_active(self, make_message):
        messages = [make_message("outbound", "hi", 5), make_message("inbound", "yo", 0)]
        assert not is_lead_actively_replying(messages)

    def test_two_inbound_is_not_active(self, make_message):
        messages = [make_message("inbound", "hi", 2), make_message("inbound", "yo", 1)]
        assert not is_lead_actively_replying(messages)

    def test_last_outbound_is_not_active(self, make_message):
        messages = [make_message("inbound", "hi", 2), make_message("outbound", "yo", 1)]
        assert not is_lead_actively_replying(messages)

    def test_single_message_is_not_active(self, make_message):
        assert not is_lead_actively_replying([make_message("inbound", "hi", 0)])


class TestFollowUpSchedule:

    @pytest.mark.parametrize("count", range(len(FOLLOW_UP_SCHEDULE)))
    def test_schedule_with_jitter(self, count):
        rng = random.Random(count)
        base = FOLLOW_UP_SCHEDULE[count]
        for _ in range(100):
            delay = next_follow_up_delay(count, rng=rng)
            assert base * 0.85 <= delay <= base * 1.15

    def test_beyond_schedule_uses_a_week(self, rng):
        delay = next_follow_up_delay(12, rng=rng)
        assert timedelta(weeks=1) * 0.85 <= delay <= timedelta(weeks=1) * 1.15

    def test_seeded_rng_is_deterministic(self):
        assert next_follow_up_delay(1, rng=random.Random(5)) == next_follow_up_delay(1, rng=random.Random(5))

    def test_delay_to_datetime(self, now):
        assert delay_to_datetime(90000, now) == now + timedelta(seconds=90)
