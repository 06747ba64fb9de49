"""
Reply generator and brand context tests.

The Anthropic client is replaced with an AsyncMock; no network access.

Run with: pytest tests/test_reply_generator.py -v
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from outreach.ai_agent.brand_context import BrandContext, BrandContextProvider
from outreach.ai_agent.reply_generator import (
    AIReplyGenerator,
    build_follow_up_prompt,
    build_reply_prompt,
    build_system_prompt,
)
from outreach.models.lead import LeadStatus


def mock_client(text="Hi Ana! Still thinking it over?"):
    client = MagicMock()
    block = MagicMock(type="text", text=text)
    client.messages.create = AsyncMock(return_value=MagicMock(
        content=[block],
        usage=MagicMock(input_tokens=120, output_tokens=18),
        model="claude-test",
    ))
    return client


@pytest.fixture
def brand():
    return BrandContext(business_name="Sunrise Realty", sender_name="Maya")


class TestGenerate:

    @pytest.mark.asyncio
    async def test_uses_model_output(self):
        client = mock_client()
        generator = AIReplyGenerator(api_key="test-key", model="claude-test", client=client)

        reply = await generator.generate("system", "user", temperature=0.5, max_tokens=100)

        assert reply.text == "Hi Ana! Still thinking it over?"
        assert reply.tokens_used == 138
        assert reply.is_fallback is False
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["temperature"] == 0.5
        assert kwargs["max_tokens"] == 100
        assert kwargs["system"] == "system"

    @pytest.mark.asyncio
    async def test_api_error_falls_back(self):
        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=RuntimeError("overloaded"))
        generator = AIReplyGenerator(api_key="test-key", client=client)

        reply = await generator.generate("system", "user")
        assert reply.is_fallback is True
        assert reply.text

    @pytest.mark.asyncio
    async def test_empty_completion_falls_back(self):
        generator = AIReplyGenerator(api_key="test-key", client=mock_client(text="   "))
        assert (await generator.generate("system", "user")).is_fallback is True

    @pytest.mark.asyncio
    async def test_missing_key_falls_back(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        generator = AIReplyGenerator(api_key=None)
        assert (await generator.generate("system", "user")).is_fallback is True


class TestDraftFollowUp:

    @pytest.mark.asyncio
    async def test_fallback_is_personalized(self, make_lead, brand):
        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=RuntimeError("overloaded"))
        generator = AIReplyGenerator(api_key="test-key", client=client)

        reply = await generator.draft_follow_up(make_lead(), [], brand)

        assert reply.is_fallback is True
        assert reply.text.startswith("Hey Ana! Maya here.")

    def test_prompt_contents(self, make_lead, make_message, brand):
        lead = make_lead(follow_up_count=2, channel="whatsapp")
        history = [make_message("outbound", "Hi Ana!", 60), make_message("inbound", "hey", 30)]

        prompt = build_follow_up_prompt(lead, history, brand, "warm")

        assert "Follow-up #: 3" in prompt
        assert "Engagement: warm" in prompt
        assert "Lead: hey" in prompt
        assert "You: Hi Ana!" in prompt

    def test_system_prompt_carries_brand(self, brand):
        prompt = build_system_prompt(brand, "email")
        assert "Sunrise Realty" in prompt
        assert "Sender: Maya" in prompt


class TestDraftReply:

    def test_prompt_quotes_latest_inbound(self, make_lead, make_message, brand):
        lead = make_lead(follow_up_count=1, status=LeadStatus.OPEN)
        history = [
            make_message("outbound", "Hi Ana!", 60),
            make_message("inbound", "is the 3-bed still available?", 30),
            make_message("inbound", "and does it have parking?", 10),
        ]

        prompt = build_reply_prompt(lead, history, brand, "hot")

        assert 'THE LEAD JUST SAID:\n"and does it have parking?"' in prompt
        assert "Engagement: hot" in prompt
        assert "Follow-up #" not in prompt
        assert "introduce yourself briefly" not in prompt

    @pytest.mark.asyncio
    async def test_draft_reply_sends_reply_prompt(self, make_lead, make_message, brand):
        client = mock_client(text="Yes, two spots in the garage!")
        generator = AIReplyGenerator(api_key="test-key", client=client)
        history = [make_message("inbound", "does it have parking?", 1)]

        reply = await generator.draft_reply(make_lead(), history, brand)

        assert reply.text == "Yes, two spots in the garage!"
        user_prompt = client.messages.create.call_args.kwargs["messages"][0]["content"]
        assert '"does it have parking?"' in user_prompt

    @pytest.mark.asyncio
    async def test_reply_fallback_acknowledges_lead(self, make_lead, brand):
        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=RuntimeError("overloaded"))
        generator = AIReplyGenerator(api_key="test-key", client=client)

        reply = await generator.draft_reply(make_lead(), [], brand)

        assert reply.is_fallback is True
        assert reply.text.startswith("Hey Ana, thanks for getting back to me!")


class TestBrandContextProvider:

    def test_loads_user_brand(self, storage):
        storage.users["user-1"] = {"company": "Sunrise Realty", "reply_tone": "warm and upbeat", "display_name": "Maya"}
        storage.brand_snippets["user-1"] = [
            {"snippet": "Family-owned since 1998", "color": "#ff6600"},
            {"snippet": "Serving the Bay Area"},
        ]

        brand = BrandContextProvider(storage).get_brand_context("user-1")

        assert brand.business_name == "Sunrise Realty"
        assert brand.voice_rules == "Be warm and upbeat"
        assert brand.brand_color == "#ff6600"
        assert brand.brand_snippets == ["Family-owned since 1998", "Serving the Bay Area"]

    def test_defaults_for_unknown_user(self, storage):
        brand = BrandContextProvider(storage).get_brand_context("nobody")
        assert brand == BrandContext()

    def test_storage_error_uses_defaults(self):
        storage = MagicMock()
        storage.get_user.side_effect = RuntimeError("connection reset")
        assert BrandContextProvider(storage).get_brand_context("user-1") == BrandContext()
