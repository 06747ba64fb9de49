import logging
from dataclasses import dataclass, field
from typing import List, Optional

from outreach.utils.constants import DEFAULT_BUSINESS_NAME

logger = logging.getLogger(__name__)

DEFAULT_VOICE_RULES = "Be friendly and professional"
DEFAULT_BRAND_COLOR = "#007bff"


@dataclass
class BrandContext:
    """Business identity injected into reply prompts."""
    business_name: str = DEFAULT_BUSINESS_NAME
    voice_rules: str = DEFAULT_VOICE_RULES
    brand_snippets: List[str] = field(default_factory=list)
    brand_color: str = DEFAULT_BRAND_COLOR
    sender_name: Optional[str] = None

    def to_prompt(self) -> str:
        lines = [
            f"- Business Name: {self.business_name}",
            f"- Brand Voice: {self.voice_rules}",
        ]
        if self.sender_name:
            lines.append(f"- Sender: {self.sender_name}")
        if self.brand_snippets:
            lines.append("- About the business:")
            lines.extend(f"  - {snippet}" for snippet in self.brand_snippets[:3])
        return "\n".join(lines)


class BrandContextProvider:
    """Loads a user's brand context from the users and brand_embeddings tables."""

    def __init__(self, storage):
        self.storage = storage

    def get_brand_context(self, user_id: str) -> BrandContext:
        try:
            user = self.storage.get_user(user_id) or {}
            snippets = self.storage.get_brand_snippets(user_id, limit=5) or []
        except Exception as e:
            logger.error(f"Error loading brand context for user {user_id}: {e}")
            return BrandContext()

        reply_tone = user.get("reply_tone")
        color = next((row.get("color") for row in snippets if row.get("color")), None)

        return BrandContext(
            business_name=user.get("company") or DEFAULT_BUSINESS_NAME,
            voice_rules=f"Be {reply_tone}" if reply_tone else DEFAULT_VOICE_RULES,
            brand_snippets=[row["snippet"] for row in snippets if row.get("snippet")],
            brand_color=color or DEFAULT_BRAND_COLOR,
            sender_name=user.get("display_name"),
        )
