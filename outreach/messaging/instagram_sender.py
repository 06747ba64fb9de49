import logging
from typing import Callable, Optional

import aiohttp

from outreach.messaging.base import ChannelSender
from outreach.models.lead import Channel
from outreach.utils.constants import Credentials
from outreach.utils.exceptions import ChannelSendError

logger = logging.getLogger(__name__)


class InstagramSender(ChannelSender):
    """
    Instagram DMs through the Graph API ``me/messages`` endpoint.

    The page access token is looked up per user through ``token_provider``;
    refreshing it is the provider's job, not ours.
    """

    channel = Channel.INSTAGRAM.value

    def __init__(
        self,
        token_provider: Optional[Callable[[str], Optional[str]]] = None,
        graph_url: Optional[str] = None,
        timeout_seconds: int = 30,
    ):
        creds = Credentials()
        self.graph_url = (graph_url or creds.INSTAGRAM_GRAPH_URL).rstrip("/")
        self.token_provider = token_provider or (lambda user_id: creds.INSTAGRAM_ACCESS_TOKEN)
        self.timeout_seconds = timeout_seconds

    async def send(self, user_id: str, recipient: str, text: str) -> str:
        token = self.token_provider(user_id)
        if not token:
            raise ChannelSendError(self.channel, f"No Instagram token for user {user_id}")

        payload = {
            "recipient": {"id": recipient},
            "message": {"text": text},
        }

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    f"{self.graph_url}/me/messages",
                    params={"access_token": token},
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                ) as response:
                    if response.status == 200:
                        result = await response.json()
                        logger.info(f"Instagram DM sent to {recipient}: {text[:50]}...")
                        return result.get("message_id", "")

                    error_text = await response.text()
                    raise ChannelSendError(
                        self.channel, f"Graph API error {response.status}: {error_text}"
                    )
        except aiohttp.ClientError as e:
            raise ChannelSendError(self.channel, f"Request failed: {e}") from e
