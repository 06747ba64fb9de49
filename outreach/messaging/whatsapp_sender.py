import logging
from typing import Optional

import aiohttp

from outreach.messaging.base import ChannelSender
from outreach.models.lead import Channel
from outreach.utils.constants import Credentials
from outreach.utils.exceptions import ChannelSendError, MessagingWindowError

logger = logging.getLogger(__name__)

# Cloud API: "Re-engagement message" (more than 24h since the customer last replied)
REENGAGEMENT_ERROR_CODE = 131047
WINDOW_ERROR_MARKERS = ("24 hours", "not messaged you", "re-engagement")


def _is_window_error(error_code: Optional[int], error_message: str) -> bool:
    if error_code == REENGAGEMENT_ERROR_CODE:
        return True
    lowered = (error_message or "").lower()
    return any(marker in lowered for marker in WINDOW_ERROR_MARKERS)


class WhatsAppSender(ChannelSender):
    """WhatsApp Business Cloud API text messages."""

    channel = Channel.WHATSAPP.value

    def __init__(
        self,
        access_token: Optional[str] = None,
        phone_number_id: Optional[str] = None,
        graph_url: Optional[str] = None,
        timeout_seconds: int = 30,
    ):
        creds = Credentials()
        self.access_token = access_token or creds.WHATSAPP_ACCESS_TOKEN
        self.phone_number_id = phone_number_id or creds.WHATSAPP_PHONE_NUMBER_ID
        self.graph_url = (graph_url or creds.WHATSAPP_GRAPH_URL).rstrip("/")
        self.timeout_seconds = timeout_seconds

    @staticmethod
    def normalize_phone(phone: str) -> str:
        return "".join(c for c in phone if c.isdigit())

    async def send(self, user_id: str, recipient: str, text: str) -> str:
        if not self.access_token or not self.phone_number_id:
            raise ChannelSendError(self.channel, "WhatsApp is not configured")

        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        payload = {
            "messaging_product": "whatsapp",
            "to": self.normalize_phone(recipient),
            "type": "text",
            "text": {"body": text},
        }

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    f"{self.graph_url}/{self.phone_number_id}/messages",
                    headers=headers,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                ) as response:
                    if response.status == 200:
                        result = await response.json()
                        logger.info(f"WhatsApp message sent to {recipient}: {text[:50]}...")
                        messages = result.get("messages") or [{}]
                        return messages[0].get("id", "")

                    try:
                        error = (await response.json()).get("error", {})
                    except (aiohttp.ContentTypeError, ValueError):
                        error = {"message": await response.text()}

                    error_message = error.get("message", "")
                    details = (error.get("error_data") or {}).get("details", "")
                    if _is_window_error(error.get("code"), f"{error_message} {details}"):
                        raise MessagingWindowError(
                            self.channel,
                            f"Outside the 24 hours customer service window: {error_message}",
                        )
                    raise ChannelSendError(
                        self.channel, f"Cloud API error {response.status}: {error_message}"
                    )
        except aiohttp.ClientError as e:
            raise ChannelSendError(self.channel, f"Request failed: {e}") from e
