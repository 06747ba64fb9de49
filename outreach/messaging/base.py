from abc import ABC, abstractmethod


class ChannelSender(ABC):
    """
    Delivers plain text to one lead on one channel.

    Implementations raise ``ChannelSendError`` (or a subclass) when the
    platform rejects the message; any other exception is treated the same
    way by the dispatcher.
    """

    channel: str = None

    @abstractmethod
    async def send(self, user_id: str, recipient: str, text: str) -> str:
        """
        Send ``text`` to ``recipient`` on behalf of ``user_id``.

        Returns:
            The platform's message id, or an empty string if it returns none
        """
