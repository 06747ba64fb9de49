"""
Email sender.
Plain-text follow-ups over SMTP. smtplib is blocking, so each send runs in a
worker thread.
"""

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from outreach.messaging.base import ChannelSender
from outreach.models.lead import Channel
from outreach.utils.constants import Credentials
from outreach.utils.exceptions import ChannelSendError

logger = logging.getLogger(__name__)


class EmailSender(ChannelSender):
    channel = Channel.EMAIL.value

    def __init__(self, subject: str = "Following up", credentials: Optional[Credentials] = None):
        creds = credentials or Credentials()
        self.smtp_server = creds.SMTP_SERVER
        self.smtp_port = creds.SMTP_PORT
        self.smtp_username = creds.SMTP_USERNAME
        self.smtp_password = creds.SMTP_PASSWORD
        self.use_tls = creds.SMTP_USE_TLS
        self.default_sender = creds.SMTP_DEFAULT_SENDER
        self.subject = subject

    def _get_smtp_connection(self) -> smtplib.SMTP:
        server = smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=30)
        if self.use_tls:
            server.starttls()
        if self.smtp_username and self.smtp_password:
            server.login(self.smtp_username, self.smtp_password)
        return server

    def _build_message(self, recipient: str, text: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = self.subject
        msg["From"] = self.default_sender
        msg["To"] = recipient
        msg.attach(MIMEText(text, "plain"))
        return msg

    def _send_sync(self, recipient: str, text: str) -> None:
        server = self._get_smtp_connection()
        try:
            server.sendmail(self.default_sender, [recipient], self._build_message(recipient, text).as_string())
        finally:
            server.quit()

    async def send(self, user_id: str, recipient: str, text: str) -> str:
        try:
            await asyncio.to_thread(self._send_sync, recipient, text)
        except (smtplib.SMTPException, OSError) as e:
            raise ChannelSendError(self.channel, f"SMTP delivery to {recipient} failed: {e}") from e

        logger.info(f"Email sent to {recipient}: {self.subject}")
        return ""
