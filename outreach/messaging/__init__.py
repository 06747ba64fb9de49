"""
Messaging package: channel senders and the fallback dispatcher.
"""

from outreach.messaging.base import ChannelSender
from outreach.messaging.dispatcher import ChannelDispatcher, DeliveryResult
from outreach.messaging.email_sender import EmailSender
from outreach.messaging.instagram_sender import InstagramSender
from outreach.messaging.whatsapp_sender import WhatsAppSender

__all__ = [
    'ChannelSender',
    'ChannelDispatcher',
    'DeliveryResult',
    'EmailSender',
    'InstagramSender',
    'WhatsAppSender',
]
