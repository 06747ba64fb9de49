"""
Models package for the outreach follow-up engine.
"""

from outreach.models.base_model import BaseModel
from outreach.models.lead import Lead, LeadStatus, Channel, TERMINAL_STATUSES
from outreach.models.message import Message, MessageDirection
from outreach.models.follow_up_job import FollowUpJob, JobStatus, MessageType
from outreach.models.worker_health import WorkerHealth, WorkerStatus

__all__ = [
    'BaseModel',

    # Lead models
    'Lead',
    'LeadStatus',
    'Channel',
    'TERMINAL_STATUSES',

    # Conversation
    'Message',
    'MessageDirection',

    # Scheduling
    'FollowUpJob',
    'JobStatus',
    'MessageType',

    # Monitoring
    'WorkerHealth',
    'WorkerStatus',
]
