"""
Notification channels for alert delivery
"""

from .base import NotificationChannel, HTTPChannel
from .email import EmailChannel
from .sms import SMSChannel

__all__ = [
    "NotificationChannel",
    "HTTPChannel",
    "EmailChannel",
    "SMSChannel",
]
