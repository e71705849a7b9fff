"""Outbound notifications: topic and identity clients, expiration notices and reminders."""

from deadlines.notifications.channels import IdentityProvider, NotificationTopic
from deadlines.notifications.dispatcher import DispatchReport, NotificationDispatcher
from deadlines.notifications.identity import HttpIdentityProvider
from deadlines.notifications.reminders import ReminderSender
from deadlines.notifications.topic import HttpNotificationTopic

__all__ = [
    "DispatchReport",
    "HttpIdentityProvider",
    "HttpNotificationTopic",
    "IdentityProvider",
    "NotificationDispatcher",
    "NotificationTopic",
    "ReminderSender",
]
