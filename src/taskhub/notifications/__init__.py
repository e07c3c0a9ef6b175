"""Outbound notifications (welcome / goodbye emails).

Learn: Request handlers never talk to the mail provider directly. They
enqueue a message on the NotificationOutbox *after* their database write
commits; a background worker started in the app lifespan delivers it.
A slow or failing provider can therefore never fail a signup or an
account deletion.
"""

from taskhub.notifications.mailer import (
    EmailMessage,
    SendGridSender,
    cancellation_email,
    welcome_email,
)
from taskhub.notifications.outbox import NotificationOutbox, get_outbox, outbox

__all__ = [
    "EmailMessage",
    "NotificationOutbox",
    "SendGridSender",
    "cancellation_email",
    "get_outbox",
    "outbox",
    "welcome_email",
]
