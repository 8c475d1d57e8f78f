"""
Notification sink — BlueMercantile.

Mail is not actually delivered. Every notification is logged and appended
to the ``email_logs`` collection so the admin can read what would have
been sent. Entries are append-only.
"""

import logging
from datetime import datetime, timezone
from typing import List

from utils.kv_store import EMAIL_LOGS, KVStore

logger = logging.getLogger(__name__)

APPROVAL_SUBJECT = 'BlueMercantile Account Approved'
REJECTION_SUBJECT = 'BlueMercantile Registration Rejected'


class NotificationSink:
    def __init__(self, store: KVStore):
        self.store = store

    def send(self, to: str, subject: str, content: str) -> dict:
        """Record one outbound email. Store failures propagate to the caller."""
        entry = {
            'to': to,
            'subject': subject,
            'content': content,
            'timestamp': datetime.now(timezone.utc).isoformat()
        }
        logger.info("EMAIL TO: %s SUBJECT: %s", to, subject)
        logger.debug("EMAIL CONTENT: %s", content)

        self.store.mutate(EMAIL_LOGS, lambda logs: logs.append(entry), default=[])
        return entry

    def list_logs(self) -> List[dict]:
        return self.store.get(EMAIL_LOGS, default=[])


def approval_email(full_name: str, user_id: str, password: str) -> str:
    return (
        f"Dear {full_name},\n"
        f"\n"
        f"Your BlueMercantile account has been approved!\n"
        f"\n"
        f"Your login credentials:\n"
        f"User ID: {user_id}\n"
        f"Password: {password}\n"
        f"\n"
        f"You can now login to your account and start using BlueMercantile.\n"
        f"\n"
        f"Best regards,\n"
        f"BlueMercantile Team\n"
    )


def rejection_email(full_name: str, reason: str) -> str:
    return (
        f"Dear {full_name},\n"
        f"\n"
        f"Unfortunately, your BlueMercantile registration has been rejected.\n"
        f"\n"
        f"Reason: {reason}\n"
        f"\n"
        f"If you have any questions, please contact our support team.\n"
        f"\n"
        f"Best regards,\n"
        f"BlueMercantile Team\n"
    )
