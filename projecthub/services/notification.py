"""
ProjectHub
Notification Service.

Central service for creating and querying notifications. Every created
notification is also forwarded to the ``notifications`` channel for
real-time delivery.
"""

import logging
from datetime import datetime, timezone

from projecthub.core.exceptions import NotFoundError, ValidationError
from projecthub.models import db
from projecthub.models.notification import NOTIFICATION_TYPES, Notification
from projecthub.services import event_bus

logger = logging.getLogger(__name__)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, recipient_id, message, type, link=None):
        """
        Create a single notification record and forward it.

        The record is committed before forwarding; a forwarding failure is
        logged and does not undo the notification.

        Returns:
            The created Notification instance.
        """
        if type not in NOTIFICATION_TYPES:
            raise ValidationError(f"Unknown notification type {type!r}")
        notif = Notification(
            recipient_id=int(recipient_id),
            message=message,
            type=type,
            link=link,
        )
        db.session.add(notif)
        db.session.commit()

        try:
            event_bus.publish(event_bus.NOTIFICATIONS_CHANNEL, {
                "recipientId": notif.recipient_id,
                "notification": notif.to_dict(),
            })
        except Exception:
            logger.exception("Failed to forward notification %s", notif.id)
        return notif

    @staticmethod
    def notify_many(recipient_ids, *, message, type, link=None, exclude=None):
        """Create one notification per distinct recipient, skipping *exclude*."""
        created = []
        for rid in dict.fromkeys(int(r) for r in recipient_ids or []):
            if exclude is not None and rid == int(exclude):
                continue
            created.append(NotificationService.create(
                recipient_id=rid, message=message, type=type, link=link,
            ))
        return created

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient_id, unread_only=False, limit=50, offset=0):
        """Retrieve notifications for a recipient, newest first."""
        q = Notification.query.filter_by(recipient_id=recipient_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(recipient_id):
        return Notification.query.filter_by(recipient_id=recipient_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def set_read(notification_id, recipient_id, read=True):
        """Set the read flag on one of the recipient's notifications.

        Another user's notification is reported as not found.
        """
        notif = db.session.get(Notification, notification_id)
        if notif is None or notif.recipient_id != recipient_id:
            raise NotFoundError("Notification", notification_id)
        notif.mark_read(read)
        db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(recipient_id):
        """Mark all notifications for a recipient as read."""
        q = Notification.query.filter_by(recipient_id=recipient_id, is_read=False)
        now = datetime.now(timezone.utc)
        count = q.update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        db.session.commit()
        return count
