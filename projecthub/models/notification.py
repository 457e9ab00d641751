"""
ProjectHub
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking

Notifications are append-only; they are marked read, never deleted.
"""

from datetime import datetime, timezone

from projecthub.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = ("TaskAssigned", "StatusUpdate", "ConflictDetected")


class Notification(db.Model):
    """One record per recipient per event."""

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    recipient_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
                             nullable=False, index=True)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(30), nullable=False)
    link = db.Column(db.String(500), nullable=True)

    # Read tracking
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def mark_read(self, read=True):
        self.is_read = read
        self.read_at = datetime.now(timezone.utc) if read else None

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "message": self.message,
            "type": self.type,
            "link": self.link,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id} → {self.recipient_id}: {self.type}>"
