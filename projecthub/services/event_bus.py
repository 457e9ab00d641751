"""
Fire-and-forget event publishing.

Channels:
    notifications — one message per created Notification
    conflicts     — one message per flagged assignee from the conflict scan

Delivery is at-most-once with no acknowledgement. Callers decide whether
a publish failure is isolated or propagated.
"""

import json
import logging

from projecthub.services import cache_service

logger = logging.getLogger(__name__)

NOTIFICATIONS_CHANNEL = "notifications"
CONFLICTS_CHANNEL = "conflicts"


def publish(channel: str, payload: dict) -> int:
    """Serialize *payload* as JSON and publish it on *channel*.

    Returns the number of receivers reported by the transport.
    Transport errors propagate to the caller.
    """
    message = json.dumps(payload, default=str)
    receivers = cache_service.publish(channel, message)
    logger.debug("Published on %s (%d receivers)", channel, receivers or 0,
                  extra={"channel": channel})
    return receivers


def recent(channel: str | None = None) -> list[dict]:
    """Decoded messages captured by the in-memory transport."""
    return [json.loads(m) for m in cache_service.published_messages(channel)]
