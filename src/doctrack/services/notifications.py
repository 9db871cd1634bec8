"""NotificationDispatcher: lifecycle events -> message bus envelopes."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from doctrack.core.exceptions import NotificationError
from doctrack.core.protocols import IMessageBus
from doctrack.models.notifications import EventCategory, LifecycleEvent

logger = logging.getLogger(__name__)

DEFAULT_TOPICS: dict[EventCategory, str] = {
    EventCategory.STATUS: "status",
    EventCategory.NOTIFICATION: "notification",
}


class NotificationDispatcher:
    """Publishes lifecycle events to the topic of their category.

    Delivery is at-least-once. There is no dedup at this layer; consumers
    key on ``eventId`` + ``eventType``.
    """

    def __init__(self, bus: IMessageBus, topics: Mapping[EventCategory, str] | None = None) -> None:
        self._bus = bus
        self._topics = dict(DEFAULT_TOPICS if topics is None else topics)

    def topic_for(self, category: EventCategory) -> str:
        try:
            return self._topics[category]
        except KeyError as exc:
            raise NotificationError(f"No topic mapped for event category {category}") from exc

    def dispatch(self, event: LifecycleEvent) -> str:
        topic = self.topic_for(event.category)
        envelope = event.to_envelope().model_dump(mode="json", by_alias=True)
        logger.info("Sending %s notification for event %s to %s",
                    event.event_type, event.event_id, topic)
        try:
            message_id = self._bus.publish(topic, envelope)
        except Exception:
            logger.exception("Failed to send %s notification for event %s",
                             event.event_type, event.event_id)
            raise
        logger.info("Sent %s notification for event %s (message %s)",
                    event.event_type, event.event_id, message_id)
        return message_id
