"""
Outbound Event Ports

Admin notifications and delivery-ticket updates are published through an
explicit port handed to each component, so tests can assert on emitted events.
"""
import logging
from collections import deque
from typing import Deque, List, Optional, Protocol

from agrisentinel.domain.entities import AdminNotification, DeliveryTicket

logger = logging.getLogger(__name__)

# Admin notification reasons
MODEL_DEGRADATION = "model_degradation"
DATA_SOURCE_FAILURE = "data_source_failure"
DELIVERY_ESCALATION = "delivery_escalation"
DELIVERY_LATENCY = "delivery_latency"
THRESHOLD_CONFIG_MISSING = "threshold_config_missing"


class EventPort(Protocol):
    def publish(self, notification: AdminNotification) -> None: ...

    def publish_ticket(self, ticket: DeliveryTicket) -> None: ...


class LoggingEventPort:
    """Writes events to the log; used when no monitoring sink is wired"""

    def publish(self, notification: AdminNotification) -> None:
        logger.warning(
            f"ADMIN [{notification.reason}] farm={notification.farm_id} "
            f"impact={notification.impact_estimate} details={notification.details}"
        )

    def publish_ticket(self, ticket: DeliveryTicket) -> None:
        logger.info(
            f"Ticket {ticket.id} alert={ticket.alert_id} channel={ticket.channel.value} "
            f"status={ticket.status.value} attempts={ticket.attempt_count}"
        )


class InMemoryEventPort:
    """
    Keeps the most recent events in memory.

    Backs the admin API and is the port used in tests.
    """

    def __init__(self, max_events: int = 1000, forward_to: Optional[EventPort] = None):
        self.notifications: Deque[AdminNotification] = deque(maxlen=max_events)
        self.tickets: Deque[DeliveryTicket] = deque(maxlen=max_events)
        self.forward_to = forward_to

    def publish(self, notification: AdminNotification) -> None:
        self.notifications.append(notification)
        if self.forward_to is not None:
            self.forward_to.publish(notification)

    def publish_ticket(self, ticket: DeliveryTicket) -> None:
        # Snapshot: tickets keep mutating after publication
        self.tickets.append(ticket.model_copy())
        if self.forward_to is not None:
            self.forward_to.publish_ticket(ticket)

    def by_reason(self, reason: str) -> List[AdminNotification]:
        return [n for n in self.notifications if n.reason == reason]

    def clear(self) -> None:
        self.notifications.clear()
        self.tickets.clear()


# Singleton instance
_event_port_instance = None


def get_event_port() -> InMemoryEventPort:
    """Get singleton event port (recent events kept for the admin API, all events logged)"""
    global _event_port_instance
    if _event_port_instance is None:
        _event_port_instance = InMemoryEventPort(forward_to=LoggingEventPort())
    return _event_port_instance
