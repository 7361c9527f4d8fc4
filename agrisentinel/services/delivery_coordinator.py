"""
Delivery Coordinator

Dispatches alerts to the farmer's channels in preference order. Each channel
gets a bounded number of attempts with exponential backoff, guarded by a
per-channel circuit breaker. When a channel is exhausted the next one is tried;
when all are exhausted the delivery is escalated to administrators.
"""
import asyncio
import logging
import time
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from agrisentinel.config import PipelineSettings, get_settings
from agrisentinel.domain.entities import (
    AdminNotification,
    Alert,
    DeliveryAck,
    DeliveryTicket,
    utcnow,
)
from agrisentinel.domain.enums import Channel, DeliveryStatus
from agrisentinel.exceptions import CircuitOpenError, DeliveryFailure
from agrisentinel.services.circuit_breaker import CircuitBreaker
from agrisentinel.services.events import (
    DELIVERY_ESCALATION,
    DELIVERY_LATENCY,
    EventPort,
    LoggingEventPort,
)

logger = logging.getLogger(__name__)


class NotificationTransport(Protocol):
    """External SMS/push/email gateway; returns an ack or raises"""

    async def send(self, channel: Channel, payload: Dict[str, Any]) -> DeliveryAck: ...


class LoggingTransport:
    """Placeholder transport that logs messages instead of sending them"""

    async def send(self, channel: Channel, payload: Dict[str, Any]) -> DeliveryAck:
        logger.info(f"[{channel.value}] to farm {payload['farm_id']}: {payload['message']}")
        return DeliveryAck(channel=channel, message_id=f"log_{uuid.uuid4().hex[:12]}", confirmed=False)


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, DeliveryFailure) and not isinstance(error, CircuitOpenError)


def build_payload(alert: Alert, language: str = "en") -> Dict[str, Any]:
    return {
        "alert_id": alert.id,
        "farm_id": alert.farm_id,
        "risk_type": alert.risk_type.value,
        "severity": alert.severity.value,
        "event_time": alert.event_time.isoformat(),
        "message": alert.message,
        "language": language,
        "best_effort": alert.best_effort or alert.best_effort_immediate,
    }


class DeliveryCoordinator:
    """Only caller of the notification transport; owns DeliveryTickets"""

    def __init__(
        self,
        transport: NotificationTransport,
        settings: Optional[PipelineSettings] = None,
        events: Optional[EventPort] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        self.transport = transport
        self.settings = settings or get_settings()
        self.events = events or LoggingEventPort()
        self.sleep = sleep
        self.clock = clock
        self.breakers: Dict[Channel, CircuitBreaker] = {}

    def breaker_for(self, channel: Channel) -> CircuitBreaker:
        breaker = self.breakers.get(channel)
        if breaker is None:
            breaker = CircuitBreaker(
                name=channel.value,
                failure_threshold=self.settings.circuit_failure_threshold,
                cooldown_seconds=self.settings.circuit_cooldown_seconds,
                clock=self.clock,
            )
            self.breakers[channel] = breaker
        return breaker

    async def deliver(
        self,
        alert: Alert,
        channels: Sequence[Channel],
        language: str = "en"
    ) -> List[DeliveryTicket]:
        """
        Deliver an alert on the first channel that succeeds.

        Args:
            alert: Scheduled alert due for delivery
            channels: Farmer's channels in preference order
            language: Farmer's language preference

        Returns:
            One ticket per channel tried; the last one is escalated if all failed
        """
        payload = build_payload(alert, language)
        tickets: List[DeliveryTicket] = []

        for channel in channels:
            ticket = DeliveryTicket(alert_id=alert.id, channel=channel)
            tickets.append(ticket)

            delivered = await self._deliver_on_channel(channel, payload, ticket)
            self.events.publish_ticket(ticket)
            if delivered:
                logger.info(
                    f"Alert {alert.id} delivered via {channel.value} "
                    f"after {ticket.attempt_count} attempt(s)"
                )
                return tickets

            logger.warning(f"Channel {channel.value} exhausted for alert {alert.id}: {ticket.last_error}")

        self._escalate(alert, tickets)
        return tickets

    async def _deliver_on_channel(
        self,
        channel: Channel,
        payload: Dict[str, Any],
        ticket: DeliveryTicket
    ) -> bool:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self.settings.delivery_max_retries)),
            wait=wait_exponential(
                multiplier=self.settings.delivery_backoff_base_seconds,
                max=self.settings.delivery_backoff_max_seconds,
            ),
            retry=retry_if_exception(_is_retryable),
            sleep=self.sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    await self._attempt(channel, payload, ticket)
        except DeliveryFailure as e:
            ticket.status = DeliveryStatus.FAILED
            ticket.last_error = e.reason
            ticket.updated_at = utcnow()
            return False

        return True

    async def _attempt(self, channel: Channel, payload: Dict[str, Any], ticket: DeliveryTicket):
        breaker = self.breaker_for(channel)
        if not breaker.can_attempt():
            raise CircuitOpenError(channel.value)

        ticket.attempt_count += 1
        try:
            ack = await asyncio.wait_for(
                self.transport.send(channel, payload),
                timeout=self.settings.delivery_attempt_timeout_seconds
            )
        except asyncio.CancelledError:
            breaker.release()
            raise
        except asyncio.TimeoutError:
            breaker.record_failure()
            raise DeliveryFailure(channel.value, "timed out")
        except DeliveryFailure:
            breaker.record_failure()
            raise
        except Exception as e:
            breaker.record_failure()
            raise DeliveryFailure(channel.value, str(e))

        breaker.record_success()
        ticket.status = DeliveryStatus.CONFIRMED if ack.confirmed else DeliveryStatus.SENT
        ticket.message_id = ack.message_id
        ticket.last_error = None
        ticket.updated_at = utcnow()

    def _escalate(self, alert: Alert, tickets: List[DeliveryTicket]):
        if tickets:
            tickets[-1].status = DeliveryStatus.ESCALATED
            tickets[-1].updated_at = utcnow()
            self.events.publish_ticket(tickets[-1])

        logger.error(
            f"Delivery escalated for alert {alert.id} (farm {alert.farm_id}): "
            f"{len(tickets)} channel(s) exhausted"
        )
        self.events.publish(AdminNotification(
            reason=DELIVERY_ESCALATION,
            impact_estimate=f"{alert.severity.value} {alert.risk_type.value} alert undelivered",
            farm_id=alert.farm_id,
            details={
                "alert_id": alert.id,
                "channels": ",".join(t.channel.value for t in tickets),
                "last_error": (tickets[-1].last_error or "") if tickets else "no channels configured",
            },
        ))

    def check_latency(self, alert: Alert, delivered_at: datetime) -> Optional[float]:
        """
        Report deliveries slower than the SLO measured from when the alert became due.

        Returns the latency in seconds when it breached the SLO, else None.
        """
        if alert.delivery_time is None:
            return None
        due_at = alert.delivery_time
        if alert.scheduled_at is not None and alert.scheduled_at > due_at:
            due_at = alert.scheduled_at

        latency = (delivered_at - due_at).total_seconds()
        if latency <= self.settings.delivery_latency_slo_seconds:
            return None

        logger.warning(
            f"Alert {alert.id} delivered {latency:.0f}s after becoming due "
            f"(target: <{self.settings.delivery_latency_slo_seconds:.0f}s)"
        )
        self.events.publish(AdminNotification(
            reason=DELIVERY_LATENCY,
            impact_estimate=f"delivery {latency / 60:.1f} min late",
            farm_id=alert.farm_id,
            details={"alert_id": alert.id, "latency_seconds": f"{latency:.0f}"},
        ))
        return latency
