"""
Alert Orchestrator

Owns alerts from creation until hand-off to delivery. One state machine per
(farm, risk type):

    Idle -> Pending -> Scheduled -> Delivered
    Pending/Scheduled -> Expired            (expiration passes undelivered)
    candidate -> Suppressed                 (recently delivered, inside cool-down)

A new qualifying assessment for a key that already has an undelivered alert
refreshes that alert in place; it never creates a second alert id.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from agrisentinel.config import PipelineSettings, get_settings
from agrisentinel.domain.entities import (
    Alert,
    AssessedPrediction,
    Recommendation,
    RiskAssessment,
    hours_between,
    utcnow,
)
from agrisentinel.domain.enums import AlertState, RiskType, Severity

logger = logging.getLogger(__name__)

AlertKey = Tuple[str, RiskType]

ALLOWED_TRANSITIONS = {
    AlertState.IDLE: {AlertState.PENDING},
    AlertState.PENDING: {AlertState.SCHEDULED, AlertState.EXPIRED},
    AlertState.SCHEDULED: {AlertState.SCHEDULED, AlertState.DELIVERED, AlertState.EXPIRED},
    AlertState.DELIVERED: set(),
    AlertState.EXPIRED: set(),
    AlertState.SUPPRESSED: set(),
}

UNDELIVERED_STATES = (AlertState.PENDING, AlertState.SCHEDULED)
SETTLED_STATES = (AlertState.DELIVERED, AlertState.EXPIRED, AlertState.SUPPRESSED)

# Priority = severity rank (dominant) + urgency in (0, 1] (secondary)
SEVERITY_PRIORITY_WEIGHT = 10.0
URGENCY_PRIORITY_WEIGHT = 5.0


class OrchestrationResult(BaseModel):
    created: List[Alert] = Field(default_factory=list)
    refreshed: List[Alert] = Field(default_factory=list)
    suppressed: List[RiskType] = Field(default_factory=list)

    @property
    def alerts(self) -> List[Alert]:
        return self.created + self.refreshed


def compute_priority(severity: Severity, hours_to_event: float) -> float:
    """
    Weighted sum of severity rank and inverse time-to-event.

    Urgency never exceeds the gap between two severity ranks, so severity
    always dominates the order.
    """
    urgency = 1.0 / (1.0 + max(hours_to_event, 0.0) / 24.0)
    return round(SEVERITY_PRIORITY_WEIGHT * severity.rank + URGENCY_PRIORITY_WEIGHT * urgency, 4)


def render_alert_message(alert: Alert, now: datetime) -> str:
    """Farmer-facing alert text"""
    hours = max(hours_between(now, alert.event_time), 0.0)
    if hours >= 48:
        lead = f"in about {hours / 24:.0f} days"
    else:
        lead = f"in about {hours:.0f} hours"

    risk_name = alert.risk_type.value.replace("_", " ")
    lines = [
        f"{alert.severity.value.upper()} {risk_name} risk expected {lead} "
        f"({alert.probability * 100:.0f}% probability)."
    ]

    if alert.uncertain:
        lines.append(
            f"Forecast confidence is limited ({alert.confidence * 100:.0f}%); "
            "check local conditions before acting."
        )
    if alert.best_effort:
        lines.append("Short notice: this warning was issued with less lead time than usual.")

    for i, rec in enumerate(alert.recommendations[:3], 1):
        prefix = "URGENT: " if rec.emergency else ""
        lines.append(f"{i}. {prefix}{rec.description} (by {rec.deadline.strftime('%d %b %H:%M')} UTC)")

    return "\n".join(lines)


class AlertOrchestrator:
    """
    Tracks alerts per (farm, risk type) and enforces dedup/cool-down.

    The per-key dedup state is the only mutable state shared by concurrent
    cycles; each key has its own lock so that at most one assessment per key
    can move it out of Idle at a time.
    """

    def __init__(self, settings: Optional[PipelineSettings] = None):
        self.settings = settings or get_settings()
        self._alerts: Dict[str, Alert] = {}
        self._latest: Dict[AlertKey, str] = {}
        self._locks: Dict[AlertKey, asyncio.Lock] = {}

    def _lock_for(self, key: AlertKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def process(
        self,
        assessment: RiskAssessment,
        recommendations: Sequence[Recommendation],
        cycle_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> OrchestrationResult:
        """
        Create or refresh alerts for every alertable prediction in an assessment.

        Args:
            assessment: Risk assessment for one farm and cycle
            recommendations: Ranked recommendations (any risk type; filtered per alert)
            cycle_id: Cycle that produced the assessment
            now: Reference time (default: assessment time)

        Returns:
            OrchestrationResult with created, refreshed and suppressed entries
        """
        now = now or assessment.assessed_at
        result = OrchestrationResult()

        if not assessment.triggers_alert:
            return result

        for prediction in assessment.alertable:
            recs = [r for r in recommendations if r.risk_type == prediction.risk_type]
            key = (assessment.farm_id, prediction.risk_type)

            async with self._lock_for(key):
                existing = self._current(key)
                if existing is not None and existing.state in UNDELIVERED_STATES:
                    self._refresh(existing, prediction, recs, now)
                    result.refreshed.append(existing)
                elif existing is not None and self._in_cooldown(existing, now):
                    logger.info(
                        f"Suppressed {prediction.risk_type.value} alert for farm {assessment.farm_id}: "
                        f"{existing.id} delivered at {existing.delivered_at.isoformat()}"
                    )
                    result.suppressed.append(prediction.risk_type)
                else:
                    alert = self._create(assessment.farm_id, prediction, recs, cycle_id, now)
                    result.created.append(alert)

        return result

    def _current(self, key: AlertKey) -> Optional[Alert]:
        alert_id = self._latest.get(key)
        return self._alerts.get(alert_id) if alert_id else None

    def _in_cooldown(self, alert: Alert, now: datetime) -> bool:
        if alert.state != AlertState.DELIVERED or alert.delivered_at is None:
            return False
        return now - alert.delivered_at < timedelta(hours=self.settings.cooldown_hours)

    def _create(
        self,
        farm_id: str,
        prediction: AssessedPrediction,
        recommendations: List[Recommendation],
        cycle_id: Optional[str],
        now: datetime
    ) -> Alert:
        event_time = prediction.prediction.event_time
        alert = Alert(
            farm_id=farm_id,
            risk_type=prediction.risk_type,
            severity=prediction.severity,
            probability=prediction.prediction.probability,
            confidence=prediction.prediction.confidence,
            priority=compute_priority(prediction.severity, prediction.hours_to_event),
            recommendations=recommendations,
            event_time=event_time,
            expiration_time=event_time,
            state=AlertState.PENDING,
            uncertain=prediction.uncertain,
            best_effort=prediction.best_effort,
            cycle_id=cycle_id,
            created_at=now,
            updated_at=now,
        )
        alert.message = render_alert_message(alert, now)

        self._alerts[alert.id] = alert
        self._latest[alert.key] = alert.id

        logger.info(
            f"Created alert {alert.id} for farm {farm_id}: {alert.risk_type.value} "
            f"{alert.severity.value}, priority {alert.priority:.2f}"
        )
        return alert

    def _refresh(
        self,
        alert: Alert,
        prediction: AssessedPrediction,
        recommendations: List[Recommendation],
        now: datetime
    ):
        """Update an undelivered alert in place with the newer assessment"""
        alert.severity = prediction.severity
        alert.probability = prediction.prediction.probability
        alert.confidence = prediction.prediction.confidence
        alert.event_time = prediction.prediction.event_time
        alert.expiration_time = prediction.prediction.event_time
        alert.priority = compute_priority(prediction.severity, prediction.hours_to_event)
        alert.recommendations = recommendations
        alert.uncertain = prediction.uncertain
        alert.best_effort = prediction.best_effort
        alert.refresh_count += 1
        alert.updated_at = now
        alert.message = render_alert_message(alert, now)

        logger.info(
            f"Refreshed alert {alert.id} ({alert.state.value}) for farm {alert.farm_id}: "
            f"{alert.severity.value}, refresh #{alert.refresh_count}"
        )

    def _transition(self, alert: Alert, new_state: AlertState):
        allowed = ALLOWED_TRANSITIONS.get(alert.state, set())
        if new_state not in allowed:
            raise ValueError(
                f"Invalid alert transition for {alert.id}: {alert.state.value} -> {new_state.value}"
            )
        alert.state = new_state

    def mark_scheduled(self, alert: Alert, now: datetime):
        """Pending -> Scheduled once priority and delivery time are assigned"""
        if alert.delivery_time is None:
            raise ValueError(f"Alert {alert.id} has no delivery time")
        first_time = alert.state == AlertState.PENDING
        self._transition(alert, AlertState.SCHEDULED)
        if first_time:
            alert.scheduled_at = now
        alert.updated_at = now

    def mark_delivered(self, alert_id: str, now: datetime) -> Optional[Alert]:
        alert = self._alerts.get(alert_id)
        if alert is None:
            logger.warning(f"Delivery confirmed for unknown alert {alert_id}")
            return None
        self._transition(alert, AlertState.DELIVERED)
        alert.delivered_at = now
        alert.updated_at = now
        logger.info(f"Alert {alert_id} delivered")
        return alert

    def expire_stale(self, now: Optional[datetime] = None) -> List[Alert]:
        """Expire undelivered alerts whose expiration time has passed; never retried"""
        now = now or utcnow()
        expired = []
        for alert in self._alerts.values():
            if alert.state in UNDELIVERED_STATES and now >= alert.expiration_time:
                self._transition(alert, AlertState.EXPIRED)
                alert.updated_at = now
                expired.append(alert)
                logger.warning(
                    f"Alert {alert.id} for farm {alert.farm_id} ({alert.risk_type.value}) "
                    f"expired undelivered at {alert.expiration_time.isoformat()}"
                )
        return expired

    def evict_settled(self, now: Optional[datetime] = None) -> List[str]:
        """
        Forget delivered and expired alerts once the cool-down has passed.

        They no longer influence dedup; the history recorder keeps the record.
        """
        now = now or utcnow()
        horizon = timedelta(hours=self.settings.cooldown_hours)
        evicted = [
            alert for alert in self._alerts.values()
            if alert.state in SETTLED_STATES
            and now - (alert.delivered_at or alert.updated_at) >= horizon
        ]
        for alert in evicted:
            del self._alerts[alert.id]
            if self._latest.get(alert.key) == alert.id:
                del self._latest[alert.key]
                lock = self._locks.get(alert.key)
                if lock is not None and not lock.locked():
                    del self._locks[alert.key]

        if evicted:
            logger.info(f"Evicted {len(evicted)} settled alerts")
        return [alert.id for alert in evicted]

    def discard(self, alert_ids: Sequence[str]):
        """Drop alerts created by a cancelled cycle so they are never delivered"""
        for alert_id in alert_ids:
            alert = self._alerts.pop(alert_id, None)
            if alert is None:
                continue
            if self._latest.get(alert.key) == alert_id:
                del self._latest[alert.key]
            logger.info(f"Discarded alert {alert_id} from cancelled cycle {alert.cycle_id}")

    def due_alerts(self, now: datetime) -> List[Alert]:
        return [
            alert for alert in self._alerts.values()
            if alert.state == AlertState.SCHEDULED
            and alert.delivery_time is not None
            and alert.delivery_time <= now
        ]

    def get(self, alert_id: str) -> Optional[Alert]:
        return self._alerts.get(alert_id)

    def list_alerts(
        self,
        farm_id: Optional[str] = None,
        state: Optional[AlertState] = None
    ) -> List[Alert]:
        alerts = [
            alert for alert in self._alerts.values()
            if (farm_id is None or alert.farm_id == farm_id)
            and (state is None or alert.state == state)
        ]
        return sorted(alerts, key=lambda a: (-a.priority, a.event_time, a.id))


# Singleton instance
_orchestrator_instance = None


def get_alert_orchestrator() -> AlertOrchestrator:
    """Get singleton AlertOrchestrator instance"""
    global _orchestrator_instance
    if _orchestrator_instance is None:
        _orchestrator_instance = AlertOrchestrator()
    return _orchestrator_instance
