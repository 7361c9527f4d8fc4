"""
History Recorder

Persists assessments, alerts and delivery tickets for audit and as input for
future model retraining. The pipeline treats recording as best effort.
"""
import json
import logging
from typing import List, Protocol

from sqlalchemy import text

from agrisentinel.database import AsyncSessionLocal
from agrisentinel.domain.entities import Alert, DeliveryTicket, RiskAssessment

logger = logging.getLogger(__name__)


class HistoryRecorder(Protocol):
    async def record_assessment(self, assessment: RiskAssessment) -> None: ...

    async def record_alert(self, alert: Alert) -> None: ...

    async def record_ticket(self, ticket: DeliveryTicket) -> None: ...


class InMemoryHistoryRecorder:
    """Keeps copies of everything recorded; used by tests and the CLI"""

    def __init__(self):
        self.assessments: List[RiskAssessment] = []
        self.alerts: List[Alert] = []
        self.tickets: List[DeliveryTicket] = []

    async def record_assessment(self, assessment: RiskAssessment) -> None:
        self.assessments.append(assessment)

    async def record_alert(self, alert: Alert) -> None:
        self.alerts.append(alert.model_copy(deep=True))

    async def record_ticket(self, ticket: DeliveryTicket) -> None:
        self.tickets.append(ticket.model_copy())


class SqlHistoryRecorder:
    """Writes history rows to PostgreSQL"""

    def __init__(self, session_factory=AsyncSessionLocal):
        self.session_factory = session_factory

    async def record_assessment(self, assessment: RiskAssessment) -> None:
        async with self.session_factory() as session:
            query = text("""
                INSERT INTO risk_assessments (
                    id, assessment_id, farm_id, assessed_at,
                    overall_severity, data_quality_score, uncertain,
                    threshold_version, predictions, created_at
                ) VALUES (
                    gen_random_uuid(), :assessment_id, :farm_id, :assessed_at,
                    :overall_severity, :data_quality_score, :uncertain,
                    :threshold_version, :predictions, NOW()
                )
                ON CONFLICT (assessment_id) DO NOTHING
            """)

            await session.execute(query, {
                "assessment_id": assessment.id,
                "farm_id": assessment.farm_id,
                "assessed_at": assessment.assessed_at,
                "overall_severity": assessment.overall_severity.value if assessment.overall_severity else None,
                "data_quality_score": assessment.data_quality_score,
                "uncertain": assessment.uncertain,
                "threshold_version": assessment.threshold_version,
                "predictions": json.dumps([p.model_dump(mode="json") for p in assessment.predictions]),
            })
            await session.commit()

    async def record_alert(self, alert: Alert) -> None:
        async with self.session_factory() as session:
            query = text("""
                INSERT INTO alerts (
                    alert_id, farm_id, risk_type,
                    severity, probability, confidence, priority, state,
                    event_time, delivery_time, expiration_time, delivered_at,
                    uncertain, best_effort, refresh_count, cycle_id,
                    message, recommendations, created_at, updated_at
                ) VALUES (
                    :alert_id, :farm_id, :risk_type,
                    :severity, :probability, :confidence, :priority, :state,
                    :event_time, :delivery_time, :expiration_time, :delivered_at,
                    :uncertain, :best_effort, :refresh_count, :cycle_id,
                    :message, :recommendations, :created_at, :updated_at
                )
                ON CONFLICT (alert_id) DO UPDATE SET
                    severity = EXCLUDED.severity,
                    probability = EXCLUDED.probability,
                    confidence = EXCLUDED.confidence,
                    priority = EXCLUDED.priority,
                    state = EXCLUDED.state,
                    event_time = EXCLUDED.event_time,
                    delivery_time = EXCLUDED.delivery_time,
                    expiration_time = EXCLUDED.expiration_time,
                    delivered_at = EXCLUDED.delivered_at,
                    uncertain = EXCLUDED.uncertain,
                    best_effort = EXCLUDED.best_effort,
                    refresh_count = EXCLUDED.refresh_count,
                    message = EXCLUDED.message,
                    recommendations = EXCLUDED.recommendations,
                    updated_at = EXCLUDED.updated_at
            """)

            await session.execute(query, {
                "alert_id": alert.id,
                "farm_id": alert.farm_id,
                "risk_type": alert.risk_type.value,
                "severity": alert.severity.value,
                "probability": alert.probability,
                "confidence": alert.confidence,
                "priority": alert.priority,
                "state": alert.state.value,
                "event_time": alert.event_time,
                "delivery_time": alert.delivery_time,
                "expiration_time": alert.expiration_time,
                "delivered_at": alert.delivered_at,
                "uncertain": alert.uncertain,
                "best_effort": alert.best_effort or alert.best_effort_immediate,
                "refresh_count": alert.refresh_count,
                "cycle_id": alert.cycle_id,
                "message": alert.message,
                "recommendations": json.dumps([r.model_dump(mode="json") for r in alert.recommendations]),
                "created_at": alert.created_at,
                "updated_at": alert.updated_at,
            })
            await session.commit()

    async def record_ticket(self, ticket: DeliveryTicket) -> None:
        async with self.session_factory() as session:
            query = text("""
                INSERT INTO delivery_tickets (
                    ticket_id, alert_id, channel, attempt_count, status,
                    message_id, last_error, created_at, updated_at
                ) VALUES (
                    :ticket_id, :alert_id, :channel, :attempt_count, :status,
                    :message_id, :last_error, :created_at, :updated_at
                )
                ON CONFLICT (ticket_id) DO UPDATE SET
                    attempt_count = EXCLUDED.attempt_count,
                    status = EXCLUDED.status,
                    message_id = EXCLUDED.message_id,
                    last_error = EXCLUDED.last_error,
                    updated_at = EXCLUDED.updated_at
            """)

            await session.execute(query, {
                "ticket_id": ticket.id,
                "alert_id": ticket.alert_id,
                "channel": ticket.channel.value,
                "attempt_count": ticket.attempt_count,
                "status": ticket.status.value,
                "message_id": ticket.message_id,
                "last_error": ticket.last_error,
                "created_at": ticket.created_at,
                "updated_at": ticket.updated_at,
            })
            await session.commit()
