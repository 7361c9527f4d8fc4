"""
Farm Assessment API Endpoints

On-demand assessment cycles for a single farm and its recorded alert history.
"""
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Path, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agrisentinel.database import get_db
from agrisentinel.models import AlertRecord, DeliveryTicketRecord
from agrisentinel.services.pipeline import get_pipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/farms", tags=["farms"])


class RiskSummary(BaseModel):
    risk_type: str
    probability: float
    severity: str
    confidence: float
    hours_to_event: float
    alertable: bool
    uncertain: bool
    degraded: bool


class CycleResponse(BaseModel):
    """Result of one assessment cycle"""
    cycle_id: str
    farm_id: str
    status: str
    reason: Optional[str]
    duration_ms: float
    overall_severity: Optional[str]
    risks: List[RiskSummary]
    alerts_created: List[str]
    alerts_refreshed: List[str]
    alerts_suppressed: List[str]
    alerts_dispatched: List[str]


@router.post("/{farm_id}/assess", response_model=CycleResponse)
async def assess_farm(
    farm_id: str = Path(..., min_length=1, description="Farm ID")
) -> Dict[str, Any]:
    """
    Run one assessment cycle for a farm now.

    Skipped (no observations) and rejected (invalid observations) cycles are
    reported in the response status, not as HTTP errors.
    """
    try:
        result = await get_pipeline().run_cycle(farm_id)
    except Exception as e:
        logger.error(f"Assessment cycle failed for farm {farm_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Assessment failed: {str(e)}")

    assessment = result.assessment
    risks = []
    if assessment is not None:
        for assessed in assessment.predictions:
            risks.append({
                "risk_type": assessed.risk_type.value,
                "probability": assessed.prediction.probability,
                "severity": assessed.severity.value,
                "confidence": assessed.prediction.confidence,
                "hours_to_event": round(assessed.hours_to_event, 2),
                "alertable": assessed.alertable,
                "uncertain": assessed.uncertain,
                "degraded": assessed.prediction.is_degraded,
            })

    return {
        "cycle_id": result.cycle_id,
        "farm_id": result.farm_id,
        "status": result.status.value,
        "reason": result.reason,
        "duration_ms": result.duration_ms,
        "overall_severity": (
            assessment.overall_severity.value
            if assessment is not None and assessment.overall_severity is not None else None
        ),
        "risks": risks,
        "alerts_created": result.alerts_created,
        "alerts_refreshed": result.alerts_refreshed,
        "alerts_suppressed": result.alerts_suppressed,
        "alerts_dispatched": result.alerts_dispatched,
    }


class TicketHistory(BaseModel):
    ticket_id: str
    channel: str
    status: str
    attempt_count: int
    last_error: Optional[str]


class AlertHistory(BaseModel):
    alert_id: str
    risk_type: str
    severity: str
    state: str
    event_time: datetime
    delivered_at: Optional[datetime]
    refresh_count: int
    actions: List[str]
    tickets: List[TicketHistory]


class FarmHistoryResponse(BaseModel):
    farm_id: str
    alerts: List[AlertHistory]
    meta: Dict[str, Any]


@router.get("/{farm_id}/history", response_model=FarmHistoryResponse)
async def farm_history(
    farm_id: str = Path(..., min_length=1, description="Farm ID"),
    limit: int = Query(20, ge=1, le=200, description="Maximum alerts returned"),
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """
    Recorded alerts for a farm with their delivery tickets, newest first.

    Reads the history tables; empty unless history persistence is enabled.
    """
    try:
        result = await db.execute(
            select(AlertRecord)
            .where(AlertRecord.farm_id == farm_id)
            .order_by(AlertRecord.created_at.desc())
            .limit(limit)
        )
        alerts = result.scalars().all()

        tickets_by_alert: Dict[str, List[Dict[str, Any]]] = {}
        if alerts:
            ticket_result = await db.execute(
                select(DeliveryTicketRecord)
                .where(DeliveryTicketRecord.alert_id.in_([a.alert_id for a in alerts]))
                .order_by(DeliveryTicketRecord.created_at)
            )
            for ticket in ticket_result.scalars().all():
                tickets_by_alert.setdefault(ticket.alert_id, []).append({
                    "ticket_id": ticket.ticket_id,
                    "channel": ticket.channel,
                    "status": ticket.status,
                    "attempt_count": ticket.attempt_count,
                    "last_error": ticket.last_error,
                })

    except Exception as e:
        logger.error(f"Error reading history for farm {farm_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to retrieve history: {str(e)}")

    return {
        "farm_id": farm_id,
        "alerts": [
            {
                "alert_id": alert.alert_id,
                "risk_type": alert.risk_type,
                "severity": alert.severity,
                "state": alert.state,
                "event_time": alert.event_time,
                "delivered_at": alert.delivered_at,
                "refresh_count": alert.refresh_count,
                "actions": [rec["action"] for rec in json.loads(alert.recommendations or "[]")],
                "tickets": tickets_by_alert.get(alert.alert_id, []),
            }
            for alert in alerts
        ],
        "meta": {"total": len(alerts), "limit": limit},
    }
