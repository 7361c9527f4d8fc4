"""
Alerts API Endpoints

Read access to alerts tracked by the orchestrator.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, HTTPException, Path, Query
from pydantic import BaseModel, Field

from agrisentinel.domain.entities import Alert
from agrisentinel.domain.enums import AlertState
from agrisentinel.services.pipeline import get_pipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


# Pydantic models

class RecommendationResponse(BaseModel):
    action: str
    description: str
    urgency: str
    deadline: datetime
    cost: float
    expected_effectiveness: float
    score_rank: int
    emergency: bool


class AlertSummary(BaseModel):
    """Alert row for list view"""
    alert_id: str
    farm_id: str
    risk_type: str
    severity: str
    probability: float = Field(..., ge=0, le=1)
    confidence: float = Field(..., ge=0, le=1)
    priority: float
    state: str
    event_time: datetime
    delivery_time: Optional[datetime]
    uncertain: bool
    best_effort: bool


class AlertDetail(AlertSummary):
    """Alert with message text and recommendations"""
    message: str
    expiration_time: datetime
    delivered_at: Optional[datetime]
    refresh_count: int
    cycle_id: Optional[str]
    recommendations: List[RecommendationResponse]
    created_at: datetime
    updated_at: datetime


class AlertsListResponse(BaseModel):
    alerts: List[AlertSummary]
    meta: Dict[str, Any]


def _summary(alert: Alert) -> Dict[str, Any]:
    return {
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
        "uncertain": alert.uncertain,
        "best_effort": alert.best_effort or alert.best_effort_immediate,
    }


# API Endpoints

@router.get("", response_model=AlertsListResponse)
async def list_alerts(
    farm_id: Optional[str] = Query(None, description="Filter by farm"),
    state: Optional[AlertState] = Query(None, description="Filter by state (pending, scheduled, delivered, expired)"),
    limit: int = Query(50, ge=1, le=500, description="Maximum alerts returned")
) -> Dict[str, Any]:
    """
    List alerts ordered by priority (highest first).
    """
    alerts = get_pipeline().orchestrator.list_alerts(farm_id=farm_id, state=state)

    return {
        "alerts": [_summary(alert) for alert in alerts[:limit]],
        "meta": {
            "total": len(alerts),
            "limit": limit,
            "farm_id": farm_id,
            "state": state.value if state else None,
        }
    }


@router.get("/{alert_id}", response_model=AlertDetail)
async def get_alert(
    alert_id: str = Path(..., description="Alert ID")
) -> Dict[str, Any]:
    """Get one alert with its message and recommendations"""
    alert = get_pipeline().orchestrator.get(alert_id)
    if alert is None:
        raise HTTPException(status_code=404, detail=f"Alert {alert_id} not found")

    detail = _summary(alert)
    detail.update({
        "message": alert.message,
        "expiration_time": alert.expiration_time,
        "delivered_at": alert.delivered_at,
        "refresh_count": alert.refresh_count,
        "cycle_id": alert.cycle_id,
        "recommendations": [
            {
                "action": rec.action,
                "description": rec.description,
                "urgency": rec.urgency,
                "deadline": rec.deadline,
                "cost": rec.cost,
                "expected_effectiveness": rec.expected_effectiveness,
                "score_rank": rec.score_rank,
                "emergency": rec.emergency,
            }
            for rec in alert.recommendations
        ],
        "created_at": alert.created_at,
        "updated_at": alert.updated_at,
    })
    return detail
