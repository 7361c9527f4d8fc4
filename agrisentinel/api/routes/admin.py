"""
Admin API Endpoints

Recent operator notifications (model degradation, data source failures,
delivery escalations and latency breaches).
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Query
from pydantic import BaseModel

from agrisentinel.services.events import get_event_port

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


class NotificationResponse(BaseModel):
    reason: str
    impact_estimate: str
    farm_id: Optional[str]
    details: Dict[str, str]
    created_at: datetime


class NotificationsListResponse(BaseModel):
    notifications: List[NotificationResponse]
    meta: Dict[str, Any]


@router.get("/notifications", response_model=NotificationsListResponse)
async def list_notifications(
    reason: Optional[str] = Query(None, description="Filter by reason"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum notifications returned")
) -> Dict[str, Any]:
    """Most recent admin notifications, newest first"""
    port = get_event_port()
    notifications = port.by_reason(reason) if reason else list(port.notifications)
    notifications = list(reversed(notifications))

    return {
        "notifications": [n.model_dump() for n in notifications[:limit]],
        "meta": {"total": len(notifications), "limit": limit, "reason": reason},
    }
