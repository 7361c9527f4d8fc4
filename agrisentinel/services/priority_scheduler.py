"""
Priority Scheduler

Orders pending alerts (one farm, or several farms sharing a delivery batch)
and assigns delivery times that respect the lead-time rules.

Order: severity descending, time-to-event ascending, probability descending,
then farm id and risk type so equal keys still sort deterministically.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from agrisentinel.config import PipelineSettings, get_settings
from agrisentinel.domain.entities import Alert, utcnow

logger = logging.getLogger(__name__)


class PriorityScheduler:
    """Deterministic ordering and delivery-time assignment"""

    def __init__(self, settings: Optional[PipelineSettings] = None):
        self.settings = settings or get_settings()

    @staticmethod
    def sort_key(alert: Alert, now: datetime):
        # Equal (severity, time, probability) is a scheduling conflict, broken by farm id
        return (
            -alert.severity.rank,
            alert.hours_to_event(now),
            -alert.probability,
            alert.farm_id,
            alert.risk_type.value,
        )

    def order(self, alerts: Sequence[Alert], now: datetime) -> List[Alert]:
        return sorted(alerts, key=lambda alert: self.sort_key(alert, now))

    def schedule(self, alerts: Sequence[Alert], now: Optional[datetime] = None) -> List[Alert]:
        """
        Order alerts and assign each a delivery time.

        Args:
            alerts: Pending (or refreshed scheduled) alerts
            now: Scheduling time (default: current UTC time)

        Returns:
            Alerts in delivery order, with delivery_time and best_effort_immediate set
        """
        now = now or utcnow()
        ordered = self.order(alerts, now)

        for alert in ordered:
            self._assign_delivery_time(alert, now)

        if ordered:
            logger.info(
                f"Scheduled {len(ordered)} alerts; first: {ordered[0].id} "
                f"({ordered[0].severity.value}, farm {ordered[0].farm_id})"
            )
        return ordered

    def delivery_time_for(self, alert: Alert, now: datetime) -> datetime:
        """Lead-time rule before any best-effort relaxation"""
        if alert.severity.is_high:
            lead_hours = max(self.settings.high_severity_min_lead_hours, self.settings.lead_buffer_hours)
            return alert.event_time - timedelta(hours=lead_hours)
        return max(now, alert.event_time - timedelta(hours=self.settings.low_severity_lead_hours))

    def _assign_delivery_time(self, alert: Alert, now: datetime):
        delivery_time = self.delivery_time_for(alert, now)

        if delivery_time < now:
            # Late-arriving high-severity prediction: deliver as soon as possible,
            # keep its severity-based position in the order
            logger.warning(
                f"Alert {alert.id} ({alert.severity.value} {alert.risk_type.value}, farm {alert.farm_id}) "
                f"missed its lead-time window by {(now - delivery_time).total_seconds() / 3600:.1f}h; "
                "scheduling best-effort immediate delivery"
            )
            alert.best_effort_immediate = True
            alert.delivery_time = now
        else:
            alert.best_effort_immediate = False
            alert.delivery_time = delivery_time


# Singleton instance
_scheduler_instance = None


def get_priority_scheduler() -> PriorityScheduler:
    """Get singleton PriorityScheduler instance"""
    global _scheduler_instance
    if _scheduler_instance is None:
        _scheduler_instance = PriorityScheduler()
    return _scheduler_instance
