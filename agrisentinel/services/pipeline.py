"""
Farm Assessment Pipeline

Runs one assessment cycle per farm:

    aggregate -> predict -> evaluate -> synthesize -> orchestrate -> schedule -> deliver

Stages run strictly in order within a cycle; cycles for different farms run
concurrently. The farm context (thresholds, preferences, crop, resources) is
snapshotted once at cycle start.
"""
import asyncio
import logging
import time
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from agrisentinel.config import PipelineSettings, get_settings
from agrisentinel.domain.entities import (
    AdminNotification,
    Alert,
    CycleResult,
    Observation,
    utcnow,
)
from agrisentinel.domain.enums import AlertState, CycleStatus, RiskType
from agrisentinel.domain.farm import (
    CropProfile,
    FarmContext,
    NotificationPreferences,
    ResourceConstraints,
    ThresholdConfig,
)
from agrisentinel.exceptions import CycleCancelled, ThresholdConfigMissing, ValidationError
from agrisentinel.ml.ensemble_predictor import EnsemblePredictor
from agrisentinel.ml.model_registry import get_model_registry
from agrisentinel.services.alert_orchestrator import AlertOrchestrator, get_alert_orchestrator
from agrisentinel.services.delivery_coordinator import DeliveryCoordinator, LoggingTransport
from agrisentinel.services.events import (
    DATA_SOURCE_FAILURE,
    THRESHOLD_CONFIG_MISSING,
    EventPort,
    LoggingEventPort,
    get_event_port,
)
from agrisentinel.services.farm_directory import FarmDirectory, get_farm_directory
from agrisentinel.services.feature_aggregator import FeatureAggregator, get_feature_aggregator
from agrisentinel.services.history_recorder import (
    HistoryRecorder,
    InMemoryHistoryRecorder,
    SqlHistoryRecorder,
)
from agrisentinel.services.priority_scheduler import PriorityScheduler, get_priority_scheduler
from agrisentinel.services.recommendation_synthesizer import (
    RecommendationSynthesizer,
    get_recommendation_synthesizer,
)
from agrisentinel.services.risk_evaluator import RiskEvaluator

logger = logging.getLogger(__name__)


async def record_safely(record, item, description: str):
    """History is best effort: failures are logged and never abort a cycle"""
    try:
        await record(item)
    except Exception as e:
        logger.error(f"Failed to record {description}: {e}", exc_info=True)


class AlertDispatcher:
    """
    Hand-off from scheduling to delivery.

    Scheduled alerts that are due are put on a queue in scheduler order and
    drained by whichever cycle (or periodic job) enqueued them. A cycle hands
    over its preference snapshot with each alert; alerts picked up by the
    periodic job read preferences through a bounded lookup.
    """

    def __init__(
        self,
        coordinator: DeliveryCoordinator,
        orchestrator: AlertOrchestrator,
        directory: FarmDirectory,
        history: HistoryRecorder,
        lookup_timeout: float = 5.0
    ):
        self.coordinator = coordinator
        self.orchestrator = orchestrator
        self.directory = directory
        self.history = history
        self.lookup_timeout = lookup_timeout
        self.queue: "asyncio.Queue[Tuple[Alert, Optional[NotificationPreferences]]]" = asyncio.Queue()
        self._queued: set = set()
        self._escalated: set = set()

    def enqueue(self, alert: Alert, preferences: Optional[NotificationPreferences] = None) -> bool:
        if alert.id in self._queued or alert.id in self._escalated:
            return False
        self._queued.add(alert.id)
        self.queue.put_nowait((alert, preferences))
        return True

    def is_escalated(self, alert_id: str) -> bool:
        return alert_id in self._escalated

    def forget(self, alert_ids: Sequence[str]):
        """Stop tracking alerts that can no longer be dispatched"""
        self._escalated.difference_update(alert_ids)

    async def drain(self, now: Optional[datetime] = None) -> List[str]:
        """Deliver every queued alert; returns ids of delivered alerts"""
        delivered = []
        while not self.queue.empty():
            alert, preferences = self.queue.get_nowait()
            self._queued.discard(alert.id)
            try:
                if await self._dispatch(alert, preferences, now):
                    delivered.append(alert.id)
            except Exception as e:
                logger.error(f"Error dispatching alert {alert.id}: {e}", exc_info=True)
            finally:
                self.queue.task_done()
        return delivered

    async def _preferences_for(self, farm_id: str) -> NotificationPreferences:
        try:
            return await asyncio.wait_for(self.directory.get_preferences(farm_id), timeout=self.lookup_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out reading preferences for farm {farm_id}; using defaults")
            return NotificationPreferences()

    async def _dispatch(
        self,
        alert: Alert,
        preferences: Optional[NotificationPreferences],
        now: Optional[datetime]
    ) -> bool:
        # Expired, delivered or discarded while waiting in the queue
        if alert.state != AlertState.SCHEDULED or self.orchestrator.get(alert.id) is None:
            logger.info(f"Skipping dispatch of alert {alert.id} ({alert.state.value})")
            return False

        if preferences is None:
            preferences = await self._preferences_for(alert.farm_id)
        tickets = await self.coordinator.deliver(alert, preferences.channels, preferences.language)
        for ticket in tickets:
            await record_safely(self.history.record_ticket, ticket, f"ticket {ticket.id}")

        if not any(ticket.succeeded for ticket in tickets):
            # Left Scheduled; expires unless an operator intervenes
            self._escalated.add(alert.id)
            return False

        delivered_at = now or utcnow()
        self.orchestrator.mark_delivered(alert.id, delivered_at)
        self.coordinator.check_latency(alert, delivered_at)
        await record_safely(self.history.record_alert, alert, f"alert {alert.id}")
        return True


class FarmAssessmentPipeline:
    """Composes the pipeline stages and runs farm-assessment cycles"""

    def __init__(
        self,
        directory: FarmDirectory,
        predictor: EnsemblePredictor,
        coordinator: DeliveryCoordinator,
        aggregator: Optional[FeatureAggregator] = None,
        evaluator: Optional[RiskEvaluator] = None,
        synthesizer: Optional[RecommendationSynthesizer] = None,
        orchestrator: Optional[AlertOrchestrator] = None,
        scheduler: Optional[PriorityScheduler] = None,
        history: Optional[HistoryRecorder] = None,
        events: Optional[EventPort] = None,
        settings: Optional[PipelineSettings] = None
    ):
        self.settings = settings or get_settings()
        self.directory = directory
        self.predictor = predictor
        self.coordinator = coordinator
        self.aggregator = aggregator or FeatureAggregator()
        self.evaluator = evaluator or RiskEvaluator(self.settings)
        self.synthesizer = synthesizer or RecommendationSynthesizer(self.settings)
        self.orchestrator = orchestrator or AlertOrchestrator(self.settings)
        self.scheduler = scheduler or PriorityScheduler(self.settings)
        self.history = history or InMemoryHistoryRecorder()
        self.events = events or LoggingEventPort()
        self.dispatcher = AlertDispatcher(
            coordinator, self.orchestrator, directory, self.history,
            lookup_timeout=self.settings.config_lookup_timeout_seconds,
        )

    async def run_cycle(
        self,
        farm_id: str,
        now: Optional[datetime] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> CycleResult:
        """
        Run one assessment cycle for a farm.

        Args:
            farm_id: Farm to assess
            now: Cycle reference time (default: current UTC time)
            cancel_event: Set to cancel the cycle between stages

        Returns:
            CycleResult with status completed, skipped, rejected or cancelled
        """
        now = now or utcnow()
        started = time.perf_counter()
        result = CycleResult(
            cycle_id=f"cycle_{uuid.uuid4().hex[:12]}",
            farm_id=farm_id,
            status=CycleStatus.COMPLETED,
            started_at=now,
        )
        created_ids: List[str] = []

        try:
            context = await self.snapshot_context(farm_id)
            self._check_cancelled(cancel_event, result)

            observations = await self._load_observations(farm_id, now)
            if not observations:
                result.status = CycleStatus.SKIPPED
                result.reason = "no observations available"
                return result

            # Stage 1: features
            snapshot = self.aggregator.aggregate(farm_id, observations, now)
            self._check_cancelled(cancel_event, result)

            # Stage 2: predictions for every risk type
            predictions = await self.predictor.predict(snapshot, list(RiskType))
            self._check_cancelled(cancel_event, result)

            # Stage 3: evaluation against the threshold snapshot
            assessment = self.evaluator.evaluate(
                farm_id, predictions, context.thresholds, snapshot.data_quality_score, now
            )
            result.assessment = assessment
            await record_safely(self.history.record_assessment, assessment, f"assessment {assessment.id}")
            self._check_cancelled(cancel_event, result)

            if not assessment.triggers_alert:
                logger.info(f"Farm {farm_id}: no alertable risks this cycle")
                return result

            # Stage 4: recommendations
            recommendations = self.synthesizer.synthesize(assessment, context.crop, context.resources, now)
            self._check_cancelled(cancel_event, result)

            # Stage 5: alerts
            orchestration = await self.orchestrator.process(assessment, recommendations, result.cycle_id, now)
            created_ids = [alert.id for alert in orchestration.created]
            result.alerts_created = created_ids
            result.alerts_refreshed = [alert.id for alert in orchestration.refreshed]
            result.alerts_suppressed = [risk_type.value for risk_type in orchestration.suppressed]
            self._check_cancelled(cancel_event, result)

            # Stage 6: priority and delivery times
            scheduled = self.scheduler.schedule(orchestration.alerts, now)
            for alert in scheduled:
                self.orchestrator.mark_scheduled(alert, now)
            self._check_cancelled(cancel_event, result)

            for alert in scheduled:
                await record_safely(self.history.record_alert, alert, f"alert {alert.id}")

            # Stage 7: hand off due alerts in scheduler order
            for alert in scheduled:
                if alert.delivery_time <= now:
                    self.dispatcher.enqueue(alert, context.preferences)
            result.alerts_dispatched = await self.dispatcher.drain(now)

        except CycleCancelled:
            self.orchestrator.discard(created_ids)
            result.status = CycleStatus.CANCELLED
            result.reason = "cancelled"
            result.alerts_created = []
            logger.warning(f"Cycle {result.cycle_id} for farm {farm_id} cancelled; discarded {len(created_ids)} alerts")

        except ValidationError as e:
            result.status = CycleStatus.REJECTED
            result.reason = str(e)
            logger.warning(f"Cycle {result.cycle_id} for farm {farm_id} rejected: {e}")

        finally:
            result.duration_ms = round((time.perf_counter() - started) * 1000, 2)

        logger.info(
            f"Cycle {result.cycle_id} farm={farm_id} status={result.status.value} "
            f"created={len(result.alerts_created)} refreshed={len(result.alerts_refreshed)} "
            f"suppressed={len(result.alerts_suppressed)} dispatched={len(result.alerts_dispatched)} "
            f"({result.duration_ms:.0f}ms)"
        )
        return result

    def _check_cancelled(self, cancel_event: Optional[asyncio.Event], result: CycleResult):
        if cancel_event is not None and cancel_event.is_set():
            raise CycleCancelled(f"Cycle {result.cycle_id} cancelled")

    async def snapshot_context(self, farm_id: str) -> FarmContext:
        """Read the farm configuration once; it stays fixed for the rest of the cycle"""
        timeout = self.settings.config_lookup_timeout_seconds
        thresholds_defaulted = False

        try:
            thresholds = await asyncio.wait_for(self.directory.get_thresholds(farm_id), timeout=timeout)
        except (ThresholdConfigMissing, asyncio.TimeoutError) as e:
            thresholds = ThresholdConfig.conservative_default(farm_id)
            thresholds_defaulted = True
            logger.warning(f"Threshold config unavailable for farm {farm_id} ({e!r}); using conservative default")
            self.events.publish(AdminNotification(
                reason=THRESHOLD_CONFIG_MISSING,
                impact_estimate="alerts use conservative default thresholds",
                farm_id=farm_id,
                details={"error": repr(e)},
            ))

        preferences = await self._lookup(
            self.directory.get_preferences(farm_id), NotificationPreferences(), "preferences", farm_id
        )
        crop = await self._lookup(self.directory.get_crop_profile(farm_id), CropProfile(), "crop profile", farm_id)
        resources = await self._lookup(
            self.directory.get_resources(farm_id), ResourceConstraints(), "resources", farm_id
        )

        return FarmContext(
            farm_id=farm_id,
            thresholds=thresholds,
            preferences=preferences,
            crop=crop,
            resources=resources,
            thresholds_defaulted=thresholds_defaulted,
        )

    async def _lookup(self, call, default, description: str, farm_id: str):
        try:
            return await asyncio.wait_for(call, timeout=self.settings.config_lookup_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out reading {description} for farm {farm_id}; using defaults")
            return default

    async def _load_observations(self, farm_id: str, now: datetime) -> List[Observation]:
        try:
            observations = await asyncio.wait_for(
                self.directory.get_observations(farm_id, now),
                timeout=self.settings.config_lookup_timeout_seconds
            )
        except Exception as e:
            logger.error(f"Observation lookup failed for farm {farm_id}: {e!r}", exc_info=True)
            observations = []

        if not observations:
            logger.warning(f"No observations for farm {farm_id}; skipping cycle")
            self.events.publish(AdminNotification(
                reason=DATA_SOURCE_FAILURE,
                impact_estimate="farm not assessed this cycle",
                farm_id=farm_id,
                details={"as_of": now.isoformat()},
            ))
        return list(observations)

    async def run_all(
        self,
        farm_ids: Optional[Sequence[str]] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Run cycles for many farms concurrently.

        A failure in one farm's cycle never affects another farm.

        Returns:
            Summary with per-status counts, alert counts and duration
        """
        start_time = time.perf_counter()
        if farm_ids is None:
            farm_ids = await self.directory.farm_ids()

        semaphore = asyncio.Semaphore(max(1, self.settings.cycle_concurrency))

        async def bounded(farm_id: str) -> Optional[CycleResult]:
            async with semaphore:
                try:
                    return await self.run_cycle(farm_id, now)
                except Exception as e:
                    logger.error(f"Cycle failed for farm {farm_id}: {e}", exc_info=True)
                    return None

        results = await asyncio.gather(*[bounded(farm_id) for farm_id in farm_ids])

        summary: Dict[str, Any] = {
            "farms_assessed": len(farm_ids),
            "failed": sum(1 for r in results if r is None),
            "alerts_created": sum(len(r.alerts_created) for r in results if r is not None),
            "alerts_dispatched": sum(len(r.alerts_dispatched) for r in results if r is not None),
        }
        for status in CycleStatus:
            summary[status.value] = sum(1 for r in results if r is not None and r.status == status)
        summary["duration_seconds"] = round(time.perf_counter() - start_time, 3)

        logger.info(f"Assessment run complete: {summary}")
        return summary

    async def dispatch_due(self, now: Optional[datetime] = None) -> List[str]:
        """Deliver scheduled alerts whose delivery time has arrived"""
        now = now or utcnow()
        due = self.scheduler.order(self.orchestrator.due_alerts(now), now)
        for alert in due:
            self.dispatcher.enqueue(alert)
        return await self.dispatcher.drain(now)

    async def expire_stale(self, now: Optional[datetime] = None) -> List[Alert]:
        """Expire overdue alerts, then drop settled ones past their cool-down"""
        now = now or utcnow()
        expired = self.orchestrator.expire_stale(now)
        for alert in expired:
            await record_safely(self.history.record_alert, alert, f"alert {alert.id}")

        self.dispatcher.forget([alert.id for alert in expired])
        self.dispatcher.forget(self.orchestrator.evict_settled(now))
        return expired


# Singleton instance
_pipeline_instance = None


def get_pipeline() -> FarmAssessmentPipeline:
    """Get singleton FarmAssessmentPipeline wired with the default collaborators"""
    global _pipeline_instance
    if _pipeline_instance is None:
        settings = get_settings()
        events = get_event_port()
        registry = get_model_registry()
        history = SqlHistoryRecorder() if settings.persist_history else InMemoryHistoryRecorder()

        _pipeline_instance = FarmAssessmentPipeline(
            directory=get_farm_directory(),
            predictor=EnsemblePredictor(
                models=registry.build(settings.active_models),
                accuracy_weights=registry.accuracy_weights,
                settings=settings,
                events=events,
            ),
            coordinator=DeliveryCoordinator(LoggingTransport(), settings=settings, events=events),
            aggregator=get_feature_aggregator(),
            evaluator=RiskEvaluator(settings),
            synthesizer=get_recommendation_synthesizer(),
            orchestrator=get_alert_orchestrator(),
            scheduler=get_priority_scheduler(),
            history=history,
            events=events,
            settings=settings,
        )
    return _pipeline_instance
