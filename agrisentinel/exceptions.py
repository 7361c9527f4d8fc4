"""
Pipeline error taxonomy.

Only ValidationError leaves the pipeline as a rejection; the other errors are
recovered by the stage that owns them (fallback prediction, default thresholds,
channel failover) and surface as admin notifications instead.
"""


class AgriSentinelError(Exception):
    """Base class for decision pipeline errors"""


class ValidationError(AgriSentinelError):
    """Snapshot or observations are malformed/incomplete; the cycle is rejected"""


class ModelUnavailableError(AgriSentinelError):
    """A single model adapter timed out or failed"""

    def __init__(self, model_id: str, reason: str):
        super().__init__(f"Model {model_id} unavailable: {reason}")
        self.model_id = model_id
        self.reason = reason


class ThresholdConfigMissing(AgriSentinelError):
    """No threshold configuration could be read for a farm"""

    def __init__(self, farm_id: str):
        super().__init__(f"No threshold configuration for farm {farm_id}")
        self.farm_id = farm_id


class DeliveryFailure(AgriSentinelError):
    """A single delivery attempt on a channel failed"""

    def __init__(self, channel: str, reason: str):
        super().__init__(f"Delivery on {channel} failed: {reason}")
        self.channel = channel
        self.reason = reason


class CircuitOpenError(DeliveryFailure):
    """Channel circuit breaker is open; the attempt was not made"""

    def __init__(self, channel: str):
        super().__init__(channel, "circuit open")


class CycleCancelled(AgriSentinelError):
    """The farm-assessment cycle was cancelled between stages"""
