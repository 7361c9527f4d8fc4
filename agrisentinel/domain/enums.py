"""Enumerations shared across pipeline stages"""
from enum import Enum


class RiskType(str, Enum):
    DROUGHT = "drought"
    FROST = "frost"
    HEAT_STRESS = "heat_stress"
    FLOOD = "flood"
    PEST = "pest"
    DISEASE = "disease"


class Severity(str, Enum):
    """Alert severity, ordered low < medium < high < critical"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANKS[self]

    @property
    def is_high(self) -> bool:
        """High and Critical carry the 12h minimum lead-time rule"""
        return self.rank >= _SEVERITY_RANKS[Severity.HIGH]

    def at_least(self, other: "Severity") -> bool:
        return self.rank >= other.rank


_SEVERITY_RANKS = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class AlertState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SCHEDULED = "scheduled"
    DELIVERED = "delivered"
    EXPIRED = "expired"
    SUPPRESSED = "suppressed"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    ESCALATED = "escalated"


class Channel(str, Enum):
    SMS = "sms"
    PUSH = "push"
    EMAIL = "email"
    VOICE = "voice"
    WHATSAPP = "whatsapp"


class GrowthStage(str, Enum):
    GERMINATION = "germination"
    VEGETATIVE = "vegetative"
    FLOWERING = "flowering"
    GRAIN_FILL = "grain_fill"
    MATURITY = "maturity"


class CycleStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
