"""SQLAlchemy ORM Models for the AgriSentinel history tables"""
from agrisentinel.models.risk_assessment import RiskAssessmentRecord
from agrisentinel.models.alert import AlertRecord
from agrisentinel.models.delivery_ticket import DeliveryTicketRecord

__all__ = [
    "RiskAssessmentRecord",
    "AlertRecord",
    "DeliveryTicketRecord",
]
