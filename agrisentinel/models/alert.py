"""
Alert Model

Latest known state of each alert. Rows are upserted on every transition.
"""
from sqlalchemy import Column, String, Float, Integer, Boolean, DateTime, Text

from agrisentinel.database import Base


class AlertRecord(Base):
    __tablename__ = "alerts"

    alert_id = Column(String(100), primary_key=True)
    farm_id = Column(String(100), nullable=False, index=True)
    risk_type = Column(String(30), nullable=False)

    severity = Column(String(20), nullable=False)  # low/medium/high/critical
    probability = Column(Float, nullable=False)
    confidence = Column(Float, nullable=False)
    priority = Column(Float, nullable=False)
    state = Column(String(20), nullable=False, index=True)

    event_time = Column(DateTime(timezone=True), nullable=False)
    delivery_time = Column(DateTime(timezone=True), nullable=True)
    expiration_time = Column(DateTime(timezone=True), nullable=False)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    uncertain = Column(Boolean, default=False, nullable=False)
    best_effort = Column(Boolean, default=False, nullable=False)
    refresh_count = Column(Integer, default=0, nullable=False)
    cycle_id = Column(String(100), nullable=True)
    message = Column(Text, nullable=True)
    recommendations = Column(Text, nullable=True)  # JSON list

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<AlertRecord(id={self.alert_id}, farm={self.farm_id}, state={self.state})>"
