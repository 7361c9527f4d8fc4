"""
Risk Assessment Model

Audit record of every assessment produced by a cycle; also the input history
for model retraining.
"""
from sqlalchemy import Column, String, Float, Boolean, DateTime, Text
from sqlalchemy.dialects.postgresql import UUID
import uuid

from agrisentinel.database import Base


class RiskAssessmentRecord(Base):
    __tablename__ = "risk_assessments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    assessment_id = Column(String(100), unique=True, nullable=False, index=True)
    farm_id = Column(String(100), nullable=False, index=True)
    assessed_at = Column(DateTime(timezone=True), nullable=False)

    overall_severity = Column(String(20), nullable=True)  # null when nothing is alertable
    data_quality_score = Column(Float, nullable=False)
    uncertain = Column(Boolean, default=False, nullable=False)
    threshold_version = Column(DateTime(timezone=True), nullable=True)  # ThresholdConfig.updated_at
    predictions = Column(Text, nullable=False)  # JSON list of assessed predictions

    created_at = Column(DateTime(timezone=True), server_default="now()", nullable=False)

    def __repr__(self):
        return f"<RiskAssessmentRecord(id={self.assessment_id}, farm={self.farm_id}, severity={self.overall_severity})>"
