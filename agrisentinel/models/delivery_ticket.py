"""
Delivery Ticket Model

One row per (alert, channel) delivery attempt chain.
"""
from sqlalchemy import Column, String, Integer, DateTime, Text

from agrisentinel.database import Base


class DeliveryTicketRecord(Base):
    __tablename__ = "delivery_tickets"

    ticket_id = Column(String(100), primary_key=True)
    alert_id = Column(String(100), nullable=False, index=True)
    channel = Column(String(20), nullable=False)
    attempt_count = Column(Integer, default=0, nullable=False)
    status = Column(String(20), nullable=False)  # pending/sent/confirmed/failed/escalated
    message_id = Column(String(200), nullable=True)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<DeliveryTicketRecord(id={self.ticket_id}, alert={self.alert_id}, status={self.status})>"
