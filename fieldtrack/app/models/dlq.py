"""
Dead Letter Queue (DLQ) Model.

Stores trip/visit writes that exhausted their retries, so the store can be
brought back in line with the engine later.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Enum
from sqlalchemy.sql import func
from fieldtrack.app.db.session import Base
import enum


class DLQStatus(str, enum.Enum):
    FAILED = "FAILED"
    REPLAYED = "REPLAYED"


class DeadLetterQueue(Base):
    """
    Dead Letter Queue table.

    payload is the serialized record exactly as the gateway tried to write it.
    """
    __tablename__ = "dead_letter_queue"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    record_type = Column(String(20), nullable=False, index=True)  # "trip" or "visit"
    record_id = Column(String(64), nullable=False, index=True)
    error_message = Column(Text, nullable=False)
    payload = Column(JSON, nullable=True)
    attempts = Column(Integer, default=0, nullable=False)

    status = Column(Enum(DLQStatus), default=DLQStatus.FAILED, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<DLQ(id={self.id}, {self.record_type}={self.record_id}, status='{self.status}')>"
