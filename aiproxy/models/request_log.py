"""
Request log database model.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Float, DateTime, Index

from aiproxy.core.database import Base


class RequestLog(Base):
    """One row per upstream chat-completion attempt."""

    __tablename__ = "request_logs"

    id = Column(Integer, primary_key=True, index=True)

    # Request information
    model = Column(String(100), index=True)  # Model id requested
    method = Column(String(10), nullable=False)
    path = Column(String(255), nullable=False)

    # Outcome; status_code is NULL when the upstream call failed in transport
    status_code = Column(Integer)
    duration = Column(Float)  # Upstream call time in seconds
    error_message = Column(Text)

    timestamp = Column(DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        Index('idx_model_timestamp', 'model', 'timestamp'),
    )
