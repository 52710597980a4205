"""
Message Log Model - append-only record of inbound and outbound messages
"""
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Index

from app.db.database import Base


class MessageDirection(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


class MessageLog(Base):

    __tablename__ = "zapflow_message_logs"

    id = Column(Integer, primary_key=True, index=True)
    phone = Column(String(32), nullable=False)
    message = Column(Text, nullable=False, default="")
    direction = Column(String(10), nullable=False)
    # text / option_list / list / buttons / notification
    message_type = Column(String(32), nullable=False, default="text")
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_zapflow_message_logs_phone_created", "phone", "created_at"),
    )
