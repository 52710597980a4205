"""
Conversation Session Model - durable copy of the per-phone state
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON

from app.db.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationSession(Base):
    """One row per WhatsApp phone; the Redis cache mirrors it"""

    __tablename__ = "zapflow_sessions"

    id = Column(Integer, primary_key=True, index=True)
    phone = Column(String(32), nullable=False, unique=True, index=True)

    current_step = Column(String(64), nullable=False, default="welcome")
    last_message = Column(Text, nullable=True)

    # clienteData / pacoteData / tentativasTurma
    context = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
