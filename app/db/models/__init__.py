"""
Database Models
"""
from app.db.models.conversation_session import ConversationSession
from app.db.models.message_log import MessageLog, MessageDirection

__all__ = [
    "ConversationSession",
    "MessageLog",
    "MessageDirection",
]
