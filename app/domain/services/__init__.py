"""
Domain Services
"""
from app.domain.services.dispatcher import OutboundDispatcher
from app.domain.services.due_date_notifier import DueDateNotifier
from app.domain.services.message_log_service import MessageLogService

__all__ = [
    "DueDateNotifier",
    "MessageLogService",
    "OutboundDispatcher",
]
