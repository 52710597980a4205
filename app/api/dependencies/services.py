"""
Service providers for route handlers.

Tests swap collaborators through ``app.dependency_overrides`` (for example a
fake gateway behind ``get_conversation_engine``).
"""
from fastapi import Depends

from app.db.database import AsyncSessionLocal
from app.domain.conversation_service import ConversationService
from app.domain.services.dispatcher import OutboundDispatcher
from app.domain.services.due_date_notifier import DueDateNotifier
from app.domain.services.message_log_service import MessageLogService
from app.domain.services.partner import get_partner_gateway
from app.domain.services.payment import get_payment_backend
from app.domain.services.zapi import BaseMessagingProvider, get_messaging_provider
from app.domain.session_store import RedisSessionCache, SessionStore, SqlSessionRepository
from app.domain.webhook_guard import WebhookGuard
from app.state_machine.engine import ConversationEngine


def get_session_store() -> SessionStore:
    return SessionStore(SqlSessionRepository(AsyncSessionLocal), RedisSessionCache())


def get_message_log() -> MessageLogService:
    return MessageLogService(AsyncSessionLocal)


def get_provider() -> BaseMessagingProvider:
    return get_messaging_provider()


def get_dispatcher(
    provider: BaseMessagingProvider = Depends(get_provider),
    message_log: MessageLogService = Depends(get_message_log),
) -> OutboundDispatcher:
    return OutboundDispatcher(provider, message_log)


def get_conversation_engine() -> ConversationEngine:
    return ConversationEngine(get_partner_gateway(), get_payment_backend())


def get_webhook_guard() -> WebhookGuard:
    return WebhookGuard()


def get_conversation_service(
    store: SessionStore = Depends(get_session_store),
    engine: ConversationEngine = Depends(get_conversation_engine),
    dispatcher: OutboundDispatcher = Depends(get_dispatcher),
    guard: WebhookGuard = Depends(get_webhook_guard),
    message_log: MessageLogService = Depends(get_message_log),
) -> ConversationService:
    return ConversationService(store, engine, dispatcher, guard, message_log)


def get_due_date_notifier(
    dispatcher: OutboundDispatcher = Depends(get_dispatcher),
) -> DueDateNotifier:
    return DueDateNotifier(dispatcher)
