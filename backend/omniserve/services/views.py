"""Proyecciones de sólo lectura sobre el registro de conversaciones."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Literal

from omniserve.models.conversation import Conversation, ConversationStatus, utcnow
from omniserve.repositories.conversations import (
    ConversationRegistry,
    get_conversation_registry,
)


StatusFilter = Literal["all", "active", "resolved", "escalated"]


def _matches_status(conversation: Conversation, status_filter: str) -> bool:
    return status_filter == "all" or conversation.status.value == status_filter


def _matches_query(conversation: Conversation, query: str) -> bool:
    if not query:
        return True
    return (
        query in conversation.customer_name.lower()
        or query in conversation.customer_email.lower()
        or query in conversation.last_message.lower()
    )


def filter_conversations(
    registry: ConversationRegistry,
    status_filter: str = "all",
    query_text: str = "",
) -> list[Conversation]:
    """Filtra por estado y texto (sin distinguir mayúsculas) en orden de registro."""
    query = (query_text or "").lower()
    return [
        conversation
        for conversation in registry.snapshot()
        if _matches_status(conversation, status_filter) and _matches_query(conversation, query)
    ]


@dataclass(slots=True)
class ConversationListState:
    """Estado de la vista de conversaciones del operador."""

    status_filter: StatusFilter = "all"
    query: str = ""
    selected_id: str | None = None

    def set_filter(self, status_filter: StatusFilter) -> None:
        self.status_filter = status_filter

    def set_query(self, query: str) -> None:
        self.query = query

    def select(self, conversation_id: str) -> None:
        self.selected_id = conversation_id

    def clear_selection(self) -> None:
        self.selected_id = None

    def apply(self, registry: ConversationRegistry) -> list[Conversation]:
        return filter_conversations(registry, self.status_filter, self.query)


def format_relative_time(instant: datetime, now: datetime | None = None) -> str:
    """Texto relativo usado por el panel ("Just now", "5m ago", ...)."""
    elapsed = ((now or utcnow()) - instant).total_seconds()
    minutes = int(elapsed // 60)
    hours = int(elapsed // 3600)
    days = int(elapsed // 86400)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    return f"{days}d ago"


def average_response_seconds(conversations: Sequence[Conversation]) -> float | None:
    """Promedio entre cada mensaje del cliente y la respuesta inmediata del agente."""
    deltas: list[float] = []
    for conversation in conversations:
        previous = None
        for message in conversation.messages:
            if message.is_transient:
                continue
            if previous is not None and previous.sender == "customer" and message.sender == "agent":
                deltas.append((message.timestamp - previous.timestamp).total_seconds())
            previous = message
    if not deltas:
        return None
    return sum(deltas) / len(deltas)


@dataclass(slots=True)
class DashboardMetrics:
    total_conversations: int = 0
    active_chats: int = 0
    resolution_rate: int = 0
    avg_response_time_seconds: float | None = None
    pending_handoffs: list[Conversation] = field(default_factory=list)

    @property
    def avg_response_time(self) -> str:
        if self.avg_response_time_seconds is None:
            return "0s"
        return f"{self.avg_response_time_seconds:.1f}s"


def compute_metrics(registry: ConversationRegistry) -> DashboardMetrics:
    conversations = registry.snapshot()
    total = len(conversations)
    by_status = {status: 0 for status in ConversationStatus}
    for conversation in conversations:
        by_status[conversation.status] += 1
    resolution = round(by_status[ConversationStatus.RESOLVED] * 100 / total) if total else 0
    return DashboardMetrics(
        total_conversations=total,
        active_chats=by_status[ConversationStatus.ACTIVE],
        resolution_rate=resolution,
        avg_response_time_seconds=average_response_seconds(conversations),
        pending_handoffs=[c for c in conversations if c.status is ConversationStatus.ESCALATED],
    )


class DashboardView:
    """Métricas del dashboard recalculadas en cada notificación del registro."""

    def __init__(self, registry: ConversationRegistry) -> None:
        self._metrics = compute_metrics(registry)
        self._unsubscribe: Callable[[], None] | None = registry.subscribe(self._refresh)

    def _refresh(self, registry: ConversationRegistry) -> None:
        self._metrics = compute_metrics(registry)

    @property
    def metrics(self) -> DashboardMetrics:
        return self._metrics

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None


@lru_cache(maxsize=1)
def get_dashboard_view() -> DashboardView:
    return DashboardView(get_conversation_registry())
