"""Rutas del panel de operadores: conversaciones, estado y métricas."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from omniserve.channels.webchat.schemas import ChatMessage
from omniserve.core.logging import get_logger, log_event
from omniserve.models.conversation import Conversation, utcnow
from omniserve.repositories.conversations import (
    ConversationNotFound,
    ConversationRegistry,
    get_conversation_registry,
)
from omniserve.services import views

router = APIRouter(prefix="", tags=["panel"])

logger = get_logger(__name__)


class ConversationSummary(BaseModel):
    """Fila del listado de conversaciones."""

    id: str
    customer_name: str
    customer_email: str
    status: Literal["active", "resolved", "escalated"]
    last_message: str
    timestamp: datetime
    age: str = Field(..., description="Tiempo relativo desde la última actividad.")
    message_count: int


class ConversationDetail(ConversationSummary):
    """Conversación con su historial completo."""

    messages: list[ChatMessage] = Field(default_factory=list)


class ConversationListResponse(BaseModel):
    ok: bool = True
    total: int
    items: list[ConversationSummary]


class MetricsResponse(BaseModel):
    total_conversations: int
    avg_response_time: str
    resolution_rate: int
    active_chats: int
    pending_handoffs: list[ConversationSummary]


def _get_registry() -> ConversationRegistry:
    return get_conversation_registry()


def _get_dashboard() -> views.DashboardView:
    return views.get_dashboard_view()


def _summary(conversation: Conversation, now: datetime) -> dict[str, Any]:
    return {
        "id": conversation.id,
        "customer_name": conversation.customer_name,
        "customer_email": conversation.customer_email,
        "status": conversation.status.value,
        "last_message": conversation.last_message,
        "timestamp": conversation.timestamp,
        "age": views.format_relative_time(conversation.timestamp, now),
        "message_count": conversation.message_count,
    }


def _detail(conversation: Conversation, now: datetime) -> ConversationDetail:
    return ConversationDetail(
        **_summary(conversation, now),
        messages=[ChatMessage.from_message(m) for m in conversation.messages],
    )


def _lookup(registry: ConversationRegistry, conversation_id: str) -> Conversation:
    try:
        return registry.get(conversation_id)
    except ConversationNotFound as exc:
        raise HTTPException(status_code=404, detail="conversation_not_found") from exc


@router.get("/conversations", response_model=ConversationListResponse)
async def list_conversations(
    status: views.StatusFilter = Query("all", description="Filtro por estado."),
    q: str = Query("", max_length=200, description="Búsqueda por nombre, correo o mensaje."),
) -> ConversationListResponse:
    now = utcnow()
    items = views.filter_conversations(_get_registry(), status, q)
    return ConversationListResponse(
        total=len(items),
        items=[ConversationSummary(**_summary(c, now)) for c in items],
    )


@router.get("/conversations/{conversation_id}", response_model=ConversationDetail)
async def get_conversation(conversation_id: str) -> ConversationDetail:
    return _detail(_lookup(_get_registry(), conversation_id), utcnow())


@router.post("/conversations/{conversation_id}/resolve", response_model=ConversationDetail)
async def resolve_conversation(conversation_id: str) -> ConversationDetail:
    """Marca la conversación como resuelta (idempotente)."""
    registry = _get_registry()
    _lookup(registry, conversation_id)
    conversation = registry.mark_resolved(conversation_id)
    log_event(logger, "panel.conversation_resolved", conversation_id=conversation_id)
    return _detail(conversation, utcnow())


@router.post("/conversations/{conversation_id}/escalate", response_model=ConversationDetail)
async def escalate_conversation(conversation_id: str) -> ConversationDetail:
    """Escala la conversación a un humano (idempotente)."""
    registry = _get_registry()
    _lookup(registry, conversation_id)
    conversation = registry.escalate(conversation_id)
    log_event(logger, "panel.conversation_escalated", conversation_id=conversation_id)
    return _detail(conversation, utcnow())


@router.get("/dashboard/metrics", response_model=MetricsResponse)
async def dashboard_metrics() -> MetricsResponse:
    metrics = _get_dashboard().metrics
    now = utcnow()
    return MetricsResponse(
        total_conversations=metrics.total_conversations,
        avg_response_time=metrics.avg_response_time,
        resolution_rate=metrics.resolution_rate,
        active_chats=metrics.active_chats,
        pending_handoffs=[ConversationSummary(**_summary(c, now)) for c in metrics.pending_handoffs],
    )
