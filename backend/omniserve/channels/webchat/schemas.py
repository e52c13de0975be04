"""Esquemas de datos para el canal Webchat."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from omniserve.models.conversation import Message

SenderType = Literal["customer", "agent"]


class StartSessionRequest(BaseModel):
    """Identidad capturada por el formulario del widget."""

    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_email: str = Field(..., min_length=3, max_length=320)


class MessageRequest(BaseModel):
    """Payload recibido desde el widget webchat."""

    content: str = Field(..., description="Mensaje en texto plano.")
    wait: bool = Field(
        default=True,
        description="Cuando es False el envío se programa y la respuesta llega vía historial.",
    )


class ChatMessage(BaseModel):
    """Elemento individual del historial de mensajes."""

    id: str
    sender: SenderType
    content: str
    timestamp: datetime
    is_typing: bool = False

    @classmethod
    def from_message(cls, message: Message) -> ChatMessage:
        return cls(
            id=message.id,
            sender=message.sender,
            content=message.content,
            timestamp=message.timestamp,
            is_typing=message.is_transient,
        )


class SessionResponse(BaseModel):
    """Respuesta a POST /sessions."""

    session_id: str
    conversation_id: str
    messages: list[ChatMessage] = Field(default_factory=list)


class HistoryResponse(BaseModel):
    """Respuesta de GET /sessions/{id}/messages."""

    session_id: str
    status: str
    pending: bool = False
    messages: list[ChatMessage] = Field(default_factory=list)


class SendResponse(BaseModel):
    """Respuesta a POST /sessions/{id}/messages."""

    accepted: bool
    reason: str | None = None
    reply: ChatMessage | None = None
    reply_kind: str | None = None
    escalated_conversation_id: str | None = None
    discarded: bool = False
