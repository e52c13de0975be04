"""Registro en memoria de conversaciones con notificación a vistas de lectura."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any
from uuid import uuid4

from omniserve.core.config import settings
from omniserve.core.logging import get_logger, log_event
from omniserve.data import data_path
from omniserve.models.conversation import (
    Conversation,
    ConversationStatus,
    Message,
    MessageLog,
    utcnow,
)

logger = get_logger(__name__)

RegistryListener = Callable[["ConversationRegistry"], None]

DEMO_CONVERSATIONS_FILE = "demo_conversations.json"


class ConversationNotFound(LookupError):
    """La conversación solicitada no existe en el registro."""


class ConversationRegistry:
    """Colección indexada de conversaciones que preserva el orden de inserción.

    Los únicos mutadores son el controlador de sesiones y las acciones del
    operador; las vistas se suscriben con `subscribe` y sólo leen.
    """

    def __init__(self, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._conversations: dict[str, Conversation] = {}
        self._listeners: list[RegistryListener] = []
        self._clock = clock

    # Lectura -----------------------------------------------------------------

    def get(self, conversation_id: str) -> Conversation:
        try:
            return self._conversations[conversation_id]
        except KeyError as exc:
            raise ConversationNotFound(conversation_id) from exc

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._conversations

    def __len__(self) -> int:
        return len(self._conversations)

    def snapshot(self) -> list[Conversation]:
        """Copia superficial en orden de registro para proyecciones de lectura."""
        return list(self._conversations.values())

    # Suscripciones -------------------------------------------------------------

    def subscribe(self, listener: RegistryListener) -> Callable[[], None]:
        """Registra un observador; devuelve la función para cancelar la suscripción."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:  # pragma: no cover - un observador roto no detiene al resto
                logger.exception(
                    "registry.listener_failed",
                    extra={"listener": getattr(listener, "__qualname__", repr(listener))},
                )

    # Mutación ------------------------------------------------------------------

    def add(self, conversation: Conversation) -> Conversation:
        if conversation.id in self._conversations:
            raise ValueError(f"Conversation '{conversation.id}' is already registered")
        self._conversations[conversation.id] = conversation
        self.notify()
        return conversation

    def create(self, *, customer_name: str, customer_email: str) -> Conversation:
        """Da de alta una conversación nueva en estado `active`."""
        conversation = Conversation(
            id=f"conv_{uuid4().hex[:12]}",
            customer_name=customer_name,
            customer_email=customer_email,
            timestamp=self._clock(),
        )
        self.add(conversation)
        log_event(logger, "registry.conversation_created", conversation_id=conversation.id)
        return conversation

    def append_message(self, conversation_id: str, message: Message) -> Conversation:
        conversation = self.get(conversation_id)
        conversation.append(message)
        self.notify()
        return conversation

    def remove_transient(self, conversation_id: str) -> bool:
        conversation = self.get(conversation_id)
        removed = conversation.remove_transient()
        if removed:
            self.notify()
        return removed

    def set_status(self, conversation_id: str, status: ConversationStatus) -> Conversation:
        """Aplica una transición de estado sin modificar `timestamp`.

        Es idempotente: repetir el mismo estado no notifica ni registra cambios.
        """
        conversation = self.get(conversation_id)
        if conversation.status is status:
            return conversation
        previous = conversation.status
        conversation.status = status
        log_event(
            logger,
            "registry.status_changed",
            conversation_id=conversation_id,
            previous=previous.value,
            status=status.value,
        )
        self.notify()
        return conversation

    def mark_resolved(self, conversation_id: str) -> Conversation:
        return self.set_status(conversation_id, ConversationStatus.RESOLVED)

    def escalate(self, conversation_id: str) -> Conversation:
        return self.set_status(conversation_id, ConversationStatus.ESCALATED)

    def load(self, conversations: Iterable[Conversation]) -> None:
        """Importa conversaciones existentes (seed o importación del dashboard)."""
        for conversation in conversations:
            self._conversations[conversation.id] = conversation
        self.notify()

    def reset(self) -> None:
        self._conversations.clear()
        self.notify()


def _parse_seed_message(raw: dict[str, Any], now: datetime) -> Message:
    return Message(
        id=str(raw["id"]),
        sender=raw["sender"],
        content=str(raw.get("content") or ""),
        timestamp=now - timedelta(seconds=int(raw.get("seconds_ago", 0))),
    )


def parse_seed_conversations(rows: list[dict[str, Any]], *, now: datetime) -> list[Conversation]:
    """Convierte filas de seed (con desfases relativos) en conversaciones."""
    conversations: list[Conversation] = []
    for row in rows:
        messages = [_parse_seed_message(item, now) for item in row.get("messages") or []]
        conversations.append(
            Conversation(
                id=str(row["id"]),
                customer_name=str(row["customer_name"]),
                customer_email=str(row["customer_email"]),
                status=ConversationStatus(row.get("status", "active")),
                last_message=str(row.get("last_message") or ""),
                timestamp=now - timedelta(seconds=int(row.get("seconds_ago", 0))),
                messages=MessageLog(messages),
            )
        )
    return conversations


def load_demo_conversations(*, now: datetime | None = None) -> list[Conversation]:
    path = data_path(DEMO_CONVERSATIONS_FILE)
    with path.open(encoding="utf-8") as handle:
        rows = json.load(handle)
    return parse_seed_conversations(rows, now=now or utcnow())


@lru_cache(maxsize=1)
def get_conversation_registry() -> ConversationRegistry:
    """Instancia compartida del registro para el proceso."""
    registry = ConversationRegistry()
    if settings.seed_demo_data:
        registry.load(load_demo_conversations())
        log_event(logger, "registry.seeded", conversations=len(registry))
    return registry
