"""Modelos base para conversaciones y su bitácora de mensajes."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal
from uuid import uuid4

Sender = Literal["customer", "agent"]

TYPING_MESSAGE_ID = "typing"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_message_id() -> str:
    return f"msg_{uuid4().hex}"


class ConversationStatus(str, Enum):
    """Estados posibles del ciclo de vida de una conversación."""

    ACTIVE = "active"
    RESOLVED = "resolved"
    ESCALATED = "escalated"


@dataclass(frozen=True, slots=True)
class Message:
    """Turno individual dentro de una conversación."""

    id: str
    sender: Sender
    content: str
    timestamp: datetime
    is_transient: bool = False

    @classmethod
    def customer(cls, content: str, *, at: datetime | None = None) -> Message:
        return cls(id=new_message_id(), sender="customer", content=content, timestamp=at or utcnow())

    @classmethod
    def agent(cls, content: str, *, at: datetime | None = None) -> Message:
        return cls(id=new_message_id(), sender="agent", content=content, timestamp=at or utcnow())

    @classmethod
    def typing(cls, *, at: datetime | None = None) -> Message:
        """Marcador temporal que indica que el agente está redactando."""
        return cls(
            id=TYPING_MESSAGE_ID,
            sender="agent",
            content="",
            timestamp=at or utcnow(),
            is_transient=True,
        )


class TransientMessageError(ValueError):
    """Se intentó agregar un segundo marcador temporal a la bitácora."""


class MessageLog:
    """Secuencia append-only de mensajes ordenada por inserción.

    La única eliminación permitida es la del marcador temporal (typing).
    """

    __slots__ = ("_entries",)

    def __init__(self, entries: list[Message] | None = None) -> None:
        self._entries: list[Message] = []
        for entry in entries or []:
            self.append(entry)

    def append(self, message: Message) -> None:
        if message.is_transient and self.has_transient:
            raise TransientMessageError("La bitácora ya contiene un marcador temporal")
        self._entries.append(message)

    def remove_transient(self) -> bool:
        """Quita el marcador temporal si existe; devuelve si hubo cambio."""
        for index, entry in enumerate(self._entries):
            if entry.is_transient:
                del self._entries[index]
                return True
        return False

    @property
    def has_transient(self) -> bool:
        return any(entry.is_transient for entry in self._entries)

    def last(self) -> Message | None:
        return self._entries[-1] if self._entries else None

    def last_terminal(self) -> Message | None:
        for entry in reversed(self._entries):
            if not entry.is_transient:
                return entry
        return None

    def terminal_count(self) -> int:
        return sum(1 for entry in self._entries if not entry.is_transient)

    def snapshot(self) -> tuple[Message, ...]:
        return tuple(self._entries)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._entries))

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(slots=True)
class Conversation:
    """Hilo cliente-agente con estado de ciclo de vida."""

    id: str
    customer_name: str
    customer_email: str
    status: ConversationStatus = ConversationStatus.ACTIVE
    last_message: str = ""
    timestamp: datetime = field(default_factory=utcnow)
    messages: MessageLog = field(default_factory=MessageLog)

    def append(self, message: Message) -> None:
        """Agrega un mensaje y refleja `last_message`/`timestamp` en la conversación."""
        self.messages.append(message)
        if not message.is_transient:
            self.last_message = message.content
            self.timestamp = message.timestamp

    def remove_transient(self) -> bool:
        return self.messages.remove_transient()

    @property
    def message_count(self) -> int:
        return self.messages.terminal_count()
