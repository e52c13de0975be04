"""Controlador de sesiones del widget webchat.

Cada envío agrega el mensaje del cliente y un marcador temporal (typing),
invoca al agente externo y, al resolverse la llamada, sustituye el marcador
por la respuesta o por un mensaje de respaldo. La llamada al agente es el
único punto de suspensión; el resto de pasos se ejecutan sin ceder el loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Literal

from omniserve.agents.registry import resolve_agent
from omniserve.core.logging import get_logger, log_event
from omniserve.models.conversation import Conversation, Message, utcnow
from omniserve.repositories.conversations import (
    ConversationRegistry,
    get_conversation_registry,
)
from omniserve.services.agent import AgentCaller, AgentCallResult, get_agent_client

logger = get_logger("omniserve.channels.webchat")

WELCOME_TEMPLATE = "Hello {name}! Welcome to OmniServe Support. How can I help you today?"
NO_CONTENT_FALLBACK = "I apologize, but I encountered an issue. Please try again."
MALFORMED_FALLBACK = (
    "I apologize, but I'm having trouble connecting right now. Please try again in a moment."
)
FAILURE_FALLBACK = "I apologize, but I encountered an error. Please try again."

RejectReason = Literal["empty", "in_flight"]
ReplyKind = Literal["agent", "malformed", "failure"]


class MessageRejected(ValueError):
    """Envío descartado localmente: texto vacío o envío previo pendiente."""

    def __init__(self, reason: RejectReason) -> None:
        super().__init__(reason)
        self.reason: RejectReason = reason


class SessionNotFound(LookupError):
    """No existe sesión ni conversación con el identificador indicado."""


class InvalidCustomerIdentity(ValueError):
    """Nombre o correo vacíos al iniciar el chat."""


@dataclass(slots=True, eq=False)
class ChatSession:
    """Sesión de chat ligada a una conversación del registro."""

    conversation_id: str
    in_flight: bool = False
    closed: bool = False

    @property
    def id(self) -> str:
        return self.conversation_id


@dataclass(slots=True)
class SendOutcome:
    """Resultado de un envío ya resuelto."""

    session_id: str
    customer_message: Message
    reply: Message | None
    reply_kind: ReplyKind | None
    escalated_conversation_id: str | None = None
    discarded: bool = False


class SessionController:
    """Orquesta los envíos por sesión con garantía single-flight."""

    def __init__(
        self,
        registry: ConversationRegistry,
        agent: AgentCaller | None = None,
        *,
        agent_id: str,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._registry = registry
        self._agent = agent
        self._agent_id = agent_id
        self._clock = clock
        self._sessions: dict[str, ChatSession] = {}
        self._tasks: set[asyncio.Task[SendOutcome]] = set()

    @property
    def registry(self) -> ConversationRegistry:
        return self._registry

    def _agent_client(self) -> AgentCaller:
        return self._agent or get_agent_client()

    # Ciclo de vida ---------------------------------------------------------------

    def start_session(self, *, customer_name: str, customer_email: str) -> ChatSession:
        """Crea la conversación del visitante y agrega el mensaje de bienvenida."""
        name = customer_name.strip()
        email = customer_email.strip()
        if not name or not email:
            raise InvalidCustomerIdentity("customer_name y customer_email son requeridos")

        conversation = self._registry.create(customer_name=name, customer_email=email)
        session = ChatSession(conversation_id=conversation.id)
        self._sessions[session.id] = session
        welcome = Message.agent(WELCOME_TEMPLATE.format(name=name), at=self._clock())
        self._registry.append_message(conversation.id, welcome)
        log_event(logger, "webchat.session_started", session_id=session.id)
        return session

    def get_session(self, session_id: str) -> ChatSession:
        """Devuelve la sesión activa; abre una para conversaciones ya registradas."""
        session = self._sessions.get(session_id)
        if session is not None:
            return session
        if session_id not in self._registry:
            raise SessionNotFound(session_id)
        session = ChatSession(conversation_id=session_id)
        self._sessions[session_id] = session
        log_event(logger, "webchat.session_opened", session_id=session_id)
        return session

    def has_session(self, session_id: str) -> bool:
        return session_id in self._sessions

    def conversation(self, session_id: str) -> Conversation:
        """Lectura del historial; no abre sesión para conversaciones sin chat activo."""
        session = self._sessions.get(session_id)
        conversation_id = session.conversation_id if session else session_id
        if conversation_id not in self._registry:
            raise SessionNotFound(session_id)
        return self._registry.get(conversation_id)

    def is_pending(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        return session is not None and session.in_flight

    def reset_session(self, session_id: str) -> None:
        """Cierra la sesión; un resultado tardío del agente se descarta."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFound(session_id)
        session.closed = True
        if session.conversation_id in self._registry:
            self._registry.remove_transient(session.conversation_id)
        log_event(
            logger,
            "webchat.session_reset",
            session_id=session_id,
            in_flight=session.in_flight,
        )

    def _is_current(self, session: ChatSession) -> bool:
        return (
            not session.closed
            and self._sessions.get(session.id) is session
            and session.conversation_id in self._registry
        )

    # Envío -----------------------------------------------------------------------

    def _claim(self, session: ChatSession, text: str) -> str:
        """Valida el texto y toma el candado single-flight de la sesión."""
        content = text.strip() if text else ""
        if not content:
            raise MessageRejected("empty")
        if session.in_flight:
            raise MessageRejected("in_flight")
        session.in_flight = True
        return content

    async def send_message(self, session_id: str, text: str) -> SendOutcome:
        """Envía un mensaje del cliente y espera la respuesta del agente."""
        session = self.get_session(session_id)
        content = self._claim(session, text)
        return await self._run_send(session, content)

    async def _run_send(self, session: ChatSession, content: str) -> SendOutcome:
        """Ejecuta el envío con el candado ya tomado; lo libera al terminar."""
        conversation_id = session.conversation_id
        try:
            customer_message = Message.customer(content, at=self._clock())
            self._registry.append_message(conversation_id, customer_message)
            self._registry.append_message(conversation_id, Message.typing(at=self._clock()))

            result: AgentCallResult | None
            try:
                result = await self._agent_client().invoke(content, self._agent_id)
            except asyncio.CancelledError:
                if self._is_current(session):
                    self._registry.remove_transient(conversation_id)
                    self._registry.append_message(
                        conversation_id, Message.agent(FAILURE_FALLBACK, at=self._clock())
                    )
                logger.warning("webchat.send_cancelled", extra={"session_id": session.id})
                raise
            except Exception as exc:
                logger.exception(
                    "webchat.agent_call_failed",
                    extra={"session_id": session.id, "error": str(exc)},
                )
                result = None

            if not self._is_current(session):
                log_event(logger, "webchat.late_reply_discarded", session_id=session.id)
                return SendOutcome(
                    session_id=session.id,
                    customer_message=customer_message,
                    reply=None,
                    reply_kind=None,
                    discarded=True,
                )

            reply_kind, reply_text = _reply_content(result)
            if reply_kind == "malformed":
                logger.warning(
                    "webchat.agent_reply_malformed",
                    extra={"session_id": session.id, "error": result.error if result else None},
                )
            self._registry.remove_transient(conversation_id)
            reply = Message.agent(reply_text, at=self._clock())
            self._registry.append_message(conversation_id, reply)

            escalated_id = None
            if reply_kind == "agent" and _needs_escalation(result):
                escalated_id = self._escalation_target(session, result)
                self._registry.escalate(escalated_id)
                log_event(
                    logger,
                    "webchat.escalated",
                    session_id=session.id,
                    conversation_id=escalated_id,
                )

            return SendOutcome(
                session_id=session.id,
                customer_message=customer_message,
                reply=reply,
                reply_kind=reply_kind,
                escalated_conversation_id=escalated_id,
            )
        finally:
            session.in_flight = False

    def dispatch(self, session_id: str, text: str) -> asyncio.Task[SendOutcome]:
        """Programa el envío como tarea en segundo plano.

        El candado se toma antes de crear la tarea, por lo que un segundo
        envío en el mismo ciclo se rechaza de inmediato con `MessageRejected`.
        """
        session = self.get_session(session_id)
        content = self._claim(session, text)
        try:
            task = asyncio.get_running_loop().create_task(self._run_send(session, content))
        except RuntimeError:
            session.in_flight = False
            raise
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _escalation_target(self, session: ChatSession, result: AgentCallResult) -> str:
        response = result.response
        candidate = response.result.conversation_id if response and response.result else None
        if candidate and candidate in self._registry:
            return candidate
        log_event(
            logger,
            "webchat.escalation_id_unresolved",
            session_id=session.id,
            agent_conversation_id=candidate,
        )
        return session.conversation_id


def _reply_content(result: AgentCallResult | None) -> tuple[ReplyKind, str]:
    if result is None:
        return "failure", FAILURE_FALLBACK
    if not result.is_well_formed:
        return "malformed", MALFORMED_FALLBACK
    response = result.response
    message = response.result.response_message if response.result else ""
    return "agent", message or response.status or NO_CONTENT_FALLBACK


def _needs_escalation(result: AgentCallResult | None) -> bool:
    if result is None or result.response is None or result.response.result is None:
        return False
    return result.response.result.escalation_needed


@lru_cache(maxsize=1)
def get_session_controller() -> SessionController:
    """Controlador compartido por las rutas del widget."""
    return SessionController(
        get_conversation_registry(),
        agent_id=resolve_agent("support").agent_id,
    )
