"""Fixtures compartidas para las pruebas."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from omniserve.channels.webchat import service as webchat_service
from omniserve.main import app
from omniserve.repositories import conversations
from omniserve.repositories.conversations import ConversationRegistry
from omniserve.services import agent, knowledge, views
from omniserve.services.agent import AgentCallResult, AgentResponse, AgentResult


class FakeAgent:
    """Agente en memoria: registra llamadas y puede quedar retenido en un `gate`."""

    def __init__(
        self,
        result: AgentCallResult | None = None,
        *,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.result = result
        self.error = error
        self.gate = gate
        self.calls: list[tuple[str, str]] = []

    async def invoke(self, message: str, agent_id: str) -> AgentCallResult:
        self.calls.append((message, agent_id))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        assert self.result is not None
        return self.result


def build_reply(
    message: str = "Our business hours are 9am to 5pm.",
    *,
    status: str = "success",
    escalation_needed: bool = False,
    conversation_id: str | None = None,
) -> AgentCallResult:
    return AgentCallResult(
        success=True,
        response=AgentResponse(
            status=status,
            result=AgentResult(
                response_message=message,
                knowledge_base_used=True,
                intercom_action_taken="none",
                escalation_needed=escalation_needed,
                conversation_id=conversation_id,
            ),
        ),
    )


class SteppingClock:
    """Reloj determinista que avanza un segundo por lectura."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture(autouse=True)
def _fresh_singletons():
    """Cada prueba arranca con registro, controlador y vistas nuevos."""
    caches = (
        conversations.get_conversation_registry,
        webchat_service.get_session_controller,
        views.get_dashboard_view,
        knowledge.get_knowledge_base,
        agent.get_agent_client,
    )
    for cached in caches:
        cached.cache_clear()
    yield
    for cached in caches:
        cached.cache_clear()


@pytest.fixture(name="reply_factory")
def fixture_reply_factory():
    return build_reply


@pytest.fixture(name="agent_factory")
def fixture_agent_factory():
    return FakeAgent


@pytest.fixture(name="clock")
def fixture_clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture(name="registry")
def fixture_registry(clock: SteppingClock) -> ConversationRegistry:
    registry = ConversationRegistry(clock=clock)
    registry.load(conversations.load_demo_conversations(now=clock.current))
    return registry


@pytest.fixture(name="async_client")
async def fixture_async_client() -> AsyncClient:
    """Retorna un cliente asíncrono contra la app principal utilizando ASGITransport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
