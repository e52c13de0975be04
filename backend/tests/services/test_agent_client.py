"""Pruebas del cliente HTTP del agente."""

import json

import httpx
import pytest

from omniserve.agents.manager import AgentConfig
from omniserve.services import agent

REAL_ASYNC_CLIENT = httpx.AsyncClient


def _patch_transport(monkeypatch: pytest.MonkeyPatch, handler) -> None:
    def factory(**kwargs):
        return REAL_ASYNC_CLIENT(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr("omniserve.services.agent.httpx.AsyncClient", factory)


def _config() -> AgentConfig:
    return AgentConfig(agent_id="agent-1", api_url="https://agent.test/chat", api_key="secret-key")


def test_parse_payload_with_full_response() -> None:
    result = agent.parse_agent_payload(
        {
            "success": True,
            "response": {
                "status": "success",
                "result": {
                    "response_message": "Hi!",
                    "knowledge_base_used": True,
                    "intercom_action_taken": "none",
                    "escalation_needed": True,
                    "conversation_id": "conv_042",
                },
                "metadata": {"latency_ms": 120},
            },
        }
    )

    assert result.is_well_formed
    assert result.response.result.response_message == "Hi!"
    assert result.response.result.escalation_needed is True
    assert result.response.result.conversation_id == "conv_042"


def test_parse_payload_missing_response_is_not_well_formed() -> None:
    result = agent.parse_agent_payload({"success": True, "response": None})

    assert not result.is_well_formed


def test_parse_payload_invalid_response_is_not_well_formed() -> None:
    result = agent.parse_agent_payload(
        {"success": True, "response": {"result": {"escalation_needed": "maybe"}}}
    )

    assert not result.is_well_formed
    assert result.error == "invalid_response"


def test_parse_payload_null_fields_take_defaults() -> None:
    result = agent.parse_agent_payload(
        {
            "success": True,
            "response": {
                "status": None,
                "result": {
                    "response_message": None,
                    "knowledge_base_used": None,
                    "intercom_action_taken": None,
                    "escalation_needed": None,
                    "conversation_id": None,
                },
            },
        }
    )

    assert result.is_well_formed
    assert result.response.status == ""
    assert result.response.result.response_message == ""
    assert result.response.result.intercom_action_taken == ""
    assert result.response.result.escalation_needed is False


def test_parse_payload_rejects_non_object() -> None:
    with pytest.raises(agent.AgentCallFailure):
        agent.parse_agent_payload(["not", "a", "dict"])


@pytest.mark.asyncio
async def test_invoke_posts_message_and_agent_id(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["api_key"] = request.headers.get("x-api-key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"success": True, "response": {"status": "ok", "result": {"response_message": "hey"}}},
        )

    _patch_transport(monkeypatch, handler)

    result = await agent.HttpAgentClient(_config()).invoke("hola", "agent-1")

    assert seen["url"] == "https://agent.test/chat"
    assert seen["api_key"] == "secret-key"
    assert seen["body"] == {"message": "hola", "agent_id": "agent-1"}
    assert result.response.result.response_message == "hey"


@pytest.mark.asyncio
async def test_invoke_raises_on_http_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_transport(monkeypatch, lambda request: httpx.Response(503, text="unavailable"))

    with pytest.raises(agent.AgentCallFailure):
        await agent.HttpAgentClient(_config()).invoke("hola", "agent-1")


@pytest.mark.asyncio
async def test_invoke_raises_on_transport_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    _patch_transport(monkeypatch, handler)

    with pytest.raises(agent.AgentCallFailure):
        await agent.HttpAgentClient(_config()).invoke("hola", "agent-1")


@pytest.mark.asyncio
async def test_invoke_without_url_fails() -> None:
    client = agent.HttpAgentClient(AgentConfig(agent_id="agent-1"))

    with pytest.raises(agent.AgentCallFailure):
        await client.invoke("hola", "agent-1")
