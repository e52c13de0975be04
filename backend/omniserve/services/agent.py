"""Cliente del agente de IA externo que genera las respuestas del widget."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, ValidationError, field_validator

from omniserve.agents.manager import AgentConfig
from omniserve.agents.registry import resolve_agent
from omniserve.core.logging import get_logger
from omniserve.core.security import auth_headers, mask_secret

logger = get_logger(__name__)


class AgentCallFailure(RuntimeError):
    """Falla de transporte o de parseo al invocar al agente."""


class AgentResult(BaseModel):
    """Bloque `result` devuelto por el agente; los `null` toman el valor por defecto."""

    response_message: str = ""
    knowledge_base_used: bool = False
    intercom_action_taken: str = ""
    escalation_needed: bool = False
    conversation_id: str | None = None

    @field_validator("response_message", "intercom_action_taken", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("knowledge_base_used", "escalation_needed", mode="before")
    @classmethod
    def _null_as_false(cls, value: Any) -> Any:
        return False if value is None else value


class AgentResponse(BaseModel):
    """Respuesta estructurada del agente; `metadata` no se interpreta."""

    status: str = ""
    result: AgentResult | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _null_status(cls, value: Any) -> Any:
        return "" if value is None else value


class AgentCallResult(BaseModel):
    """Sobre que envuelve la respuesta del agente."""

    success: bool
    response: AgentResponse | None = None
    error: str | None = None

    @property
    def is_well_formed(self) -> bool:
        return self.success and self.response is not None


class AgentCaller(Protocol):
    """Capacidad mínima que el controlador de sesiones requiere del agente."""

    async def invoke(self, message: str, agent_id: str) -> AgentCallResult: ...


def parse_agent_payload(data: Any) -> AgentCallResult:
    """Convierte el JSON recibido en un `AgentCallResult`.

    Un sobre que no es objeto se considera falla; una respuesta interna que no
    valida se devuelve como resultado fallido para que el llamador use el
    mensaje de respaldo.
    """
    if not isinstance(data, dict):
        raise AgentCallFailure(f"Respuesta inesperada del agente: {data!r}")
    success = bool(data.get("success"))
    error = data.get("error")
    raw_response = data.get("response")
    if not raw_response:
        return AgentCallResult(success=success, response=None, error=error and str(error))
    try:
        response = AgentResponse.model_validate(raw_response)
    except ValidationError as exc:
        logger.warning("agent.response_invalid", extra={"error": str(exc)})
        return AgentCallResult(success=False, response=None, error="invalid_response")
    return AgentCallResult(success=success, response=response, error=error and str(error))


class HttpAgentClient:
    """Invoca al agente vía HTTP con `httpx`."""

    def __init__(self, config: AgentConfig) -> None:
        self._config = config

    async def invoke(self, message: str, agent_id: str) -> AgentCallResult:
        if not self._config.api_url:
            raise AgentCallFailure("OMNISERVE_AGENT_API_URL is not configured")

        payload = {"message": message, "agent_id": agent_id}
        headers = auth_headers(self._config.api_key)
        logger.debug(
            "agent.request",
            extra={
                "agent_id": agent_id,
                "api_url": self._config.api_url,
                "api_key": mask_secret(self._config.api_key),
            },
        )
        try:
            async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
                response = await client.post(self._config.api_url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            msg = f"Error de red al invocar al agente: {exc}"
            logger.warning(msg, extra={"agent_id": agent_id})
            raise AgentCallFailure(msg) from exc

        if response.status_code >= 400:
            msg = (
                "El agente respondió con error"
                f" (status={response.status_code}, body={response.text!r})"
            )
            logger.error(msg)
            raise AgentCallFailure(msg)

        try:
            data = response.json()
        except ValueError as exc:
            raise AgentCallFailure("El agente devolvió un cuerpo que no es JSON") from exc
        return parse_agent_payload(data)


@lru_cache(maxsize=1)
def get_agent_client() -> AgentCaller:
    """Crea un cliente reutilizable para el agente de soporte."""
    return HttpAgentClient(resolve_agent("support"))
