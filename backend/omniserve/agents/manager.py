"""Resuelve la configuración del agente de soporte a partir de settings."""

from dataclasses import dataclass

from omniserve.core.config import settings


@dataclass(slots=True)
class AgentConfig:
    """Representa el agente remoto al que se delegan las respuestas."""

    agent_id: str
    rag_id: str | None = None
    api_url: str | None = None
    api_key: str | None = None
    timeout_seconds: float | None = None

    @property
    def has_knowledge_base(self) -> bool:
        return bool(self.rag_id)


def get_support_agent() -> AgentConfig:
    """Retorna el agente utilizado por el widget de soporte."""
    if not settings.agent_id:
        msg = "OMNISERVE_AGENT_ID is not configured"
        raise RuntimeError(msg)
    return AgentConfig(
        agent_id=settings.agent_id,
        rag_id=settings.rag_id or None,
        api_url=settings.agent_api_url,
        api_key=settings.agent_api_key,
        timeout_seconds=settings.agent_timeout_seconds,
    )
