"""Registro liviano de agentes disponibles."""
from collections.abc import Callable

from . import manager

AgentResolver = Callable[[], manager.AgentConfig]


REGISTRY: dict[str, AgentResolver] = {
    "support": manager.get_support_agent,
}


def resolve_agent(name: str) -> manager.AgentConfig:
    """Devuelve la configuración del agente solicitado."""
    try:
        resolver = REGISTRY[name]
    except KeyError as exc:
        raise ValueError(f"Agent '{name}' is not registered") from exc
    return resolver()
