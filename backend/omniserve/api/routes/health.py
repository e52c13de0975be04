"""Endpoint de salud mínimo para validaciones rápidas."""
from fastapi import APIRouter

from omniserve.repositories.conversations import get_conversation_registry

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", summary="Estado del servicio")
def healthcheck() -> dict[str, str | int]:
    """Indica que la API está viva y cuántas conversaciones tiene el registro."""
    return {"status": "ok", "conversations": len(get_conversation_registry())}
