"""Datos de ejemplo integrados en el backend (seed del dashboard)."""

from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


def data_path(*parts: str) -> Path:
    """Retorna la ruta a un recurso dentro de `omniserve/data`."""
    return BASE_DIR.joinpath(*parts)
