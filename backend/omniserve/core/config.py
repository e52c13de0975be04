"""Configuración central basada en variables de entorno."""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Valores globales leídos desde `.env` o el entorno."""

    environment: str = "development"
    log_level: str | None = Field(
        default=None,
        description="Nivel de logging global (ej. debug, info, warning). Cuando no se define, usa un valor por ambiente.",
    )
    request_log_skip_prefixes: tuple[str, ...] = Field(
        default=(
            "/health",
            "/api/health",
            "/favicon",
            "/docs",
            "/openapi",
        ),
        description="Prefijos de ruta para los que no se registrarán eventos de request.started/completed.",
    )
    log_file_path: str | None = Field(
        default=None,
        description="Archivo principal de logs; sin valor sólo se escribe a stdout.",
    )
    agent_api_url: str | None = None
    # Acepta la variante sin prefijo que usan los despliegues del widget
    agent_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("OMNISERVE_AGENT_API_KEY", "AGENT_API_KEY"),
    )
    agent_id: str = "698599d07551cb7920ffe924"
    rag_id: str = "698599b5de7de278e55d2877"
    agent_timeout_seconds: float | None = Field(
        default=None,
        description="Timeout del llamado al agente. None deja la llamada sin límite.",
    )
    knowledge_api_url: str | None = None
    seed_demo_data: bool = Field(
        default=True,
        description="Carga conversaciones y páginas de ejemplo al iniciar el registro.",
    )
    model_config = SettingsConfigDict(env_file=".env", env_prefix="OMNISERVE_", extra="allow")


settings = Settings()
