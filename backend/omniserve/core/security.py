"""Helpers para manejar credenciales sin exponerlas en logs."""


def mask_secret(value: str | None) -> str | None:
    """Enmascara secretos para logging seguro."""
    if not value:
        return value
    if len(value) <= 4:
        return "***"
    return f"{value[:2]}***{value[-2:]}"


def auth_headers(api_key: str | None) -> dict[str, str]:
    """Construye las cabeceras comunes para los servicios del agente."""
    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json",
    }
    if api_key:
        headers["x-api-key"] = api_key
    return headers
