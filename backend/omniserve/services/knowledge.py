"""Integración con el servicio de ingesta de la base de conocimiento."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any, Protocol

import httpx

from omniserve.core.config import settings
from omniserve.core.logging import get_logger, log_event
from omniserve.core.security import auth_headers
from omniserve.data import data_path
from omniserve.models.conversation import utcnow

logger = get_logger(__name__)

DEMO_PAGES_FILE = "demo_indexed_pages.json"


class KnowledgeIngestionError(RuntimeError):
    """Errores al enviar recursos al servicio de ingesta."""


@dataclass(frozen=True, slots=True)
class IndexedPage:
    url: str
    last_updated: datetime


class KnowledgeIngestor(Protocol):
    async def ingest(self, resource: str, rag_id: str) -> bool: ...


class HttpKnowledgeIngestor:
    """Envía recursos (archivo o URL) al endpoint de ingesta vía REST."""

    def __init__(self, base_url: str | None, api_key: str | None = None) -> None:
        self._base_url = base_url.rstrip("/") if base_url else None
        self._api_key = api_key

    async def ingest(self, resource: str, rag_id: str) -> bool:
        if not self._base_url:
            raise KnowledgeIngestionError("OMNISERVE_KNOWLEDGE_API_URL is not configured")

        url = f"{self._base_url}/ingest"
        payload = {"resource": resource, "rag_id": rag_id}
        try:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.post(url, headers=auth_headers(self._api_key), json=payload)
        except httpx.HTTPError as exc:
            msg = f"Error de red al enviar recurso a la base de conocimiento: {exc}"
            logger.exception(msg)
            raise KnowledgeIngestionError(msg) from exc

        if response.status_code >= 400:
            msg = (
                "El servicio de ingesta respondió error"
                f" (status={response.status_code}, body={response.text!r})"
            )
            logger.error(msg)
            raise KnowledgeIngestionError(msg)

        try:
            data = response.json()
        except ValueError:
            data = {}
        return bool(data.get("success", True)) if isinstance(data, dict) else True


class KnowledgeBaseService:
    """Mantiene las páginas indexadas y el estado de rastreo en curso."""

    def __init__(
        self,
        ingestor: KnowledgeIngestor,
        *,
        rag_id: str,
        pages: list[IndexedPage] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._ingestor = ingestor
        self._rag_id = rag_id
        self._pages: list[IndexedPage] = list(pages or [])
        self._clock = clock
        self._crawl_task: asyncio.Task[bool] | None = None

    @property
    def rag_id(self) -> str:
        return self._rag_id

    @property
    def is_crawling(self) -> bool:
        return self._crawl_task is not None and not self._crawl_task.done()

    def pages(self) -> list[IndexedPage]:
        return list(self._pages)

    async def ingest_resource(self, resource: str) -> bool:
        """Envía un recurso a la base; las cadenas vacías se ignoran."""
        target = resource.strip()
        if not target:
            return False
        try:
            accepted = await self._ingestor.ingest(target, self._rag_id)
        except KnowledgeIngestionError as exc:
            logger.warning(
                "knowledge.ingest_failed",
                extra={"resource": target, "rag_id": self._rag_id, "error": str(exc)},
            )
            return False
        log_event(logger, "knowledge.ingested", resource=target, accepted=accepted)
        return accepted

    async def crawl_website(self, url: str) -> bool:
        """Indexa un sitio y, si tiene éxito, lo coloca al inicio del listado."""
        target = url.strip()
        if not target:
            return False
        accepted = await self.ingest_resource(target)
        if accepted:
            self._pages.insert(0, IndexedPage(url=target, last_updated=self._clock()))
        return accepted

    def start_crawl(self, url: str) -> asyncio.Task[bool] | None:
        """Programa el rastreo como tarea; devuelve None si ya hay uno en curso."""
        if self.is_crawling or not url.strip():
            return None
        self._crawl_task = asyncio.get_running_loop().create_task(self.crawl_website(url))
        return self._crawl_task


def load_demo_pages(*, now: datetime | None = None) -> list[IndexedPage]:
    with data_path(DEMO_PAGES_FILE).open(encoding="utf-8") as handle:
        rows: list[dict[str, Any]] = json.load(handle)
    reference = now or utcnow()
    return [
        IndexedPage(
            url=str(row["url"]),
            last_updated=reference - timedelta(seconds=int(row.get("seconds_ago", 0))),
        )
        for row in rows
    ]


@lru_cache(maxsize=1)
def get_knowledge_base() -> KnowledgeBaseService:
    """Servicio compartido de base de conocimiento."""
    pages = load_demo_pages() if settings.seed_demo_data else []
    return KnowledgeBaseService(
        HttpKnowledgeIngestor(settings.knowledge_api_url, settings.agent_api_key),
        rag_id=settings.rag_id,
        pages=pages,
    )
