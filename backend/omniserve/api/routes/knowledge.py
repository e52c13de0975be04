"""Rutas de la base de conocimiento: páginas indexadas e ingesta."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from omniserve.services import knowledge

router = APIRouter(prefix="/knowledge", tags=["knowledge"])


class CrawlPayload(BaseModel):
    url: str = Field(..., min_length=1, max_length=2048)


class ResourcePayload(BaseModel):
    resource: str = Field(..., min_length=1, max_length=2048, description="Archivo o URL.")


class IndexedPageOut(BaseModel):
    url: str
    last_updated: datetime


class PagesResponse(BaseModel):
    rag_id: str
    is_crawling: bool
    items: list[IndexedPageOut]


def _get_knowledge_base() -> knowledge.KnowledgeBaseService:
    return knowledge.get_knowledge_base()


def _pages_response(service: knowledge.KnowledgeBaseService) -> PagesResponse:
    return PagesResponse(
        rag_id=service.rag_id,
        is_crawling=service.is_crawling,
        items=[IndexedPageOut(url=p.url, last_updated=p.last_updated) for p in service.pages()],
    )


@router.get("/pages", response_model=PagesResponse)
async def list_pages() -> PagesResponse:
    return _pages_response(_get_knowledge_base())


@router.post("/crawl", response_model=PagesResponse, status_code=202)
async def crawl_website(payload: CrawlPayload) -> PagesResponse:
    """Programa el rastreo del sitio; responde de inmediato con el estado actual."""
    service = _get_knowledge_base()
    if not payload.url.strip():
        raise HTTPException(status_code=422, detail="url_required")
    if service.start_crawl(payload.url) is None:
        raise HTTPException(status_code=409, detail="crawl_in_progress")
    return _pages_response(service)


@router.post("/resources")
async def ingest_resource(payload: ResourcePayload) -> dict[str, object]:
    accepted = await _get_knowledge_base().ingest_resource(payload.resource)
    return {"ok": accepted, "resource": payload.resource.strip()}
