"""HTTP surface of the Publications registry."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Query, Request

from ..authors.client import AuthorsClient
from ..core.models import (
    Page,
    PublicationCreate,
    PublicationStatus,
    PublicationUpdate,
    StatusChange,
)
from ..core.store import PublicationStore
from ..publications.workflow import PublicationWorkflow
from ..utils.log import get_logger
from .errors import install_error_handlers

log = get_logger(__name__)


def _workflow(request: Request) -> PublicationWorkflow:
    return request.app.state.workflow


def _page_body(result: Page) -> dict[str, Any]:
    return {
        "success": True,
        "data": [p.model_dump(mode="json", by_alias=True) for p in result.items],
        "pagination": {
            "page": result.page,
            "limit": result.limit,
            "total": result.total,
            "pages": result.pages,
        },
    }


def create_publications_app(workflow: PublicationWorkflow | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        owned_client: AuthorsClient | None = None
        if getattr(app.state, "workflow", None) is None:
            store = PublicationStore()
            store.init_db()
            owned_client = AuthorsClient.from_config()
            app.state.workflow = PublicationWorkflow(owned_client, store)
        log.info("publications_service_started")
        try:
            yield
        finally:
            if owned_client is not None:
                await owned_client.aclose()
            log.info("publications_service_stopped")

    app = FastAPI(title="Publications Service", version="1.0.0", lifespan=lifespan)
    app.state.workflow = workflow
    install_error_handlers(app)

    @app.post("/publications", status_code=201)
    async def create_publication(body: PublicationCreate, request: Request) -> dict[str, Any]:
        pub = await _workflow(request).create(body)
        return {
            "success": True,
            "data": pub.model_dump(mode="json", by_alias=True),
            "message": "Publication created successfully",
        }

    @app.get("/publications")
    async def list_publications(
        request: Request,
        page: int = Query(1),
        limit: int = Query(10),
        status: PublicationStatus | None = Query(None),
    ) -> dict[str, Any]:
        return _page_body(await _workflow(request).list_publications(page, limit, status))

    @app.get("/publications/author/{author_id}")
    async def list_by_author(
        author_id: str, request: Request, page: int = Query(1), limit: int = Query(10)
    ) -> dict[str, Any]:
        return _page_body(await _workflow(request).list_by_author(author_id, page, limit))

    @app.get("/publications/{publication_id}")
    async def get_publication(
        publication_id: str,
        request: Request,
        include_author: bool = Query(True, alias="includeAuthor"),
    ) -> dict[str, Any]:
        view = await _workflow(request).get(publication_id, include_author)
        data = view.publication.model_dump(mode="json", by_alias=True)
        if view.author is not None:
            data["author"] = view.author.model_dump(mode="json", by_alias=True)
        return {"success": True, "data": data}

    @app.patch("/publications/{publication_id}")
    async def update_publication(
        publication_id: str, body: PublicationUpdate, request: Request
    ) -> dict[str, Any]:
        pub = await _workflow(request).update(publication_id, body)
        return {
            "success": True,
            "data": pub.model_dump(mode="json", by_alias=True),
            "message": "Publication updated successfully",
        }

    @app.patch("/publications/{publication_id}/status")
    async def change_status(
        publication_id: str, body: StatusChange, request: Request
    ) -> dict[str, Any]:
        pub = await _workflow(request).change_status(publication_id, body)
        return {
            "success": True,
            "data": pub.model_dump(mode="json", by_alias=True),
            "message": f"Publication status changed to {body.status.value}",
        }

    @app.delete("/publications/{publication_id}")
    async def delete_publication(publication_id: str, request: Request) -> dict[str, Any]:
        await _workflow(request).delete(publication_id)
        return {"success": True, "message": "Publication deleted successfully"}

    @app.get("/stats/overview")
    async def statistics(request: Request) -> dict[str, Any]:
        return {"success": True, "data": await _workflow(request).statistics()}

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "Publications Service is running"}

    return app
