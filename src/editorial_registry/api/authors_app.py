"""HTTP surface of the Authors registry (the service the publications client calls)."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Query, Request

from ..authors.service import AuthorService
from ..core.models import Author, AuthorCreate, AuthorUpdate
from ..core.store import AuthorStore
from ..utils.log import get_logger
from .errors import install_error_handlers

log = get_logger(__name__)


def author_payload(author: Author) -> dict[str, Any]:
    return {
        **author.model_dump(mode="json", by_alias=True),
        "role": author.role,
        "fullName": author.full_name,
    }


def _service(request: Request) -> AuthorService:
    return request.app.state.authors


def create_authors_app(service: AuthorService | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if getattr(app.state, "authors", None) is None:
            store = AuthorStore()
            store.init_db()
            app.state.authors = AuthorService(store)
        log.info("authors_service_started")
        yield
        log.info("authors_service_stopped")

    app = FastAPI(title="Authors Service", version="1.0.0", lifespan=lifespan)
    app.state.authors = service
    install_error_handlers(app)

    @app.post("/authors", status_code=201)
    def create_author(body: AuthorCreate, request: Request) -> dict[str, Any]:
        author = _service(request).create(body)
        return {"success": True, "data": author_payload(author), "message": "Author created successfully"}

    @app.get("/authors")
    def list_authors(
        request: Request, page: int = Query(1), limit: int = Query(10)
    ) -> dict[str, Any]:
        result = _service(request).list_authors(page, limit)
        return {
            "success": True,
            "data": [author_payload(a) for a in result.items],
            "pagination": {
                "page": result.page,
                "limit": result.limit,
                "total": result.total,
                "pages": result.pages,
            },
        }

    @app.get("/authors/{author_id}")
    def get_author(author_id: str, request: Request) -> dict[str, Any]:
        return {"success": True, "data": author_payload(_service(request).get(author_id))}

    @app.patch("/authors/{author_id}")
    def update_author(author_id: str, body: AuthorUpdate, request: Request) -> dict[str, Any]:
        author = _service(request).update(author_id, body)
        return {"success": True, "data": author_payload(author), "message": "Author updated successfully"}

    @app.delete("/authors/{author_id}")
    def delete_author(author_id: str, request: Request) -> dict[str, Any]:
        _service(request).delete(author_id)
        return {"success": True, "message": "Author deleted successfully"}

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "Authors Service is running"}

    return app
