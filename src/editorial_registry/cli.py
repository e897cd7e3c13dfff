import asyncio
import json
import os
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar

import structlog
import typer
import uvicorn
from dotenv import load_dotenv

from .api.authors_app import create_authors_app
from .api.publications_app import create_publications_app
from .authors.client import AuthorsClient
from .authors.service import AuthorService
from .core.config import get_config, set_test_mode
from .core.errors import EditorialError
from .core.models import (
    AuthorCreate,
    Publication,
    PublicationCreate,
    PublicationStatus,
    StatusChange,
)
from .core.store import AuthorStore, PublicationStore
from .publications.workflow import PublicationWorkflow
from .utils.log import get_logger, setup_logging

# Load environment variables from .env file
load_dotenv()

T = TypeVar("T")

# Global state for logging configuration
_log_state: dict[str, Any] = {
    "session_id": datetime.now().strftime("%Y%m%d_%H%M%S"),
    "log_file": None,
    "logger": None,
    "log_level": "INFO",
    "console_output": True,
}

app = typer.Typer(help="Authors and Publications registries.")


@app.callback()
def callback(
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress console log output (logs still written to file)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose (DEBUG) logging"),
    test: bool = typer.Option(
        False, "--test", help="Use test environment (separate databases and log directory)"
    ),
) -> None:
    """Initialize application with structured logging and environment configuration."""
    if test:
        set_test_mode()

    log_level = "DEBUG" if verbose else os.getenv("LOG_LEVEL", "INFO")
    console_output = not quiet
    _log_state["log_level"] = log_level
    _log_state["console_output"] = console_output
    _log_state["log_file"] = setup_logging(
        session_id=_log_state["session_id"],
        log_level=log_level,
        console_output=console_output,
        log_dir=get_config().log_dir,
    )
    _log_state["logger"] = get_logger(__name__)

    if console_output:
        _log_state["logger"].info(
            "application_started",
            session_id=_log_state["session_id"],
            log_file=str(_log_state["log_file"]),
            verbose=verbose,
            test_mode=test,
            **get_config().get_summary(),
        )


def _get_logger() -> structlog.BoundLogger | Any:
    """Get the application logger."""
    if _log_state["logger"] is None:
        _log_state["log_file"] = setup_logging(session_id=_log_state["session_id"])
        _log_state["logger"] = get_logger(__name__)
    return _log_state["logger"]


class _LogProxy:
    """Proxy class that forwards all attribute access to the lazily-initialized logger."""

    def __getattr__(self, name: str) -> Any:
        return getattr(_get_logger(), name)


log = _LogProxy()


def _log_as_service(service: str) -> None:
    """Restart the session log under a server's own name before it starts serving."""
    _log_state["log_file"] = setup_logging(
        session_id=_log_state["session_id"],
        log_level=_log_state["log_level"],
        console_output=_log_state["console_output"],
        log_dir=get_config().log_dir,
        service=service,
    )


def _fail(exc: EditorialError) -> typer.Exit:
    log.warning("command_failed", code=exc.code, error=exc.message)
    typer.echo(f"{exc.code}: {exc.message}", err=True)
    return typer.Exit(code=1)


def _run_workflow(action: Callable[[PublicationWorkflow], Awaitable[T]]) -> T:
    """Run one workflow call with a client that lives for this command only."""

    async def runner() -> T:
        store = PublicationStore()
        store.init_db()
        async with AuthorsClient.from_config() as client:
            return await action(PublicationWorkflow(client, store))

    try:
        return asyncio.run(runner())
    except EditorialError as e:
        raise _fail(e) from e


def _authors() -> AuthorService:
    store = AuthorStore()
    store.init_db()
    return AuthorService(store)


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _echo_publication(pub: Publication) -> None:
    _echo_json(pub.model_dump(mode="json", by_alias=True))


@app.command()
def init_db() -> None:
    """Create both databases and their tables."""
    get_config().ensure_directories()
    AuthorStore().init_db()
    PublicationStore().init_db()
    typer.echo("Databases initialized.")


@app.command()
def serve_authors(host: str = "0.0.0.0", port: int = 3001) -> None:
    """Run the Authors service HTTP API."""
    _log_as_service("authors")
    log.info("serve_authors", host=host, port=port)
    uvicorn.run(create_authors_app(), host=host, port=port, log_config=None)


@app.command()
def serve_publications(host: str = "0.0.0.0", port: int = 3002) -> None:
    """Run the Publications service HTTP API."""
    _log_as_service("publications")
    log.info("serve_publications", host=host, port=port, authors_url=get_config().remote.base_url)
    uvicorn.run(create_publications_app(), host=host, port=port, log_config=None)


@app.command()
def add_author(
    first_name: str,
    last_name: str,
    email: str,
    specialization: str = typer.Option("", help="Field of expertise"),
    biography: str = typer.Option("", help="Short biography"),
) -> None:
    """Register an author in the local Authors registry."""
    try:
        author = _authors().create(
            AuthorCreate(
                first_name=first_name,
                last_name=last_name,
                email=email,
                specialization=specialization,
                biography=biography,
            )
        )
    except EditorialError as e:
        raise _fail(e) from e
    typer.echo(f"Created author {author.id} ({author.full_name})")


@app.command()
def list_authors(page: int = 1, limit: int = 10) -> None:
    """List authors in the local Authors registry."""
    try:
        result = _authors().list_authors(page, limit)
    except EditorialError as e:
        raise _fail(e) from e
    for author in result.items:
        typer.echo(f"{author.id}  {author.full_name:<30} {author.email}")
    typer.echo(f"page {result.page}/{max(result.pages, 1)} ({result.total} authors)")


@app.command()
def create_publication(
    title: str,
    content: str,
    author_id: str,
    abstract: str = typer.Option("", help="Abstract text"),
    keywords: str = typer.Option("", help="Comma-separated keywords"),
) -> None:
    """Create a DRAFT publication after verifying the author remotely."""
    data = PublicationCreate(
        title=title,
        content=content,
        author_id=author_id,
        abstract_text=abstract,
        keywords=[k.strip() for k in keywords.split(",") if k.strip()],
    )
    pub = _run_workflow(lambda wf: wf.create(data))
    _echo_publication(pub)


@app.command()
def show_publication(
    publication_id: str,
    include_author: bool = typer.Option(True, help="Fetch the live author record as well"),
) -> None:
    """Show one publication."""
    view = _run_workflow(lambda wf: wf.get(publication_id, include_author))
    _echo_json(view.model_dump(mode="json", by_alias=True))


@app.command()
def list_publications(
    page: int = 1,
    limit: int = 10,
    status: PublicationStatus | None = typer.Option(None, case_sensitive=False),
) -> None:
    """List publications, newest first."""
    result = _run_workflow(lambda wf: wf.list_publications(page, limit, status))
    for pub in result.items:
        typer.echo(f"{pub.id}  {pub.status.value:<10} {pub.title}")
    typer.echo(f"page {result.page}/{max(result.pages, 1)} ({result.total} publications)")


@app.command()
def change_status(
    publication_id: str,
    status: PublicationStatus = typer.Argument(..., case_sensitive=False),
    notes: str | None = typer.Option(None, "--notes", help="Review notes"),
) -> None:
    """Move a publication to another editorial status."""
    pub = _run_workflow(
        lambda wf: wf.change_status(publication_id, StatusChange(status=status, review_notes=notes))
    )
    typer.echo(f"{pub.id} is now {pub.status.value} (reviews: {pub.review_count})")


@app.command()
def delete_publication(publication_id: str) -> None:
    """Delete a publication that has not been published."""
    _run_workflow(lambda wf: wf.delete(publication_id))
    typer.echo(f"Deleted {publication_id}")


@app.command()
def stats() -> None:
    """Count publications per status."""
    counts = _run_workflow(lambda wf: wf.statistics())
    for status, count in counts.items():
        typer.echo(f"{status:<10} {count}")


@app.command()
def check_authors() -> None:
    """Check the Authors service health endpoint once."""

    async def check() -> bool:
        async with AuthorsClient.from_config() as client:
            return await client.health_check()

    healthy = asyncio.run(check())
    typer.echo(f"{get_config().remote.base_url}: {'healthy' if healthy else 'unreachable'}")
    if not healthy:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
