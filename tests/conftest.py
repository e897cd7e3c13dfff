"""Shared fixtures: file-backed stores under tmp_path and an in-memory authors client."""

from pathlib import Path

import pytest

from editorial_registry.core.models import AuthorData, Publication, PublicationStatus
from editorial_registry.core.store import AuthorStore, PublicationStore
from editorial_registry.publications.workflow import PublicationWorkflow


class FakeAuthorsClient:
    """Stands in for AuthorsClient: answers from a dict and records every call."""

    def __init__(self, authors: dict[str, AuthorData] | None = None) -> None:
        self.authors = authors or {}
        self.fetch_returns_none = False
        self.calls: list[tuple[str, str]] = []

    async def exists(self, author_id: str) -> bool:
        self.calls.append(("exists", author_id))
        return author_id in self.authors

    async def fetch(self, author_id: str) -> AuthorData | None:
        self.calls.append(("fetch", author_id))
        if self.fetch_returns_none:
            return None
        return self.authors.get(author_id)

    async def health_check(self) -> bool:
        return True


@pytest.fixture
def author_a1() -> AuthorData:
    return AuthorData(
        id="A1",
        first_name="Juan",
        last_name="Martinez",
        email="juan.martinez@university.edu",
        specialization="AI/ML",
    )


@pytest.fixture
def fake_authors(author_a1: AuthorData) -> FakeAuthorsClient:
    return FakeAuthorsClient({"A1": author_a1})


@pytest.fixture
def pub_store(tmp_path: Path) -> PublicationStore:
    store = PublicationStore(tmp_path / "publications.db")
    store.init_db()
    return store


@pytest.fixture
def author_store(tmp_path: Path) -> AuthorStore:
    store = AuthorStore(tmp_path / "authors.db")
    store.init_db()
    return store


@pytest.fixture
def workflow(fake_authors: FakeAuthorsClient, pub_store: PublicationStore) -> PublicationWorkflow:
    return PublicationWorkflow(fake_authors, pub_store)  # type: ignore[arg-type]


@pytest.fixture
def seed(pub_store: PublicationStore):
    """Insert a publication directly in the given status."""

    def _seed(
        status: PublicationStatus = PublicationStatus.DRAFT,
        *,
        title: str = "Deep Learning in Medicine",
        content: str = "Body text",
        review_notes: str | None = None,
    ) -> Publication:
        pub = Publication(
            title=title,
            content=content,
            author_id="A1",
            author_name="Juan Martinez",
            author_email="juan.martinez@university.edu",
            status=status,
            review_notes=review_notes,
        )
        return pub_store.insert(pub)

    return _seed
