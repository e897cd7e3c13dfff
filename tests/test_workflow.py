"""Tests for PublicationWorkflow: creation, status changes, edits and queries."""

import asyncio

import httpx
import pytest

from editorial_registry.authors.client import AuthorsClient
from editorial_registry.core.config import RemoteSettings
from editorial_registry.core.errors import (
    ConflictError,
    EditorialError,
    IllegalTransitionError,
    NotFoundError,
    RemoteUnavailableError,
    ValidationError,
)
from editorial_registry.core.models import (
    Publication,
    PublicationCreate,
    PublicationUpdate,
    StatusChange,
)
from editorial_registry.core.models import PublicationStatus as S
from editorial_registry.core.store import PublicationStore
from editorial_registry.publications.state_machine import TRANSITIONS, StatusStateMachine
from editorial_registry.publications.workflow import PublicationWorkflow


def change(status: S, notes: str | None = None) -> StatusChange:
    return StatusChange(status=status, review_notes=notes)


class TestCreate:
    """Creation with remote author verification."""

    async def test_creates_draft_with_author_snapshot(
        self, workflow: PublicationWorkflow, pub_store: PublicationStore
    ) -> None:
        pub = await workflow.create(
            PublicationCreate(title="Deep Learning in Medicine", content="...", author_id="A1")
        )
        assert pub.status is S.DRAFT
        assert pub.author_name == "Juan Martinez"
        assert pub.author_email == "juan.martinez@university.edu"
        assert pub.review_count == 0
        assert pub_store.get_by_id(pub.id) is not None

    async def test_unknown_author_is_not_found(
        self, workflow: PublicationWorkflow, pub_store: PublicationStore
    ) -> None:
        with pytest.raises(NotFoundError, match="Author with id A9 not found"):
            await workflow.create(PublicationCreate(title="T", content="C", author_id="A9"))
        assert pub_store.list_page()[1] == 0

    @pytest.mark.parametrize(
        "data",
        [
            {"content": "C", "author_id": "A1"},
            {"title": "  ", "content": "C", "author_id": "A1"},
            {"title": "T", "author_id": "A1"},
            {"title": "T", "content": "C"},
        ],
    )
    async def test_required_fields(
        self, workflow: PublicationWorkflow, fake_authors, data: dict
    ) -> None:
        with pytest.raises(ValidationError, match="required"):
            await workflow.create(PublicationCreate(**data))
        # The remote service is not consulted for invalid input
        assert fake_authors.calls == []

    async def test_snapshot_is_best_effort(
        self, workflow: PublicationWorkflow, fake_authors
    ) -> None:
        fake_authors.fetch_returns_none = True
        pub = await workflow.create(PublicationCreate(title="T", content="C", author_id="A1"))
        assert pub.status is S.DRAFT
        assert pub.author_name is None
        assert pub.author_email is None


class TestChangeStatus:
    """The two gates and what a successful change records."""

    async def test_submit_for_review_counts_reviews(
        self, workflow: PublicationWorkflow, seed
    ) -> None:
        pub = seed(S.DRAFT)
        updated = await workflow.change_status(pub.id, change(S.IN_REVIEW))
        assert updated.status is S.IN_REVIEW
        assert updated.review_count == 1

    async def test_approve_requires_notes_in_request(
        self, workflow: PublicationWorkflow, seed, pub_store: PublicationStore
    ) -> None:
        # Notes already on the record do not count
        pub = seed(S.IN_REVIEW, review_notes="old notes")
        with pytest.raises(ValidationError, match="Review notes are required for approval"):
            await workflow.change_status(pub.id, change(S.APPROVED))
        assert pub_store.get_by_id(pub.id).status is S.IN_REVIEW

        updated = await workflow.change_status(pub.id, change(S.APPROVED, "Great paper"))
        assert updated.status is S.APPROVED
        assert updated.review_notes == "Great paper"

    async def test_blank_notes_keep_stored_notes(
        self, workflow: PublicationWorkflow, seed
    ) -> None:
        pub = seed(S.APPROVED, review_notes="Great paper")
        updated = await workflow.change_status(pub.id, change(S.PUBLISHED, "   "))
        assert updated.status is S.PUBLISHED
        assert updated.review_notes == "Great paper"

    async def test_full_happy_path(self, workflow: PublicationWorkflow) -> None:
        pub = await workflow.create(PublicationCreate(title="T", content="C", author_id="A1"))
        pub = await workflow.change_status(pub.id, change(S.IN_REVIEW))
        pub = await workflow.change_status(pub.id, change(S.APPROVED, "ok"))
        pub = await workflow.change_status(pub.id, change(S.PUBLISHED))
        assert pub.status is S.PUBLISHED
        assert pub.review_count == 1
        assert pub.version == 4

    async def test_rejected_to_published_is_illegal(
        self, workflow: PublicationWorkflow, seed, pub_store: PublicationStore
    ) -> None:
        """Both gates object; the structural one is reported."""
        pub = seed(S.REJECTED)
        with pytest.raises(IllegalTransitionError) as exc_info:
            await workflow.change_status(pub.id, change(S.PUBLISHED))
        assert isinstance(exc_info.value.__cause__, ValidationError)
        assert pub_store.get_by_id(pub.id).status is S.REJECTED

    async def test_resubmission_goes_through_draft(
        self, workflow: PublicationWorkflow, seed
    ) -> None:
        pub = seed(S.IN_REVIEW)
        pub = await workflow.change_status(pub.id, change(S.REJECTED, "Needs more data"))
        assert pub.status is S.REJECTED

        with pytest.raises(IllegalTransitionError):
            await workflow.change_status(pub.id, change(S.IN_REVIEW))

        pub = await workflow.change_status(pub.id, change(S.DRAFT))
        pub = await workflow.change_status(pub.id, change(S.IN_REVIEW))
        assert pub.status is S.IN_REVIEW
        assert pub.review_notes == "Needs more data"
        assert pub.review_count == 1

    async def test_reject_draft_needs_notes(self, workflow: PublicationWorkflow, seed) -> None:
        pub = seed(S.DRAFT)
        with pytest.raises(ValidationError, match="rejection"):
            await workflow.change_status(pub.id, change(S.REJECTED))
        updated = await workflow.change_status(pub.id, change(S.REJECTED, "Out of scope"))
        assert updated.status is S.REJECTED

    async def test_missing_publication(self, workflow: PublicationWorkflow) -> None:
        with pytest.raises(NotFoundError):
            await workflow.change_status("nope", change(S.IN_REVIEW))

    @pytest.mark.parametrize("status", list(S))
    async def test_published_is_terminal(
        self, workflow: PublicationWorkflow, seed, status: S
    ) -> None:
        pub = seed(S.PUBLISHED)
        with pytest.raises(EditorialError):
            await workflow.change_status(pub.id, change(status, "notes"))

    @pytest.mark.parametrize(
        ("current", "target"),
        [(a, b) for a in S for b in S if b not in TRANSITIONS[a]],
    )
    async def test_illegal_edges_never_write(
        self,
        workflow: PublicationWorkflow,
        seed,
        pub_store: PublicationStore,
        current: S,
        target: S,
    ) -> None:
        pub = seed(current)
        with pytest.raises(IllegalTransitionError):
            await workflow.change_status(pub.id, change(target, "notes"))
        stored = pub_store.get_by_id(pub.id)
        assert stored.status is current
        assert stored.version == 1

    async def test_concurrent_changes_on_one_record(
        self, workflow: PublicationWorkflow, seed, pub_store: PublicationStore
    ) -> None:
        pub = seed(S.DRAFT)
        results = await asyncio.gather(
            workflow.change_status(pub.id, change(S.IN_REVIEW)),
            workflow.change_status(pub.id, change(S.IN_REVIEW)),
            return_exceptions=True,
        )
        successes = [r for r in results if isinstance(r, Publication)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], (ConflictError, IllegalTransitionError))

        stored = pub_store.get_by_id(pub.id)
        assert stored.status is S.IN_REVIEW
        assert stored.review_count == 1
        assert stored.version == 2


class TestEditAndDelete:
    """Content edits and deletion gates."""

    @pytest.mark.parametrize("status", [S.DRAFT, S.IN_REVIEW])
    async def test_editable_statuses(self, workflow: PublicationWorkflow, seed, status: S) -> None:
        pub = seed(status)
        updated = await workflow.update(
            pub.id, PublicationUpdate(title="Revised", keywords=["ml"])
        )
        assert updated.title == "Revised"
        assert updated.keywords == ["ml"]
        assert updated.content == pub.content

    @pytest.mark.parametrize("status", [S.APPROVED, S.PUBLISHED, S.REJECTED])
    async def test_locked_statuses(self, workflow: PublicationWorkflow, seed, status: S) -> None:
        pub = seed(status)
        with pytest.raises(ValidationError, match="cannot be edited"):
            await workflow.update(pub.id, PublicationUpdate(title="Revised"))

    async def test_blank_title_refused(self, workflow: PublicationWorkflow, seed) -> None:
        pub = seed()
        with pytest.raises(ValidationError, match="title cannot be empty"):
            await workflow.update(pub.id, PublicationUpdate(title=" "))

    async def test_empty_update_is_a_no_op(
        self, workflow: PublicationWorkflow, seed
    ) -> None:
        pub = seed()
        same = await workflow.update(pub.id, PublicationUpdate())
        assert same.version == 1

    async def test_delete(self, workflow: PublicationWorkflow, seed, pub_store) -> None:
        pub = seed(S.REJECTED)
        await workflow.delete(pub.id)
        assert pub_store.get_by_id(pub.id) is None
        with pytest.raises(NotFoundError):
            await workflow.delete(pub.id)

    async def test_published_cannot_be_deleted(
        self, workflow: PublicationWorkflow, seed, pub_store
    ) -> None:
        pub = seed(S.PUBLISHED)
        with pytest.raises(ValidationError, match="Cannot delete published publications"):
            await workflow.delete(pub.id)
        assert pub_store.get_by_id(pub.id) is not None


class TestQueries:
    """Reads, listings and statistics."""

    async def test_get_with_live_author(
        self, workflow: PublicationWorkflow, seed, fake_authors
    ) -> None:
        pub = seed()
        view = await workflow.get(pub.id)
        assert view.publication.id == pub.id
        assert view.author is not None and view.author.id == "A1"

        fake_authors.calls.clear()
        view = await workflow.get(pub.id, include_author=False)
        assert view.author is None
        assert fake_authors.calls == []

    async def test_get_missing(self, workflow: PublicationWorkflow) -> None:
        with pytest.raises(NotFoundError, match="Publication with id nope not found"):
            await workflow.get("nope")

    async def test_list_pagination(self, workflow: PublicationWorkflow, seed) -> None:
        for i in range(5):
            seed(title=f"p{i}")
        page = await workflow.list_publications(page=2, limit=2)
        assert page.total == 5
        assert page.pages == 3
        assert [p.title for p in page.items] == ["p2", "p1"]

    @pytest.mark.parametrize(("page", "limit"), [(0, 10), (1, 0), (-1, 5)])
    async def test_list_rejects_bad_paging(
        self, workflow: PublicationWorkflow, page: int, limit: int
    ) -> None:
        with pytest.raises(ValidationError):
            await workflow.list_publications(page=page, limit=limit)

    async def test_list_by_author(self, workflow: PublicationWorkflow, seed) -> None:
        seed()
        page = await workflow.list_by_author("A1")
        assert page.total == 1
        with pytest.raises(NotFoundError):
            await workflow.list_by_author("A9")

    async def test_statistics(self, workflow: PublicationWorkflow, seed) -> None:
        seed(S.DRAFT)
        seed(S.DRAFT)
        seed(S.PUBLISHED)
        stats = await workflow.statistics()
        assert stats == {
            "DRAFT": 2,
            "IN_REVIEW": 0,
            "APPROVED": 0,
            "PUBLISHED": 1,
            "REJECTED": 0,
        }


class TestEnrichmentUnderRaisePolicy:
    """Author details stay best effort when the client raises on an unreachable service."""

    @staticmethod
    def flaky_authors(answered: int = 1) -> tuple[AuthorsClient, list[httpx.Request]]:
        """The first ``answered`` lookups succeed, every later one gets a 503."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if len(seen) <= answered:
                return httpx.Response(200, json={"success": True, "data": {"id": "A1"}})
            return httpx.Response(503)

        async def no_sleep(seconds: float) -> None:
            return None

        client = AuthorsClient(
            RemoteSettings(base_url="http://authors.test", unreachable_policy="raise"),
            transport=httpx.MockTransport(handler),
            sleep=no_sleep,
        )
        return client, seen

    async def test_create_without_snapshot(self, pub_store: PublicationStore) -> None:
        client, seen = self.flaky_authors()
        async with client:
            workflow = PublicationWorkflow(client, pub_store)
            pub = await workflow.create(PublicationCreate(title="T", content="C", author_id="A1"))

        assert pub.status is S.DRAFT
        assert pub.author_name is None
        assert pub.author_email is None
        assert pub_store.get_by_id(pub.id) is not None
        # One existence check, then three failed detail attempts
        assert len(seen) == 4

    async def test_get_returns_stored_record(self, pub_store: PublicationStore, seed) -> None:
        pub = seed()
        client, _ = self.flaky_authors(answered=0)
        async with client:
            view = await PublicationWorkflow(client, pub_store).get(pub.id)

        assert view.publication.id == pub.id
        assert view.author is None

    async def test_existence_check_still_raises(self, pub_store: PublicationStore) -> None:
        client, _ = self.flaky_authors(answered=0)
        async with client:
            with pytest.raises(RemoteUnavailableError):
                await PublicationWorkflow(client, pub_store).create(
                    PublicationCreate(title="T", content="C", author_id="A1")
                )
        assert pub_store.list_page()[1] == 0


async def test_visibility_can_be_toggled(workflow: PublicationWorkflow, seed) -> None:
    pub = seed()
    hidden = await workflow.update(pub.id, PublicationUpdate(is_visible=False))
    assert hidden.is_visible is False
    assert hidden.title == pub.title


async def test_structural_gate_uses_the_injected_machine(
    fake_authors, pub_store: PublicationStore, seed
) -> None:
    class RecordingMachine(StatusStateMachine):
        def __init__(self) -> None:
            super().__init__()
            self.checked: list[tuple[S, S]] = []

        def ensure_transition(self, current: S, target: S) -> None:
            self.checked.append((current, target))
            super().ensure_transition(current, target)

    machine = RecordingMachine()
    workflow = PublicationWorkflow(fake_authors, pub_store, state_machine=machine)
    pub = seed(S.APPROVED)

    with pytest.raises(IllegalTransitionError):
        await workflow.change_status(pub.id, change(S.DRAFT))
    await workflow.change_status(pub.id, change(S.PUBLISHED))

    assert machine.checked == [(S.APPROVED, S.DRAFT), (S.APPROVED, S.PUBLISHED)]
