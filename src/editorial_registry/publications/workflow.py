"""Publication use cases: creation with author verification, edits and status changes.

Store calls are plain SQLite and run in a worker thread so concurrent requests
never queue behind each other's disk or network waits.
"""

import asyncio

from ..authors.client import AuthorsClient
from ..core.errors import (
    IllegalTransitionError,
    NotFoundError,
    RemoteUnavailableError,
    ValidationError,
)
from ..core.models import (
    AuthorData,
    Page,
    Publication,
    PublicationCreate,
    PublicationStatus,
    PublicationUpdate,
    PublicationView,
    StatusChange,
)
from ..core.store import PublicationStore
from ..utils.log import get_logger
from .state_machine import StatusStateMachine
from .validators import TransitionValidationFacade

log = get_logger(__name__)


def _blank(value: str | None) -> bool:
    return not value or not value.strip()


def _check_page(page: int, limit: int) -> None:
    if page < 1 or limit < 1:
        raise ValidationError("Page and limit must be positive numbers")


class PublicationWorkflow:
    def __init__(
        self,
        authors: AuthorsClient,
        store: PublicationStore,
        validation: TransitionValidationFacade | None = None,
        state_machine: StatusStateMachine | None = None,
    ) -> None:
        self.authors = authors
        self.store = store
        self.validation = validation or TransitionValidationFacade()
        self.state_machine = state_machine or StatusStateMachine()

    async def _load(self, publication_id: str) -> Publication:
        pub = await asyncio.to_thread(self.store.get_by_id, publication_id)
        if pub is None:
            raise NotFoundError(f"Publication with id {publication_id} not found")
        return pub

    async def _fetch_author(self, author_id: str) -> AuthorData | None:
        """Author details for display or snapshots; never fails the calling operation."""
        try:
            author = await self.authors.fetch(author_id)
        except RemoteUnavailableError as e:
            log.warning("author_enrichment_unavailable", author_id=author_id, error=e.message)
            return None
        if author is None:
            log.warning("author_enrichment_unavailable", author_id=author_id)
        return author

    async def create(self, data: PublicationCreate) -> Publication:
        """
        Create a DRAFT publication for an author confirmed by the Authors service.

        The author snapshot (name, email) is best effort: if the detail fetch
        yields nothing the publication is still created, without it.

        Raises:
            ValidationError: title, content or author_id is missing.
            NotFoundError: the author could not be confirmed to exist.
        """
        if _blank(data.title) or _blank(data.content) or _blank(data.author_id):
            raise ValidationError("title, content, and author_id are required")
        author_id = data.author_id.strip()

        if not await self.authors.exists(author_id):
            log.info("publication_create_author_missing", author_id=author_id)
            raise NotFoundError(f"Author with id {author_id} not found")

        author = await self._fetch_author(author_id)

        pub = Publication(
            title=data.title,
            content=data.content,
            author_id=author_id,
            abstract_text=data.abstract_text or "",
            keywords=data.keywords or [],
            status=PublicationStatus.DRAFT,
            author_name=author.full_name if author else None,
            author_email=author.email if author else None,
        )
        await asyncio.to_thread(self.store.insert, pub)
        log.info(
            "publication_created",
            publication_id=pub.id,
            author_id=author_id,
            enriched=author is not None,
        )
        return pub

    async def change_status(self, publication_id: str, change: StatusChange) -> Publication:
        """
        Move a publication to ``change.status``.

        Both gates are evaluated on every call: the content rules for the
        target status and the structural edge check. An unreachable target is
        reported as IllegalTransitionError even when a content rule also
        objects; otherwise the content rule's ValidationError is raised. Nothing
        is written unless both pass.
        """
        pub = await self._load(publication_id)
        target = change.status
        candidate = pub.model_copy(update={"review_notes": change.review_notes})

        rule_error: ValidationError | None = None
        try:
            self.validation.validate_transition(candidate, target)
        except ValidationError as e:
            rule_error = e

        try:
            self.state_machine.ensure_transition(pub.status, target)
        except IllegalTransitionError as illegal:
            log.info(
                "publication_transition_illegal",
                publication_id=publication_id,
                current=pub.status.value,
                requested=target.value,
            )
            raise illegal from rule_error
        if rule_error is not None:
            raise rule_error

        fields: dict[str, object] = {"status": target}
        if not _blank(change.review_notes):
            fields["review_notes"] = change.review_notes
        increments = ["review_count"] if target == PublicationStatus.IN_REVIEW else []

        updated = await asyncio.to_thread(
            self.store.update_fields,
            publication_id,
            fields,
            expected_version=pub.version,
            increments=increments,
        )
        if updated is None:
            raise NotFoundError(f"Publication with id {publication_id} not found")
        log.info(
            "publication_status_changed",
            publication_id=publication_id,
            from_status=pub.status.value,
            to_status=target.value,
            review_count=updated.review_count,
        )
        return updated

    async def update(self, publication_id: str, data: PublicationUpdate) -> Publication:
        """Edit content fields; only allowed while DRAFT or IN_REVIEW."""
        pub = await self._load(publication_id)
        if not pub.can_be_edited():
            raise ValidationError(f"Publication cannot be edited in {pub.status.value} status")

        fields = data.model_dump(exclude_none=True)
        for name in ("title", "content"):
            if name in fields and _blank(fields[name]):
                raise ValidationError(f"{name} cannot be empty")
        if not fields:
            return pub

        updated = await asyncio.to_thread(
            self.store.update_fields, publication_id, fields, expected_version=pub.version
        )
        if updated is None:
            raise NotFoundError(f"Publication with id {publication_id} not found")
        log.info("publication_updated", publication_id=publication_id, fields=sorted(fields))
        return updated

    async def delete(self, publication_id: str) -> None:
        pub = await self._load(publication_id)
        if pub.status == PublicationStatus.PUBLISHED:
            raise ValidationError("Cannot delete published publications")
        deleted = await asyncio.to_thread(
            self.store.delete, publication_id, expected_version=pub.version
        )
        if not deleted:
            raise NotFoundError(f"Publication with id {publication_id} not found")
        log.info("publication_deleted", publication_id=publication_id)

    async def get(self, publication_id: str, include_author: bool = True) -> PublicationView:
        """Return the publication, plus a live author view when the service provides one."""
        pub = await self._load(publication_id)
        author = await self._fetch_author(pub.author_id) if include_author else None
        return PublicationView(publication=pub, author=author)

    async def list_publications(
        self, page: int = 1, limit: int = 10, status: PublicationStatus | None = None
    ) -> Page:
        _check_page(page, limit)
        items, total = await asyncio.to_thread(
            self.store.list_page, (page - 1) * limit, limit, status
        )
        return Page(items=items, total=total, page=page, limit=limit)

    async def list_by_author(self, author_id: str, page: int = 1, limit: int = 10) -> Page:
        _check_page(page, limit)
        if not await self.authors.exists(author_id):
            raise NotFoundError(f"Author with id {author_id} not found")
        items, total = await asyncio.to_thread(
            self.store.list_by_author, author_id, (page - 1) * limit, limit
        )
        return Page(items=items, total=total, page=page, limit=limit)

    async def statistics(self) -> dict[str, int]:
        counts = await asyncio.gather(
            *(asyncio.to_thread(self.store.count_by_status, s) for s in PublicationStatus)
        )
        return {status.value: count for status, count in zip(PublicationStatus, counts, strict=True)}
