from ..core.errors import ConflictError, NotFoundError, ValidationError
from ..core.models import Author, AuthorCreate, AuthorUpdate, Page
from ..core.store import AuthorStore
from ..utils.log import get_logger

log = get_logger(__name__)


def _blank(value: str | None) -> bool:
    return not value or not value.strip()


class AuthorService:
    """Business rules of the Authors registry."""

    def __init__(self, store: AuthorStore) -> None:
        self.store = store

    def create(self, data: AuthorCreate) -> Author:
        if _blank(data.first_name) or _blank(data.last_name) or _blank(data.email):
            raise ValidationError("first_name, last_name, and email are required")
        email = data.email.strip()
        if self.store.get_by_email(email) is not None:
            raise ConflictError(f"Email {email} already exists")

        author = Author(
            first_name=data.first_name.strip(),
            last_name=data.last_name.strip(),
            email=email,
            biography=data.biography or "",
            specialization=data.specialization or "",
        )
        self.store.insert(author)
        log.info("author_created", author_id=author.id)
        return author

    def get(self, author_id: str) -> Author:
        author = self.store.get_by_id(author_id)
        if author is None:
            raise NotFoundError(f"Author with id {author_id} not found")
        return author

    def exists(self, author_id: str) -> bool:
        return self.store.exists(author_id)

    def list_authors(self, page: int = 1, limit: int = 10) -> Page:
        if page < 1 or limit < 1:
            raise ValidationError("Page and limit must be positive numbers")
        items, total = self.store.list_page((page - 1) * limit, limit)
        return Page(items=items, total=total, page=page, limit=limit)

    def update(self, author_id: str, data: AuthorUpdate) -> Author:
        author = self.get(author_id)
        fields = data.model_dump(exclude_none=True)
        for name in ("first_name", "last_name", "email"):
            if name in fields and _blank(fields[name]):
                raise ValidationError(f"{name} cannot be empty")

        new_email = fields.get("email")
        if new_email and new_email != author.email:
            if self.store.get_by_email(new_email) is not None:
                raise ConflictError(f"Email {new_email} already exists")
        if not fields:
            return author

        updated = self.store.update_fields(author_id, fields)
        if updated is None:
            raise NotFoundError(f"Author with id {author_id} not found")
        log.info("author_updated", author_id=author_id, fields=sorted(fields))
        return updated

    def delete(self, author_id: str) -> None:
        self.get(author_id)
        if not self.store.delete(author_id):
            raise NotFoundError(f"Author with id {author_id} not found")
        log.info("author_deleted", author_id=author_id)
