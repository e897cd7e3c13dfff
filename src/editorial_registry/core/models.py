from datetime import UTC, datetime
from enum import StrEnum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid4())


class CamelModel(BaseModel):
    """snake_case in Python, camelCase on the wire; either is accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PublicationStatus(StrEnum):
    DRAFT = "DRAFT"
    IN_REVIEW = "IN_REVIEW"
    APPROVED = "APPROVED"
    PUBLISHED = "PUBLISHED"
    REJECTED = "REJECTED"


# Statuses in which title/content/abstract/keywords may still change
EDITABLE_STATUSES = frozenset({PublicationStatus.DRAFT, PublicationStatus.IN_REVIEW})


class Publication(CamelModel):
    id: str = Field(default_factory=new_id)
    title: str
    content: str
    abstract_text: str = ""
    keywords: list[str] = Field(default_factory=list)
    status: PublicationStatus = PublicationStatus.DRAFT

    # Author reference + point-in-time snapshot taken at creation
    author_id: str
    author_name: str | None = None
    author_email: str | None = None

    # Editorial review
    review_notes: str | None = None
    review_count: int = 0

    is_visible: bool = True
    version: int = 1
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def can_be_edited(self) -> bool:
        return self.status in EDITABLE_STATUSES


class Author(CamelModel):
    id: str = Field(default_factory=new_id)
    first_name: str
    last_name: str
    email: str
    biography: str = ""
    specialization: str = ""
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def role(self) -> str:
        return "AUTHOR"

    def can_publish(self) -> bool:
        return self.is_active


class AuthorData(CamelModel):
    """Author fields as served by the Authors service."""

    id: str
    first_name: str
    last_name: str
    email: str
    specialization: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


# --- Request payloads ---


class PublicationCreate(CamelModel):
    title: str | None = None
    content: str | None = None
    author_id: str | None = None
    abstract_text: str | None = None
    keywords: list[str] | None = None


class PublicationUpdate(CamelModel):
    title: str | None = None
    content: str | None = None
    abstract_text: str | None = None
    keywords: list[str] | None = None
    review_notes: str | None = None
    is_visible: bool | None = None


class StatusChange(CamelModel):
    status: PublicationStatus
    review_notes: str | None = None


class AuthorCreate(CamelModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    biography: str | None = None
    specialization: str | None = None


class AuthorUpdate(CamelModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    biography: str | None = None
    specialization: str | None = None
    is_active: bool | None = None


class PublicationView(CamelModel):
    """A publication together with a live view of its author, when one could be fetched."""

    publication: Publication
    author: AuthorData | None = None


class Page(CamelModel):
    items: list[Publication] | list[Author]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0
