import json
import sqlite3
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..utils.log import get_logger
from .config import get_config
from .errors import ConflictError
from .models import Author, Publication, PublicationStatus, utcnow

log = get_logger(__name__)


CREATE_PUBLICATIONS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS publications (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    abstract_text TEXT NOT NULL DEFAULT '',
    keywords TEXT NOT NULL DEFAULT '[]',
    status TEXT NOT NULL,
    author_id TEXT NOT NULL,
    author_name TEXT,
    author_email TEXT,
    review_notes TEXT,
    review_count INTEGER NOT NULL DEFAULT 0,
    is_visible INTEGER NOT NULL DEFAULT 1,
    version INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    CHECK (status IN ('DRAFT', 'IN_REVIEW', 'APPROVED', 'PUBLISHED', 'REJECTED'))
);
"""

CREATE_AUTHORS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS authors (
    id TEXT PRIMARY KEY,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    biography TEXT NOT NULL DEFAULT '',
    specialization TEXT NOT NULL DEFAULT '',
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

CREATE_PUBLICATION_INDEXES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_publications_status ON publications(status);",
    "CREATE INDEX IF NOT EXISTS idx_publications_author_id ON publications(author_id);",
    "CREATE INDEX IF NOT EXISTS idx_publications_created_at ON publications(created_at);",
]

# Columns a partial update may touch; everything else is immutable or managed here
_PUBLICATION_UPDATABLE = frozenset(
    {"title", "content", "abstract_text", "keywords", "status", "review_notes", "is_visible"}
)
_PUBLICATION_COUNTERS = frozenset({"review_count"})
_AUTHOR_UPDATABLE = frozenset(
    {"first_name", "last_name", "email", "biography", "specialization", "is_active"}
)


@contextmanager
def get_conn(db_path: Path) -> Generator[sqlite3.Connection, None, None]:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        conn.execute("PRAGMA journal_mode=DELETE")
        conn.execute("PRAGMA foreign_keys=ON")
        conn.execute("PRAGMA synchronous=FULL")
        conn.execute("PRAGMA temp_store=MEMORY")
        conn.execute("PRAGMA busy_timeout=5000")
        yield conn
        conn.commit()
    finally:
        conn.close()


def _to_db(column: str, value: Any) -> Any:
    if column == "keywords":
        return json.dumps(list(value or []))
    if isinstance(value, bool):
        return int(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if isinstance(value, PublicationStatus):
        return value.value
    return value


def _rows_to_dicts(cur: sqlite3.Cursor) -> list[dict[str, Any]]:
    cols = [desc[0] for desc in cur.description]
    return [dict(zip(cols, row, strict=False)) for row in cur.fetchall()]


def _publication_from_row(data: dict[str, Any]) -> Publication:
    data["keywords"] = json.loads(data["keywords"] or "[]")
    return Publication(**data)


class PublicationStore:
    """SQLite-backed keyed store for publications.

    Every mutating method is a single statement so no partially written row is
    ever visible to another connection.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or get_config().publications_db_path

    def init_db(self) -> None:
        log.info("initializing_publications_database", path=str(self.db_path))
        with get_conn(self.db_path) as conn:
            conn.execute(CREATE_PUBLICATIONS_TABLE_SQL)
            for index_sql in CREATE_PUBLICATION_INDEXES_SQL:
                conn.execute(index_sql)
        log.info("publications_database_initialized", path=str(self.db_path))

    def insert(self, pub: Publication) -> Publication:
        with get_conn(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO publications (
                    id,
                    title,
                    content,
                    abstract_text,
                    keywords,
                    status,
                    author_id,
                    author_name,
                    author_email,
                    review_notes,
                    review_count,
                    is_visible,
                    version,
                    created_at,
                    updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    pub.id,
                    pub.title,
                    pub.content,
                    pub.abstract_text,
                    json.dumps(pub.keywords),
                    pub.status.value,
                    pub.author_id,
                    pub.author_name,
                    pub.author_email,
                    pub.review_notes,
                    pub.review_count,
                    int(pub.is_visible),
                    pub.version,
                    pub.created_at.isoformat(),
                    pub.updated_at.isoformat(),
                ),
            )
        log.debug("publication_inserted", publication_id=pub.id, author_id=pub.author_id)
        return pub

    def get_by_id(self, publication_id: str) -> Publication | None:
        with get_conn(self.db_path) as conn:
            cur = conn.execute("SELECT * FROM publications WHERE id = ?", (publication_id,))
            rows = _rows_to_dicts(cur)
        return _publication_from_row(rows[0]) if rows else None

    def update_fields(
        self,
        publication_id: str,
        fields: dict[str, Any],
        *,
        expected_version: int | None = None,
        increments: Iterable[str] = (),
    ) -> Publication | None:
        """
        Apply a partial update as one UPDATE statement.

        ``updated_at`` and ``version`` are always bumped. Columns named in
        ``increments`` are incremented in SQL (``col = col + 1``) in the same
        statement.

        Returns:
            The updated publication, or None if no row has this id.

        Raises:
            ConflictError: ``expected_version`` was given and the row has moved on.
        """
        unknown = set(fields) - _PUBLICATION_UPDATABLE
        increments = list(increments)
        unknown |= set(increments) - _PUBLICATION_COUNTERS
        if unknown:
            raise ValueError(f"Unsupported publication fields: {sorted(unknown)}")

        assignments = [f"{col} = ?" for col in fields]
        params: list[Any] = [_to_db(col, val) for col, val in fields.items()]
        assignments.extend(f"{col} = {col} + 1" for col in increments)
        assignments.append("updated_at = ?")
        params.append(utcnow().isoformat())
        assignments.append("version = version + 1")

        sql = f"UPDATE publications SET {', '.join(assignments)} WHERE id = ?"
        params.append(publication_id)
        if expected_version is not None:
            sql += " AND version = ?"
            params.append(expected_version)

        with get_conn(self.db_path) as conn:
            cur = conn.execute(sql, params)
            if cur.rowcount == 0:
                row = conn.execute(
                    "SELECT version FROM publications WHERE id = ?", (publication_id,)
                ).fetchone()
                if row is None:
                    return None
                log.warning(
                    "publication_version_conflict",
                    publication_id=publication_id,
                    expected_version=expected_version,
                    actual_version=row[0],
                )
                raise ConflictError(
                    f"Publication {publication_id} was modified concurrently; reload and retry"
                )
            cur = conn.execute("SELECT * FROM publications WHERE id = ?", (publication_id,))
            rows = _rows_to_dicts(cur)
        log.debug("publication_updated", publication_id=publication_id, fields=sorted(fields))
        return _publication_from_row(rows[0])

    def delete(self, publication_id: str, *, expected_version: int | None = None) -> bool:
        """Delete by id; with ``expected_version`` a moved-on row raises ConflictError."""
        sql, params = "DELETE FROM publications WHERE id = ?", [publication_id]
        if expected_version is not None:
            sql += " AND version = ?"
            params.append(expected_version)
        with get_conn(self.db_path) as conn:
            cur = conn.execute(sql, params)
            deleted = cur.rowcount > 0
            if not deleted and expected_version is not None:
                still_there = conn.execute(
                    "SELECT 1 FROM publications WHERE id = ?", (publication_id,)
                ).fetchone()
                if still_there:
                    raise ConflictError(
                        f"Publication {publication_id} was modified concurrently; reload and retry"
                    )
        log.debug("publication_delete", publication_id=publication_id, deleted=deleted)
        return deleted

    def count_by_status(self, status: PublicationStatus) -> int:
        with get_conn(self.db_path) as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM publications WHERE status = ?", (status.value,)
            ).fetchone()
        return int(row[0])

    def list_page(
        self,
        offset: int = 0,
        limit: int = 10,
        status: PublicationStatus | None = None,
    ) -> tuple[list[Publication], int]:
        where, params = "", []
        if status is not None:
            where, params = " WHERE status = ?", [status.value]
        with get_conn(self.db_path) as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM publications{where}", params).fetchone()[0]
            cur = conn.execute(
                f"SELECT * FROM publications{where} ORDER BY created_at DESC LIMIT ? OFFSET ?",
                [*params, limit, offset],
            )
            rows = _rows_to_dicts(cur)
        return [_publication_from_row(r) for r in rows], int(total)

    def list_by_author(
        self, author_id: str, offset: int = 0, limit: int = 10
    ) -> tuple[list[Publication], int]:
        with get_conn(self.db_path) as conn:
            total = conn.execute(
                "SELECT COUNT(*) FROM publications WHERE author_id = ?", (author_id,)
            ).fetchone()[0]
            cur = conn.execute(
                """
                SELECT * FROM publications
                WHERE author_id = ?
                ORDER BY created_at DESC
                LIMIT ? OFFSET ?
                """,
                (author_id, limit, offset),
            )
            rows = _rows_to_dicts(cur)
        return [_publication_from_row(r) for r in rows], int(total)


class AuthorStore:
    """SQLite-backed store for the Authors registry."""

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or get_config().authors_db_path

    def init_db(self) -> None:
        log.info("initializing_authors_database", path=str(self.db_path))
        with get_conn(self.db_path) as conn:
            conn.execute(CREATE_AUTHORS_TABLE_SQL)
        log.info("authors_database_initialized", path=str(self.db_path))

    def insert(self, author: Author) -> Author:
        try:
            with get_conn(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO authors (
                        id,
                        first_name,
                        last_name,
                        email,
                        biography,
                        specialization,
                        is_active,
                        created_at,
                        updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        author.id,
                        author.first_name,
                        author.last_name,
                        author.email,
                        author.biography,
                        author.specialization,
                        int(author.is_active),
                        author.created_at.isoformat(),
                        author.updated_at.isoformat(),
                    ),
                )
        except sqlite3.IntegrityError as e:
            if "UNIQUE constraint failed: authors.email" in str(e):
                raise ConflictError(f"Email {author.email} already exists") from e
            raise
        log.debug("author_inserted", author_id=author.id)
        return author

    def get_by_id(self, author_id: str) -> Author | None:
        with get_conn(self.db_path) as conn:
            rows = _rows_to_dicts(conn.execute("SELECT * FROM authors WHERE id = ?", (author_id,)))
        return Author(**rows[0]) if rows else None

    def get_by_email(self, email: str) -> Author | None:
        with get_conn(self.db_path) as conn:
            rows = _rows_to_dicts(conn.execute("SELECT * FROM authors WHERE email = ?", (email,)))
        return Author(**rows[0]) if rows else None

    def exists(self, author_id: str) -> bool:
        with get_conn(self.db_path) as conn:
            row = conn.execute("SELECT 1 FROM authors WHERE id = ?", (author_id,)).fetchone()
        return row is not None

    def update_fields(self, author_id: str, fields: dict[str, Any]) -> Author | None:
        unknown = set(fields) - _AUTHOR_UPDATABLE
        if unknown:
            raise ValueError(f"Unsupported author fields: {sorted(unknown)}")
        assignments = [f"{col} = ?" for col in fields] + ["updated_at = ?"]
        params = [_to_db(col, val) for col, val in fields.items()]
        params += [utcnow().isoformat(), author_id]
        try:
            with get_conn(self.db_path) as conn:
                cur = conn.execute(
                    f"UPDATE authors SET {', '.join(assignments)} WHERE id = ?", params
                )
                if cur.rowcount == 0:
                    return None
                rows = _rows_to_dicts(
                    conn.execute("SELECT * FROM authors WHERE id = ?", (author_id,))
                )
        except sqlite3.IntegrityError as e:
            if "UNIQUE constraint failed: authors.email" in str(e):
                raise ConflictError(f"Email {fields.get('email')} already exists") from e
            raise
        return Author(**rows[0])

    def delete(self, author_id: str) -> bool:
        with get_conn(self.db_path) as conn:
            cur = conn.execute("DELETE FROM authors WHERE id = ?", (author_id,))
            return cur.rowcount > 0

    def list_page(self, offset: int = 0, limit: int = 10) -> tuple[list[Author], int]:
        with get_conn(self.db_path) as conn:
            total = conn.execute("SELECT COUNT(*) FROM authors").fetchone()[0]
            rows = _rows_to_dicts(
                conn.execute(
                    "SELECT * FROM authors ORDER BY created_at DESC LIMIT ? OFFSET ?",
                    (limit, offset),
                )
            )
        return [Author(**r) for r in rows], int(total)
