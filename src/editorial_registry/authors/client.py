"""HTTP client for the Authors service.

The publications registry only ever reads authors: it asks whether one exists
and fetches the fields it snapshots onto a new publication. Network trouble is
retried with exponential backoff; once retries run out the failure is reported
as "absent" (or raised, under the ``raise`` unreachable policy) instead of
leaking transport exceptions to callers.
"""

from urllib.parse import quote

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..core.config import RemoteSettings, get_config
from ..core.errors import RemoteUnavailableError, TransientRemoteError
from ..core.models import AuthorData
from ..utils.http import SleepFn, build_retrying, get_client, is_retryable_status
from ..utils.log import get_logger

log = get_logger(__name__)


class AuthorsClient:
    """Read access to the Authors service with bounded retries.

    One instance holds one connection configuration. The underlying
    ``httpx.AsyncClient`` is created on first use and reused until
    :meth:`aclose`.
    """

    def __init__(
        self,
        settings: RemoteSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFn | None = None,
    ) -> None:
        self.settings = settings or get_config().remote
        self._transport = transport
        self._sleep = sleep
        self._http: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls) -> "AuthorsClient":
        return cls(get_config().remote)

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = get_client(
                self.settings.base_url,
                timeout=self.settings.timeout_ms / 1000,
                transport=self._transport,
            )
            log.debug("authors_http_client_created", base_url=self.settings.base_url)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> "AuthorsClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def exists(self, author_id: str) -> bool:
        """True only when the service confirms the author with a 200."""
        resp = await self._lookup_with_retry(author_id, operation="exists")
        found = resp is not None
        log.info("author_exists_checked", author_id=author_id, exists=found)
        return found

    async def fetch(self, author_id: str) -> AuthorData | None:
        """Return the author's fields, or None when absent, unreachable or malformed."""
        resp = await self._lookup_with_retry(author_id, operation="fetch")
        if resp is None:
            return None
        try:
            payload = resp.json()
            data = payload.get("data") if isinstance(payload, dict) else None
            author = AuthorData.model_validate(data)
        except (ValueError, PydanticValidationError) as e:
            log.error(
                "author_payload_invalid",
                author_id=author_id,
                error=str(e),
                response_text=resp.text[:500] if resp.text else None,
            )
            return None
        log.info("author_fetched", author_id=author_id)
        return author

    async def health_check(self) -> bool:
        """Single request to ``/health``, no retries; for liveness only."""
        try:
            resp = await self.http.get(
                "/health", timeout=self.settings.health_timeout_ms / 1000
            )
        except httpx.HTTPError as e:
            log.error("authors_health_check_failed", error=str(e), error_type=type(e).__name__)
            return False
        healthy = resp.status_code == 200
        if not healthy:
            log.warning("authors_health_check_unhealthy", status=resp.status_code)
        return healthy

    async def _lookup_with_retry(self, author_id: str, operation: str) -> httpx.Response | None:
        retrying = build_retrying(
            max_attempts=self.settings.max_attempts,
            base_delay=self.settings.backoff_base_ms / 1000,
            sleep=self._sleep,
        )
        try:
            return await retrying(self._lookup, author_id)
        except TransientRemoteError as e:
            log.error(
                "authors_service_unreachable",
                author_id=author_id,
                operation=operation,
                attempts=self.settings.max_attempts,
                error=str(e),
                policy=self.settings.unreachable_policy,
            )
            if self.settings.unreachable_policy == "raise":
                raise RemoteUnavailableError(
                    f"Authors service unavailable while looking up author {author_id}"
                ) from e
            return None

    async def _lookup(self, author_id: str) -> httpx.Response | None:
        """One attempt at ``GET /authors/{id}``.

        Returns the response on 200 and None on a definitive answer of absence
        (404 or any other non-retryable 4xx). Retryable failures raise
        TransientRemoteError.
        """
        path = f"/authors/{quote(author_id, safe='')}"
        try:
            resp = await self.http.get(path)
        except httpx.RequestError as e:
            log.warning(
                "authors_request_failed",
                author_id=author_id,
                error=str(e) or type(e).__name__,
                error_type=type(e).__name__,
            )
            raise TransientRemoteError(f"{type(e).__name__}: {e}") from e

        if resp.status_code == 200:
            return resp
        if resp.status_code == 404:
            log.debug("author_not_found", author_id=author_id)
            return None
        if is_retryable_status(resp.status_code):
            log.warning("authors_request_retryable_status", author_id=author_id, status=resp.status_code)
            raise TransientRemoteError(
                f"Authors service returned {resp.status_code}", status_code=resp.status_code
            )
        log.warning(
            "authors_request_rejected",
            author_id=author_id,
            status=resp.status_code,
            response_text=resp.text[:500] if resp.text else None,
        )
        return None
