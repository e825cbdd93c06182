"""FundSync - Storyblok Management API Client.

Handles authentication, retry logic, rate limiting, and maps every response
onto a tagged ``StoreResult``.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from fundsync.config import settings
from fundsync.connectors.storyblok.base import BaseStore
from fundsync.core.logging import get_logger
from fundsync.models.store_models import StoreResult, StoreResultKind, TreeNode

logger = get_logger("storyblok.client")

MAX_RETRIES = 3
RETRY_BASE_DELAY = 2  # seconds


class StoryblokAPIError(Exception):
    """Raised when the Storyblok Management API returns an error."""

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        kind: StoreResultKind = StoreResultKind.FATAL,
    ):
        self.status_code = status_code
        self.kind = kind
        super().__init__(message)


def classify_status(status_code: int) -> StoreResultKind:
    """Map an HTTP status onto the store result taxonomy."""
    if status_code == 404:
        return StoreResultKind.NOT_FOUND
    if status_code in (409, 422):
        return StoreResultKind.CONFLICT
    if status_code == 429 or status_code >= 500:
        return StoreResultKind.TRANSIENT
    return StoreResultKind.FATAL


def _error_message(resp: httpx.Response) -> str:
    """Pull a readable message out of a Storyblok error body."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        if body.get("error"):
            return str(body["error"])
        # Validation errors come back as {"slug": ["has already been taken"]}
        return "; ".join(
            f"{field}: {', '.join(map(str, msgs)) if isinstance(msgs, list) else msgs}"
            for field, msgs in body.items()
        )
    if isinstance(body, list):
        return "; ".join(map(str, body))
    return str(body)


class StoryblokClient(BaseStore):
    """Async HTTP client for the Storyblok Management API."""

    def __init__(
        self,
        access_token: str | None = None,
        space_id: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token or settings.storyblok_access_token
        self.space_id = space_id or settings.storyblok_space_id
        self.base_url = (base_url or settings.storyblok_base_url).rstrip("/")
        self.timeout = timeout or settings.store_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def stories_url(self) -> str:
        return f"{self.base_url}/spaces/{self.space_id}/stories"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={
                    "Authorization": self.access_token,
                    "Content-Type": "application/json",
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ── Core Request Method ──

    async def _request(
        self,
        method: str,
        url: str,
        params: Dict[str, Any] | None = None,
        json: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        """Make a request with retry + rate-limit handling."""
        client = await self._get_client()

        for attempt in range(1, MAX_RETRIES + 1):
            try:
                resp = await client.request(method, url, params=params, json=json)

                # Rate limited
                if resp.status_code == 429:
                    if attempt == MAX_RETRIES:
                        break
                    wait = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                    logger.warning(
                        f"Rate limited (429). Retrying in {wait}s (attempt {attempt}/{MAX_RETRIES})"
                    )
                    await asyncio.sleep(wait)
                    continue

                resp.raise_for_status()
                if not resp.content:
                    return {}
                return resp.json()

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if attempt < MAX_RETRIES and status >= 500:
                    wait = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                    logger.warning(f"Server error {status}. Retrying in {wait}s")
                    await asyncio.sleep(wait)
                    continue

                raise StoryblokAPIError(
                    _error_message(e.response), status, classify_status(status)
                ) from e

            except httpx.RequestError as e:
                if attempt < MAX_RETRIES:
                    wait = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                    logger.warning(f"Request error: {e!r}. Retrying in {wait}s")
                    await asyncio.sleep(wait)
                    continue
                raise StoryblokAPIError(
                    f"Connection failed after {MAX_RETRIES} retries: {e!r}",
                    kind=StoreResultKind.TRANSIENT,
                ) from e

        raise StoryblokAPIError(
            "Max retries exhausted", status_code=429, kind=StoreResultKind.TRANSIENT
        )

    async def _call(
        self,
        action: str,
        request: Callable[[], Awaitable[Dict[str, Any]]],
        on_success: Callable[[Dict[str, Any]], StoreResult],
    ) -> StoreResult:
        """Run a request and fold its outcome into a ``StoreResult``."""
        started = time.monotonic()
        try:
            body = await request()
        except StoryblokAPIError as e:
            level = "info" if e.kind == StoreResultKind.NOT_FOUND else "warning"
            getattr(logger, level)(
                f"Storyblok {action} → {e.kind.value}: {e}",
                extra={"status_code": e.status_code},
            )
            return StoreResult(kind=e.kind, status_code=e.status_code, detail=str(e))
        logger.debug(
            f"Storyblok {action} ok",
            extra={"duration_ms": round((time.monotonic() - started) * 1000, 1)},
        )
        return on_success(body)

    @staticmethod
    def _story_result(body: Dict[str, Any]) -> StoreResult:
        story = body.get("story")
        if not story:
            return StoreResult(kind=StoreResultKind.OK)
        return StoreResult.found(TreeNode.model_validate(story))

    # ── Lookups ──

    async def find_by_slug(self, full_slug: str) -> StoreResult:
        def first(body: Dict[str, Any]) -> StoreResult:
            stories = body.get("stories") or []
            for story in stories:
                node = TreeNode.model_validate(story)
                if node.same_entity(full_slug):
                    return StoreResult.found(node)
            return StoreResult.missing(f"No story at '{full_slug}'")

        return await self._call(
            f"find {full_slug}",
            lambda: self._request(
                "GET",
                self.stories_url,
                params={"with_slug": full_slug, "story_only": 1},
            ),
            first,
        )

    async def list_by_prefix(
        self,
        prefix: str,
        is_folder: Optional[bool] = None,
        per_page: int = 100,
    ) -> StoreResult:
        params: Dict[str, Any] = {"starts_with": prefix, "per_page": per_page}
        if is_folder is not None:
            params["is_folder"] = 1 if is_folder else 0

        return await self._call(
            f"list {prefix}",
            lambda: self._request("GET", self.stories_url, params=params),
            lambda body: StoreResult.listing(
                [TreeNode.model_validate(s) for s in body.get("stories") or []]
            ),
        )

    async def get_story(self, story_id: int) -> StoreResult:
        return await self._call(
            f"get {story_id}",
            lambda: self._request("GET", f"{self.stories_url}/{story_id}"),
            self._story_result,
        )

    # ── Mutations ──

    async def create_story(self, story: Dict[str, Any]) -> StoreResult:
        return await self._call(
            f"create {story.get('slug')}",
            lambda: self._request("POST", self.stories_url, json={"story": story}),
            self._story_result,
        )

    async def update_story(self, story_id: int, story: Dict[str, Any]) -> StoreResult:
        return await self._call(
            f"update {story_id}",
            lambda: self._request(
                "PUT",
                f"{self.stories_url}/{story_id}",
                json={"story": story, "force_update": 1},
            ),
            self._story_result,
        )

    async def publish(self, story_id: int) -> StoreResult:
        return await self._call(
            f"publish {story_id}",
            lambda: self._request("GET", f"{self.stories_url}/{story_id}/publish"),
            self._story_result,
        )

    async def unpublish(self, story_id: int) -> StoreResult:
        return await self._call(
            f"unpublish {story_id}",
            lambda: self._request("GET", f"{self.stories_url}/{story_id}/unpublish"),
            self._story_result,
        )
