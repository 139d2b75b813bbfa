"""
Remote persistence over the todo HTTP API.

TodoApiClient is the transport: a persistent httpx.AsyncClient with a request
timeout and a small retry policy (linear backoff, transport failures only).
ApiRepository puts an in-memory cache in front of it and implements the
Repository contract.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_incrementing

from .errors import (
    ConflictError,
    NotFoundError,
    QuotaExceededError,
    StorageCorruptionError,
    StorageError,
    StorageUnavailableError,
    TodoAppError,
    ValidationError,
)
from .models import Todo, TodoRecord
from .repositories import Repository, not_found, todo_from_record

logger = logging.getLogger(__name__)

# Retry constants
DEFAULT_TIMEOUT_SECONDS = 5.0
MAX_RETRY_ATTEMPTS = 3
RETRY_BACKOFF_SECONDS = 1.0

# Largest page the API serves
PAGE_SIZE = 1000


def _todo_path(todo_id: str) -> str:
    # ids are opaque strings; keep "/" and "?" inside the path segment
    return f"/todos/{quote(todo_id, safe='')}"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        for key in ("message", "detail", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return response.reason_phrase


def _map_status(response: httpx.Response, method: str, path: str) -> TodoAppError:
    status = response.status_code
    message = _error_message(response)
    details = {"status": status, "method": method, "path": path}
    if status == 404:
        return NotFoundError(message, details)
    if status in (400, 422):
        return ValidationError(message, details)
    if status == 409:
        return ConflictError(message, details)
    if status == 507:
        return QuotaExceededError(message, details)
    if status >= 500:
        return StorageUnavailableError(f"Server error {status}: {message}", details)
    return StorageError(f"HTTP error {status}: {message}", details)


# PUBLIC_INTERFACE
class TodoApiClient:
    """
    Async client for the todo REST API.

    Attributes:
        base_url: API root, e.g. 'http://localhost:8000/api/v1'
        timeout: request timeout in seconds
        max_attempts: attempts per request on transport failures
        backoff: base delay; attempt n waits n * backoff seconds
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_attempts: int = MAX_RETRY_ATTEMPTS,
        backoff: float = RETRY_BACKOFF_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff = max(0.0, backoff)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        logger.debug("TodoApiClient initialized: base_url=%s timeout=%ss", self.base_url, self.timeout)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
        return self._client

    @property
    def is_closed(self) -> bool:
        """True when no open HTTP client is held."""
        return self._client is None or self._client.is_closed

    async def close(self) -> None:
        """Close the HTTP client and release connections."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = await self._get_client()
        logger.debug("%s %s", method, path)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_incrementing(start=self.backoff, increment=self.backoff),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    response = await client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.error("%s %s failed after %d attempts: %s", method, path, self.max_attempts, e)
            raise StorageUnavailableError(
                f"Todo API is unreachable: {e}",
                {"method": method, "path": path, "attempts": self.max_attempts},
            ) from e

        if response.is_error:
            error = _map_status(response, method, path)
            if response.status_code != 404:
                logger.error("%s %s returned %s: %s", method, path, response.status_code, error.message)
            raise error
        return response

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise StorageCorruptionError(
                f"Invalid JSON from todo API: {e}", {"url": str(response.request.url)}
            ) from e

    async def get_todo(self, todo_id: str) -> Dict[str, Any]:
        return self._json(await self._request("GET", _todo_path(todo_id)))

    async def list_todos(self) -> List[Dict[str, Any]]:
        """Fetch every todo, following offset pagination."""
        items: List[Dict[str, Any]] = []
        offset = 0
        while True:
            page = self._json(
                await self._request(
                    "GET",
                    "/todos",
                    params={"limit": PAGE_SIZE, "offset": offset, "sort": "created_at"},
                )
            )
            if not isinstance(page, dict) or not isinstance(page.get("items"), list):
                raise StorageCorruptionError("Unexpected list response from todo API")
            batch = page["items"]
            items.extend(batch)
            offset += len(batch)
            if not batch or offset >= int(page.get("total", 0)):
                return items

    async def put_todo(self, record: TodoRecord) -> Dict[str, Any]:
        return self._json(await self._request("PUT", _todo_path(record["id"]), json=dict(record)))

    async def delete_todo(self, todo_id: str) -> None:
        await self._request("DELETE", _todo_path(todo_id))

    async def clear_todos(self) -> None:
        await self._request("DELETE", "/todos")

    async def count_todos(self) -> int:
        body = self._json(await self._request("GET", "/todos/count"))
        try:
            return int(body["count"])
        except (KeyError, TypeError, ValueError) as e:
            raise StorageCorruptionError("Unexpected count response from todo API") from e


# PUBLIC_INTERFACE
class ApiRepository(Repository):
    """
    Repository backed by the remote todo API with an in-memory cache.

    Reads are served from the cache when possible; writes go to the API first
    and update the cache only once the API accepted them. The cache does not
    see writes made by other clients; call invalidate() or reload() to refresh.
    """

    name = "api"

    def __init__(self, client: TodoApiClient) -> None:
        self._client = client
        self._cache: Dict[str, Todo] = {}
        self._complete = False

    def invalidate(self) -> None:
        """Drop every cached todo."""
        self._cache.clear()
        self._complete = False

    async def reload(self) -> List[Todo]:
        """Invalidate the cache and refill it from the API."""
        self.invalidate()
        return await self.find_all()

    async def close(self) -> None:
        await self._client.close()

    async def find_by_id(self, todo_id: str) -> Optional[Todo]:
        cached = self._cache.get(todo_id)
        if cached is not None:
            return cached
        if self._complete:
            return None
        try:
            record = await self._client.get_todo(todo_id)
        except NotFoundError:
            logger.debug("Todo %s not found on remote", todo_id)
            return None
        todo = todo_from_record(record, self.name)
        self._cache[todo.id] = todo
        return todo

    async def find_all(self) -> List[Todo]:
        if self._complete:
            return list(self._cache.values())
        records = await self._client.list_todos()
        todos = [todo_from_record(r, self.name) for r in records]
        self._cache = {t.id: t for t in todos}
        self._complete = True
        logger.debug("Loaded %d todos from remote", len(todos))
        return todos

    async def save(self, todo: Todo) -> None:
        await self._client.put_todo(todo.to_json())
        self._cache[todo.id] = todo
        logger.info("Todo %s saved to remote", todo.id)

    async def remove(self, todo_id: str) -> None:
        try:
            await self._client.delete_todo(todo_id)
        except NotFoundError as e:
            self._cache.pop(todo_id, None)
            raise not_found(todo_id) from e
        self._cache.pop(todo_id, None)
        logger.info("Todo %s removed from remote", todo_id)

    async def clear(self) -> None:
        await self._client.clear_todos()
        self._cache.clear()
        self._complete = True

    async def count(self) -> int:
        if self._complete:
            return len(self._cache)
        return await self._client.count_todos()
