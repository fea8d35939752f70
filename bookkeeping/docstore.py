"""
Client for the remote JSON document store.

The store is a JSON tree addressed by slash-separated paths, reached over REST
as ``<base_url>/<path>.json`` (Firebase Realtime Database style):

- GET    returns the subtree (a key -> object map for collections)
- PUT    replaces the object at a path
- POST   appends a child and returns its generated key as ``{"name": key}``
- DELETE removes the object at a path
"""

import logging
from typing import Any, Dict, Optional

import httpx

from bookkeeping.errors import DocumentStoreError

logger = logging.getLogger(__name__)


class DocumentStore:
    """Async document store client.

    Usage:
        async with DocumentStore("https://example.firebaseio.com") as store:
            orders = await store.get("datasheet/F3", limit_to_last=2000)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "DocumentStore":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.strip('/')}.json"

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        client = await self._get_client()
        url = self.url(path)
        try:
            response = await client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("%s %s failed with %d", method, url, e.response.status_code)
            raise DocumentStoreError(
                f"{method} {path} failed: HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, url, e)
            raise DocumentStoreError(f"{method} {path} failed: {e}") from e
        if not response.content:
            return None
        return response.json()

    async def get(self, path: str, limit_to_last: Optional[int] = None) -> Any:
        params: Dict[str, str] = {}
        if limit_to_last:
            params = {"orderBy": '"$key"', "limitToLast": str(limit_to_last)}
        return await self._request("GET", path, params=params)

    async def put(self, path: str, obj: Any) -> Any:
        return await self._request("PUT", path, json=obj)

    async def post(self, path: str, obj: Any) -> str:
        """Append ``obj`` under ``path`` and return the generated key."""
        body = await self._request("POST", path, json=obj)
        if not isinstance(body, dict) or "name" not in body:
            raise DocumentStoreError(f"POST {path} returned no key")
        return body["name"]

    async def delete(self, path: str) -> None:
        await self._request("DELETE", path)
