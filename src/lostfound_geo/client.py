from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from .bounds import BoundingBoxRange
from .config import SearchSettings
from .exceptions import (
    AuthenticationError,
    LostFoundError,
    NotFoundError,
    ServerError,
    StoreConnectionError,
    ValidationError,
)


class HttpRecordStore:
    """Range reads against a REST document backend.

    ``GET {base_url}/collections/{collection}/range`` must answer with a JSON
    list of documents (each carrying ``id``) whose ``field`` value lies in
    ``[start, end]``, ordered by ``order_by``.
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8080",
        collection: str = "foundPosts",
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.collection = collection
        self.api_key = api_key
        self._timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(
        cls, settings: SearchSettings, client: Optional[httpx.AsyncClient] = None
    ) -> "HttpRecordStore":
        return cls(
            base_url=settings.store_base_url,
            collection=settings.store_collection,
            api_key=settings.store_api_key,
            timeout=settings.http_timeout,
            client=client,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpRecordStore":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def range_query(
        self, key_range: BoundingBoxRange, order_by: str = "geohash"
    ) -> List[Dict[str, Any]]:
        params = {
            "field": order_by,
            "start": key_range.start_key,
            "end": key_range.end_key,
            "order_by": order_by,
        }
        response = await self._request(
            "GET", f"/collections/{self.collection}/range", params=params
        )
        data = response.json()
        if not isinstance(data, list):
            raise ServerError(f"expected a list of documents, got {type(data).__name__}")
        return data

    def _headers(self) -> Dict[str, str]:
        headers = {}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.request(
                method,
                url,
                headers=self._headers(),
                params=params,
            )
        except httpx.RequestError as exc:
            raise StoreConnectionError(str(exc)) from exc

        if 200 <= response.status_code < 300:
            return response

        message = response.text or response.reason_phrase
        self._raise_for_status(response.status_code, message)
        return response

    @staticmethod
    def _raise_for_status(status_code: int, message: str) -> None:
        if status_code == 400:
            raise ValidationError(message)
        if status_code == 401:
            raise AuthenticationError(message)
        if status_code == 404:
            raise NotFoundError(message)
        if status_code >= 500:
            raise ServerError(message)
        raise LostFoundError(message)
