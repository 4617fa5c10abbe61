from __future__ import annotations

from typing import Any
from urllib.parse import urlparse

import httpx

from ..errors import RemoteFetchError

REST_PREFIX = "/rest/v1"


def build_base_url(address: str) -> str:
    trimmed = address.strip().rstrip("/")
    if not trimmed:
        return ""
    parsed = urlparse(trimmed)
    if parsed.scheme:
        return trimmed
    return f"https://{trimmed}"


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        snippet = response.text[:240].strip()
        return f"non_json_response: {snippet}" if snippet else "non_json_response"
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error")
        if isinstance(message, str):
            return message
    return f"http {response.status_code}"


class PostgrestRowSource:
    """Reads offset ranges from a PostgREST endpoint over ``httpx``."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout_s: float = 10.0,
    ) -> None:
        self.base_url = build_base_url(base_url)
        if not self.base_url:
            raise ValueError("missing remote url")
        self.api_key = api_key
        self._client = client
        self._owns_client = client is None
        self.timeout_s = timeout_s

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _client_or_new(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    async def fetch_range(
        self,
        table: str,
        *,
        select: str,
        date_field: str,
        gte: str,
        lte: str,
        start: int,
        end: int,
    ) -> list[dict[str, Any]]:
        url = f"{self.base_url}{REST_PREFIX}/{table}"
        params: list[tuple[str, str]] = [
            ("select", select),
            (date_field, f"gte.{gte}"),
            (date_field, f"lte.{lte}"),
            ("order", f"{date_field}.asc"),
            ("offset", str(start)),
            ("limit", str(end - start + 1)),
        ]
        client = self._client_or_new()
        try:
            response = await client.get(url, params=params, headers=self._headers())
        except httpx.HTTPError as exc:
            raise RemoteFetchError(f"request to {table} failed: {exc}") from exc
        if response.status_code >= 400:
            raise RemoteFetchError(
                f"{table}: {_error_detail(response)}", status=response.status_code
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteFetchError(f"{table}: invalid json response") from exc
        if not isinstance(payload, list):
            raise RemoteFetchError(f"{table}: unexpected_json_type: {type(payload).__name__}")
        if not all(isinstance(row, dict) for row in payload):
            raise RemoteFetchError(f"{table}: unexpected_row_type in page at offset {start}")
        return payload

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> PostgrestRowSource:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
