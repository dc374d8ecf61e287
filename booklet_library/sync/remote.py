"""
Remote backend client (PostgREST / Supabase REST API)

Two transport paths:
  normal — through SUPABASE_PROXY_URL when configured. The proxy forwards an
           envelope {method, path, body, headers} and has a tight body limit.
  bulk   — straight to SUPABASE_URL/rest/v1, used for large payloads.
Without a proxy both paths go direct.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from booklet_library.config import (
    HTTP_TIMEOUT_SECONDS,
    SUPABASE_KEY,
    SUPABASE_PROXY_URL,
    SUPABASE_URL,
)

log = logging.getLogger(__name__)

UPSERT_PREFER = "resolution=merge-duplicates,return=minimal"
UPDATE_PREFER = "return=minimal"


class RemoteError(RuntimeError):
    """Remote request failed (network error or non-2xx response)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteClient:
    def __init__(
        self,
        base_url: str = SUPABASE_URL,
        api_key: str = SUPABASE_KEY,
        proxy_url: str = SUPABASE_PROXY_URL,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key or ""
        self.proxy_url = proxy_url or ""
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @property
    def configured(self) -> bool:
        return bool(self.proxy_url or (self.base_url and self.api_key))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    # ─── Transport ─────────────────────────────────────────────────────────────

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        if "application/json" in response.headers.get("content-type", ""):
            return response.json()
        return {"message": response.text}

    async def _send(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise RemoteError(f"{method} {url} failed: {e}") from e
        if response.status_code >= 400:
            raise RemoteError(
                f"{method} {url} returned {response.status_code}: {response.text[:300]}",
                status_code=response.status_code,
            )
        return self._decode(response)

    async def _direct(self, method: str, path: str, body: Any = None, prefer: Optional[str] = None) -> Any:
        if not (self.base_url and self.api_key):
            raise RemoteError("Remote backend is not configured (SUPABASE_URL / SUPABASE_KEY)")
        kwargs = {"headers": self._headers(prefer)}
        if body is not None:
            kwargs["json"] = body
        return await self._send(method, f"{self.base_url}/rest/v1{path}", **kwargs)

    async def _via_proxy(self, method: str, path: str, body: Any = None, prefer: Optional[str] = None) -> Any:
        envelope = {"method": method, "path": path, "body": body, "headers": {}}
        if prefer:
            envelope["headers"]["Prefer"] = prefer
        return await self._send("POST", self.proxy_url, json=envelope)

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        prefer: Optional[str] = None,
        bulk: bool = False,
    ) -> Any:
        if self.proxy_url and not bulk:
            return await self._via_proxy(method, path, body, prefer)
        return await self._direct(method, path, body, prefer)

    # ─── Table operations ──────────────────────────────────────────────────────

    async def fetch_page(self, table: str, offset: int, limit: int) -> List[Dict[str, Any]]:
        path = f"/{table}?select=*&order=id.asc&offset={offset}&limit={limit}"
        rows = await self.request("GET", path)
        return rows if isinstance(rows, list) else []

    async def fetch_all(self, table: str, page_size: int) -> List[Dict[str, Any]]:
        """Page through a table until an empty or short page comes back."""
        rows: List[Dict[str, Any]] = []
        offset = 0
        while True:
            page = await self.fetch_page(table, offset, page_size)
            rows.extend(page)
            if len(page) < page_size:
                break
            offset += page_size
        log.info("Remote: fetched %s rows from %s", len(rows), table)
        return rows

    async def upsert(self, table: str, rows: List[Dict[str, Any]], bulk: bool = False) -> None:
        """Insert-or-replace keyed on id."""
        if not rows:
            return
        await self.request("POST", f"/{table}?on_conflict=id", body=rows, prefer=UPSERT_PREFER, bulk=bulk)

    async def update(self, table: str, record_id: str, fields: Dict[str, Any], bulk: bool = False) -> None:
        path = f"/{table}?id=eq.{quote(str(record_id), safe='')}"
        await self.request("PATCH", path, body=fields, prefer=UPDATE_PREFER, bulk=bulk)
