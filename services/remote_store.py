"""Minimal PostgREST (Supabase) client used by the synchronisation service."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional

import requests

from core.settings import REMOTE
from models import LOCAL_ONLY_FIELDS


PAGE_SIZE = 1000

logger = logging.getLogger("ajanda.remote")


class RemoteError(Exception):
    """A remote call failed; ``status`` is ``None`` for transport errors."""

    def __init__(self, message: str, *, collection: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.collection = collection
        self.status = status


def strip_local_fields(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Drop sync bookkeeping that is not part of the remote schema."""

    return {k: v for k, v in record.items() if k not in LOCAL_ONLY_FIELDS}


class SupabaseRemote:
    """Owner-scoped table access over the Supabase REST endpoint.

    Row level security on the server does the actual scoping; the explicit
    ``user_id`` filter keeps snapshots limited to the signed-in owner even for
    service-role keys.
    """

    owner_column = "user_id"

    def __init__(
        self,
        url: str | None = None,
        anon_key: str | None = None,
        *,
        access_token: str | None = None,
        session: Optional[requests.Session] = None,
        timeout: float | None = None,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self.url = (url or REMOTE.url or "").rstrip("/")
        self.anon_key = anon_key or REMOTE.anon_key
        self.access_token = access_token
        self.session = session or requests.Session()
        self.timeout = timeout or REMOTE.timeout_sec
        self.page_size = page_size
        if not self.url:
            raise ValueError("Supabase URL is not configured")

    # ------------------------------------------------------------------
    # Request helpers
    def _headers(self, **extra: str) -> Dict[str, str]:
        headers = {
            "apikey": self.anon_key or "",
            "Authorization": f"Bearer {self.access_token or self.anon_key or ''}",
            "Accept": "application/json",
            "Accept-Profile": REMOTE.schema,
            "Content-Profile": REMOTE.schema,
        }
        headers.update(extra)
        return headers

    def _table_url(self, table: str) -> str:
        return f"{self.url}/rest/v1/{table}"

    def _request(self, method: str, table: str, **kwargs) -> requests.Response:
        headers = kwargs.pop("headers", None) or self._headers()
        try:
            response = self.session.request(
                method,
                self._table_url(table),
                headers=headers,
                timeout=self.timeout,
                **kwargs,
            )
        except requests.exceptions.RequestException as exc:
            raise RemoteError(f"{method} {table} failed: {exc}", collection=table) from exc

        if response.status_code >= 400:
            text = (response.text or "")[:500]
            raise RemoteError(
                f"{method} {table} returned {response.status_code}: {text}",
                collection=table,
                status=response.status_code,
            )
        return response

    def _select(self, table: str, filters: Dict[str, str]) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        offset = 0
        while True:
            params = {"select": "*", "order": "id.asc", "limit": str(self.page_size), "offset": str(offset)}
            params.update(filters)
            response = self._request("GET", table, params=params)
            try:
                page = response.json()
            except (ValueError, json.JSONDecodeError) as exc:
                raise RemoteError(f"GET {table} returned invalid JSON", collection=table) from exc
            if not isinstance(page, list):
                raise RemoteError(f"GET {table} returned {type(page).__name__}, expected a list", collection=table)
            rows.extend(page)
            if len(page) < self.page_size:
                return rows
            offset += len(page)

    # ------------------------------------------------------------------
    # Public API
    def upsert(self, table: str, record: Mapping[str, Any]) -> None:
        """Insert or replace ``record`` keyed by ``id``."""

        payload = strip_local_fields(record)
        if not payload.get("id"):
            raise RemoteError(f"Refusing to upsert a {table} row without id", collection=table)
        headers = self._headers(
            **{
                "Content-Type": "application/json",
                "Prefer": "resolution=merge-duplicates,return=minimal",
            }
        )
        self._request("POST", table, params={"on_conflict": "id"}, json=[payload], headers=headers)

    def delete(self, table: str, record_id: str) -> None:
        headers = self._headers(Prefer="return=minimal")
        self._request("DELETE", table, params={"id": f"eq.{record_id}"}, headers=headers)

    def list_by_owner(self, table: str, owner_id: str) -> List[Dict[str, Any]]:
        return self._select(table, {self.owner_column: f"eq.{owner_id}"})

    def list_all(self, table: str) -> List[Dict[str, Any]]:
        return self._select(table, {})

    def ping(self) -> bool:
        """Return ``True`` when the REST endpoint answers at all."""

        try:
            response = self.session.get(
                f"{self.url}/rest/v1/",
                headers=self._headers(),
                timeout=min(self.timeout, 5),
            )
        except requests.exceptions.RequestException as exc:
            logger.debug("Connectivity probe failed: %s", exc)
            return False
        return response.status_code < 500


__all__ = ["RemoteError", "SupabaseRemote", "strip_local_fields"]
