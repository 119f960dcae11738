# -*- coding: utf-8 -*-
"""
Work-management board client (GraphQL over HTTPS).

Design
------
- Drivers are items on one board; a driver is found by the value in its email
  column. Items are paged with items_page / next_items_page cursors.
- Columns are matched by their title, not by generated column ids. The
  field -> title map lives in config/board_columns.yaml (override with env
  BOARD_COLUMNS_FILE), so a renamed board only needs a YAML edit.
- Any transport error, HTTP error status or GraphQL `errors` payload raises
  BoardError. A driver that is simply not on the board returns None.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import requests
import yaml

from driver_verification.models import PersistedDriverFields

LOGGER = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.monday.com/v2"
API_VERSION = "2023-10"
PAGE_SIZE = 100
COLUMNS_FILE_ENV = "BOARD_COLUMNS_FILE"
_DEFAULT_COLUMNS_FILE = Path(__file__).resolve().parents[1] / "config" / "board_columns.yaml"

_ITEM_FIELDS = "id name column_values { id text column { title } }"

FIRST_PAGE_QUERY = (
    "query ($boardId: [ID!], $limit: Int) { boards (ids: $boardId) { "
    "items_page (limit: $limit) { cursor items { %s } } } }" % _ITEM_FIELDS
)
NEXT_PAGE_QUERY = (
    "query ($cursor: String!, $limit: Int) { "
    "next_items_page (cursor: $cursor, limit: $limit) { cursor items { %s } } }" % _ITEM_FIELDS
)


class BoardError(RuntimeError):
    """Raised when the board API cannot be reached or answers with an error."""


def load_column_map(path: Optional[os.PathLike[str] | str] = None) -> Dict[str, str]:
    """field name -> board column title."""
    resolved = Path(path or os.getenv(COLUMNS_FILE_ENV) or _DEFAULT_COLUMNS_FILE)
    try:
        with resolved.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise BoardError(f"Board column map not readable: {resolved}: {exc}") from exc
    if not isinstance(data, dict):
        raise BoardError(f"Board column map must be a mapping: {resolved}")

    unknown = sorted(set(data) - set(PersistedDriverFields.model_fields))
    if unknown:
        raise BoardError(f"Board column map names unknown fields: {unknown}")
    return {str(field): str(title) for field, title in data.items()}


class BoardClient:
    def __init__(
        self,
        token: str,
        board_id: str,
        api_url: str = DEFAULT_API_URL,
        columns: Optional[Dict[str, str]] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 20,
    ) -> None:
        self.token = token
        self.board_id = str(board_id)
        self.api_url = api_url
        self.columns = columns if columns is not None else load_column_map()
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_env(cls, session: Optional[requests.Session] = None) -> "BoardClient":
        token = os.getenv("MONDAY_API_TOKEN")
        board_id = os.getenv("MONDAY_BOARD_ID")
        if not (token and board_id):
            raise BoardError("MONDAY_API_TOKEN and MONDAY_BOARD_ID must be set")
        return cls(
            token=token,
            board_id=board_id,
            api_url=os.getenv("MONDAY_API_URL", DEFAULT_API_URL),
            session=session,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "API-Version": API_VERSION,
        }

    def execute(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        body = {"query": query, "variables": variables or {}}
        try:
            res = self.session.post(self.api_url, headers=self._headers(), json=body, timeout=self.timeout)
        except requests.RequestException as exc:
            raise BoardError(f"Board API unreachable: {exc}") from exc
        if res.status_code >= 400:
            raise BoardError(f"Board API failed [{res.status_code}] {res.text[:400]}")
        try:
            payload = res.json() or {}
        except ValueError as exc:
            raise BoardError("Board API returned invalid JSON") from exc
        if payload.get("errors"):
            raise BoardError(f"Board GraphQL error: {payload['errors']}")
        return payload.get("data") or {}

    # ------------------------------ Items -----------------------------------

    def iter_items(self) -> Iterator[Dict[str, Any]]:
        data = self.execute(FIRST_PAGE_QUERY, {"boardId": [self.board_id], "limit": PAGE_SIZE})
        boards = data.get("boards") or []
        if not boards:
            raise BoardError(f"Board {self.board_id} not found")
        page = boards[0].get("items_page") or {}
        while True:
            for item in page.get("items") or []:
                yield item
            cursor = page.get("cursor")
            if not cursor:
                return
            data = self.execute(NEXT_PAGE_QUERY, {"cursor": cursor, "limit": PAGE_SIZE})
            page = data.get("next_items_page") or {}

    def _values_by_title(self, item: Dict[str, Any]) -> Dict[str, Optional[str]]:
        values: Dict[str, Optional[str]] = {}
        for column in item.get("column_values") or []:
            title = ((column.get("column") or {}).get("title") or "").strip()
            if title:
                values[title] = column.get("text")
        return values

    def item_to_fields(self, item: Dict[str, Any]) -> PersistedDriverFields:
        values = self._values_by_title(item)
        data = {field: values.get(title) for field, title in self.columns.items()}
        return PersistedDriverFields(**data)

    def find_driver(self, email: str) -> Optional[PersistedDriverFields]:
        """Driver fields for the item whose email column matches (case-insensitive)."""
        wanted = (email or "").strip().lower()
        if not wanted:
            return None
        email_title = self.columns.get("email")
        if not email_title:
            raise BoardError("Board column map has no 'email' column")

        for item in self.iter_items():
            value = (self._values_by_title(item).get(email_title) or "").strip().lower()
            if value == wanted:
                LOGGER.info("Found driver %s as board item %s", wanted, item.get("id"))
                return self.item_to_fields(item)
        LOGGER.info("Driver %s not found on board %s", wanted, self.board_id)
        return None

    def list_drivers(self) -> List[PersistedDriverFields]:
        return [self.item_to_fields(item) for item in self.iter_items()]
