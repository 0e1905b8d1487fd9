# -----------------------------------------------------------------------------
# Remote row store for authenticated timelines.
#
# The remote service speaks the PostgREST dialect (as exposed by Supabase under
# `/rest/v1/<table>`). Three logical tables are used:
#
#   timelines      id, user_id, name, created_at, updated_at
#   events         id, timeline_id, title, ..., start_date, created_at
#   chat_messages  id, timeline_id, role, content, created_event_ids, created_at
#
# Row-level access control is enforced by the service itself through the
# bearer token; this module only scopes queries by `timeline_id` / `user_id`.
#
# Every public coroutine returns a `Result`: transport failures, non-2xx
# responses and rows that do not match the contracts become
# `Err(StorageError)`. Nothing here raises for I/O problems.
# -----------------------------------------------------------------------------
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from onceline.core.contracts import (
    ChatMessage,
    EventDraft,
    EventPatch,
    MessageDraft,
    Timeline,
    TimelineEvent,
    utcnow,
)
from onceline.core.errors import NotFoundError, StorageError
from onceline.core.ordering import sort_events_by_date
from onceline.core.result import Result, err, ok
from onceline.core.settings import Settings, get_logger, load_settings

M = TypeVar("M", bound=BaseModel)

logger = get_logger(__name__)

TIMELINES_TABLE = "timelines"
EVENTS_TABLE = "events"
MESSAGES_TABLE = "chat_messages"


def _parse_rows(model: type[M], rows: list[dict[str, Any]], table: str) -> Result[list[M], StorageError]:
    """Validate raw rows against a contract; any mismatch fails the whole batch."""
    try:
        return ok([model.model_validate(row) for row in rows])
    except SchemaError as exc:
        return err(StorageError(f"malformed {table} row: {exc}"))


def _single(model: type[M], rows: list[dict[str, Any]], table: str) -> Result[M, StorageError]:
    if not rows:
        return err(StorageError(f"{table}: write returned no row"))
    return _parse_rows(model, rows[:1], table).map(lambda parsed: parsed[0])


class RemoteStore:
    """Async client for the remote `timelines` / `events` / `chat_messages` tables.

    Parameters
    ----------
    base_url:
        Project root URL, e.g. ``https://xyz.supabase.co``. ``/rest/v1`` is appended.
    api_key:
        Public API key sent as the ``apikey`` header on every request.
    access_token:
        Session bearer token of the signed-in user. Until one is set the API
        key doubles as the bearer, which only grants anonymous access.
    timeout:
        Per-request timeout in seconds for the lazily created HTTP client.
    client:
        Optional pre-built ``httpx.AsyncClient`` (tests pass one with a mock
        transport). A client passed in is not closed by :meth:`aclose`.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        access_token: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.rest_url = base_url.rstrip("/") + "/rest/v1"
        self.api_key = api_key
        self.access_token = access_token
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> RemoteStore:
        """Build a store from ``SUPABASE_URL`` / ``SUPABASE_ANON_KEY``."""
        config = config or load_settings()
        if not config.supabase_url or not config.supabase_anon_key:
            raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY must be set for remote mode")
        return cls(config.supabase_url, config.supabase_anon_key, timeout=config.http_timeout)

    def set_session(self, access_token: str | None) -> None:
        """Use ``access_token`` as the bearer for subsequent requests."""
        self.access_token = access_token

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # --------------------------------------------------------------------- #
    # Timelines
    # --------------------------------------------------------------------- #
    async def find_timeline_by_owner(self, owner_id: str) -> Result[Timeline | None, StorageError]:
        """Return the oldest timeline owned by ``owner_id``; ``Ok(None)`` if there is none."""
        rows = await self._request(
            "GET",
            TIMELINES_TABLE,
            params={"user_id": f"eq.{owner_id}", "order": "created_at.asc", "limit": "1"},
        )
        return rows.flat_map(lambda r: _parse_rows(Timeline, r, TIMELINES_TABLE)).map(
            lambda found: found[0] if found else None
        )

    async def create_timeline(self, owner_id: str, name: str) -> Result[Timeline, StorageError]:
        rows = await self._request(
            "POST", TIMELINES_TABLE, json={"user_id": owner_id, "name": name}
        )
        return rows.flat_map(lambda r: _single(Timeline, r, TIMELINES_TABLE))

    async def rename_timeline(self, timeline: Timeline, name: str) -> Result[Timeline, StorageError]:
        rows = await self._request(
            "PATCH",
            TIMELINES_TABLE,
            params={"id": f"eq.{timeline.id}"},
            json={"name": name, "updated_at": utcnow().isoformat()},
        )
        return rows.flat_map(lambda r: _single(Timeline, r, TIMELINES_TABLE))

    # --------------------------------------------------------------------- #
    # Events
    # --------------------------------------------------------------------- #
    async def list_events(self, timeline_id: str) -> Result[list[TimelineEvent], StorageError]:
        """List events by start date ascending, undated last.

        The service orders natively; the result is re-sorted locally so the
        tie-break rules match the in-memory collection exactly.
        """
        rows = await self._request(
            "GET",
            EVENTS_TABLE,
            params={
                "timeline_id": f"eq.{timeline_id}",
                "order": "start_date.asc.nullslast,created_at.asc",
            },
        )
        return rows.flat_map(lambda r: _parse_rows(TimelineEvent, r, EVENTS_TABLE)).map(
            sort_events_by_date
        )

    async def insert_event(
        self, timeline_id: str, draft: EventDraft
    ) -> Result[TimelineEvent, StorageError]:
        body = {**draft.content(), "timeline_id": timeline_id}
        rows = await self._request("POST", EVENTS_TABLE, json=body)
        return rows.flat_map(lambda r: _single(TimelineEvent, r, EVENTS_TABLE))

    async def update_event(
        self, event_id: str, patch: EventPatch
    ) -> Result[TimelineEvent, StorageError | NotFoundError]:
        body = {**patch.changes(), "updated_at": utcnow().isoformat()}
        rows = await self._request(
            "PATCH", EVENTS_TABLE, params={"id": f"eq.{event_id}"}, json=body
        )
        if rows.is_err():
            return err(rows.unwrap_err())
        if not rows.unwrap():
            return err(NotFoundError(f"event {event_id} not found", entity_id=event_id))
        return _single(TimelineEvent, rows.unwrap(), EVENTS_TABLE)  # type: ignore[return-value]

    async def delete_event(self, event_id: str) -> Result[None, StorageError]:
        rows = await self._request("DELETE", EVENTS_TABLE, params={"id": f"eq.{event_id}"})
        return rows.map(lambda _: None)

    # --------------------------------------------------------------------- #
    # Chat messages
    # --------------------------------------------------------------------- #
    async def list_messages(self, timeline_id: str) -> Result[list[ChatMessage], StorageError]:
        rows = await self._request(
            "GET",
            MESSAGES_TABLE,
            params={"timeline_id": f"eq.{timeline_id}", "order": "created_at.asc"},
        )
        return rows.flat_map(lambda r: _parse_rows(ChatMessage, r, MESSAGES_TABLE))

    async def insert_message(
        self, timeline_id: str, message: MessageDraft
    ) -> Result[ChatMessage, StorageError]:
        body: dict[str, Any] = {
            "timeline_id": timeline_id,
            "role": message.role,
            "content": message.content,
            "created_event_ids": list(message.created_event_ids),
        }
        if message.created_at is not None:
            body["created_at"] = message.created_at.isoformat()
        rows = await self._request("POST", MESSAGES_TABLE, json=body)
        return rows.flat_map(lambda r: _single(ChatMessage, r, MESSAGES_TABLE))

    async def delete_all_messages(self, timeline_id: str) -> Result[None, StorageError]:
        rows = await self._request(
            "DELETE", MESSAGES_TABLE, params={"timeline_id": f"eq.{timeline_id}"}
        )
        return rows.map(lambda _: None)

    # --------------------------------------------------------------------- #
    # Transport
    # --------------------------------------------------------------------- #
    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
    ) -> Result[list[dict[str, Any]], StorageError]:
        """Perform one REST call and return the decoded row list."""
        url = f"{self.rest_url}/{table}"
        try:
            response = await self._http().request(
                method, url, params=params, json=json, headers=self._headers()
            )
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, table, exc)
            return err(StorageError(f"{table}: network error: {exc}"))

        if response.status_code >= 400:
            detail = _error_message(response)
            logger.warning("%s %s -> %d: %s", method, table, response.status_code, detail)
            return err(StorageError(f"{table}: {detail}", status_code=response.status_code))

        if not response.content:
            return ok([])
        try:
            payload = response.json()
        except ValueError:
            return err(StorageError(f"{table}: response is not JSON"))

        if isinstance(payload, dict):
            payload = [payload]
        if not isinstance(payload, list) or not all(isinstance(r, dict) for r in payload):
            return err(StorageError(f"{table}: unexpected response shape"))
        return ok(payload)


def _error_message(response: httpx.Response) -> str:
    """Best-effort extraction of the backend's error message."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        for key in ("message", "error_description", "error", "hint"):
            if isinstance(body.get(key), str) and body[key]:
                return str(body[key])
    return response.reason_phrase


__all__ = ["RemoteStore", "TIMELINES_TABLE", "EVENTS_TABLE", "MESSAGES_TABLE"]
