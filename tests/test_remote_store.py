"""RemoteStore request shapes and error mapping, against an httpx mock transport."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from onceline.core.contracts import EventDraft, EventPatch, MessageDraft, Timeline
from onceline.core.errors import NotFoundError, StorageError
from onceline.store import RemoteStore, StoreAdapter

BASE = "https://demo.supabase.co"

Handler = Callable[[httpx.Request], httpx.Response]


def _store(handler: Handler, token: str | None = "user-jwt") -> RemoteStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RemoteStore(BASE, "anon-key", access_token=token, client=client)


def _event_row(**overrides: Any) -> dict[str, Any]:
    row = {
        "id": "e1",
        "timeline_id": "t1",
        "title": "Graduated",
        "start_date": "2012-06-01",
        "date_precision": "month",
        "category": "education",
        "tags": None,
        "source": "manual",
        "created_at": "2024-01-01T00:00:00Z",
    }
    row.update(overrides)
    return row


@pytest.mark.asyncio
async def test_find_timeline_sends_owner_filter_and_auth_headers() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"id": "t1", "user_id": "u1", "name": "My Life"}])

    store = _store(handler)
    assert isinstance(store, StoreAdapter)
    timeline = (await store.find_timeline_by_owner("u1")).unwrap()

    assert timeline is not None and timeline.owner == "u1"
    request = seen[0]
    assert request.url.path == "/rest/v1/timelines"
    assert request.url.params["user_id"] == "eq.u1"
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["Authorization"] == "Bearer user-jwt"


@pytest.mark.asyncio
async def test_find_timeline_without_rows_is_ok_none() -> None:
    store = _store(lambda r: httpx.Response(200, json=[]))
    assert (await store.find_timeline_by_owner("u1")).unwrap() is None


@pytest.mark.asyncio
async def test_create_timeline_posts_owner_and_name() -> None:
    bodies: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json=[{"id": "t9", "user_id": "u1", "name": "My Life"}])

    timeline = (await _store(handler).create_timeline("u1", "My Life")).unwrap()

    assert bodies == [{"user_id": "u1", "name": "My Life"}]
    assert timeline.id == "t9"


@pytest.mark.asyncio
async def test_list_events_orders_and_parses_rows() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["order"] == "start_date.asc.nullslast,created_at.asc"
        assert request.url.params["timeline_id"] == "eq.t1"
        return httpx.Response(
            200,
            json=[
                _event_row(id="u", start_date=None),
                _event_row(id="late", start_date="2020-01-01"),
                _event_row(id="early", start_date="1999-01-01"),
            ],
        )

    events = (await _store(handler).list_events("t1")).unwrap()

    assert [e.id for e in events] == ["early", "late", "u"]
    assert events[0].tags == []


@pytest.mark.asyncio
async def test_insert_event_sends_json_safe_content() -> None:
    bodies: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        bodies.append(body)
        return httpx.Response(201, json=[_event_row(**body, id="new")])

    draft = EventDraft(title="Graduated", start_date="2012-06", date_precision="month")
    event = (await _store(handler).insert_event("t1", draft)).unwrap()

    assert bodies[0]["timeline_id"] == "t1"
    assert bodies[0]["start_date"] == "2012-06-01"
    assert event.id == "new"


@pytest.mark.asyncio
async def test_update_event_with_no_row_is_not_found() -> None:
    store = _store(lambda r: httpx.Response(200, json=[]))
    result = await store.update_event("missing", EventPatch(title="x"))
    assert isinstance(result.unwrap_err(), NotFoundError)


@pytest.mark.asyncio
async def test_update_event_patches_only_set_fields() -> None:
    bodies: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "PATCH"
        assert request.url.params["id"] == "eq.e1"
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json=[_event_row(category="work")])

    updated = (await _store(handler).update_event("e1", EventPatch(category="work"))).unwrap()

    assert set(bodies[0]) == {"category", "updated_at"}
    assert updated.category == "work"


@pytest.mark.asyncio
async def test_http_error_maps_backend_message_and_status() -> None:
    store = _store(lambda r: httpx.Response(401, json={"message": "JWT expired"}))

    error = (await store.list_messages("t1")).unwrap_err()

    assert isinstance(error, StorageError)
    assert error.status_code == 401
    assert "JWT expired" in error.message


@pytest.mark.asyncio
async def test_transport_error_becomes_storage_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    error = (await _store(handler).delete_event("e1")).unwrap_err()
    assert isinstance(error, StorageError)
    assert "network error" in error.message


@pytest.mark.asyncio
async def test_malformed_rows_are_storage_errors() -> None:
    store = _store(lambda r: httpx.Response(200, json=[{"id": "m1", "role": "robot"}]))
    assert isinstance((await store.list_messages("t1")).unwrap_err(), StorageError)


@pytest.mark.asyncio
async def test_insert_message_keeps_created_at_and_event_ids() -> None:
    bodies: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        bodies.append(body)
        return httpx.Response(201, json=[{**body, "id": "m1"}])

    draft = MessageDraft.model_validate(
        {
            "role": "assistant",
            "content": "Noted!",
            "created_event_ids": ["e1"],
            "created_at": "2023-05-01T12:00:00+00:00",
        }
    )
    message = (await _store(handler).insert_message("t1", draft)).unwrap()

    assert bodies[0]["created_at"].startswith("2023-05-01T12:00:00")
    assert message.created_event_ids == ["e1"]


@pytest.mark.asyncio
async def test_without_session_the_api_key_is_the_bearer() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"id": "t1", "user_id": "u1", "name": "Renamed"}])

    store = _store(handler, token=None)
    await store.rename_timeline(Timeline(id="t1", owner="u1"), "Renamed")
    store.set_session("fresh")
    await store.rename_timeline(Timeline(id="t1", owner="u1"), "Renamed")

    assert seen[0].headers["Authorization"] == "Bearer anon-key"
    assert seen[1].headers["Authorization"] == "Bearer fresh"


def test_from_settings_requires_configuration() -> None:
    from onceline.core.settings import Settings

    with pytest.raises(ValueError):
        RemoteStore.from_settings(Settings(SUPABASE_URL=None, SUPABASE_ANON_KEY=None))
    store = RemoteStore.from_settings(Settings(SUPABASE_URL=BASE + "/", SUPABASE_ANON_KEY="k"))
    assert store.rest_url == BASE + "/rest/v1"
