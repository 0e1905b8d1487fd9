"""The chat round trip: message ordering, event creation and failure fallback."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from conftest import FakeAssistant, FakeRemote
from onceline.core.contracts import Identity
from onceline.engine import TimelineEngine, TimelineState
from onceline.llm.assistant import APOLOGY_MESSAGE
from onceline.store import FileStorage, SnapshotStore

EngineFactory = Callable[..., TimelineEngine]


@pytest.fixture
def engine(make_engine: EngineFactory) -> TimelineEngine:
    eng = make_engine()
    eng.init_as_local()
    return eng


@pytest.mark.asyncio
async def test_reply_and_proposed_events_are_recorded(
    engine: TimelineEngine, assistant: FakeAssistant
) -> None:
    assistant.reply(
        "Congrats!",
        [{"title": "Graduation", "start_date": "2020-05-15", "category": "education"}],
    )

    await engine.send_message("I graduated in 2020")

    state = engine.state
    assert [(m.role, m.content) for m in state.messages[-2:]] == [
        ("user", "I graduated in 2020"),
        ("assistant", "Congrats!"),
    ]
    assert [e.title for e in state.events] == ["Graduation"]
    assert state.events[0].source == "chat"
    assert state.messages[-1].created_event_ids == [state.events[0].id]
    assert state.newly_added_event_id == state.events[0].id


@pytest.mark.asyncio
async def test_assistant_failure_appends_apology(engine: TimelineEngine, assistant: FakeAssistant) -> None:
    assistant.fail("network error")

    await engine.send_message("test")

    state = engine.state
    assert state.messages[-1].role == "assistant"
    assert state.messages[-1].content == APOLOGY_MESSAGE
    assert state.messages[-2].content == "test"
    assert state.events == ()
    assert state.is_sending is False


@pytest.mark.asyncio
async def test_sending_flag_brackets_the_whole_call(engine: TimelineEngine, assistant: FakeAssistant) -> None:
    flags: list[bool] = []
    engine.subscribe(lambda s: flags.append(s.is_sending))
    assistant.fail()

    await engine.send_message("hello")

    assert flags[0] is True
    assert flags[-1] is False
    assert flags.count(False) == 1


@pytest.mark.asyncio
async def test_sending_flag_is_true_while_assistant_runs(engine: TimelineEngine) -> None:
    observed: list[bool] = []

    class Watching(FakeAssistant):
        async def converse(self, history, event_context):  # type: ignore[no-untyped-def]
            observed.append(engine.state.is_sending)
            return await super().converse(history, event_context)

    engine._assistant = Watching().reply("ok")

    await engine.send_message("hi")

    assert observed == [True]
    assert engine.state.is_sending is False


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
async def test_blank_input_is_ignored(
    engine: TimelineEngine, assistant: FakeAssistant, storage: FileStorage, text: str
) -> None:
    revision = engine.state.revision

    await engine.send_message(text)

    assert engine.state.messages == ()
    assert engine.state.revision == revision
    assert assistant.calls == []
    assert SnapshotStore(storage).load().is_empty


@pytest.mark.asyncio
async def test_messages_are_append_only(engine: TimelineEngine, assistant: FakeAssistant) -> None:
    assistant.reply("one").fail().reply("three", [{"title": "Trip", "start_date": "2019"}])

    for text in ("a", "b", "c"):
        before = engine.state.messages
        await engine.send_message(text)
        after = engine.state.messages
        assert after[: len(before)] == before

    assert [m.content for m in engine.state.messages] == [
        "a",
        "one",
        "b",
        APOLOGY_MESSAGE,
        "c",
        "three",
    ]


@pytest.mark.asyncio
async def test_assistant_sees_history_and_event_context(
    engine: TimelineEngine, assistant: FakeAssistant
) -> None:
    await engine.add_event({"title": "Born", "start_date": "1990-01-01", "category": "birth"})
    assistant.reply("first").reply("second")

    await engine.send_message("hello")
    await engine.send_message("again")

    history, context = assistant.calls[-1]
    assert history == [
        {"role": "user", "content": "hello"},
        {"role": "assistant", "content": "first"},
        {"role": "user", "content": "again"},
    ]
    assert "- Born (1990-01-01) [birth]" in context


@pytest.mark.asyncio
async def test_fallback_is_kept_in_memory_when_it_cannot_be_stored(
    make_engine: EngineFactory, assistant: FakeAssistant, remote: FakeRemote
) -> None:
    engine = make_engine()
    await engine.init_as_remote(Identity(user_id="u1", access_token="jwt"))
    remote.fail("insert_message", lambda n: n >= 2)
    assistant.reply("never stored")

    await engine.send_message("hello")

    assert [m.content for m in engine.state.messages] == ["hello", APOLOGY_MESSAGE]
    assert [m.content for m in remote.messages] == ["hello"]
    assert engine.state.is_sending is False


@pytest.mark.asyncio
async def test_user_message_storage_failure_still_ends_with_apology(
    make_engine: EngineFactory, assistant: FakeAssistant, remote: FakeRemote
) -> None:
    engine = make_engine()
    await engine.init_as_remote(Identity(user_id="u1"))
    remote.fail("insert_message", lambda n: n == 1)
    assistant.reply("unused")

    await engine.send_message("hello")

    assert [m.content for m in engine.state.messages] == [APOLOGY_MESSAGE]
    assert assistant.calls == []


@pytest.mark.asyncio
async def test_concurrent_add_during_send_is_not_lost(
    make_engine: EngineFactory, assistant: FakeAssistant, remote: FakeRemote
) -> None:
    engine = make_engine()
    await engine.init_as_remote(Identity(user_id="u1"))
    gate = remote.gate("insert_message")
    assistant.reply("noted", [{"title": "From chat", "start_date": "2001"}])

    sending = asyncio.create_task(engine.send_message("hi"))
    await asyncio.sleep(0)
    manual = await engine.add_event({"title": "Manual", "start_date": "1999"})
    gate.set()
    await sending

    titles = [e.title for e in engine.state.events]
    assert titles == ["Manual", "From chat"]
    assert engine.state.find_event(manual.id) is not None
    assert [m.content for m in engine.state.messages] == ["hi", "noted"]


@pytest.mark.asyncio
async def test_results_for_a_replaced_timeline_are_dropped(
    make_engine: EngineFactory, remote: FakeRemote
) -> None:
    engine = make_engine()
    await engine.init_as_remote(Identity(user_id="u1"))
    gate = remote.gate("insert_event")

    adding = asyncio.create_task(engine.add_event({"title": "Late arrival"}))
    await asyncio.sleep(0)
    engine.sign_out()
    gate.set()
    event = await adding

    state: TimelineState = engine.state
    assert state.timeline is not None and state.timeline.is_anonymous
    assert state.find_event(event.id) is None
    assert event.id in remote.events
