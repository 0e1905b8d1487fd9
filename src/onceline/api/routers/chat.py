"""
Stateless chat proxy.

``POST /api/chat`` forwards a conversation plus the caller's known events to
the assistant and returns its reply together with the proposed events. Nothing
is persisted here; clients add the proposals through their own engine.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from onceline.api.schemas import ChatRequest, ChatResponse
from onceline.core.errors import AssistantError
from onceline.llm.assistant import Assistant, build_event_context

router = APIRouter(prefix="/api", tags=["Chat"])


@router.post("/chat", response_model=ChatResponse, summary="Run one assistant turn")
async def chat(body: ChatRequest, request: Request) -> ChatResponse:
    assistant: Assistant = request.app.state.assistant
    history = [turn.model_dump() for turn in body.messages]
    result = await assistant.converse(history, build_event_context(body.events))
    if result.is_err():
        error = result.unwrap_err()
        raise error if isinstance(error, AssistantError) else AssistantError(str(error))

    reply = result.unwrap()
    return ChatResponse(
        message=reply.reply,
        events=[draft.model_dump(mode="json") for draft in reply.proposed_events],
    )


__all__ = ["router"]
