"""
Chat API Routes.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from ..services import ChatService, get_chat_service
from ..streaming import QueueSink, STREAM_HEADERS, start_turn, wait_until_streaming

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request / Response Models ─────────────────────────────────────

class APIModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class StartChatRequest(APIModel):
    user_id: Optional[str] = Field(default=None, alias="userID")
    session_id: Optional[str] = Field(default=None, alias="sessionID")


class StartChatResponse(APIModel):
    session_id: str = Field(alias="sessionID")
    success: bool


class SendMessageRequest(APIModel):
    user_id: Optional[str] = Field(default=None, alias="userID")
    session_id: Optional[str] = Field(default=None, alias="sessionID")
    message: Optional[str] = None


class MessageInfo(APIModel):
    type: str
    content: str


class ChatHistoryResponse(APIModel):
    messages: List[MessageInfo]


class DeleteConversationRequest(APIModel):
    user_id: Optional[str] = Field(default=None, alias="userID")
    session_id: Optional[str] = Field(default=None, alias="sessionID")


class DeleteConversationResponse(APIModel):
    success: bool


# ── Endpoints ─────────────────────────────────────────────────────

@router.post("/chat/start", response_model=StartChatResponse)
async def start_chat(request: StartChatRequest, service: ChatService = Depends(get_chat_service)):
    """Open a conversation, generating a session id if none is given."""
    session_id = service.start_session(request.user_id, request.session_id)
    return StartChatResponse(session_id=session_id, success=True)


@router.post("/chat/stream")
async def stream_message(request: SendMessageRequest, service: ChatService = Depends(get_chat_service)):
    """
    Run one turn and stream the reply as plain text.

    Validation and transcript-load failures still return JSON errors; once
    the body has started, failures arrive as text inside it.
    """
    sink = QueueSink()
    task = start_turn(service.stream_turn(request.user_id, request.session_id, request.message, sink))
    await wait_until_streaming(task, sink)

    return StreamingResponse(
        sink.drain(task),
        media_type="text/plain",
        headers=STREAM_HEADERS,
    )


@router.get("/chat/history", response_model=ChatHistoryResponse)
async def get_history(
    user_id: Optional[str] = Query(default=None, alias="userID"),
    session_id: Optional[str] = Query(default=None, alias="sessionID"),
    service: ChatService = Depends(get_chat_service),
):
    """Full transcript of a conversation, oldest first."""
    messages = await service.get_history(user_id, session_id)
    return ChatHistoryResponse(
        messages=[MessageInfo(type=m.role.value, content=m.content) for m in messages]
    )


@router.post("/chat/delete", response_model=DeleteConversationResponse)
async def delete_conversation(
    request: DeleteConversationRequest, service: ChatService = Depends(get_chat_service)
):
    """Delete a conversation and its in-memory binding."""
    await service.delete_conversation(request.user_id, request.session_id)
    return DeleteConversationResponse(success=True)
