"""
User conversation listing routes.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from ..services import ChatService, get_chat_service

router = APIRouter()


class ConversationInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionID")
    message_count: int = Field(alias="messageCount")


class ListConversationsResponse(BaseModel):
    conversations: List[ConversationInfo]


@router.get("/user/conversations", response_model=ListConversationsResponse)
async def list_conversations(
    user_id: Optional[str] = Query(default=None, alias="userID"),
    service: ChatService = Depends(get_chat_service),
):
    """Every conversation in the user's partition with its message count."""
    summaries = await service.list_conversations(user_id)
    return ListConversationsResponse(
        conversations=[
            ConversationInfo(session_id=s.session_id, message_count=s.message_count)
            for s in summaries
        ]
    )
