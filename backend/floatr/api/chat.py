"""Match chat endpoints: conversations, message history and read receipts."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status

from floatr.domain.chat.schemas import (
	ConversationListResponse,
	MessageListResponse,
	MessageOut,
	ReadReceiptOut,
	SendMessageRequest,
)
from floatr.domain.chat.service import ChatRoomService, get_chat_service
from floatr.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["chat"])


def chat_service(request: Request) -> ChatRoomService:
	return getattr(request.app.state, "chat_service", None) or get_chat_service()


@router.get("/conversations", response_model=ConversationListResponse)
async def list_conversations(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	chat: ChatRoomService = Depends(chat_service),
) -> ConversationListResponse:
	return await chat.list_conversations(auth_user)


@router.get("/rooms/{match_id}/messages", response_model=MessageListResponse)
async def list_messages(
	match_id: str,
	after: Optional[str] = Query(default=None),
	limit: Optional[int] = Query(default=None, ge=1),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	chat: ChatRoomService = Depends(chat_service),
) -> MessageListResponse:
	return await chat.list_messages(match_id, auth_user, limit=limit, after=after)


@router.post("/rooms/{match_id}/messages", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
async def send_message(
	match_id: str,
	payload: SendMessageRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	chat: ChatRoomService = Depends(chat_service),
) -> MessageOut:
	message = await chat.post_message(match_id, auth_user, payload.content, payload.type)
	return MessageOut.from_model(message)


@router.post("/rooms/{match_id}/messages/{message_id}/read", response_model=ReadReceiptOut)
async def mark_message_read(
	match_id: str,
	message_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	chat: ChatRoomService = Depends(chat_service),
) -> ReadReceiptOut:
	return await chat.mark_read(match_id, auth_user, message_id)


@router.post("/rooms/{match_id}/read")
async def mark_room_read(
	match_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	chat: ChatRoomService = Depends(chat_service),
) -> dict:
	changed = await chat.mark_room_read(match_id, auth_user)
	return {"match_id": match_id, "marked": len(changed)}
