"""Pydantic schemas for chat endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field

from floatr.domain.chat.models import Message, MessageType
from floatr.domain.matching.schemas import CounterpartVessel


class SendMessageRequest(BaseModel):
	content: str
	type: str = Field(default=MessageType.TEXT.value, validation_alias=AliasChoices("type", "message_type"))


class MessageOut(BaseModel):
	id: str
	room_id: str
	sender_user_id: str
	sender_vessel_id: str
	content: str
	type: MessageType
	created_at: datetime
	read_by: List[str] = Field(default_factory=list)

	@classmethod
	def from_model(cls, message: Message) -> "MessageOut":
		return cls(
			id=message.id,
			room_id=message.room_id,
			sender_user_id=message.sender_user_id,
			sender_vessel_id=message.sender_vessel_id,
			content=message.content,
			type=message.type,
			created_at=message.created_at,
			read_by=list(message.read_by),
		)


class MessageListResponse(BaseModel):
	match_id: str
	room_id: str
	items: List[MessageOut]
	next_after: Optional[str] = None


class ReadReceiptOut(BaseModel):
	message_id: str
	reader_vessel_id: str
	read_by: List[str]


class ConversationOut(BaseModel):
	match_id: str
	room_id: Optional[str] = None
	my_vessel_id: str
	counterpart: CounterpartVessel
	matched_at: Optional[datetime] = None
	last_message: Optional[MessageOut] = None
	last_activity_at: Optional[datetime] = None
	unread_count: int = 0


class ConversationListResponse(BaseModel):
	items: List[ConversationOut]
	total: int
	total_unread: int
