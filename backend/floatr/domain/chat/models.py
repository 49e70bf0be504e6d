"""Domain models for match chat."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple


class MessageType(str, enum.Enum):
	TEXT = "text"
	EMOJI = "emoji"
	IMAGE = "image"
	LOCATION = "location"
	SYSTEM = "system"


@dataclass(slots=True)
class ChatRoom:
	id: str
	match_id: str
	pair_key: str
	vessel_a: str
	vessel_b: str
	created_at: datetime
	last_message_at: Optional[datetime] = None
	active: bool = True

	def participants(self) -> Tuple[str, str]:
		return (self.vessel_a, self.vessel_b)

	@property
	def group(self) -> str:
		return f"match:{self.pair_key}"


@dataclass(slots=True)
class Message:
	id: str
	room_id: str
	sender_user_id: str
	sender_vessel_id: str
	content: str
	type: MessageType
	created_at: datetime
	read_by: List[str] = field(default_factory=list)

	def to_wire(self) -> dict:
		"""Socket payload; keys are camelCase like the client events."""
		return {
			"id": self.id,
			"roomId": self.room_id,
			"senderUserId": self.sender_user_id,
			"senderVesselId": self.sender_vessel_id,
			"content": self.content,
			"type": self.type.value,
			"createdAt": self.created_at.isoformat(),
			"readBy": list(self.read_by),
		}
