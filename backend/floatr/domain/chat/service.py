"""Chat room service: lazily provisioned match rooms, messages and read receipts."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from floatr.domain.chat.models import ChatRoom, Message, MessageType
from floatr.domain.chat.repo import ChatRepository
from floatr.domain.chat.schemas import (
	ConversationListResponse,
	ConversationOut,
	MessageListResponse,
	MessageOut,
	ReadReceiptOut,
)
from floatr.domain.common import blocks, events
from floatr.domain.common.errors import (
	AuthorizationError,
	ConflictError,
	MessageRateLimitExceeded,
	NotFoundError,
	ValidationError,
)
from floatr.domain.matching.models import Match, VesselPair
from floatr.domain.matching.repo import MatchRepository
from floatr.domain.matching.service import counterpart_summary
from floatr.domain.vessels.repo import VesselDirectory
from floatr.infra import rate_limit
from floatr.infra.auth import AuthenticatedUser
from floatr.infra.retry import retry_read
from floatr.obs import metrics as obs_metrics
from floatr.settings import settings

if TYPE_CHECKING:  # pragma: no cover - typing only
	from floatr.domain.chat.gateway import RealtimeGateway

logger = logging.getLogger(__name__)


def normalise_content(content) -> str:
	text = str(content or "").strip()
	if not text:
		raise ValidationError("content_required", field="content")
	if len(text) > settings.chat_message_max_length:
		raise ValidationError("content_too_long", field="content")
	return text


def _parse_type(value) -> MessageType:
	if value is None or value == "":
		return MessageType.TEXT
	try:
		return MessageType(str(value).strip().lower())
	except ValueError:
		raise ValidationError("invalid_message_type", field="type") from None


class ChatRoomService:
	def __init__(
		self,
		repo: ChatRepository | None = None,
		matches: MatchRepository | None = None,
		directory: VesselDirectory | None = None,
		gateway: "RealtimeGateway | None" = None,
	) -> None:
		self._repo = repo or ChatRepository()
		self._matches = matches or MatchRepository()
		self._directory = directory or VesselDirectory()
		self._gateway = gateway

	def set_gateway(self, gateway: "RealtimeGateway | None") -> None:
		self._gateway = gateway

	async def _active_match(self, match_id: str) -> Match:
		match = await retry_read(self._matches.get_match, str(match_id), op="chat_match")
		if match is None:
			raise NotFoundError("match_not_found")
		if not match.is_matched:
			raise ConflictError("match_not_active")
		return match

	async def _participant_vessel(self, user: AuthenticatedUser, pair: VesselPair) -> str:
		vessels = await self._directory.get_vessels(pair.participants())
		for vessel_id in pair.participants():
			vessel = vessels.get(vessel_id)
			if vessel is not None and vessel.is_owned_by(user.id):
				return vessel_id
		raise AuthorizationError("not_room_participant")

	async def get_or_create_room(self, match_id: str, *, now: Optional[datetime] = None) -> ChatRoom:
		"""Room for a MATCHED match, created on first use and seeded with both vessels."""
		return await self._room_for(await self._active_match(match_id), now=now)

	async def _room_for(self, match: Match, *, now: Optional[datetime] = None) -> ChatRoom:
		pair = match.pair
		room, created = await self._repo.ensure_room(
			match_id=match.id,
			pair_key=pair.key,
			vessels=pair.participants(),
			now=now or datetime.now(timezone.utc),
		)
		if created:
			obs_metrics.inc_room_created()
			await events.audit("chat_room_created", room_id=room.id, match_id=match.id, vessel_ids=list(pair.participants()))
		if not room.active:
			raise ConflictError("match_not_active")
		return room

	async def open_room(self, match_id: str, user: AuthenticatedUser) -> Tuple[ChatRoom, str]:
		"""Authorise ``user`` for the match's room; returns the room and the user's vessel in it."""
		match = await self._active_match(match_id)
		vessel_id = await self._participant_vessel(user, match.pair)
		room = await self._room_for(match)
		return room, vessel_id

	async def post_message(
		self,
		match_id: str,
		sender: AuthenticatedUser,
		content,
		message_type=None,
		*,
		channel: str = "rest",
		skip_sid: Optional[str] = None,
		now: Optional[datetime] = None,
	) -> Message:
		text = normalise_content(content)
		kind = _parse_type(message_type)
		room, vessel_id = await self.open_room(match_id, sender)
		if not await rate_limit.allow(
			"chat_send", sender.id, limit=settings.message_send_per_minute, window_seconds=60
		):
			raise MessageRateLimitExceeded("message_rate_limited")
		message = await self._repo.insert_message(
			room,
			sender_user_id=sender.id,
			sender_vessel_id=vessel_id,
			content=text,
			message_type=kind,
			now=now or datetime.now(timezone.utc),
		)
		obs_metrics.inc_chat_send(channel)
		logger.debug("chat message stored", extra={"room_id": room.id, "channel": channel})
		await events.outbound(
			"chat_message",
			room_id=room.id,
			message_id=message.id,
			sender_user_id=sender.id,
			sender_vessel_id=vessel_id,
			recipient_vessel_id=VesselPair.of(*room.participants()).other(vessel_id),
		)
		if self._gateway is not None:
			await self._gateway.publish_message(room, message, skip_sid=skip_sid)
		return message

	async def mark_read(
		self,
		match_id: str,
		reader: AuthenticatedUser,
		message_id: str,
		*,
		skip_sid: Optional[str] = None,
	) -> ReadReceiptOut:
		room, vessel_id = await self.open_room(match_id, reader)
		message = await self._repo.mark_read(room.id, str(message_id), vessel_id)
		if message is None:
			raise NotFoundError("message_not_found")
		obs_metrics.inc_chat_read()
		receipt = ReadReceiptOut(message_id=message.id, reader_vessel_id=vessel_id, read_by=list(message.read_by))
		if self._gateway is not None:
			await self._gateway.publish_read(room, receipt, skip_sid=skip_sid)
		return receipt

	async def mark_room_read(self, match_id: str, reader: AuthenticatedUser) -> List[str]:
		room, vessel_id = await self.open_room(match_id, reader)
		changed = await self._repo.mark_room_read(room.id, vessel_id)
		if changed:
			obs_metrics.inc_chat_read()
		return changed

	async def list_messages(
		self,
		match_id: str,
		user: AuthenticatedUser,
		*,
		limit: Optional[int] = None,
		after: Optional[str] = None,
		mark_read: bool = True,
	) -> MessageListResponse:
		limit = max(1, min(int(limit or settings.chat_page_limit), settings.chat_page_limit))
		room, vessel_id = await self.open_room(match_id, user)
		messages = await retry_read(self._repo.list_messages, room.id, limit=limit, after=after, op="list_messages")
		if mark_read and messages:
			changed = await self._repo.mark_room_read(room.id, vessel_id, [m.id for m in messages])
			if changed:
				obs_metrics.inc_chat_read()
				changed_set = set(changed)
				for message in messages:
					if message.id in changed_set and vessel_id not in message.read_by:
						message.read_by.append(vessel_id)
		next_after = messages[-1].id if len(messages) == limit else None
		return MessageListResponse(
			match_id=str(match_id),
			room_id=room.id,
			items=[MessageOut.from_model(m) for m in messages],
			next_after=next_after,
		)

	async def list_conversations(self, user: AuthenticatedUser) -> ConversationListResponse:
		owned = await self._directory.list_owned(user.id)
		matches = await retry_read(self._matches.list_matched, [v.id for v in owned], op="list_conversations")
		if not matches:
			return ConversationListResponse(items=[], total=0, total_unread=0)

		blocked = await blocks.load_block_set(user.id)
		vessels = await self._directory.get_vessels(m.liked_vessel_id for m in matches)
		captains = await self._directory.get_captains(v.owner_id for v in vessels.values())
		visible = [
			m for m in matches if m.liked_vessel_id in vessels and vessels[m.liked_vessel_id].owner_id not in blocked
		]
		rooms = await self._repo.get_rooms_by_pair([m.pair.key for m in visible])
		readers: Dict[str, str] = {}
		for match in visible:
			room = rooms.get(match.pair.key)
			if room is not None:
				readers[room.id] = match.liker_vessel_id
		digests = await self._repo.room_digests(readers)

		items: List[ConversationOut] = []
		for match in visible:
			vessel = vessels[match.liked_vessel_id]
			room = rooms.get(match.pair.key)
			unread, latest = digests.get(room.id, (0, None)) if room else (0, None)
			items.append(
				ConversationOut(
					match_id=match.id,
					room_id=room.id if room else None,
					my_vessel_id=match.liker_vessel_id,
					counterpart=counterpart_summary(vessel, captains.get(vessel.owner_id)),
					matched_at=match.matched_at,
					last_message=MessageOut.from_model(latest) if latest else None,
					last_activity_at=(room.last_message_at if room and room.last_message_at else match.matched_at),
					unread_count=unread,
				)
			)
		epoch = datetime.min.replace(tzinfo=timezone.utc)
		items.sort(key=lambda item: (item.last_activity_at or epoch, item.match_id), reverse=True)
		return ConversationListResponse(
			items=items,
			total=len(items),
			total_unread=sum(item.unread_count for item in items),
		)


_SERVICE = ChatRoomService()


def get_chat_service() -> ChatRoomService:
	return _SERVICE
