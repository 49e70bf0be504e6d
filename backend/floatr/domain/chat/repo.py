"""Chat room and message persistence (asyncpg with an in-memory fallback)."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import ulid

from floatr.domain.chat.models import ChatRoom, Message, MessageType
from floatr.domain.common.errors import NotFoundError
from floatr.infra.postgres import pool_or_none


class _InMemoryStore:
	"""Fallback store used in tests when Postgres is unavailable."""

	def __init__(self) -> None:
		self.lock = asyncio.Lock()
		self.rooms: Dict[str, ChatRoom] = {}
		self.messages: Dict[str, List[Message]] = {}

	def room_by_id(self, room_id: str) -> Optional[ChatRoom]:
		for room in self.rooms.values():
			if room.id == room_id:
				return room
		return None

	async def reset(self) -> None:
		async with self.lock:
			self.rooms.clear()
			self.messages.clear()


_MEMORY_STORE = _InMemoryStore()


def _row_to_room(row) -> ChatRoom:
	return ChatRoom(
		id=str(row["id"]),
		match_id=str(row["match_id"]),
		pair_key=row["pair_key"],
		vessel_a=str(row["vessel_a"]),
		vessel_b=str(row["vessel_b"]),
		created_at=row["created_at"],
		last_message_at=row["last_message_at"],
		active=bool(row["active"]),
	)


def _row_to_message(row) -> Message:
	return Message(
		id=str(row["id"]),
		room_id=str(row["room_id"]),
		sender_user_id=str(row["sender_user_id"]),
		sender_vessel_id=str(row["sender_vessel_id"]),
		content=row["content"],
		type=MessageType(row["message_type"]),
		created_at=row["created_at"],
		read_by=[str(v) for v in (row["read_by"] or [])],
	)


_ROOM_COLUMNS = "id, match_id, pair_key, vessel_a, vessel_b, created_at, last_message_at, active"
_MESSAGE_COLUMNS = "id, room_id, sender_user_id, sender_vessel_id, content, message_type, created_at, read_by"


class ChatRepository:
	def __init__(self) -> None:
		self._pool_checked = False
		self._pool = None

	async def _pool_or_none(self):
		if self._pool_checked:
			return self._pool
		self._pool_checked = True
		self._pool = await pool_or_none()
		return self._pool

	async def get_room_by_pair(self, pair_key: str) -> Optional[ChatRoom]:
		pool = await self._pool_or_none()
		if pool is None:
			return _MEMORY_STORE.rooms.get(pair_key)
		row = await pool.fetchrow(f"SELECT {_ROOM_COLUMNS} FROM chat_rooms WHERE pair_key = $1", pair_key)
		return _row_to_room(row) if row else None

	async def get_rooms_by_pair(self, pair_keys: List[str]) -> Dict[str, ChatRoom]:
		keys = list(set(pair_keys))
		if not keys:
			return {}
		pool = await self._pool_or_none()
		if pool is None:
			return {key: _MEMORY_STORE.rooms[key] for key in keys if key in _MEMORY_STORE.rooms}
		rows = await pool.fetch(
			f"SELECT {_ROOM_COLUMNS} FROM chat_rooms WHERE pair_key = ANY($1::text[])",
			keys,
		)
		return {row["pair_key"]: _row_to_room(row) for row in rows}

	async def ensure_room(
		self,
		*,
		match_id: str,
		pair_key: str,
		vessels: Tuple[str, str],
		now: datetime,
	) -> Tuple[ChatRoom, bool]:
		"""Return the room for ``pair_key``, creating it when missing; flag is True when created."""
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY_STORE.lock:
				room = _MEMORY_STORE.rooms.get(pair_key)
				if room is not None:
					return room, False
				room = ChatRoom(
					id=ulid.new().str,
					match_id=match_id,
					pair_key=pair_key,
					vessel_a=vessels[0],
					vessel_b=vessels[1],
					created_at=now,
				)
				_MEMORY_STORE.rooms[pair_key] = room
				_MEMORY_STORE.messages[room.id] = []
				return room, True
		row = await pool.fetchrow(
			f"""
			INSERT INTO chat_rooms (id, match_id, pair_key, vessel_a, vessel_b, created_at, active)
			VALUES ($1, $2, $3, $4, $5, $6, TRUE)
			ON CONFLICT (pair_key) DO NOTHING
			RETURNING {_ROOM_COLUMNS}
			""",
			ulid.new().str,
			match_id,
			pair_key,
			vessels[0],
			vessels[1],
			now,
		)
		if row is not None:
			return _row_to_room(row), True
		return await self.get_room_by_pair(pair_key), False

	async def deactivate_room(self, pair_key: str) -> bool:
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY_STORE.lock:
				room = _MEMORY_STORE.rooms.get(pair_key)
				if room is None or not room.active:
					return False
				room.active = False
				return True
		status = await pool.execute(
			"UPDATE chat_rooms SET active = FALSE WHERE pair_key = $1 AND active = TRUE",
			pair_key,
		)
		return str(status).endswith(" 1")

	async def insert_message(
		self,
		room: ChatRoom,
		*,
		sender_user_id: str,
		sender_vessel_id: str,
		content: str,
		message_type: MessageType,
		now: datetime,
	) -> Message:
		message = Message(
			id=ulid.new().str,
			room_id=room.id,
			sender_user_id=sender_user_id,
			sender_vessel_id=sender_vessel_id,
			content=content,
			type=message_type,
			created_at=now,
			read_by=[sender_vessel_id],
		)
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY_STORE.lock:
				_MEMORY_STORE.messages.setdefault(room.id, []).append(message)
				stored = _MEMORY_STORE.room_by_id(room.id)
				if stored is not None:
					stored.last_message_at = now
			room.last_message_at = now
			return message
		async with pool.acquire() as conn:
			async with conn.transaction():
				await conn.execute(
					"""
					INSERT INTO chat_messages
						(id, room_id, sender_user_id, sender_vessel_id, content, message_type, created_at, read_by)
					VALUES ($1, $2, $3, $4, $5, $6, $7, $8::text[])
					""",
					message.id,
					message.room_id,
					message.sender_user_id,
					message.sender_vessel_id,
					message.content,
					message.type.value,
					message.created_at,
					message.read_by,
				)
				await conn.execute(
					"UPDATE chat_rooms SET last_message_at = $2 WHERE id = $1",
					room.id,
					now,
				)
		room.last_message_at = now
		return message

	async def mark_read(self, room_id: str, message_id: str, vessel_id: str) -> Optional[Message]:
		"""Add ``vessel_id`` to the message's read set; None when the message is not in the room."""
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY_STORE.lock:
				for message in _MEMORY_STORE.messages.get(room_id, []):
					if message.id == message_id:
						if vessel_id not in message.read_by:
							message.read_by.append(vessel_id)
						return message
			return None
		row = await pool.fetchrow(
			f"""
			UPDATE chat_messages
			SET read_by = CASE WHEN $3 = ANY(read_by) THEN read_by ELSE array_append(read_by, $3) END
			WHERE id = $1 AND room_id = $2
			RETURNING {_MESSAGE_COLUMNS}
			""",
			message_id,
			room_id,
			vessel_id,
		)
		return _row_to_message(row) if row else None

	async def mark_room_read(
		self,
		room_id: str,
		vessel_id: str,
		message_ids: Optional[List[str]] = None,
	) -> List[str]:
		"""Mark messages not sent by ``vessel_id`` as read (all, or only ``message_ids``); returns the ids that changed."""
		pool = await self._pool_or_none()
		if pool is None:
			changed: List[str] = []
			async with _MEMORY_STORE.lock:
				for message in _MEMORY_STORE.messages.get(room_id, []):
					if message_ids is not None and message.id not in message_ids:
						continue
					if message.sender_vessel_id != vessel_id and vessel_id not in message.read_by:
						message.read_by.append(vessel_id)
						changed.append(message.id)
			return changed
		rows = await pool.fetch(
			"""
			UPDATE chat_messages
			SET read_by = array_append(read_by, $2)
			WHERE room_id = $1 AND sender_vessel_id <> $2 AND NOT ($2 = ANY(read_by))
				AND ($3::text[] IS NULL OR id = ANY($3::text[]))
			RETURNING id
			""",
			room_id,
			vessel_id,
			message_ids,
		)
		return [str(row["id"]) for row in rows]

	async def list_messages(self, room_id: str, *, limit: int, after: Optional[str] = None) -> List[Message]:
		"""Messages ascending by (created_at, id), optionally after the message id ``after``.

		An ``after`` id that is not a message of this room raises ``cursor_not_found``.
		"""
		pool = await self._pool_or_none()
		if pool is None:
			async with _MEMORY_STORE.lock:
				messages = sorted(_MEMORY_STORE.messages.get(room_id, []), key=lambda m: (m.created_at, m.id))
			if after:
				anchor = next((m for m in messages if m.id == after), None)
				if anchor is None:
					raise NotFoundError("cursor_not_found")
				messages = [m for m in messages if (m.created_at, m.id) > (anchor.created_at, anchor.id)]
			return messages[:limit]
		anchor_at: Optional[datetime] = None
		if after:
			anchor_at = await pool.fetchval(
				"SELECT created_at FROM chat_messages WHERE id = $1 AND room_id = $2",
				after,
				room_id,
			)
			if anchor_at is None:
				raise NotFoundError("cursor_not_found")
		rows = await pool.fetch(
			f"""
			SELECT {_MESSAGE_COLUMNS} FROM chat_messages m
			WHERE m.room_id = $1
				AND ($2::timestamptz IS NULL OR (m.created_at, m.id) > ($2::timestamptz, $3::text))
			ORDER BY m.created_at ASC, m.id ASC
			LIMIT $4
			""",
			room_id,
			anchor_at,
			after,
			limit,
		)
		return [_row_to_message(row) for row in rows]

	async def room_digests(self, readers: Dict[str, str]) -> Dict[str, Tuple[int, Optional[Message]]]:
		"""Per room id: (unread count for the mapped reader vessel, latest message)."""
		if not readers:
			return {}
		pool = await self._pool_or_none()
		if pool is None:
			digests: Dict[str, Tuple[int, Optional[Message]]] = {}
			async with _MEMORY_STORE.lock:
				for room_id, vessel_id in readers.items():
					messages = _MEMORY_STORE.messages.get(room_id, [])
					unread = sum(
						1 for m in messages if m.sender_vessel_id != vessel_id and vessel_id not in m.read_by
					)
					latest = max(messages, key=lambda m: (m.created_at, m.id)) if messages else None
					digests[room_id] = (unread, latest)
			return digests
		room_ids = list(readers.keys())
		vessel_ids = [readers[room_id] for room_id in room_ids]
		unread_rows = await pool.fetch(
			"""
			SELECT w.room_id, COUNT(m.id) AS unread
			FROM unnest($1::text[], $2::text[]) AS w(room_id, vessel_id)
			LEFT JOIN chat_messages m
				ON m.room_id = w.room_id
				AND m.sender_vessel_id <> w.vessel_id
				AND NOT (w.vessel_id = ANY(m.read_by))
			GROUP BY w.room_id
			""",
			room_ids,
			vessel_ids,
		)
		latest_rows = await pool.fetch(
			f"""
			SELECT DISTINCT ON (room_id) {_MESSAGE_COLUMNS}
			FROM chat_messages
			WHERE room_id = ANY($1::text[])
			ORDER BY room_id, created_at DESC, id DESC
			""",
			room_ids,
		)
		unread = {str(row["room_id"]): int(row["unread"]) for row in unread_rows}
		latest = {str(row["room_id"]): _row_to_message(row) for row in latest_rows}
		return {room_id: (unread.get(room_id, 0), latest.get(room_id)) for room_id in room_ids}


async def reset_memory_state() -> None:
	await _MEMORY_STORE.reset()
