"""Socket.IO namespace carrying live chat traffic for matched vessels."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Set

import socketio
from fastapi import HTTPException

from floatr.domain.chat.models import ChatRoom, Message
from floatr.domain.chat.schemas import ReadReceiptOut
from floatr.domain.common.errors import FloatrError
from floatr.infra.auth import AuthenticatedUser, resolve_identity
from floatr.infra.rate_limit import RateLimitExceeded
from floatr.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def _bearer_from(scope: dict, auth: dict) -> Optional[str]:
	token = auth.get("token")
	if token:
		return str(token)
	header = _header(scope, "authorization")
	if header and header.lower().startswith("bearer "):
		return header[7:].strip()
	return None


def _match_id(payload) -> str:
	if not isinstance(payload, dict):
		return ""
	return str(payload.get("matchId") or payload.get("match_id") or "").strip()


class RealtimeGateway(socketio.AsyncNamespace):
	"""``/chat`` namespace; one group per matched vessel pair.

	Both captains share the pair-keyed room but reach it through their own match rows, so
	group broadcasts carry ``roomId`` (returned by ``joined``) rather than a match id.
	"""

	def __init__(self, chat=None) -> None:
		super().__init__("/chat")
		self._chat = chat
		self._lock = asyncio.Lock()
		self._sessions: Dict[str, AuthenticatedUser] = {}
		# sid -> {match id the client joined with: room}
		self._memberships: Dict[str, Dict[str, ChatRoom]] = {}

	@property
	def sessions(self) -> Dict[str, AuthenticatedUser]:
		return self._sessions

	async def groups_for(self, sid: str) -> Set[str]:
		async with self._lock:
			return {room.group for room in self._memberships.get(sid, {}).values()}

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		scope = environ.get("asgi.scope", environ)
		auth_payload = auth or environ.get("auth") or scope.get("auth") or {}
		try:
			user = resolve_identity(
				bearer=_bearer_from(scope, auth_payload),
				dev_user_id=auth_payload.get("userId") or _header(scope, "x-user-id"),
			)
		except HTTPException:
			user = None
		if user is None:
			raise socketio.exceptions.ConnectionRefusedError("unauthorized")
		async with self._lock:
			self._sessions[sid] = user
			self._memberships[sid] = {}
		obs_metrics.socket_connected(self.namespace)
		logger.info("chat socket connected", extra={"sid": sid, "user_id": user.id})

	async def on_disconnect(self, sid: str, reason=None) -> None:
		async with self._lock:
			user = self._sessions.pop(sid, None)
			groups = {room.group for room in self._memberships.pop(sid, {}).values()}
			self._publish_group_count()
		if user is None:
			return
		obs_metrics.socket_disconnected(self.namespace)
		for group in groups:
			await self.leave_room(sid, group)
		logger.info("chat socket disconnected", extra={"sid": sid, "user_id": user.id, "reason": str(reason)})

	def _publish_group_count(self) -> None:
		groups = {room.group for joined in self._memberships.values() for room in joined.values()}
		obs_metrics.set_socket_groups(len(groups))

	async def _emit_error(self, sid: str, event: str, reason: str) -> None:
		await self.emit("error", {"event": event, "reason": reason}, room=sid)

	async def _joined_room(self, sid: str, match_id: str) -> Optional[ChatRoom]:
		async with self._lock:
			return self._memberships.get(sid, {}).get(match_id)

	async def on_join(self, sid: str, payload) -> None:
		obs_metrics.socket_event(self.namespace, "join")
		user = self._sessions.get(sid)
		match_id = _match_id(payload)
		if user is None:
			await self._emit_error(sid, "join", "unauthenticated")
			return
		if not match_id:
			await self._emit_error(sid, "join", "match_id_required")
			return
		try:
			room, vessel_id = await self._chat.open_room(match_id, user)
		except FloatrError as exc:
			await self._emit_error(sid, "join", exc.reason)
			return
		async with self._lock:
			if sid not in self._sessions:
				return
			self._memberships.setdefault(sid, {})[match_id] = room
			self._publish_group_count()
		await self.enter_room(sid, room.group)
		await self.emit(
			"joined",
			{"matchId": match_id, "roomId": room.id, "vesselId": vessel_id},
			room=sid,
		)

	async def on_send(self, sid: str, payload) -> None:
		obs_metrics.socket_event(self.namespace, "send")
		user = self._sessions.get(sid)
		match_id = _match_id(payload)
		if user is None or await self._joined_room(sid, match_id) is None:
			await self._emit_error(sid, "send", "not_joined")
			return
		try:
			message = await self._chat.post_message(
				match_id,
				user,
				payload.get("content"),
				payload.get("type"),
				channel="socket",
				skip_sid=sid,
			)
		except (FloatrError, RateLimitExceeded) as exc:
			await self._emit_error(sid, "send", exc.reason)
			return
		await self.emit("message", {"matchId": match_id, **message.to_wire()}, room=sid)

	async def on_markRead(self, sid: str, payload) -> None:  # noqa: N802 (wire event name)
		obs_metrics.socket_event(self.namespace, "markRead")
		user = self._sessions.get(sid)
		match_id = _match_id(payload)
		if user is None or await self._joined_room(sid, match_id) is None:
			await self._emit_error(sid, "markRead", "not_joined")
			return
		message_id = str(payload.get("messageId") or payload.get("message_id") or "").strip()
		if not message_id:
			await self._emit_error(sid, "markRead", "message_id_required")
			return
		try:
			await self._chat.mark_read(match_id, user, message_id, skip_sid=sid)
		except FloatrError as exc:
			await self._emit_error(sid, "markRead", exc.reason)

	async def on_typing(self, sid: str, payload) -> None:
		obs_metrics.socket_event(self.namespace, "typing")
		user = self._sessions.get(sid)
		match_id = _match_id(payload)
		room = await self._joined_room(sid, match_id) if user else None
		if room is None:
			await self._emit_error(sid, "typing", "not_joined")
			return
		await self.emit(
			"typing",
			{"roomId": room.id, "userId": user.id, "isTyping": bool(payload.get("isTyping"))},
			room=room.group,
			skip_sid=sid,
		)

	async def publish_message(self, room: ChatRoom, message: Message, *, skip_sid: Optional[str] = None) -> None:
		obs_metrics.socket_event(self.namespace, "message")
		await self.emit("message", message.to_wire(), room=room.group, skip_sid=skip_sid)

	async def publish_read(self, room: ChatRoom, receipt: ReadReceiptOut, *, skip_sid: Optional[str] = None) -> None:
		obs_metrics.socket_event(self.namespace, "read")
		payload = {
			"roomId": room.id,
			"messageId": receipt.message_id,
			"vesselId": receipt.reader_vessel_id,
			"readBy": receipt.read_by,
		}
		await self.emit("read", payload, room=room.group, skip_sid=skip_sid)
