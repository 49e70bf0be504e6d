from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
import socketio

from floatr.domain.chat.gateway import RealtimeGateway
from floatr.domain.chat.repo import ChatRepository
from floatr.domain.chat.service import ChatRoomService
from floatr.domain.matching.repo import MatchRepository
from floatr.domain.matching.service import SwipeMatchEngine
from floatr.infra import jwt as jwt_helper
from floatr.infra.auth import AuthenticatedUser
from floatr.settings import settings

ALICE = AuthenticatedUser(id="captain-a")
BOB = AuthenticatedUser(id="captain-b")
GROUP = "match:pair:vessel-a:vessel-b"


def _scope(**headers: str) -> dict:
	return {"asgi.scope": {"headers": [(k.replace("_", "-").encode(), v.encode()) for k, v in headers.items()]}}


def _emitted(namespace, event: str) -> list:
	return [call for call in namespace.emit.await_args_list if call.args[0] == event]


@pytest.fixture
def namespace():
	server = socketio.AsyncServer(async_mode="asgi")
	chat = ChatRoomService()
	gateway = RealtimeGateway(chat)
	chat.set_gateway(gateway)
	server.register_namespace(gateway)
	gateway.emit = AsyncMock()
	gateway.enter_room = AsyncMock()
	gateway.leave_room = AsyncMock()
	return gateway


@pytest_asyncio.fixture
async def match_id(seed_vessel):
	await seed_vessel("vessel-a", ALICE.id)
	await seed_vessel("vessel-b", BOB.id)
	await seed_vessel("vessel-c", "captain-c")
	engine = SwipeMatchEngine()
	await engine.record_swipe(ALICE, "vessel-a", "vessel-b", "like")
	response = await engine.record_swipe(BOB, "vessel-b", "vessel-a", "like")
	return response.match.id


@pytest.mark.asyncio
async def test_connect_requires_identity(namespace):
	with pytest.raises(socketio.exceptions.ConnectionRefusedError):
		await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": []}})


@pytest.mark.asyncio
async def test_connect_rejects_dev_header_outside_dev(namespace, monkeypatch):
	monkeypatch.setattr(settings, "environment", "prod")

	with pytest.raises(socketio.exceptions.ConnectionRefusedError):
		await namespace.trigger_event("connect", "sid-1", _scope(x_user_id="captain-a"))


@pytest.mark.asyncio
async def test_connect_with_bearer_token(namespace):
	token = jwt_helper.encode_access({"sub": "captain-a"})

	await namespace.trigger_event("connect", "sid-1", _scope(authorization=f"Bearer {token}"))

	assert namespace.sessions["sid-1"].id == "captain-a"


@pytest.mark.asyncio
async def test_connect_with_invalid_token_is_refused(namespace):
	with pytest.raises(socketio.exceptions.ConnectionRefusedError):
		await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": []}}, {"token": "garbage"})


@pytest.mark.asyncio
async def test_join_enters_the_pair_group(namespace, match_id):
	await namespace.trigger_event("connect", "sid-a", _scope(x_user_id=ALICE.id))

	await namespace.trigger_event("join", "sid-a", {"matchId": match_id})

	namespace.enter_room.assert_awaited_once_with("sid-a", GROUP)
	joined = _emitted(namespace, "joined")
	assert joined[0].args[1]["vesselId"] == "vessel-a"
	assert await namespace.groups_for("sid-a") == {GROUP}


@pytest.mark.asyncio
async def test_join_by_outsider_emits_error(namespace, match_id):
	await namespace.trigger_event("connect", "sid-c", _scope(x_user_id="captain-c"))

	await namespace.trigger_event("join", "sid-c", {"matchId": match_id})

	namespace.enter_room.assert_not_awaited()
	errors = _emitted(namespace, "error")
	assert errors[0].args[1] == {"event": "join", "reason": "not_room_participant"}


@pytest.mark.asyncio
async def test_send_requires_join(namespace, match_id):
	await namespace.trigger_event("connect", "sid-a", _scope(x_user_id=ALICE.id))

	await namespace.trigger_event("send", "sid-a", {"matchId": match_id, "content": "hi"})

	assert _emitted(namespace, "error")[0].args[1]["reason"] == "not_joined"


@pytest.mark.asyncio
async def test_send_broadcasts_to_group_and_echoes(namespace, match_id):
	await namespace.trigger_event("connect", "sid-a", _scope(x_user_id=ALICE.id))
	await namespace.trigger_event("join", "sid-a", {"matchId": match_id})

	await namespace.trigger_event("send", "sid-a", {"matchId": match_id, "content": "ahoy"})

	messages = _emitted(namespace, "message")
	assert len(messages) == 2
	broadcast, echo = messages
	assert broadcast.kwargs == {"room": GROUP, "skip_sid": "sid-a"}
	assert broadcast.args[1]["content"] == "ahoy"
	assert echo.kwargs == {"room": "sid-a"}
	assert echo.args[1]["id"] == broadcast.args[1]["id"]


@pytest.mark.asyncio
async def test_send_with_empty_content_emits_error(namespace, match_id):
	await namespace.trigger_event("connect", "sid-a", _scope(x_user_id=ALICE.id))
	await namespace.trigger_event("join", "sid-a", {"matchId": match_id})

	await namespace.trigger_event("send", "sid-a", {"matchId": match_id, "content": "   "})

	assert _emitted(namespace, "message") == []
	assert _emitted(namespace, "error")[0].args[1] == {"event": "send", "reason": "content_required"}


@pytest.mark.asyncio
async def test_typing_skips_the_sender(namespace, match_id):
	await namespace.trigger_event("connect", "sid-b", _scope(x_user_id=BOB.id))
	await namespace.trigger_event("join", "sid-b", {"matchId": match_id})

	room_id = _emitted(namespace, "joined")[0].args[1]["roomId"]

	await namespace.trigger_event("typing", "sid-b", {"matchId": match_id, "isTyping": True})

	typing = _emitted(namespace, "typing")[0]
	assert typing.args[1] == {"roomId": room_id, "userId": BOB.id, "isTyping": True}
	assert typing.kwargs == {"room": GROUP, "skip_sid": "sid-b"}


@pytest.mark.asyncio
async def test_disconnect_leaves_groups(namespace, match_id):
	await namespace.trigger_event("connect", "sid-a", _scope(x_user_id=ALICE.id))
	await namespace.trigger_event("join", "sid-a", {"matchId": match_id})

	await namespace.trigger_event("disconnect", "sid-a", "client disconnect")

	namespace.leave_room.assert_awaited_once_with("sid-a", GROUP)
	assert "sid-a" not in namespace.sessions


@pytest.mark.asyncio
async def test_broadcast_reaches_a_captain_joined_through_their_own_match_row(namespace, match_id):
	repo = MatchRepository()
	alice_match = (await repo.get_pair_match("vessel-a", "vessel-b")).id
	bob_match = (await repo.get_pair_match("vessel-b", "vessel-a")).id
	assert alice_match != bob_match
	await namespace.trigger_event("connect", "sid-a", _scope(x_user_id=ALICE.id))
	await namespace.trigger_event("connect", "sid-b", _scope(x_user_id=BOB.id))
	await namespace.trigger_event("join", "sid-a", {"matchId": alice_match})
	await namespace.trigger_event("join", "sid-b", {"matchId": bob_match})
	alice_joined, bob_joined = (call.args[1] for call in _emitted(namespace, "joined"))
	assert alice_joined["roomId"] == bob_joined["roomId"]

	await namespace.trigger_event("send", "sid-a", {"matchId": alice_match, "content": "hello"})

	broadcast, echo = _emitted(namespace, "message")
	assert broadcast.kwargs == {"room": GROUP, "skip_sid": "sid-a"}
	assert broadcast.args[1]["roomId"] == bob_joined["roomId"]
	assert broadcast.args[1]["senderVesselId"] == "vessel-a"
	assert "matchId" not in broadcast.args[1]
	assert echo.args[1]["matchId"] == alice_match


@pytest.mark.asyncio
async def test_mark_read_persists_and_skips_the_reader(namespace, match_id):
	await namespace.trigger_event("connect", "sid-a", _scope(x_user_id=ALICE.id))
	await namespace.trigger_event("connect", "sid-b", _scope(x_user_id=BOB.id))
	await namespace.trigger_event("join", "sid-a", {"matchId": match_id})
	await namespace.trigger_event("join", "sid-b", {"matchId": match_id})
	await namespace.trigger_event("send", "sid-a", {"matchId": match_id, "content": "ahoy"})
	message_id = _emitted(namespace, "message")[0].args[1]["id"]

	await namespace.trigger_event("markRead", "sid-b", {"matchId": match_id, "messageId": message_id})

	read = _emitted(namespace, "read")[0]
	assert read.kwargs == {"room": GROUP, "skip_sid": "sid-b"}
	assert read.args[1]["messageId"] == message_id
	assert read.args[1]["vesselId"] == "vessel-b"
	assert read.args[1]["readBy"] == ["vessel-a", "vessel-b"]
	room = await ChatRepository().get_room_by_pair("pair:vessel-a:vessel-b")
	stored = await ChatRepository().list_messages(room.id, limit=10)
	assert stored[0].read_by == ["vessel-a", "vessel-b"]


@pytest.mark.asyncio
async def test_mark_read_errors(namespace, match_id):
	await namespace.trigger_event("connect", "sid-b", _scope(x_user_id=BOB.id))

	await namespace.trigger_event("markRead", "sid-b", {"matchId": match_id, "messageId": "m-1"})
	await namespace.trigger_event("join", "sid-b", {"matchId": match_id})
	await namespace.trigger_event("markRead", "sid-b", {"matchId": match_id})

	errors = [call.args[1] for call in _emitted(namespace, "error")]
	assert errors == [
		{"event": "markRead", "reason": "not_joined"},
		{"event": "markRead", "reason": "message_id_required"},
	]
	assert _emitted(namespace, "read") == []


@pytest.mark.asyncio
async def test_dropped_connection_leaves_every_group(namespace, match_id):
	engine = SwipeMatchEngine()
	await engine.record_swipe(ALICE, "vessel-a", "vessel-c", "like")
	second = await engine.record_swipe(AuthenticatedUser(id="captain-c"), "vessel-c", "vessel-a", "like")
	await namespace.trigger_event("connect", "sid-a", _scope(x_user_id=ALICE.id))
	await namespace.trigger_event("join", "sid-a", {"matchId": match_id})
	await namespace.trigger_event("join", "sid-a", {"matchId": second.match.id})
	assert await namespace.groups_for("sid-a") == {GROUP, "match:pair:vessel-a:vessel-c"}

	await namespace.trigger_event("disconnect", "sid-a", "ping timeout")

	left = {call.args[1] for call in namespace.leave_room.await_args_list}
	assert left == {GROUP, "match:pair:vessel-a:vessel-c"}
	assert await namespace.groups_for("sid-a") == set()
	assert "sid-a" not in namespace.sessions
