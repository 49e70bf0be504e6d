from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from floatr.domain.chat.repo import ChatRepository
from floatr.domain.chat.service import ChatRoomService, normalise_content
from floatr.domain.common.errors import (
	AuthorizationError,
	ConflictError,
	MessageRateLimitExceeded,
	NotFoundError,
	ValidationError,
)
from floatr.domain.matching.repo import MatchRepository
from floatr.domain.matching.service import SwipeMatchEngine
from floatr.infra.auth import AuthenticatedUser
from floatr.settings import settings

ALICE = AuthenticatedUser(id="captain-a")
BOB = AuthenticatedUser(id="captain-b")
CAROL = AuthenticatedUser(id="captain-c")
T0 = datetime(2026, 7, 1, 12, 0, tzinfo=timezone.utc)


class RecordingGateway:
	def __init__(self) -> None:
		self.messages: list = []
		self.reads: list = []

	async def publish_message(self, room, message, *, skip_sid=None):
		self.messages.append((room.group, message.id, skip_sid))

	async def publish_read(self, room, receipt, *, skip_sid=None):
		self.reads.append((room.group, receipt.message_id, receipt.reader_vessel_id))


async def _match(engine, first, first_vessel, second, second_vessel, *, now=T0):
	await engine.record_swipe(first, first_vessel, second_vessel, "like", now=now)
	response = await engine.record_swipe(second, second_vessel, first_vessel, "like", now=now)
	return response.match.id


@pytest_asyncio.fixture
async def matched(seed_vessel):
	await seed_vessel("vessel-a", ALICE.id)
	await seed_vessel("vessel-b", BOB.id)
	await seed_vessel("vessel-c", CAROL.id)
	return await _match(SwipeMatchEngine(), ALICE, "vessel-a", BOB, "vessel-b")


@pytest.fixture
def gateway():
	return RecordingGateway()


@pytest.fixture
def chat(gateway):
	return ChatRoomService(gateway=gateway)


def test_normalise_content_trims_and_bounds():
	assert normalise_content("  ahoy  ") == "ahoy"
	with pytest.raises(ValidationError) as empty:
		normalise_content("   ")
	assert empty.value.reason == "content_required"
	with pytest.raises(ValidationError) as long:
		normalise_content("x" * (settings.chat_message_max_length + 1))
	assert long.value.reason == "content_too_long"


@pytest.mark.asyncio
async def test_room_is_created_once_per_pair(matched, chat):
	first = await chat.get_or_create_room(matched)
	second = await chat.get_or_create_room(matched)

	assert first.id == second.id
	assert first.pair_key == "pair:vessel-a:vessel-b"
	assert first.group == "match:pair:vessel-a:vessel-b"


@pytest.mark.asyncio
async def test_post_message_stores_and_fans_out(matched, chat, gateway, fake_redis):
	message = await chat.post_message(matched, ALICE, " hello ", skip_sid="sid-1")

	assert message.content == "hello"
	assert message.sender_vessel_id == "vessel-a"
	assert message.read_by == ["vessel-a"]
	assert gateway.messages == [("match:pair:vessel-a:vessel-b", message.id, "sid-1")]
	outbound = await fake_redis.xrange("x:floatr.outbound")
	assert outbound[-1][1]["event"] == "chat_message"
	assert outbound[-1][1]["recipient_vessel_id"] == "vessel-b"


@pytest.mark.asyncio
async def test_post_message_rejects_outsiders_and_unknown_matches(matched, chat):
	with pytest.raises(AuthorizationError) as outsider:
		await chat.post_message(matched, CAROL, "let me in")
	assert outsider.value.reason == "not_room_participant"

	with pytest.raises(NotFoundError):
		await chat.post_message("missing-match", ALICE, "hello")

	with pytest.raises(ValidationError):
		await chat.post_message(matched, ALICE, "hello", "hologram")


@pytest.mark.asyncio
async def test_pending_match_has_no_room(matched, chat):
	response = await SwipeMatchEngine().record_swipe(ALICE, "vessel-a", "vessel-c", "like")
	assert response.match is None
	pending = await MatchRepository().get_pair_match("vessel-a", "vessel-c")
	assert pending is not None and not pending.is_matched

	with pytest.raises(ConflictError) as excinfo:
		await chat.post_message(pending.id, ALICE, "hello?")
	assert excinfo.value.reason == "match_not_active"
	assert await ChatRepository().get_room_by_pair("pair:vessel-a:vessel-c") is None


@pytest.mark.asyncio
async def test_read_receipts_are_monotonic(matched, chat, gateway):
	message = await chat.post_message(matched, ALICE, "hello")

	first = await chat.mark_read(matched, BOB, message.id)
	again = await chat.mark_read(matched, BOB, message.id)

	assert first.read_by == ["vessel-a", "vessel-b"]
	assert again.read_by == ["vessel-a", "vessel-b"]
	assert gateway.reads[0] == ("match:pair:vessel-a:vessel-b", message.id, "vessel-b")
	with pytest.raises(NotFoundError):
		await chat.mark_read(matched, BOB, "no-such-message")


@pytest.mark.asyncio
async def test_listing_messages_marks_them_read(matched, chat):
	for idx in range(3):
		await chat.post_message(matched, ALICE, f"msg {idx}", now=T0 + timedelta(seconds=idx))

	page = await chat.list_messages(matched, BOB, limit=2)
	assert [m.content for m in page.items] == ["msg 0", "msg 1"]
	assert page.next_after == page.items[-1].id
	assert all("vessel-b" in m.read_by for m in page.items)

	rest = await chat.list_messages(matched, BOB, after=page.next_after)
	assert [m.content for m in rest.items] == ["msg 2"]
	assert rest.next_after is None

	with pytest.raises(NotFoundError) as unknown:
		await chat.list_messages(matched, BOB, after="no-such-message")
	assert unknown.value.reason == "cursor_not_found"


@pytest.mark.asyncio
async def test_conversations_track_unread_and_recent_activity(matched, chat):
	engine = SwipeMatchEngine()
	await _match(engine, ALICE, "vessel-a", CAROL, "vessel-c", now=T0 + timedelta(hours=1))

	inbox = await chat.list_conversations(ALICE)
	assert [c.counterpart.id for c in inbox.items] == ["vessel-c", "vessel-b"]
	assert all(c.my_vessel_id == "vessel-a" for c in inbox.items)
	assert inbox.total_unread == 0

	await chat.post_message(matched, BOB, "ahoy", now=T0 + timedelta(hours=2))

	inbox = await chat.list_conversations(ALICE)
	assert [c.counterpart.id for c in inbox.items] == ["vessel-b", "vessel-c"]
	assert inbox.items[0].unread_count == 1
	assert inbox.items[0].last_message.content == "ahoy"
	assert inbox.total_unread == 1

	bob_inbox = await chat.list_conversations(BOB)
	assert bob_inbox.items[0].unread_count == 0

	await chat.mark_room_read(matched, ALICE)
	assert (await chat.list_conversations(ALICE)).total_unread == 0


@pytest.mark.asyncio
async def test_message_rate_limit(matched, chat, monkeypatch):
	monkeypatch.setattr(settings, "message_send_per_minute", 1)
	await chat.post_message(matched, ALICE, "one")

	with pytest.raises(MessageRateLimitExceeded):
		await chat.post_message(matched, ALICE, "two")
