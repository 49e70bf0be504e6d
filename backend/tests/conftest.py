import asyncio
import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from floatr.domain.chat import repo as chat_repo
from floatr.domain.common import blocks
from floatr.domain.geo import index as geo_index
from floatr.domain.matching import repo as match_repo
from floatr.domain.vessels import repo as vessel_repo
from floatr.domain.vessels.models import BoatType, Captain, Vessel, Vibe
from floatr.infra import postgres
from floatr.main import app
from floatr.settings import settings


# Ensure a selector-based event loop policy on Windows to avoid Proactor issues with async IO
if hasattr(asyncio, "WindowsSelectorEventLoopPolicy"):
	asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from floatr.infra.redis import redis_client, set_redis_client
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	postgres.set_pool(None)
	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Ensure a consistent test environment.

	API tests authenticate via the X-User-Id header, which is only accepted in dev mode.
	"""
	original_env = settings.environment
	original_expiry = settings.match_expiry_enabled
	settings.environment = "dev"
	settings.match_expiry_enabled = False
	try:
		yield
	finally:
		settings.environment = original_env
		settings.match_expiry_enabled = original_expiry


@pytest_asyncio.fixture(autouse=True)
async def reset_memory_stores():
	yield
	await geo_index.reset_memory_state()
	await blocks.reset_memory_state()
	await vessel_repo.reset_memory_state()
	await match_repo.reset_memory_state()
	await chat_repo.reset_memory_state()


@pytest.fixture
def seed_vessel():
	"""Register a verified captain (if needed) and an active vessel in the in-memory directory."""

	async def _seed(
		vessel_id: str,
		owner_id: str,
		*,
		name: str | None = None,
		boat_type: BoatType = BoatType.SAILBOAT,
		vibe: Vibe = Vibe.CHILL,
		verified: bool = True,
		active: bool = True,
		captain_active: bool = True,
	) -> Vessel:
		await vessel_repo.register_captain(
			Captain(
				id=owner_id,
				display_name=f"Captain {owner_id}",
				avatar_url=None,
				verified=verified,
				active=captain_active,
			)
		)
		return await vessel_repo.register_vessel(
			Vessel(
				id=vessel_id,
				owner_id=owner_id,
				name=name or f"Vessel {vessel_id}",
				boat_type=boat_type,
				capacity=6,
				vibe=vibe,
				amenities=["cooler", "speaker", "ladder", "shade"],
				images=["https://img.example/a.jpg", "https://img.example/b.jpg"],
				active=active,
			)
		)

	return _seed


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
