import pytest

from floatr.infra.rate_limit import allow


@pytest.mark.asyncio
async def test_rate_limit_allows_within_budget():
	assert await allow("swipe", "u5", limit=2, window_seconds=60)
	assert await allow("swipe", "u5", limit=2, window_seconds=60)


@pytest.mark.asyncio
async def test_rate_limit_blocks_when_budget_exhausted():
	await allow("chat_send", "u6", limit=1, window_seconds=60)
	assert not await allow("chat_send", "u6", limit=1, window_seconds=60)


@pytest.mark.asyncio
async def test_rate_limit_budgets_are_per_actor_and_kind():
	await allow("swipe", "u7", limit=1, window_seconds=60)
	assert await allow("swipe", "u8", limit=1, window_seconds=60)
	assert await allow("chat_send", "u7", limit=1, window_seconds=60)


@pytest.mark.asyncio
async def test_rate_limit_zero_budget_denies():
	assert not await allow("swipe", "u9", limit=0)
