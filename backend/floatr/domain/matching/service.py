"""Swipe/match engine: validates swipes, detects mutual likes and ends matches."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from floatr.domain.chat.repo import ChatRepository
from floatr.domain.common import blocks, events
from floatr.domain.common.errors import (
	AuthorizationError,
	ConflictError,
	NotFoundError,
	SwipeRateLimitExceeded,
	ValidationError,
)
from floatr.domain.discovery.schemas import CaptainSummary
from floatr.domain.matching.models import Match, MatchStatus, SwipeKind
from floatr.domain.matching.repo import MatchRepository
from floatr.domain.matching.schemas import (
	CounterpartVessel,
	MatchHistoryItem,
	MatchHistoryResponse,
	MatchOut,
	SwipeOut,
	SwipeResponse,
)
from floatr.domain.vessels.models import Captain, Vessel
from floatr.domain.vessels.repo import VesselDirectory
from floatr.infra import rate_limit
from floatr.infra.auth import AuthenticatedUser
from floatr.infra.retry import retry_read
from floatr.obs import metrics as obs_metrics
from floatr.settings import settings

logger = logging.getLogger(__name__)

_ENDED_STATUSES = (MatchStatus.EXPIRED, MatchStatus.UNMATCHED)


def counterpart_summary(vessel: Vessel, captain: Optional[Captain]) -> CounterpartVessel:
	return CounterpartVessel(
		id=vessel.id,
		name=vessel.name,
		boat_type=vessel.boat_type,
		vibe=vessel.vibe,
		images=vessel.images[:1],
		captain=CaptainSummary(
			id=captain.id,
			display_name=captain.display_name,
			avatar_url=captain.avatar_url,
			verified=captain.verified,
		)
		if captain
		else None,
	)


def _parse_action(action) -> SwipeKind:
	if isinstance(action, SwipeKind):
		return action
	try:
		return SwipeKind.parse(action)
	except ValueError:
		raise ValidationError("invalid_action", field="action") from None


class SwipeMatchEngine:
	def __init__(
		self,
		repo: MatchRepository | None = None,
		directory: VesselDirectory | None = None,
		chat_repo: ChatRepository | None = None,
	) -> None:
		self._repo = repo or MatchRepository()
		self._directory = directory or VesselDirectory()
		self._chat_repo = chat_repo or ChatRepository()

	async def _owned_vessel(self, user: AuthenticatedUser, vessel_id: str) -> Vessel:
		vessel = await self._directory.get_vessel(vessel_id)
		if vessel is None or not vessel.active:
			raise NotFoundError("vessel_not_found")
		if not vessel.is_owned_by(user.id):
			raise AuthorizationError("not_vessel_owner")
		return vessel

	async def record_swipe(
		self,
		actor: AuthenticatedUser,
		acting_vessel_id: str,
		target_vessel_id: str,
		action,
		*,
		now: Optional[datetime] = None,
	) -> SwipeResponse:
		kind = _parse_action(action)
		acting_vessel_id = str(acting_vessel_id or "").strip()
		target_vessel_id = str(target_vessel_id or "").strip()
		if not acting_vessel_id:
			raise ValidationError("acting_vessel_required", field="acting_vessel_id")
		if not target_vessel_id:
			raise ValidationError("target_vessel_required", field="target_vessel_id")
		if acting_vessel_id == target_vessel_id:
			obs_metrics.inc_swipe_reject("self")
			raise ValidationError("cannot_swipe_self", field="target_vessel_id")

		if not await rate_limit.allow(
			"swipe", actor.id, limit=settings.swipe_actions_per_minute, window_seconds=60
		):
			obs_metrics.inc_swipe_reject("rate_limited")
			raise SwipeRateLimitExceeded("swipe_rate_limited")

		await self._owned_vessel(actor, acting_vessel_id)
		target = await self._directory.get_vessel(target_vessel_id)
		if target is None or not target.active:
			raise NotFoundError("target_vessel_not_found")
		if target.owner_id == actor.id:
			obs_metrics.inc_swipe_reject("self")
			raise ValidationError("cannot_swipe_self", field="target_vessel_id")
		if target.owner_id in await blocks.load_block_set(actor.id):
			obs_metrics.inc_swipe_reject("blocked")
			raise AuthorizationError("blocked")

		now = now or datetime.now(timezone.utc)
		try:
			outcome = await self._repo.record_swipe(
				acting_vessel_id,
				target_vessel_id,
				kind,
				now=now,
				pending_ttl=timedelta(days=settings.match_pending_ttl_days),
			)
		except ConflictError:
			obs_metrics.inc_swipe_reject("duplicate")
			raise

		obs_metrics.inc_swipe(kind.value)
		counterpart = None
		if outcome.is_match:
			obs_metrics.inc_match_created()
			captains = await self._directory.get_captains([target.owner_id])
			counterpart = counterpart_summary(target, captains.get(target.owner_id))
			await events.outbound(
				"match_created",
				match_id=outcome.match.id,
				vessel_ids=[acting_vessel_id, target_vessel_id],
				user_ids=[actor.id, target.owner_id],
				matched_at=outcome.match.matched_at,
			)
		await events.audit(
			f"swipe_{kind.value}",
			user_id=actor.id,
			from_vessel_id=acting_vessel_id,
			to_vessel_id=target_vessel_id,
			action=kind.value,
			is_match=outcome.is_match,
		)
		return SwipeResponse(
			swipe=SwipeOut(id=outcome.swipe.id, action=kind, created_at=outcome.swipe.created_at),
			is_match=outcome.is_match,
			match=MatchOut.from_model(outcome.match) if outcome.is_match and outcome.match else None,
			counterpart=counterpart,
		)

	async def list_matches(
		self,
		user: AuthenticatedUser,
		vessel_id: Optional[str] = None,
	) -> MatchHistoryResponse:
		if vessel_id:
			owned = [await self._owned_vessel(user, vessel_id)]
		else:
			owned = await self._directory.list_owned(user.id)
		matches = await retry_read(self._repo.list_matched, [v.id for v in owned], op="list_matches")
		items = await self._with_counterparts(user, matches)
		return MatchHistoryResponse(items=items, total=len(items))

	async def _with_counterparts(self, user: AuthenticatedUser, matches: List[Match]) -> List[MatchHistoryItem]:
		if not matches:
			return []
		vessels = await self._directory.get_vessels(m.liked_vessel_id for m in matches)
		captains: Dict[str, Captain] = await self._directory.get_captains(v.owner_id for v in vessels.values())
		blocked = await blocks.load_block_set(user.id)
		items: List[MatchHistoryItem] = []
		for match in matches:
			vessel = vessels.get(match.liked_vessel_id)
			if vessel is None or vessel.owner_id in blocked:
				continue
			items.append(
				MatchHistoryItem(
					match=MatchOut.from_model(match),
					my_vessel_id=match.liker_vessel_id,
					counterpart=counterpart_summary(vessel, captains.get(vessel.owner_id)),
				)
			)
		return items

	async def get_match(self, match_id: str) -> Match:
		match = await retry_read(self._repo.get_match, match_id, op="get_match")
		if match is None:
			raise NotFoundError("match_not_found")
		return match

	async def expire_pending(self, now: Optional[datetime] = None) -> int:
		now = now or datetime.now(timezone.utc)
		count = await self._repo.expire_pending(now)
		obs_metrics.inc_matches_expired(count)
		if count:
			logger.info("pending matches expired", extra={"count": count})
		return count

	async def run_expiry_job(self) -> None:
		started = time.perf_counter()
		try:
			await self.expire_pending()
		except Exception:
			obs_metrics.record_job_run("match_expiry", result="error", duration_seconds=time.perf_counter() - started)
			logger.exception("match expiry job failed")
			return
		obs_metrics.record_job_run("match_expiry", result="ok", duration_seconds=time.perf_counter() - started)

	async def end_match(
		self,
		match_id: str,
		status: MatchStatus = MatchStatus.UNMATCHED,
		*,
		actor: Optional[AuthenticatedUser] = None,
	) -> List[Match]:
		"""Move both directions of a MATCHED pair to ``status`` and close its chat room."""
		if status not in _ENDED_STATUSES:
			raise ValidationError("invalid_end_status", field="status")
		match = await self.get_match(match_id)
		pair = match.pair
		if actor is not None:
			vessels = await self._directory.get_vessels(pair.participants())
			if not any(v.is_owned_by(actor.id) for v in vessels.values()):
				raise AuthorizationError("not_match_participant")
		if not match.is_matched:
			raise ConflictError("match_not_active")
		changed = await self._repo.end_pair(pair, status)
		await self._chat_repo.deactivate_room(pair.key)
		await events.audit(
			"match_ended",
			match_id=match.id,
			vessel_ids=list(pair.participants()),
			status=status.value,
			user_id=actor.id if actor else None,
		)
		return changed


_SERVICE = SwipeMatchEngine()


def get_engine() -> SwipeMatchEngine:
	return _SERVICE


async def record_swipe(
	actor: AuthenticatedUser,
	acting_vessel_id: str,
	target_vessel_id: str,
	action,
) -> SwipeResponse:
	return await _SERVICE.record_swipe(actor, acting_vessel_id, target_vessel_id, action)


async def list_matches(user: AuthenticatedUser, vessel_id: Optional[str] = None) -> MatchHistoryResponse:
	return await _SERVICE.list_matches(user, vessel_id)


async def end_match(match_id: str, actor: AuthenticatedUser) -> List[Match]:
	return await _SERVICE.end_match(match_id, MatchStatus.UNMATCHED, actor=actor)
