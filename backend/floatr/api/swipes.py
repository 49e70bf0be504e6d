"""Swipe and match endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from floatr.domain.matching import service
from floatr.domain.matching.schemas import MatchHistoryResponse, MatchOut, SwipeRequest, SwipeResponse
from floatr.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["matching"])


@router.post("/swipes", response_model=SwipeResponse, status_code=status.HTTP_201_CREATED)
async def record_swipe(
	payload: SwipeRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> SwipeResponse:
	return await service.record_swipe(auth_user, payload.acting_vessel_id, payload.target_vessel_id, payload.action)


@router.get("/matches", response_model=MatchHistoryResponse)
async def list_matches(
	vessel_id: Optional[str] = Query(default=None, alias="vesselId"),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> MatchHistoryResponse:
	return await service.list_matches(auth_user, vessel_id)


@router.post("/matches/{match_id}/unmatch", response_model=list[MatchOut])
async def unmatch(
	match_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> list[MatchOut]:
	changed = await service.end_match(match_id, auth_user)
	return [MatchOut.from_model(match) for match in changed]
