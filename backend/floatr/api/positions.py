"""Vessel position reporting endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from floatr.domain.vessels import positions
from floatr.domain.vessels.schemas import PositionReport, PositionReportResult, VesselLocation
from floatr.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/positions", tags=["positions"])


@router.post("", response_model=PositionReportResult, status_code=status.HTTP_201_CREATED)
async def report_position(
	payload: PositionReport,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> PositionReportResult:
	return await positions.report(auth_user, payload)


@router.get("/me", response_model=List[VesselLocation])
async def my_positions(auth_user: AuthenticatedUser = Depends(get_current_user)) -> List[VesselLocation]:
	return await positions.my_locations(auth_user)
