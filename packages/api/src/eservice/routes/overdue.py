# This project was developed with assistance from AI tools.
"""Manual overdue sweep trigger and overdue statistics."""

import logging

from db import get_db
from db.enums import UserRole
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..middleware.auth import CurrentUser, require_roles
from ..schemas.overdue import OverdueStatisticsResponse, SweepReportResponse
from ..services.overdue import OverdueSweep, get_overdue_sweep

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/sweep",
    response_model=SweepReportResponse,
    dependencies=[Depends(require_roles(UserRole.ADMIN))],
)
async def run_sweep(
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
    sweep: OverdueSweep = Depends(get_overdue_sweep),
) -> SweepReportResponse:
    """Run one overdue sweep pass now, outside the scheduler."""
    logger.info("Manual overdue sweep requested by %s", user.user_id)
    report = await sweep.run(session)
    return SweepReportResponse.model_validate(report)


@router.get(
    "/statistics",
    response_model=OverdueStatisticsResponse,
    dependencies=[Depends(require_roles(UserRole.ADMIN, UserRole.DEDE_HEAD))],
)
async def overdue_statistics(
    session: AsyncSession = Depends(get_db),
    sweep: OverdueSweep = Depends(get_overdue_sweep),
) -> OverdueStatisticsResponse:
    stats = await sweep.get_overdue_statistics(session)
    return OverdueStatisticsResponse(**stats)
