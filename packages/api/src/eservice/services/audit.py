# This project was developed with assistance from AI tools.
"""Status flow log (audit trail) service.

Append-only: rows are inserted by the transition service and never updated
or deleted. ``changed_by`` is NULL for moves made by the overdue sweep.
The sweep also reads the log to decide whether a request already reached
``overdue`` before driving the transition again.
"""

import logging
from datetime import datetime

from db import ServiceFlowLog
from db.enums import LicenseType, RequestStatus
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


async def write_flow_log(
    session: AsyncSession,
    *,
    request_id: int,
    license_type: LicenseType,
    previous_status: RequestStatus | None,
    new_status: RequestStatus,
    changed_by: str | None,
    reason: str | None = None,
) -> ServiceFlowLog:
    """Append one status change to the flow log.

    Args:
        session: Database session. The caller owns the commit.
        request_id: License request that changed.
        license_type: Variant tag of the request.
        previous_status: Status before the move; None marks the first event.
        new_status: Status after the move.
        changed_by: Acting user id, or None for an automatic move.
        reason: Free-text comment recorded with the change.

    Returns:
        The flushed ServiceFlowLog row.
    """
    entry = ServiceFlowLog(
        license_request_id=request_id,
        license_type=license_type,
        previous_status=previous_status,
        new_status=new_status,
        changed_by=changed_by,
        change_reason=reason,
    )
    session.add(entry)
    await session.flush()
    return entry


async def get_workflow_history(
    session: AsyncSession,
    request_id: int,
) -> list[ServiceFlowLog]:
    """Return every flow log entry for a request, oldest first."""
    stmt = (
        select(ServiceFlowLog)
        .where(ServiceFlowLog.license_request_id == request_id)
        .order_by(ServiceFlowLog.created_at.asc(), ServiceFlowLog.id.asc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def has_reached_status(
    session: AsyncSession,
    request_id: int,
    status: RequestStatus,
) -> bool:
    stmt = select(func.count(ServiceFlowLog.id)).where(
        ServiceFlowLog.license_request_id == request_id,
        ServiceFlowLog.new_status == status,
    )
    result = await session.execute(stmt)
    return result.scalar_one() > 0


async def get_flow_statistics(
    session: AsyncSession,
    *,
    since: datetime | None = None,
) -> dict:
    """Count status changes by target status, split into human and automatic.

    Returns:
        {"total": N, "automatic": N, "by_status": {"accepted": N, ...}}
    """
    stmt = select(ServiceFlowLog.new_status, func.count(ServiceFlowLog.id)).group_by(
        ServiceFlowLog.new_status
    )
    auto_stmt = select(func.count(ServiceFlowLog.id)).where(ServiceFlowLog.changed_by.is_(None))
    if since is not None:
        stmt = stmt.where(ServiceFlowLog.created_at >= since)
        auto_stmt = auto_stmt.where(ServiceFlowLog.created_at >= since)

    rows = (await session.execute(stmt)).all()
    by_status = {status.value: count for status, count in rows}
    automatic = (await session.execute(auto_stmt)).scalar_one()

    return {
        "total": sum(by_status.values()),
        "automatic": automatic,
        "by_status": by_status,
    }
