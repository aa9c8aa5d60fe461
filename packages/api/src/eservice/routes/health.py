# This project was developed with assistance from AI tools.
"""Liveness and database health endpoints."""

from db import DatabaseService, get_db_service
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from .. import __version__
from ..schemas.health import HealthResponse

router = APIRouter()


async def _database_health(db_service: DatabaseService) -> HealthResponse:
    healthy = await db_service.health_check()
    backend = db_service.engine.dialect.name
    return HealthResponse(
        name="Database",
        status="healthy" if healthy else "unhealthy",
        message=f"{backend} reachable" if healthy else f"{backend} unreachable",
    )


@router.get("/", response_model=list[HealthResponse])
async def health(
    db_service: DatabaseService = Depends(get_db_service),
) -> list[HealthResponse]:
    """API and database status."""
    return [
        HealthResponse(name="API", status="healthy", message="API is running", version=__version__),
        await _database_health(db_service),
    ]


@router.get("/db", response_model=HealthResponse)
async def health_db(db_service: DatabaseService = Depends(get_db_service)):
    """Database ping; 503 when the database cannot be reached."""
    item = await _database_health(db_service)
    if item.status != "healthy":
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=item.model_dump()
        )
    return item
