# This project was developed with assistance from AI tools.
"""Health check routes."""

from db import DatabaseService, get_db_service
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from .. import __version__

router = APIRouter()


class HealthItem(BaseModel):
    name: str
    status: str
    message: str
    version: str | None = None


@router.get("/", response_model=list[HealthItem])
async def health(db_service: DatabaseService = Depends(get_db_service)) -> list[HealthItem]:
    """Report API liveness and database connectivity."""
    db_health = await db_service.health_check()
    return [
        HealthItem(name="API", status="healthy", message="API is running", version=__version__),
        HealthItem(**db_health),
    ]
