"""
Admin / observability endpoints
===============================

GET /api/v1/admin/health -- liveness plus a database round-trip
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from slidebid.api.dependencies import get_db
from slidebid.api.schemas import HealthResponse, Outcome

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/health", response_model=Outcome[HealthResponse], summary="Health check")
async def health(db: AsyncSession = Depends(get_db)):
    await db.execute(text("SELECT 1"))
    return Outcome(data=HealthResponse())
