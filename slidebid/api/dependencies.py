"""FastAPI dependency injection helpers."""

from dataclasses import dataclass
from typing import AsyncIterator, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from slidebid.domain.enums import Role
from slidebid.domain.errors import ForbiddenError
from slidebid.services.negotiation import NegotiationEngine


@dataclass(frozen=True)
class Caller:
    id: int
    role: Role


def get_engine(request: Request) -> NegotiationEngine:
    return request.app.state.engine


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield an async DB session; commit on success, rollback on error."""
    async with get_engine(request).session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_caller(
    x_user_id: Optional[int] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Caller:
    """
    Identity asserted by the gateway in ``X-User-Id`` / ``X-User-Role``.

    Tokens are verified upstream; this layer only requires both headers.
    """
    if x_user_id is None or x_user_id <= 0 or not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing caller identity",
        )
    try:
        role = Role(x_user_role.strip().lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown role {x_user_role!r}",
        ) from None
    return Caller(id=x_user_id, role=role)


async def require_customer(caller: Caller = Depends(get_caller)) -> Caller:
    if caller.role is not Role.CUSTOMER:
        raise ForbiddenError("Customer access only")
    return caller


async def require_driver(caller: Caller = Depends(get_caller)) -> Caller:
    if caller.role is not Role.DRIVER:
        raise ForbiddenError("Driver access only")
    return caller
