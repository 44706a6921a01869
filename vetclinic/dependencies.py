"""FastAPI dependencies."""

from collections.abc import Awaitable, Callable
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from vetclinic.core.redis_client import CacheManager, get_cache_manager
from vetclinic.core.security import decode_access_token
from vetclinic.core.timeutils import Clock, utcnow
from vetclinic.database import get_db
from vetclinic.events.bus import EventBus, get_event_bus
from vetclinic.schemas.users import UserResponse, UserRole
from vetclinic.services.appointment_service import AppointmentService
from vetclinic.services.directory_service import DirectoryService

# Security
security = HTTPBearer()


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> UUID:
    """
    Extract and validate user ID from JWT token.

    Args:
        credentials: Bearer token credentials

    Returns:
        User ID from token

    Raises:
        HTTPException: If token is invalid or expired
    """
    token = credentials.credentials
    payload = decode_access_token(token)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id_str = payload.get("sub")
    if user_id_str is None or not isinstance(user_id_str, str):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return UUID(user_id_str)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user ID format",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_user(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UserResponse:
    """
    Get current user from database.

    The lookup bypasses the directory cache so a deactivated account is
    rejected immediately.

    Raises:
        HTTPException: If user not found or inactive
    """
    user = await DirectoryService(db).get_user(user_id)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    return user


def require_roles(*roles: UserRole) -> Callable[..., Awaitable[UserResponse]]:
    """
    Build a dependency that only admits users with one of the given roles.

    Args:
        roles: Allowed roles

    Returns:
        Dependency resolving to the authenticated user
    """

    async def checker(
        user: Annotated[UserResponse, Depends(get_current_user)],
    ) -> UserResponse:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not enough permissions",
            )
        return user

    return checker


def get_clock() -> Clock:
    """Clock used to judge whether appointment times are in the past."""
    return utcnow


async def get_appointment_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    cache: Annotated[CacheManager, Depends(get_cache_manager)],
    events: Annotated[EventBus, Depends(get_event_bus)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> AppointmentService:
    """Appointment service bound to the request's session."""
    return AppointmentService(db, events=events, clock=clock, cache=cache)


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[UserResponse, Depends(get_current_user)]
AnyStaff = Annotated[
    UserResponse, Depends(require_roles(UserRole.VETERINARIAN, UserRole.SECRETARY))
]
Veterinarian = Annotated[UserResponse, Depends(require_roles(UserRole.VETERINARIAN))]
Appointments = Annotated[AppointmentService, Depends(get_appointment_service)]
