"""FastAPI dependencies."""

from functools import lru_cache
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.celery_app import celery_app
from app.core.locks import LocalLockManager, LockManager, RedisLockManager
from app.core.redis_client import get_redis_client
from app.core.security import decode_access_token
from app.database import get_db
from app.repositories.appointment_repository import AppointmentRepository
from app.services.appointment_service import AppointmentService
from app.services.notification_service import NotificationService
from app.services.user_service import UserService

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
) -> dict:
    """
    Get current user from database.

    Args:
        user_id: User ID from JWT token
        db: Database session

    Returns:
        User data from database

    Raises:
        HTTPException: If user not found or inactive
    """
    user = await UserService.get_user_by_id(db, user_id)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user["is_active"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    return user


@lru_cache
def get_lock_manager() -> LockManager:
    """
    Get the process-wide lock manager for booking.

    Returns:
        Redis-backed manager, or an in-process one when ``LOCK_BACKEND=local``
    """
    options = {
        "ttl_ms": settings.booking_lock_ttl_ms,
        "retry_count": settings.booking_lock_retry_count,
        "retry_delay_ms": settings.booking_lock_retry_delay_ms,
    }
    if settings.lock_backend == "local":
        return LocalLockManager(**options)
    return RedisLockManager(get_redis_client(), **options)


def get_notification_service() -> NotificationService:
    """Get the email task producer."""
    return NotificationService(celery_app, max_retries=settings.notification_publish_retries)


def get_appointment_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    lock_manager: Annotated[LockManager, Depends(get_lock_manager)],
    notifier: Annotated[NotificationService, Depends(get_notification_service)],
) -> AppointmentService:
    """Wire the appointment service for one request."""
    return AppointmentService(AppointmentRepository(db), lock_manager, notifier)


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUserId = Annotated[UUID, Depends(get_current_user_id)]
CurrentUser = Annotated[dict, Depends(get_current_user)]
AppointmentServiceDep = Annotated[AppointmentService, Depends(get_appointment_service)]
