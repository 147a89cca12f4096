"""
FastAPI dependencies for database sessions, caller identity and services.

Identity is optional on every endpoint. When a bearer token is supplied it
must verify, and its ``role`` claim is the authority for role-filtered views.
A non-admin token may only view its own subject.
Without a token the legacy user id prefix (``ADM``, ``VEN``, ``CSR``,
``CUS``) is used instead.
"""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.logging import get_logger, set_user_id
from marketplace.core.security import TokenError, decode_token
from marketplace.database.connection import get_db
from marketplace.schemas.auth import TokenPayload
from marketplace.services.catalog.repository import ProductRepository
from marketplace.services.catalog.service import CatalogService
from marketplace.services.notifications.repository import DeviceTokenRepository
from marketplace.services.notifications.service import NotificationService
from marketplace.services.orders.enums import UserRole
from marketplace.services.orders.service import OrderService

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)

DatabaseSession = Annotated[AsyncSession, Depends(get_db)]


async def get_token_payload(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> Optional[TokenPayload]:
    """
    Verify an optional bearer token.

    Args:
        credentials: HTTP Bearer token from Authorization header, if any

    Returns:
        TokenPayload if a token was supplied, None otherwise

    Raises:
        HTTPException: 401 if a supplied token is invalid or expired
    """
    if credentials is None:
        return None

    try:
        claims = decode_token(credentials.credentials)
    except TokenError as e:
        logger.warning("Authentication failed", code=e.code)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    subject = claims.get("sub")
    if not subject:
        logger.warning("Authentication failed: Token missing 'sub' claim")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    set_user_id(str(subject))
    return TokenPayload(sub=str(subject), role=claims.get("role"))


OptionalToken = Annotated[Optional[TokenPayload], Depends(get_token_payload)]


def resolve_role(user_id: str, token: Optional[TokenPayload]) -> Optional[UserRole]:
    """
    Determine the caller's role.

    Args:
        user_id: User id from the request path
        token: Verified token claims, if a token was supplied

    Returns:
        Role from the token claim, else from the user id prefix; None when
        neither names a known role

    Raises:
        HTTPException: 403 if a non-admin token belongs to another user
    """
    if token is not None:
        if not token.role:
            return None
        try:
            role = UserRole.from_string(token.role)
        except ValueError:
            logger.warning("Unknown role claim", role=token.role, subject=token.sub)
            return None
        if role != UserRole.ADMIN and token.sub != user_id:
            logger.warning(
                "Token subject does not match requested user",
                subject=token.sub,
                user_id=user_id,
                role=role.value,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not authorized to view orders for this user",
            )
        return role
    return UserRole.from_user_id(user_id)


def get_notification_service(db: DatabaseSession) -> NotificationService:
    """Build the notification service for this request."""
    return NotificationService(DeviceTokenRepository(db))


NotificationServiceDep = Annotated[NotificationService, Depends(get_notification_service)]


def get_order_service(
    db: DatabaseSession,
    notifications: NotificationServiceDep,
) -> OrderService:
    """Build the order service for this request."""
    return OrderService.from_session(db, notifications=notifications)


def get_catalog_service(db: DatabaseSession) -> CatalogService:
    """Build the catalog service for this request."""
    return CatalogService(ProductRepository(db))


def get_device_token_repository(db: DatabaseSession) -> DeviceTokenRepository:
    """Build the device token repository for this request."""
    return DeviceTokenRepository(db)


OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
CatalogServiceDep = Annotated[CatalogService, Depends(get_catalog_service)]
DeviceTokenRepositoryDep = Annotated[
    DeviceTokenRepository, Depends(get_device_token_repository)
]
