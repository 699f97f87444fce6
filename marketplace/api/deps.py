"""
Authorization & Authentication Dependencies

Provides:
- Access token validation
- Current user extraction
- Role checking
- Service providers (repositories and services wired to the app database)
"""

from __future__ import annotations
from functools import lru_cache
from typing import Dict

from fastapi import Depends, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from marketplace.core.database import get_database
from marketplace.core.redis import OtpCooldown
from marketplace.core.security import decode_access_token, oauth2_scheme
from marketplace.crud.documents import DocumentRepository
from marketplace.crud.locations import LocationRepository
from marketplace.crud.orders import OrderRepository
from marketplace.crud.otps import OtpRepository
from marketplace.crud.users import UserRepository
from marketplace.schemas.enums import UserRole
from marketplace.services.auth import AuthService
from marketplace.services.documents import DocumentService
from marketplace.services.locations import LocationService
from marketplace.services.notifications import Notifier
from marketplace.services.orders import OrderService
from marketplace.services.otp import OtpManager
from marketplace.utils.gridfs import FileStore
from marketplace.utils.ocr import AadhaarExtractor

UNAUTH = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Unauthorized",
    headers={"WWW-Authenticate": "Bearer"},
)
FORBID = HTTPException(
    status_code=status.HTTP_403_FORBIDDEN,
    detail="Forbidden: insufficient permissions",
)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def get_current_user(token: str = Depends(oauth2_scheme)) -> Dict:
    """
    Dependency: Extract and validate the currently authenticated user
    from a Bearer access token.

    Returns:
        Dict containing {user_id, role}

    Raises:
        HTTPException(401) if the token is invalid, expired or incomplete
    """
    payload = decode_access_token(token)
    if not payload or payload.get("type") != "access":
        raise UNAUTH

    required = ["user_id", "role"]
    if not all(k in payload for k in required):
        raise UNAUTH
    try:
        UserRole(payload["role"])
    except ValueError:
        raise UNAUTH

    return {k: payload[k] for k in required}


def require_role(*roles: UserRole):
    """
    Dependency factory for route-level authorization.

    Usage:
        @router.post("/{id}/assign", dependencies=[Depends(require_role(UserRole.ADMIN))])
        current = Depends(require_role(UserRole.PARTNER, UserRole.ADMIN))
    """
    allowed = {UserRole(r).value for r in roles}

    async def _dep(current: Dict = Depends(get_current_user)) -> Dict:
        if current["role"] not in allowed:
            raise FORBID
        return current

    return _dep


# ---------------------------------------------------------------------------
# Service providers
# ---------------------------------------------------------------------------

@lru_cache
def get_notifier() -> Notifier:
    return Notifier()


@lru_cache
def get_extractor() -> AadhaarExtractor:
    return AadhaarExtractor()


def get_cooldown() -> OtpCooldown:
    return OtpCooldown()


def get_otp_manager(database: AsyncIOMotorDatabase = Depends(get_database)) -> OtpManager:
    return OtpManager(OtpRepository(database))


def get_order_service(
    database: AsyncIOMotorDatabase = Depends(get_database),
    otp_manager: OtpManager = Depends(get_otp_manager),
    notifier: Notifier = Depends(get_notifier),
    cooldown: OtpCooldown = Depends(get_cooldown),
) -> OrderService:
    return OrderService(
        OrderRepository(database),
        otp_manager,
        UserRepository(database),
        notifier,
        cooldown=cooldown,
    )


def get_location_service(database: AsyncIOMotorDatabase = Depends(get_database)) -> LocationService:
    return LocationService(
        LocationRepository(database),
        UserRepository(database),
        orders=OrderRepository(database),
    )


def get_auth_service(
    database: AsyncIOMotorDatabase = Depends(get_database),
    otp_manager: OtpManager = Depends(get_otp_manager),
    notifier: Notifier = Depends(get_notifier),
    cooldown: OtpCooldown = Depends(get_cooldown),
) -> AuthService:
    return AuthService(UserRepository(database), otp_manager, notifier, cooldown=cooldown)


def get_file_store(database: AsyncIOMotorDatabase = Depends(get_database)) -> FileStore:
    return FileStore(database)


def get_document_service(
    database: AsyncIOMotorDatabase = Depends(get_database),
    files: FileStore = Depends(get_file_store),
    extractor: AadhaarExtractor = Depends(get_extractor),
) -> DocumentService:
    return DocumentService(DocumentRepository(database), UserRepository(database), files, extractor)
