from __future__ import annotations
from typing import Dict
from fastapi import APIRouter, Depends, Query, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import ValidationError as PydanticValidationError
from marketplace.core.config import settings
from marketplace.core.errors import AuthenticationError
from marketplace.api.deps import get_auth_service, get_current_user, get_otp_manager, require_role
from marketplace.schemas.enums import UserRole
from marketplace.schemas.users import LoginIn, RegisterIn, UserOut
from marketplace.schemas.otp import ContactOtpRequestIn, ContactOtpVerifyIn, OtpOut
from marketplace.schemas.responses import CleanupOut, LoginResponse, VerificationResult
from marketplace.services.auth import AuthService
from marketplace.services.otp import OtpManager

router = APIRouter()

# ------------------- routes -------------------

@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterIn, svc: AuthService = Depends(get_auth_service)):
    return await svc.register(payload)


@router.post("/login", response_model=LoginResponse, status_code=status.HTTP_200_OK)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    svc: AuthService = Depends(get_auth_service),
):
    # OAuth2 password form so Swagger's Authorize button works; username carries the email
    try:
        body = LoginIn(email=form_data.username, password=form_data.password)
    except PydanticValidationError:
        raise AuthenticationError()
    return await svc.login(body)


@router.get("/me", response_model=UserOut)
async def me(current: Dict = Depends(get_current_user), svc: AuthService = Depends(get_auth_service)):
    return await svc.me(current)


@router.post("/otp/request", response_model=OtpOut, status_code=status.HTTP_201_CREATED)
async def request_contact_otp(
    payload: ContactOtpRequestIn,
    current: Dict = Depends(get_current_user),
    svc: AuthService = Depends(get_auth_service),
):
    """Send an email or phone verification code. The code itself is never returned."""
    return await svc.request_contact_otp(current, payload.purpose)


@router.post("/otp/verify", response_model=VerificationResult)
async def verify_contact_otp(
    payload: ContactOtpVerifyIn,
    current: Dict = Depends(get_current_user),
    svc: AuthService = Depends(get_auth_service),
):
    return await svc.verify_contact_otp(current, payload.purpose, payload.code)


@router.delete("/otp/cleanup", response_model=CleanupOut)
async def cleanup_otps(
    days_old: int = Query(settings.OTP_RETENTION_DAYS, ge=1),
    _: Dict = Depends(require_role(UserRole.ADMIN)),
    otp_manager: OtpManager = Depends(get_otp_manager),
):
    """Drop codes that expired more than `days_old` days ago."""
    return CleanupOut(deleted=await otp_manager.cleanup_expired(days_old))
