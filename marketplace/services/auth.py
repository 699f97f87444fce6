"""
Service layer for accounts and authentication.
- Registration, login (JWT access token), profile.
- Contact verification (email / phone) with one-time codes.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from pymongo.errors import DuplicateKeyError

from marketplace.core.errors import (
    AuthenticationError,
    ConflictError,
    RateLimited,
    UnauthorizedError,
    UserNotFound,
    ValidationError,
)
from marketplace.core.redis import OtpCooldown
from marketplace.core.security import create_access_token, hash_password, verify_password
from marketplace.crud.users import UserRepository
from marketplace.schemas.enums import OtpPurpose
from marketplace.schemas.otp import OtpOut
from marketplace.schemas.responses import LoginResponse, VerificationResult
from marketplace.schemas.users import LoginIn, RegisterIn, UserOut
from marketplace.services.notifications import Notifier
from marketplace.services.otp import OtpManager
from marketplace.utils.fastapi_mail import generate_otp_email_html

log = logging.getLogger(__name__)


class AuthService:
    def __init__(
        self,
        accounts: UserRepository,
        otp_manager: OtpManager,
        notifier: Notifier,
        cooldown: Optional[OtpCooldown] = None,
    ):
        self.accounts = accounts
        self.otp = otp_manager
        self.notifier = notifier
        self.cooldown = cooldown

    async def register(self, payload: RegisterIn) -> UserOut:
        email = payload.email.strip().lower()
        if await self.accounts.find_by_email(email):
            raise ConflictError("Email already registered")
        try:
            user = await self.accounts.create(
                {
                    "first_name": payload.first_name.strip(),
                    "last_name": payload.last_name.strip(),
                    "email": email,
                    "password": hash_password(payload.password),
                    "phone": payload.phone,
                    "role": payload.role.value,
                }
            )
        except DuplicateKeyError:
            raise ConflictError("Email already registered")
        log.info("user registered id=%s role=%s", user.id, user.role.value)
        return user

    async def login(self, body: LoginIn) -> LoginResponse:
        doc = await self.accounts.find_by_email(body.email)
        if not doc or not verify_password(body.password, doc.get("password", "")):
            raise AuthenticationError()
        if not doc.get("is_active", True):
            raise UnauthorizedError("User account is suspended")

        payload = {"user_id": str(doc["_id"]), "role": doc["role"]}
        at = create_access_token(payload)
        return LoginResponse(
            access_token=at["token"],
            access_jti=at["jti"],
            access_exp=at["exp"],
            payload=payload,
        )

    async def me(self, current_user: Dict[str, Any]) -> UserOut:
        user = await self.accounts.find_by_id(current_user["user_id"])
        if not user:
            raise UserNotFound()
        return user

    async def request_contact_otp(self, current_user: Dict[str, Any], purpose: OtpPurpose) -> OtpOut:
        """
        Send a verification code to the user's email or phone.

        Raises:
            ValidationError: phone verification without a phone on file, or an
                order purpose.
            RateLimited: another code was sent within the cooldown.
        """
        purpose = OtpPurpose(purpose)
        if purpose not in (OtpPurpose.EMAIL_VERIFICATION, OtpPurpose.PHONE_VERIFICATION):
            raise ValidationError("purpose must be email_verification or phone_verification")
        user = await self.me(current_user)
        if purpose == OtpPurpose.PHONE_VERIFICATION and not user.phone:
            raise ValidationError("No phone number on file")

        if self.cooldown is not None and not await self.cooldown.acquire(user.id, purpose.value):
            wait = await self.cooldown.seconds_left(user.id, purpose.value)
            raise RateLimited(f"Please wait {wait}s before requesting another code")

        record = await self.otp.issue(user.id, purpose)
        if purpose == OtpPurpose.EMAIL_VERIFICATION:
            await self.notifier.send_email(user.email, "Verify your email", generate_otp_email_html(record.code, purpose))
        else:
            await self.notifier.send_sms(user.phone, f"Your verification code is {record.code}")
        return record.to_public()

    async def verify_contact_otp(self, current_user: Dict[str, Any], purpose: OtpPurpose, code: str) -> VerificationResult:
        purpose = OtpPurpose(purpose)
        if purpose not in (OtpPurpose.EMAIL_VERIFICATION, OtpPurpose.PHONE_VERIFICATION):
            raise ValidationError("purpose must be email_verification or phone_verification")
        user = await self.me(current_user)
        result = await self.otp.verify(user.id, purpose, code)
        flag = "email_verified" if purpose == OtpPurpose.EMAIL_VERIFICATION else "phone_verified"
        await self.accounts.set_fields(user.id, {flag: True})
        log.info("contact verified user=%s field=%s", user.id, flag)
        return result
