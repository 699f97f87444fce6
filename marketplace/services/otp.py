"""
Service layer for one-time codes.

- Issues 6-digit codes scoped to (user, purpose[, order]); issuing supersedes
  any pending code for the same (user, purpose).
- Verifies with a bounded attempt budget. Every counter/status change is a
  compare-and-set on the attempts value that was read, so concurrent guesses
  cannot exceed the budget.
"""

from __future__ import annotations
import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from marketplace.core.config import settings
from marketplace.core.errors import AttemptsExceeded, InvalidOtpCode, OtpExpired, OtpNotFound
from marketplace.crud.otps import OtpRepository
from marketplace.schemas.enums import OtpPurpose, OtpStatus
from marketplace.schemas.otp import OtpRecord
from marketplace.schemas.responses import VerificationResult
from marketplace.utils.mongo import as_utc, utcnow

log = logging.getLogger(__name__)

CODE_LENGTH = 6
# a verify call that keeps losing the CAS race gives up after this many re-reads
_MAX_CAS_RETRIES = 10


def generate_code(length: int = CODE_LENGTH) -> str:
    return str(secrets.randbelow(10 ** length)).zfill(length)


def default_ttl_minutes(purpose: OtpPurpose) -> int:
    if OtpPurpose(purpose) in (OtpPurpose.PICKUP, OtpPurpose.DELIVERY):
        return settings.OTP_ORDER_TTL_MINUTES
    return settings.OTP_VERIFICATION_TTL_MINUTES


class OtpManager:
    def __init__(
        self,
        otps: OtpRepository,
        max_attempts: int = settings.OTP_MAX_ATTEMPTS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.otps = otps
        self.max_attempts = max_attempts
        self.clock = clock

    async def issue(
        self,
        user_id: Any,
        purpose: OtpPurpose,
        order_id: Any = None,
        ttl_minutes: Optional[int] = None,
    ) -> OtpRecord:
        """
        Create a fresh pending code. Prior pending codes for (user, purpose) are expired,
        whichever order they belonged to, so a user holds at most one live code per purpose.

        The returned record carries the code so the caller can hand it to the
        notification channel; it must never be serialized into an API response.
        """
        purpose = OtpPurpose(purpose)
        now = self.clock()
        await self.otps.expire_pending(user_id, purpose, now=now)
        ttl = ttl_minutes if ttl_minutes is not None else default_ttl_minutes(purpose)
        record = await self.otps.insert(
            {
                "user_id": user_id,
                "order_id": order_id,
                "purpose": purpose.value,
                "code": generate_code(),
                "status": OtpStatus.PENDING.value,
                "expiresAt": now + timedelta(minutes=ttl),
                "attempts": 0,
                "max_attempts": self.max_attempts,
                "verified_at": None,
            },
            now=now,
        )
        log.info("otp issued user=%s purpose=%s order=%s", user_id, purpose.value, order_id)
        return record

    async def verify(
        self,
        user_id: Any,
        purpose: OtpPurpose,
        code: str,
        order_id: Any = None,
    ) -> VerificationResult:
        """
        Check `code` against the pending record for (user, purpose[, order]).

        Raises:
            OtpNotFound: no pending record.
            OtpExpired: record past expiry (it is marked expired).
            AttemptsExceeded: budget already spent (record is marked failed).
            InvalidOtpCode: wrong code; the consumed attempt is persisted first.
        """
        purpose = OtpPurpose(purpose)
        code = (code or "").strip()

        for _ in range(_MAX_CAS_RETRIES):
            record = await self.otps.latest_pending(user_id, purpose, order_id)
            if record is None:
                raise OtpNotFound()

            now = self.clock()
            if as_utc(record.expiresAt) <= now:
                await self.otps.compare_and_set(
                    record.id, record.attempts, {"status": OtpStatus.EXPIRED.value}, now=now
                )
                raise OtpExpired()

            if record.attempts >= record.max_attempts:
                await self.otps.compare_and_set(
                    record.id, record.attempts, {"status": OtpStatus.FAILED.value}, now=now
                )
                raise AttemptsExceeded()

            if not secrets.compare_digest(record.code, code):
                updated = await self.otps.compare_and_set(
                    record.id, record.attempts, {}, inc_attempts=True, now=now
                )
                if updated is None:
                    continue
                remaining = max(updated.max_attempts - updated.attempts, 0)
                log.info("otp mismatch user=%s purpose=%s remaining=%s", user_id, purpose.value, remaining)
                raise InvalidOtpCode(remaining_attempts=remaining)

            verified = await self.otps.compare_and_set(
                record.id,
                record.attempts,
                {"status": OtpStatus.VERIFIED.value, "verified_at": now},
                now=now,
            )
            if verified is None:
                continue
            log.info("otp verified user=%s purpose=%s order=%s", user_id, purpose.value, order_id)
            return VerificationResult(success=True, message="OTP verified successfully")

        # the record kept changing under us; treat like a lost guess
        raise InvalidOtpCode("OTP verification could not be completed, try again")

    async def remaining_attempts(self, user_id: Any, purpose: OtpPurpose, order_id: Any = None) -> int:
        record = await self.otps.latest_pending(user_id, purpose, order_id)
        if record is None or as_utc(record.expiresAt) <= self.clock():
            return 0
        return max(record.max_attempts - record.attempts, 0)

    async def invalidate_order(self, order_id: Any) -> int:
        return await self.otps.expire_for_order(order_id, now=self.clock())

    async def cleanup_expired(self, days_old: int = settings.OTP_RETENTION_DAYS) -> int:
        cutoff = self.clock() - timedelta(days=days_old)
        deleted = await self.otps.delete_expired_before(cutoff)
        log.info("otp cleanup removed=%s older_than_days=%s", deleted, days_old)
        return deleted
