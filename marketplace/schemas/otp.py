from typing import Optional
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from marketplace.schemas.object_id import PyObjectId
from marketplace.schemas.enums import OtpPurpose, OtpStatus


class OtpRecord(BaseModel):
    """Internal view of a stored OTP, code included. Never returned over HTTP."""

    id: PyObjectId = Field(alias="_id")
    user_id: PyObjectId
    order_id: Optional[PyObjectId] = None
    purpose: OtpPurpose
    code: str
    status: OtpStatus
    expiresAt: datetime
    attempts: int = 0
    max_attempts: int = 3
    verified_at: Optional[datetime] = None
    createdAt: datetime
    updatedAt: datetime

    model_config = {"populate_by_name": True, "extra": "ignore"}

    def to_public(self) -> "OtpOut":
        return OtpOut.model_validate(self.model_dump(by_alias=True, exclude={"code"}))


class OtpOut(BaseModel):
    id: PyObjectId = Field(alias="_id")
    purpose: OtpPurpose
    order_id: Optional[PyObjectId] = None
    status: OtpStatus
    expiresAt: datetime
    attempts: int
    max_attempts: int

    model_config = {"populate_by_name": True, "extra": "ignore"}


class ContactOtpRequestIn(BaseModel):
    purpose: OtpPurpose

    @field_validator("purpose")
    @classmethod
    def _contact_purpose(cls, v: OtpPurpose) -> OtpPurpose:
        if v not in (OtpPurpose.EMAIL_VERIFICATION, OtpPurpose.PHONE_VERIFICATION):
            raise ValueError("purpose must be email_verification or phone_verification")
        return v


class ContactOtpVerifyIn(ContactOtpRequestIn):
    code: str = Field(pattern=r"^\d{6}$")
