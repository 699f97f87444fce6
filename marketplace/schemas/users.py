from typing import Optional
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

from marketplace.schemas.object_id import PyObjectId
from marketplace.schemas.enums import UserRole


class PartnerInfo(BaseModel):
    is_online: bool = False
    documents_verified: bool = False
    rating: float = 0.0
    rating_count: int = 0
    rating_sum: float = 0.0
    last_location_at: Optional[datetime] = None


class RegisterIn(BaseModel):
    first_name: str = Field(min_length=1, max_length=60)
    last_name: str = Field(default="", max_length=60)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    phone: Optional[str] = Field(default=None, pattern=r"^\+?\d{10,15}$")
    role: UserRole = UserRole.CUSTOMER

    @field_validator("role")
    @classmethod
    def _no_self_admin(cls, v: UserRole) -> UserRole:
        if v == UserRole.ADMIN:
            raise ValueError("admin accounts cannot self-register")
        return v


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class UserOut(BaseModel):
    id: PyObjectId = Field(alias="_id")
    first_name: str
    last_name: str = ""
    email: EmailStr
    phone: Optional[str] = None
    role: UserRole
    is_active: bool = True
    email_verified: bool = False
    phone_verified: bool = False
    partner_info: Optional[PartnerInfo] = None
    createdAt: datetime
    updatedAt: datetime

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
