from pydantic import BaseModel
from typing import Optional

class MessageOut(BaseModel):
    message: str

class TokenOut(BaseModel):
    access_token: str
    access_jti: str
    access_exp: int
    token_type: str = "bearer"

class LoginResponse(TokenOut):
    payload: dict

class VerificationResult(BaseModel):
    success: bool
    message: str
    remaining_attempts: Optional[int] = None

class CleanupOut(BaseModel):
    deleted: int
