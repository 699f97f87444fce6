# marketplace/utils/crypto.py
from __future__ import annotations
from typing import Optional
from cryptography.fernet import Fernet, InvalidToken
from marketplace.core.config import settings

_f = None

def _fernet() -> Fernet:
    global _f
    if _f is None:
        if not settings.AADHAAR_ENC_KEY:
            raise RuntimeError("AADHAAR_ENC_KEY is not configured")
        _f = Fernet(settings.AADHAAR_ENC_KEY.encode())
    return _f

def encrypt_value(value: str) -> str:
    """
    Encrypt a sensitive identity field and return a url-safe base64 token (string).
    """
    return _fernet().encrypt(value.encode()).decode()

def decrypt_value(token: str) -> Optional[str]:
    """
    Decrypt a token produced by encrypt_value. Returns None for empty or tampered tokens.
    """
    if not token:
        return None
    try:
        plain = _fernet().decrypt(token.encode())
    except InvalidToken:
        return None
    return plain.decode()

def mask_aadhaar(number: Optional[str]) -> Optional[str]:
    """Keep the last four digits only: XXXX XXXX 1234."""
    if not number:
        return None
    digits = "".join(ch for ch in number if ch.isdigit())
    if len(digits) < 4:
        return None
    return f"XXXX XXXX {digits[-4:]}"
