"""
Aadhaar card field extraction.

`AadhaarExtractor` sends the card image to the Gemini vision endpoint over
httpx and parses the JSON it answers with. When the answer is not JSON the raw
text goes through `parse_aadhaar_text`, the same regex pass used for plain OCR.
"""

from __future__ import annotations
import base64
import json
import logging
import re
from typing import Any, Dict, Optional

import httpx

from marketplace.core.config import settings
from marketplace.core.errors import DependencyUnavailable
from marketplace.schemas.documents import NOT_FOUND, AadhaarExtraction, AadhaarFields

log = logging.getLogger(__name__)

EXTRACTION_PROMPT = """You are an expert at extracting information from Indian Aadhaar cards.

Analyze this Aadhaar card image and extract the following information in JSON format:

{
  "aadharNumber": "12-digit Aadhaar number (numbers only, no spaces)",
  "fullName": "Full name in UPPERCASE letters",
  "dob": "Date of birth in YYYY-MM-DD format",
  "gender": "Male or Female"
}

Rules:
1. Extract exactly what you see on the card.
2. The Aadhaar number must be 12 digits with no spaces or dashes.
3. DOB must be YYYY-MM-DD (convert from DD/MM/YYYY if needed).
4. Gender must be exactly "Male" or "Female".
5. If a field is not clearly readable, use "NOT_FOUND".
6. Return ONLY the JSON object."""

_AADHAAR_RE = re.compile(r"\b\d{4}\s?\d{4}\s?\d{4}\b")
_DOB_RE = re.compile(r"(?:DOB|Date of Birth|Birth)[\s:]*(\d{2}[/-]\d{2}[/-]\d{4})", re.IGNORECASE)
_GENDER_RE = re.compile(r"\b(Male|Female|M|F)\b", re.IGNORECASE)
_NAME_LABEL_RE = re.compile(r"(?:Name|NAME)[\s:]+([A-Z][A-Za-z ]{2,50})")
_CAPS_LINE_RE = re.compile(r"^[A-Z\s]{3,50}$")
_NAME_STOPWORDS = ("GOVERNMENT", "INDIA", "AADHAAR")
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def _normalize_dob(raw: str) -> str:
    parts = re.split(r"[/-]", raw)
    if len(parts) == 3 and len(parts[0]) == 2:
        day, month, year = parts
        return f"{year}-{month}-{day}"
    return raw


def _normalize_gender(raw: str) -> str:
    g = raw.strip().lower()
    if g in ("m", "male"):
        return "Male"
    if g in ("f", "female"):
        return "Female"
    return NOT_FOUND


def _find_name(text: str) -> str:
    lines = [ln.strip() for ln in text.split("\n")]
    for line in lines:
        words = line.split()
        if (
            _CAPS_LINE_RE.match(line)
            and 2 <= len(words) <= 4
            and not any(stop in line for stop in _NAME_STOPWORDS)
        ):
            return line
    m = _NAME_LABEL_RE.search(text)
    if m:
        return m.group(1).strip().upper()
    return NOT_FOUND


def parse_aadhaar_text(text: str) -> AadhaarFields:
    """Regex extraction over raw OCR text. Missing fields come back as NOT_FOUND."""
    clean = (text or "").replace("\r\n", "\n").strip()

    m = _AADHAAR_RE.search(clean)
    number = re.sub(r"\s", "", m.group(0)) if m else NOT_FOUND

    m = _DOB_RE.search(clean)
    dob = _normalize_dob(m.group(1)) if m else NOT_FOUND

    m = _GENDER_RE.search(clean)
    gender = _normalize_gender(m.group(1)) if m else NOT_FOUND

    return AadhaarFields(aadhaar_number=number, full_name=_find_name(clean), dob=dob, gender=gender)


def parse_vision_response(text: str) -> AadhaarFields:
    """Parse the model's JSON answer (code fences tolerated); fall back to regex."""
    body = _FENCE_RE.sub("", (text or "").strip())
    try:
        data = json.loads(body)
    except ValueError:
        log.info("vision answer was not JSON, falling back to text parsing")
        return parse_aadhaar_text(text)
    if not isinstance(data, dict):
        return parse_aadhaar_text(text)

    number = re.sub(r"\s|-", "", str(data.get("aadharNumber") or data.get("aadhaarNumber") or ""))
    if not re.fullmatch(r"\d{12}", number):
        number = NOT_FOUND
    name = str(data.get("fullName") or NOT_FOUND).strip().upper() or NOT_FOUND
    dob = str(data.get("dob") or NOT_FOUND).strip() or NOT_FOUND
    if dob != NOT_FOUND:
        dob = _normalize_dob(dob)
    gender = _normalize_gender(str(data.get("gender") or ""))
    return AadhaarFields(aadhaar_number=number, full_name=name, dob=dob, gender=gender)


def confidence_for(fields: AadhaarFields) -> float:
    return round(fields.found_count() / 4.0, 2)


class AadhaarExtractor:
    def __init__(
        self,
        api_key: str = settings.GEMINI_API_KEY,
        model: str = settings.GEMINI_MODEL,
        base_url: str = settings.GEMINI_BASE_URL,
        timeout_seconds: float = settings.OCR_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    def _request_body(self, image: bytes, content_type: str) -> Dict[str, Any]:
        return {
            "contents": [
                {
                    "parts": [
                        {"text": EXTRACTION_PROMPT},
                        {
                            "inline_data": {
                                "mime_type": content_type or "image/jpeg",
                                "data": base64.b64encode(image).decode(),
                            }
                        },
                    ]
                }
            ]
        }

    async def extract(self, image: bytes, content_type: str = "image/jpeg") -> AadhaarExtraction:
        """
        Raises:
            DependencyUnavailable: no API key, transport failure, timeout, or an
                answer without text.
        """
        if not self.api_key:
            raise DependencyUnavailable("OCR is not configured (GEMINI_API_KEY missing)")

        url = f"{self.base_url}/models/{self.model}:generateContent"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
                resp = await client.post(url, params={"key": self.api_key}, json=self._request_body(image, content_type))
                resp.raise_for_status()
                payload = resp.json()
        except httpx.HTTPStatusError as e:
            raise DependencyUnavailable(f"OCR request failed with status {e.response.status_code}")
        except httpx.HTTPError as e:
            raise DependencyUnavailable(f"OCR request failed: {e.__class__.__name__}")

        try:
            text = payload["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise DependencyUnavailable("OCR answer carried no text")

        fields = parse_vision_response(text)
        return AadhaarExtraction(fields=fields, confidence=confidence_for(fields))
