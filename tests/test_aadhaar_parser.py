import json

import httpx
import pytest

from marketplace.core.errors import DependencyUnavailable
from marketplace.schemas.documents import NOT_FOUND
from marketplace.utils.crypto import mask_aadhaar
from marketplace.utils.ocr import AadhaarExtractor, confidence_for, parse_aadhaar_text, parse_vision_response

CARD_TEXT = """Government of India
RAVI KUMAR
DOB: 15/08/1990
Male
1234 5678 9012
"""


def test_parse_plain_ocr_text():
    fields = parse_aadhaar_text(CARD_TEXT)
    assert fields.aadhaar_number == "123456789012"
    assert fields.full_name == "RAVI KUMAR"
    assert fields.dob == "1990-08-15"
    assert fields.gender == "Male"
    assert confidence_for(fields) == 1.0


def test_parse_text_with_missing_fields():
    fields = parse_aadhaar_text("nothing useful here")
    assert fields.aadhaar_number == NOT_FOUND
    assert fields.dob == NOT_FOUND
    assert confidence_for(fields) < 0.5


def test_parse_fenced_json_answer():
    answer = "```json\n" + json.dumps(
        {"aadharNumber": "1234 5678 9012", "fullName": "Ravi Kumar", "dob": "15/08/1990", "gender": "male"}
    ) + "\n```"
    fields = parse_vision_response(answer)
    assert fields.aadhaar_number == "123456789012"
    assert fields.full_name == "RAVI KUMAR"
    assert fields.dob == "1990-08-15"
    assert fields.gender == "Male"


def test_json_answer_with_bad_number():
    fields = parse_vision_response(json.dumps({"aadharNumber": "12345", "fullName": "NOT_FOUND"}))
    assert fields.aadhaar_number == NOT_FOUND
    assert fields.full_name == NOT_FOUND
    assert fields.gender == NOT_FOUND


def test_non_json_answer_falls_back_to_regex():
    assert parse_vision_response(CARD_TEXT).aadhaar_number == "123456789012"


def test_mask_aadhaar():
    assert mask_aadhaar("1234 5678 9012") == "XXXX XXXX 9012"
    assert mask_aadhaar("12") is None
    assert mask_aadhaar(None) is None


def _vision_transport(status_code=200, text=None):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["key"] == "test-key"
        assert request.url.path.endswith(":generateContent")
        if status_code != 200:
            return httpx.Response(status_code, json={"error": "nope"})
        body = {"candidates": [{"content": {"parts": [{"text": text}]}}]} if text is not None else {"candidates": []}
        return httpx.Response(200, json=body)

    return httpx.MockTransport(handler)


async def test_extractor_parses_model_answer():
    answer = json.dumps({"aadharNumber": "123456789012", "fullName": "RAVI KUMAR", "dob": "1990-08-15", "gender": "Male"})
    extractor = AadhaarExtractor(api_key="test-key", transport=_vision_transport(text=answer))
    result = await extractor.extract(b"\x89PNG", "image/png")
    assert result.fields.aadhaar_number == "123456789012"
    assert result.confidence == 1.0


async def test_extractor_reports_upstream_failures():
    with pytest.raises(DependencyUnavailable):
        await AadhaarExtractor(api_key="").extract(b"img")
    with pytest.raises(DependencyUnavailable):
        await AadhaarExtractor(api_key="test-key", transport=_vision_transport(status_code=500)).extract(b"img")
    with pytest.raises(DependencyUnavailable):
        await AadhaarExtractor(api_key="test-key", transport=_vision_transport()).extract(b"img")
