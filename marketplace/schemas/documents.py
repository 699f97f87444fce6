from typing import Optional
from datetime import datetime

from pydantic import BaseModel, Field

from marketplace.schemas.object_id import PyObjectId
from marketplace.schemas.enums import DocumentStatus

NOT_FOUND = "NOT_FOUND"


class AadhaarFields(BaseModel):
    aadhaar_number: str = NOT_FOUND
    full_name: str = NOT_FOUND
    dob: str = NOT_FOUND
    gender: str = NOT_FOUND

    def found_count(self) -> int:
        return sum(1 for v in (self.aadhaar_number, self.full_name, self.dob, self.gender) if v != NOT_FOUND)

    @property
    def is_complete(self) -> bool:
        return self.found_count() == 4


class AadhaarExtraction(BaseModel):
    fields: AadhaarFields
    confidence: float = Field(ge=0, le=1)


class DocumentReview(BaseModel):
    reviewed_by: str
    reason: Optional[str] = None
    reviewed_at: datetime


class ReviewIn(BaseModel):
    approve: bool
    reason: Optional[str] = Field(default=None, max_length=500)


class PartnerDocumentsOut(BaseModel):
    partner_id: PyObjectId
    status: DocumentStatus
    front_url: Optional[str] = None
    back_url: Optional[str] = None
    aadhaar_number_masked: Optional[str] = None
    full_name: Optional[str] = None
    dob: Optional[str] = None
    gender: Optional[str] = None
    confidence: float = 0.0
    ocr_error: Optional[str] = None
    review: Optional[DocumentReview] = None
    updatedAt: datetime
