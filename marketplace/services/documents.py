"""
Service layer for partner identity documents (Aadhaar).
- Stores the card images, runs OCR as a best-effort step and keeps the
  extracted fields encrypted at rest.
- Admin review flips the partner's `documents_verified` flag.
"""

from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Callable, Optional

from fastapi import UploadFile

from marketplace.core.errors import DomainError, NotFoundError, UserNotFound, ValidationError
from marketplace.crud.documents import DocumentRepository
from marketplace.crud.users import UserRepository
from marketplace.schemas.documents import NOT_FOUND, DocumentReview, PartnerDocumentsOut
from marketplace.schemas.enums import DocumentStatus, UserRole
from marketplace.utils.crypto import decrypt_value, encrypt_value, mask_aadhaar
from marketplace.utils.gridfs import FileStore
from marketplace.utils.mongo import utcnow
from marketplace.utils.ocr import AadhaarExtractor

log = logging.getLogger(__name__)

_FIELDS = ("aadhaar_number", "full_name", "dob", "gender")


class DocumentService:
    def __init__(
        self,
        documents: DocumentRepository,
        accounts: UserRepository,
        files: FileStore,
        extractor: AadhaarExtractor,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.documents = documents
        self.accounts = accounts
        self.files = files
        self.extractor = extractor
        self.clock = clock

    async def _partner(self, partner_id: Any):
        user = await self.accounts.find_by_id(partner_id)
        if not user or user.role != UserRole.PARTNER:
            raise UserNotFound("Partner not found")
        return user

    def _to_out(self, doc: dict) -> PartnerDocumentsOut:
        enc = doc.get("aadhaar") or {}
        plain = {k: decrypt_value(enc.get(k)) for k in _FIELDS}
        front = doc.get("front_file_id")
        back = doc.get("back_file_id")
        return PartnerDocumentsOut(
            partner_id=doc["partner_id"],
            status=doc["status"],
            front_url=self.files.sign_url(front) if front else None,
            back_url=self.files.sign_url(back) if back else None,
            aadhaar_number_masked=mask_aadhaar(plain["aadhaar_number"]),
            full_name=plain["full_name"],
            dob=plain["dob"],
            gender=plain["gender"],
            confidence=float(doc.get("confidence") or 0.0),
            ocr_error=doc.get("ocr_error"),
            review=DocumentReview(**doc["review"]) if doc.get("review") else None,
            updatedAt=doc["updatedAt"],
        )

    async def submit_aadhaar(self, partner_id: Any, front: UploadFile, back: UploadFile) -> PartnerDocumentsOut:
        """
        Store both card sides and record a pending document set.

        Extraction runs after the images are stored; when it fails the reason is
        kept in `ocr_error` and the submission still succeeds.
        """
        partner = await self._partner(partner_id)
        existing = await self.documents.get(partner.id)
        if existing and existing.get("status") == DocumentStatus.APPROVED.value:
            raise DomainError("Documents are already approved", status_code=409)

        front_id, front_bytes, front_type = await self.files.upload(front)
        try:
            back_id, _, _ = await self.files.upload(back)
        except DomainError:
            await self.files.delete(front_id)
            raise

        now = self.clock()
        doc = await self.documents.upsert(
            partner.id,
            {
                "front_file_id": front_id,
                "back_file_id": back_id,
                "status": DocumentStatus.PENDING.value,
                "aadhaar": {},
                "confidence": 0.0,
                "ocr_error": None,
                "review": None,
            },
            now=now,
        )
        if existing:
            for old in (existing.get("front_file_id"), existing.get("back_file_id")):
                if old:
                    await self.files.delete(old)
        await self.accounts.set_documents_verified(partner.id, False)

        try:
            extraction = await self.extractor.extract(front_bytes, front_type)
        except DomainError as e:
            log.warning("aadhaar extraction failed partner=%s: %s", partner.id, e.message)
            doc = await self.documents.set_fields(partner.id, {"ocr_error": e.message}, now=self.clock())
            return self._to_out(doc)

        encrypted = {
            k: encrypt_value(v)
            for k, v in extraction.fields.model_dump().items()
            if v and v != NOT_FOUND
        }
        doc = await self.documents.set_fields(
            partner.id,
            {"aadhaar": encrypted, "confidence": extraction.confidence},
            now=self.clock(),
        )
        log.info(
            "aadhaar extracted partner=%s number=%s confidence=%s",
            partner.id,
            mask_aadhaar(extraction.fields.aadhaar_number) or NOT_FOUND,
            extraction.confidence,
        )
        return self._to_out(doc)

    async def get_documents(self, partner_id: Any) -> PartnerDocumentsOut:
        doc = await self.documents.get(partner_id)
        if not doc:
            raise NotFoundError("No documents submitted")
        return self._to_out(doc)

    async def review_documents(
        self,
        partner_id: Any,
        approve: bool,
        reviewer_id: Any,
        reason: Optional[str] = None,
    ) -> PartnerDocumentsOut:
        partner = await self._partner(partner_id)
        doc = await self.documents.get(partner.id)
        if not doc:
            raise NotFoundError("No documents submitted")
        if not approve and not (reason and reason.strip()):
            raise ValidationError("A reason is required when rejecting documents")

        now = self.clock()
        status = DocumentStatus.APPROVED if approve else DocumentStatus.REJECTED
        doc = await self.documents.set_fields(
            partner.id,
            {
                "status": status.value,
                "review": {"reviewed_by": str(reviewer_id), "reason": reason, "reviewed_at": now},
            },
            now=now,
        )
        await self.accounts.set_documents_verified(partner.id, approve)
        log.info("documents reviewed partner=%s status=%s by=%s", partner.id, status.value, reviewer_id)
        return self._to_out(doc)
