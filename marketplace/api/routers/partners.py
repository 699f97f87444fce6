"""
Routes for partner documents.
"""

from __future__ import annotations
from typing import Dict

from fastapi import APIRouter, Depends, File, UploadFile, status

from marketplace.api.deps import get_document_service, require_role
from marketplace.schemas.documents import PartnerDocumentsOut, ReviewIn
from marketplace.schemas.enums import UserRole
from marketplace.schemas.object_id import PyObjectId
from marketplace.services.documents import DocumentService

router = APIRouter()  # mounted at /partners


@router.post("/documents/aadhaar", response_model=PartnerDocumentsOut, status_code=status.HTTP_201_CREATED)
async def submit_aadhaar(
    front: UploadFile = File(...),
    back: UploadFile = File(...),
    current: Dict = Depends(require_role(UserRole.PARTNER)),
    svc: DocumentService = Depends(get_document_service),
):
    """
    Upload both sides of the Aadhaar card.

    The submission is stored as pending; extracted fields are best effort and an
    OCR failure is reported in `ocr_error` rather than failing the request.
    """
    return await svc.submit_aadhaar(current["user_id"], front, back)


@router.get("/documents", response_model=PartnerDocumentsOut)
async def my_documents(
    current: Dict = Depends(require_role(UserRole.PARTNER)),
    svc: DocumentService = Depends(get_document_service),
):
    return await svc.get_documents(current["user_id"])


@router.get("/{partner_id}/documents", response_model=PartnerDocumentsOut)
async def partner_documents(
    partner_id: PyObjectId,
    _: Dict = Depends(require_role(UserRole.ADMIN)),
    svc: DocumentService = Depends(get_document_service),
):
    return await svc.get_documents(partner_id)


@router.put("/{partner_id}/documents/review", response_model=PartnerDocumentsOut)
async def review_documents(
    partner_id: PyObjectId,
    payload: ReviewIn,
    current: Dict = Depends(require_role(UserRole.ADMIN)),
    svc: DocumentService = Depends(get_document_service),
):
    return await svc.review_documents(partner_id, payload.approve, current["user_id"], payload.reason)
