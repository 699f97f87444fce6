# marketplace/api/routers/files.py
from __future__ import annotations
from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from marketplace.api.deps import get_file_store
from marketplace.core.errors import UnauthorizedError
from marketplace.core.security import verify_file_token
from marketplace.utils.gridfs import FileStore

router = APIRouter()


@router.get("/{file_id}")
async def download_file(
    file_id: str,
    token: str = Query(..., description="Signed file token from a document URL"),
    files: FileStore = Depends(get_file_store),
):
    if not verify_file_token(token, file_id):
        raise UnauthorizedError("Invalid or expired file link")
    media_type, chunks = await files.open(file_id)
    return StreamingResponse(chunks, media_type=media_type)
