# marketplace/utils/gridfs.py
from __future__ import annotations
from typing import AsyncIterator, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import UploadFile
from gridfs.errors import NoFile
from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorGridFSBucket

from marketplace.core.config import settings
from marketplace.core.errors import DomainError, NotFoundError, ValidationError
from marketplace.core.security import create_file_token


def build_file_url(file_id: ObjectId | str, token: Optional[str] = None) -> str:
    """
    Build the download URL for a stored GridFS file, optionally signed with a file token.
    """
    fid = str(file_id)
    url = f"{settings.BACKEND_BASE_URL.rstrip('/')}{settings.API_V1_PREFIX}/files/{fid}"
    return f"{url}?token={token}" if token else url


def _allowed_types() -> set:
    return {x.strip().lower() for x in settings.UPLOAD_ALLOWED_TYPES.split(",") if x.strip()}


class FileStore:
    """GridFS-backed object storage for uploaded images."""

    def __init__(self, db: AsyncIOMotorDatabase, bucket_name: str = settings.GRIDFS_BUCKET):
        self.bucket = AsyncIOMotorGridFSBucket(db, bucket_name=bucket_name)

    def validate(self, file: UploadFile) -> None:
        if file.content_type is None or file.content_type.lower() not in _allowed_types():
            raise DomainError(f"Unsupported content type: {file.content_type}", status_code=415)

    async def upload(self, file: UploadFile) -> Tuple[str, bytes, str]:
        """
        Stream an upload into GridFS.

        Returns:
            (file_id, raw bytes, content type); the bytes are kept for OCR.

        Raises:
            DomainError(415) for a disallowed type, DomainError(413) when too large.
        """
        self.validate(file)
        content_type = file.content_type or "application/octet-stream"
        max_bytes = settings.UPLOAD_MAX_BYTES
        chunks = []
        written = 0

        # NOTE: do not await the constructor
        grid_in = self.bucket.open_upload_stream(
            filename=file.filename or "upload.bin",
            metadata={"contentType": content_type},
        )
        try:
            while True:
                chunk = await file.read(1024 * 64)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    await grid_in.abort()
                    raise DomainError("Uploaded file too large", status_code=413)
                chunks.append(chunk)
                await grid_in.write(chunk)
        finally:
            await grid_in.close()

        if written == 0:
            await self.delete(str(grid_in._id))
            raise ValidationError("Uploaded file is empty")
        return str(grid_in._id), b"".join(chunks), content_type

    async def open(self, file_id: str) -> Tuple[str, AsyncIterator[bytes]]:
        """Open a stored file for streaming: (media type, chunk iterator)."""
        try:
            oid = ObjectId(file_id)
        except (InvalidId, TypeError):
            raise ValidationError("Invalid file id")
        try:
            grid_out = await self.bucket.open_download_stream(oid)
        except NoFile:
            raise NotFoundError("File not found")

        media_type = grid_out.metadata.get("contentType") if grid_out.metadata else "application/octet-stream"

        async def iterfile():
            while True:
                chunk = await grid_out.readchunk()
                if not chunk:
                    break
                yield chunk

        return media_type, iterfile()

    async def fetch(self, file_id: str) -> bytes:
        _, chunks = await self.open(file_id)
        return b"".join([c async for c in chunks])

    def sign_url(self, file_id: str) -> str:
        return build_file_url(file_id, create_file_token(str(file_id)))

    async def delete(self, file_id: str) -> bool:
        try:
            oid = ObjectId(file_id)
        except (InvalidId, TypeError):
            return False
        try:
            await self.bucket.delete(oid)
            return True
        except NoFile:
            return False
