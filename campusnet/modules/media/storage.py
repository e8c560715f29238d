from supabase import Client
from campusnet.config import settings
from campusnet.core.exceptions import StoreUnavailable, ValidationError
from fastapi import UploadFile
from typing import Optional
import logging
import os
import uuid

logger = logging.getLogger(__name__)


class MediaStorage:
    """Image uploads to Supabase Storage buckets"""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def upload(self, bucket: str, file_content: bytes, filename: str, content_type: str, prefix: Optional[str] = None) -> str:
        """Upload an image and return its storage path"""
        if not content_type or not content_type.startswith("image/"):
            raise ValidationError("Only image uploads are accepted")
        if not file_content:
            raise ValidationError("Uploaded file is empty")
        if len(file_content) > settings.max_upload_bytes:
            raise ValidationError(f"File exceeds {settings.max_upload_bytes} bytes")

        file_extension = os.path.splitext(filename or "")[1].lower() or ".png"
        key = f"{uuid.uuid4().hex}{file_extension}"
        if prefix:
            key = f"{prefix}/{key}"
        try:
            self.supabase.storage.from_(bucket).upload(
                key,
                file_content,
                file_options={"content-type": content_type}
            )
            logger.info(f"Uploaded {key} to bucket {bucket}")
            return key
        except Exception as e:
            logger.error(f"Supabase Storage upload to {bucket} failed: {e}")
            raise StoreUnavailable(f"Failed to upload to storage: {e}")

    def get_public_url(self, bucket: str, path: str) -> str:
        return self.supabase.storage.from_(bucket).get_public_url(path)

    async def upload_image(self, bucket: str, file: UploadFile, prefix: Optional[str] = None) -> str:
        """Read an UploadFile, store it and return its public URL"""
        file_content = await file.read()
        path = self.upload(bucket, file_content, file.filename, file.content_type, prefix=prefix)
        return self.get_public_url(bucket, path)
