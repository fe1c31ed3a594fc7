"""
Report file storage

Reports are written to the local upload directory (served under
``/uploads``) or to Cloudinary, depending on ``FILE_STORAGE_BACKEND``.
"""
from dataclasses import dataclass
from typing import Optional, Protocol
import io
import logging
import os
import random
import time

import cloudinary
import cloudinary.uploader
from fastapi.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.exceptions import handle_external_service_error

logger = logging.getLogger(__name__)

REPORT_FIELD_NAME = "reportFile"


@dataclass(frozen=True)
class StoredFile:
    # relative path for local files, secure URL for Cloudinary
    path: str
    public_id: Optional[str] = None


class FileStore(Protocol):
    async def save(self, content: bytes, extension: str, content_type: Optional[str] = None) -> StoredFile:
        ...

    async def delete(self, stored: StoredFile) -> None:
        ...


def generate_report_name(extension: str) -> str:
    """reportFile-<millis>-<random><ext>"""
    unique_suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10 ** 9)}"
    return f"{REPORT_FIELD_NAME}-{unique_suffix}{extension}"


class LocalFileStore:
    def __init__(self, base_dir: Optional[str] = None, public_prefix: str = "uploads"):
        self.base_dir = base_dir or settings.UPLOAD_DIR
        self.public_prefix = public_prefix

    async def save(self, content: bytes, extension: str, content_type: Optional[str] = None) -> StoredFile:
        name = generate_report_name(extension)
        target = os.path.join(self.base_dir, "reports", name)
        await run_in_threadpool(self._write, target, content)
        return StoredFile(path=f"{self.public_prefix}/reports/{name}")

    async def delete(self, stored: StoredFile) -> None:
        name = os.path.basename(stored.path)
        target = os.path.join(self.base_dir, "reports", name)
        if os.path.exists(target):
            await run_in_threadpool(os.remove, target)
            logger.info(f"Removed report file {target}")

    @staticmethod
    def _write(target: str, content: bytes) -> None:
        os.makedirs(os.path.dirname(target), exist_ok=True)
        with open(target, "wb") as fh:
            fh.write(content)


class CloudinaryFileStore:
    def __init__(self, folder: Optional[str] = None):
        self.folder = folder or settings.CLOUDINARY_FOLDER
        if settings.CLOUDINARY_CLOUD_NAME:
            cloudinary.config(
                cloud_name=settings.CLOUDINARY_CLOUD_NAME,
                api_key=settings.CLOUDINARY_API_KEY,
                api_secret=settings.CLOUDINARY_API_SECRET
            )

    async def save(self, content: bytes, extension: str, content_type: Optional[str] = None) -> StoredFile:
        public_id = generate_report_name("")
        try:
            # Cloudinary uploader supports file-like objects
            response = await run_in_threadpool(
                cloudinary.uploader.upload,
                io.BytesIO(content),
                public_id=public_id,
                folder=self.folder,
                resource_type="auto"
            )
        except Exception as e:
            raise handle_external_service_error(e, "cloudinary", "upload")

        return StoredFile(path=response.get("secure_url"), public_id=response.get("public_id"))

    async def delete(self, stored: StoredFile) -> None:
        if not stored.public_id:
            return
        await run_in_threadpool(cloudinary.uploader.destroy, stored.public_id, resource_type="image")
        logger.info(f"Removed Cloudinary asset {stored.public_id}")


def get_file_store() -> FileStore:
    if settings.FILE_STORAGE_BACKEND == "cloudinary":
        return CloudinaryFileStore()
    return LocalFileStore()
