"""
Object storage emulator.

Uploads are acknowledged after a simulated delay but the bytes are not
kept anywhere; every object resolves to the same placeholder URL.
"""

import asyncio
from typing import Any

from config.config import Settings, get_settings
from config.logging_config import get_logger
from models.models import PublicUrlData, Result, UploadData

logger = get_logger(__name__)


class StorageService:
    """Stub bucket storage."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    async def upload(self, bucket: str, path: str, file: Any) -> Result[UploadData]:
        """Acknowledge an upload of `file` to `bucket/path`."""
        await asyncio.sleep(self.settings.upload_delay)
        logger.info("Upload acknowledged", bucket=bucket, path=path)
        return Result(data=UploadData(path=path))

    def get_public_url(self, bucket: str, path: str) -> Result[PublicUrlData]:
        """Placeholder URL; both arguments are ignored."""
        return Result(data=PublicUrlData(public_url=self.settings.placeholder_public_url))
