"""
HTTP object storage client.
"""

from typing import Optional

import httpx

from tourbook.core.logging import get_logger
from tourbook.services.interfaces.storage import ObjectStorage

logger = get_logger(__name__)


class HttpObjectStorage(ObjectStorage):
    """Objects live under `{base_url}/{ref}`; DELETE on that URL releases them."""

    def __init__(self, base_url: str, api_token: Optional[str] = None, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout

    def get_url(self, ref: Optional[str]) -> Optional[str]:
        if not ref:
            return None
        return f"{self.base_url}/{ref}"

    async def release(self, ref: str) -> None:
        headers = {"Authorization": f"Bearer {self.api_token}"} if self.api_token else {}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.delete(f"{self.base_url}/{ref}", headers=headers)

        if response.status_code == 404:
            logger.info("storage_object_missing", ref=ref)
            return
        response.raise_for_status()
        logger.info("storage_object_released", ref=ref)
