# receipt_agent/services/whatsapp_client.py
import logging
from typing import Optional

import httpx

from receipt_agent.config import settings

logger = logging.getLogger(__name__)


class MediaResolutionError(Exception):
    """Media info API returned no download URL"""


class DownloadError(Exception):
    """Media binary could not be fetched"""


class WhatsAppClient:
    """WhatsApp Cloud API: replies and media downloads"""

    def __init__(
            self,
            phone_id: Optional[str] = None,
            api_token: Optional[str] = None,
            transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.phone_id = phone_id or settings.whatsapp_phone_id
        self.api_token = api_token or settings.whatsapp_api_token
        self.base_url = f"{settings.whatsapp_graph_url.rstrip('/')}/{settings.whatsapp_api_version}"
        self.timeout = settings.http_timeout
        self._transport = transport

    @property
    def headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_token}"}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def send_text_message(self, to: str, body: str) -> bool:
        """Send a text reply. Failures are logged, never raised."""
        url = f"{self.base_url}/{self.phone_id}/messages"
        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": body},
        }
        logger.info(f"Sending reply to {to}: {body}")

        try:
            async with self._client() as client:
                response = await client.post(url, json=payload, headers=self.headers)
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Network error sending message: {e}")
            return False

        error = data.get("error") if isinstance(data, dict) else None
        if response.is_error or error:
            logger.error(f"WhatsApp send error ({response.status_code}): {error or data}")
            return False

        logger.info("Message sent")
        return True

    async def get_media_url(self, media_id: str) -> str:
        """Resolve a media id into its short-lived download URL"""
        try:
            async with self._client() as client:
                response = await client.get(f"{self.base_url}/{media_id}", headers=self.headers)
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise MediaResolutionError(f"Media info request failed: {e}") from e

        url = data.get("url") if isinstance(data, dict) else None
        if not url:
            logger.error(f"Media API error: {data}")
            raise MediaResolutionError("Could not get media URL from WhatsApp")

        logger.info("Media URL retrieved")
        return url

    async def download_media(self, url: str) -> bytes:
        try:
            async with self._client() as client:
                response = await client.get(url, headers=self.headers)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise DownloadError(f"Media download failed: {e}") from e

        logger.info(f"Downloaded {len(response.content)} bytes")
        return response.content
