# receipt_agent/services/minio_client.py
from minio import Minio
from minio.error import MinioException
from urllib3.exceptions import HTTPError
import time
import io
from receipt_agent.config import settings
import logging

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Receipt image could not be stored"""


class MinioClient:
    """MinIO store for receipt images"""

    def __init__(self, client: Minio = None, bucket_name: str = None):
        # no network calls here; the bucket is checked on the first upload
        self.client = client if client is not None else Minio(
            settings.minio_endpoint,
            access_key=settings.minio_access_key,
            secret_key=settings.minio_secret_key,
            secure=settings.minio_secure
        )
        self.bucket_name = bucket_name or settings.minio_bucket
        self._bucket_ready = False

    def _ensure_bucket_exists(self):
        """Create the bucket on first use"""
        if self._bucket_ready:
            return
        if not self.client.bucket_exists(self.bucket_name):
            self.client.make_bucket(self.bucket_name)
            logger.info(f"Created bucket: {self.bucket_name}")
        self._bucket_ready = True

    @staticmethod
    def build_object_name(tenant_id: str) -> str:
        return f"{tenant_id}/{int(time.time() * 1000)}.jpg"

    async def upload_receipt(self, tenant_id: str, image_data: bytes, content_type: str) -> str:
        """Upload a receipt image under the tenant's prefix"""
        object_name = self.build_object_name(tenant_id)
        try:
            self._ensure_bucket_exists()
            self.client.put_object(
                self.bucket_name,
                object_name,
                io.BytesIO(image_data),
                length=len(image_data),
                content_type=content_type
            )
        except (MinioException, HTTPError) as e:
            logger.error(f"Storage upload failed: {e}")
            raise StorageError(f"Storage upload failed: {e}") from e

        logger.info(f"Uploaded to storage: {object_name}")
        return object_name

    def get_public_url(self, object_name: str) -> str:
        """Public URL of a stored object"""
        if settings.minio_public_url:
            base = settings.minio_public_url.rstrip("/")
        else:
            scheme = "https" if settings.minio_secure else "http"
            base = f"{scheme}://{settings.minio_endpoint}"
        return f"{base}/{self.bucket_name}/{object_name}"

    def check_connection(self) -> bool:
        return self.client.bucket_exists(self.bucket_name)
