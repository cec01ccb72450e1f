"""S3 storage backend for uploaded documents."""

import aioboto3
from typing import Optional
import logging

from core.config import settings

logger = logging.getLogger(__name__)


def _get_credentials() -> dict:
    """Build session credentials from settings, failing loudly when unset."""
    if not settings.aws_access_key_id or not settings.aws_secret_access_key:
        raise ValueError("AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must be set for S3 storage")

    return {
        "aws_access_key_id": settings.aws_access_key_id,
        "aws_secret_access_key": settings.aws_secret_access_key,
        "region_name": settings.aws_region,
    }


class S3Storage:
    """S3 storage handler for async operations."""

    def __init__(self, bucket_name: Optional[str] = None):
        """
        Initialize S3 storage.

        Args:
            bucket_name: S3 bucket name (uses AWS_S3_BUCKET if not provided)
        """
        self.bucket_name = bucket_name or settings.aws_s3_bucket
        if not self.bucket_name:
            raise ValueError("S3 bucket name not provided and AWS_S3_BUCKET not set")

        self.credentials = _get_credentials()

    def _session(self) -> aioboto3.Session:
        return aioboto3.Session(**self.credentials)

    async def save(
        self,
        data: bytes,
        key: str,
        content_type: Optional[str] = None,
    ) -> str:
        """
        Upload bytes to S3.

        Returns:
            S3 object key
        """
        async with self._session().client("s3") as client:
            upload_args = {
                "Bucket": self.bucket_name,
                "Key": key,
                "Body": data,
            }
            if content_type:
                upload_args["ContentType"] = content_type

            await client.put_object(**upload_args)

        logger.info(f"Uploaded s3://{self.bucket_name}/{key}")
        return key

    async def delete(self, key: str) -> bool:
        async with self._session().client("s3") as client:
            await client.delete_object(Bucket=self.bucket_name, Key=key)

        logger.info(f"Deleted s3://{self.bucket_name}/{key}")
        return True

    async def get_url(self, key: str, expires_in: int = 3600) -> str:
        """Generate a presigned download URL."""
        async with self._session().client("s3") as client:
            return await client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": key},
                ExpiresIn=expires_in,
            )
