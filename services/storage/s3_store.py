"""
S3 blob store.

Works against AWS or any S3-compatible endpoint (MinIO, R2) by passing
endpoint_url.

Dependencies: boto3
"""

from typing import Optional

import boto3
from botocore.exceptions import ClientError

from utils.logging_config import get_logger
from .errors import BlobNotFoundError

logger = get_logger('S3BlobStore')

_MISSING_CODES = ('404', 'NoSuchKey', 'NotFound')


def _is_missing(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in _MISSING_CODES


class S3BlobStore:
    """Blob store backed by an S3 bucket."""

    def __init__(self, bucket: str, region: str = "us-east-1",
                 endpoint_url: Optional[str] = None,
                 access_key_id: Optional[str] = None,
                 secret_access_key: Optional[str] = None,
                 public_url: str = '',
                 client=None) -> None:
        """
        Args:
            bucket: Bucket name
            region: Bucket region
            endpoint_url: Custom endpoint for S3-compatible services
            access_key_id: Explicit credentials (default credential chain when None)
            secret_access_key: Explicit credentials
            public_url: Base URL objects are served from
            client: Pre-built boto3 S3 client
        """
        if not bucket:
            raise ValueError("S3 bucket name is required")
        self._bucket = bucket
        self._region = region
        self._public_url = public_url.rstrip('/')
        self._endpoint_url = endpoint_url
        self._s3_client = client or boto3.client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )

    def put(self, key: str, data: bytes, content_type: str = 'application/octet-stream') -> None:
        self._s3_client.put_object(
            Bucket=self._bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
        )
        logger.debug(f"Uploaded s3://{self._bucket}/{key} ({len(data)} bytes)")

    def get(self, key: str) -> bytes:
        try:
            response = self._s3_client.get_object(Bucket=self._bucket, Key=key)
        except ClientError as e:
            if _is_missing(e):
                raise BlobNotFoundError(key) from e
            raise
        return response["Body"].read()

    def delete(self, key: str) -> None:
        """Remove an object. S3 treats missing keys as a successful delete."""
        self._s3_client.delete_object(Bucket=self._bucket, Key=key)

    def exists(self, key: str) -> bool:
        try:
            self._s3_client.head_object(Bucket=self._bucket, Key=key)
            return True
        except ClientError as e:
            if _is_missing(e):
                return False
            raise

    def url(self, key: str) -> str:
        if self._public_url:
            return f"{self._public_url}/{key}"
        if self._endpoint_url:
            return f"{self._endpoint_url.rstrip('/')}/{self._bucket}/{key}"
        return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{key}"
