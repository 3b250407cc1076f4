"""
Content-addressed blob storage.

Two interchangeable backends expose put/get/delete/exists over string keys:
- local_store: files under a directory (development, tests, single host)
- s3_store: an S3-compatible bucket via boto3
"""

import config

from .errors import BlobNotFoundError
from .local_store import LocalBlobStore
from .s3_store import S3BlobStore


def get_blob_store():
    """Build the backend selected by config.BLOB_STORE."""
    if config.BLOB_STORE == 's3':
        return S3BlobStore(**config.get_s3_config())
    if config.BLOB_STORE == 'local':
        return LocalBlobStore(config.STORAGE_DIRECTORY)
    raise ValueError(f"Unknown blob store backend: {config.BLOB_STORE}")


__all__ = [
    'BlobNotFoundError',
    'LocalBlobStore',
    'S3BlobStore',
    'get_blob_store',
]
