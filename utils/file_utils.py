import os
import hashlib

# Blob key suffixes, all rooted at the content hash
ORIGINAL_SUFFIX = '.png'
LOSSLESS_SUFFIX = '.lossless.webp'
SIDECAR_SUFFIX = '.metadata.json'


def calculate_content_hash(data: bytes) -> str:
    """SHA-256 hex digest of a buffer."""
    return hashlib.sha256(data).hexdigest()


def get_file_sha256(filepath):
    """Calculate SHA-256 hash of a file on disk, or None if unreadable."""
    try:
        hash_sha = hashlib.sha256()
        with open(filepath, "rb") as f:
            for chunk in iter(lambda: f.read(65536), b""):
                hash_sha.update(chunk)
        return hash_sha.hexdigest()
    except OSError:
        return None


def original_key(file_hash: str) -> str:
    """Blob key of the original upload, e.g. '<hash>.png'."""
    return f"{file_hash}{ORIGINAL_SUFFIX}"


def lossless_key(file_hash: str) -> str:
    """Blob key of the lossless WebP derivative."""
    return f"{file_hash}{LOSSLESS_SUFFIX}"


def sidecar_key(file_hash: str) -> str:
    """Blob key of the metadata sidecar JSON."""
    return f"{file_hash}{SIDECAR_SUFFIX}"


def hash_from_key(key: str) -> str:
    """
    Recover the content hash from any derived blob key.

    Args:
        key: A key such as 'abc123.png' or 'abc123.lossless.webp'

    Returns:
        The leading hash component
    """
    return os.path.basename(key).split('.', 1)[0]


def get_extension(filename: str) -> str:
    """Lowercased extension including the dot, or '' if none."""
    return os.path.splitext(filename or '')[1].lower()
