"""
Filesystem blob store.

Objects live at <root>/<key>. Writes go to a temporary file first and are
moved into place, so a reader never sees a half-written object.
"""

import os
import tempfile

from utils.logging_config import get_logger
from .errors import BlobNotFoundError

logger = get_logger('LocalBlobStore')


class LocalBlobStore:
    """Blob store backed by a local directory."""

    def __init__(self, root: str, public_url: str = ''):
        self._root = os.path.abspath(root)
        self._public_url = public_url.rstrip('/')
        os.makedirs(self._root, exist_ok=True)

    @property
    def root(self) -> str:
        return self._root

    def _path(self, key: str) -> str:
        if not key or '..' in key.split('/') or key.startswith('/'):
            raise ValueError(f"Invalid blob key: {key!r}")
        return os.path.join(self._root, key)

    def put(self, key: str, data: bytes, content_type: str = 'application/octet-stream') -> None:
        path = self._path(key)
        os.makedirs(os.path.dirname(path), exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=os.path.dirname(path), prefix='.tmp-')
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.debug(f"Stored {key} ({len(data)} bytes, {content_type})")

    def get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            with open(path, 'rb') as f:
                return f.read()
        except FileNotFoundError:
            raise BlobNotFoundError(key) from None

    def delete(self, key: str) -> None:
        """Remove an object. Missing keys are ignored."""
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass

    def exists(self, key: str) -> bool:
        return os.path.isfile(self._path(key))

    def url(self, key: str) -> str:
        if self._public_url:
            return f"{self._public_url}/{key}"
        return self._path(key)
