"""
Derived artifacts stored next to an original upload:
- a lossless WebP re-encode with metadata stripped
- a JSON sidecar of the parsed generation metadata
"""

import io
import json
from datetime import datetime, timezone
from typing import Optional

from PIL import Image

from core.models import GenerationMetadata

WEBP_CONTENT_TYPE = 'image/webp'
PNG_CONTENT_TYPE = 'image/png'
JSON_CONTENT_TYPE = 'application/json'

# Compression effort for lossless WebP (0 fastest .. 6 smallest)
WEBP_METHOD = 4


def convert_to_lossless_webp(data: bytes) -> bytes:
    """Re-encode an image buffer as lossless WebP without ancillary metadata."""
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        if img.mode not in ('RGB', 'RGBA'):
            has_alpha = img.mode in ('LA', 'PA') or 'transparency' in img.info
            img = img.convert('RGBA' if has_alpha else 'RGB')

        output = io.BytesIO()
        # exif/icc are only written when passed explicitly, so nothing leaks through
        img.save(output, 'WEBP', lossless=True, method=WEBP_METHOD)
        return output.getvalue()


def build_sidecar(metadata_format: str, metadata: GenerationMetadata, filename: str,
                  uploaded_at: Optional[str] = None) -> bytes:
    """
    Serialize the metadata sidecar:
        {"format", "metadata", "uploadedAt", "filename"}
    Written without indentation.
    """
    if uploaded_at is None:
        uploaded_at = datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')
    document = {
        'format': metadata_format,
        'metadata': metadata.to_dict(),
        'uploadedAt': uploaded_at,
        'filename': filename,
    }
    return json.dumps(document, separators=(',', ':'), ensure_ascii=False).encode('utf-8')
