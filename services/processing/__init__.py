"""
Processing service package.

This package contains the ingestion pipeline split into focused modules:
- image_processor: hash, dedupe, persist and publish an upload
- derivatives: lossless WebP re-encode and metadata sidecar
"""

from .image_processor import IngestionPipeline, ProcessingError, resolve_dimensions
from .derivatives import build_sidecar, convert_to_lossless_webp

__all__ = [
    'IngestionPipeline',
    'ProcessingError',
    'resolve_dimensions',
    'build_sidecar',
    'convert_to_lossless_webp',
]
