"""
Content-addressed ingestion pipeline.

hash -> duplicate check -> read metadata -> store original -> lossless
derivative -> metadata sidecar -> relational record -> tag re-evaluation ->
image document.

Storage and the search index share no transaction with the database. A
crash part-way leaves either an orphaned blob (harmless, the key is the
content hash) or an unindexed image, which the reindex tool repairs.
"""

from typing import Optional

import config
from core.models import ImageRef, IngestResult
from repositories import image_repository
from utils.file_utils import calculate_content_hash, get_extension, lossless_key, original_key, sidecar_key
from utils.logging_config import get_logger
from utils.metadata_readers import detect_and_read_metadata, get_dimensions
from utils.png_reader import NotAPngError, is_png
from .derivatives import (
    JSON_CONTENT_TYPE,
    PNG_CONTENT_TYPE,
    WEBP_CONTENT_TYPE,
    build_sidecar,
    convert_to_lossless_webp,
)

logger = get_logger('Ingest')


class ProcessingError(Exception):
    """A storage, derivation, persistence or indexing step failed after the duplicate check."""
    pass


def resolve_dimensions(header_dimensions, metadata):
    """Header dimensions win; metadata values are only a fallback when the header is unreadable."""
    if header_dimensions is not None:
        return header_dimensions
    return metadata.width, metadata.height


class IngestionPipeline:
    """
    Ingests raw PNG uploads.

    Args:
        blob_store: object with put/get/delete/url
        synchronizer: SearchIndexSynchronizer
        evaluator: TagPopularityEvaluator
        enable_lossless: generate the lossless WebP derivative
        lossless_failure_fatal: fail the upload when the derivative fails
    """

    def __init__(self, blob_store, synchronizer, evaluator,
                 enable_lossless: Optional[bool] = None,
                 lossless_failure_fatal: Optional[bool] = None):
        self.blob_store = blob_store
        self.synchronizer = synchronizer
        self.evaluator = evaluator
        self.enable_lossless = config.ENABLE_LOSSLESS_WEBP if enable_lossless is None else enable_lossless
        self.lossless_failure_fatal = (config.LOSSLESS_FAILURE_FATAL
                                       if lossless_failure_fatal is None else lossless_failure_fatal)

    def _image_ref(self, image: dict, metadata_format: Optional[str] = None) -> ImageRef:
        return ImageRef(
            id=image['id'],
            filename=image['filename'],
            s3_key=image['s3_key'],
            url=self.blob_store.url(image['s3_key']),
            width=image.get('width'),
            height=image.get('height'),
            metadata_format=metadata_format,
            created_at=image.get('created_at'),
        )

    def store_lossless(self, data: bytes, file_hash: str) -> bool:
        """
        Generate and store the lossless derivative.

        Returns True when stored. Failures raise when lossless_failure_fatal
        is set, otherwise they are logged and reported as False.
        """
        key = lossless_key(file_hash)
        try:
            self.blob_store.put(key, convert_to_lossless_webp(data), WEBP_CONTENT_TYPE)
            return True
        except Exception as e:
            if self.lossless_failure_fatal:
                raise
            logger.warning(f"Lossless derivative failed for {key}, leaving it for reindex: {e}")
            return False

    def ingest(self, data: bytes, filename: str) -> IngestResult:
        """
        Ingest one upload.

        Returns:
            IngestResult.existing(...) for already-known content,
            IngestResult.created(...) for a new image

        Raises:
            NotAPngError: the buffer is not a PNG
            ProcessingError: any step after the duplicate check failed
        """
        if not is_png(data):
            raise NotAPngError(f"{filename} is not a PNG file")

        file_hash = calculate_content_hash(data)

        existing = image_repository.find_image_by_hash(file_hash)
        if existing:
            logger.info(f"Duplicate upload {filename} matches image {existing['id']}")
            return IngestResult.existing(self._image_ref(existing))

        extension = get_extension(filename) or '.png'
        result = detect_and_read_metadata(data, extension)
        metadata = result['metadata']
        width, height = resolve_dimensions(get_dimensions(data), metadata)

        key = original_key(file_hash)
        try:
            self.blob_store.put(key, data, PNG_CONTENT_TYPE)

            has_lossless = self.enable_lossless and self.store_lossless(data, file_hash)

            sidecar = build_sidecar(result['format'], metadata, filename)
            self.blob_store.put(sidecar_key(file_hash), sidecar, JSON_CONTENT_TYPE)

            record = image_repository.create_image_record(
                filename=filename,
                file_hash=file_hash,
                s3_key=key,
                width=width,
                height=height,
                has_lossless_webp=has_lossless,
                metadata=metadata,
                metadata_format=result['format'],
            )
            if not record['created']:
                existing = image_repository.get_image(record['id'])
                logger.info(f"Concurrent duplicate {filename} resolved to image {record['id']}")
                return IngestResult.existing(self._image_ref(existing))

            self.evaluator.evaluate_and_update(record['tag_ids'])

            relations = image_repository.get_image_with_relations(record['id'])
            self.synchronizer.index_image(relations)
        except Exception as e:
            logger.error(f"Failed to ingest {filename} ({file_hash}): {e}")
            raise ProcessingError(f"Failed to process {filename}: {e}") from e

        logger.info(f"Ingested {filename} as image {record['id']} with {len(record['tag_ids'])} tags")
        return IngestResult.created(self._image_ref(relations['image'], result['format']))
