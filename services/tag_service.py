"""
Tag mutations on existing images: user tagging, tag removal and image
deletion. Each mutation re-evaluates the touched tags and brings the image
document back in line with the database.
"""

from typing import Iterable, List, Optional

from core.models import TagEvaluation
from database import get_db_connection, immediate_transaction
from repositories import image_repository, tag_repository
from utils.file_utils import lossless_key, sidecar_key
from utils.logging_config import get_logger
from utils.prompt_parser import normalize_tag_name

logger = get_logger('TagService')


class TagService:
    """
    Args:
        synchronizer: SearchIndexSynchronizer
        evaluator: TagPopularityEvaluator
        blob_store: blob store holding originals and derivatives
    """

    def __init__(self, synchronizer, evaluator, blob_store=None):
        self._synchronizer = synchronizer
        self._evaluator = evaluator
        self._blob_store = blob_store

    def reevaluate_tags(self, tag_ids: Iterable[int]) -> List[TagEvaluation]:
        return self._evaluator.evaluate_and_update(tag_ids)

    def _sync_image(self, image_id: int, tag_ids: Iterable[int]):
        self._evaluator.evaluate_and_update(tag_ids)
        record = image_repository.get_image_with_relations(image_id)
        if record is not None:
            self._synchronizer.refresh_image_tags(record)

    def add_user_tag(self, image_id: int, tag_name: str) -> Optional[dict]:
        """
        Tag an image by hand.

        Returns:
            {'tag_id', 'name', 'added'} where added is False when the image
            already carried the tag; None if the image does not exist
        """
        name = normalize_tag_name(tag_name or '')
        if not name:
            raise ValueError("Tag name cannot be empty")

        if image_repository.get_image(image_id) is None:
            return None

        with get_db_connection() as conn:
            with immediate_transaction(conn):
                tag_id = tag_repository.find_or_create_tag(conn, name)
                added = tag_repository.add_user_image_tag(conn, image_id, tag_id)

        if added:
            self._sync_image(image_id, [tag_id])
            logger.info(f"Added user tag '{name}' to image {image_id}")
        return {'tag_id': tag_id, 'name': name, 'added': added}

    def remove_tag(self, image_id: int, tag_id: int) -> bool:
        """Detach a tag from an image. Returns False if it was not attached."""
        with get_db_connection() as conn:
            with immediate_transaction(conn):
                removed = tag_repository.remove_image_tag(conn, image_id, tag_id)

        if removed:
            self._sync_image(image_id, [tag_id])
            logger.info(f"Removed tag {tag_id} from image {image_id}")
        return removed

    def delete_image(self, image_id: int) -> bool:
        """
        Delete an image with its metadata, associations, document and blobs.

        Returns False if the image does not exist.
        """
        deleted = image_repository.delete_image(image_id)
        if deleted is None:
            return False

        self._synchronizer.remove_image(image_id)
        self._evaluator.evaluate_and_update(deleted['tag_ids'])

        if self._blob_store is not None:
            file_hash = deleted['file_hash']
            for key in (deleted['s3_key'], lossless_key(file_hash), sidecar_key(file_hash)):
                self._blob_store.delete(key)

        logger.info(f"Deleted image {image_id} ({deleted['filename']})")
        return True
