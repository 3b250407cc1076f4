"""
Search index synchronizer.

Translates relational records and tag popularity decisions into document
index writes against the images and tags collections.
"""

from typing import Iterable, List

import config
from core.models import TagEvaluation
from utils.logging_config import get_logger
from .documents import (
    IMAGE_INDEX_SETTINGS,
    TAG_INDEX_SETTINGS,
    build_image_document,
    build_tag_document,
    build_tag_facets,
)

logger = get_logger('SearchSync')


class SearchIndexSynchronizer:
    """
    Owns the two document indexes.

    Args:
        images_index: document index for image documents
        tags_index: document index for tag documents
    """

    def __init__(self, images_index, tags_index):
        self.images_index = images_index
        self.tags_index = tags_index

    def initialize(self):
        """Create both indexes and apply their attribute settings."""
        for index, settings in ((self.images_index, IMAGE_INDEX_SETTINGS),
                                (self.tags_index, TAG_INDEX_SETTINGS)):
            index.create()
            index.update_settings(settings)
        logger.info("Search indexes initialized")

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def index_image(self, record: dict) -> dict:
        """Add or replace the full document for one image."""
        document = build_image_document(record)
        self.images_index.add_documents([document])
        return document

    def index_images(self, records: Iterable[dict]) -> int:
        documents = [build_image_document(record) for record in records]
        if documents:
            self.images_index.add_documents(documents)
        return len(documents)

    def update_image(self, image_id: int, fields: dict):
        """Field-level merge into an existing image document."""
        self.images_index.update_documents([dict(fields, id=image_id)])

    def refresh_image_tags(self, record: dict):
        """Rewrite only the tag facet arrays of an image document."""
        self.update_image(record['image']['id'], build_tag_facets(record['tags']))

    def remove_image(self, image_id: int):
        self.images_index.delete_document(image_id)

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def apply_evaluation(self, evaluation: TagEvaluation):
        """Write the tag document if it qualifies, otherwise remove it."""
        if evaluation.should_index:
            self.tags_index.add_documents([build_tag_document(evaluation)])
        else:
            self.remove_tag(evaluation.tag_id)

    def write_tags(self, evaluations: List[TagEvaluation],
                   chunk_size: int = config.TAG_INDEX_CHUNK_SIZE) -> int:
        """Write qualifying tag documents in chunks. Returns the number written."""
        documents = [build_tag_document(e) for e in evaluations if e.should_index]
        for start in range(0, len(documents), chunk_size):
            self.tags_index.add_documents(documents[start:start + chunk_size])
        return len(documents)

    def remove_tag(self, tag_id: int):
        self.tags_index.delete_document(tag_id)

    def clear_tags(self):
        self.tags_index.delete_all_documents()
