"""
Search package: Meilisearch client, document builders, index
synchronization and query parsing.
"""

from .meilisearch_client import MeilisearchIndex, SearchIndexError, create_indexes
from .documents import build_image_document, build_tag_document, tokenize_tag_name
from .synchronizer import SearchIndexSynchronizer
from .query import parse_search_query, search_images, search_tags

__all__ = [
    'MeilisearchIndex',
    'SearchIndexError',
    'create_indexes',
    'build_image_document',
    'build_tag_document',
    'tokenize_tag_name',
    'SearchIndexSynchronizer',
    'parse_search_query',
    'search_images',
    'search_tags',
]
