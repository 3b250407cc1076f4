"""
System maintenance operations.
"""

from .reindex import ALL_TARGETS, ReindexOptions, ReindexRunner, ReindexTarget
from .task_helpers import chunked, iter_keyset_pages, process_with_concurrency

__all__ = [
    'ALL_TARGETS',
    'ReindexOptions',
    'ReindexRunner',
    'ReindexTarget',
    'chunked',
    'iter_keyset_pages',
    'process_with_concurrency',
]
