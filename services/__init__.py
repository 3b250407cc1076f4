"""
Services package for naibooru.

This module provides the business logic services for:
- Image ingestion (processing)
- Blob storage (storage)
- Search index synchronization and queries (search)
- Tag popularity evaluation and tag mutations
- Ingest folder monitoring
- Batch reindex and repair (system)

Service modules should be imported directly where needed, e.g.
`from services import tag_service`.
"""

__all__ = [
    'monitor_service',
    'processing',
    'search',
    'storage',
    'system',
    'tag_indexer',
    'tag_service',
]
