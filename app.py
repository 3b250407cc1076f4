import os

import config
from core import IngestResult, TagCache
from database import initialize_database
from services.processing import IngestionPipeline, ProcessingError
from services.search import SearchIndexError, SearchIndexSynchronizer, create_indexes, search_images
from services.storage import get_blob_store
from services.system import ReindexOptions, ReindexRunner
from services.tag_indexer import TagPopularityEvaluator
from services.tag_service import TagService
from utils.logging_config import get_logger, setup_logging
from utils.png_reader import NotAPngError

logger = get_logger('App')


class NaiBooru:
    """
    Application object wiring storage, database, search index and services.

    Build it with create_app(); every component is injectable for tests.
    """

    def __init__(self, blob_store, synchronizer):
        self.blob_store = blob_store
        self.synchronizer = synchronizer
        self.evaluator = TagPopularityEvaluator(synchronizer)
        self.tag_cache = TagCache(self.evaluator.load_indexable_tags,
                                  refresh_interval=config.TAG_CACHE_REFRESH_SECONDS)
        self.evaluator.attach_cache(self.tag_cache)
        self.pipeline = IngestionPipeline(blob_store, synchronizer, self.evaluator)
        self.tags = TagService(synchronizer, self.evaluator, blob_store)

    # --- Ingestion ---

    def ingest_image(self, data: bytes, filename: str) -> IngestResult:
        """
        Ingest one upload. Never raises; failures come back as
        IngestResult.failed(...) with a readable message.
        """
        try:
            return self.pipeline.ingest(data, filename)
        except NotAPngError as e:
            logger.warning(f"Rejected {filename}: {e}")
            return IngestResult.failed(str(e))
        except ProcessingError as e:
            return IngestResult.failed(str(e))
        except Exception as e:
            logger.exception(f"Unexpected error ingesting {filename}")
            return IngestResult.failed(f"Unexpected error: {e}")

    def ingest_file(self, filepath: str) -> IngestResult:
        filename = os.path.basename(filepath)
        try:
            with open(filepath, 'rb') as f:
                data = f.read()
        except OSError as e:
            logger.error(f"Could not read {filepath}: {e}")
            return IngestResult.failed(f"Could not read {filename}: {e}")
        return self.ingest_image(data, filename)

    # --- Tags ---

    def reevaluate_tags(self, tag_ids):
        return self.tags.reevaluate_tags(tag_ids)

    def suggest_tags(self, query: str, limit: int = config.Defaults.TAG_SUGGEST_LIMIT):
        self.tag_cache.refresh_if_needed()
        return self.tag_cache.suggest(query, limit)

    # --- Search ---

    def search(self, query: str = '', **kwargs) -> dict:
        return search_images(self.synchronizer.images_index, query, **kwargs)

    # --- Maintenance ---

    def reindex_runner(self, options: ReindexOptions = None, **kwargs) -> ReindexRunner:
        return ReindexRunner(self.blob_store, self.synchronizer, self.evaluator,
                             options or ReindexOptions(), **kwargs)


def create_app(blob_store=None, images_index=None, tags_index=None, initialize_indexes=True,
               log_level=None, simple_logging=False):
    """
    Create and configure the application.

    CLI scripts pass simple_logging=True for timestamp-free console output.
    """
    setup_logging(level=log_level or config.LOG_LEVEL, log_file=config.LOG_FILE, simple=simple_logging)
    logger.info(f"Initializing {config.APP_NAME}...")

    if not config.validate_config():
        logger.warning("Configuration has warnings, continuing")

    initialize_database()

    if images_index is None or tags_index is None:
        images_index, tags_index = create_indexes()
    synchronizer = SearchIndexSynchronizer(images_index, tags_index)

    if initialize_indexes:
        try:
            synchronizer.initialize()
        except SearchIndexError as e:
            # ingestion still works; documents are repaired by reindex
            logger.error(f"Search index unavailable at startup: {e}")

    app = NaiBooru(blob_store or get_blob_store(), synchronizer)
    logger.info(f"{config.APP_NAME} ready")
    return app
