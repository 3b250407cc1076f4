"""
Centralized configuration for all modules
"""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ('true', '1', 'yes')


# Application name (used in log banners and CLI output)
APP_NAME = os.environ.get('APP_NAME', 'naibooru')

# ==================== PATHS ====================

# Ingest folder - drop PNGs here and they'll be processed automatically
INGEST_DIRECTORY = os.environ.get('INGEST_DIRECTORY', './ingest')

# Remove files from the ingest folder once they have been ingested
DELETE_AFTER_INGEST = _env_bool('DELETE_AFTER_INGEST', 'false')

# Relational store
DATABASE_PATH = os.environ.get('DATABASE_PATH', './naibooru.db')

# ==================== BLOB STORAGE ====================

# Backend for content-addressed objects: 'local' or 's3'
BLOB_STORE = os.environ.get('BLOB_STORE', 'local').lower()

# Root directory for the local backend
STORAGE_DIRECTORY = os.environ.get('STORAGE_DIRECTORY', './storage')

# S3-compatible backend (AWS, MinIO, R2, ...)
S3_BUCKET = os.environ.get('S3_BUCKET', '')
S3_REGION = os.environ.get('S3_REGION', 'us-east-1')
S3_ENDPOINT = os.environ.get('S3_ENDPOINT', '') or None
S3_ACCESS_KEY_ID = os.environ.get('S3_ACCESS_KEY_ID', '') or None
S3_SECRET_ACCESS_KEY = os.environ.get('S3_SECRET_ACCESS_KEY', '') or None

# Public base URL used to render object URLs in ingest results
S3_PUBLIC_URL = os.environ.get('S3_PUBLIC_URL', '')

# ==================== SEARCH ====================

MEILISEARCH_HOST = os.environ.get('MEILISEARCH_HOST', 'http://localhost:7700')
MEILISEARCH_API_KEY = os.environ.get('MEILISEARCH_API_KEY', '')

IMAGES_INDEX = os.environ.get('IMAGES_INDEX', 'images')
TAGS_INDEX = os.environ.get('TAGS_INDEX', 'tags')

# ==================== DERIVATIVES ====================

# Store a lossless WebP copy next to every original
ENABLE_LOSSLESS_WEBP = _env_bool('ENABLE_LOSSLESS_WEBP', 'true')

# Whether a failed lossless conversion fails the upload.
# The reindex tool always logs and continues instead.
LOSSLESS_FAILURE_FATAL = _env_bool('LOSSLESS_FAILURE_FATAL', 'true')

# ==================== TAGS ====================

# Bounded retries for the concurrent find-or-create race
MAX_TAG_CREATE_ATTEMPTS = int(os.environ.get('MAX_TAG_CREATE_ATTEMPTS', 3))

# Tag suggestion cache staleness window (seconds)
TAG_CACHE_REFRESH_SECONDS = int(os.environ.get('TAG_CACHE_REFRESH_SECONDS', 300))

# ==================== REINDEX ====================

REINDEX_BATCH_SIZE = int(os.environ.get('REINDEX_BATCH_SIZE', 100))
REINDEX_CONCURRENCY = int(os.environ.get('REINDEX_CONCURRENCY', 5))
REINDEX_SLEEP_MS = int(os.environ.get('REINDEX_SLEEP_MS', 0))

# Tag documents are written to the index in chunks of this size
TAG_INDEX_CHUNK_SIZE = 1000

# ==================== DATABASE PERFORMANCE ====================

# SQLite cache size in MB (default 64MB)
DB_CACHE_SIZE_MB = int(os.environ.get('DB_CACHE_SIZE_MB', 64))

# Memory-mapped I/O size in MB (default 256MB)
DB_MMAP_SIZE_MB = int(os.environ.get('DB_MMAP_SIZE_MB', 256))

# WAL checkpoint interval (number of frames, default 1000)
DB_WAL_AUTOCHECKPOINT = int(os.environ.get('DB_WAL_AUTOCHECKPOINT', 1000))

# ==================== LOGGING ====================

# Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
LOG_FILE = os.environ.get('LOG_FILE', '') or None

# ==================== FILE TYPES ====================

SUPPORTED_IMAGE_EXTENSIONS = ('.png',)


def is_supported_image(filepath: str) -> bool:
    """Check if a file is a supported image type."""
    return filepath.lower().endswith(SUPPORTED_IMAGE_EXTENSIONS)


# ==================== DEFAULTS ====================

class Defaults:
    """Default values for various operations."""
    SEARCH_LIMIT = 50
    TAG_SUGGEST_LIMIT = 10
    BATCH_SIZE = 100


class Timeouts:
    """Timeout values in seconds."""
    API_REQUEST = 10
    FILE_READY = 60
    LONG_OPERATION = 300


class Intervals:
    """Interval values in seconds."""
    FILE_READY_CHECK = 0.5
    MONITOR_DEBOUNCE = 2.0
    TAG_CACHE_CHECK = 60


class Limits:
    """Size and count limits."""
    MAX_UPLOAD_SIZE_MB = 100
    FILE_READY_STABLE_CHECKS = 3
    MAX_FILENAME_LENGTH = 255


# ==================== VALIDATION ====================

def validate_config():
    """Validate configuration and warn about issues"""
    from utils.logging_config import get_logger
    logger = get_logger('Config')

    warnings = []

    if BLOB_STORE not in ('local', 's3'):
        warnings.append(f"Unknown BLOB_STORE '{BLOB_STORE}', expected 'local' or 's3'")

    if BLOB_STORE == 's3' and not S3_BUCKET:
        warnings.append("BLOB_STORE is 's3' but S3_BUCKET is not set")

    if not MEILISEARCH_API_KEY:
        warnings.append("MEILISEARCH_API_KEY is empty - only valid for an unsecured dev instance")

    if REINDEX_CONCURRENCY < 1:
        warnings.append(f"REINDEX_CONCURRENCY must be >= 1 (got {REINDEX_CONCURRENCY})")

    if MAX_TAG_CREATE_ATTEMPTS < 1:
        warnings.append(f"MAX_TAG_CREATE_ATTEMPTS must be >= 1 (got {MAX_TAG_CREATE_ATTEMPTS})")

    # Create ingest directory if it doesn't exist
    if not os.path.exists(INGEST_DIRECTORY):
        try:
            os.makedirs(INGEST_DIRECTORY, exist_ok=True)
            logger.info(f"Created ingest directory: {INGEST_DIRECTORY}")
        except OSError as e:
            warnings.append(f"Failed to create ingest directory: {e}")

    for warning in warnings:
        logger.warning(warning)

    return len(warnings) == 0


# ==================== HELPER FUNCTIONS ====================

def get_s3_config():
    """Get S3 blob store settings as a dict"""
    return {
        "bucket": S3_BUCKET,
        "region": S3_REGION,
        "endpoint_url": S3_ENDPOINT,
        "access_key_id": S3_ACCESS_KEY_ID,
        "secret_access_key": S3_SECRET_ACCESS_KEY,
        "public_url": S3_PUBLIC_URL,
    }


def get_search_config():
    """Get document index settings as a dict"""
    return {
        "host": MEILISEARCH_HOST,
        "api_key": MEILISEARCH_API_KEY,
        "images_index": IMAGES_INDEX,
        "tags_index": TAGS_INDEX,
    }
