# database/core.py
import sqlite3
import config
from utils.logging_config import get_logger

logger = get_logger('Database')

DB_FILE = config.DATABASE_PATH


def get_db_connection():
    """Create a database connection with optimized performance settings."""
    # Set timeout to 30 seconds to wait for locks instead of failing immediately
    conn = sqlite3.connect(DB_FILE, check_same_thread=False, timeout=30.0)

    # Enable foreign keys (required for cascading deletes)
    conn.execute("PRAGMA foreign_keys = ON")

    # WAL mode for better concurrency
    conn.execute("PRAGMA journal_mode = WAL")

    # Faster synchronization (safe with WAL mode)
    conn.execute("PRAGMA synchronous = NORMAL")

    # Negative value means KB
    cache_size_kb = -1 * config.DB_CACHE_SIZE_MB * 1024
    conn.execute(f"PRAGMA cache_size = {cache_size_kb}")

    mmap_size_bytes = config.DB_MMAP_SIZE_MB * 1024 * 1024
    conn.execute(f"PRAGMA mmap_size = {mmap_size_bytes}")

    conn.execute("PRAGMA temp_store = MEMORY")
    conn.execute(f"PRAGMA wal_autocheckpoint = {config.DB_WAL_AUTOCHECKPOINT}")

    # Enable row factory for dict-like access
    conn.row_factory = sqlite3.Row
    return conn


def initialize_database():
    """Create the database and tables if they don't exist."""
    with get_db_connection() as conn:
        cur = conn.cursor()

        # One row per unique content hash
        cur.execute("""
        CREATE TABLE IF NOT EXISTS images (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            filename TEXT NOT NULL,
            s3_key TEXT NOT NULL UNIQUE,
            file_hash TEXT NOT NULL UNIQUE,
            width INTEGER,
            height INTEGER,
            has_lossless_webp INTEGER NOT NULL DEFAULT 0,
            has_metadata_file INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
        )
        """)

        cur.execute("""
        CREATE TABLE IF NOT EXISTS image_metadata (
            image_id INTEGER PRIMARY KEY,
            prompt TEXT,
            negative_prompt TEXT,
            seed INTEGER,
            steps INTEGER,
            scale REAL,
            sampler TEXT,
            v4_base_caption TEXT,
            v4_char_captions TEXT,
            raw_comment TEXT NOT NULL,
            metadata_format TEXT,
            FOREIGN KEY (image_id) REFERENCES images (id) ON DELETE CASCADE
        )
        """)

        cur.execute("""
        CREATE TABLE IF NOT EXISTS tags (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            category TEXT
        )
        """)

        cur.execute("""
        CREATE TABLE IF NOT EXISTS image_tags (
            image_id INTEGER NOT NULL,
            tag_id INTEGER NOT NULL,
            weight REAL NOT NULL DEFAULT 1.0,
            is_negative INTEGER NOT NULL DEFAULT 0,
            source TEXT NOT NULL DEFAULT 'prompt',
            PRIMARY KEY (image_id, tag_id),
            FOREIGN KEY (image_id) REFERENCES images (id) ON DELETE CASCADE,
            FOREIGN KEY (tag_id) REFERENCES tags (id) ON DELETE CASCADE
        )
        """)

        # Indexes
        cur.execute("CREATE INDEX IF NOT EXISTS idx_image_tags_tag_id ON image_tags(tag_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_image_tags_source ON image_tags(tag_id, source, is_negative)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_images_created_at ON images(created_at)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_images_lossless ON images(has_lossless_webp)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_images_metadata_file ON images(has_metadata_file)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_tags_category ON tags(category)")

        conn.commit()

    logger.info(f"Database initialized at {DB_FILE}")
