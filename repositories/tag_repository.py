"""
Tag Repository Module

This module handles all tag-related database operations including:
- Concurrency-safe tag find-or-create
- Image/tag association writes
- Per-tag usage counts for popularity evaluation
"""

import sqlite3
from typing import List, Optional

import config
from core.models import TagSource
from database import get_db_connection
from utils.logging_config import get_logger

logger = get_logger('TagRepository')


class TagConflictError(RuntimeError):
    """Raised when find-or-create keeps losing the uniqueness race."""
    pass


# ============================================================================
# TAG LOOKUP AND CREATION
# ============================================================================

def derive_category(tag_name: str) -> Optional[str]:
    """
    Category from a ``category:value`` prefix.

    Examples:
        artist:someone -> artist
        red_eyes -> None
        :d -> None
    """
    index = tag_name.find(':')
    if index > 0:
        return tag_name[:index]
    return None


def _select_tag(conn: sqlite3.Connection, tag_name: str):
    return conn.execute("SELECT id FROM tags WHERE name = ?", (tag_name,)).fetchone()


def _insert_tag(conn: sqlite3.Connection, tag_name: str, category: Optional[str]) -> int:
    cursor = conn.execute(
        "INSERT INTO tags (name, category) VALUES (?, ?)",
        (tag_name, category)
    )
    return cursor.lastrowid


def find_or_create_tag(conn: sqlite3.Connection, tag_name: str,
                       max_attempts: Optional[int] = None) -> int:
    """
    Return the id of the tag with this name, creating it if needed.

    Read first, then insert. If the insert hits the unique constraint
    another writer created the tag in between, so read again. The category
    is only ever set by the creating insert.

    Raises:
        ValueError: If tag_name is empty
        TagConflictError: If the tag could not be read or created after
            max_attempts rounds
    """
    if not tag_name or not tag_name.strip():
        raise ValueError("Tag name cannot be empty")

    attempts = max_attempts or config.MAX_TAG_CREATE_ATTEMPTS
    for attempt in range(1, attempts + 1):
        row = _select_tag(conn, tag_name)
        if row:
            return row['id']

        try:
            return _insert_tag(conn, tag_name, derive_category(tag_name))
        except sqlite3.IntegrityError:
            logger.debug(f"Tag '{tag_name}' created concurrently, re-reading (attempt {attempt}/{attempts})")

    raise TagConflictError(f"Could not find or create tag '{tag_name}' after {attempts} attempts")


def get_tag(tag_id: int) -> Optional[dict]:
    """Get a tag row by ID."""
    with get_db_connection() as conn:
        row = conn.execute(
            "SELECT id, name, category FROM tags WHERE id = ?", (tag_id,)
        ).fetchone()
        return dict(row) if row else None


def get_tag_by_name(tag_name: str) -> Optional[dict]:
    """Get a tag row by name."""
    with get_db_connection() as conn:
        row = conn.execute(
            "SELECT id, name, category FROM tags WHERE name = ?", (tag_name,)
        ).fetchone()
        return dict(row) if row else None


def list_tag_ids() -> List[int]:
    """All tag IDs in ascending order."""
    with get_db_connection() as conn:
        return [row['id'] for row in conn.execute("SELECT id FROM tags ORDER BY id")]


# ============================================================================
# USAGE COUNTS
# ============================================================================

_USAGE_COLUMNS = """
    t.id, t.name, t.category,
    COALESCE(SUM(CASE WHEN it.source = 'user' THEN 1 ELSE 0 END), 0) AS user_count,
    COALESCE(SUM(CASE WHEN it.source != 'user' AND it.is_negative = 0 THEN 1 ELSE 0 END), 0) AS meta_pos,
    COALESCE(SUM(CASE WHEN it.source != 'user' AND it.is_negative = 1 THEN 1 ELSE 0 END), 0) AS meta_neg
"""


def get_tag_usage(tag_id: int) -> Optional[dict]:
    """
    Association counts for one tag.

    Returns:
        {'id', 'name', 'category', 'user_count', 'meta_pos', 'meta_neg'},
        or None if the tag does not exist
    """
    with get_db_connection() as conn:
        row = conn.execute(f"""
            SELECT {_USAGE_COLUMNS}
            FROM tags t
            LEFT JOIN image_tags it ON it.tag_id = t.id
            WHERE t.id = ?
            GROUP BY t.id
        """, (tag_id,)).fetchone()
        return dict(row) if row else None


def list_tag_usage() -> List[dict]:
    """Association counts for every tag, ordered by ID."""
    with get_db_connection() as conn:
        rows = conn.execute(f"""
            SELECT {_USAGE_COLUMNS}
            FROM tags t
            LEFT JOIN image_tags it ON it.tag_id = t.id
            GROUP BY t.id
            ORDER BY t.id
        """).fetchall()
        return [dict(row) for row in rows]


# ============================================================================
# IMAGE/TAG ASSOCIATIONS
# ============================================================================

def upsert_image_tag(conn: sqlite3.Connection, image_id: int, tag_id: int,
                     weight: float, is_negative: bool, source) -> None:
    """Create or overwrite a pipeline-sourced association."""
    conn.execute("""
        INSERT INTO image_tags (image_id, tag_id, weight, is_negative, source)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(image_id, tag_id) DO UPDATE SET
            weight = excluded.weight,
            is_negative = excluded.is_negative,
            source = excluded.source
    """, (image_id, tag_id, weight, int(bool(is_negative)), TagSource(source).value))


def add_user_image_tag(conn: sqlite3.Connection, image_id: int, tag_id: int) -> bool:
    """
    Attach a user tag. An existing association for the pair is left as is.

    Returns:
        True if a new association was created
    """
    cursor = conn.execute("""
        INSERT INTO image_tags (image_id, tag_id, weight, is_negative, source)
        VALUES (?, ?, 1.0, 0, ?)
        ON CONFLICT(image_id, tag_id) DO NOTHING
    """, (image_id, tag_id, TagSource.USER.value))
    return cursor.rowcount > 0


def remove_image_tag(conn: sqlite3.Connection, image_id: int, tag_id: int) -> bool:
    """Returns True if an association was deleted."""
    cursor = conn.execute(
        "DELETE FROM image_tags WHERE image_id = ? AND tag_id = ?",
        (image_id, tag_id)
    )
    return cursor.rowcount > 0


def list_tag_ids_for_image(image_id: int) -> List[int]:
    with get_db_connection() as conn:
        rows = conn.execute(
            "SELECT tag_id FROM image_tags WHERE image_id = ? ORDER BY tag_id", (image_id,)
        ).fetchall()
        return [row['tag_id'] for row in rows]
