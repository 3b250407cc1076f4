"""
Image Repository Module

This module handles all image-related database operations:
- Content-hash lookup for deduplication
- Transactional creation of an image with its metadata and tag rows
- Loading an image with everything needed to rebuild its derived artifacts
- Derivative flags and paged scans for the reindex tool
"""

import json
import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from core.models import GenerationMetadata, TagSource, WeightedTag
from database import get_db_connection, immediate_transaction
from repositories.tag_repository import find_or_create_tag, upsert_image_tag
from utils.logging_config import get_logger

logger = get_logger('ImageRepository')

# Flags the reindex tool is allowed to scan and set
DERIVATIVE_FLAGS = ('has_lossless_webp', 'has_metadata_file')

_IMAGE_COLUMNS = (
    "id, filename, s3_key, file_hash, width, height, "
    "has_lossless_webp, has_metadata_file, created_at"
)


def _check_flag(flag: str) -> str:
    if flag not in DERIVATIVE_FLAGS:
        raise ValueError(f"Unknown image flag: {flag}")
    return flag


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def _image_dict(row) -> dict:
    image = dict(row)
    image['has_lossless_webp'] = bool(image['has_lossless_webp'])
    image['has_metadata_file'] = bool(image['has_metadata_file'])
    return image


# ============================================================================
# LOOKUPS
# ============================================================================

def find_image_by_hash(file_hash: str) -> Optional[dict]:
    """Get an image row by content hash, or None."""
    with get_db_connection() as conn:
        row = conn.execute(
            f"SELECT {_IMAGE_COLUMNS} FROM images WHERE file_hash = ?", (file_hash,)
        ).fetchone()
        return _image_dict(row) if row else None


def get_image(image_id: int) -> Optional[dict]:
    """Get an image row by ID, or None."""
    with get_db_connection() as conn:
        row = conn.execute(
            f"SELECT {_IMAGE_COLUMNS} FROM images WHERE id = ?", (image_id,)
        ).fetchone()
        return _image_dict(row) if row else None


def get_image_with_relations(image_id: int) -> Optional[dict]:
    """
    Load an image with its metadata row and tag associations.

    Returns:
        {'image': dict, 'metadata': dict or None, 'tags': [dict, ...]} where
        each tag dict has tag_id, name, category, weight, is_negative, source.
        None if the image does not exist.
    """
    with get_db_connection() as conn:
        row = conn.execute(
            f"SELECT {_IMAGE_COLUMNS} FROM images WHERE id = ?", (image_id,)
        ).fetchone()
        if not row:
            return None

        meta_row = conn.execute(
            "SELECT * FROM image_metadata WHERE image_id = ?", (image_id,)
        ).fetchone()

        tag_rows = conn.execute("""
            SELECT t.id AS tag_id, t.name, t.category,
                   it.weight, it.is_negative, it.source
            FROM image_tags it
            JOIN tags t ON t.id = it.tag_id
            WHERE it.image_id = ?
            ORDER BY it.rowid
        """, (image_id,)).fetchall()

    tags = []
    for tag_row in tag_rows:
        tag = dict(tag_row)
        tag['is_negative'] = bool(tag['is_negative'])
        tags.append(tag)

    return {
        'image': _image_dict(row),
        'metadata': dict(meta_row) if meta_row else None,
        'tags': tags,
    }


def build_generation_metadata(record: dict) -> GenerationMetadata:
    """Rebuild a GenerationMetadata from get_image_with_relations() output."""
    meta = record.get('metadata') or {}
    image = record['image']

    char_captions = meta.get('v4_char_captions')
    if char_captions:
        try:
            char_captions = json.loads(char_captions)
        except ValueError:
            logger.warning(f"Image {image['id']} has unreadable v4_char_captions")
            char_captions = None

    tags = [
        WeightedTag(tag['name'], tag['weight'], tag['is_negative'], tag['source'])
        for tag in record['tags']
        if tag['source'] != TagSource.USER.value
    ]

    return GenerationMetadata(
        raw_comment=meta.get('raw_comment') or '',
        prompt=meta.get('prompt'),
        negative_prompt=meta.get('negative_prompt'),
        seed=meta.get('seed'),
        steps=meta.get('steps'),
        scale=meta.get('scale'),
        sampler=meta.get('sampler'),
        width=image.get('width'),
        height=image.get('height'),
        v4_base_caption=meta.get('v4_base_caption'),
        v4_char_captions=char_captions,
        tags=tags,
    )


# ============================================================================
# CREATION
# ============================================================================

def _insert_records(conn: sqlite3.Connection, filename: str, file_hash: str, s3_key: str,
                    width: Optional[int], height: Optional[int], has_lossless_webp: bool,
                    metadata: GenerationMetadata, metadata_format: str) -> dict:
    created_at = _utc_now()
    cursor = conn.execute("""
        INSERT INTO images (filename, s3_key, file_hash, width, height,
                            has_lossless_webp, has_metadata_file, created_at)
        VALUES (?, ?, ?, ?, ?, ?, 1, ?)
    """, (filename, s3_key, file_hash, width, height, int(bool(has_lossless_webp)), created_at))
    image_id = cursor.lastrowid

    char_captions = None
    if metadata.v4_char_captions is not None:
        char_captions = json.dumps(metadata.v4_char_captions)

    conn.execute("""
        INSERT INTO image_metadata (image_id, prompt, negative_prompt, seed, steps, scale,
                                    sampler, v4_base_caption, v4_char_captions,
                                    raw_comment, metadata_format)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, (image_id, metadata.prompt, metadata.negative_prompt, metadata.seed,
          metadata.steps, metadata.scale, metadata.sampler, metadata.v4_base_caption,
          char_captions, metadata.raw_comment or '', metadata_format))

    tag_ids = []
    for tag in metadata.tags:
        tag_id = find_or_create_tag(conn, tag.name)
        upsert_image_tag(conn, image_id, tag_id, tag.weight, tag.is_negative, tag.source)
        tag_ids.append(tag_id)

    return {'id': image_id, 'created': True, 'created_at': created_at, 'tag_ids': tag_ids}


def create_image_record(filename: str, file_hash: str, s3_key: str,
                        width: Optional[int], height: Optional[int],
                        has_lossless_webp: bool, metadata: GenerationMetadata,
                        metadata_format: str) -> dict:
    """
    Persist an image, its metadata row and its tag associations in one
    transaction.

    If another writer already stored the same content hash, nothing is
    written and the existing image is reported instead.

    Returns:
        {'id', 'created': bool, 'created_at', 'tag_ids': [int, ...]}
    """
    with get_db_connection() as conn:
        try:
            with immediate_transaction(conn):
                existing = conn.execute(
                    "SELECT id, created_at FROM images WHERE file_hash = ?", (file_hash,)
                ).fetchone()
                if existing:
                    return {'id': existing['id'], 'created': False,
                            'created_at': existing['created_at'], 'tag_ids': []}

                return _insert_records(conn, filename, file_hash, s3_key, width, height,
                                       has_lossless_webp, metadata, metadata_format)
        except sqlite3.IntegrityError as e:
            if 'images.file_hash' not in str(e) and 'images.s3_key' not in str(e):
                raise

    existing = find_image_by_hash(file_hash)
    if existing is None:
        raise RuntimeError(f"Image with hash {file_hash} vanished after a uniqueness conflict")
    logger.info(f"Concurrent upload of {file_hash} resolved to image {existing['id']}")
    return {'id': existing['id'], 'created': False,
            'created_at': existing['created_at'], 'tag_ids': []}


# ============================================================================
# FLAGS AND SCANS
# ============================================================================

def set_image_flag(image_id: int, flag: str, value: bool = True) -> None:
    flag = _check_flag(flag)
    with get_db_connection() as conn:
        conn.execute(f"UPDATE images SET {flag} = ? WHERE id = ?", (int(bool(value)), image_id))
        conn.commit()


def list_images_missing(flag: str, after_id: int = 0, limit: int = 100) -> List[dict]:
    """Images whose derivative flag is false, keyset-paged by ID."""
    flag = _check_flag(flag)
    with get_db_connection() as conn:
        rows = conn.execute(f"""
            SELECT {_IMAGE_COLUMNS} FROM images
            WHERE {flag} = 0 AND id > ?
            ORDER BY id
            LIMIT ?
        """, (after_id, limit)).fetchall()
        return [_image_dict(row) for row in rows]


def count_images_missing(flag: str) -> int:
    flag = _check_flag(flag)
    with get_db_connection() as conn:
        return conn.execute(f"SELECT COUNT(*) FROM images WHERE {flag} = 0").fetchone()[0]


def list_image_ids(after_id: int = 0, limit: int = 100) -> List[int]:
    with get_db_connection() as conn:
        rows = conn.execute(
            "SELECT id FROM images WHERE id > ? ORDER BY id LIMIT ?", (after_id, limit)
        ).fetchall()
        return [row['id'] for row in rows]


def count_images() -> int:
    with get_db_connection() as conn:
        return conn.execute("SELECT COUNT(*) FROM images").fetchone()[0]


# ============================================================================
# DELETION
# ============================================================================

def delete_image(image_id: int) -> Optional[dict]:
    """
    Delete an image. Metadata and tag associations go with it via cascade.

    Returns:
        The deleted image row plus 'tag_ids' it carried, or None if missing
    """
    with get_db_connection() as conn:
        with immediate_transaction(conn):
            row = conn.execute(
                f"SELECT {_IMAGE_COLUMNS} FROM images WHERE id = ?", (image_id,)
            ).fetchone()
            if not row:
                return None
            tag_ids = [r['tag_id'] for r in conn.execute(
                "SELECT tag_id FROM image_tags WHERE image_id = ?", (image_id,)
            )]
            conn.execute("DELETE FROM images WHERE id = ?", (image_id,))

    image = _image_dict(row)
    image['tag_ids'] = tag_ids
    return image
