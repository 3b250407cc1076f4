"""
Repository modules for data access layer.

Each module groups the SQL for one aggregate; functions that take a
connection argument are meant to run inside a caller's transaction.
"""

from .image_repository import (
    find_image_by_hash,
    get_image,
    get_image_with_relations,
    build_generation_metadata,
    create_image_record,
    set_image_flag,
    list_images_missing,
    count_images_missing,
    list_image_ids,
    count_images,
    delete_image,
)

from .tag_repository import (
    TagConflictError,
    derive_category,
    find_or_create_tag,
    get_tag,
    get_tag_by_name,
    get_tag_usage,
    list_tag_usage,
    list_tag_ids,
    upsert_image_tag,
    add_user_image_tag,
    remove_image_tag,
    list_tag_ids_for_image,
)
