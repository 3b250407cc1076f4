"""
Tests for repositories/tag_repository.py
"""
import pytest

from core.models import TagSource
from repositories import tag_repository
from repositories.tag_repository import (
    TagConflictError,
    add_user_image_tag,
    derive_category,
    find_or_create_tag,
    get_tag,
    get_tag_by_name,
    get_tag_usage,
    list_tag_ids_for_image,
    list_tag_usage,
    remove_image_tag,
    upsert_image_tag,
)


def _insert_image(conn, name='img'):
    cur = conn.execute(
        "INSERT INTO images (filename, s3_key, file_hash, created_at) VALUES (?, ?, ?, 'now')",
        (name, f"{name}.png", name)
    )
    conn.commit()
    return cur.lastrowid


@pytest.mark.unit
class TestDeriveCategory:

    @pytest.mark.parametrize("name,category", [
        ("artist:someone", "artist"),
        ("character:a:b", "character"),
        ("red_eyes", None),
        (":d", None),
        (":3", None),
    ])
    def test_derive_category(self, name, category):
        assert derive_category(name) == category


@pytest.mark.unit
class TestFindOrCreateTag:

    def test_creates_then_finds(self, db_connection):
        first = find_or_create_tag(db_connection, "cat")
        second = find_or_create_tag(db_connection, "cat")
        db_connection.commit()
        assert first == second
        assert get_tag(first) == {'id': first, 'name': 'cat', 'category': None}

    def test_category_set_on_create(self, db_connection):
        tag_id = find_or_create_tag(db_connection, "artist:someone")
        db_connection.commit()
        assert get_tag_by_name("artist:someone")['category'] == "artist"
        assert get_tag(tag_id)['name'] == "artist:someone"

    def test_empty_name_rejected(self, db_connection):
        with pytest.raises(ValueError):
            find_or_create_tag(db_connection, "  ")

    def test_lost_race_rereads(self, db_connection, monkeypatch):
        """An insert that hits the unique constraint falls back to the winner's row."""
        existing = find_or_create_tag(db_connection, "dog")
        real_select = tag_repository._select_tag
        calls = []

        def racing_select(conn, name):
            calls.append(name)
            # first read misses, as if the other writer had not committed yet
            return None if len(calls) == 1 else real_select(conn, name)

        monkeypatch.setattr(tag_repository, '_select_tag', racing_select)
        assert find_or_create_tag(db_connection, "dog") == existing
        assert len(calls) == 2

    def test_conflict_after_bounded_attempts(self, db_connection, monkeypatch):
        find_or_create_tag(db_connection, "dog")
        monkeypatch.setattr(tag_repository, '_select_tag', lambda conn, name: None)
        with pytest.raises(TagConflictError):
            find_or_create_tag(db_connection, "dog", max_attempts=3)

    def test_missing_lookups(self, db_connection):
        assert get_tag(999) is None
        assert get_tag_by_name("nope") is None


@pytest.mark.unit
class TestAssociations:

    def test_upsert_overwrites(self, db_connection):
        image_id = _insert_image(db_connection)
        tag_id = find_or_create_tag(db_connection, "cat")
        upsert_image_tag(db_connection, image_id, tag_id, 1.05, False, TagSource.PROMPT)
        upsert_image_tag(db_connection, image_id, tag_id, 0.5, True, TagSource.NEGATIVE)
        db_connection.commit()

        row = db_connection.execute("SELECT * FROM image_tags").fetchone()
        assert row['weight'] == 0.5
        assert row['is_negative'] == 1
        assert row['source'] == 'negative'

    def test_user_tag_does_not_overwrite(self, db_connection):
        image_id = _insert_image(db_connection)
        tag_id = find_or_create_tag(db_connection, "cat")
        upsert_image_tag(db_connection, image_id, tag_id, 1.1, False, TagSource.PROMPT)

        assert add_user_image_tag(db_connection, image_id, tag_id) is False
        db_connection.commit()
        assert db_connection.execute("SELECT source FROM image_tags").fetchone()['source'] == 'prompt'

    def test_user_tag_added_once(self, db_connection):
        image_id = _insert_image(db_connection)
        tag_id = find_or_create_tag(db_connection, "cat")
        assert add_user_image_tag(db_connection, image_id, tag_id) is True
        assert add_user_image_tag(db_connection, image_id, tag_id) is False
        db_connection.commit()
        assert list_tag_ids_for_image(image_id) == [tag_id]

    def test_remove(self, db_connection):
        image_id = _insert_image(db_connection)
        tag_id = find_or_create_tag(db_connection, "cat")
        add_user_image_tag(db_connection, image_id, tag_id)
        assert remove_image_tag(db_connection, image_id, tag_id) is True
        assert remove_image_tag(db_connection, image_id, tag_id) is False


@pytest.mark.unit
class TestTagUsage:

    def test_counts_by_source_and_sign(self, db_connection):
        tag_id = find_or_create_tag(db_connection, "blurry")
        sources = [
            (TagSource.PROMPT, False),
            (TagSource.V4_BASE, False),
            (TagSource.NEGATIVE, True),
            (TagSource.PROMPT, True),
        ]
        for i, (source, negative) in enumerate(sources):
            image_id = _insert_image(db_connection, f"img{i}")
            upsert_image_tag(db_connection, image_id, tag_id, 1.0, negative, source)
        image_id = _insert_image(db_connection, "user_img")
        add_user_image_tag(db_connection, image_id, tag_id)
        db_connection.commit()

        usage = get_tag_usage(tag_id)
        assert usage['name'] == "blurry"
        assert usage['user_count'] == 1
        assert usage['meta_pos'] == 2
        assert usage['meta_neg'] == 2

    def test_unused_tag(self, db_connection):
        tag_id = find_or_create_tag(db_connection, "lonely")
        db_connection.commit()
        usage = get_tag_usage(tag_id)
        assert (usage['user_count'], usage['meta_pos'], usage['meta_neg']) == (0, 0, 0)

    def test_missing_tag(self, db_connection):
        assert get_tag_usage(12345) is None

    def test_list_all(self, db_connection):
        a = find_or_create_tag(db_connection, "a")
        b = find_or_create_tag(db_connection, "b")
        db_connection.commit()
        assert [row['id'] for row in list_tag_usage()] == [a, b]
