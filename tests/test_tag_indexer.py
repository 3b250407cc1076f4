"""
Tests for tag popularity evaluation (services/tag_indexer.py)
"""
from unittest.mock import MagicMock

import pytest

from core.models import TagSource
from repositories.tag_repository import add_user_image_tag, find_or_create_tag, upsert_image_tag
from services.tag_indexer import TagPopularityEvaluator, compute_popularity


@pytest.mark.unit
class TestComputePopularity:
    """Test the positive-ratio rule."""

    @pytest.mark.parametrize("user,pos,neg,expected", [
        (0, 3, 2, (True, 3)),
        (0, 2, 3, (False, 2)),
        (1, 0, 0, (True, 1)),
        (0, 0, 0, (False, 0)),
        (0, 1, 1, (False, 1)),
        (0, 0, 5, (False, 0)),
        (2, 0, 10, (True, 2)),
        (1, 4, 0, (True, 5)),
    ])
    def test_rule(self, user, pos, neg, expected):
        assert compute_popularity(user, pos, neg) == expected


def _image(conn, n):
    cur = conn.execute(
        "INSERT INTO images (filename, s3_key, file_hash, created_at) VALUES (?, ?, ?, 'now')",
        (f"f{n}", f"k{n}", f"h{n}")
    )
    return cur.lastrowid


@pytest.mark.unit
class TestTagPopularityEvaluator:

    def _seed(self, conn, name, positive, negative, user=0):
        tag_id = find_or_create_tag(conn, name)
        n = conn.execute("SELECT COUNT(*) FROM images").fetchone()[0]
        for i in range(positive):
            upsert_image_tag(conn, _image(conn, n + i), tag_id, 1.0, False, TagSource.PROMPT)
        n += positive
        for i in range(negative):
            upsert_image_tag(conn, _image(conn, n + i), tag_id, 1.0, True, TagSource.NEGATIVE)
        n += negative
        for i in range(user):
            add_user_image_tag(conn, _image(conn, n + i), tag_id)
        conn.commit()
        return tag_id

    def test_evaluate(self, db_connection, evaluator):
        tag_id = self._seed(db_connection, "cat", positive=3, negative=2)
        evaluation = evaluator.evaluate(tag_id)
        assert evaluation.should_index is True
        assert evaluation.display_count == 3
        assert evaluation.name == "cat"

    def test_evaluate_missing(self, db_connection, evaluator):
        assert evaluator.evaluate(999) is None

    def test_update_writes_qualifying_tag(self, db_connection, evaluator, tags_index):
        tag_id = self._seed(db_connection, "artist:someone", positive=1, negative=0)
        evaluator.evaluate_and_update([tag_id])
        document = tags_index.documents[tag_id]
        assert document['name'] == "artist:someone"
        assert document['nameTokens'] == "artist someone"
        assert document['category'] == "artist"
        assert document['imageCount'] == 1

    def test_update_removes_negative_tag(self, db_connection, evaluator, tags_index):
        tag_id = self._seed(db_connection, "blurry", positive=2, negative=3)
        tags_index.documents[tag_id] = {'id': tag_id, 'name': 'blurry'}
        evaluator.evaluate_and_update([tag_id])
        assert tag_id not in tags_index.documents

    def test_user_tag_always_indexed(self, db_connection, evaluator, tags_index):
        tag_id = self._seed(db_connection, "favorite", positive=0, negative=0, user=1)
        evaluator.evaluate_and_update([tag_id])
        assert tags_index.documents[tag_id]['imageCount'] == 1

    def test_missing_tag_removed_from_index(self, db_connection, evaluator, tags_index):
        tags_index.documents[42] = {'id': 42}
        assert evaluator.evaluate_and_update([42]) == []
        assert 42 not in tags_index.documents

    def test_duplicate_ids_evaluated_once(self, db_connection, evaluator, tags_index):
        tag_id = self._seed(db_connection, "cat", positive=1, negative=0)
        evaluations = evaluator.evaluate_and_update([tag_id, tag_id, tag_id])
        assert len(evaluations) == 1
        adds = [c for c in tags_index.calls if c[0] == 'add_documents']
        assert len(adds) == 1

    def test_invalidates_cache(self, db_connection, synchronizer):
        cache = MagicMock()
        evaluator = TagPopularityEvaluator(synchronizer, tag_cache=cache)
        evaluator.evaluate_and_update([])
        cache.invalidate.assert_called_once()

    def test_load_indexable_tags(self, db_connection, evaluator):
        self._seed(db_connection, "cat", positive=2, negative=0)
        self._seed(db_connection, "lowres", positive=0, negative=2)
        rows = evaluator.load_indexable_tags()
        assert [row['name'] for row in rows] == ["cat"]
        assert rows[0]['imageCount'] == 2
