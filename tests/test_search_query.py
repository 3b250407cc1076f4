"""
Tests for search query parsing and execution (services/search/query.py)
"""
import pytest

from services.search.query import build_tag_filter, parse_search_query, search_images, search_tags


@pytest.mark.unit
class TestParseSearchQuery:

    def test_empty(self):
        assert parse_search_query('   ') == {'include_terms': [], 'exclude_terms': [], 'use_and': False}

    def test_or_terms(self):
        parsed = parse_search_query('cat dog')
        assert parsed['include_terms'] == ['cat', 'dog']
        assert parsed['use_and'] is False

    def test_explicit_and(self):
        parsed = parse_search_query('cat AND dog AND -bird')
        assert parsed == {'include_terms': ['cat', 'dog'], 'exclude_terms': ['bird'], 'use_and': True}

    def test_plus_switches_to_and(self):
        parsed = parse_search_query('cat +dog')
        assert parsed['include_terms'] == ['cat', 'dog']
        assert parsed['use_and'] is True

    def test_exclude_and_quotes(self):
        parsed = parse_search_query('"red eyes" -"blue hair" -lowres')
        assert parsed['include_terms'] == ['red eyes']
        assert parsed['exclude_terms'] == ['blue hair', 'lowres']


@pytest.mark.unit
class TestBuildTagFilter:

    def test_filters(self):
        assert build_tag_filter(['cat', 'dog']) == 'tags = "cat" AND tags = "dog"'
        assert build_tag_filter(['cat'], positive_only=True) == 'positiveTags = "cat"'
        assert build_tag_filter([]) is None
        assert build_tag_filter(None) is None

    def test_escapes_quotes(self):
        assert build_tag_filter(['a"b']) == 'tags = "a\\"b"'


def _docs(index):
    index.add_documents([
        {'id': 1, 'prompt': 'cat, garden', 'tags': ['cat', 'garden'], 'positiveTags': ['cat', 'garden'],
         'createdAt': 1},
        {'id': 2, 'prompt': 'cat, dog', 'tags': ['cat', 'dog', 'lowres'], 'positiveTags': ['cat', 'dog'],
         'createdAt': 2},
        {'id': 3, 'prompt': 'dog', 'tags': ['dog', 'cat'], 'positiveTags': ['dog'], 'createdAt': 3},
    ])


@pytest.mark.unit
class TestSearchImages:

    def test_or_mode_newest_first(self, images_index):
        _docs(images_index)
        result = search_images(images_index, 'garden dog')
        assert [hit['id'] for hit in result['hits']] == [3, 2, 1]
        assert images_index.calls[-1][-1] == 'last'

    def test_and_mode(self, images_index):
        _docs(images_index)
        result = search_images(images_index, 'cat AND dog')
        assert images_index.calls[-1][-1] == 'all'
        assert {hit['id'] for hit in result['hits']} == {2, 3}

    def test_tag_filter(self, images_index):
        _docs(images_index)
        result = search_images(images_index, '', tags=['cat'], positive_only=True)
        assert [hit['id'] for hit in result['hits']] == [2, 1]

    def test_exclusion_overfetches_and_filters(self, images_index):
        _docs(images_index)
        result = search_images(images_index, 'cat -garden', limit=1)
        search_call = images_index.calls[-1]
        assert search_call[4] == 3  # limit * 3
        assert [hit['id'] for hit in result['hits']] == [3]
        assert result['limit'] == 1
        assert result['totalHits'] == 2

    def test_exclusion_pages_locally(self, images_index):
        _docs(images_index)
        result = search_images(images_index, 'cat -garden', limit=1, offset=1)
        assert [hit['id'] for hit in result['hits']] == [2]
        assert result['totalHits'] == 2

    def test_custom_sort(self, images_index):
        _docs(images_index)
        result = search_images(images_index, 'cat', sort='createdAt:asc')
        assert [hit['id'] for hit in result['hits']] == [1, 2, 3]


@pytest.mark.unit
def test_search_tags(tags_index):
    tags_index.add_documents([
        {'id': 1, 'name': 'red_eyes', 'nameTokens': 'red eyes', 'imageCount': 5},
        {'id': 2, 'name': 'red_hair', 'nameTokens': 'red hair', 'imageCount': 9},
        {'id': 3, 'name': 'blue_eyes', 'nameTokens': 'blue eyes', 'imageCount': 7},
    ])
    hits = search_tags(tags_index, 'red')
    assert [hit['id'] for hit in hits] == [2, 1]
