"""
Pytest fixtures and test configuration
"""
import pytest
import os
import re
import io
import json
import shutil
import tempfile
import threading

from PIL import Image
from PIL.PngImagePlugin import PngInfo

# Now import app modules
import sys
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import config
import database


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_path = tempfile.mkdtemp()
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_db_path(temp_dir):
    """Path to test database file."""
    return os.path.join(temp_dir, 'test_naibooru.db')


@pytest.fixture
def db_connection(test_db_path, monkeypatch):
    """
    Create a test database connection.
    Uses monkeypatch to override the DB_FILE path.
    """
    import database.core
    monkeypatch.setattr(database.core, 'DB_FILE', test_db_path)

    database.initialize_database()

    conn = database.get_db_connection()
    yield conn

    conn.close()


@pytest.fixture
def blob_store(temp_dir):
    """Local blob store rooted in the temp directory."""
    from services.storage import LocalBlobStore
    return LocalBlobStore(os.path.join(temp_dir, 'blobs'))


# ============================================================================
# IN-MEMORY DOCUMENT INDEX
# ============================================================================

_FILTER_CLAUSE_RE = re.compile(r'(\w+) = "((?:[^"\\]|\\.)*)"')


class FakeDocumentIndex:
    """
    In-memory stand-in for MeilisearchIndex.

    Supports the calls the synchronizer and query layer make, with a
    simplified substring search and equality filters joined by AND.
    """

    def __init__(self, uid='test', primary_key='id'):
        self.uid = uid
        self.primary_key = primary_key
        self.documents = {}
        self.settings = {}
        self.created = False
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, name, *args):
        with self._lock:
            self.calls.append((name,) + args)

    def create(self):
        self._record('create')
        self.created = True

    def update_settings(self, settings):
        self._record('update_settings', settings)
        self.settings.update(settings)

    def add_documents(self, documents):
        documents = list(documents)
        self._record('add_documents', documents)
        with self._lock:
            for document in documents:
                self.documents[document[self.primary_key]] = dict(document)

    def update_documents(self, documents):
        documents = list(documents)
        self._record('update_documents', documents)
        with self._lock:
            for document in documents:
                key = document[self.primary_key]
                merged = dict(self.documents.get(key, {}))
                merged.update(document)
                self.documents[key] = merged

    def delete_document(self, document_id):
        self._record('delete_document', document_id)
        with self._lock:
            self.documents.pop(document_id, None)

    def delete_all_documents(self):
        self._record('delete_all_documents')
        with self._lock:
            self.documents.clear()

    def get_document(self, document_id):
        return self.documents.get(document_id)

    @staticmethod
    def _text(document, attributes):
        parts = []
        for key in attributes or document.keys():
            value = document.get(key)
            if isinstance(value, list):
                parts.extend(str(v) for v in value if not isinstance(v, dict))
            elif isinstance(value, str):
                parts.append(value)
        return ' '.join(parts).lower()

    @staticmethod
    def _matches_filter(document, filter):
        if not filter:
            return True
        for field, value in _FILTER_CLAUSE_RE.findall(filter):
            value = value.replace('\\"', '"').replace('\\\\', '\\')
            actual = document.get(field)
            if isinstance(actual, list):
                if value not in actual:
                    return False
            elif str(actual) != value:
                return False
        return True

    def search(self, query='', filter=None, sort=None, limit=20, offset=0,
               attributes_to_search_on=None, matching_strategy=None):
        self._record('search', query, filter, sort, limit, offset,
                     attributes_to_search_on, matching_strategy)
        terms = query.lower().split()
        hits = []
        for document in list(self.documents.values()):
            if not self._matches_filter(document, filter):
                continue
            text = self._text(document, attributes_to_search_on)
            if terms:
                found = [term in text for term in terms]
                if matching_strategy == 'all' and not all(found):
                    continue
                if matching_strategy != 'all' and not any(found):
                    continue
            hits.append(dict(document))

        for spec in reversed(sort or []):
            field, _, direction = spec.partition(':')
            hits.sort(key=lambda d: (d.get(field) is None, d.get(field) or 0),
                      reverse=direction == 'desc')

        return {'hits': hits[offset:offset + limit], 'estimatedTotalHits': len(hits)}


@pytest.fixture
def images_index():
    return FakeDocumentIndex('images')


@pytest.fixture
def tags_index():
    return FakeDocumentIndex('tags')


@pytest.fixture
def synchronizer(images_index, tags_index):
    from services.search import SearchIndexSynchronizer
    return SearchIndexSynchronizer(images_index, tags_index)


@pytest.fixture
def evaluator(synchronizer):
    from services.tag_indexer import TagPopularityEvaluator
    return TagPopularityEvaluator(synchronizer)


@pytest.fixture
def pipeline(db_connection, blob_store, synchronizer, evaluator):
    from services.processing import IngestionPipeline
    return IngestionPipeline(blob_store, synchronizer, evaluator,
                             enable_lossless=True, lossless_failure_fatal=True)


@pytest.fixture
def app(db_connection, temp_dir, blob_store, images_index, tags_index, monkeypatch):
    """Application wired to the temp database, local blobs and fake indexes."""
    monkeypatch.setattr(config, 'INGEST_DIRECTORY', os.path.join(temp_dir, 'ingest'))
    monkeypatch.setattr(config, 'LOG_FILE', None)
    from app import create_app
    return create_app(blob_store=blob_store, images_index=images_index, tags_index=tags_index)


# ============================================================================
# PNG BUILDERS
# ============================================================================

def build_png(comment=None, chunk='text', size=(64, 48), color='red', mode='RGB', extra_text=None):
    """
    Encode a small PNG in memory.

    Args:
        comment: value of the Comment text chunk (str or dict, dicts are JSON encoded)
        chunk: 'text' (tEXt), 'ztxt' (zTXt) or 'itxt' (iTXt)
        extra_text: additional {keyword: value} tEXt chunks written first
    """
    info = PngInfo()
    for key, value in (extra_text or {}).items():
        info.add_text(key, value)

    if comment is not None:
        if isinstance(comment, dict):
            comment = json.dumps(comment)
        if chunk == 'ztxt':
            info.add_text('Comment', comment, zip=True)
        elif chunk == 'itxt':
            info.add_itxt('Comment', comment)
        else:
            info.add_text('Comment', comment)

    output = io.BytesIO()
    Image.new(mode, size, color=color).save(output, 'PNG', pnginfo=info)
    return output.getvalue()


@pytest.fixture
def make_png():
    """Factory fixture wrapping build_png."""
    return build_png


@pytest.fixture
def nai_comment():
    """A representative NovelAI v4 comment payload."""
    return {
        'prompt': '1girl, {{red_eyes}}, [blurry background], long hair',
        'uc': 'lowres, bad anatomy, blurry',
        'seed': 123456789,
        'steps': 28,
        'scale': 5.0,
        'sampler': 'k_euler_ancestral',
        'width': 832,
        'height': 1216,
        'v4_prompt': {
            'caption': {
                'base_caption': '1girl, solo, smile',
                'char_captions': [
                    {'char_caption': 'girl, silver hair', 'centers': [{'x': 0.5, 'y': 0.5}]},
                ],
            },
        },
        'v4_negative_prompt': {
            'caption': {'base_caption': 'worst quality'},
        },
    }
