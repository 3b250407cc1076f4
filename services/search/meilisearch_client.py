"""
Meilisearch document index client.

Thin wrapper over the Meilisearch REST API using a shared requests session.
Write calls return the enqueued task; Meilisearch applies tasks for one index
in order, so a clear followed by an add needs no explicit wait.
"""

from typing import Iterable, List, Optional

import requests

import config
from utils.logging_config import get_logger

logger = get_logger('Meilisearch')


class SearchIndexError(RuntimeError):
    """Raised when the document index rejects a request."""
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MeilisearchIndex:
    """One named Meilisearch index (collection of documents)."""

    def __init__(self, host: str, uid: str, api_key: str = '', primary_key: str = 'id',
                 timeout: float = config.Timeouts.API_REQUEST,
                 session: Optional[requests.Session] = None):
        self.uid = uid
        self.primary_key = primary_key
        self._base_url = host.rstrip('/')
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({'Content-Type': 'application/json'})
        if api_key:
            self._session.headers.update({'Authorization': f'Bearer {api_key}'})

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _url(self, path: str = '') -> str:
        return f"{self._base_url}/indexes/{self.uid}{path}"

    def _request(self, method: str, url: str, allow_missing: bool = False, **kwargs):
        try:
            response = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as e:
            raise SearchIndexError(f"{method} {url} failed: {e}") from e

        if allow_missing and response.status_code == 404:
            return None
        if response.status_code >= 400:
            logger.warning(f"{method} {url} -> {response.status_code}")
            raise SearchIndexError(
                f"{method} {url} returned {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Index management
    # ------------------------------------------------------------------

    def create(self):
        """Enqueue index creation. Creating an existing index is harmless."""
        return self._request(
            'POST', f"{self._base_url}/indexes",
            json={'uid': self.uid, 'primaryKey': self.primary_key},
        )

    def update_settings(self, settings: dict):
        return self._request('PATCH', self._url('/settings'), json=settings)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def add_documents(self, documents: Iterable[dict]):
        """Add or fully replace documents."""
        documents = list(documents)
        if not documents:
            return None
        return self._request('POST', self._url('/documents'), json=documents,
                             params={'primaryKey': self.primary_key})

    def update_documents(self, documents: Iterable[dict]):
        """Field-level merge into existing documents."""
        documents = list(documents)
        if not documents:
            return None
        return self._request('PUT', self._url('/documents'), json=documents,
                             params={'primaryKey': self.primary_key})

    def delete_document(self, document_id):
        """Delete one document. A missing document or index is not an error."""
        return self._request('DELETE', self._url(f'/documents/{document_id}'), allow_missing=True)

    def delete_all_documents(self):
        return self._request('DELETE', self._url('/documents'), allow_missing=True)

    def get_document(self, document_id) -> Optional[dict]:
        return self._request('GET', self._url(f'/documents/{document_id}'), allow_missing=True)

    def search(self, query: str = '', filter: Optional[str] = None,
               sort: Optional[List[str]] = None, limit: int = 20, offset: int = 0,
               attributes_to_search_on: Optional[List[str]] = None,
               matching_strategy: Optional[str] = None) -> dict:
        body = {'q': query, 'limit': limit, 'offset': offset}
        if matching_strategy:
            body['matchingStrategy'] = matching_strategy
        if filter:
            body['filter'] = filter
        if sort:
            body['sort'] = sort
        if attributes_to_search_on:
            body['attributesToSearchOn'] = attributes_to_search_on
        return self._request('POST', self._url('/search'), json=body) or {'hits': []}


def create_indexes(session: Optional[requests.Session] = None):
    """Build the (images, tags) index pair from config."""
    search_config = config.get_search_config()
    session = session or requests.Session()
    images = MeilisearchIndex(search_config['host'], search_config['images_index'],
                              api_key=search_config['api_key'], session=session)
    tags = MeilisearchIndex(search_config['host'], search_config['tags_index'],
                            api_key=search_config['api_key'], session=session)
    return images, tags
