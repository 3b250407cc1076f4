"""
Search query parsing and execution.

Query syntax:
    cat dog          either term (default)
    cat AND dog      both terms
    cat +dog         both terms
    cat -dog         cat, excluding anything mentioning dog
    "red eyes"       quoted phrase kept as one term
"""

import re
from typing import List, Optional

from config import Defaults

_TERM_RE = re.compile(r'"[^"]*"|\S+')
_QUOTE_RE = re.compile(r'^["\']|["\']$')

# Over-fetch factor when exclusions are filtered after the search
EXCLUDE_FETCH_FACTOR = 3


def _unquote(term: str) -> str:
    return _QUOTE_RE.sub('', term)


def parse_search_query(query: str) -> dict:
    """
    Split a query into include terms, exclude terms and an AND flag.

    Returns:
        {'include_terms': [...], 'exclude_terms': [...], 'use_and': bool}
    """
    include_terms: List[str] = []
    exclude_terms: List[str] = []
    use_and = False

    if not query or not query.strip():
        return {'include_terms': include_terms, 'exclude_terms': exclude_terms, 'use_and': use_and}

    if ' AND ' in query:
        use_and = True
        for part in (p.strip() for p in query.split(' AND ')):
            if part.startswith('-'):
                exclude_terms.append(part[1:].strip())
            elif part.startswith('+'):
                include_terms.append(part[1:].strip())
            elif part:
                include_terms.append(part)
    else:
        for term in _TERM_RE.findall(query):
            if term.startswith('-'):
                excluded = _unquote(term[1:])
                if excluded:
                    exclude_terms.append(excluded)
            elif term.startswith('+'):
                use_and = True
                included = _unquote(term[1:])
                if included:
                    include_terms.append(included)
            else:
                cleaned = _unquote(term)
                if cleaned:
                    include_terms.append(cleaned)

    return {'include_terms': include_terms, 'exclude_terms': exclude_terms, 'use_and': use_and}


def _escape(value: str) -> str:
    return value.replace('\\', '\\\\').replace('"', '\\"')


def build_tag_filter(tags: Optional[List[str]], positive_only: bool = False) -> Optional[str]:
    """'tags = "a" AND tags = "b"' (or positiveTags), or None."""
    field = 'positiveTags' if positive_only else 'tags'
    clauses = [f'{field} = "{_escape(tag.strip())}"' for tag in tags or [] if tag.strip()]
    return ' AND '.join(clauses) if clauses else None


def _mentions_any(hit: dict, terms: List[str]) -> bool:
    parts = [hit.get('prompt'), hit.get('v4BaseCaption')]
    parts.extend(hit.get('positiveTags') or [])
    parts.extend(hit.get('tags') or [])
    text = ' '.join(p for p in parts if p).lower()
    return any(term in text for term in terms)


def search_images(index, query: str = '', tags: Optional[List[str]] = None,
                  positive_only: bool = False, mode: str = 'or',
                  limit: int = Defaults.SEARCH_LIMIT, offset: int = 0,
                  sort: Optional[str] = None) -> dict:
    """
    Run an image search.

    Returns:
        {'hits': [...], 'totalHits': int, 'limit': int, 'offset': int}
    """
    parsed = parse_search_query(query)
    use_and = mode == 'and' or parsed['use_and']
    excluding = bool(parsed['exclude_terms'])

    result = index.search(
        ' '.join(parsed['include_terms']),
        filter=build_tag_filter(tags, positive_only),
        sort=[sort] if sort else ['createdAt:desc'],
        limit=limit * EXCLUDE_FETCH_FACTOR if excluding else limit,
        offset=0 if excluding else offset,
        attributes_to_search_on=['positiveTags', 'prompt', 'v4BaseCaption'] if positive_only else None,
        matching_strategy='all' if use_and else 'last',
    )
    hits = result.get('hits', [])

    if excluding:
        excluded = [term.lower() for term in parsed['exclude_terms']]
        hits = [hit for hit in hits if not _mentions_any(hit, excluded)]
        total = len(hits)
        hits = hits[offset:offset + limit]
    else:
        total = result.get('estimatedTotalHits', len(hits))

    return {'hits': hits, 'totalHits': total, 'limit': limit, 'offset': offset}


def search_tags(index, query: str, limit: int = Defaults.TAG_SUGGEST_LIMIT) -> List[dict]:
    """Tag documents matching the query, most used first."""
    result = index.search(
        query.strip(),
        sort=['imageCount:desc'],
        limit=limit,
        attributes_to_search_on=['name', 'nameTokens'],
    )
    return result.get('hits', [])
