"""
Search document builders.

Image and tag documents are projections of the relational store; both can
be rebuilt at any time from get_image_with_relations() / tag usage rows.
"""

from datetime import datetime, timezone
from typing import Optional

from core.models import TagSource, TagEvaluation, tokenize_tag_name

# Index settings applied by SearchIndexSynchronizer.initialize()
IMAGE_INDEX_SETTINGS = {
    'searchableAttributes': [
        'prompt', 'v4BaseCaption', 'v4CharCaptions',
        'tags', 'positiveTags', 'negativeTags', 'filename',
    ],
    'filterableAttributes': [
        'tags', 'positiveTags', 'negativeTags', 'userTags',
        'seed', 'width', 'height', 'createdAt',
    ],
    'sortableAttributes': ['createdAt', 'seed'],
}

TAG_INDEX_SETTINGS = {
    'searchableAttributes': ['name', 'nameTokens'],
    'filterableAttributes': ['category'],
    'sortableAttributes': ['imageCount'],
}


def to_epoch_ms(timestamp: Optional[str]) -> Optional[int]:
    """ISO-8601 timestamp (as stored) to epoch milliseconds."""
    if not timestamp:
        return None
    parsed = datetime.fromisoformat(timestamp.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def build_tag_facets(tags) -> dict:
    """
    Split tag association rows into the facet arrays of an image document.

    Each row needs name, weight, is_negative and source.
    """
    all_tags, positive, negative, user, weighted = [], [], [], [], []

    for tag in tags:
        name = tag['name']
        source = TagSource(tag['source'])
        is_negative = bool(tag['is_negative'])

        all_tags.append(name)
        weighted.append({
            'name': name,
            'weight': tag['weight'],
            'isNegative': is_negative,
            'source': source.value,
        })

        if source == TagSource.USER:
            user.append(name)
        elif is_negative:
            negative.append(name)
        else:
            positive.append(name)

    return {
        'tags': all_tags,
        'positiveTags': positive,
        'negativeTags': negative,
        'userTags': user,
        'weightedTags': weighted,
    }


def build_image_document(record: dict) -> dict:
    """Full image document from get_image_with_relations() output."""
    image = record['image']
    meta = record.get('metadata') or {}

    document = {
        'id': image['id'],
        'filename': image['filename'],
        's3Key': image['s3_key'],
        'prompt': meta.get('prompt'),
        'v4BaseCaption': meta.get('v4_base_caption'),
        # stored as JSON text already; searched as a flat string
        'v4CharCaptions': meta.get('v4_char_captions') or None,
        'seed': meta.get('seed'),
        'width': image['width'],
        'height': image['height'],
        'hasLosslessWebp': bool(image['has_lossless_webp']),
        'createdAt': to_epoch_ms(image['created_at']),
    }
    document.update(build_tag_facets(record['tags']))
    return document


def build_tag_document(evaluation: TagEvaluation) -> dict:
    return {
        'id': evaluation.tag_id,
        'name': evaluation.name,
        'nameTokens': tokenize_tag_name(evaluation.name),
        'category': evaluation.category,
        'imageCount': evaluation.display_count,
    }
