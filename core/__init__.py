"""
Core Module

This module contains the shared data models and the tag suggestion cache.
"""

from .models import (
    TagSource,
    WeightedTag,
    GenerationMetadata,
    ImageRef,
    IngestResult,
    TagEvaluation,
    tokenize_tag_name,
)
from .tag_cache import TagCache

__all__ = [
    'TagSource',
    'WeightedTag',
    'GenerationMetadata',
    'ImageRef',
    'IngestResult',
    'TagEvaluation',
    'TagCache',
    'tokenize_tag_name',
]
