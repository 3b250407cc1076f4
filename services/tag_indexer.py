"""
Tag popularity evaluation.

A tag is exposed in search when any user tagged an image with it, or when
more than half of its prompt-derived uses are positive. Negative uses never
count toward the displayed popularity, so a tag that mostly appears in
negative prompts (e.g. "blurry") stays out of suggestions.
"""

from typing import Iterable, List, Optional, Tuple

from core.models import TagEvaluation
from repositories import tag_repository
from utils.logging_config import get_logger

logger = get_logger('TagIndexer')

POSITIVE_RATIO_THRESHOLD = 0.5


def compute_popularity(user_count: int, meta_pos: int, meta_neg: int) -> Tuple[bool, int]:
    """
    Returns:
        (should_index, display_count)
    """
    meta_total = meta_pos + meta_neg
    is_user_tag = user_count > 0
    is_positive_tag = meta_total > 0 and meta_pos / meta_total > POSITIVE_RATIO_THRESHOLD
    return is_user_tag or is_positive_tag, meta_pos + user_count


def evaluation_from_usage(usage: dict) -> TagEvaluation:
    should_index, display_count = compute_popularity(
        usage['user_count'], usage['meta_pos'], usage['meta_neg']
    )
    return TagEvaluation(
        tag_id=usage['id'],
        name=usage['name'],
        category=usage['category'],
        should_index=should_index,
        display_count=display_count,
    )


class TagPopularityEvaluator:
    """
    Re-evaluates tags and pushes the decision to the tag index.

    Args:
        synchronizer: SearchIndexSynchronizer owning the tags index
        tag_cache: optional TagCache invalidated after every update
    """

    def __init__(self, synchronizer, tag_cache=None):
        self._synchronizer = synchronizer
        self._tag_cache = tag_cache

    def evaluate(self, tag_id: int) -> Optional[TagEvaluation]:
        """Current decision for one tag, or None if the tag does not exist."""
        usage = tag_repository.get_tag_usage(tag_id)
        if usage is None:
            return None
        return evaluation_from_usage(usage)

    def evaluate_all(self) -> List[TagEvaluation]:
        return [evaluation_from_usage(usage) for usage in tag_repository.list_tag_usage()]

    def evaluate_and_update(self, tag_ids: Iterable[int]) -> List[TagEvaluation]:
        """
        Re-evaluate tags and write or remove their documents.

        Tags that no longer exist have their documents removed.
        """
        evaluations = []
        for tag_id in dict.fromkeys(tag_ids):
            evaluation = self.evaluate(tag_id)
            if evaluation is None:
                logger.debug(f"Tag {tag_id} no longer exists, removing from index")
                self._synchronizer.remove_tag(tag_id)
                continue
            self._synchronizer.apply_evaluation(evaluation)
            evaluations.append(evaluation)

        self.invalidate_cache()
        return evaluations

    def attach_cache(self, tag_cache):
        self._tag_cache = tag_cache

    def invalidate_cache(self):
        if self._tag_cache is not None:
            self._tag_cache.invalidate()

    def load_indexable_tags(self) -> List[dict]:
        """Rows for the tag suggestion cache."""
        return [
            {
                'id': e.tag_id,
                'name': e.name,
                'category': e.category,
                'imageCount': e.display_count,
            }
            for e in self.evaluate_all()
            if e.should_index
        ]
