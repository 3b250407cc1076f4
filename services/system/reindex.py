"""
Batch reindex and repair.

Walks the database and closes the gaps ingestion can leave behind:
- lossless-derivative: generate missing lossless WebP copies
- metadata-sidecar:    generate missing metadata sidecars
- reindex-images:      upsert every image document
- reindex-tags:        clear the tag index and rewrite every qualifying tag

Every step is idempotent, so an interrupted run can simply be restarted.
Dry-run walks the same items and prints the same lines with a [dry-run]
marker but writes nothing anywhere.
"""

import math
import time
from enum import Enum
from typing import Callable, List, Optional

import config
from repositories import image_repository
from services.processing.derivatives import (
    JSON_CONTENT_TYPE,
    WEBP_CONTENT_TYPE,
    build_sidecar,
    convert_to_lossless_webp,
)
from services.storage import BlobNotFoundError
from utils.file_utils import lossless_key, sidecar_key
from utils.logging_config import get_logger
from utils.metadata_readers import detect_and_read_metadata
from .task_helpers import chunked, iter_keyset_pages, process_with_concurrency

logger = get_logger('Reindex')


class ReindexTarget(str, Enum):
    LOSSLESS_DERIVATIVE = "lossless-derivative"
    METADATA_SIDECAR = "metadata-sidecar"
    REINDEX_IMAGES = "reindex-images"
    REINDEX_TAGS = "reindex-tags"


ALL_TARGETS = [
    ReindexTarget.LOSSLESS_DERIVATIVE,
    ReindexTarget.METADATA_SIDECAR,
    ReindexTarget.REINDEX_IMAGES,
    ReindexTarget.REINDEX_TAGS,
]


class Outcome(str, Enum):
    GENERATED = "generated"
    INDEXED = "indexed"
    DRY_RUN = "dry-run"
    SKIPPED = "skipped"
    FAILED = "failed"


class ReindexOptions:
    """Operator controls for a reindex run."""
    def __init__(self, targets: Optional[List[ReindexTarget]] = None,
                 batch_size: int = config.REINDEX_BATCH_SIZE,
                 concurrency: int = config.REINDEX_CONCURRENCY,
                 sleep_ms: int = config.REINDEX_SLEEP_MS,
                 dry_run: bool = False):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if sleep_ms < 0:
            raise ValueError("sleep_ms must be >= 0")
        self.targets = [ReindexTarget(t) for t in targets] if targets else list(ALL_TARGETS)
        self.batch_size = batch_size
        self.concurrency = concurrency
        self.sleep_ms = sleep_ms
        self.dry_run = dry_run

    def to_dict(self):
        return {
            'targets': [t.value for t in self.targets],
            'batchSize': self.batch_size,
            'concurrency': self.concurrency,
            'sleepMs': self.sleep_ms,
            'dryRun': self.dry_run,
        }


def new_summary() -> dict:
    return {outcome.value: 0 for outcome in Outcome}


class ReindexRunner:
    """
    Args:
        blob_store: blob store holding originals and derivatives
        synchronizer: SearchIndexSynchronizer
        evaluator: TagPopularityEvaluator
        options: ReindexOptions
        log: line sink for per-item output (defaults to the module logger)
        progress: optional tqdm-like factory called with total= and desc=
        sleep: sleep function used between batches
    """

    def __init__(self, blob_store, synchronizer, evaluator, options: ReindexOptions,
                 log: Optional[Callable[[str], None]] = None,
                 progress=None, sleep: Callable[[float], None] = time.sleep):
        self.blob_store = blob_store
        self.synchronizer = synchronizer
        self.evaluator = evaluator
        self.options = options
        self._log = log or logger.info
        self._progress = progress
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Shared plumbing
    # ------------------------------------------------------------------

    def _item_line(self, outcome: Outcome, label: str, detail: str = ''):
        suffix = f": {detail}" if detail else ''
        self._log(f"  [{outcome.value}] {label}{suffix}")

    def _pause(self, batch_number: int, total_batches: int):
        if self.options.sleep_ms > 0 and batch_number < total_batches:
            self._sleep(self.options.sleep_ms / 1000.0)

    def _run_batches(self, title: str, total: int, pages, handle) -> dict:
        """
        Drive one target: log the header, fan each page out over the
        worker pool, pace between pages, and tally outcomes.
        """
        summary = new_summary()
        self._log(f"=== {title} ===")
        self._log(f"Found {total} items")
        if total == 0:
            self._log("No items to process")
            return summary

        total_batches = math.ceil(total / self.options.batch_size)
        bar = self._progress(total=total, desc=title) if self._progress else None
        try:
            for batch_number, page in enumerate(pages, start=1):
                self._log(f"Processing batch {batch_number}/{total_batches}...")
                for outcome in process_with_concurrency(page, handle, self.options.concurrency):
                    summary[outcome.value] += 1
                if bar is not None:
                    bar.update(len(page))
                self._pause(batch_number, total_batches)
        finally:
            if bar is not None:
                bar.close()

        self._log(f"Completed: {self._format_summary(summary)}")
        return summary

    @staticmethod
    def _format_summary(summary: dict) -> str:
        return ', '.join(f"{count} {name}" for name, count in summary.items() if count) or 'nothing to do'

    def _guard(self, label: str, work: Callable[[], Outcome]) -> Outcome:
        """Run one item; failures are logged and counted, never raised."""
        try:
            return work()
        except BlobNotFoundError as e:
            self._item_line(Outcome.SKIPPED, label, f"missing blob {e}")
            return Outcome.SKIPPED
        except Exception as e:
            logger.debug(f"{label} failed", exc_info=True)
            self._item_line(Outcome.FAILED, label, str(e))
            return Outcome.FAILED

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    def regenerate_lossless(self) -> dict:
        flag = 'has_lossless_webp'

        def handle(image: dict) -> Outcome:
            key = lossless_key(image['file_hash'])

            def work():
                if self.options.dry_run:
                    self._item_line(Outcome.DRY_RUN, key)
                    return Outcome.DRY_RUN
                original = self.blob_store.get(image['s3_key'])
                self.blob_store.put(key, convert_to_lossless_webp(original), WEBP_CONTENT_TYPE)
                image_repository.set_image_flag(image['id'], flag, True)
                self.synchronizer.update_image(image['id'], {'hasLosslessWebp': True})
                self._item_line(Outcome.GENERATED, key)
                return Outcome.GENERATED

            return self._guard(key, work)

        return self._run_batches(
            f"Processing {ReindexTarget.LOSSLESS_DERIVATIVE.value}",
            image_repository.count_images_missing(flag),
            iter_keyset_pages(
                lambda after, limit: image_repository.list_images_missing(flag, after, limit),
                self.options.batch_size,
            ),
            handle,
        )

    def _sidecar_for(self, image: dict) -> bytes:
        """Re-read the original when available, otherwise rebuild from the database."""
        try:
            original = self.blob_store.get(image['s3_key'])
        except BlobNotFoundError:
            record = image_repository.get_image_with_relations(image['id'])
            metadata_row = record.get('metadata') or {}
            metadata_format = metadata_row.get('metadata_format') or 'unknown'
            logger.debug(f"Original {image['s3_key']} missing, sidecar rebuilt from database")
            return build_sidecar(metadata_format, image_repository.build_generation_metadata(record),
                                 image['filename'], uploaded_at=image['created_at'])

        result = detect_and_read_metadata(original, '.png')
        return build_sidecar(result['format'], result['metadata'], image['filename'],
                             uploaded_at=image['created_at'])

    def regenerate_sidecars(self) -> dict:
        flag = 'has_metadata_file'

        def handle(image: dict) -> Outcome:
            key = sidecar_key(image['file_hash'])

            def work():
                if self.options.dry_run:
                    self._item_line(Outcome.DRY_RUN, key)
                    return Outcome.DRY_RUN
                self.blob_store.put(key, self._sidecar_for(image), JSON_CONTENT_TYPE)
                image_repository.set_image_flag(image['id'], flag, True)
                self._item_line(Outcome.GENERATED, key)
                return Outcome.GENERATED

            return self._guard(key, work)

        return self._run_batches(
            f"Processing {ReindexTarget.METADATA_SIDECAR.value}",
            image_repository.count_images_missing(flag),
            iter_keyset_pages(
                lambda after, limit: image_repository.list_images_missing(flag, after, limit),
                self.options.batch_size,
            ),
            handle,
        )

    def reindex_images(self) -> dict:
        if not self.options.dry_run:
            self.synchronizer.initialize()

        def handle(image_id: int) -> Outcome:
            label = f"image:{image_id}"

            def work():
                record = image_repository.get_image_with_relations(image_id)
                if record is None:
                    self._item_line(Outcome.SKIPPED, label, "deleted during run")
                    return Outcome.SKIPPED
                label_key = record['image']['s3_key']
                if self.options.dry_run:
                    self._item_line(Outcome.DRY_RUN, label_key)
                    return Outcome.DRY_RUN
                self.synchronizer.index_image(record)
                self._item_line(Outcome.INDEXED, label_key)
                return Outcome.INDEXED

            return self._guard(label, work)

        return self._run_batches(
            f"Reindexing {ReindexTarget.REINDEX_IMAGES.value}",
            image_repository.count_images(),
            iter_keyset_pages(image_repository.list_image_ids, self.options.batch_size,
                              key=lambda image_id: image_id),
            handle,
        )

    def reindex_tags(self) -> dict:
        summary = new_summary()
        title = f"Reindexing {ReindexTarget.REINDEX_TAGS.value}"
        self._log(f"=== {title} ===")

        if not self.options.dry_run:
            self.synchronizer.clear_tags()

        evaluations = self.evaluator.evaluate_all()
        qualifying = [e for e in evaluations if e.should_index]
        summary[Outcome.SKIPPED.value] = len(evaluations) - len(qualifying)
        self._log(f"Found {len(evaluations)} tags, {len(qualifying)} qualified for indexing")

        chunk_size = config.TAG_INDEX_CHUNK_SIZE
        total_chunks = math.ceil(len(qualifying) / chunk_size)
        for chunk_number, chunk in enumerate(chunked(qualifying, chunk_size), start=1):
            self._log(f"Processing batch {chunk_number}/{total_chunks}...")
            if self.options.dry_run:
                outcome = Outcome.DRY_RUN
            else:
                try:
                    self.synchronizer.write_tags(chunk)
                    outcome = Outcome.INDEXED
                except Exception as e:
                    logger.error(f"Tag chunk {chunk_number} failed: {e}")
                    outcome = Outcome.FAILED
            for evaluation in chunk:
                self._item_line(outcome, evaluation.name)
            summary[outcome.value] += len(chunk)
            self._pause(chunk_number, total_chunks)

        if not self.options.dry_run:
            self.evaluator.invalidate_cache()

        self._log(f"Completed: {self._format_summary(summary)}")
        return summary

    # ------------------------------------------------------------------

    def run(self) -> dict:
        """Run the selected targets in order. Returns {target: summary}."""
        handlers = {
            ReindexTarget.LOSSLESS_DERIVATIVE: self.regenerate_lossless,
            ReindexTarget.METADATA_SIDECAR: self.regenerate_sidecars,
            ReindexTarget.REINDEX_IMAGES: self.reindex_images,
            ReindexTarget.REINDEX_TAGS: self.reindex_tags,
        }
        results = {}
        for target in self.options.targets:
            results[target.value] = handlers[target]()
        return results
