# services/monitor_service.py
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from functools import partial

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

import config
from utils.logging_config import get_logger
from utils.png_reader import PNG_SIGNATURE

logger = get_logger('Monitor')

# --- Shared Monitor State ---
observer = None
ingest_executor = None  # single worker, files are ingested one at a time
_state_lock = threading.Lock()
monitor_status = {
    "running": False,
    "watch_directory": None,
    "total_processed": 0,
    "total_duplicates": 0,
    "total_failed": 0,
    "last_activity": 0,
    "logs": [],
}


def get_status():
    """Return the current status of the monitor."""
    return monitor_status


def add_log(message, type='info'):
    """Adds a log entry to the monitor status and the application log."""
    getattr(logger, 'error' if type == 'error' else 'warning' if type == 'warning' else 'info')(message)
    log_entry = {'timestamp': time.strftime("%Y-%m-%d %H:%M:%S"), 'message': message, 'type': type}
    with _state_lock:
        monitor_status['logs'].insert(0, log_entry)
        if len(monitor_status['logs']) > 100:
            monitor_status['logs'] = monitor_status['logs'][:100]


def _count(key):
    with _state_lock:
        monitor_status[key] += 1
        monitor_status["last_activity"] = time.time()


# --- File readiness ---

def wait_for_file_ready(filepath, timeout=config.Timeouts.FILE_READY,
                        interval=config.Intervals.FILE_READY_CHECK,
                        stable_checks=config.Limits.FILE_READY_STABLE_CHECKS,
                        sleep=time.sleep, clock=time.monotonic):
    """
    Wait until a file has stopped growing and starts with the PNG signature.

    The size must be non-zero and unchanged for `stable_checks` consecutive
    polls. A file that is stable but not (yet) a PNG resets the count.

    Returns:
        True when ready, False if the file vanished or the timeout expired
    """
    deadline = clock() + timeout
    last_size = -1
    stable = 0

    while clock() < deadline:
        if not os.path.exists(filepath):
            return False
        try:
            size = os.path.getsize(filepath)
            if size == last_size and size > 0:
                stable += 1
                if stable >= stable_checks:
                    with open(filepath, 'rb') as f:
                        if f.read(len(PNG_SIGNATURE)) == PNG_SIGNATURE:
                            return True
                    stable = 0
            else:
                stable = 0
            last_size = size
        except OSError:
            # locked or mid-rename
            stable = 0
        sleep(interval)

    return False


# --- Ingestion ---

def is_ingest_candidate(filepath):
    name = os.path.basename(filepath)
    return config.is_supported_image(name) and not name.startswith('.')


def find_ingest_files(directory=None):
    """All PNG files under the ingest directory (recursively), sorted."""
    directory = directory or config.INGEST_DIRECTORY
    ingest_files = []
    if os.path.exists(directory):
        for root, _, files in os.walk(directory):
            for file in files:
                filepath = os.path.join(root, file)
                if is_ingest_candidate(filepath):
                    ingest_files.append(filepath)
    return sorted(ingest_files)


def process_file(app, filepath, delete_after=None):
    """
    Ingest one file through the application and optionally remove it.

    The file is only deleted after a successful ingest (new or duplicate),
    so a failure leaves it in place for the next pass.
    """
    delete_after = config.DELETE_AFTER_INGEST if delete_after is None else delete_after
    filename = os.path.basename(filepath)

    if not os.path.exists(filepath):
        add_log(f"File no longer exists, skipping: {filename}", 'warning')
        return None

    result = app.ingest_file(filepath)

    if result.success:
        if result.duplicate:
            _count("total_duplicates")
            add_log(f"Skipped (duplicate): {filename}")
        else:
            _count("total_processed")
            add_log(f"Successfully processed: {filename} (image {result.image.id})", 'success')
        if delete_after:
            try:
                os.remove(filepath)
                logger.debug(f"Deleted {filepath}")
            except OSError as e:
                add_log(f"Failed to delete {filename}: {e}", 'error')
    else:
        _count("total_failed")
        add_log(f"Failed to process {filename}: {result.error}", 'error')

    return result


def run_scan(app, directory=None, delete_after=None):
    """
    Ingest every file currently in the ingest directory.

    Returns:
        dict with processed, duplicates and failed counts
    """
    counts = {'processed': 0, 'duplicates': 0, 'failed': 0}
    ingest_files = find_ingest_files(directory)
    if not ingest_files:
        add_log("No new images found.")
        return counts

    add_log(f"Found {len(ingest_files)} files to ingest.")
    for filepath in ingest_files:
        result = process_file(app, filepath, delete_after=delete_after)
        if result is None or not result.success:
            counts['failed'] += 1
        elif result.duplicate:
            counts['duplicates'] += 1
        else:
            counts['processed'] += 1
    return counts


# --- Watchdog Event Handler ---

class IngestFileHandler(FileSystemEventHandler):
    """Queues new PNG files in the ingest folder for ingestion."""

    def __init__(self, app, executor, delete_after=None, ready_check=wait_for_file_ready):
        super().__init__()
        self.app = app
        self.executor = executor
        self.delete_after = delete_after
        self.ready_check = ready_check
        # Debounce: track recently queued files to avoid duplicates
        self.recently_queued = {}
        self.debounce_seconds = config.Intervals.MONITOR_DEBOUNCE
        self._lock = threading.Lock()

    def should_process(self, filepath):
        """Check if we should queue this file (debouncing)."""
        now = time.time()
        with self._lock:
            self.recently_queued = {
                k: v for k, v in self.recently_queued.items()
                if now - v < self.debounce_seconds
            }
            if filepath in self.recently_queued:
                return False
            self.recently_queued[filepath] = now
            return True

    def _handle_ready_and_ingest(self, filepath):
        filename = os.path.basename(filepath)
        if not self.ready_check(filepath):
            add_log(f"File not ready or invalid after timeout, skipping: {filename}", 'warning')
            return None
        return process_file(self.app, filepath, delete_after=self.delete_after)

    def _on_done(self, future, filename):
        exc = future.exception()
        if exc is not None:
            add_log(f"Error processing {filename}: {exc}", 'error')

    def queue_file(self, filepath):
        if not is_ingest_candidate(filepath) or not self.should_process(filepath):
            return False
        filename = os.path.basename(filepath)
        add_log(f"Detected {filename}, queuing for ingest...")
        future = self.executor.submit(self._handle_ready_and_ingest, filepath)
        future.add_done_callback(partial(self._on_done, filename=filename))
        return True

    def on_created(self, event):
        if event.is_directory:
            return
        self.queue_file(event.src_path)

    def on_moved(self, event):
        # Files renamed into place after an upload finishes
        if event.is_directory:
            return
        self.queue_file(event.dest_path)


# --- Control Functions ---

def start_monitor(app, directory=None, delete_after=None, initial_scan=True):
    """Starts watching the ingest directory. Returns False if already running."""
    global observer, ingest_executor

    if monitor_status["running"]:
        return False

    directory = directory or config.INGEST_DIRECTORY
    if not os.path.exists(directory):
        os.makedirs(directory, exist_ok=True)
        add_log(f"Created ingest directory: {directory}")

    ingest_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='ingest')
    handler = IngestFileHandler(app, ingest_executor, delete_after=delete_after)

    observer = Observer()
    observer.schedule(handler, directory, recursive=True)
    observer.start()

    monitor_status["running"] = True
    monitor_status["watch_directory"] = os.path.abspath(directory)
    add_log(f"Watching ingest folder: {monitor_status['watch_directory']}")

    if initial_scan:
        for filepath in find_ingest_files(directory):
            handler.queue_file(filepath)

    return True


def stop_monitor():
    """Stops the observer and waits for queued ingests to finish."""
    global observer, ingest_executor

    if not monitor_status["running"]:
        return False

    monitor_status["running"] = False
    add_log("Stopping ingest monitor...")

    if observer:
        observer.stop()
        observer.join(timeout=config.Timeouts.API_REQUEST)
        observer = None

    if ingest_executor:
        ingest_executor.shutdown(wait=True)
        ingest_executor = None

    add_log("Ingest monitor stopped.")
    return True
