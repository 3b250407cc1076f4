"""
Helpers for bounded parallel batch work.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Iterable, Iterator, List


def process_with_concurrency(items: Iterable[Any], func: Callable[[Any], Any],
                             concurrency: int) -> List[Any]:
    """
    Run func over items with at most `concurrency` calls in flight.

    Workers pull from one shared queue, so a slow item never holds back
    the others. Results come back in input order; the first exception
    raised by func is re-raised after all items finish.
    """
    items = list(items)
    if not items:
        return []

    workers = max(1, min(concurrency, len(items)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='batch') as executor:
        futures = [executor.submit(func, item) for item in items]
    return [future.result() for future in futures]


def chunked(items: List[Any], size: int) -> Iterator[List[Any]]:
    """Consecutive slices of at most `size` items."""
    for start in range(0, len(items), size):
        yield items[start:start + size]


def iter_keyset_pages(fetch: Callable[[int, int], List[Any]], page_size: int,
                      key: Callable[[Any], int] = lambda item: item['id']) -> Iterator[List[Any]]:
    """
    Page through rows ordered by an increasing integer key.

    fetch(after_key, limit) must return rows with key > after_key in
    ascending order. Paging by key rather than offset stays correct while
    the caller updates rows it has already seen.
    """
    after = 0
    while True:
        page = fetch(after, page_size)
        if not page:
            return
        yield page
        after = key(page[-1])
