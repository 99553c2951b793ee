"""
Wait-for-all batches: run a unit of work per item and collect every outcome.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional

logger = logging.getLogger('Kiln.Batch')


@dataclass
class Result:
    key: Any
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self):
        return self.error is None


def settle(fn: Callable[[Any], Any], items: Iterable[Any], max_workers=None) -> List[Result]:
    """
    Run fn on every item concurrently and return one Result per item, in
    input order. A failing unit never stops the others.
    """
    items = list(items)
    if not items:
        return []

    results = [None] * len(items)
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(fn, item): index for index, item in enumerate(items)}
        for future in as_completed(futures):
            index = futures[future]
            try:
                results[index] = Result(items[index], value=future.result())
            except Exception as e:
                logger.debug(f"Unit {items[index]!r} failed: {e}")
                results[index] = Result(items[index], error=e)
    return results
