"""
Bounded fan-out runner and keyed in-flight cache
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class FanOutFailure:
    """One input whose mapper raised"""
    index: int
    item: Any
    error: BaseException


@dataclass
class FanOutResult(Generic[R]):
    """Index-aligned results plus the parallel list of per-item failures"""
    results: List[Optional[R]]
    failures: List[FanOutFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def succeeded(self) -> List[R]:
        failed = {failure.index for failure in self.failures}
        return [value for index, value in enumerate(self.results) if index not in failed]


async def run_bounded(
    inputs: Sequence[T],
    mapper: Callable[[T, int], Awaitable[R]],
    workers: int = 4,
) -> FanOutResult[R]:
    """
    Map every input through an async mapper with at most `workers` in flight

    Args:
        inputs: Items to process
        mapper: Coroutine function called as mapper(item, index)
        workers: Worker budget, must be >= 1

    Returns:
        FanOutResult whose results[i] belongs to inputs[i]; failed items leave
        None at their index and are listed in failures
    """
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")

    items = list(inputs)
    total = len(items)
    results: List[Optional[R]] = [None] * total
    failures: List[FanOutFailure] = []
    if total == 0:
        return FanOutResult(results=results, failures=failures)

    cursor = 0

    async def worker():
        nonlocal cursor
        while True:
            # no await between read and increment, so each index is taken once
            index = cursor
            if index >= total:
                return
            cursor += 1
            item = items[index]
            try:
                results[index] = await mapper(item, index)
            except Exception as e:
                logger.warning(f"Fan-out item {index} failed: {e}")
                failures.append(FanOutFailure(index=index, item=item, error=e))

    await asyncio.gather(*(worker() for _ in range(min(workers, total))))
    failures.sort(key=lambda failure: failure.index)
    return FanOutResult(results=results, failures=failures)


class KeyedCache(Generic[R]):
    """
    Loads each key at most once, sharing the in-flight task between
    concurrent callers. A failed load is evicted so a later call may retry.
    """

    def __init__(self, normalize_key: Optional[Callable[[str], str]] = None):
        self._normalize_key = normalize_key or (lambda key: key)
        self._tasks: Dict[str, "asyncio.Future[R]"] = {}
        self.loads = 0

    async def get(self, key: str, loader: Callable[[str], Awaitable[R]]) -> R:
        cache_key = self._normalize_key(key)
        task = self._tasks.get(cache_key)
        if task is None:
            self.loads += 1
            task = asyncio.ensure_future(loader(key))
            self._tasks[cache_key] = task
        try:
            return await asyncio.shield(task)
        except Exception:
            if self._tasks.get(cache_key) is task:
                del self._tasks[cache_key]
            raise
