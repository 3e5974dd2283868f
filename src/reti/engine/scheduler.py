"""
Batch Fetch Scheduler - bounded fan-out of independent reads.

Reads run in fixed-size batches: every read of a batch runs concurrently,
and the next batch starts only once the whole batch has resolved. Results
come back in input order. A failed read fails the whole run.
"""

import asyncio
from typing import Awaitable, Callable, Iterable, List, Sequence, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


DEFAULT_BATCH_SIZE = 10


class BatchFetchScheduler:
    """
    Runs independent async operations in sequential, concurrent batches.
    
    Usage:
        ```python
        scheduler = BatchFetchScheduler(batch_size=10)
        validators = await scheduler.map(queries.fetch_validator, range(1, n + 1))
        ```
    """
    
    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.batch_size = batch_size
    
    def batches(self, items: Sequence[T]) -> List[Sequence[T]]:
        """Split items into consecutive batches."""
        return [
            items[start:start + self.batch_size]
            for start in range(0, len(items), self.batch_size)
        ]
    
    async def run(self, operations: Sequence[Callable[[], Awaitable[R]]]) -> List[R]:
        """
        Run zero-argument operations batch by batch.
        
        Args:
            operations: Callables returning awaitables; each is invoked
                only when its batch starts
                
        Returns:
            Results in the same order as `operations`
        """
        results: List[R] = []
        batches = self.batches(list(operations))
        
        for index, batch in enumerate(batches):
            try:
                batch_results = await asyncio.gather(*(operation() for operation in batch))
            except Exception as e:
                logger.error(
                    "fetch_batch_failed",
                    batch=index + 1,
                    batches=len(batches),
                    error=str(e),
                )
                raise
            
            results.extend(batch_results)
            logger.debug("fetch_batch_completed", batch=index + 1, batches=len(batches), size=len(batch))
        
        return results
    
    async def map(self, func: Callable[[T], Awaitable[R]], items: Iterable[T]) -> List[R]:
        """
        Apply an async function to every item in batches.
        
        Args:
            func: Async function of one argument
            items: Inputs
            
        Returns:
            func(item) for every item, in input order
        """
        return await self.run([_bind(func, item) for item in items])


def _bind(func: Callable[[T], Awaitable[R]], item: T) -> Callable[[], Awaitable[R]]:
    return lambda: func(item)
