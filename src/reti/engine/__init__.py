"""
Query engine.

Read-only registry and pool queries, fanned out through the batch fetch
scheduler.
"""

from reti.engine.scheduler import BatchFetchScheduler
from reti.engine.queries import ValidatorQueries

__all__ = [
    "BatchFetchScheduler",
    "ValidatorQueries",
]
