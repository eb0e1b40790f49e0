"""
Persistence store contract and an in-memory implementation.

The store only has to support one operation: add a number of steps to the total
for a day. It is additive, not deduplicating, so the caller is responsible for
never sending the same increment twice.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, List, Protocol, Tuple, Union

def today_iso() -> str:
    """Today's date as YYYY-MM-DD in UTC."""
    return datetime.now(timezone.utc).date().isoformat()

class StepStore(Protocol):
    """
    add_steps may be sync or async. Returning False or raising means failure;
    any other result (including None) is success.
    """

    def add_steps(self, count: int, date: str) -> Union[Any, Awaitable[Any]]:
        ...

class InMemoryStepStore:
    """
    Keeps per-day step totals in a dict, merging every call into the day's entry.
    """

    def __init__(self):
        self.totals: Dict[str, int] = {}
        self.calls: List[Tuple[int, str]] = []
        self._lock = asyncio.Lock()
        self.logger = logging.getLogger(__name__)

    async def add_steps(self, count: int, date: str) -> bool:
        if count <= 0:
            raise ValueError(f"Step count must be positive, got {count}")
        async with self._lock:
            self.calls.append((count, date))
            self.totals[date] = self.totals.get(date, 0) + count
            self.logger.info("Saved %d steps for %s, day total %d", count, date, self.totals[date])
        return True

    def total_for(self, date: str) -> int:
        return self.totals.get(date, 0)
