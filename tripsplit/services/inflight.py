import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Set

from tripsplit.core.exceptions import SettlementInProgressError

logger = logging.getLogger(__name__)


class InFlightGuard:
    """
    Reject a second mutation of a resource while the first is outstanding.

    Runs on one event loop, so a plain set is enough: the check and the add
    happen without an intervening await.
    """

    def __init__(self):
        self._active: Set[str] = set()

    @asynccontextmanager
    async def hold(self, resource: str) -> AsyncIterator[None]:
        if resource in self._active:
            logger.warning("Rejected concurrent operation on %s", resource)
            raise SettlementInProgressError(f"{resource} is already being processed")
        self._active.add(resource)
        try:
            yield
        finally:
            self._active.discard(resource)

    def is_active(self, resource: str) -> bool:
        return resource in self._active


settlement_guard = InFlightGuard()
