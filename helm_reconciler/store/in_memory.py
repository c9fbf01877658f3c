"""Module for in memory release store."""

import copy
import logging

from helm_reconciler.manifest import NamedResource

from .release import ReleaseRecord
from .store import ReleaseStore

_LOGGER = logging.getLogger(__name__)


class InMemoryReleaseStore(ReleaseStore):
    """In-memory implementation of the ReleaseStore interface.

    Records are copied on the way in and out so callers never share state
    with the store, the same as with a persistent store.
    """

    def __init__(self, max_history: int = 10) -> None:
        """Initialize the InMemoryReleaseStore."""
        super().__init__(max_history=max_history)
        self._records: dict[NamedResource, ReleaseRecord] = {}

    async def _read(self, key: NamedResource) -> ReleaseRecord | None:
        if (record := self._records.get(key)) is None:
            return None
        return copy.deepcopy(record)

    async def _write(self, record: ReleaseRecord) -> None:
        self._records[record.release.key] = copy.deepcopy(record)

    async def _remove(self, key: NamedResource) -> None:
        self._records.pop(key, None)

    async def _keys(self) -> list[NamedResource]:
        return list(self._records)
