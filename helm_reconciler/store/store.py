"""Release store holding the revision history of every release.

The store is the single source of truth for what was last applied. Revisions
are append-only: a correction is always a new revision, and history is only
ever trimmed from the oldest end.
"""

from abc import ABC, abstractmethod
import asyncio
from collections import defaultdict
from collections.abc import AsyncGenerator, Iterable
from contextlib import asynccontextmanager
import logging
from typing import Any, DefaultDict

from helm_reconciler.exceptions import (
    DiffConflict,
    InvalidTransition,
    ReconcilerException,
    ReleaseNotFound,
    RevisionNotFound,
)
from helm_reconciler.manifest import NamedResource, Resource
from helm_reconciler.plan import Plan

from .release import Release, ReleaseRecord, Revision, release_key
from .status import REVISION_OUTCOMES, ReleaseStatus, can_transition

__all__ = [
    "ReleaseStore",
]

_LOGGER = logging.getLogger(__name__)


class ReleaseStore(ABC):
    """Abstract base class for release storage.

    Subclasses only provide persistence of whole `ReleaseRecord` documents.
    The revision bookkeeping and locking are shared by all implementations.
    """

    def __init__(self, max_history: int = 10) -> None:
        """Initialize ReleaseStore."""
        self._max_history = max_history
        self._pipeline_locks: DefaultDict[NamedResource, asyncio.Lock] = defaultdict(
            asyncio.Lock
        )
        self._write_locks: DefaultDict[NamedResource, asyncio.Lock] = defaultdict(
            asyncio.Lock
        )

    @abstractmethod
    async def _read(self, key: NamedResource) -> ReleaseRecord | None:
        """Load the stored record for a release."""

    @abstractmethod
    async def _write(self, record: ReleaseRecord) -> None:
        """Persist the record for a release, replacing the previous one."""

    @abstractmethod
    async def _remove(self, key: NamedResource) -> None:
        """Remove the record for a release."""

    @abstractmethod
    async def _keys(self) -> list[NamedResource]:
        """Return the keys of all stored releases."""

    @asynccontextmanager
    async def _exclusive(self, key: NamedResource) -> AsyncGenerator[None, None]:
        """Hold exclusive ownership of a release across processes, if supported."""
        yield

    @asynccontextmanager
    async def lock(self, name: str, namespace: str) -> AsyncGenerator[None, None]:
        """Hold exclusive ownership of a release for a whole pipeline run.

        Operations on different releases do not block each other.
        """
        key = release_key(name, namespace)
        lock = self._pipeline_locks[key]
        if lock.locked():
            _LOGGER.info("Waiting for another operation on release %s", key.namespaced_name)
        async with lock:
            async with self._exclusive(key):
                _LOGGER.debug("Acquired lock for release %s", key.namespaced_name)
                yield

    async def get_release(self, name: str, namespace: str) -> Release | None:
        """Return the release or None if it was never installed."""
        if (record := await self._read(release_key(name, namespace))) is None:
            return None
        return record.release

    async def list_releases(self, namespace: str | None = None) -> list[Release]:
        """Return all releases, optionally only those in one namespace."""
        releases = []
        for key in sorted(await self._keys()):
            if namespace is not None and key.namespace != namespace:
                continue
            if (record := await self._read(key)) is not None:
                releases.append(record.release)
        return releases

    async def get_latest(self, name: str, namespace: str) -> Revision:
        """Return the most recent revision of a release, whatever its outcome."""
        record = await self._read(release_key(name, namespace))
        if record is None or not record.revisions:
            raise ReleaseNotFound(f"{namespace}/{name}")
        return record.revisions[-1]

    async def get_deployed(self, name: str, namespace: str) -> Revision | None:
        """Return the currently deployed revision, if any."""
        record = await self._read(release_key(name, namespace))
        if record is None or record.release.deployed is None:
            return None
        return _find_revision(record, record.release.deployed)

    async def get_revision(self, name: str, namespace: str, number: int) -> Revision:
        """Return a specific revision of a release."""
        record = await self._read(release_key(name, namespace))
        if record is None:
            raise ReleaseNotFound(f"{namespace}/{name}")
        if (revision := _find_revision(record, number)) is None:
            raise RevisionNotFound(f"{namespace}/{name}", number)
        return revision

    async def history(
        self, name: str, namespace: str, limit: int | None = None
    ) -> list[Revision]:
        """Return revisions most recent first, at most `limit` of them."""
        record = await self._read(release_key(name, namespace))
        if record is None:
            raise ReleaseNotFound(f"{namespace}/{name}")
        revisions = list(reversed(record.revisions))
        if limit is not None:
            revisions = revisions[:limit]
        return revisions

    async def set_status(
        self, name: str, namespace: str, status: ReleaseStatus
    ) -> Release:
        """Move a release to a new status, creating it on first install."""
        key = release_key(name, namespace)
        async with self._write_locks[key]:
            record = await self._read(key)
            current = record.release.status if record else None
            if not can_transition(current, status):
                raise InvalidTransition(key.namespaced_name, current, status)
            if record is None:
                record = ReleaseRecord(
                    release=Release(name=name, namespace=namespace, status=status)
                )
            else:
                record.release.status = status
            await self._write(record)
        _LOGGER.debug("Release %s is %s", key.namespaced_name, status)
        return record.release

    async def record(
        self,
        name: str,
        namespace: str,
        resources: Iterable[Resource],
        values: dict[str, Any],
        status: ReleaseStatus,
        *,
        chart: str | None = None,
        description: str | None = None,
        plan: Plan | None = None,
    ) -> Revision:
        """Append a revision with the outcome of an apply attempt.

        A `deployed` revision becomes the deployed revision of the release,
        an `uninstalled` revision clears it, and a `failed` revision leaves
        the previously deployed revision in place.

        When the `plan` that produced the outcome is given, the deployed
        revision must still be the one the plan was computed against.
        """
        if status not in REVISION_OUTCOMES:
            raise ValueError(f"Revision status must be an outcome, not {status}")
        key = release_key(name, namespace)
        async with self._write_locks[key]:
            record = await self._read(key)
            if record is None:
                raise ReleaseNotFound(key.namespaced_name)
            current = record.release.status
            if not can_transition(current, status):
                raise InvalidTransition(key.namespaced_name, current, status)
            if plan is not None and plan.base_revision != record.release.deployed:
                raise DiffConflict(
                    f"Release {key.namespaced_name} was planned against revision "
                    f"{plan.base_revision} but revision {record.release.deployed} "
                    "is now deployed"
                )
            revision = Revision(
                release=name,
                namespace=namespace,
                number=record.release.revision + 1,
                status=status,
                resources=tuple(resources),
                values=values,
                chart=chart,
                description=description,
            )
            record.revisions.append(revision)
            record.release.revision = revision.number
            record.release.status = status
            if status == ReleaseStatus.DEPLOYED:
                record.release.deployed = revision.number
            elif status == ReleaseStatus.UNINSTALLED:
                record.release.deployed = None
            if self._max_history:
                _prune_record(record, self._max_history)
            await self._write(record)
        _LOGGER.info(
            "Recorded revision %d of %s: %s",
            revision.number,
            key.namespaced_name,
            description or status,
        )
        return revision

    @asynccontextmanager
    async def attempt(
        self,
        name: str,
        namespace: str,
        pending: ReleaseStatus,
        resources: Iterable[Resource],
        values: dict[str, Any],
        *,
        chart: str | None = None,
        action: str,
    ) -> AsyncGenerator[Release, None]:
        """Hold a release in a pending status for the duration of an apply attempt.

        The caller records the outcome. An attempt that raises while the release
        is still pending is recorded as a `failed` revision before the error
        propagates, so a release is never left pending.
        """
        release = await self.set_status(name, namespace, pending)
        try:
            yield release
        except BaseException as err:
            cause = type(err).__name__ + (f": {err}" if str(err) else "")
            await self._record_interrupted(
                name,
                namespace,
                list(resources),
                values,
                chart=chart,
                description=f"{action} interrupted: {cause}",
            )
            raise

    async def _record_interrupted(
        self,
        name: str,
        namespace: str,
        resources: list[Resource],
        values: dict[str, Any],
        *,
        chart: str | None,
        description: str,
    ) -> None:
        try:
            release = await self.get_release(name, namespace)
            if release is None or not release.status.is_pending:
                return
            await self.record(
                name,
                namespace,
                resources,
                values,
                ReleaseStatus.FAILED,
                chart=chart,
                description=description,
            )
        except ReconcilerException as err:
            _LOGGER.error(
                "Unable to record the interrupted attempt on %s/%s: %s",
                namespace,
                name,
                err,
            )

    async def prune(self, name: str, namespace: str, keep: int) -> list[int]:
        """Remove the oldest revisions beyond `keep`.

        The deployed revision and the latest revision are never removed.
        """
        key = release_key(name, namespace)
        async with self._write_locks[key]:
            record = await self._read(key)
            if record is None:
                raise ReleaseNotFound(key.namespaced_name)
            removed = _prune_record(record, keep)
            if removed:
                await self._write(record)
        return removed

    async def delete_release(self, name: str, namespace: str) -> None:
        """Forget a release and its whole history."""
        key = release_key(name, namespace)
        async with self._write_locks[key]:
            await self._remove(key)
        _LOGGER.info("Removed history of release %s", key.namespaced_name)


def _find_revision(record: ReleaseRecord, number: int) -> Revision | None:
    for revision in record.revisions:
        if revision.number == number:
            return revision
    return None


def _prune_record(record: ReleaseRecord, keep: int) -> list[int]:
    """Drop the oldest revisions in place so at most `keep` remain.

    The deployed revision and the latest revision are always kept, so more
    than `keep` revisions may remain when `keep` is below two.
    """
    excess = len(record.revisions) - keep
    if excess <= 0:
        return []
    protected = {record.release.deployed, record.revisions[-1].number}
    removed: list[int] = []
    kept: list[Revision] = []
    for revision in record.revisions:
        if excess > 0 and revision.number not in protected:
            removed.append(revision.number)
            excess -= 1
            continue
        kept.append(revision)
    record.revisions = kept
    _LOGGER.debug(
        "Pruned revisions %s of %s", removed, record.release.namespaced_name
    )
    return removed
