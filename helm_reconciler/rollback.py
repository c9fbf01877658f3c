"""Module for restoring a release to a previous revision.

A rollback treats the stored manifest set of the target revision as a fresh
render. It is planned against the current state of the release and applied
like any upgrade, and its outcome is recorded as a new revision. Revision
numbers are never reused.
"""

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass
import logging

from .exceptions import ReleaseNotFound, RevisionNotFound, RollbackFailed
from .manifest import Resource
from .plan import Plan, compute_plan
from .reconciler import Reconciler
from .store import ReleaseStatus, ReleaseStore, Revision

__all__ = [
    "RollbackController",
    "RollbackResult",
]

_LOGGER = logging.getLogger(__name__)


@dataclass
class RollbackResult:
    """A completed rollback."""

    target: Revision
    """The revision that was restored."""

    revision: Revision
    """The new revision recording the rollback."""

    plan: Plan
    """The plan that was executed."""


class RollbackController:
    """Restores releases to earlier revisions.

    The caller is expected to hold the release lock from the store.
    """

    def __init__(self, store: ReleaseStore, reconciler: Reconciler) -> None:
        """Initialize RollbackController."""
        self._store = store
        self._reconciler = reconciler

    async def find_target(
        self, name: str, namespace: str, revision: int | None = None
    ) -> Revision:
        """Return the revision a rollback would restore.

        Without an explicit `revision` this is the deployed revision when the
        latest attempt failed, otherwise the most recent deployed revision
        before the current one.
        """
        if revision is not None:
            return await self._store.get_revision(name, namespace, revision)
        release = await self._store.get_release(name, namespace)
        if release is None or release.deployed is None:
            raise RevisionNotFound(f"{namespace}/{name}", None)
        if release.status == ReleaseStatus.FAILED:
            return await self._store.get_revision(name, namespace, release.deployed)
        for candidate in await self._store.history(name, namespace):
            if (
                candidate.status == ReleaseStatus.DEPLOYED
                and candidate.number < release.deployed
            ):
                return candidate
        raise RevisionNotFound(f"{namespace}/{name}", None)

    async def rollback(
        self,
        name: str,
        namespace: str,
        revision: int | None = None,
        *,
        current: Iterable[Resource] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> RollbackResult:
        """Roll a release back to `revision`, or to the previous deployed one.

        The plan is computed against `current`, the manifest set of the latest
        attempt when not given. A failing rollback is recorded as a `failed`
        revision and raised as `RollbackFailed`.
        """
        target = await self.find_target(name, namespace, revision)
        release = await self._store.get_release(name, namespace)
        if release is None:
            raise ReleaseNotFound(f"{namespace}/{name}")
        if current is None:
            latest = await self._store.get_latest(name, namespace)
            current = latest.resources
        _LOGGER.info(
            "Rolling back %s to revision %d", release.namespaced_name, target.number
        )
        plan = compute_plan(current, target.resources, base_revision=release.deployed)
        async with self._store.attempt(
            name,
            namespace,
            ReleaseStatus.PENDING_ROLLBACK,
            target.resources,
            target.values,
            chart=target.chart,
            action=f"Rollback to {target.number}",
        ):
            result = await self._reconciler.execute(plan, cancel)
            if result.error is None:
                status = ReleaseStatus.DEPLOYED
                description = f"Rollback to {target.number}"
            else:
                status = ReleaseStatus.FAILED
                description = f"Rollback to {target.number} failed: {result.error}"
            new_revision = await self._store.record(
                name,
                namespace,
                target.resources,
                target.values,
                status,
                chart=target.chart,
                description=description,
                plan=plan,
            )
        if result.error is not None:
            raise RollbackFailed(
                release.namespaced_name, target.number, result.error
            ) from result.error
        return RollbackResult(target=target, revision=new_revision, plan=plan)
