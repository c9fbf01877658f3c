"""Orchestrator for helm-reconciler.

This module owns the release pipeline: render, plan, reconcile, record. Every
mutation of a release holds the release lock from the store from the moment
the plan is computed until the outcome is recorded, so a plan is never
computed against a revision that is about to be superseded.

The release status moves through a pending status for every mutation:

- install: `pending-install` then `deployed` or `failed`
- upgrade: `pending-upgrade` then `deployed` or `failed`, and a failed
  upgrade is followed by an automatic rollback
- rollback: `pending-rollback` then `deployed` or `failed`
- uninstall: `uninstalling` then `uninstalled` or `failed`
"""

import asyncio
from dataclasses import dataclass, field
import logging
from typing import Any

from .chart import Chart
from .cluster import ClusterClient
from .config import OrchestratorConfig
from .context import trace_context
from .exceptions import (
    ReconcilerException,
    ReleaseExists,
    ReleaseNotFound,
    RollbackFailed,
)
from .manifest import DEFAULT_NAMESPACE, NamedResource, Resource, index_resources
from .plan import Plan, compute_plan
from .reconciler import Reconciler
from .rollback import RollbackController, RollbackResult
from .store import Release, ReleaseStatus, ReleaseStore, Revision
from .template import ReleaseInfo, Renderer
from .values import deep_merge

__all__ = [
    "OperationResult",
    "ReleaseOrchestrator",
]

_LOGGER = logging.getLogger(__name__)


@dataclass
class OperationResult:
    """Outcome of an install, upgrade, rollback or uninstall."""

    release: Release | None
    """The release after the operation, None for a dry run of a new release."""

    revision: Revision | None = None
    """The revision recorded by the operation, None for a dry run."""

    plan: Plan | None = None
    """The plan that was executed, or would be for a dry run."""

    error: ReconcilerException | None = None
    """Why the operation did not reach `deployed` or `uninstalled`."""

    notes: str | None = None
    """Rendered release notes of the chart."""

    rollback: RollbackResult | None = None
    """The automatic rollback that followed a failed upgrade."""

    rollback_error: RollbackFailed | None = None
    """The failure of the automatic rollback, if it failed too."""

    resources: list[Resource] = field(default_factory=list)
    """The manifest set the operation targeted."""

    @property
    def ok(self) -> bool:
        return self.error is None


def _merge_resources(*sets: tuple[Resource, ...]) -> list[Resource]:
    """Union of manifest sets by identity, later sets win."""
    merged: dict[NamedResource, Resource] = {}
    for resources in sets:
        merged.update(index_resources(resources))
    return list(merged.values())


class ReleaseOrchestrator:
    """Runs the release pipeline against a store and a cluster."""

    def __init__(
        self,
        store: ReleaseStore,
        cluster: ClusterClient,
        config: OrchestratorConfig | None = None,
    ) -> None:
        """Initialize ReleaseOrchestrator."""
        self._store = store
        self._config = config or OrchestratorConfig()
        self._reconciler = Reconciler(cluster, self._config.reconciler)
        self._rollback = RollbackController(store, self._reconciler)

    @property
    def store(self) -> ReleaseStore:
        return self._store

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    def _render(
        self,
        name: str,
        namespace: str,
        chart: Chart,
        values: dict[str, Any] | None,
        revision: int,
        is_install: bool,
    ) -> tuple[list[Resource], dict[str, Any], str | None]:
        merged = deep_merge(chart.defaults, values or {})
        info = ReleaseInfo(
            name=name, namespace=namespace, revision=revision, is_install=is_install
        )
        renderer = Renderer(chart)
        resources = renderer.render(merged, info)
        return resources, merged, renderer.render_notes(merged, info)

    async def install(
        self,
        name: str,
        chart: Chart,
        values: dict[str, Any] | None = None,
        namespace: str = DEFAULT_NAMESPACE,
        *,
        dry_run: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> OperationResult:
        """Install a release that is not currently deployed."""
        async with self._store.lock(name, namespace):
            with trace_context("install", f"{namespace}/{name}"):
                return await self._install(
                    name, chart, values, namespace, dry_run=dry_run, cancel=cancel
                )

    async def _install(
        self,
        name: str,
        chart: Chart,
        values: dict[str, Any] | None,
        namespace: str,
        *,
        dry_run: bool,
        cancel: asyncio.Event | None,
    ) -> OperationResult:
        release = await self._store.get_release(name, namespace)
        if release is not None and release.deployed is not None:
            raise ReleaseExists(release.namespaced_name)
        number = (release.revision if release else 0) + 1
        resources, merged, notes = self._render(
            name, namespace, chart, values, number, is_install=True
        )
        plan = compute_plan([], resources, base_revision=None)
        if dry_run:
            return OperationResult(
                release=release, plan=plan, notes=notes, resources=resources
            )

        async with self._store.attempt(
            name,
            namespace,
            ReleaseStatus.PENDING_INSTALL,
            resources,
            merged,
            chart=chart.full_name,
            action="Install",
        ):
            result = await self._reconciler.execute(plan, cancel)
            if result.error is None:
                status, description = ReleaseStatus.DEPLOYED, "Install complete"
            else:
                status, description = ReleaseStatus.FAILED, f"Install failed: {result.error}"
            revision = await self._store.record(
                name,
                namespace,
                resources,
                merged,
                status,
                chart=chart.full_name,
                description=description,
                plan=plan,
            )
        return OperationResult(
            release=await self._store.get_release(name, namespace),
            revision=revision,
            plan=plan,
            error=result.error,
            notes=notes,
            resources=resources,
        )

    async def upgrade(
        self,
        name: str,
        chart: Chart,
        values: dict[str, Any] | None = None,
        namespace: str = DEFAULT_NAMESPACE,
        *,
        install: bool = False,
        dry_run: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> OperationResult:
        """Upgrade a deployed release, or install it with `install`."""
        async with self._store.lock(name, namespace):
            with trace_context("upgrade", f"{namespace}/{name}"):
                deployed = await self._store.get_deployed(name, namespace)
                if deployed is None:
                    if not install:
                        raise ReleaseNotFound(f"{namespace}/{name}")
                    _LOGGER.info("Release %s/%s is not deployed, installing", namespace, name)
                    return await self._install(
                        name, chart, values, namespace, dry_run=dry_run, cancel=cancel
                    )
                return await self._upgrade(
                    deployed, chart, values, dry_run=dry_run, cancel=cancel
                )

    async def _upgrade(
        self,
        deployed: Revision,
        chart: Chart,
        values: dict[str, Any] | None,
        *,
        dry_run: bool,
        cancel: asyncio.Event | None,
    ) -> OperationResult:
        name, namespace = deployed.release, deployed.namespace
        if (release := await self._store.get_release(name, namespace)) is None:
            raise ReleaseNotFound(f"{namespace}/{name}")
        resources, merged, notes = self._render(
            name, namespace, chart, values, release.revision + 1, is_install=False
        )
        plan = compute_plan(deployed.resources, resources, base_revision=deployed.number)
        _LOGGER.info("Upgrade plan for %s: %s", release.namespaced_name, plan)
        if dry_run:
            return OperationResult(
                release=release, plan=plan, notes=notes, resources=resources
            )

        async with self._store.attempt(
            name,
            namespace,
            ReleaseStatus.PENDING_UPGRADE,
            resources,
            merged,
            chart=chart.full_name,
            action="Upgrade",
        ):
            result = await self._reconciler.execute(plan, cancel)
            if result.error is None:
                status, description = ReleaseStatus.DEPLOYED, "Upgrade complete"
            else:
                status, description = ReleaseStatus.FAILED, f"Upgrade failed: {result.error}"
            revision = await self._store.record(
                name,
                namespace,
                resources,
                merged,
                status,
                chart=chart.full_name,
                description=description,
                plan=plan,
            )
        if result.error is None:
            return OperationResult(
                release=await self._store.get_release(name, namespace),
                revision=revision,
                plan=plan,
                notes=notes,
                resources=resources,
            )

        op_result = OperationResult(
            release=None,
            revision=revision,
            plan=plan,
            error=result.error,
            notes=notes,
            resources=resources,
        )
        if self._config.auto_rollback and not result.cancelled:
            _LOGGER.warning(
                "Upgrade of %s failed, rolling back to revision %d",
                release.namespaced_name,
                deployed.number,
            )
            try:
                op_result.rollback = await self._rollback.rollback(
                    name, namespace, deployed.number, current=resources
                )
            except RollbackFailed as err:
                _LOGGER.error("%s", err)
                op_result.rollback_error = err
        op_result.release = await self._store.get_release(name, namespace)
        return op_result

    async def rollback(
        self,
        name: str,
        revision: int | None = None,
        namespace: str = DEFAULT_NAMESPACE,
        *,
        dry_run: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> OperationResult:
        """Roll a release back to `revision`, or the previous deployed revision."""
        async with self._store.lock(name, namespace):
            with trace_context("rollback", f"{namespace}/{name}"):
                release = await self._store.get_release(name, namespace)
                if release is None:
                    raise ReleaseNotFound(f"{namespace}/{name}")
                if dry_run:
                    target = await self._rollback.find_target(name, namespace, revision)
                    latest = await self._store.get_latest(name, namespace)
                    plan = compute_plan(
                        latest.resources, target.resources, release.deployed
                    )
                    return OperationResult(
                        release=release, plan=plan, resources=list(target.resources)
                    )
                try:
                    result = await self._rollback.rollback(
                        name, namespace, revision, cancel=cancel
                    )
                except RollbackFailed as err:
                    return OperationResult(
                        release=await self._store.get_release(name, namespace),
                        revision=await self._store.get_latest(name, namespace),
                        error=err,
                    )
                return OperationResult(
                    release=await self._store.get_release(name, namespace),
                    revision=result.revision,
                    plan=result.plan,
                    resources=list(result.target.resources),
                )

    async def uninstall(
        self,
        name: str,
        namespace: str = DEFAULT_NAMESPACE,
        *,
        keep_history: bool = True,
        dry_run: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> OperationResult:
        """Delete every resource of a release."""
        async with self._store.lock(name, namespace):
            with trace_context("uninstall", f"{namespace}/{name}"):
                return await self._uninstall(
                    name, namespace, keep_history=keep_history, dry_run=dry_run, cancel=cancel
                )

    async def _uninstall(
        self,
        name: str,
        namespace: str,
        *,
        keep_history: bool,
        dry_run: bool,
        cancel: asyncio.Event | None,
    ) -> OperationResult:
        release = await self._store.get_release(name, namespace)
        if release is None:
            raise ReleaseNotFound(f"{namespace}/{name}")
        latest = await self._store.get_latest(name, namespace)
        deployed = await self._store.get_deployed(name, namespace)
        # A failed attempt may have left resources the deployed revision lacks
        current = _merge_resources(
            latest.resources, deployed.resources if deployed else ()
        )
        plan = compute_plan(current, [], base_revision=release.deployed)
        if dry_run:
            return OperationResult(release=release, plan=plan)

        async with self._store.attempt(
            name,
            namespace,
            ReleaseStatus.UNINSTALLING,
            current,
            latest.values,
            chart=latest.chart,
            action="Uninstall",
        ):
            result = await self._reconciler.execute(plan, cancel)
            if result.error is not None:
                revision = await self._store.record(
                    name,
                    namespace,
                    current,
                    latest.values,
                    ReleaseStatus.FAILED,
                    chart=latest.chart,
                    description=f"Uninstall failed: {result.error}",
                    plan=plan,
                )
                return OperationResult(
                    release=await self._store.get_release(name, namespace),
                    revision=revision,
                    plan=plan,
                    error=result.error,
                )

            revision = await self._store.record(
                name,
                namespace,
                [],
                latest.values,
                ReleaseStatus.UNINSTALLED,
                chart=latest.chart,
                description="Uninstallation complete",
                plan=plan,
            )
        release = await self._store.get_release(name, namespace)
        if not keep_history:
            await self._store.delete_release(name, namespace)
        return OperationResult(release=release, revision=revision, plan=plan)

    async def history(
        self, name: str, namespace: str = DEFAULT_NAMESPACE, limit: int | None = None
    ) -> list[Revision]:
        """Return the revisions of a release, most recent first."""
        return await self._store.history(name, namespace, limit)

    async def status(self, name: str, namespace: str = DEFAULT_NAMESPACE) -> Release:
        """Return the current state of a release."""
        if (release := await self._store.get_release(name, namespace)) is None:
            raise ReleaseNotFound(f"{namespace}/{name}")
        return release

    async def list_releases(self, namespace: str | None = None) -> list[Release]:
        """Return every known release, optionally in one namespace."""
        return await self._store.list_releases(namespace)

    async def template(
        self,
        name: str,
        chart: Chart,
        values: dict[str, Any] | None = None,
        namespace: str = DEFAULT_NAMESPACE,
    ) -> list[Resource]:
        """Render a chart without touching the store or the cluster."""
        with trace_context("template", f"{namespace}/{name}"):
            resources, _, _ = self._render(
                name, namespace, chart, values, revision=1, is_install=True
            )
        return resources

    async def diff(
        self,
        name: str,
        chart: Chart,
        values: dict[str, Any] | None = None,
        namespace: str = DEFAULT_NAMESPACE,
    ) -> Plan:
        """Return the plan an upgrade (or install) with the chart would execute."""
        with trace_context("diff", f"{namespace}/{name}"):
            release = await self._store.get_release(name, namespace)
            deployed = await self._store.get_deployed(name, namespace)
            number = (release.revision if release else 0) + 1
            resources, _, _ = self._render(
                name, namespace, chart, values, number, is_install=deployed is None
            )
            if deployed is None:
                return compute_plan([], resources)
            return compute_plan(
                deployed.resources, resources, base_revision=deployed.number
            )

