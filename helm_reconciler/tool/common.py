"""Flags and helpers shared by the release commands."""

from argparse import ArgumentParser
import logging
import pathlib
import sys
from typing import Any, TextIO

from helm_reconciler.chart import Chart, load_chart
from helm_reconciler.cluster import ClusterClient, InMemoryCluster, KubectlCluster
from helm_reconciler.config import (
    OrchestratorConfig,
    ReconcilerConfig,
    StoreConfig,
    default_state_dir,
)
from helm_reconciler.manifest import DEFAULT_NAMESPACE
from helm_reconciler.orchestrator import OperationResult, ReleaseOrchestrator
from helm_reconciler.plan import Action, Plan, render_diff
from helm_reconciler.store import FileReleaseStore, Release, Revision
from helm_reconciler.values import load_values

from .format import OUTPUT_CHOICES, TEXT, struct_formatter

_LOGGER = logging.getLogger(__name__)

CLUSTER_KUBECTL = "kubectl"
CLUSTER_MEMORY = "memory"


def add_release_flags(args: ArgumentParser) -> None:
    """Add flags selecting the release store and the cluster."""
    args.add_argument(
        "--namespace",
        "-n",
        default=DEFAULT_NAMESPACE,
        help="Namespace of the release",
    )
    args.add_argument(
        "--state-dir",
        type=pathlib.Path,
        default=None,
        help="Directory of the release store (default $HELM_RECONCILER_STATE_DIR "
        "or ~/.local/share/helm-reconciler)",
    )
    args.add_argument(
        "--cluster",
        choices=[CLUSTER_KUBECTL, CLUSTER_MEMORY],
        default=CLUSTER_KUBECTL,
        help="Cluster to apply resources to, `memory` only simulates the cluster",
    )
    args.add_argument(
        "--kube-context",
        default=None,
        help="The kubectl context to use",
    )
    args.add_argument(
        "--max-history",
        type=int,
        default=StoreConfig.max_history,
        help="Maximum revisions kept per release, 0 for no limit",
    )
    add_output_flag(args)


def add_apply_flags(args: ArgumentParser) -> None:
    """Add flags controlling how a plan is applied."""
    args.add_argument(
        "--timeout",
        type=float,
        default=ReconcilerConfig.readiness_timeout,
        help="Seconds to wait for each resource to become ready",
    )
    args.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Print the plan without changing the cluster or the release store",
    )


def add_chart_flags(args: ArgumentParser) -> None:
    """Add the chart argument and the values flags."""
    args.add_argument(
        "chart",
        type=pathlib.Path,
        help="Path to a local chart directory",
    )
    args.add_argument(
        "--values",
        "-f",
        type=pathlib.Path,
        action="append",
        default=[],
        help="Values file to merge over the chart defaults, may be repeated",
    )
    args.add_argument(
        "--set",
        dest="set_values",
        action="append",
        default=[],
        help="Set values on the command line, e.g. `image.tag=v2,replicaCount=3`",
    )


def add_output_flag(args: ArgumentParser) -> None:
    args.add_argument(
        "--output",
        "-o",
        choices=OUTPUT_CHOICES,
        default=TEXT,
        help="Output format of the command",
    )


def build_orchestrator(
    state_dir: pathlib.Path | None = None,
    cluster: str = CLUSTER_KUBECTL,
    kube_context: str | None = None,
    max_history: int = StoreConfig.max_history,
    timeout: float = ReconcilerConfig.readiness_timeout,
    **kwargs: Any,  # pylint: disable=unused-argument
) -> ReleaseOrchestrator:
    """Create an orchestrator from the command line flags."""
    state_dir = state_dir or default_state_dir()
    config = OrchestratorConfig(
        reconciler=ReconcilerConfig(readiness_timeout=timeout),
        store=StoreConfig(max_history=max_history, state_dir=state_dir),
    )
    _LOGGER.debug("Using release store %s", state_dir)
    store = FileReleaseStore(state_dir, config.store.max_history)
    client: ClusterClient
    if cluster == CLUSTER_MEMORY:
        client = InMemoryCluster()
    else:
        client = KubectlCluster(context=kube_context)
    return ReleaseOrchestrator(store, client, config)


async def load_chart_values(
    chart: pathlib.Path,
    values: list[pathlib.Path] | None = None,
    set_values: list[str] | None = None,
    **kwargs: Any,  # pylint: disable=unused-argument
) -> tuple[Chart, dict[str, Any]]:
    """Load the chart and the values supplied on the command line."""
    bundle = await load_chart(chart)
    overrides = await load_values({}, values or [], set_values or [])
    return bundle, overrides


def revision_dict(release: Release | None, revision: Revision) -> dict[str, Any]:
    """Summary of a revision for table and structured output."""
    status = release.revision_status(revision) if release else revision.status
    return {
        "revision": revision.number,
        "updated": revision.timestamp.isoformat(timespec="seconds"),
        "status": str(status),
        "chart": revision.chart,
        "description": revision.description,
    }


def plan_dict(plan: Plan) -> list[dict[str, Any]]:
    return [
        {"action": op.action.value, "resource": str(op.resource_id)}
        for op in plan.operations
    ]


def print_plan(plan: Plan, file: TextIO = sys.stdout) -> None:
    """Print the operations of a plan followed by the diff of changed resources."""
    print(f"PLAN: {plan}", file=file)
    for op in plan.operations:
        if op.action != Action.NOOP:
            print(f"  {op}", file=file)
    for line in render_diff(plan):
        print(line, file=file)


def print_result(
    verb: str, result: OperationResult, output: str, dry_run: bool = False
) -> None:
    """Print the outcome of a release operation."""
    if output != TEXT:
        data: dict[str, Any] = {
            "release": result.release.to_dict() if result.release else None,
            "revision": result.revision.number if result.revision else None,
            "plan": plan_dict(result.plan) if result.plan else [],
            "error": str(result.error) if result.error else None,
        }
        if result.rollback is not None:
            data["rollback"] = result.rollback.revision.number
        struct_formatter(output).print(data)
        return

    release = result.release
    if dry_run:
        print("DRY RUN: nothing was applied")
        if result.plan is not None:
            print_plan(result.plan)
        return
    if release is not None:
        if result.ok:
            print(f'Release "{release.name}" has been {verb}.')
        print(f"NAME: {release.name}")
        print(f"NAMESPACE: {release.namespace}")
        print(f"STATUS: {release.status}")
        print(f"REVISION: {release.revision}")
    if result.plan is not None:
        print(f"PLAN: {result.plan}")
    if result.rollback is not None:
        print(
            f"ROLLED BACK: revision {result.rollback.target.number} restored "
            f"as revision {result.rollback.revision.number}"
        )
    if result.rollback_error is not None:
        print(f"ROLLBACK FAILED: {result.rollback_error}")
    if result.ok and result.notes:
        print("NOTES:")
        print(result.notes.rstrip())
