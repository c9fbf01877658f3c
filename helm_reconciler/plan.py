"""Module for computing the plan that moves a release between manifest sets.

A plan compares the manifest set of the previously deployed revision with a
newly rendered one, keyed by resource identity:

- present only in the new set: `create`
- present only in the previous set: `delete`
- present in both with a different digest: `update`
- present in both with the same digest: `noop`

Creates and updates run in tiers of ascending weight, so that prerequisites
exist before their dependents. Deletes run after every create and update has
succeeded, in descending weight order, so dependents are removed before the
resources they reference.
"""

from collections.abc import Generator, Iterable
from dataclasses import dataclass, field
import difflib
import enum
import itertools
import logging

from .manifest import NamedResource, Resource, index_resources

__all__ = [
    "Action",
    "Operation",
    "Plan",
    "compute_plan",
    "render_diff",
]

_LOGGER = logging.getLogger(__name__)

_TRUNCATE = "[Diff truncated by helm-reconciler]"


class Action(str, enum.Enum):
    """The change applied to a single resource."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    NOOP = "noop"


@dataclass(frozen=True)
class Operation:
    """A single step of a plan bound to one resource identity."""

    action: Action
    """The change to make."""

    resource: Resource
    """The target resource, or the previous resource for a delete."""

    previous: Resource | None = None
    """The previously applied resource for updates, deletes and noops."""

    @property
    def resource_id(self) -> NamedResource:
        return self.resource.identity

    @property
    def weight(self) -> int:
        return self.resource.weight

    def __str__(self) -> str:
        return f"{self.action.value} {self.resource_id}"


@dataclass
class Plan:
    """The ordered set of operations for one apply attempt."""

    operations: list[Operation] = field(default_factory=list)
    """Every operation in execution order, noops included."""

    base_revision: int | None = None
    """Revision number the plan was computed against, None for a first install."""

    @property
    def changed(self) -> bool:
        """Return True if executing the plan changes the cluster."""
        return any(op.action != Action.NOOP for op in self.operations)

    def by_action(self, action: Action) -> list[Operation]:
        return [op for op in self.operations if op.action == action]

    def tiers(self) -> list[list[Operation]]:
        """Group the executable operations into tiers that may run concurrently.

        Operations are already stored in execution order, so a tier is a run
        of consecutive operations in the same phase (apply or delete) with the
        same weight.
        """
        executable = [op for op in self.operations if op.action != Action.NOOP]

        def tier_key(op: Operation) -> tuple[bool, int]:
            return (op.action == Action.DELETE, op.weight)

        return [list(group) for _, group in itertools.groupby(executable, tier_key)]

    def summary(self) -> dict[str, int]:
        """Count of operations per action."""
        return {action.value: len(self.by_action(action)) for action in Action}

    def __str__(self) -> str:
        summary = self.summary()
        return ", ".join(f"{count} {action}" for action, count in summary.items())


def _identity_key(op: Operation) -> tuple[str, str, str]:
    resource_id = op.resource_id
    return (resource_id.kind, resource_id.namespace or "", resource_id.name)


def compute_plan(
    previous: Iterable[Resource],
    new: Iterable[Resource],
    base_revision: int | None = None,
) -> Plan:
    """Compute the plan that moves the cluster from `previous` to `new`."""
    previous_index = index_resources(previous)
    new_index = index_resources(new)

    applies: list[Operation] = []
    noops: list[Operation] = []
    deletes: list[Operation] = []
    for resource_id, resource in new_index.items():
        if (old := previous_index.get(resource_id)) is None:
            applies.append(Operation(Action.CREATE, resource))
        elif old.digest != resource.digest:
            applies.append(Operation(Action.UPDATE, resource, previous=old))
        else:
            noops.append(Operation(Action.NOOP, resource, previous=old))
    for resource_id, old in previous_index.items():
        if resource_id not in new_index:
            deletes.append(Operation(Action.DELETE, old, previous=old))

    applies.sort(key=lambda op: (op.weight, _identity_key(op)))
    noops.sort(key=lambda op: (op.weight, _identity_key(op)))
    deletes.sort(key=lambda op: (-op.weight, _identity_key(op)))

    plan = Plan(operations=applies + deletes + noops, base_revision=base_revision)
    _LOGGER.debug("Computed plan against revision %s: %s", base_revision, plan)
    return plan


def render_diff(
    plan: Plan, context_lines: int = 3, limit_bytes: int = 0
) -> Generator[str, None, None]:
    """Generate a unified diff of the resources a plan changes."""
    for op in plan.operations:
        if op.action == Action.NOOP:
            continue
        before = op.previous.manifest().splitlines() if op.previous else []
        after = op.resource.manifest().splitlines() if op.action != Action.DELETE else []
        label = str(op.resource_id)
        diff_text = difflib.unified_diff(
            a=before,
            b=after,
            fromfile=label if op.action != Action.CREATE else "/dev/null",
            tofile=label if op.action != Action.DELETE else "/dev/null",
            n=context_lines,
            lineterm="",
        )
        size = 0
        for line in diff_text:
            size += len(line)
            if limit_bytes and size > limit_bytes:
                yield _TRUNCATE
                break
            yield line
