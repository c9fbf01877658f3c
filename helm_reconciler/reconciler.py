"""Module for executing a plan against the cluster.

The reconciler walks the tiers of a plan in order. Every operation in a tier
is started at once and the whole tier finishes before the next one begins.
An operation is only complete once the cluster reports the resource as ready,
or as gone for a delete.

A failing operation is retried with exponential backoff. Once it runs out of
attempts the rest of the plan is abandoned and the failure is reported in
the `ApplyResult`. The caller decides how to record the outcome.
"""

import asyncio
from dataclasses import dataclass, field
import logging

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .cluster import ClusterClient, is_ready
from .config import ReconcilerConfig
from .context import trace_context
from .exceptions import (
    ApplyCancelled,
    ApplyFailure,
    ReadinessTimeout,
    ReconcilerException,
)
from .manifest import NamedResource
from .plan import Action, Operation, Plan

__all__ = [
    "ApplyResult",
    "Reconciler",
]

_LOGGER = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    """Outcome of executing a plan."""

    applied: list[Operation] = field(default_factory=list)
    """Operations that completed, in the order they completed."""

    error: ApplyFailure | ApplyCancelled | None = None
    """The reason the plan did not complete, if it did not."""

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def cancelled(self) -> bool:
        return isinstance(self.error, ApplyCancelled)


class Reconciler:
    """Applies plans to a cluster."""

    def __init__(
        self, cluster: ClusterClient, config: ReconcilerConfig | None = None
    ) -> None:
        """Initialize Reconciler."""
        self._cluster = cluster
        self._config = config or ReconcilerConfig()

    @property
    def cluster(self) -> ClusterClient:
        return self._cluster

    async def execute(
        self, plan: Plan, cancel: asyncio.Event | None = None
    ) -> ApplyResult:
        """Execute every tier of the plan and report what happened.

        Setting `cancel` stops the run before the next tier starts. A tier
        that is already running is allowed to finish.
        """
        result = ApplyResult()
        tiers = plan.tiers()
        with trace_context("reconcile"):
            for index, tier in enumerate(tiers):
                if cancel is not None and cancel.is_set():
                    _LOGGER.warning(
                        "Apply cancelled before tier %d of %d", index + 1, len(tiers)
                    )
                    result.error = ApplyCancelled(
                        f"Apply cancelled after {len(result.applied)} operation(s)"
                    )
                    return result
                _LOGGER.debug(
                    "Running tier %d of %d: %s",
                    index + 1,
                    len(tiers),
                    ", ".join(str(op) for op in tier),
                )
                outcomes = await asyncio.gather(
                    *(self._execute_operation(op) for op in tier),
                    return_exceptions=True,
                )
                for op, outcome in zip(tier, outcomes):
                    if outcome is None:
                        result.applied.append(op)
                    elif isinstance(outcome, ApplyFailure):
                        if result.error is None:
                            result.error = outcome
                    elif isinstance(outcome, BaseException):
                        raise outcome
                if result.error is not None:
                    _LOGGER.error("Aborting plan: %s", result.error)
                    return result
        _LOGGER.info("Applied %d operation(s)", len(result.applied))
        return result

    async def _execute_operation(self, op: Operation) -> None:
        """Run one operation until it succeeds or runs out of attempts."""
        attempts = 0
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._config.max_attempts),
            wait=wait_exponential(
                multiplier=self._config.backoff_initial,
                max=self._config.backoff_max,
            ),
            retry=retry_if_exception_type(ReconcilerException),
            before_sleep=before_sleep_log(_LOGGER, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    await self._run_once(op)
        except ReadinessTimeout as err:
            raise ReadinessTimeout(op.resource_id, err.cause, attempts) from err
        except ReconcilerException as err:
            raise ApplyFailure(op.resource_id, str(err), attempts) from err

    async def _run_once(self, op: Operation) -> None:
        if op.action == Action.DELETE:
            await self._cluster.delete(op.resource_id)
            await self._wait(op.resource_id, gone=True)
        else:
            await self._cluster.apply(op.resource)
            await self._wait(op.resource_id)
        _LOGGER.debug("Completed %s", op)

    async def _wait(self, resource_id: NamedResource, gone: bool = False) -> None:
        """Poll the cluster until the resource is ready, or deleted when `gone`."""
        timeout = self._config.readiness_timeout
        try:
            async with asyncio.timeout(timeout):
                while True:
                    state = await self._cluster.get(resource_id)
                    if gone and state is None:
                        return
                    if not gone and is_ready(resource_id, state):
                        return
                    await asyncio.sleep(self._config.poll_interval)
        except TimeoutError as err:
            condition = "deleted" if gone else "ready"
            raise ReadinessTimeout(
                resource_id, f"not {condition} after {timeout}s"
            ) from err
