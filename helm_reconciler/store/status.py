"""Status of a release and the transitions between them."""

from enum import StrEnum


class ReleaseStatus(StrEnum):
    """Lifecycle status of a release or outcome of a revision."""

    PENDING_INSTALL = "pending-install"
    PENDING_UPGRADE = "pending-upgrade"
    PENDING_ROLLBACK = "pending-rollback"
    UNINSTALLING = "uninstalling"
    DEPLOYED = "deployed"
    FAILED = "failed"
    UNINSTALLED = "uninstalled"
    SUPERSEDED = "superseded"

    @property
    def is_pending(self) -> bool:
        """Return True while an operation on the release is in progress."""
        return self in PENDING_STATUSES


PENDING_STATUSES = frozenset(
    {
        ReleaseStatus.PENDING_INSTALL,
        ReleaseStatus.PENDING_UPGRADE,
        ReleaseStatus.PENDING_ROLLBACK,
        ReleaseStatus.UNINSTALLING,
    }
)

# Outcomes that may be recorded as a revision.
REVISION_OUTCOMES = frozenset(
    {
        ReleaseStatus.DEPLOYED,
        ReleaseStatus.FAILED,
        ReleaseStatus.UNINSTALLED,
    }
)

# Every mutation passes through a pending status, there are no shortcuts
# from one settled status to another. None is a release that does not exist.
TRANSITIONS: dict[ReleaseStatus | None, frozenset[ReleaseStatus]] = {
    None: frozenset({ReleaseStatus.PENDING_INSTALL}),
    ReleaseStatus.PENDING_INSTALL: frozenset(
        {ReleaseStatus.DEPLOYED, ReleaseStatus.FAILED}
    ),
    ReleaseStatus.PENDING_UPGRADE: frozenset(
        {ReleaseStatus.DEPLOYED, ReleaseStatus.FAILED}
    ),
    ReleaseStatus.PENDING_ROLLBACK: frozenset(
        {ReleaseStatus.DEPLOYED, ReleaseStatus.FAILED}
    ),
    ReleaseStatus.UNINSTALLING: frozenset(
        {ReleaseStatus.UNINSTALLED, ReleaseStatus.FAILED}
    ),
    ReleaseStatus.DEPLOYED: frozenset(
        {
            ReleaseStatus.PENDING_UPGRADE,
            ReleaseStatus.PENDING_ROLLBACK,
            ReleaseStatus.UNINSTALLING,
        }
    ),
    ReleaseStatus.FAILED: frozenset(
        {
            ReleaseStatus.PENDING_INSTALL,
            ReleaseStatus.PENDING_UPGRADE,
            ReleaseStatus.PENDING_ROLLBACK,
            ReleaseStatus.UNINSTALLING,
        }
    ),
    ReleaseStatus.UNINSTALLED: frozenset({ReleaseStatus.PENDING_INSTALL}),
    ReleaseStatus.SUPERSEDED: frozenset(),
}


def can_transition(current: ReleaseStatus | None, target: ReleaseStatus) -> bool:
    """Return True if a release in `current` status may move to `target`."""
    return target in TRANSITIONS.get(current, frozenset())
