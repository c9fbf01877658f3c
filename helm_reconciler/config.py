"""Configuration objects for helm-reconciler."""

from dataclasses import dataclass, field
import os
from pathlib import Path

STATE_DIR_ENV = "HELM_RECONCILER_STATE_DIR"
DEFAULT_STATE_DIR = Path("~/.local/share/helm-reconciler")


def default_state_dir() -> Path:
    """Return the release store directory from the environment or the default."""
    if value := os.environ.get(STATE_DIR_ENV):
        return Path(value)
    return DEFAULT_STATE_DIR.expanduser()


@dataclass
class ReconcilerConfig:
    """Configuration for applying a plan to the cluster."""

    max_attempts: int = 3
    """Number of times a single resource is tried before the plan is aborted."""

    backoff_initial: float = 0.5
    """Delay in seconds before the first retry, doubled on every attempt."""

    backoff_max: float = 8.0
    """Upper bound for the delay between retries."""

    readiness_timeout: float = 300.0
    """Seconds to wait for a resource to become ready after it is applied."""

    poll_interval: float = 1.0
    """Seconds between readiness checks."""


@dataclass
class StoreConfig:
    """Configuration for the release store."""

    max_history: int = 10
    """Maximum revisions kept per release, 0 for unlimited."""

    state_dir: Path | None = None
    """Directory for the file backed store, or None to keep releases in memory."""


@dataclass
class OrchestratorConfig:
    """Configuration for the release pipeline."""

    auto_rollback: bool = True
    """Roll back to the previously deployed revision when an upgrade fails."""

    reconciler: ReconcilerConfig = field(default_factory=ReconcilerConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
