"""Shared fixtures for helm-reconciler tests."""

from collections.abc import Generator
import logging
from pathlib import Path

import pytest

from helm_reconciler.chart import Chart, load_chart
from helm_reconciler.cluster import InMemoryCluster
from helm_reconciler.config import OrchestratorConfig, ReconcilerConfig
from helm_reconciler.orchestrator import ReleaseOrchestrator
from helm_reconciler.reconciler import Reconciler
from helm_reconciler.store import InMemoryReleaseStore

_LOGGER = logging.getLogger(__name__)

TESTDATA_DIR = Path(__file__).parent / "testdata"
APP_CHART = TESTDATA_DIR / "charts/app"
PLATFORM_CHART = TESTDATA_DIR / "charts/platform"


@pytest.fixture(autouse=True)
def state_dir_env(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[Path, None, None]:
    """Keep the default release store out of the home directory."""
    state_dir = tmp_path / "state"
    monkeypatch.setenv("HELM_RECONCILER_STATE_DIR", str(state_dir))
    yield state_dir


@pytest.fixture(name="reconciler_config")
def reconciler_config_fixture() -> ReconcilerConfig:
    """Reconciler settings that keep retries and readiness waits short."""
    return ReconcilerConfig(
        max_attempts=3,
        backoff_initial=0.0,
        backoff_max=0.0,
        readiness_timeout=0.2,
        poll_interval=0.01,
    )


@pytest.fixture(name="cluster")
def cluster_fixture() -> InMemoryCluster:
    return InMemoryCluster()


@pytest.fixture(name="store")
def store_fixture() -> InMemoryReleaseStore:
    return InMemoryReleaseStore()


@pytest.fixture(name="reconciler")
def reconciler_fixture(
    cluster: InMemoryCluster, reconciler_config: ReconcilerConfig
) -> Reconciler:
    return Reconciler(cluster, reconciler_config)


@pytest.fixture(name="orchestrator")
def orchestrator_fixture(
    store: InMemoryReleaseStore,
    cluster: InMemoryCluster,
    reconciler_config: ReconcilerConfig,
) -> ReleaseOrchestrator:
    return ReleaseOrchestrator(
        store, cluster, OrchestratorConfig(reconciler=reconciler_config)
    )


@pytest.fixture(name="app_chart")
async def app_chart_fixture() -> Chart:
    return await load_chart(APP_CHART)


@pytest.fixture(name="platform_chart")
async def platform_chart_fixture() -> Chart:
    return await load_chart(PLATFORM_CHART)
