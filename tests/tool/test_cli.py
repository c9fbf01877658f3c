"""Tests for the helm-reconciler command line tool."""

from pathlib import Path
import sys

import pytest
import yaml

from helm_reconciler.command import Command, run
from helm_reconciler.exceptions import CommandException

TESTDATA_DIR = Path(__file__).parent.parent / "testdata"
APP_CHART = str(TESTDATA_DIR / "charts/app")


@pytest.fixture(name="cli")
def cli_fixture(tmp_path: Path):  # type: ignore[no-untyped-def]
    """Run the tool against a simulated cluster and a temporary release store."""

    async def _cli(*args: str) -> str:
        return await run(
            Command(
                [sys.executable, "-m", "helm_reconciler", *args],
                env={"HELM_RECONCILER_STATE_DIR": str(tmp_path / "releases")},
            )
        )

    return _cli


async def test_template(cli) -> None:  # type: ignore[no-untyped-def]
    out = await cli("template", "web", APP_CHART, "--set", "replicaCount=2")
    docs = list(yaml.safe_load_all(out))
    assert [doc["kind"] for doc in docs] == ["Service", "Deployment"]
    assert docs[1]["spec"]["replicas"] == 2
    assert docs[1]["metadata"]["namespace"] == "default"


async def test_release_lifecycle(cli) -> None:  # type: ignore[no-untyped-def]
    """Test install, upgrade, rollback and uninstall through the command line."""
    out = await cli("install", "web", APP_CHART, "--cluster", "memory")
    assert 'Release "web" has been installed.' in out
    assert "REVISION: 1" in out
    assert "Release web runs app:v1 with 1 replica(s)." in out

    out = await cli(
        "upgrade", "web", APP_CHART, "--cluster", "memory", "--set", "image=app:v2"
    )
    assert 'Release "web" has been upgraded.' in out
    assert "REVISION: 2" in out
    assert "PLAN: 0 create, 1 update, 0 delete, 1 noop" in out

    out = await cli("rollback", "web", "1", "--cluster", "memory")
    assert 'Release "web" has been rolled back.' in out
    assert "REVISION: 3" in out

    out = await cli("history", "web", "-o", "yaml")
    history = yaml.safe_load(out)
    assert [(rev["revision"], rev["status"]) for rev in history] == [
        (3, "deployed"),
        (2, "superseded"),
        (1, "superseded"),
    ]
    assert history[0]["description"] == "Rollback to 1"

    out = await cli("status", "web")
    assert "STATUS: deployed" in out
    assert "DEPLOYED REVISION: 3" in out
    assert "  Deployment/default/web" in out

    out = await cli("list", "-o", "json")
    assert '"name": "web"' in out

    out = await cli("uninstall", "web", "--cluster", "memory")
    assert 'Release "web" has been uninstalled.' in out
    assert "STATUS: uninstalled" in out


async def test_dry_run(cli) -> None:  # type: ignore[no-untyped-def]
    out = await cli("install", "web", APP_CHART, "--cluster", "memory", "--dry-run")
    assert "DRY RUN: nothing was applied" in out
    assert "PLAN: 2 create, 0 update, 0 delete, 0 noop" in out
    assert "  create Deployment/default/web" in out

    with pytest.raises(CommandException, match="Release default/web not found"):
        await cli("status", "web")


async def test_diff(cli) -> None:  # type: ignore[no-untyped-def]
    await cli("install", "web", APP_CHART, "--cluster", "memory")
    out = await cli("diff", "web", APP_CHART)
    assert out == "No changes\n"

    out = await cli("diff", "web", APP_CHART, "--set", "replicaCount=4")
    assert "--- Deployment/default/web" in out
    assert "-  replicas: 1" in out
    assert "+  replicas: 4" in out


async def test_upgrade_missing_release(cli) -> None:  # type: ignore[no-untyped-def]
    with pytest.raises(
        CommandException, match="helm-reconciler error: Release default/web not found"
    ):
        await cli("upgrade", "web", APP_CHART, "--cluster", "memory")


async def test_missing_value(cli) -> None:  # type: ignore[no-untyped-def]
    chart = str(TESTDATA_DIR / "charts/platform")
    with pytest.raises(CommandException, match="Missing required value 'Values.token'"):
        await cli("template", "infra", chart)
