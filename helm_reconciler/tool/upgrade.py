"""helm-reconciler upgrade action."""

import logging
from argparse import (
    ArgumentParser,
    BooleanOptionalAction,
    _SubParsersAction as SubParsersAction,
)
from typing import cast

from . import common

_LOGGER = logging.getLogger(__name__)


class UpgradeAction:
    """Upgrade a release to a new chart or new values."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "upgrade",
                help="Upgrade a release",
                description=(
                    "Render a chart and apply the changes against the deployed "
                    "revision. A failed upgrade is rolled back automatically."
                ),
            ),
        )
        args.add_argument("release", help="Name of the release")
        common.add_chart_flags(args)
        common.add_release_flags(args)
        common.add_apply_flags(args)
        args.add_argument(
            "--install",
            action="store_true",
            default=False,
            help="Install the release if it is not deployed yet",
        )
        args.add_argument(
            "--auto-rollback",
            action=BooleanOptionalAction,
            default=True,
            help="Roll back to the deployed revision when the upgrade fails",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        release: str,
        namespace: str,
        output: str,
        dry_run: bool,
        install: bool,
        auto_rollback: bool,
        **kwargs,
    ) -> None:
        """Async Action implementation."""
        orchestrator = common.build_orchestrator(**kwargs)
        orchestrator.config.auto_rollback = auto_rollback
        chart, values = await common.load_chart_values(**kwargs)
        result = await orchestrator.upgrade(
            release, chart, values, namespace, install=install, dry_run=dry_run
        )
        common.print_result("upgraded", result, output, dry_run=dry_run)
        if result.error is not None:
            raise result.error
