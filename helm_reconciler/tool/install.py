"""helm-reconciler install action."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import Any, cast

from . import common

_LOGGER = logging.getLogger(__name__)


class InstallAction:
    """Install a chart as a new release."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "install",
                help="Install a chart",
                description="Render a chart and apply it to the cluster as a new release.",
            ),
        )
        args.add_argument("release", help="Name of the release")
        common.add_chart_flags(args)
        common.add_release_flags(args)
        common.add_apply_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        release: str,
        namespace: str,
        output: str,
        dry_run: bool,
        **kwargs,
    ) -> None:
        """Async Action implementation."""
        orchestrator = common.build_orchestrator(**kwargs)
        chart, values = await common.load_chart_values(**kwargs)
        result = await orchestrator.install(
            release, chart, values, namespace, dry_run=dry_run
        )
        common.print_result("installed", result, output, dry_run=dry_run)
        if result.error is not None:
            raise result.error
