"""helm-reconciler diff action."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast

from helm_reconciler.plan import render_diff

from . import common
from .format import TEXT, struct_formatter

_LOGGER = logging.getLogger(__name__)


class DiffAction:
    """Print the changes an upgrade would make."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "diff",
                help="Diff a chart against the deployed release",
                description=(
                    "Render a chart and print a unified diff against the resources "
                    "of the deployed revision."
                ),
            ),
        )
        args.add_argument("release", help="Name of the release")
        common.add_chart_flags(args)
        common.add_release_flags(args)
        args.add_argument(
            "--unified",
            "-u",
            type=int,
            default=3,
            help="Number of context lines in the diff",
        )
        args.add_argument(
            "--limit-bytes",
            type=int,
            default=10000,
            help="Truncate the diff of each resource after this many bytes, 0 for no limit",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        release: str,
        namespace: str,
        output: str,
        unified: int,
        limit_bytes: int,
        **kwargs,
    ) -> None:
        """Async Action implementation."""
        orchestrator = common.build_orchestrator(**kwargs)
        chart, values = await common.load_chart_values(**kwargs)
        plan = await orchestrator.diff(release, chart, values, namespace)
        if output != TEXT:
            struct_formatter(output).print(common.plan_dict(plan))
            return
        if not plan.changed:
            print("No changes")
            return
        for line in render_diff(plan, context_lines=unified, limit_bytes=limit_bytes):
            print(line)
