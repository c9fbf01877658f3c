"""helm-reconciler template action."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast

from helm_reconciler.manifest import DEFAULT_NAMESPACE, dump_resources
from helm_reconciler.orchestrator import ReleaseOrchestrator
from helm_reconciler.cluster import InMemoryCluster
from helm_reconciler.store import InMemoryReleaseStore

from . import common
from .format import OUTPUT_CHOICES, TEXT, struct_formatter

_LOGGER = logging.getLogger(__name__)


class TemplateAction:
    """Render a chart locally."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "template",
                help="Render a chart",
                description=(
                    "Render the chart templates to stdout in install order without "
                    "contacting the cluster or the release store."
                ),
            ),
        )
        args.add_argument("release", help="Name of the release")
        common.add_chart_flags(args)
        args.add_argument(
            "--namespace",
            "-n",
            default=DEFAULT_NAMESPACE,
            help="Namespace of the release",
        )
        args.add_argument(
            "--output",
            "-o",
            choices=OUTPUT_CHOICES,
            default=TEXT,
            help="Output format of the command",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        release: str,
        namespace: str,
        output: str,
        **kwargs,
    ) -> None:
        """Async Action implementation."""
        chart, values = await common.load_chart_values(**kwargs)
        orchestrator = ReleaseOrchestrator(InMemoryReleaseStore(), InMemoryCluster())
        resources = await orchestrator.template(release, chart, values, namespace)
        if output == TEXT:
            print(dump_resources(resources), end="")
        else:
            struct_formatter(output).print([resource.content for resource in resources])
