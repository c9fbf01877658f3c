"""helm-reconciler history action."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast

from helm_reconciler.exceptions import ReleaseNotFound

from . import common
from .format import TEXT, PrintFormatter, struct_formatter

_LOGGER = logging.getLogger(__name__)

COLUMNS = ["revision", "updated", "status", "chart", "description"]


class HistoryAction:
    """Print the revision history of a release."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "history",
                help="Print the revision history of a release",
                description="Print the revisions of a release, most recent first.",
            ),
        )
        args.add_argument("release", help="Name of the release")
        args.add_argument(
            "--max",
            dest="limit",
            type=int,
            default=None,
            help="Maximum number of revisions to print",
        )
        common.add_release_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        release: str,
        namespace: str,
        output: str,
        limit: int | None,
        **kwargs,
    ) -> None:
        """Async Action implementation."""
        orchestrator = common.build_orchestrator(**kwargs)
        current = await orchestrator.store.get_release(release, namespace)
        if current is None:
            raise ReleaseNotFound(f"{namespace}/{release}")
        revisions = await orchestrator.history(release, namespace, limit)
        rows = [common.revision_dict(current, revision) for revision in revisions]
        if output == TEXT:
            PrintFormatter(COLUMNS).print(rows)
        else:
            struct_formatter(output).print(rows)
