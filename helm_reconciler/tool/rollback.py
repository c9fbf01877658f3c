"""helm-reconciler rollback action."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast

from . import common

_LOGGER = logging.getLogger(__name__)


class RollbackAction:
    """Roll a release back to a previous revision."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "rollback",
                help="Roll back a release",
                description=(
                    "Re-apply the manifests of an earlier revision as a new revision. "
                    "Without a revision the previous deployed revision is restored."
                ),
            ),
        )
        args.add_argument("release", help="Name of the release")
        args.add_argument(
            "revision",
            type=int,
            nargs="?",
            default=None,
            help="Revision number to roll back to",
        )
        common.add_release_flags(args)
        common.add_apply_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        release: str,
        revision: int | None,
        namespace: str,
        output: str,
        dry_run: bool,
        **kwargs,
    ) -> None:
        """Async Action implementation."""
        orchestrator = common.build_orchestrator(**kwargs)
        result = await orchestrator.rollback(
            release, revision, namespace, dry_run=dry_run
        )
        common.print_result("rolled back", result, output, dry_run=dry_run)
        if result.error is not None:
            raise result.error
