"""helm-reconciler uninstall action."""

import logging
from argparse import (
    ArgumentParser,
    BooleanOptionalAction,
    _SubParsersAction as SubParsersAction,
)
from typing import cast

from . import common

_LOGGER = logging.getLogger(__name__)


class UninstallAction:
    """Delete every resource of a release."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "uninstall",
                aliases=["delete"],
                help="Uninstall a release",
                description="Delete the resources of a release in reverse install order.",
            ),
        )
        args.add_argument("release", help="Name of the release")
        args.add_argument(
            "--keep-history",
            action=BooleanOptionalAction,
            default=True,
            help="Keep the revision history of the uninstalled release",
        )
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
        keep_history: bool,
        **kwargs,
    ) -> None:
        """Async Action implementation."""
        orchestrator = common.build_orchestrator(**kwargs)
        result = await orchestrator.uninstall(
            release, namespace, keep_history=keep_history, dry_run=dry_run
        )
        common.print_result("uninstalled", result, output, dry_run=dry_run)
        if result.error is not None:
            raise result.error
