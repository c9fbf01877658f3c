"""helm-reconciler status and list actions."""

import logging
from argparse import (
    ArgumentParser,
    BooleanOptionalAction,
    _SubParsersAction as SubParsersAction,
)
from typing import Any, cast

from . import common
from .format import TEXT, PrintFormatter, struct_formatter

_LOGGER = logging.getLogger(__name__)


class StatusAction:
    """Print the status of a release."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "status",
                help="Print the status of a release",
                description="Print the status of a release and its deployed resources.",
            ),
        )
        args.add_argument("release", help="Name of the release")
        common.add_release_flags(args)
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
        orchestrator = common.build_orchestrator(**kwargs)
        current = await orchestrator.status(release, namespace)
        deployed = await orchestrator.store.get_deployed(release, namespace)
        resources = [str(resource.identity) for resource in deployed.resources] if deployed else []
        if output != TEXT:
            data = current.to_dict()
            data["resources"] = resources
            struct_formatter(output).print(data)
            return
        print(f"NAME: {current.name}")
        print(f"NAMESPACE: {current.namespace}")
        print(f"STATUS: {current.status}")
        print(f"REVISION: {current.revision}")
        print(f"DEPLOYED REVISION: {current.deployed or '-'}")
        if resources:
            print("RESOURCES:")
            for resource in resources:
                print(f"  {resource}")


class ListAction:
    """Print every known release."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "list",
                aliases=["ls"],
                help="List releases",
                description="Print the releases in the release store.",
            ),
        )
        common.add_release_flags(args)
        args.add_argument(
            "--all-namespaces",
            "-A",
            action=BooleanOptionalAction,
            default=False,
            help="List releases across all namespaces",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        namespace: str,
        output: str,
        all_namespaces: bool,
        **kwargs,
    ) -> None:
        """Async Action implementation."""
        orchestrator = common.build_orchestrator(**kwargs)
        releases = await orchestrator.list_releases(
            None if all_namespaces else namespace
        )
        rows: list[dict[str, Any]] = [
            {
                "namespace": release.namespace,
                "name": release.name,
                "revision": release.revision,
                "status": str(release.status),
                "deployed": release.deployed,
            }
            for release in releases
        ]
        if output == TEXT:
            PrintFormatter(["namespace", "name", "revision", "status", "deployed"]).print(rows)
        else:
            struct_formatter(output).print(rows)
