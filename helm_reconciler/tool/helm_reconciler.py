"""Command line tool for installing, upgrading and rolling back chart releases."""

import argparse
import asyncio
import logging
import sys
import traceback
from typing import Any

import yaml

from helm_reconciler.exceptions import ReconcilerException
from . import diff, history, install, rollback, status, template, uninstall, upgrade

_LOGGER = logging.getLogger(__name__)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="helm-reconciler",
        description="Command line utility for managing chart releases on a cluster.",
    )
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    install.InstallAction.register(subparsers)
    upgrade.UpgradeAction.register(subparsers)
    rollback.RollbackAction.register(subparsers)
    uninstall.UninstallAction.register(subparsers)
    history.HistoryAction.register(subparsers)
    status.StatusAction.register(subparsers)
    status.ListAction.register(subparsers)
    template.TemplateAction.register(subparsers)
    diff.DiffAction.register(subparsers)
    return parser


def main(argv: list[str] | None = None) -> None:
    """helm-reconciler command line tool main entry point."""

    def str_presenter(dumper: yaml.Dumper, data: Any) -> Any:
        """Represent multi-line strings as literal blocks."""
        style = "|" if "\n" in data else None
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style=style)

    yaml.add_representer(str, str_presenter)

    parser = _make_parser()
    args = parser.parse_args(argv)

    if args.log_level:
        logging.basicConfig(level=args.log_level)

    action = args.cls()
    try:
        asyncio.run(action.run(**vars(args)))
    except ReconcilerException as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("helm-reconciler error:", err, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
