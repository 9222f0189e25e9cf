"""CLI surface for testmux.

Parses the single watch flag and the positional test paths, and maps
the chosen mode onto RunPort operations.
"""

import argparse
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from testmux.core.models import RunSummary
from testmux.core.ports import RunPort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CLIOptions:
    """Parsed command line."""

    watch: bool
    paths: tuple[str, ...]
    env_file: str | None = None


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="testmux",
        description=(
            "Build and run client, server and spec tests, merging their "
            "output into one ordered report stream."
        ),
    )
    parser.add_argument(
        "-w",
        "--watch",
        action="store_true",
        help="re-run tests when sources or the dev server change",
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="load settings from this .env file",
    )
    parser.add_argument(
        "paths",
        nargs="*",
        help="test files or directories (default: every test root)",
    )
    return parser


def parse_args(argv: Sequence[str] | None = None) -> CLIOptions:
    """Parse command-line arguments."""
    namespace = build_parser().parse_args(argv)
    return CLIOptions(
        watch=namespace.watch,
        paths=tuple(namespace.paths),
        env_file=namespace.env_file,
    )


class CLICommandHandler:
    """Handles the CLI run command by delegating to RunPort."""

    def __init__(self, runner: RunPort):
        """Initialize the CLI command handler.

        Args:
            runner: RunPort implementation executing the runs.
        """
        self.runner = runner

    async def run(self, watch: bool = False) -> RunSummary | None:
        """Run once, or watch until cancelled.

        Returns:
            The RunSummary of a single-shot run; None in watch mode.

        Raises:
            WatchChannelError: If the dev-server channel fails in watch mode.
        """
        if watch:
            logger.info("Starting watch mode")
            await self.runner.execute_watch()
            return None

        summary = await self.runner.execute_once()
        return summary

    @staticmethod
    def format_summary(summary: RunSummary) -> dict[str, Any]:
        """Render a RunSummary as a plain dictionary for logging."""
        return {
            "ran": list(summary.categories_run),
            "skipped": dict(summary.categories_skipped),
            "exit_codes": {k: list(v) for k, v in summary.exit_codes.items()},
        }
