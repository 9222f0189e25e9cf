"""Composition root for testmux.

This module is the ONLY location that imports both core coordinator
logic and concrete adapter implementations. All wiring of dependencies
happens here, creating a clear entry point for the application.

Module Structure:
- Configuration loading via config module
- Category definitions and readiness checks from settings
- Adapter instantiation
- Dependency injection
- Entry point selection (single-shot or watch)
"""

import asyncio
import json
import logging
import shlex
import sys
from collections.abc import Sequence
from pathlib import Path

from testmux.adapters.build.command import CommandBuildAdapter
from testmux.adapters.cli.commands import CLICommandHandler, CLIOptions, parse_args
from testmux.adapters.discovery.glob import GlobDiscoveryAdapter
from testmux.adapters.process.spawner import AsyncioProcessSpawner
from testmux.adapters.sink.stream import CommandReportSink, StreamSink
from testmux.adapters.triggers.dev_server import DevServerChannelSource
from testmux.adapters.triggers.file_watcher import FileChangeSource
from testmux.config import Settings, load_settings
from testmux.core.discovery import CategoryDefinition, CategoryResolver
from testmux.core.errors import DiscoveryError, WatchChannelError
from testmux.core.models import (
    BuildConfig,
    CategoryKind,
    RunCategory,
    RunSummary,
    ServiceCheck,
)
from testmux.core.ports import SinkPort, TriggerSourcePort
from testmux.core.readiness import ReadinessProber
from testmux.core.run_service import RunCoordinator


def configure_logging(log_level: str, log_format: str) -> None:
    """Configure application logging.

    Logs go to stderr: stdout carries the merged report stream.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Log format (json, text).
    """
    level = getattr(logging, log_level, logging.INFO)

    if log_format == "json":
        format_str = '{"time": "%(asctime)s", "level": "%(levelname)s", "name": "%(name)s", "message": "%(message)s"}'
    else:
        format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.StreamHandler(sys.stderr),
        ],
        force=True,
    )


def build_category_definitions(settings: Settings) -> list[CategoryDefinition]:
    """Describe the three run categories from settings.

    Order matters: it is the order of the categories in the merged report.
    """
    client_root = Path(settings.client_root)
    server_root = Path(settings.server_root)
    return [
        CategoryDefinition(
            category_id="client",
            kind=CategoryKind.BUILD,
            root=client_root,
            pattern=settings.client_pattern,
            command=tuple(shlex.split(settings.client_test_binary)),
            build=BuildConfig(
                command=tuple(shlex.split(settings.client_build_command)),
                watch_paths=(client_root,),
            ),
        ),
        CategoryDefinition(
            category_id="server",
            kind=CategoryKind.BUILD,
            root=server_root,
            pattern=settings.server_pattern,
            command=tuple(shlex.split(settings.server_test_binary)),
            build=BuildConfig(
                command=tuple(shlex.split(settings.server_build_command)),
                watch_paths=(server_root,),
            ),
        ),
        CategoryDefinition(
            category_id="spec",
            kind=CategoryKind.SPEC,
            root=Path(settings.spec_root),
            pattern=settings.spec_pattern,
            command=tuple(shlex.split(settings.spec_runner_command)),
        ),
    ]


def build_service_checks(settings: Settings) -> list[ServiceCheck]:
    """Services probed before every spec run.

    The graph database and the dev server are required; the browser
    automation server is advisory only.
    """
    host = settings.readiness_host
    return [
        ServiceCheck(
            service_id="graph-database",
            port=settings.graph_db_port,
            host=host,
            required=True,
            remediation="Start the graph database before running specs.",
        ),
        ServiceCheck(
            service_id="dev-server",
            port=settings.dev_server_port,
            host=host,
            required=True,
            remediation="Start the development server before running specs.",
        ),
        ServiceCheck(
            service_id="browser-automation",
            port=settings.browser_automation_port,
            host=host,
            required=False,
            remediation="Start the browser automation server; browser specs will fail without it.",
        ),
    ]


def build_trigger_sources(
    settings: Settings, categories: Sequence[RunCategory]
) -> list[TriggerSourcePort]:
    """File watcher over the spec files plus the dev-server channel."""
    spec_files = [
        path
        for category in categories
        if category.kind is CategoryKind.SPEC
        for path in category.files
    ]
    return [
        FileChangeSource(spec_files),
        DevServerChannelSource(settings.dev_server_events_url),
    ]


async def bootstrap(options: CLIOptions) -> RunSummary | None:
    """Load configuration, wire adapters, and start the run.

    This is the composition root: the single place where all components
    are instantiated and wired together.

    Steps:
    1. Load configuration from environment
    2. Configure logging
    3. Resolve run categories from the input paths
    4. Instantiate adapters with configuration
    5. Start single-shot or watch mode

    Raises:
        DiscoveryError: If an input path is outside every test root.
        WatchChannelError: If the dev-server channel fails in watch mode.
    """
    # Step 1: Load configuration
    settings = load_settings(options.env_file)
    watch = options.watch or settings.watch

    # Step 2: Configure logging
    log_level = "DEBUG" if settings.debug else settings.log_level
    configure_logging(log_level, settings.log_format)
    logger = logging.getLogger(__name__)
    logger.info(f"Starting testmux ({'watch' if watch else 'single-shot'} mode)")

    # Step 3: Resolve categories
    resolver = CategoryResolver(
        build_category_definitions(settings), GlobDiscoveryAdapter()
    )
    categories = resolver.resolve(options.paths)

    # Step 4: Instantiate adapters
    diagnostics = StreamSink(sys.stderr.buffer)
    sink: SinkPort
    if settings.report_command:
        sink = CommandReportSink(settings.report_command)
        logger.info(f"Report command: {settings.report_command}")
    else:
        sink = StreamSink(sys.stdout.buffer)

    coordinator = RunCoordinator(
        categories=categories,
        sink=sink,
        diagnostics=diagnostics,
        builder=CommandBuildAdapter(output=diagnostics),
        spawner=AsyncioProcessSpawner(),
        prober=ReadinessProber(default_host=settings.readiness_host),
        services=build_service_checks(settings),
        trigger_sources=build_trigger_sources(settings, categories) if watch else (),
        test_files_env_var=settings.test_files_env_var,
        test_files_delimiter=settings.test_files_delimiter,
        build_watch_interval_ms=settings.build_watch_interval_ms,
        debounce_seconds=settings.watch_debounce_ms / 1000,
        heartbeat_payload=settings.heartbeat_payload,
    )

    # Step 5: Run
    cli_handler = CLICommandHandler(coordinator)
    summary = await cli_handler.run(watch=watch)
    if summary is not None:
        logger.info(json.dumps(CLICommandHandler.format_summary(summary)))
    return summary


def main(argv: Sequence[str] | None = None) -> None:
    """Application entry point.

    Exit codes:
        0: Run finished (test failures do not change the exit code)
        1: Watch channel failure, discovery error or other fatal error
        130: Interrupted by user (SIGINT/KeyboardInterrupt)
    """
    options = parse_args(argv)
    logger = logging.getLogger(__name__)
    try:
        asyncio.run(bootstrap(options))
    except KeyboardInterrupt:
        logger.warning("Shutdown requested by user (SIGINT)")
        sys.exit(130)
    except WatchChannelError as e:
        logger.error(f"Watch mode stopped: {e}")
        sys.exit(1)
    except DiscoveryError as e:
        logger.error(f"Discovery failed: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
