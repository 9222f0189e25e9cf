"""Integration tests for the composition root.

These tests verify that the bootstrap process correctly loads configuration,
builds the category and readiness definitions, wires the adapters, and maps
fatal errors onto exit codes.
"""

import asyncio
import os
import shlex
import sys
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from testmux.adapters.cli.commands import CLIOptions
from testmux.adapters.triggers.dev_server import DevServerChannelSource
from testmux.adapters.triggers.file_watcher import FileChangeSource
from testmux.config import load_settings
from testmux.core.errors import DiscoveryError, WatchChannelError
from testmux.core.models import CategoryKind, RunCategory
from testmux.main import (
    bootstrap,
    build_category_definitions,
    build_service_checks,
    build_trigger_sources,
    main,
)


class TestConfigurationLoading:
    """Test configuration loading and validation."""

    def test_load_settings_with_defaults(self) -> None:
        """Load settings with default values."""
        settings = load_settings()
        assert settings.watch is False
        assert settings.watch_debounce_ms == 500
        assert settings.graph_db_port == 7474
        assert settings.heartbeat_payload == "heartbeat"
        assert settings.test_files_delimiter == ","
        assert settings.log_level == "INFO"

    def test_load_settings_from_env(self) -> None:
        """Load settings from environment variables."""
        with patch.dict(
            os.environ,
            {
                "WATCH": "true",
                "WATCH_DEBOUNCE_MS": "250",
                "SPEC_RUNNER_COMMAND": "npx mocha --reporter tap",
                "LOG_LEVEL": "DEBUG",
            },
        ):
            settings = load_settings()
            assert settings.watch is True
            assert settings.watch_debounce_ms == 250
            assert settings.spec_runner_command == "npx mocha --reporter tap"
            assert settings.log_level == "DEBUG"

    def test_load_settings_from_env_file(self, tmp_path: Path) -> None:
        env_file = tmp_path / "ci.env"
        env_file.write_text("DEV_SERVER_PORT=8080\nHEARTBEAT_PAYLOAD=ping\n")

        settings = load_settings(str(env_file))

        assert settings.dev_server_port == 8080
        assert settings.heartbeat_payload == "ping"

    @pytest.mark.parametrize(
        "name,value",
        [
            ("WATCH_DEBOUNCE_MS", "0"),
            ("BUILD_WATCH_INTERVAL_MS", "-5"),
            ("GRAPH_DB_PORT", "70000"),
            ("TEST_FILES_DELIMITER", ""),
            ("SPEC_RUNNER_COMMAND", "   "),
        ],
    )
    def test_load_settings_rejects_invalid_values(self, name: str, value: str) -> None:
        with patch.dict(os.environ, {name: value}):
            with pytest.raises(Exception):  # ValidationError
                load_settings()


class TestDefinitions:
    """Category, readiness and trigger wiring from settings."""

    def test_category_definitions_order_and_kinds(self) -> None:
        with patch.dict(os.environ, {"CLIENT_BUILD_COMMAND": "make -C web client-tests"}):
            definitions = build_category_definitions(load_settings())

        assert [d.category_id for d in definitions] == ["client", "server", "spec"]
        assert [d.kind for d in definitions] == [
            CategoryKind.BUILD,
            CategoryKind.BUILD,
            CategoryKind.SPEC,
        ]
        client = definitions[0]
        assert client.build is not None
        assert client.build.command == ("make", "-C", "web", "client-tests")
        assert client.build.watch_paths == (Path("tests/client"),)
        assert definitions[2].build is None

    def test_service_checks_required_and_advisory(self) -> None:
        with patch.dict(os.environ, {"READINESS_HOST": "db.local"}):
            checks = build_service_checks(load_settings())

        assert [(c.service_id, c.port, c.required) for c in checks] == [
            ("graph-database", 7474, True),
            ("dev-server", 3000, True),
            ("browser-automation", 4444, False),
        ]
        assert {c.host for c in checks} == {"db.local"}
        assert all(c.remediation for c in checks)

    def test_trigger_sources_watch_spec_files(self) -> None:
        spec = RunCategory(
            category_id="spec",
            kind=CategoryKind.SPEC,
            root=Path("tests/specs"),
            files=(Path("tests/specs/a.spec.js"),),
            command=("spec-runner",),
        )

        sources = build_trigger_sources(load_settings(), [spec])

        assert isinstance(sources[0], FileChangeSource)
        assert sources[0].watcher.files == frozenset({os.path.abspath("tests/specs/a.spec.js")})
        assert isinstance(sources[1], DevServerChannelSource)
        assert sources[1].url == "http://localhost:3000/__events"


class TestBootstrap:
    """End-to-end single-shot run through real adapters."""

    @pytest.mark.asyncio
    async def test_single_shot_spec_run_reaches_report_command(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        spec_root = tmp_path / "specs"
        spec_root.mkdir()
        (spec_root / "login.spec.js").write_text("")
        report = tmp_path / "report.txt"

        server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]

        monkeypatch.setenv("TESTMUX_TEST_FILES", "")
        monkeypatch.setenv("CLIENT_ROOT", str(tmp_path / "client"))
        monkeypatch.setenv("SERVER_ROOT", str(tmp_path / "server"))
        monkeypatch.setenv("SPEC_ROOT", str(spec_root))
        monkeypatch.setenv("READINESS_HOST", "127.0.0.1")
        monkeypatch.setenv("GRAPH_DB_PORT", str(port))
        monkeypatch.setenv("DEV_SERVER_PORT", str(port))
        monkeypatch.setenv(
            "SPEC_RUNNER_COMMAND",
            shlex.join([sys.executable, "-c", "import sys; print('ran', len(sys.argv) - 1)"]),
        )
        monkeypatch.setenv(
            "REPORT_COMMAND",
            shlex.join([
                sys.executable,
                "-c",
                f"import sys; open({str(report)!r}, 'wb').write(sys.stdin.buffer.read())",
            ]),
        )

        try:
            summary = await bootstrap(CLIOptions(watch=False, paths=()))
        finally:
            server.close()
            await server.wait_closed()

        assert summary is not None
        assert summary.categories_run == ("spec",)
        assert set(summary.categories_skipped) == {"client", "server"}
        assert dict(summary.exit_codes) == {"spec": (0,)}
        assert report.read_bytes() == b"ran 1\n"


class TestExitCodes:
    """main() maps fatal errors onto process exit codes."""

    @pytest.mark.parametrize(
        "error",
        [DiscoveryError("docs is not under any test root"), WatchChannelError("closed"), RuntimeError("boom")],
    )
    def test_fatal_errors_exit_1(self, error: Exception) -> None:
        with patch("testmux.main.bootstrap", AsyncMock(side_effect=error)):
            with pytest.raises(SystemExit) as exc_info:
                main([])
        assert exc_info.value.code == 1

    def test_interrupt_exits_130(self) -> None:
        with patch("testmux.main.bootstrap", AsyncMock(side_effect=KeyboardInterrupt)):
            with pytest.raises(SystemExit) as exc_info:
                main(["--watch"])
        assert exc_info.value.code == 130

    def test_successful_run_returns_normally(self) -> None:
        bootstrap_mock = AsyncMock(return_value=None)
        with patch("testmux.main.bootstrap", bootstrap_mock):
            main(["-w", "tests/specs"])

        options = bootstrap_mock.await_args.args[0]
        assert options == CLIOptions(watch=True, paths=("tests/specs",))
