"""Configuration loading for testmux.

This module provides centralized configuration management:
- Load settings from environment variables and .env files
- Validate configuration using pydantic
- Provide typed access to all settings
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment.

    Uses pydantic-settings for environment variable handling with
    .env file support via python-dotenv.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Run mode
    watch: bool = Field(
        default=False,
        description="Re-run tests on changes instead of running once",
    )
    watch_debounce_ms: int = Field(
        default=500,
        description="Quiet window collapsing bursts of watch triggers",
    )
    build_watch_interval_ms: int = Field(
        default=1000,
        description="Aggregation window for source changes in watch builds",
    )

    # Client unit tests (build-based)
    client_root: str = Field(
        default="tests/client",
        description="Discovery root for client unit tests",
    )
    client_pattern: str = Field(
        default="**/*.test.*",
        description="Glob pattern for client unit test files",
    )
    client_build_command: str = Field(
        default="make client-tests",
        description="Build command producing the client test binary",
    )
    client_test_binary: str = Field(
        default="build/client-tests",
        description="Client test binary run after each successful build",
    )

    # Server unit tests (build-based)
    server_root: str = Field(
        default="tests/server",
        description="Discovery root for server unit tests",
    )
    server_pattern: str = Field(
        default="**/*.test.*",
        description="Glob pattern for server unit test files",
    )
    server_build_command: str = Field(
        default="make server-tests",
        description="Build command producing the server test binary",
    )
    server_test_binary: str = Field(
        default="build/server-tests",
        description="Server test binary run after each successful build",
    )

    # Interpreted spec files
    spec_root: str = Field(
        default="tests/specs",
        description="Discovery root for spec files",
    )
    spec_pattern: str = Field(
        default="**/*.spec.*",
        description="Glob pattern for spec files",
    )
    spec_runner_command: str = Field(
        default="spec-runner",
        description="Runner command receiving the spec file list as arguments",
    )

    # Dependent services probed before spec runs
    readiness_host: str = Field(
        default="localhost",
        description="Host the dependent services listen on",
    )
    graph_db_port: int = Field(
        default=7474,
        description="Graph database port (required for spec runs)",
    )
    dev_server_port: int = Field(
        default=3000,
        description="Development server port (required for spec runs)",
    )
    browser_automation_port: int = Field(
        default=4444,
        description="Browser automation server port (advisory)",
    )

    # Dev-server notification channel (watch mode)
    dev_server_events_url: str = Field(
        default="http://localhost:3000/__events",
        description="Streaming endpoint pushing one notification per line",
    )
    heartbeat_payload: str = Field(
        default="heartbeat",
        description="Notification payload that never triggers a run",
    )

    # Environment contract with the build tool
    test_files_env_var: str = Field(
        default="TESTMUX_TEST_FILES",
        description="Environment variable receiving the test file list",
    )
    test_files_delimiter: str = Field(
        default=",",
        description="Delimiter joining the published test file names",
    )

    # Report stage
    report_command: str = Field(
        default="",
        description="Reporter command consuming the merged stream (empty = stdout)",
    )

    # Logging configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log format",
    )

    # Development
    debug: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging",
    )

    @field_validator("watch_debounce_ms", "build_watch_interval_ms")
    @classmethod
    def validate_positive_interval(cls, v: int) -> int:
        """Ensure timing windows are positive."""
        if v <= 0:
            raise ValueError("interval must be positive")
        return v

    @field_validator("graph_db_port", "dev_server_port", "browser_automation_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Ensure service ports are in valid range."""
        if v <= 0 or v > 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("test_files_delimiter")
    @classmethod
    def validate_delimiter(cls, v: str) -> str:
        """Ensure the file list delimiter is not empty."""
        if not v:
            raise ValueError("test_files_delimiter must not be empty")
        return v

    @field_validator(
        "client_build_command",
        "client_test_binary",
        "server_build_command",
        "server_test_binary",
        "spec_runner_command",
    )
    @classmethod
    def validate_command(cls, v: str) -> str:
        """Ensure commands are not blank."""
        if not v.strip():
            raise ValueError("command must not be blank")
        return v


def load_settings(env_file: str | None = None) -> Settings:
    """Load application settings from environment.

    Args:
        env_file: Optional path to .env file. If not provided,
                 uses the default .env in the current directory.

    Returns:
        Validated Settings instance.

    Raises:
        ValidationError: If settings validation fails.
    """
    if env_file:
        return Settings(_env_file=env_file)  # type: ignore[call-arg]
    return Settings()


__all__ = ["Settings", "load_settings"]
