"""Custom exception hierarchy for the watch controller.

This module provides a structured exception hierarchy that enables:
- Consistent error handling across the controller
- Rich error context for debugging
- Separation of startup faults (config, plugins) from runtime faults (engine)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class WatchControllerError(Exception):
    """Base exception for all watch controller errors.

    Attributes:
        message: Human-readable error description.
        context: Additional context for debugging.
        timestamp: When the error occurred.
    """

    def __init__(
        self,
        message: str,
        *,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.now()
        self.cause = cause
        super().__init__(message)

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigError(WatchControllerError):
    """Base class for configuration-related errors."""

    pass


class ConfigLoadError(ConfigError):
    """Raised when a configuration file fails to load."""

    def __init__(
        self,
        message: str = "Failed to load configuration",
        *,
        file_path: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if file_path:
            ctx["file_path"] = file_path
        super().__init__(message, context=ctx, cause=cause)


class ConfigValidationError(ConfigError):
    """Raised when configuration values are invalid."""

    def __init__(
        self,
        message: str = "Configuration validation failed",
        *,
        field: str | None = None,
        value: Any = None,
        expected: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if field:
            ctx["field"] = field
        if value is not None:
            ctx["value"] = str(value)[:100]  # Truncate long values
        if expected:
            ctx["expected"] = expected
        super().__init__(message, context=ctx, cause=cause)


# =============================================================================
# Plugin Errors
# =============================================================================


class PluginError(WatchControllerError):
    """Base class for watch plugin errors."""

    pass


class PluginLoadError(PluginError):
    """Raised when a configured plugin identifier cannot be resolved."""

    def __init__(
        self,
        message: str = "Failed to load watch plugin",
        *,
        plugin_path: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if plugin_path:
            ctx["plugin_path"] = plugin_path
        super().__init__(message, context=ctx, cause=cause)


class PluginValidationError(PluginError):
    """Raised when a loaded plugin does not satisfy the plugin contract."""

    def __init__(
        self,
        message: str = "Watch plugin is invalid",
        *,
        plugin_path: str | None = None,
        key: int | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if plugin_path:
            ctx["plugin_path"] = plugin_path
        if key is not None:
            ctx["key"] = chr(key) if 0 <= key < 0x110000 else key
        super().__init__(message, context=ctx, cause=cause)


# =============================================================================
# Modality Errors
# =============================================================================


class ModalityError(WatchControllerError):
    """Base class for input modality errors."""

    pass


class InvalidModalityTransitionError(ModalityError):
    """Raised when a modality is entered while another one is active."""

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(
            f"Cannot enter {requested} while {current} is active",
            context={"current": current, "requested": requested},
        )


# =============================================================================
# Engine Errors
# =============================================================================


class EngineError(WatchControllerError):
    """Base class for test execution engine errors."""

    pass


class EngineFaultError(EngineError):
    """Raised when the execution engine fails (not a test failure)."""

    def __init__(
        self,
        message: str = "Test execution engine failed",
        *,
        run_id: int | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if run_id is not None:
            ctx["run_id"] = run_id
        super().__init__(message, context=ctx, cause=cause)


class EngineLaunchError(EngineError):
    """Raised when the test command cannot be started."""

    def __init__(
        self,
        message: str = "Failed to start test command",
        *,
        command: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if command:
            ctx["command"] = command
        super().__init__(message, context=ctx, cause=cause)


# =============================================================================
# Changed Files Errors
# =============================================================================


class ChangedFilesError(WatchControllerError):
    """Raised when the changed-files computation fails."""

    def __init__(
        self,
        message: str = "Failed to compute changed files",
        *,
        root: str | None = None,
        returncode: int | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if root:
            ctx["root"] = root
        if returncode is not None:
            ctx["returncode"] = returncode
        super().__init__(message, context=ctx, cause=cause)


# =============================================================================
# Error Registry for Categorization
# =============================================================================


@dataclass
class ErrorStats:
    """Track error statistics for monitoring."""

    total_count: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
    recent_errors: list[tuple[datetime, str, str]] = field(default_factory=list)
    max_recent: int = 100

    def record(self, error: Exception) -> None:
        """Record an error occurrence."""
        self.total_count += 1
        type_name = type(error).__name__
        self.by_type[type_name] = self.by_type.get(type_name, 0) + 1

        self.recent_errors.append((datetime.now(), type_name, str(error)[:200]))
        if len(self.recent_errors) > self.max_recent:
            self.recent_errors.pop(0)

    def reset(self) -> None:
        """Forget all recorded errors."""
        self.total_count = 0
        self.by_type.clear()
        self.recent_errors.clear()


# Global error stats tracker
error_stats = ErrorStats()


def record_error(error: Exception) -> None:
    """Record an error to global stats."""
    error_stats.record(error)
