"""
Error taxonomy for the jammer tool.

Every fatal failure is a JammerError carrying a stable code and the
process exit code the CLI should use for it.
"""

from __future__ import annotations

from typing import Any


class JammerError(Exception):
    """Base class for all jammer failures."""

    code = "JAMMER_ERROR"
    exit_code = 1

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if not self.context:
            return self.message
        ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
        return f"{self.message} ({ctx})"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {"code": self.code, "message": self.message, **self.context}


class UsageError(JammerError):
    code = "USAGE"


class ConfigError(JammerError):
    code = "CONFIG_INVALID"


class DependencyMissing(JammerError):
    """A required external tool or hash algorithm is not available."""

    code = "DEPENDENCY_MISSING"


class RpcUnavailable(JammerError):
    """The node's control interface could not be reached or returned an error."""

    code = "RPC_UNAVAILABLE"


class RpcParseError(JammerError):
    """The node answered but no block height could be read from the reply."""

    code = "RPC_PARSE_ERROR"


class ExportFailed(JammerError):
    code = "EXPORT_FAILED"


class NoFilesFound(JammerError):
    code = "NO_FILES_FOUND"


class ManifestNotFound(JammerError):
    code = "MANIFEST_NOT_FOUND"


class ManifestUnreadable(JammerError):
    """The manifest exists but could not be read."""

    code = "MANIFEST_UNREADABLE"


class ServiceControlError(JammerError):
    """The service manager rejected or could not run a control request."""

    code = "SERVICE_CONTROL"


class TransitionTimeout(JammerError):
    """The service did not reach the requested state within the deadline."""

    code = "TRANSITION_TIMEOUT"


class GuardBusy(JammerError):
    """Another invocation holds the lifecycle lock."""

    code = "GUARD_BUSY"
