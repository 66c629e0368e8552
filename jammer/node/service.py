"""
Service control for the node process.

The running/stopped state belongs to the service manager. This module only
issues requests and reads the state back.
"""

from __future__ import annotations

import logging
import subprocess
from enum import Enum
from typing import Protocol

from jammer.errors import DependencyMissing, ServiceControlError

logger = logging.getLogger(__name__)


class ServiceState(str, Enum):
    """Externally owned state of the node service."""

    ACTIVE = "active"
    TRANSITIONING = "transitioning"
    INACTIVE = "inactive"


# systemctl is-active output -> ServiceState; anything else is INACTIVE
_SYSTEMD_STATES = {
    "active": ServiceState.ACTIVE,
    "activating": ServiceState.TRANSITIONING,
    "deactivating": ServiceState.TRANSITIONING,
    "reloading": ServiceState.TRANSITIONING,
    "refreshing": ServiceState.TRANSITIONING,
}


class ServiceControl(Protocol):
    """Protocol for service manager backends."""

    def stop(self, name: str) -> None:
        ...

    def start(self, name: str) -> None:
        ...

    def state(self, name: str) -> ServiceState:
        ...


def is_active(control: ServiceControl, name: str) -> bool:
    return control.state(name) == ServiceState.ACTIVE


class SystemdServiceControl:
    """ServiceControl backed by systemctl."""

    def __init__(self, systemctl: str = "systemctl", timeout: float | None = None):
        """
        Initialize the systemd backend.

        Args:
            systemctl: systemctl executable.
            timeout: Per-call timeout in seconds. None waits for systemctl.
        """
        self.systemctl = systemctl
        self.timeout = timeout

    def stop(self, name: str) -> None:
        self._request("stop", name)

    def start(self, name: str) -> None:
        self._request("start", name)

    def state(self, name: str) -> ServiceState:
        result = self._run(["is-active", name])
        return _SYSTEMD_STATES.get(result.stdout.strip(), ServiceState.INACTIVE)

    def _request(self, action: str, name: str) -> None:
        result = self._run([action, name])
        if result.returncode != 0:
            raise ServiceControlError(
                f"systemctl {action} failed",
                service=name,
                returncode=result.returncode,
                stderr=result.stderr.strip(),
            )

    def _run(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        try:
            return subprocess.run(
                [self.systemctl, *args],
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise DependencyMissing("systemctl not found", systemctl=self.systemctl) from e
        except subprocess.TimeoutExpired as e:
            raise ServiceControlError(
                "systemctl did not return in time", args=args, timeout=self.timeout
            ) from e
