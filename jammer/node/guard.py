"""
Service lifecycle guard.

Stops the node service, runs an operation while it is down, and restarts
the service on every way out of the guarded scope: normal return, raised
error, Ctrl-C, SIGTERM or SIGHUP.

Polling has no deadline unless transition_timeout is set; a service that
never reaches the requested state keeps the guard waiting.
"""

from __future__ import annotations

import logging
import signal
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from types import FrameType
from typing import Any, TypeVar

from filelock import FileLock, Timeout

from jammer.errors import GuardBusy, TransitionTimeout
from jammer.node.service import ServiceControl, ServiceState

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TerminationRequested(BaseException):
    """Raised inside the guarded scope when SIGTERM or SIGHUP arrives."""

    def __init__(self, signum: int):
        super().__init__(f"Received signal {signum}")
        self.signum = signum


@dataclass
class StopToken:
    """
    Per-invocation record of whether this guard stopped the service.

    Only the invocation holding a token with stopped_by_us set owes a
    restart, and it pays it at most once.
    """

    service_name: str
    stopped_by_us: bool = False
    released: bool = False

    @property
    def owes_restart(self) -> bool:
        return self.stopped_by_us and not self.released


class _TerminationSignals:
    """
    Converts termination signals into TerminationRequested while active.

    After defer() is called, signals (SIGINT included) are recorded instead
    of raised so a restart in progress is not cut short.
    """

    RAISING = ("SIGTERM", "SIGHUP")

    def __init__(self) -> None:
        self.deferring = False
        self.pending: int | None = None
        self._previous: dict[int, Any] = {}
        self._enabled = threading.current_thread() is threading.main_thread()

    def __enter__(self) -> _TerminationSignals:
        if self._enabled:
            for name in self.RAISING:
                if hasattr(signal, name):
                    self._install(getattr(signal, name))
        return self

    def __exit__(self, *exc_info: Any) -> None:
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()

    def defer(self) -> None:
        self.deferring = True
        if self._enabled:
            self._install(signal.SIGINT)

    def _install(self, signum: int) -> None:
        if signum not in self._previous:
            self._previous[signum] = signal.signal(signum, self._handle)

    def _handle(self, signum: int, frame: FrameType | None) -> None:
        if self.deferring:
            logger.warning("Signal %d received during restart; finishing restart first", signum)
            self.pending = signum
            return
        raise TerminationRequested(signum)


class LifecycleGuard:
    """
    Stop/run/restart wrapper around an external service.

    There is no cross-process exclusion unless lock_file is given; two
    guards on the same service can otherwise interleave their requests.
    """

    def __init__(
        self,
        control: ServiceControl,
        service_name: str,
        poll_interval: float = 1.0,
        transition_timeout: float | None = None,
        lock_file: Path | None = None,
        lock_timeout: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the guard.

        Args:
            control: Service manager backend.
            service_name: Service to stop and restart.
            poll_interval: Seconds between state polls.
            transition_timeout: Optional deadline per transition. None polls forever.
            lock_file: Optional advisory lock held for the whole guarded scope.
            lock_timeout: Seconds to wait for the lock.
            sleep: Sleep function used between polls.
            clock: Monotonic clock used for the deadline.
        """
        self.control = control
        self.service_name = service_name
        self.poll_interval = poll_interval
        self.transition_timeout = transition_timeout
        self.lock_file = lock_file
        self.lock_timeout = lock_timeout
        self._sleep = sleep
        self._clock = clock

    def run(self, operation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Run operation with the service stopped.

        Args:
            operation: Callable to run while the service is down.
            *args: Positional arguments for operation.
            **kwargs: Keyword arguments for operation.

        Returns:
            The operation's result. Its exception, if any, is re-raised
            after the restart step.
        """
        with self.engaged():
            return operation(*args, **kwargs)

    @contextmanager
    def engaged(self) -> Iterator[StopToken]:
        """Context manager form of run(); yields this invocation's StopToken."""
        with self._lock():
            with _TerminationSignals() as signals:
                token = self.stop()
                try:
                    yield token
                finally:
                    signals.defer()
                    self.restart(token)

            if signals.pending is not None:
                raise TerminationRequested(signals.pending)

    def stop(self) -> StopToken:
        """
        Request a stop and wait until the service reports inactive.

        The token is marked only once the stop is confirmed.
        """
        token = StopToken(service_name=self.service_name)

        logger.info("Stopping service: %s", self.service_name)
        self.control.stop(self.service_name)
        self.wait_for(ServiceState.INACTIVE)

        token.stopped_by_us = True
        logger.info("Service stopped: %s", self.service_name)
        return token

    def restart(self, token: StopToken) -> None:
        """
        Restart the service if token says this invocation stopped it.

        Never raises an Exception: failures are logged so the caller sees
        the guarded operation's own outcome.
        """
        logger.debug(
            "Restart check for %s (stopped_by_us=%s, released=%s)",
            token.service_name,
            token.stopped_by_us,
            token.released,
        )
        if not token.owes_restart:
            return
        token.released = True

        try:
            logger.info("Starting service: %s", token.service_name)
            self.control.start(token.service_name)
            self.wait_for(ServiceState.ACTIVE)
            logger.info("Service active: %s", token.service_name)
        except Exception as e:
            logger.error("Failed to restart service %s: %s", token.service_name, e)

    def wait_for(self, target: ServiceState) -> int:
        """
        Poll the service until it reports target.

        Args:
            target: State to wait for.

        Returns:
            Number of polls that saw another state.

        Raises:
            TransitionTimeout: If transition_timeout is set and expires.
        """
        deadline = (
            None
            if self.transition_timeout is None
            else self._clock() + self.transition_timeout
        )
        polls = 0

        while True:
            current = self.control.state(self.service_name)
            if current == target:
                return polls

            if deadline is not None and self._clock() >= deadline:
                raise TransitionTimeout(
                    "Service did not reach requested state",
                    service=self.service_name,
                    target=target.value,
                    last_state=current.value,
                    timeout=self.transition_timeout,
                )

            polls += 1
            if polls == 1 or polls % 60 == 0:
                logger.debug(
                    "Waiting for %s to become %s (currently %s)",
                    self.service_name,
                    target.value,
                    current.value,
                )
            self._sleep(self.poll_interval)

    @contextmanager
    def _lock(self) -> Iterator[None]:
        if self.lock_file is None:
            yield
            return

        self.lock_file.parent.mkdir(parents=True, exist_ok=True)
        lock = FileLock(str(self.lock_file), timeout=self.lock_timeout)
        try:
            lock.acquire()
        except Timeout as e:
            raise GuardBusy(
                "Another invocation holds the lifecycle lock",
                lock_file=str(self.lock_file),
            ) from e
        try:
            yield
        finally:
            lock.release()
