"""Readiness detection for freshly spawned backends."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional, Sequence

import requests

from ..utils.logging import get_logger
from .models import ProcessHandle

logger = get_logger(__name__)


class Readiness(Enum):
    READY = "ready"          # Positive signal observed
    ASSUMED = "assumed"      # No signal, but still alive after the grace window
    EXITED = "exited"        # Process ended before becoming ready
    TIMED_OUT = "timed_out"  # Readiness window elapsed


class ReadinessDetector(ABC):
    """Decides when a spawned backend can be considered started."""

    @abstractmethod
    def wait(self, handle: ProcessHandle, port: int) -> Readiness:
        """Block until the backend is ready, gone, or out of time."""


class OutputReadinessDetector(ReadinessDetector):
    """Scans stdout for a readiness marker or the port number.

    If nothing matches within `grace_period` and the process is still
    alive, it is optimistically treated as started when
    `assume_ready_after_grace` is set. Otherwise the wait continues until
    `timeout`.
    """

    def __init__(
        self,
        markers: Sequence[str] = ("listening", "started"),
        timeout: float = 30.0,
        grace_period: float = 5.0,
        assume_ready_after_grace: bool = True,
        poll_interval: float = 0.2,
    ) -> None:
        self.markers = [marker.lower() for marker in markers]
        self.timeout = timeout
        self.grace_period = grace_period
        self.assume_ready_after_grace = assume_ready_after_grace
        self.poll_interval = poll_interval

    def matches(self, line: str, port: int) -> bool:
        lowered = line.lower()
        return str(port) in lowered or any(marker in lowered for marker in self.markers)

    def wait(self, handle: ProcessHandle, port: int) -> Readiness:
        started = time.monotonic()
        grace_deadline = started + self.grace_period
        deadline = started + self.timeout
        seen = 0
        while True:
            now = time.monotonic()
            limit = deadline
            if self.assume_ready_after_grace:
                limit = min(limit, grace_deadline)
            lines, seen, exited = handle.next_stdout_lines(
                seen, timeout=max(0.0, min(self.poll_interval, limit - now))
            )
            for line in lines:
                if self.matches(line, port):
                    logger.info("Backend %s signalled readiness: %s", handle.key, line.strip())
                    return Readiness.READY
            if exited:
                return Readiness.EXITED

            now = time.monotonic()
            if self.assume_ready_after_grace and now >= grace_deadline:
                logger.info(
                    "No readiness signal from %s after %.1fs; assuming started",
                    handle.key,
                    self.grace_period,
                )
                return Readiness.ASSUMED
            if now >= deadline:
                return Readiness.TIMED_OUT


class HttpReadinessDetector(ReadinessDetector):
    """Polls the backend's port over HTTP; any response means ready."""

    def __init__(
        self,
        timeout: float = 30.0,
        poll_interval: float = 0.5,
        host: str = "127.0.0.1",
        path: str = "/",
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.host = host
        self.path = path
        if session is None:
            session = requests.Session()
            # Loopback polling ignores proxy variables
            session.trust_env = False
        self.session = session

    def url_for(self, port: int) -> str:
        return f"http://{self.host}:{port}{self.path}"

    def wait(self, handle: ProcessHandle, port: int) -> Readiness:
        deadline = time.monotonic() + self.timeout
        url = self.url_for(port)
        errors: List[str] = []
        while time.monotonic() < deadline:
            if not handle.running:
                return Readiness.EXITED
            try:
                response = self.session.get(url, timeout=min(1.0, self.poll_interval * 2))
            except requests.RequestException as exc:
                errors.append(type(exc).__name__)
            else:
                logger.info("Backend %s answered %s with HTTP %d", handle.key, url, response.status_code)
                return Readiness.READY
            if handle.wait_exited(timeout=self.poll_interval):
                return Readiness.EXITED
        logger.warning("Backend %s never answered on %s (%d attempts)", handle.key, url, len(errors))
        return Readiness.TIMED_OUT
