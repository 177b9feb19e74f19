"""Data models for backend process supervision."""

from __future__ import annotations

import subprocess
import threading
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ProcessState(Enum):
    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"
    CRASHED = "crashed"


@dataclass(frozen=True)
class ProcessKey:
    """Registry key: one deployable unit per (owner, project)."""

    owner: str
    project: str

    def __str__(self) -> str:
        return f"{self.owner}-{self.project}"


@dataclass(frozen=True)
class ProcessInfo:
    """Read-only snapshot of a supervised process."""

    owner: str
    project: str
    pid: int
    port: int
    running: bool
    state: str
    started_at: str

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["projectName"] = self.project
        return payload


class ProcessHandle:
    """One live child process and the output captured from it.

    Only the supervisor creates and mutates handles. Reader threads push
    lines in with :meth:`record_line`; the exit watcher calls
    :meth:`mark_exited` once both streams are drained.
    """

    def __init__(self, key: ProcessKey, popen: subprocess.Popen, port: int, tail_lines: int = 200) -> None:
        self.key = key
        self.popen = popen
        self.pid = popen.pid
        self.port = port
        self.started_at = datetime.now(timezone.utc)
        self.state = ProcessState.STARTING
        self.exit_code: Optional[int] = None
        self.stop_requested = False
        self._cond = threading.Condition()
        self._tail: deque = deque(maxlen=tail_lines)
        self._stdout: deque = deque(maxlen=tail_lines)
        self._stdout_seq = 0

    @property
    def running(self) -> bool:
        return self.exit_code is None

    def record_line(self, line: str, stream: str = "stdout") -> None:
        with self._cond:
            self._tail.append(line)
            if stream == "stdout":
                self._stdout_seq += 1
                self._stdout.append((self._stdout_seq, line))
            self._cond.notify_all()

    def mark_running(self) -> None:
        with self._cond:
            if self.state is ProcessState.STARTING:
                self.state = ProcessState.RUNNING

    def request_stop(self) -> None:
        with self._cond:
            self.stop_requested = True

    def mark_exited(self, exit_code: int) -> None:
        with self._cond:
            self.exit_code = exit_code
            if self.stop_requested or exit_code == 0:
                self.state = ProcessState.STOPPED
            else:
                self.state = ProcessState.CRASHED
            self._cond.notify_all()

    def wait_exited(self, timeout: Optional[float] = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self.exit_code is not None, timeout=timeout)

    def next_stdout_lines(self, after: int, timeout: float) -> Tuple[List[str], int, bool]:
        """Block up to `timeout` for stdout lines newer than sequence `after`.

        Returns the new lines, the latest sequence number, and whether the
        process has exited.
        """
        with self._cond:
            self._cond.wait_for(
                lambda: self._stdout_seq > after or self.exit_code is not None,
                timeout=timeout,
            )
            lines = [line for seq, line in self._stdout if seq > after]
            return lines, self._stdout_seq, self.exit_code is not None

    def output_tail(self, limit: int = 40) -> str:
        with self._cond:
            return "\n".join(list(self._tail)[-limit:])

    def info(self) -> ProcessInfo:
        return ProcessInfo(
            owner=self.key.owner,
            project=self.key.project,
            pid=self.pid,
            port=self.port,
            running=self.running,
            state=self.state.value,
            started_at=self.started_at.isoformat(),
        )
