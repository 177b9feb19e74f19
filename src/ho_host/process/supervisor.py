"""Spawns, watches and terminates backend processes."""

from __future__ import annotations

import subprocess
import threading
from pathlib import Path
from typing import IO, Dict, List, Optional

import psutil

from ..errors import StartupError
from ..local import LocalSession
from ..utils.logging import audit, get_logger
from .models import ProcessHandle, ProcessInfo, ProcessKey
from .readiness import OutputReadinessDetector, Readiness, ReadinessDetector
from .registry import ProcessRegistry

logger = get_logger(__name__)


class ProcessSupervisor:
    """Owns the process registry for every dynamic project on this host.

    Per key the lifecycle is absent -> starting -> running -> stopped/crashed.
    The registry lock is held only for single insert/remove/lookup calls,
    never while spawning, waiting for readiness, or terminating.
    """

    def __init__(
        self,
        start_command: str = "npm start",
        port_env_var: str = "PORT",
        extra_env: Optional[Dict[str, str]] = None,
        detector: Optional[ReadinessDetector] = None,
        stop_timeout: float = 10.0,
        tail_lines: int = 200,
        registry: Optional[ProcessRegistry] = None,
    ) -> None:
        self.start_command = start_command
        self.port_env_var = port_env_var
        self.extra_env = dict(extra_env if extra_env is not None else {"NODE_ENV": "production"})
        self.detector = detector or OutputReadinessDetector()
        self.stop_timeout = stop_timeout
        self.tail_lines = tail_lines
        self._registry = registry or ProcessRegistry()

    def start(self, working_dir: Path, port: int, key: ProcessKey) -> ProcessInfo:
        """Start the backend for `key`, replacing any process already registered.

        Raises StartupError when the process cannot be spawned, exits before
        it is ready, or misses the readiness window. In every failure case
        the process is gone and unregistered before the error is raised.
        """
        previous = self._registry.pop(key)
        if previous is not None:
            audit(logger, key.owner, "BACKEND_REPLACED", f"Project: {key.project}, old PID: {previous.pid}")
            self._terminate(previous)

        audit(logger, key.owner, "STARTING_BACKEND", f"Project: {key.project}, Port: {port}")
        handle = self._spawn(Path(working_dir), port, key)

        displaced = self._registry.replace(key, handle)
        if displaced is not None and displaced is not handle:
            # Lost a race with a concurrent start of the same key
            self._terminate(displaced)

        outcome = self.detector.wait(handle, port)
        if outcome in (Readiness.READY, Readiness.ASSUMED):
            handle.mark_running()
            action = "BACKEND_STARTED" if outcome is Readiness.READY else "BACKEND_ASSUMED_STARTED"
            audit(logger, key.owner, action, f"Project: {key.project}, Port: {port}, PID: {handle.pid}")
            return handle.info()

        self._registry.remove_if(key, handle)
        self._terminate(handle)
        if outcome is Readiness.EXITED:
            message = f"Backend exited with code {handle.exit_code} before becoming ready"
        else:
            message = "Backend startup timeout"
        audit(logger, key.owner, "BACKEND_STARTUP_FAILED", f"Project: {key.project}, {message}")
        raise StartupError(message, output=handle.output_tail(), exit_code=handle.exit_code)

    def stop(self, key: ProcessKey) -> bool:
        """Gracefully stop `key`. Returns False if nothing was registered."""
        handle = self._registry.pop(key)
        if handle is None:
            return False
        self._terminate(handle)
        audit(logger, key.owner, "BACKEND_STOP_REQUESTED", f"Project: {key.project}, PID: {handle.pid}")
        return True

    def stop_all(self) -> int:
        stopped = 0
        for handle in self._registry.snapshot():
            if self.stop(handle.key):
                stopped += 1
        return stopped

    def get(self, key: ProcessKey) -> Optional[ProcessInfo]:
        handle = self._registry.get(key)
        return handle.info() if handle is not None else None

    def status(self, owner: str) -> List[ProcessInfo]:
        return [handle.info() for handle in self._registry.snapshot(owner)]

    def count(self) -> int:
        return len(self._registry)

    def _spawn(self, working_dir: Path, port: int, key: ProcessKey) -> ProcessHandle:
        env = dict(self.extra_env)
        env[self.port_env_var] = str(port)
        session = LocalSession(working_dir=str(working_dir), env=env)
        try:
            popen = subprocess.Popen(
                session.shell_args(self.start_command),
                cwd=str(working_dir),
                env=session.get_env(),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                bufsize=1,
                start_new_session=not session.is_windows,
            )
        except OSError as exc:
            audit(logger, key.owner, "BACKEND_PROCESS_ERROR", f"Project: {key.project}, {exc}")
            raise StartupError(f"Failed to spawn '{self.start_command}': {exc}") from exc

        handle = ProcessHandle(key, popen, port, tail_lines=self.tail_lines)
        readers = [
            self._reader(handle, popen.stdout, "stdout"),
            self._reader(handle, popen.stderr, "stderr"),
        ]
        watcher = threading.Thread(
            target=self._watch,
            args=(handle, readers),
            name=f"watch-{key}",
            daemon=True,
        )
        watcher.start()
        return handle

    def _reader(self, handle: ProcessHandle, stream: Optional[IO[str]], name: str) -> threading.Thread:
        def pump() -> None:
            if stream is None:
                return
            for line in stream:
                line = line.rstrip("\r\n")
                handle.record_line(line, name)
                logger.debug("[%s] %s: %s", handle.key, name, line)
            stream.close()

        thread = threading.Thread(target=pump, name=f"{name}-{handle.key}", daemon=True)
        thread.start()
        return thread

    def _watch(self, handle: ProcessHandle, readers: List[threading.Thread]) -> None:
        exit_code = handle.popen.wait()
        for reader in readers:
            reader.join(timeout=5)
        handle.mark_exited(exit_code)
        removed = self._registry.remove_if(handle.key, handle)
        audit(
            logger,
            handle.key.owner,
            "BACKEND_STOPPED",
            f"Project: {handle.key.project}, Code: {exit_code}, Unregistered: {removed}",
        )

    def _terminate(self, handle: ProcessHandle) -> None:
        """SIGTERM the process tree and wait; never escalates to SIGKILL."""
        handle.request_stop()
        if not handle.running:
            return
        try:
            parent = psutil.Process(handle.pid)
            children = parent.children(recursive=True)
        except psutil.NoSuchProcess:
            return

        for proc in [parent] + children:
            try:
                proc.terminate()
            except psutil.NoSuchProcess:
                continue

        # The direct child is reaped by its watcher thread; only poll the rest
        _, alive = psutil.wait_procs(children, timeout=self.stop_timeout)
        if not handle.wait_exited(timeout=self.stop_timeout):
            alive.append(parent)
        if alive:
            logger.warning(
                "Processes still alive %ss after SIGTERM for %s: %s",
                self.stop_timeout,
                handle.key,
                [proc.pid for proc in alive],
            )
