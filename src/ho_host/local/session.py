"""Local command execution session."""

from __future__ import annotations

import os
import platform
import subprocess
import time
from dataclasses import dataclass
from typing import Dict, Optional

import psutil


@dataclass
class LocalCommandResult:
    """Result of executing a local command."""
    command: str
    output: str
    exit_status: int
    duration: float = 0.0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_status == 0 and not self.timed_out


class LocalSession:
    """
    Runs shell commands on this host inside one working directory.

    Commands block until the child exits; stdout and stderr are merged and
    returned whole, so callers branch on the exit status after the fact.
    Supports Windows (PowerShell) and Unix (bash) systems.
    """

    def __init__(
        self,
        working_dir: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Initialize local session.

        Args:
            working_dir: Working directory for commands. Defaults to home directory.
            env: Extra environment variables layered over the host environment.
        """
        self.working_dir = str(working_dir or os.path.expanduser("~"))
        self.extra_env = dict(env or {})
        self.is_windows = platform.system() == "Windows"

    def run(self, command: str, *, timeout: Optional[int] = None) -> LocalCommandResult:
        """
        Execute a command and wait for it to finish.

        Args:
            command: The shell command to execute
            timeout: Total timeout in seconds (default: 600)

        Returns:
            LocalCommandResult with the combined output and exit status.
            A timeout or a spawn failure yields a negative exit status
            instead of raising.
        """
        if timeout is None:
            timeout = 600

        started = time.monotonic()
        try:
            process = subprocess.Popen(
                self.shell_args(command),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
                cwd=self.working_dir,
                env=self.get_env(),
            )
        except OSError as exc:
            return LocalCommandResult(
                command=command,
                output=str(exc),
                exit_status=-1,
                duration=time.monotonic() - started,
            )

        try:
            stdout, _ = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            # Install and build tools fork; kill the whole tree
            self._kill_tree(process.pid)
            partial, _ = process.communicate()
            return LocalCommandResult(
                command=command,
                output=((partial or "") + f"\nTOTAL_TIMEOUT: Command exceeded {timeout} seconds").strip(),
                exit_status=-2,
                duration=time.monotonic() - started,
                timed_out=True,
            )

        return LocalCommandResult(
            command=command,
            output=(stdout or "").strip(),
            exit_status=process.returncode,
            duration=time.monotonic() - started,
        )

    @staticmethod
    def _kill_tree(pid: int) -> None:
        try:
            parent = psutil.Process(pid)
            children = parent.children(recursive=True)
        except psutil.NoSuchProcess:
            return
        for proc in [parent] + children:
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                continue
        # The shell itself is reaped by communicate()
        psutil.wait_procs(children, timeout=5)

    def shell_args(self, command: str) -> list:
        if self.is_windows:
            return ["powershell", "-Command", command]
        return ["/bin/bash", "-c", command]

    def get_env(self) -> dict:
        """Get environment variables for subprocess."""
        env = os.environ.copy()

        # Make sure common tool locations are on PATH
        if self.is_windows:
            extra_paths = [
                os.path.expanduser("~\\AppData\\Roaming\\npm"),
                "C:\\Program Files\\nodejs",
            ]
        else:
            extra_paths = [
                os.path.expanduser("~/.local/bin"),
                "/usr/local/bin",
            ]

        current_path = env.get("PATH", "")
        parts = current_path.split(os.pathsep) if current_path else []
        for p in extra_paths:
            if os.path.exists(p) and p not in parts:
                current_path = p + os.pathsep + current_path if current_path else p
        env["PATH"] = current_path

        env.update(self.extra_env)
        return env
