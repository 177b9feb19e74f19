import json
import socket
import tempfile
import time
import unittest
from pathlib import Path

import psutil

from ho_host.errors import StartupError
from ho_host.process import (
    HttpReadinessDetector,
    OutputReadinessDetector,
    ProcessKey,
    ProcessState,
    ProcessSupervisor,
    Readiness,
)

from helpers import SERVER_SCRIPT, SILENT_SCRIPT, python_command, python_script_command


def _supervisor(command: str, **detector_options) -> ProcessSupervisor:
    options = {"timeout": 10.0, "grace_period": 5.0, "poll_interval": 0.05}
    options.update(detector_options)
    return ProcessSupervisor(
        start_command=command,
        detector=OutputReadinessDetector(**options),
        stop_timeout=5.0,
    )


def _free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class _RecordingHttpDetector(HttpReadinessDetector):
    """Keeps the last readiness outcome so tests can inspect it."""

    outcome = None

    def wait(self, handle, port):
        self.outcome = super().wait(handle, port)
        return self.outcome


def _gone(pid: int) -> bool:
    try:
        return psutil.Process(pid).status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return predicate()


class ProcessSupervisorTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.workdir = Path(self._tmp.name)
        (self.workdir / "server.py").write_text(SERVER_SCRIPT, encoding="utf-8")
        (self.workdir / "silent.py").write_text(SILENT_SCRIPT, encoding="utf-8")
        self.supervisors = []

    def tearDown(self) -> None:
        for supervisor in self.supervisors:
            supervisor.stop_all()
        self._tmp.cleanup()

    def _make(self, command: str, **detector_options) -> ProcessSupervisor:
        supervisor = _supervisor(command, **detector_options)
        self.supervisors.append(supervisor)
        return supervisor

    def test_start_detects_readiness_and_passes_environment(self) -> None:
        supervisor = self._make(python_script_command("server.py"))
        key = ProcessKey("alice", "shop")

        info = supervisor.start(self.workdir, 3901, key)

        self.assertTrue(info.running)
        self.assertEqual(info.state, ProcessState.RUNNING.value)
        self.assertEqual(info.port, 3901)
        env = json.loads((self.workdir / "env.json").read_text(encoding="utf-8"))
        self.assertEqual(env, {"PORT": "3901", "NODE_ENV": "production"})
        self.assertEqual([p.project for p in supervisor.status("alice")], ["shop"])
        self.assertEqual(supervisor.status("bob"), [])

    def test_stop_is_idempotent(self) -> None:
        supervisor = self._make(python_script_command("server.py"))
        key = ProcessKey("alice", "shop")
        info = supervisor.start(self.workdir, 3901, key)

        self.assertTrue(supervisor.stop(key))
        self.assertTrue(_wait_for(lambda: _gone(info.pid)))
        self.assertFalse(supervisor.stop(key))
        self.assertFalse(supervisor.stop(ProcessKey("alice", "never-started")))
        self.assertIsNone(supervisor.get(key))

    def test_early_exit_raises_and_unregisters(self) -> None:
        supervisor = self._make(python_command("import sys; print('boom'); sys.exit(3)"))
        key = ProcessKey("alice", "broken")

        with self.assertRaises(StartupError) as ctx:
            supervisor.start(self.workdir, 3901, key)

        self.assertEqual(ctx.exception.exit_code, 3)
        self.assertIn("boom", ctx.exception.output)
        self.assertEqual(supervisor.count(), 0)

    def test_timeout_without_assumption_stops_process(self) -> None:
        supervisor = self._make(
            python_script_command("silent.py"),
            timeout=1.0,
            grace_period=0.5,
            assume_ready_after_grace=False,
        )
        key = ProcessKey("alice", "quiet")

        with self.assertRaises(StartupError) as ctx:
            supervisor.start(self.workdir, 3901, key)

        self.assertIn("timeout", str(ctx.exception))
        self.assertEqual(supervisor.count(), 0)

    def test_silent_process_is_assumed_started_after_grace(self) -> None:
        supervisor = self._make(python_script_command("silent.py"), timeout=5.0, grace_period=0.5)
        key = ProcessKey("alice", "quiet")

        started = time.monotonic()
        info = supervisor.start(self.workdir, 3901, key)

        self.assertTrue(info.running)
        self.assertLess(time.monotonic() - started, 4.0)
        self.assertEqual(supervisor.count(), 1)

    def test_restart_replaces_previous_process(self) -> None:
        supervisor = self._make(python_script_command("server.py"))
        key = ProcessKey("alice", "shop")

        first = supervisor.start(self.workdir, 3901, key)
        second = supervisor.start(self.workdir, 3901, key)

        self.assertNotEqual(first.pid, second.pid)
        self.assertEqual(supervisor.count(), 1)
        self.assertEqual(supervisor.get(key).pid, second.pid)
        self.assertTrue(_wait_for(lambda: _gone(first.pid)))

    def test_crash_after_start_removes_handle(self) -> None:
        code = "import time; print('listening', flush=True); time.sleep(0.3); raise SystemExit(1)"
        supervisor = self._make(python_command(code))
        key = ProcessKey("alice", "flaky")

        supervisor.start(self.workdir, 3901, key)

        self.assertTrue(_wait_for(lambda: supervisor.get(key) is None))
        self.assertEqual(supervisor.status("alice"), [])


class HttpReadinessDetectorTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.workdir = Path(self._tmp.name)
        self.detector = _RecordingHttpDetector(timeout=10.0, poll_interval=0.1)
        self.supervisor = None

    def tearDown(self) -> None:
        if self.supervisor is not None:
            self.supervisor.stop_all()
        self._tmp.cleanup()

    def _supervisor(self, command: str) -> ProcessSupervisor:
        self.supervisor = ProcessSupervisor(start_command=command, detector=self.detector, stop_timeout=5.0)
        return self.supervisor

    def test_backend_answering_http_is_ready(self) -> None:
        server = (
            "import http.server, os; "
            "http.server.ThreadingHTTPServer(('127.0.0.1', int(os.environ['PORT'])), "
            "http.server.SimpleHTTPRequestHandler).serve_forever()"
        )
        port = _free_port()

        info = self._supervisor(python_command(server)).start(self.workdir, port, ProcessKey("alice", "api"))

        self.assertIs(self.detector.outcome, Readiness.READY)
        self.assertTrue(info.running)
        self.assertEqual(self.detector.url_for(port), f"http://127.0.0.1:{port}/")

    def test_backend_exiting_before_answering_is_exited(self) -> None:
        supervisor = self._supervisor(python_command("import sys; sys.exit(5)"))

        with self.assertRaises(StartupError) as ctx:
            supervisor.start(self.workdir, _free_port(), ProcessKey("alice", "api"))

        self.assertIs(self.detector.outcome, Readiness.EXITED)
        self.assertEqual(ctx.exception.exit_code, 5)
        self.assertEqual(supervisor.count(), 0)


class OutputReadinessDetectorTests(unittest.TestCase):
    def test_matches_markers_and_port(self) -> None:
        detector = OutputReadinessDetector()
        self.assertTrue(detector.matches("Server LISTENING", 3001))
        self.assertTrue(detector.matches("app started", 3001))
        self.assertTrue(detector.matches("ready on :3001", 3001))
        self.assertFalse(detector.matches("compiling...", 3001))


if __name__ == "__main__":
    unittest.main()
