import tempfile
import time
import unittest
from pathlib import Path

import psutil

from ho_host.build import BuildRunner
from ho_host.errors import DependencyError
from ho_host.local import LocalSession

from helpers import python_command


def _alive(pid: int) -> bool:
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False


class LocalSessionTests(unittest.TestCase):
    def test_run_merges_stderr_and_reports_exit_status(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            session = LocalSession(working_dir=tmp, env={"HO_HOST_TEST_VALUE": "42"})
            result = session.run(
                python_command(
                    "import os, sys; print(os.environ['HO_HOST_TEST_VALUE']); "
                    "print('oops', file=sys.stderr); sys.exit(3)"
                )
            )
        self.assertFalse(result.ok)
        self.assertEqual(result.exit_status, 3)
        self.assertIn("42", result.output)
        self.assertIn("oops", result.output)

    def test_timeout_is_reported_not_raised(self) -> None:
        session = LocalSession()
        result = session.run(python_command("import time; time.sleep(5)"), timeout=1)
        self.assertTrue(result.timed_out)
        self.assertFalse(result.ok)

    def test_timeout_kills_grandchildren(self) -> None:
        spawner = (
            "import pathlib, subprocess, sys; "
            "child = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)']); "
            "pathlib.Path('child.pid').write_text(str(child.pid)); "
            "child.wait()"
        )
        with tempfile.TemporaryDirectory() as tmp:
            result = LocalSession(working_dir=tmp).run(python_command(spawner), timeout=2)
            child_pid = int((Path(tmp) / "child.pid").read_text())

        self.assertTrue(result.timed_out)
        self.assertEqual(result.exit_status, -2)
        deadline = time.monotonic() + 5
        while time.monotonic() < deadline and _alive(child_pid):
            time.sleep(0.05)
        self.assertFalse(_alive(child_pid))


class BuildRunnerTests(unittest.TestCase):
    def test_install_runs_in_subtree(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            runner = BuildRunner(
                install_command=python_command("import os; open('installed.txt', 'w').write(os.getcwd())"),
                build_command=python_command("pass"),
            )
            result = runner.install(Path(tmp))
            self.assertTrue(result.ok)
            self.assertTrue((Path(tmp) / "installed.txt").is_file())

    def test_install_failure_raises_with_output(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            subtree = Path(tmp) / "backend"
            subtree.mkdir()
            runner = BuildRunner(
                install_command=python_command("import sys; print('npm ERR! missing'); sys.exit(1)"),
            )
            with self.assertRaises(DependencyError) as ctx:
                runner.install(subtree)
        self.assertEqual(ctx.exception.subtree, "backend")
        self.assertEqual(ctx.exception.exit_status, 1)
        self.assertIn("npm ERR! missing", ctx.exception.output)

    def test_build_failure_is_returned(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            runner = BuildRunner(build_command=python_command("import sys; sys.exit(2)"))
            result = runner.build(Path(tmp))
        self.assertFalse(result.ok)
        self.assertEqual(result.exit_status, 2)


if __name__ == "__main__":
    unittest.main()
