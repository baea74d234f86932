"""
Tests for CLI entry points.

These tests focus on:
- `show` previewing a saved page without credentials or state
- `run` refusing to start without the service-account file
- `run` exit codes and `serve` scheduling, with Firebase and the
  scheduler replaced by fakes
"""

import io
import os
import tempfile
import unittest
from contextlib import redirect_stdout
from datetime import datetime
from pathlib import Path
from unittest import mock

from mptnotify.cli import build_parser, main
from mptnotify.config import Settings
from mptnotify.run import RunContext
from mptnotify.storage import StateFileError


PAGE = (
    "<html><body>"
    "<h4>Замены на 19.10.2026</h4>"
    '<div class="table-responsive"><table class="table"><caption>ИС-21, ИС-22</caption>'
    "<tr><td>2</td><td>Физика</td><td>Химия</td><td>18.10.2026 15:10</td></tr>"
    "</table></div>"
    '<div class="table-responsive"><table class="table"><caption>Э-1-22</caption>'
    "<tr><td>1</td><td>Право</td><td>Экономика</td><td>18.10.2026 12:00</td></tr>"
    "</table></div>"
    "</body></html>"
)


class TestCLI(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)
        self.page = self.dir / "page.html"
        self.page.write_text(PAGE, encoding="utf-8")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _main(self, argv: list) -> tuple:
        out = io.StringIO()
        with redirect_stdout(out), self.assertRaises(SystemExit) as ctx:
            main(argv)
        return ctx.exception.code, out.getvalue()

    def test_show_all_captions(self) -> None:
        code, out = self._main(["show", "--html", str(self.page), "--date", "19.10.2026"])
        self.assertEqual(code, 0)
        self.assertIn("ИС-21, ИС-22 (1)", out)
        self.assertIn("Э-1-22 (1)", out)
        self.assertIn("Физика → Химия", out)

    def test_show_one_group(self) -> None:
        code, out = self._main(["show", "--html", str(self.page), "--date", "19.10.2026", "--group", "ис-22"])
        self.assertEqual(code, 0)
        self.assertIn("ис-22 (1)", out)
        self.assertNotIn("Право", out)

    def test_show_other_day_is_empty(self) -> None:
        code, out = self._main(["show", "--html", str(self.page), "--date", "01.01.2020"])
        self.assertEqual(code, 0)
        self.assertIn("No replacements", out)

    def test_show_bad_date(self) -> None:
        code, _ = self._main(["show", "--html", str(self.page), "--date", "2026-10-19"])
        self.assertNotEqual(code, 0)

    def test_run_without_credentials_exits_nonzero(self) -> None:
        code, _ = self._main(
            ["run", "--credentials", str(self.dir / "missing.json"), "--state-file", str(self.dir / "s.json")]
        )
        self.assertEqual(code, 1)
        self.assertFalse((self.dir / "s.json").exists())

    def test_command_required(self) -> None:
        with redirect_stdout(io.StringIO()), self.assertRaises(SystemExit) as ctx:
            build_parser().parse_args([])
        self.assertNotEqual(ctx.exception.code, 0)


class FakeDirectory:
    def snapshot(self) -> list:
        return []

    def delete(self, subscription) -> None:
        pass


class FakeTransport:
    def send(self, token: str, title: str, body: str) -> None:
        pass


class TestRunAndServe(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.dir = Path(self._tmp.name)
        self.state_file = self.dir / "state.json"

        env = mock.patch.dict(os.environ)
        env.start()
        self.addCleanup(env.stop)
        for name in ("RUN_ONCE", "FETCH_TIMEOUT", "CRON_SCHEDULE"):
            os.environ.pop(name, None)

    def _ctx(self) -> RunContext:
        return RunContext(
            settings=Settings(state_file=self.state_file),
            directory=FakeDirectory(),
            transport=FakeTransport(),
            fetch=lambda settings: PAGE,
            now=lambda: datetime(2026, 10, 19, 9, 0),
        )

    def _main(self, argv: list) -> int:
        with redirect_stdout(io.StringIO()), self.assertRaises(SystemExit) as ctx:
            main(argv)
        return ctx.exception.code

    def test_run_success_exits_zero(self) -> None:
        with mock.patch("mptnotify.cli._build_context", return_value=self._ctx()):
            self.assertEqual(self._main(["run"]), 0)
        self.assertTrue(self.state_file.exists())

    def test_run_with_corrupt_state_exits_one(self) -> None:
        self.state_file.write_text("{broken", encoding="utf-8")
        with mock.patch("mptnotify.cli._build_context", return_value=self._ctx()):
            self.assertEqual(self._main(["run"]), 1)
        self.assertEqual(self.state_file.read_text(encoding="utf-8"), "{broken")

    def test_serve_keeps_scheduling_after_failed_run(self) -> None:
        with mock.patch("mptnotify.cli._build_context", return_value=self._ctx()), mock.patch(
            "mptnotify.cli.run_check", side_effect=StateFileError("broken")
        ) as run_check, mock.patch("mptnotify.cli.BlockingScheduler") as scheduler_cls:
            code = self._main(["serve", "--cron", "*/5 * * * *"])

        self.assertEqual(code, 0)
        run_check.assert_called_once()
        scheduler = scheduler_cls.return_value
        _, kwargs = scheduler.add_job.call_args
        self.assertEqual(kwargs["max_instances"], 1)
        self.assertTrue(kwargs["coalesce"])
        scheduler.start.assert_called_once_with()

        # the scheduled job logs failures instead of raising
        job = scheduler.add_job.call_args.args[0]
        job()
        self.assertEqual(run_check.call_count, 2)

    def test_run_once_makes_serve_a_single_run(self) -> None:
        os.environ["RUN_ONCE"] = "1"
        self.state_file.write_text("{broken", encoding="utf-8")
        with mock.patch("mptnotify.cli._build_context", return_value=self._ctx()), mock.patch(
            "mptnotify.cli.BlockingScheduler"
        ) as scheduler_cls:
            code = self._main(["serve"])

        self.assertEqual(code, 1)
        scheduler_cls.assert_not_called()

    def test_invalid_timeout_exits_one(self) -> None:
        os.environ["FETCH_TIMEOUT"] = "soon"
        with mock.patch("mptnotify.cli._build_context") as build:
            self.assertEqual(self._main(["run"]), 1)
        build.assert_not_called()


if __name__ == "__main__":
    unittest.main()
