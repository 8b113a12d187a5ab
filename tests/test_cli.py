"""Tests for CLI validation, argument parsing and the non-network modes."""

import json
import os
import tempfile
import unittest
from unittest import mock

from speedprobe.constants import (
    DEFAULT_PING_ATTEMPTS,
    DEFAULT_PING_INTERVAL_MS,
    DEFAULT_TIMEOUT,
    DOWNLOAD_LEG_SIZES,
    MAX_PING_ATTEMPTS,
    MAX_PING_INTERVAL_MS,
    MAX_TIMEOUT,
    MIN_PING_ATTEMPTS,
    MIN_TIMEOUT,
    UPLOAD_LEG_SIZES,
)


class TestValidation(unittest.TestCase):
    """Test the _validate function from speedlog.py."""

    def _validate(self, **kwargs):
        from speedlog import _validate
        defaults = {
            "ping_attempts": DEFAULT_PING_ATTEMPTS,
            "ping_interval_ms": DEFAULT_PING_INTERVAL_MS,
            "timeout": DEFAULT_TIMEOUT,
            "download_legs": list(DOWNLOAD_LEG_SIZES),
            "upload_legs": list(UPLOAD_LEG_SIZES),
        }
        defaults.update(kwargs)
        return _validate(**defaults)

    def test_defaults_valid(self):
        self._validate()

    def test_ping_attempts_range(self):
        self._validate(ping_attempts=MIN_PING_ATTEMPTS)
        self._validate(ping_attempts=MAX_PING_ATTEMPTS)
        with self.assertRaises(ValueError):
            self._validate(ping_attempts=MIN_PING_ATTEMPTS - 1)
        with self.assertRaises(ValueError):
            self._validate(ping_attempts=MAX_PING_ATTEMPTS + 1)

    def test_ping_interval_range(self):
        self._validate(ping_interval_ms=0)
        with self.assertRaises(ValueError):
            self._validate(ping_interval_ms=-1)
        with self.assertRaises(ValueError):
            self._validate(ping_interval_ms=MAX_PING_INTERVAL_MS + 1)

    def test_timeout_range(self):
        with self.assertRaises(ValueError):
            self._validate(timeout=MIN_TIMEOUT - 0.1)
        with self.assertRaises(ValueError):
            self._validate(timeout=MAX_TIMEOUT + 1)

    def test_legs(self):
        with self.assertRaises(ValueError):
            self._validate(download_legs=[])
        with self.assertRaises(ValueError):
            self._validate(upload_legs=[1024, -1])


class TestParser(unittest.TestCase):
    def test_unset_flags_defer_to_config(self):
        from speedlog import build_parser
        args = build_parser().parse_args([])
        self.assertIsNone(args.attempts)
        self.assertIsNone(args.timeout)
        self.assertIsNone(args.upload_timing)
        self.assertEqual(args.repeat, 1)

    def test_upload_timing_choices(self):
        from speedlog import build_parser
        args = build_parser().parse_args(["--upload-timing", "client", "--attempts", "3"])
        self.assertEqual(args.upload_timing, "client")
        self.assertEqual(args.attempts, 3)
        with self.assertRaises(SystemExit):
            build_parser().parse_args(["--upload-timing", "both"])


class TestMain(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        for target, name in (
            ("speedprobe.config._config_path", "config.json"),
            ("speedprobe.history._history_path", "history.jsonl"),
        ):
            patcher = mock.patch(target, return_value=os.path.join(self._tmp.name, name))
            patcher.start()
            self.addCleanup(patcher.stop)

    def test_invalid_attempts_exits(self):
        from speedlog import main
        with self.assertRaises(SystemExit) as ctx:
            main(["--attempts", "0"])
        self.assertEqual(ctx.exception.code, 1)

    def test_invalid_server_exits(self):
        from speedlog import main
        with self.assertRaises(SystemExit) as ctx:
            main(["--server", "ftp://nope"])
        self.assertEqual(ctx.exception.code, 1)

    def test_history_mode_does_not_measure(self):
        import speedlog
        with mock.patch.object(speedlog, "run_speedtest") as run, \
                mock.patch.object(speedlog, "print_history") as show:
            speedlog.main(["--history"])
        run.assert_not_called()
        show.assert_called_once_with([])

    def test_stats_mode(self):
        import speedlog
        with open(os.path.join(self._tmp.name, "history.jsonl"), "w") as fh:
            fh.write(json.dumps({"downloadBps": 1e6, "timestamp": "2000-01-01T00:00:00+00:00"}) + "\n")
        with mock.patch.object(speedlog, "print_summary") as show:
            speedlog.main(["--stats", "--days", "7"])
        summary = show.call_args[0][0]
        self.assertEqual(summary["days"], 7)
        self.assertEqual(summary["totalTests"], 0)


if __name__ == "__main__":
    unittest.main()
