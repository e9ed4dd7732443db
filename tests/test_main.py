"""Tests for the command line entry point."""
from __future__ import annotations

import json
import logging
from unittest.mock import patch

import pytest

from diskio_tap import main as main_module
from diskio_tap.logging_utils import TRACE_LEVEL, resolve_log_level
from diskio_tap.module import DiskIoModule


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "diskio.cfg"
    path.write_text("[mqtt]\n[publish]\n[diskio]\nprime_interval_s = 0\n")
    return path


@pytest.mark.integration
def test_once_dry_run_dumps_payload(config_path, tmp_path, source, clock):
    dump = tmp_path / "payload.json"
    source.set("disk1", size=2048)
    modules = []

    def build_module(config):
        module = DiskIoModule(config, source=source, clock=clock)
        modules.append(module)
        return module

    argv = [
        "diskio-tap",
        "--config", str(config_path),
        "--dry-run",
        "--once",
        "--dump-json", str(dump),
    ]
    with patch("sys.argv", argv), patch.object(
        main_module, "DiskIoModule", side_effect=build_module
    ), patch.object(main_module, "MqttPublisher") as publisher_cls, patch.object(
        main_module, "configure_logging"
    ):
        main_module.main()

    publisher_cls.assert_not_called()
    payload = json.loads(dump.read_text())
    assert set(payload["metrics"]) >= {"disk1_xfers", "disk2_time"}
    assert payload["metrics"]["disk1_size"]["value"] == 2147483648.0
    # cleanup restored I/O accounting
    assert source.restored == {"disk1": False, "disk2": False}
    assert modules[0].registry is not None


@pytest.mark.parametrize(
    ("verbosity", "fallback", "expected"),
    [
        (0, "warning", logging.WARNING),
        (0, "bogus", logging.INFO),
        (1, "ERROR", logging.DEBUG),
        (2, "INFO", TRACE_LEVEL),
    ],
)
def test_resolve_log_level(verbosity, fallback, expected):
    assert resolve_log_level(verbosity, fallback) == expected
