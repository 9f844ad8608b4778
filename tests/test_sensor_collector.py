from __future__ import annotations

import subprocess
from typing import Any, List

import pytest

from services.meter_collector import CollectorError
from services.sensor_collector import Rtl433Collector


def test_build_command_targets_radio_and_broker() -> None:
    collector = Rtl433Collector(server="radio:1234", broker="broker:1883", duration=30)

    assert collector.build_command() == [
        "rtl_433",
        "-d",
        "rtl_tcp:radio:1234",
        "-M",
        "newmodel",
        "-T",
        "30",
        "-F",
        "mqtt://broker:1883",
    ]


def test_run_blocks_for_requested_window() -> None:
    calls: List[List[str]] = []

    def runner(args: List[str], **kwargs: Any) -> subprocess.CompletedProcess:
        calls.append(args)
        return subprocess.CompletedProcess(args, 0)

    collector = Rtl433Collector(server="radio:1234", broker="broker:1883", duration=30, runner=runner)

    assert collector.run(duration=5) == 0
    assert calls[0][calls[0].index("-T") + 1] == "5"


def test_run_reports_non_zero_exit(caplog) -> None:
    def runner(args: List[str], **kwargs: Any) -> subprocess.CompletedProcess:
        return subprocess.CompletedProcess(args, 2)

    collector = Rtl433Collector(server="radio:1234", broker="broker:1883", duration=30, runner=runner)

    with caplog.at_level("WARNING"):
        assert collector.run() == 2

    assert any(getattr(record, "return_code", None) == 2 for record in caplog.records)


def test_run_missing_binary_raises() -> None:
    def runner(args: List[str], **kwargs: Any) -> subprocess.CompletedProcess:
        raise FileNotFoundError(args[0])

    collector = Rtl433Collector(server="radio:1234", broker="broker:1883", duration=30, runner=runner)

    with pytest.raises(CollectorError):
        collector.run()
