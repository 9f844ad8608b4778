"""Runs rtl_433 for one window with decoded events sent straight to the broker."""

from __future__ import annotations

import logging
import subprocess
from typing import List, Optional

from services.meter_collector import CollectorError, CommandRunner

logger = logging.getLogger(__name__)


class Rtl433Collector:
    """Process adapter around ``rtl_433``.

    rtl_433 publishes decoded events straight to the broker, so nothing is
    captured here; the subscription side picks them up.
    """

    def __init__(
        self,
        server: str,
        broker: str,
        duration: int,
        binary: str = "rtl_433",
        runner: CommandRunner = subprocess.run,
    ) -> None:
        self.server = server
        self.broker = broker
        self.duration = duration
        self.binary = binary
        self._runner = runner

    def build_command(self, duration: Optional[int] = None) -> List[str]:
        window = self.duration if duration is None else duration
        return [
            self.binary,
            "-d",
            f"rtl_tcp:{self.server}",
            "-M",
            "newmodel",
            "-T",
            str(window),
            "-F",
            f"mqtt://{self.broker}",
        ]

    def run(self, duration: Optional[int] = None) -> int:
        """Block for one rtl_433 window and return its exit status."""
        command = self.build_command(duration)
        try:
            completed = self._runner(command, check=False)
        except OSError as exc:
            raise CollectorError(f"Could not start {command[0]}: {exc}") from exc
        if completed.returncode != 0:
            logger.warning(
                "rtl_433 exited with a non-zero status",
                extra={"pipeline": "sensor", "return_code": completed.returncode},
            )
        return completed.returncode
