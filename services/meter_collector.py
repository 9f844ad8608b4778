"""Runs rtlamr for one collection window and parses its JSON-lines output."""

from __future__ import annotations

import json
import logging
import subprocess
from typing import Any, Callable, List, Optional, Sequence

from metrics.registry import MetricsRegistry

logger = logging.getLogger(__name__)

CommandRunner = Callable[..., "subprocess.CompletedProcess[str]"]


class CollectorError(RuntimeError):
    """Raised when an external decoder process cannot be started."""


def parse_lines(text: str, on_malformed: Optional[Callable[[str], None]] = None) -> List[Any]:
    """Parse each line of ``text`` as an independent JSON document.

    Lines that are not valid JSON are dropped; ``on_malformed`` is told about
    each one. The result keeps the original output order.
    """
    records: List[Any] = []
    for line in text.splitlines():
        candidate = line.strip()
        if not candidate:
            continue
        try:
            records.append(json.loads(candidate))
        except json.JSONDecodeError:
            if on_malformed is not None:
                on_malformed(candidate)
    return records


class RtlamrCollector:
    """Process adapter around the ``rtlamr`` meter decoder."""

    def __init__(
        self,
        server: str,
        duration: int,
        meter_ids: Optional[str] = None,
        binary: str = "rtlamr",
        registry: Optional[MetricsRegistry] = None,
        runner: CommandRunner = subprocess.run,
    ) -> None:
        self.server = server
        self.duration = duration
        self.meter_ids = (meter_ids or "").strip()
        self.binary = binary
        self._registry = registry
        self._runner = runner

    def build_command(self) -> List[str]:
        command = [self.binary]
        if self.meter_ids:
            command.extend([f"-filterid={self.meter_ids}", "-single=true"])
        command.extend(
            [
                f"-server={self.server}",
                "-msgtype=all",
                f"-duration={self.duration}s",
                "-format=json",
                "-unique",
            ]
        )
        return command

    def collect(self) -> List[Any]:
        """Run one collection window and return the parsed records."""
        stdout = self._run(self.build_command())
        records = parse_lines(stdout, on_malformed=self._record_malformed)
        logger.info(
            "Collected meter readings",
            extra={"pipeline": "meter", "reading_count": len(records)},
        )
        return records

    def _run(self, command: Sequence[str]) -> str:
        try:
            completed = self._runner(
                list(command),
                stdout=subprocess.PIPE,
                text=True,
                errors="replace",
                check=False,
            )
        except OSError as exc:
            raise CollectorError(f"Could not start {command[0]}: {exc}") from exc
        if completed.returncode != 0:
            logger.warning(
                "rtlamr exited with a non-zero status",
                extra={"pipeline": "meter", "return_code": completed.returncode},
            )
        return completed.stdout or ""

    def _record_malformed(self, line: str) -> None:
        logger.debug("Dropping non-JSON rtlamr output: %s", line, extra={"pipeline": "meter"})
        if self._registry is not None:
            self._registry.record_drop("meter", "malformed_json")
