"""One measurement cycle: run the speed-test tool, parse, record."""

from __future__ import annotations

import math
import time
import logging
import subprocess
import threading
from dataclasses import dataclass
from typing import Optional, Sequence

from speedtest_exporter.metrics import (
	REASON_COMMAND,
	REASON_UNEXPECTED_OUTPUT,
	SpeedtestMetrics,
)
from speedtest_exporter.parser import OutputError, parse_output

logger = logging.getLogger(__name__)

# The subprocess must finish before the next tick
DEADLINE_MARGIN_S = 0.1
POLL_INTERVAL_S = 0.1
SIMPLE_OUTPUT_ARG = "--simple"


class CommandError(RuntimeError):
	"""The speed-test subprocess failed, timed out or was cancelled."""


@dataclass
class CycleResult:
	"""Outcome of a single measurement cycle."""
	started_at: float
	elapsed_s: float = 0.0
	mbps: Optional[float] = None
	error_reason: Optional[str] = None
	error: Optional[str] = None

	@property
	def ok(self) -> bool:
		return self.error_reason is None


def run_command(
	args: Sequence[str],
	timeout_s: float,
	cancel_event: Optional[threading.Event] = None,
) -> str:
	"""
	Run `args` and return its standard output.

	The child is killed if it outlives `timeout_s` or if `cancel_event`
	is set while it runs.

	Raises:
		CommandError: spawn failure, nonzero exit, timeout or cancellation
	"""
	try:
		proc = subprocess.Popen(
			list(args),
			stdin=subprocess.DEVNULL,
			stdout=subprocess.PIPE,
			stderr=subprocess.PIPE,
		)
	except OSError as e:
		raise CommandError(f"failed to start {args[0]}: {e}") from e

	deadline = time.monotonic() + timeout_s
	with proc:
		while True:
			if cancel_event is not None and cancel_event.is_set():
				_kill(proc)
				raise CommandError(f"{args[0]} cancelled")
			remaining = deadline - time.monotonic()
			if remaining <= 0:
				_kill(proc)
				raise CommandError(f"{args[0]} exceeded deadline of {timeout_s:.1f}s")
			try:
				raw_out, raw_err = proc.communicate(timeout=min(POLL_INTERVAL_S, remaining))
				break
			except subprocess.TimeoutExpired:
				continue

	# Undecodable bytes become U+FFFD and fail parsing, not the cycle
	stdout = raw_out.decode("utf-8", errors="replace")
	stderr = raw_err.decode("utf-8", errors="replace")
	if proc.returncode != 0:
		detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no stderr"
		raise CommandError(f"{args[0]} exited with status {proc.returncode}: {detail}")
	return stdout


def _kill(proc: subprocess.Popen) -> None:
	proc.kill()
	proc.communicate()


class MeasurementRunner:
	"""Runs measurement cycles and records them into SpeedtestMetrics."""

	def __init__(
		self,
		metrics: SpeedtestMetrics,
		binary: str,
		interval_s: float,
	) -> None:
		self.metrics = metrics
		if not math.isfinite(interval_s):
			raise ValueError(f"interval must be finite, got {interval_s}")
		self.binary = binary
		self.timeout_s = max(interval_s - DEADLINE_MARGIN_S, POLL_INTERVAL_S)

	def run_cycle(self, cancel_event: Optional[threading.Event] = None) -> CycleResult:
		"""
		Execute one cycle. Failures are counted and logged, never raised.

		The cycle duration is observed into the latency histogram whatever
		the outcome.
		"""
		result = CycleResult(started_at=time.time())
		start = time.monotonic()
		try:
			try:
				output = run_command(
					[self.binary, SIMPLE_OUTPUT_ARG],
					self.timeout_s,
					cancel_event=cancel_event,
				)
			except CommandError as e:
				self.metrics.record_error(REASON_COMMAND)
				result.error_reason, result.error = REASON_COMMAND, str(e)
				logger.error(f"Unable to execute command: {e}")
				return result

			try:
				mbps = parse_output(output)
			except OutputError as e:
				self.metrics.record_error(REASON_UNEXPECTED_OUTPUT)
				result.error_reason, result.error = REASON_UNEXPECTED_OUTPUT, str(e)
				logger.error(f"Unable to parse output: {e}")
				return result

			self.metrics.record_mbps(mbps)
			result.mbps = mbps
			logger.info(f"Recorded measurement: {mbps:.2f} Mbps")
			return result
		finally:
			result.elapsed_s = time.monotonic() - start
			self.metrics.record_latency(result.elapsed_s)
