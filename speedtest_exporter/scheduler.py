"""Fixed-interval loop driving the measurement runner."""

from __future__ import annotations

import math
import time
import logging
import threading
from typing import Optional

from speedtest_exporter.runner import MeasurementRunner

logger = logging.getLogger(__name__)


class Scheduler:
	"""
	Runs one cycle immediately, then one per interval until stopped.

	Cycles run on the calling thread, strictly one at a time. Ticks are
	anchored to the start time. After an overrun one missed tick fires
	at once and any further missed ticks are dropped.
	"""

	def __init__(
		self,
		runner: MeasurementRunner,
		interval_s: float,
		stop_event: Optional[threading.Event] = None,
	) -> None:
		if not math.isfinite(interval_s) or interval_s <= 0:
			raise ValueError(f"interval must be positive, got {interval_s}")
		self.runner = runner
		self.interval_s = interval_s
		self.stop_event = stop_event if stop_event is not None else threading.Event()
		self.cycles = 0

	def run(self) -> int:
		"""Block until the stop event is set. Returns the number of cycles run."""
		logger.info(f"Scheduler started with interval {self.interval_s:g}s")
		self._run_once()

		next_tick = time.monotonic() + self.interval_s
		while not self.stop_event.wait(max(0.0, next_tick - time.monotonic())):
			self._run_once()
			next_tick += self.interval_s
			now = time.monotonic()
			if next_tick <= now:
				# One missed tick fires at once, later ones are dropped
				dropped = int((now - next_tick) // self.interval_s)
				if dropped:
					logger.warning(f"Cycle overran the interval, dropping {dropped} tick(s)")
				next_tick += dropped * self.interval_s

		logger.info(f"Scheduler stopped after {self.cycles} cycle(s)")
		return self.cycles

	def stop(self) -> None:
		self.stop_event.set()

	def _run_once(self) -> None:
		if self.stop_event.is_set():
			return
		self.runner.run_cycle(cancel_event=self.stop_event)
		self.cycles += 1
