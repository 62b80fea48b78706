"""Metric instruments exported by the speed-test exporter."""

from __future__ import annotations

from typing import List, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

REASON_COMMAND = "command"
REASON_UNEXPECTED_OUTPUT = "unexpected_output"
ERROR_REASONS = (REASON_COMMAND, REASON_UNEXPECTED_OUTPUT)


def linear_buckets(start: float, width: float, count: int) -> List[float]:
	"""`count` upper bounds: start, start+width, start+2*width, ..."""
	if count < 1:
		raise ValueError(f"linear_buckets needs a positive count, got {count}")
	return [float(start + i * width) for i in range(count)]


class SpeedtestMetrics:
	"""
	Owns a private registry with the four exporter instruments.

	The instruments are registered once here, before any server can scrape
	the registry. prometheus_client instruments lock internally, so the
	runner can write while the HTTP server reads.
	"""

	def __init__(
		self,
		buckets_start: int = 5,
		buckets_width: int = 5,
		buckets_count: int = 60,
		registry: Optional[CollectorRegistry] = None,
	) -> None:
		self.registry = registry if registry is not None else CollectorRegistry()

		self.errors = Counter(
			"speedtest_errors",
			"Counter of errors occurred while running a speedtest",
			["reason"],
			registry=self.registry,
		)
		self.mbps_distribution = Histogram(
			"speedtest_mbps",
			"Speedtest measurements in Mbps",
			buckets=linear_buckets(buckets_start, buckets_width, buckets_count),
			registry=self.registry,
		)
		self.mbps_gauge = Gauge(
			"speedtest_mbps_gauge",
			"Last speedtest measurement in Mbps",
			registry=self.registry,
		)
		self.latency_distribution = Histogram(
			"speedtest_latency_secs",
			"Wall-clock duration of a speedtest cycle in seconds",
			buckets=linear_buckets(1, 1, 30),
			registry=self.registry,
		)

		# Export both error series at zero from the first scrape
		for reason in ERROR_REASONS:
			self.errors.labels(reason=reason)

	def record_error(self, reason: str) -> None:
		if reason not in ERROR_REASONS:
			raise ValueError(f"unknown error reason: {reason}")
		self.errors.labels(reason=reason).inc()

	def record_mbps(self, mbps: float) -> None:
		self.mbps_distribution.observe(mbps)
		self.mbps_gauge.set(mbps)

	def record_latency(self, seconds: float) -> None:
		self.latency_distribution.observe(seconds)

	def sample(self, name: str, **labels: str) -> float:
		"""Current value of one sample, 0.0 when it has not been exported."""
		value = self.registry.get_sample_value(name, labels)
		return value if value is not None else 0.0
