"""Process entry point: flags, logging, server, scheduler, signals."""

from __future__ import annotations

import os
import sys
import shutil
import signal
import logging
import argparse
import threading
from typing import Any, Dict, List, Optional

from speedtest_exporter import __version__
from speedtest_exporter.api import create_app
from speedtest_exporter.config import ConfigError, ExporterConfig, build_config
from speedtest_exporter.metrics import SpeedtestMetrics
from speedtest_exporter.runner import MeasurementRunner
from speedtest_exporter.scheduler import Scheduler
from speedtest_exporter.server import MetricsServer, ServerError

logger = logging.getLogger(__name__)

CONFIG_ENV = "SPEEDTEST_EXPORTER_CONFIG"
LOG_FORMAT = "[%(levelname)s]: %(asctime)s %(message)s"
LOG_DATEFMT = "%Y/%m/%d %H:%M:%S"
STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class _MaxLevelFilter(logging.Filter):
	def __init__(self, level: int) -> None:
		super().__init__()
		self.level = level

	def filter(self, record: logging.LogRecord) -> bool:
		return record.levelno < self.level


def configure_logging(level: str = "INFO") -> None:
	"""Informational lines go to stdout, warnings and errors to stderr."""
	package_logger = logging.getLogger("speedtest_exporter")
	for handler in list(package_logger.handlers):
		if getattr(handler, "_speedtest_exporter", False):
			package_logger.removeHandler(handler)

	formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

	info_handler = logging.StreamHandler(sys.stdout)
	info_handler.addFilter(_MaxLevelFilter(logging.WARNING))
	error_handler = logging.StreamHandler(sys.stderr)
	error_handler.setLevel(logging.WARNING)
	for handler in (info_handler, error_handler):
		handler.setFormatter(formatter)
		handler._speedtest_exporter = True
		package_logger.addHandler(handler)

	package_logger.setLevel(level.upper())
	# Per-scrape request lines are noise unless debugging
	if package_logger.level > logging.DEBUG:
		logging.getLogger("werkzeug").setLevel(logging.WARNING)


class Shutdown:
	"""Shared cancellation: a stop event plus what caused it."""

	def __init__(self) -> None:
		self.event = threading.Event()
		self.signum: Optional[int] = None
		self.error: Optional[BaseException] = None

	def handle_signal(self, signum: int, frame: Any) -> None:
		if not self.event.is_set():
			self.signum = signum
		self.event.set()

	def fail(self, error: BaseException) -> None:
		if not self.event.is_set():
			self.error = error
		self.event.set()

	@property
	def expected(self) -> bool:
		return self.error is None and self.signum is not None


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(
		prog="speedtest-exporter",
		description="Run fast-cli periodically and export the results as Prometheus metrics",
	)
	parser.add_argument("--addr", default=None, help="Address to serve metrics on (default :8080)")
	parser.add_argument(
		"--interval",
		default=None,
		help="Interval to run the speed test at, e.g. 30s or 1m (default 30s, minimum 15s); "
		"ideally this matches the Prometheus scrape_interval",
	)
	parser.add_argument("--start", type=int, default=None, help="Value for the lowest bucket in the distribution (default 5)")
	parser.add_argument("--width", type=int, default=None, help="Width for each bucket in the distribution (default 5)")
	parser.add_argument("--count", type=int, default=None, help="Count of buckets in the distribution (default 60)")
	parser.add_argument("--binary", default=None, help="Speed-test executable to run (default fast-cli)")
	parser.add_argument("--config", default=os.getenv(CONFIG_ENV), help=f"YAML config file (env {CONFIG_ENV})")
	parser.add_argument("--log-level", default=None, help="Logging level (default INFO)")
	parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
	return parser


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
	return {
		"listen_addr": args.addr,
		"interval_s": args.interval,
		"buckets_start": args.start,
		"buckets_width": args.width,
		"buckets_count": args.count,
		"binary": args.binary,
		"log_level": args.log_level,
	}


def main(argv: Optional[List[str]] = None) -> int:
	args = build_parser().parse_args(argv)
	configure_logging()

	try:
		config = build_config(_overrides(args), config_path=args.config)
	except ConfigError as e:
		logger.critical(str(e))
		return 1
	configure_logging(config.log_level)

	path = shutil.which(config.binary)
	if path is None:
		logger.critical(f"Unable to find {config.binary} in path")
		return 1

	return run(config, path)


def run(
	config: ExporterConfig,
	path: str,
	metrics: Optional[SpeedtestMetrics] = None,
	shutdown: Optional[Shutdown] = None,
) -> int:
	"""Serve and schedule until a stop signal. Returns the exit code."""
	if metrics is None:
		metrics = SpeedtestMetrics(
			buckets_start=config.buckets_start,
			buckets_width=config.buckets_width,
			buckets_count=config.buckets_count,
		)
	shutdown = shutdown or Shutdown()

	host, port = config.bind_address
	server = MetricsServer(create_app(metrics), host, port, on_failure=shutdown.fail)
	try:
		server.start()
	except ServerError as e:
		logger.critical(str(e))
		return 1

	previous = {signum: signal.signal(signum, shutdown.handle_signal) for signum in STOP_SIGNALS}
	runner = MeasurementRunner(metrics, path, config.interval_s)
	scheduler = Scheduler(runner, config.interval_s, stop_event=shutdown.event)
	try:
		scheduler.run()
	except Exception as e:
		shutdown.fail(e)
	finally:
		for signum, handler in previous.items():
			if handler is not None:
				signal.signal(signum, handler)
		server.shutdown()

	if not shutdown.expected:
		logger.critical(f"Terminating with unexpected error: {shutdown.error}")
		return 1
	logger.info("Terminating with expected signal")
	return 0
