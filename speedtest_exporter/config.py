"""Exporter configuration: defaults, optional YAML file, validation."""

from __future__ import annotations

import re
import math
import yaml
import logging
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_ADDR = ":8080"
DEFAULT_INTERVAL_S = 30.0
MIN_INTERVAL_S = 15.0
DEFAULT_BINARY = "fast-cli"

# YAML keys mirror the command line flags
FILE_KEYS = {
	"addr": "listen_addr",
	"interval": "interval_s",
	"start": "buckets_start",
	"width": "buckets_width",
	"count": "buckets_count",
	"binary": "binary",
	"log_level": "log_level",
}

_DURATION_UNITS = {
	"ns": 1e-9,
	"us": 1e-6,
	"µs": 1e-6,
	"ms": 1e-3,
	"s": 1.0,
	"m": 60.0,
	"h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


class ConfigError(ValueError):
	"""Invalid or unreadable configuration."""


@dataclass(frozen=True)
class ExporterConfig:
	"""Startup configuration. Never mutated after validation."""
	listen_addr: str = DEFAULT_ADDR
	interval_s: float = DEFAULT_INTERVAL_S
	buckets_start: int = 5
	buckets_width: int = 5
	buckets_count: int = 60
	binary: str = DEFAULT_BINARY
	log_level: str = "INFO"

	def validate(self) -> None:
		if not math.isfinite(self.interval_s) or self.interval_s < MIN_INTERVAL_S:
			raise ConfigError(
				f"Interval ({self.interval_s:g}s) must be >= {MIN_INTERVAL_S:g}s"
			)
		if self.buckets_width <= 0:
			raise ConfigError(f"Bucket width must be > 0, got {self.buckets_width}")
		if self.buckets_count < 1:
			raise ConfigError(f"Bucket count must be >= 1, got {self.buckets_count}")
		if not self.binary:
			raise ConfigError("Speed-test binary name must not be empty")
		if not isinstance(logging.getLevelName(self.log_level.upper()), int):
			raise ConfigError(f"Unknown log level: {self.log_level}")
		parse_listen_addr(self.listen_addr)

	@property
	def bind_address(self) -> Tuple[str, int]:
		return parse_listen_addr(self.listen_addr)


def parse_duration(value: Any) -> float:
	"""
	Parse a duration into seconds.

	Accepts Go-style strings ("30s", "1m30s", "500ms", "1h") and plain
	numbers, which are taken as seconds.
	"""
	if isinstance(value, bool):
		raise ConfigError(f"Invalid duration: {value!r}")
	if isinstance(value, (int, float)):
		return _finite(float(value), value)
	if not isinstance(value, str):
		raise ConfigError(f"Invalid duration: {value!r}")

	text = value.strip()
	try:
		seconds = float(text)
	except ValueError:
		pass
	else:
		return _finite(seconds, value)

	sign = 1.0
	if text[:1] in ("+", "-"):
		sign = -1.0 if text[0] == "-" else 1.0
		text = text[1:]
	if not text:
		raise ConfigError(f"Invalid duration: {value!r}")

	total = 0.0
	pos = 0
	for match in _DURATION_PART.finditer(text):
		if match.start() != pos:
			break
		total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
		pos = match.end()
	if pos != len(text):
		raise ConfigError(f"Invalid duration: {value!r}")
	return sign * total


def _finite(seconds: float, value: Any) -> float:
	if not math.isfinite(seconds):
		raise ConfigError(f"Invalid duration: {value!r}")
	return seconds


def parse_listen_addr(addr: str) -> Tuple[str, int]:
	"""Split a `host:port` listen address. An empty host means all interfaces."""
	host, sep, port_str = addr.rpartition(":")
	if not sep:
		raise ConfigError(f"Invalid listen address {addr!r}: missing port")
	if host.startswith("[") and host.endswith("]"):
		host = host[1:-1]
	elif ":" in host:
		raise ConfigError(f"Invalid listen address {addr!r}: IPv6 hosts must be bracketed")

	try:
		port = int(port_str)
	except ValueError:
		raise ConfigError(f"Invalid listen address {addr!r}: bad port {port_str!r}") from None
	if not 0 <= port <= 65535:
		raise ConfigError(f"Invalid listen address {addr!r}: port out of range")
	return host or "0.0.0.0", port


def load_config_file(path: str) -> Dict[str, Any]:
	"""Load overrides from a YAML file keyed like the command line flags."""
	try:
		with open(path, 'r') as f:
			data = yaml.safe_load(f)
	except OSError as e:
		raise ConfigError(f"Unable to read config file {path}: {e}") from e
	except yaml.YAMLError as e:
		raise ConfigError(f"Invalid YAML in config file {path}: {e}") from e

	if data is None:
		return {}
	if not isinstance(data, dict):
		raise ConfigError(f"Config file {path} must contain a mapping")

	unknown = sorted(set(data) - set(FILE_KEYS))
	if unknown:
		raise ConfigError(f"Unknown keys in config file {path}: {', '.join(unknown)}")

	values = {FILE_KEYS[key]: value for key, value in data.items()}
	logger.info(f"Loaded config file {path}: {', '.join(sorted(data))}")
	return values


def _coerce(values: Mapping[str, Any]) -> Dict[str, Any]:
	coerced: Dict[str, Any] = {}
	for name, value in values.items():
		if value is None:
			continue
		try:
			if name == "interval_s":
				coerced[name] = parse_duration(value)
			elif name.startswith("buckets_"):
				if isinstance(value, bool) or float(value) != int(value):
					raise ValueError(value)
				coerced[name] = int(value)
			else:
				coerced[name] = str(value)
		except (TypeError, ValueError):
			raise ConfigError(f"Invalid value for {name}: {value!r}") from None
	return coerced


def build_config(
	overrides: Optional[Mapping[str, Any]] = None,
	config_path: Optional[str] = None,
) -> ExporterConfig:
	"""
	Build a validated config.

	Precedence is defaults, then the YAML file (if any), then `overrides`
	(the command line). `None` values in overrides are ignored.
	"""
	known = {f.name for f in fields(ExporterConfig)}
	config = ExporterConfig()
	if config_path:
		config = replace(config, **_coerce(load_config_file(config_path)))
	if overrides:
		unknown = set(overrides) - known
		if unknown:
			raise ConfigError(f"Unknown settings: {', '.join(sorted(unknown))}")
		config = replace(config, **_coerce(overrides))
	config.validate()
	return config
