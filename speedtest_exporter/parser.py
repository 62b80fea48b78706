"""Parser for the `--simple` output of the speed-test tool."""

from __future__ import annotations

EXPECTED_UNIT = "Mbps"


class OutputError(ValueError):
	"""Raised when the tool's output does not match `<float> Mbps`."""


class MalformedOutput(OutputError):
	pass


class UnexpectedUnit(OutputError):
	pass


class NotANumber(OutputError):
	pass


def parse_output(text: str) -> float:
	"""
	Parse a throughput reading such as ``"123.45 Mbps\\n"``.

	Returns the value in megabits per second. Raises a subclass of
	OutputError when the field count, the unit or the number is wrong.
	"""
	fields = text.strip().split()
	if len(fields) != 2:
		raise MalformedOutput(f"expected 2 fields, got {len(fields)}")

	value, unit = fields
	if unit != EXPECTED_UNIT:
		raise UnexpectedUnit(f"expected unit {EXPECTED_UNIT}, got {unit!r}")

	try:
		return float(value)
	except ValueError as e:
		raise NotANumber(f"value is not a float: {value!r}") from e
