"""
fast-cli Prometheus exporter package.

Modules:
- config: flags/YAML configuration, duration and listen-address parsing
- parser: parser for the speed-test tool's simplified output
- metrics: explicit registry holding the exported instruments
- runner: one measurement cycle (subprocess, parse, record)
- scheduler: fixed-interval loop driving the runner
- api: Flask app serving the metrics exposition
- server: background HTTP server for the Flask app
- supervisor: process entry point wiring everything together
"""

__version__ = "0.1.0"
