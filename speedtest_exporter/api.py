from __future__ import annotations

from typing import Any

from flask import Flask, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from speedtest_exporter.metrics import SpeedtestMetrics

METRICS_PATH = "/metrics"


def create_app(metrics: SpeedtestMetrics) -> Flask:
	app = Flask(__name__)
	app.config['speedtest_metrics'] = metrics

	@app.get(METRICS_PATH)
	def scrape() -> Any:
		registry = app.config['speedtest_metrics'].registry
		return Response(generate_latest(registry), content_type=CONTENT_TYPE_LATEST)

	return app
