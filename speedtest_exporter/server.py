"""Background HTTP server for the metrics Flask app."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from flask import Flask
from werkzeug.serving import BaseWSGIServer, make_server

logger = logging.getLogger(__name__)


class ServerError(RuntimeError):
	"""The metrics server could not start or stopped unexpectedly."""


class MetricsServer:
	"""
	Serves a Flask app from a daemon thread.

	Binding happens synchronously in start() so an unusable address is a
	startup failure. If serving stops for any reason other than
	shutdown(), `on_failure` is called with the exception.
	"""

	def __init__(
		self,
		app: Flask,
		host: str,
		port: int,
		on_failure: Optional[Callable[[BaseException], None]] = None,
	) -> None:
		self.app = app
		self.host = host
		self.requested_port = port
		self.on_failure = on_failure

		self._server: Optional[BaseWSGIServer] = None
		self._thread: Optional[threading.Thread] = None
		self._stopping = threading.Event()

	@property
	def port(self) -> int:
		if self._server is None:
			return self.requested_port
		return self._server.server_port

	@property
	def running(self) -> bool:
		return self._thread is not None and self._thread.is_alive()

	def start(self) -> None:
		if self._thread is not None:
			logger.warning("MetricsServer already running")
			return

		try:
			self._server = make_server(self.host, self.requested_port, self.app, threaded=True)
		# werkzeug reports bind failures with sys.exit(1)
		except (OSError, SystemExit) as e:
			raise ServerError(f"Unable to listen on {self.host}:{self.requested_port}: {e}") from e

		self._stopping.clear()
		self._thread = threading.Thread(
			target=self._serve,
			name="metrics-server",
			daemon=True
		)
		self._thread.start()
		logger.info(f"Serving metrics on {self.host}:{self.port}")

	def shutdown(self) -> None:
		if self._server is None:
			return

		self._stopping.set()
		if self.running:
			self._server.shutdown()
			self._thread.join(timeout=5.0)
		self._server.server_close()
		self._server = None
		self._thread = None
		logger.info("Metrics server stopped")

	def _serve(self) -> None:
		error: Optional[BaseException] = None
		try:
			self._server.serve_forever()
		except Exception as e:
			error = e

		if self._stopping.is_set():
			return
		if error is None:
			error = ServerError("serve_forever returned without shutdown")
		logger.error(f"Metrics server returned unexpected error: {error}")
		if self.on_failure:
			self.on_failure(error)
