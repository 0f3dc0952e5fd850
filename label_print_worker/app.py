"""
Label Print Worker - Health Endpoint
====================================

Small Flask app for liveness checks and consumer counters.

    GET /health  - Service status, version and message counters

Served by ``HealthServer`` on a background thread next to the consumer.
"""

import logging
import platform
import socket
import sys
import threading
from datetime import datetime

from flask import Flask, jsonify
from werkzeug.serving import make_server

from . import __version__
from .config import HEALTH_HOST, HEALTH_PORT, QUEUE_NAME, DLQ_NAME

logger = logging.getLogger(__name__)


def create_app(consumer=None) -> Flask:
    """
    Build the health app.

    Args:
        consumer: PrintJobConsumer whose counters are reported (optional)
    """
    app = Flask(__name__)

    @app.route('/health', methods=['GET'])
    def health():
        """Health check with consumer counters."""
        stopping = consumer is not None and consumer.stopping
        return jsonify({
            'status': 'stopping' if stopping else 'online',
            'service': 'label-print-worker',
            'version': __version__,
            'hostname': socket.gethostname(),
            'platform': platform.system(),
            'python': sys.version.split()[0],
            'queue': QUEUE_NAME,
            'dead_letter_queue': DLQ_NAME,
            'consumer': consumer.stats() if consumer is not None else None,
            'timestamp': datetime.now().isoformat(),
        }), 503 if stopping else 200

    return app


class HealthServer:
    """Runs the health app on a daemon thread."""

    def __init__(self, app: Flask, host: str = HEALTH_HOST, port: int = HEALTH_PORT):
        self.app = app
        self.host = host
        self.port = port
        self._server = None
        self._thread = None

    def start(self):
        """Bind and serve in the background."""
        self._server = make_server(self.host, self.port, self.app, threaded=True)
        self.port = self._server.server_port
        self._thread = threading.Thread(
            target=self._server.serve_forever, name='health-server', daemon=True
        )
        self._thread.start()
        logger.info("Health endpoint on http://%s:%s/health", self.host, self.port)

    def stop(self):
        """Shut the server down and wait for its thread."""
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        self._thread.join(timeout=5)
        self._server = None
        logger.info("Health endpoint stopped")
