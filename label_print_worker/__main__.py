"""
Label Print Worker - Entry Point

Run: python -m label_print_worker
"""

import logging
import signal

from . import __version__
from .app import create_app, HealthServer
from .config import (
    STORE_BACKEND, STORE_API_URL, STORE_API_KEY, STORE_TIMEOUT, DATA_DIR,
    HEALTH_PORT, QUEUE_NAME, DLQ_NAME, WORKER_CONCURRENCY, RENDER_FAILURE_POLICY,
)
from .consumer import PrintJobConsumer, connect
from .delivery import PrinterDeliveryClient
from .logging_setup import configure_logging
from .orchestrator import JobOrchestrator
from .renderers import RendererFactory
from .stores import create_store

logger = logging.getLogger(__name__)


def install_signal_handlers(consumer: PrintJobConsumer):
    """Stop consuming on SIGINT/SIGTERM."""
    def handle(signum, frame):
        logger.info("Received %s", signal.Signals(signum).name)
        consumer.stop()

    signal.signal(signal.SIGINT, handle)
    signal.signal(signal.SIGTERM, handle)


def main():
    """Run the worker until a termination signal."""
    configure_logging()
    logger.info("Label Print Worker %s", __version__)
    logger.info("Store: %s, queue: %s, dead-letter queue: %s, workers: %d, render failures: %s",
                STORE_BACKEND, QUEUE_NAME, DLQ_NAME, WORKER_CONCURRENCY, RENDER_FAILURE_POLICY)

    store = create_store(STORE_BACKEND, base_url=STORE_API_URL, api_key=STORE_API_KEY,
                         timeout=STORE_TIMEOUT, data_dir=DATA_DIR)
    factory = RendererFactory(PrinterDeliveryClient())
    orchestrator = JobOrchestrator.from_store(store, factory=factory)

    connection = connect()
    channel = connection.channel()
    consumer = PrintJobConsumer(channel, orchestrator, connection=connection)
    install_signal_handlers(consumer)

    health = None
    if HEALTH_PORT > 0:
        health = HealthServer(create_app(consumer))
        health.start()

    try:
        consumer.start()
    finally:
        if health is not None:
            health.stop()
        if channel.is_open:
            channel.close()
        if connection.is_open:
            connection.close()
        logger.info("Label Print Worker stopped")


if __name__ == '__main__':
    main()
