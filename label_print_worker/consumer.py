"""
Queue Consumer
==============

RabbitMQ subscription that feeds job references to the orchestrator.

Delivery is at-least-once with manual acknowledgment:

- message ``{"jobId": 10}`` is handed to a worker thread
- the orchestrator runs inside a bounded retry policy
  (3 retries, exponential backoff 2s, 4s, 8s)
- success (including jobs that ended in ``error``) -> ack
- retries exhausted -> original body published to the dead-letter queue
  with failure headers, then ``basic_nack(requeue=False)``

pika's BlockingConnection is not thread-safe, so worker threads hand every
channel operation back to the connection thread with
``add_callback_threadsafe``.
"""

import json
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict

import pika
from pika.exceptions import AMQPConnectionError

from .config import (
    AMQP_URL, RABBITMQ_HOST, RABBITMQ_PORT, RABBITMQ_USER, RABBITMQ_PASSWORD,
    RABBITMQ_VHOST, RABBITMQ_HEARTBEAT, QUEUE_NAME, DLQ_NAME,
    MAX_RETRIES, RETRY_BASE_DELAY, WORKER_CONCURRENCY,
)
from .errors import InvalidMessageError, PrintWorkerError
from .orchestrator import JobOrchestrator

logger = logging.getLogger(__name__)

# Persistent delivery mode for dead-lettered messages
PERSISTENT = 2


# =============================================================================
# Retry Policy
# =============================================================================

class RetryExhausted(Exception):
    """All attempts of a retried call failed."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f'Failed after {attempts} attempt(s): {last_error}')
        self.attempts = attempts
        self.last_error = last_error


class RetryPolicy:
    """
    Bounded exponential backoff.

    The first call is not a retry: ``max_retries=3`` means up to four calls,
    with ``base_delay * 2**(n-1)`` seconds before retry ``n``.
    """

    def __init__(self, max_retries: int = MAX_RETRIES, base_delay: float = RETRY_BASE_DELAY,
                 retry_on: tuple = (Exception,), sleep: Callable[[float], Any] = time.sleep):
        self.max_retries = max(0, max_retries)
        self.base_delay = base_delay
        self.retry_on = retry_on
        self._sleep = sleep

    def delay_for(self, retry: int) -> float:
        """Seconds to wait before retry number ``retry`` (1-based)."""
        return self.base_delay * (2 ** (retry - 1))

    def run(self, fn: Callable[[], Any], description: str = 'call') -> Any:
        """
        Call ``fn`` until it succeeds or retries run out.

        Raises:
            RetryExhausted: wrapping the last error
        """
        retry = 0
        while True:
            try:
                return fn()
            except self.retry_on as e:
                if retry >= self.max_retries:
                    raise RetryExhausted(retry + 1, e) from e
                retry += 1
                delay = self.delay_for(retry)
                logger.warning("%s failed (%s); retry %d/%d in %.1fs",
                               description, e, retry, self.max_retries, delay)
                self._sleep(delay)


# =============================================================================
# Broker Connection
# =============================================================================

def connection_parameters(url: str = AMQP_URL) -> pika.connection.Parameters:
    """Connection parameters from the AMQP URL or the individual settings."""
    if url:
        return pika.URLParameters(url)
    return pika.ConnectionParameters(
        host=RABBITMQ_HOST,
        port=RABBITMQ_PORT,
        virtual_host=RABBITMQ_VHOST,
        credentials=pika.PlainCredentials(RABBITMQ_USER, RABBITMQ_PASSWORD),
        heartbeat=RABBITMQ_HEARTBEAT,
    )


def connect(url: str = AMQP_URL, retry: RetryPolicy = None) -> pika.BlockingConnection:
    """Open a blocking connection, retrying while the broker is unreachable."""
    params = connection_parameters(url)
    retry = retry or RetryPolicy(retry_on=(AMQPConnectionError,))
    connection = retry.run(lambda: pika.BlockingConnection(params), 'Broker connection')
    logger.info("Connected to RabbitMQ at %s:%s", params.host, params.port)
    return connection


def parse_envelope(body: bytes) -> int:
    """
    Extract the job id from a message body.

    Accepts ``{"jobId": 10}`` and the legacy ``{"JobID": 10}``.

    Raises:
        InvalidMessageError: if the body is not a job envelope
    """
    try:
        data = json.loads(body)
    except (TypeError, ValueError) as e:
        raise InvalidMessageError(f'Message is not JSON: {e}')
    if not isinstance(data, dict):
        raise InvalidMessageError('Message is not a JSON object')

    job_id = data.get('jobId', data.get('JobID', data.get('jobID')))
    if isinstance(job_id, bool) or job_id is None:
        raise InvalidMessageError('Message has no jobId')
    try:
        return int(job_id)
    except (TypeError, ValueError):
        raise InvalidMessageError(f'Invalid jobId: {job_id!r}')


# =============================================================================
# Consumer
# =============================================================================

class PrintJobConsumer:
    """Consumes print job references and acks or dead-letters them."""

    def __init__(self, channel, orchestrator: JobOrchestrator, connection=None,
                 queue_name: str = QUEUE_NAME, dlq_name: str = DLQ_NAME,
                 concurrency: int = WORKER_CONCURRENCY, retry: RetryPolicy = None,
                 executor: ThreadPoolExecutor = None):
        """
        Initialize consumer.

        Args:
            channel: Open pika channel
            orchestrator: Processes the referenced jobs
            connection: Connection owning ``channel``; channel calls from worker
                threads are scheduled onto it (None runs them inline)
            concurrency: Worker threads, also the prefetch count
        """
        self.channel = channel
        self.connection = connection
        self.orchestrator = orchestrator
        self.queue_name = queue_name
        self.dlq_name = dlq_name
        self.concurrency = max(1, concurrency)
        self.retry = retry or RetryPolicy()
        self.executor = executor or ThreadPoolExecutor(
            max_workers=self.concurrency, thread_name_prefix='print-worker'
        )
        self._consumer_tag = None
        self._stopping = threading.Event()
        self._lock = threading.Lock()
        self._stats = {
            'received': 0,
            'acked': 0,
            'dead_lettered': 0,
            'failed_jobs': 0,
            'in_flight': 0,
        }

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def declare_queues(self):
        """Declare the job queue and the dead-letter queue (both durable)."""
        self.channel.queue_declare(queue=self.queue_name, durable=True)
        self.channel.queue_declare(queue=self.dlq_name, durable=True)

    def start(self):
        """Declare queues and consume until ``stop()``."""
        self.declare_queues()
        self.channel.basic_qos(prefetch_count=self.concurrency)
        self._consumer_tag = self.channel.basic_consume(
            queue=self.queue_name, on_message_callback=self.on_message, auto_ack=False
        )
        logger.info("Consuming from %s (concurrency %d, dead-letter queue %s)",
                    self.queue_name, self.concurrency, self.dlq_name)
        try:
            self.channel.start_consuming()
        finally:
            self._drain()

    def stop(self):
        """Stop consuming; safe to call from signal handlers and other threads."""
        if self._stopping.is_set():
            return
        self._stopping.set()
        logger.info("Stopping consumer")
        self._threadsafe(self._stop_consuming)

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    def _stop_consuming(self):
        if self.channel.is_open:
            self.channel.stop_consuming()

    def _drain(self):
        """Wait for in-flight jobs and flush their acks."""
        self.executor.shutdown(wait=True)
        if self.connection is not None and self.connection.is_open:
            self.connection.process_data_events(time_limit=1)
        logger.info("Consumer drained: %s", self.stats())

    def stats(self) -> Dict[str, int]:
        """Message counters."""
        with self._lock:
            return dict(self._stats)

    def _count(self, key: str, delta: int = 1):
        with self._lock:
            self._stats[key] += delta

    # =========================================================================
    # Message Handling
    # =========================================================================

    def on_message(self, channel, method, properties, body: bytes):
        """pika callback: hand the message to a worker thread."""
        self._count('received')
        self._count('in_flight')
        future = self.executor.submit(self.handle_message, method.delivery_tag, properties, body)
        future.add_done_callback(self._on_done)

    def _on_done(self, future: Future):
        self._count('in_flight', -1)
        error = future.exception()
        if error is not None:
            logger.error("Worker crashed handling a message", exc_info=error)

    def handle_message(self, delivery_tag: int, properties, body: bytes):
        """
        Process one delivery and settle it.

        Runs on a worker thread.
        """
        try:
            job_id = parse_envelope(body)
        except InvalidMessageError as e:
            logger.error("Rejecting message %s: %s", delivery_tag, e)
            self._dead_letter(delivery_tag, properties, body, str(e))
            return

        try:
            result = self.retry.run(lambda: self.orchestrator.process(job_id), f'Job {job_id}')
        except RetryExhausted as e:
            reason = f'{type(e.last_error).__name__}: {e.last_error}'
            logger.error("Job %s failed after %d attempt(s), dead-lettering: %s",
                         job_id, e.attempts, reason)
            try:
                self.orchestrator.mark_failed(job_id, f'Failed after {e.attempts} attempts: {e.last_error}')
            except PrintWorkerError as err:
                logger.error("Could not mark job %s failed: %s", job_id, err)
            except Exception:
                logger.exception("Could not mark job %s failed", job_id)
            finally:
                # The delivery is always settled, even if the job record is unusable
                self._dead_letter(delivery_tag, properties, body, reason)
            return

        if not result.get('success'):
            self._count('failed_jobs')
        self._ack(delivery_tag)

    def _ack(self, delivery_tag: int):
        def ack():
            self.channel.basic_ack(delivery_tag=delivery_tag)
            self._count('acked')
        self._threadsafe(ack)

    def _dead_letter(self, delivery_tag: int, properties, body: bytes, reason: str):
        """Publish the original body to the dead-letter queue, then nack."""
        message_id = getattr(properties, 'message_id', None) or f'delivery-{delivery_tag}'
        headers = dict(getattr(properties, 'headers', None) or {})
        headers.update({
            'x-original-message-id': message_id,
            'x-failure-reason': reason[:1000],
            'x-failure-time': datetime.now(timezone.utc).isoformat(),
        })
        dlq_properties = pika.BasicProperties(
            headers=headers,
            message_id=message_id,
            content_type=getattr(properties, 'content_type', None) or 'application/json',
            delivery_mode=PERSISTENT,
        )

        def publish():
            self.channel.basic_publish(
                exchange='', routing_key=self.dlq_name, body=body, properties=dlq_properties
            )
            self.channel.basic_nack(delivery_tag=delivery_tag, requeue=False)
            self._count('dead_lettered')
        self._threadsafe(publish)

    def _threadsafe(self, fn: Callable[[], None]):
        """Run a channel operation on the connection thread."""
        if self.connection is None:
            fn()
        else:
            self.connection.add_callback_threadsafe(fn)
