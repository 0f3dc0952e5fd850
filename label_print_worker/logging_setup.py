"""
Logging Setup
=============

- JobIdFilter stamps each record with the job id being processed on the
  current thread (``-`` outside a job)
- JsonFormatter for structured logs when LABEL_WORKER_JSON_LOGS=true
- configure_logging() installs one console handler on the root logger
"""

import json
import logging
import threading
from contextlib import contextmanager

from .config import LOG_LEVEL, JSON_LOGS

_local = threading.local()


@contextmanager
def job_context(job_id):
    """Tag log records emitted by this thread with ``job_id``."""
    previous = getattr(_local, 'job_id', None)
    _local.job_id = job_id
    try:
        yield
    finally:
        _local.job_id = previous


def current_job_id():
    job_id = getattr(_local, 'job_id', None)
    return '-' if job_id is None else job_id


class JobIdFilter(logging.Filter):
    """Attach ``job_id`` to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.job_id = current_job_id()
        return True


class JsonFormatter(logging.Formatter):
    """Minimal JSON formatter: timestamp, level, logger, message, job id."""

    def format(self, record: logging.LogRecord) -> str:
        base = {
            'ts': self.formatTime(record, self.datefmt),
            'level': record.levelname,
            'logger': record.name,
            'msg': record.getMessage(),
            'job_id': getattr(record, 'job_id', '-'),
        }
        if record.exc_info:
            base['exc'] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False, default=str)


def configure_logging(level: str = LOG_LEVEL, json_logs: bool = JSON_LOGS) -> logging.Logger:
    """
    Configure root logging for the worker.

    Clears existing root handlers so repeated calls do not duplicate output.

    Returns:
        The configured root logger
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    root.handlers = []

    if json_logs:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(name)s job=%(job_id)s: %(message)s')

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(JobIdFilter())
    root.addHandler(handler)

    # pika logs every connection step at INFO
    logging.getLogger('pika').setLevel(logging.WARNING)
    return root


__all__ = ['JobIdFilter', 'JsonFormatter', 'configure_logging', 'job_context', 'current_job_id']
