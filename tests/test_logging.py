import json
import logging
import sys
import threading

import pytest

from label_print_worker.logging_setup import (
    JobIdFilter, JsonFormatter, configure_logging, current_job_id, job_context,
)


def _record(msg='hello', exc_info=None):
    return logging.LogRecord('label_print_worker.test', logging.INFO, __file__, 1, msg, None, exc_info)


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers = handlers
    root.setLevel(level)


def test_job_context_nests_and_restores():
    assert current_job_id() == '-'
    with job_context(10):
        assert current_job_id() == 10
        with job_context(11):
            assert current_job_id() == 11
        assert current_job_id() == 10
    assert current_job_id() == '-'


def test_job_context_is_per_thread():
    seen = []
    with job_context(10):
        thread = threading.Thread(target=lambda: seen.append(current_job_id()))
        thread.start()
        thread.join()
    assert seen == ['-']


def test_filter_stamps_job_id():
    record = _record()
    with job_context(42):
        assert JobIdFilter().filter(record) is True
    assert record.job_id == 42


def test_json_formatter():
    record = _record('Rendered %d label(s)')
    record.args = (2,)
    record.job_id = 7
    data = json.loads(JsonFormatter().format(record))
    assert data['msg'] == 'Rendered 2 label(s)'
    assert data['level'] == 'INFO'
    assert data['logger'] == 'label_print_worker.test'
    assert data['job_id'] == 7
    assert 'exc' not in data


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError('printer on fire')
    except RuntimeError:
        record = _record('failed', exc_info=sys.exc_info())
    data = json.loads(JsonFormatter().format(record))
    assert 'printer on fire' in data['exc']
    assert data['job_id'] == '-'


def test_configure_logging_single_handler(restore_root):
    configure_logging('DEBUG', json_logs=False)
    root = configure_logging('DEBUG', json_logs=True)
    assert len(root.handlers) == 1
    handler = root.handlers[0]
    assert isinstance(handler.formatter, JsonFormatter)
    assert any(isinstance(f, JobIdFilter) for f in handler.filters)
    assert root.level == logging.DEBUG
    assert logging.getLogger('pika').level == logging.WARNING


def test_text_format_carries_job_id(restore_root):
    root = configure_logging('INFO', json_logs=False)
    handler = root.handlers[0]
    record = _record('Job complete')
    with job_context(10):
        handler.filter(record)
    assert 'job=10: Job complete' in handler.format(record)
