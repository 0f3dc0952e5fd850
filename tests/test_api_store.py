import base64
import json

import pytest
import requests

from label_print_worker.errors import (
    JobNotFoundError, TemplateNotFoundError, PrinterNotFoundError,
    StoreUnavailableError, InvalidRecordError, ConfigurationError,
)
from label_print_worker.models import JobStatus
from label_print_worker.stores import ApiStore, create_store, MemoryStore


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self.content = json.dumps(body).encode('utf-8') if body is not None else b''
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError('No JSON')
        return self._body


class FakeSession:
    """Returns queued responses (or raises queued exceptions) and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def request(self, method, url, json=None, headers=None, timeout=None):
        self.requests.append({'method': method, 'url': url, 'json': json,
                              'headers': headers, 'timeout': timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _store(*responses, **kwargs):
    session = FakeSession(*responses)
    return ApiStore('http://labels.local:5000/', session=session, **kwargs), session


def test_get_job_decodes_payload():
    store, session = _store(FakeResponse(body={
        'JobID': 10, 'BatchNo': 'ABC123', 'TemplateID': 1, 'Status': 'Rendered',
        'renderedPayload': base64.b64encode(b'^XA^XZ').decode('ascii'),
    }), api_key='secret', timeout=3)

    job = store.get_job(10)

    assert job.status == JobStatus.RENDERED
    assert job.rendered_payload == b'^XA^XZ'
    request = session.requests[0]
    assert request['url'] == 'http://labels.local:5000/api/jobs/10'
    assert request['headers']['Authorization'] == 'Bearer secret'
    assert request['timeout'] == 3


def test_no_auth_header_without_key():
    store, session = _store(FakeResponse(body={'PrinterID': 1, 'Address': '10.0.0.5'}))
    assert store.get_printer(1).address == '10.0.0.5'
    assert 'Authorization' not in session.requests[0]['headers']


@pytest.mark.parametrize('call,error', [
    (lambda s: s.get_job(1), JobNotFoundError),
    (lambda s: s.get_template(1), TemplateNotFoundError),
    (lambda s: s.get_printer(1), PrinterNotFoundError),
])
def test_not_found(call, error):
    store, _ = _store(FakeResponse(404))
    with pytest.raises(error):
        call(store)


def test_missing_batch_and_bag_return_none():
    store, session = _store(FakeResponse(404), FakeResponse(404))
    assert store.get_batch('ABC123-QC SAMPLE') is None
    assert store.get_bag('ABC123', '000001') is None
    assert session.requests[0]['url'].endswith('/api/batches/ABC123-QC%20SAMPLE')
    assert session.requests[1]['url'].endswith('/api/batches/ABC123/bags/000001')


@pytest.mark.parametrize('failure', [
    requests.exceptions.Timeout('slow'),
    requests.exceptions.ConnectionError('refused'),
    requests.exceptions.ChunkedEncodingError('connection broken mid-body'),
    FakeResponse(503),
])
def test_unavailable_is_transient(failure):
    store, _ = _store(failure)
    with pytest.raises(StoreUnavailableError):
        store.get_job(10)


def test_client_errors_are_terminal():
    store, _ = _store(FakeResponse(400, body={'error': 'bad id'}))
    with pytest.raises(InvalidRecordError):
        store.get_job(10)


def test_template_with_components():
    store, _ = _store(FakeResponse(body={
        'TemplateID': 1, 'Engine': 'ZPL', 'Content': '^XA^XZ',
        'Components': [{'ComponentID': 1, 'ComponentType': 'Text', 'Placeholder': 'ProductName'}],
    }))
    template, components = store.get_template(1)
    assert template.engine == 'ZPL'
    assert [c.component_id for c in components] == [1]


def test_status_and_payload_writes():
    store, session = _store(FakeResponse(204), FakeResponse(204))
    store.update_status(10, JobStatus.ERROR, 'Printer offline')
    store.save_payload(10, b'^XA^XZ')

    status, payload = session.requests
    assert status['method'] == 'PUT'
    assert status['url'].endswith('/api/jobs/10/status')
    assert status['json'] == {'status': 'error', 'errorMessage': 'Printer offline'}
    assert payload['url'].endswith('/api/jobs/10/payload')
    assert base64.b64decode(payload['json']['payload_base64']) == b'^XA^XZ'


def test_create_store(tmp_path):
    (tmp_path / 'store.json').write_text(json.dumps({
        'jobs': [{'JobID': 1, 'BatchNo': 'B1', 'TemplateID': 2}],
        'batches': {'B1': {'ProductName': 'Meal'}},
    }), encoding='utf-8')

    store = create_store('file', data_dir=str(tmp_path))
    assert isinstance(store, MemoryStore)
    assert store.get_job(1).batch_no == 'B1'
    assert store.get_batch('B1') == {'ProductName': 'Meal'}

    assert isinstance(create_store('api', base_url='http://labels'), ApiStore)
    with pytest.raises(ConfigurationError):
        create_store('sql')


def test_corrupt_payload_is_invalid_record():
    store, _ = _store(FakeResponse(body={
        'JobID': 10, 'BatchNo': 'ABC123', 'TemplateID': 1, 'Status': 'Rendered',
        'renderedPayload': '^XA not base64 ^XZ',
    }))
    with pytest.raises(InvalidRecordError):
        store.get_job(10)
