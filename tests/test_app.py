import pytest
import requests

from label_print_worker import __version__
from label_print_worker.app import create_app, HealthServer


class FakeConsumer:
    def __init__(self, stopping=False):
        self.stopping = stopping

    def stats(self):
        return {'received': 3, 'acked': 2, 'dead_lettered': 1, 'failed_jobs': 0, 'in_flight': 0}


def test_health_online():
    client = create_app(FakeConsumer()).test_client()
    response = client.get('/health')
    assert response.status_code == 200
    data = response.get_json()
    assert data['status'] == 'online'
    assert data['service'] == 'label-print-worker'
    assert data['version'] == __version__
    assert data['consumer']['dead_lettered'] == 1
    assert data['queue'] and data['dead_letter_queue']


def test_health_stopping():
    response = create_app(FakeConsumer(stopping=True)).test_client().get('/health')
    assert response.status_code == 503
    assert response.get_json()['status'] == 'stopping'


def test_health_without_consumer():
    data = create_app().test_client().get('/health').get_json()
    assert data['consumer'] is None


@pytest.fixture
def server():
    server = HealthServer(create_app(FakeConsumer()), host='127.0.0.1', port=0)
    server.start()
    yield server
    server.stop()


def test_health_server_serves_over_http(server):
    assert server.port != 0
    response = requests.get(f'http://127.0.0.1:{server.port}/health', timeout=5)
    assert response.status_code == 200
    assert response.json()['consumer']['received'] == 3


def test_stop_twice_is_harmless(server):
    server.stop()
    server.stop()
