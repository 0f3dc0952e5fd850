# Shared fixtures: in-memory store, fake pika channel/connection, and a
# raw TCP printer listening on 127.0.0.1.

import socket
import sys
import threading
import time
from pathlib import Path
from typing import List

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = str(Path(__file__).resolve().parent.parent)
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


_ensure_repo_root_on_syspath()

from label_print_worker.delivery import PrinterDeliveryClient  # noqa: E402
from label_print_worker.models import PrintJob, Template, Component, Printer  # noqa: E402
from label_print_worker.stores import MemoryStore  # noqa: E402


# =============================================================================
# Printer stub
# =============================================================================

class PrinterStub:
    """Accepts raw TCP connections and records the bytes each one sent."""

    def __init__(self):
        self._server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._server.bind(('127.0.0.1', 0))
        self._server.listen(5)
        self._server.settimeout(0.1)
        self.port = self._server.getsockname()[1]
        self.received: List[bytes] = []
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    @property
    def address(self) -> str:
        return f'127.0.0.1:{self.port}'

    def _serve(self):
        while not self._stop.is_set():
            try:
                conn, _ = self._server.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            with conn:
                conn.settimeout(5)
                chunks = []
                while True:
                    data = conn.recv(65536)
                    if not data:
                        break
                    chunks.append(data)
                self.received.append(b''.join(chunks))

    def wait_for(self, count: int, timeout: float = 5.0) -> List[bytes]:
        deadline = time.time() + timeout
        while len(self.received) < count and time.time() < deadline:
            time.sleep(0.01)
        return self.received

    def close(self):
        self._stop.set()
        self._thread.join(timeout=2)
        self._server.close()


@pytest.fixture
def printer_stub():
    stub = PrinterStub()
    yield stub
    stub.close()


@pytest.fixture
def closed_port():
    """A local port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(('127.0.0.1', 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


# =============================================================================
# Delivery
# =============================================================================

class RecordingDelivery(PrinterDeliveryClient):
    """Delivery client that records sends instead of opening connections."""

    def __init__(self, succeed: bool = True):
        super().__init__()
        self.succeed = succeed
        self.sent = []

    def send(self, address, payload, options=None):
        self.sent.append((address, payload, options))
        if self.succeed:
            return {'success': True, 'transport': 'recorded', 'copies': options.copies}
        return {'success': False, 'transport': 'recorded', 'error': 'printer offline'}


@pytest.fixture
def delivery():
    return RecordingDelivery()


# =============================================================================
# Store
# =============================================================================

ZPL_TEMPLATE_ID = 1
TSPL_TEMPLATE_ID = 2
HTML_TEMPLATE_ID = 3


@pytest.fixture
def store():
    """Job 10 for batch ABC123 on a 400x300 ZPL template with a ${BatchNo} barcode."""
    s = MemoryStore()
    s.add_template(
        Template(template_id=ZPL_TEMPLATE_ID, name='Bag label', engine='ZPL', width=400, height=300),
        [Component(component_id=1, component_type='barcode', x=20, y=20,
                   placeholder='BatchNo', barcode_format='CODE128')],
    )
    s.add_template(
        Template(template_id=TSPL_TEMPLATE_ID, name='Bag label TSC', engine='TSC',
                 raw_content='TEXT 10,10,"3",0,1,1,"${ProductName} ${BagNo}"'),
    )
    s.add_template(
        Template(template_id=HTML_TEMPLATE_ID, name='Preview', engine='HTML'),
        [Component(component_id=2, component_type='text', x=10, y=10, placeholder='ProductName')],
    )
    s.add_printer(Printer(printer_id=1, name='Line 1', address='10.0.0.5'))
    s.add_batch('ABC123', {'ProductName': 'Feed Pellets', 'BatchNo': 'ABC123'})
    s.add_bag('ABC123', '000001', {'NetWeight': '25.0'})
    s.add_bag('ABC123', '000002', {'NetWeight': '24.8'})
    s.add_job(PrintJob(job_id=10, batch_no='ABC123', template_id=ZPL_TEMPLATE_ID))
    return s


# =============================================================================
# Broker fakes
# =============================================================================

class FakeMethod:
    def __init__(self, delivery_tag):
        self.delivery_tag = delivery_tag


class FakeProperties:
    def __init__(self, message_id=None, headers=None, content_type='application/json'):
        self.message_id = message_id
        self.headers = headers
        self.content_type = content_type


class FakeChannel:
    """Records every channel call the consumer makes."""

    def __init__(self):
        self.is_open = True
        self.declared = []
        self.qos = None
        self.consumers = []
        self.published = []
        self.acked = []
        self.nacked = []
        self.consuming = False
        self.stopped = False

    def queue_declare(self, queue, durable=False, **kwargs):
        self.declared.append((queue, durable))

    def basic_qos(self, prefetch_count=0, **kwargs):
        self.qos = prefetch_count

    def basic_consume(self, queue, on_message_callback, auto_ack=False, **kwargs):
        self.consumers.append((queue, on_message_callback, auto_ack))
        return 'ctag-1'

    def basic_publish(self, exchange, routing_key, body, properties=None, **kwargs):
        self.published.append({'exchange': exchange, 'routing_key': routing_key,
                               'body': body, 'properties': properties})

    def basic_ack(self, delivery_tag):
        self.acked.append(delivery_tag)

    def basic_nack(self, delivery_tag, requeue=True):
        self.nacked.append((delivery_tag, requeue))

    def start_consuming(self):
        self.consuming = True

    def stop_consuming(self):
        self.stopped = True
        self.consuming = False

    def close(self):
        self.is_open = False


class FakeConnection:
    """Runs thread-safe callbacks immediately and records them."""

    def __init__(self):
        self.is_open = True
        self.callbacks = []
        self.processed = 0

    def add_callback_threadsafe(self, callback):
        self.callbacks.append(callback)
        callback()

    def process_data_events(self, time_limit=0):
        self.processed += 1

    def close(self):
        self.is_open = False


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def connection():
    return FakeConnection()
