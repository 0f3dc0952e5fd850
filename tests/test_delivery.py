import subprocess
import sys
import threading

import pytest

from label_print_worker import delivery as delivery_module
from label_print_worker.delivery import (
    PrintOptions, PrinterDeliveryClient, PrinterGate, parse_network_address,
)


@pytest.mark.parametrize('address,expected', [
    ('10.0.0.5', ('10.0.0.5', 9100)),
    ('10.0.0.5:9101', ('10.0.0.5', 9101)),
    (' 192.168.1.20 ', ('192.168.1.20', 9100)),
    ('300.0.0.1', None),
    ('ZebraGX420', None),
    ('\\\\server\\Zebra', None),
    ('', None),
])
def test_parse_network_address(address, expected):
    assert parse_network_address(address) == expected


def test_network_delivery_sends_preamble_then_each_copy(printer_stub):
    client = PrinterDeliveryClient(sleep=lambda s: None)
    options = PrintOptions(copies=3, preamble=b'DENSITY 10\r\n')
    assert client.deliver(printer_stub.address, b'^XA^FDABC123^FS^XZ', options)
    received, = printer_stub.wait_for(1)
    assert received == b'DENSITY 10\r\n' + b'^XA^FDABC123^FS^XZ' * 3


def test_inter_copy_delay(printer_stub):
    delays = []
    client = PrinterDeliveryClient(sleep=delays.append)
    client.deliver(printer_stub.address, b'x', PrintOptions(copies=3, inter_copy_delay=0.25))
    assert delays == [0.25, 0.25]


def test_unreachable_printer_returns_false(closed_port):
    client = PrinterDeliveryClient()
    result = client.send(f'127.0.0.1:{closed_port}', b'^XA^XZ', PrintOptions(connect_timeout=1))
    assert result['success'] is False
    assert result['transport'] == 'network'
    assert '127.0.0.1' in result['error']
    assert client.deliver(f'127.0.0.1:{closed_port}', b'^XA^XZ', PrintOptions(connect_timeout=1)) is False


def test_missing_address():
    assert PrinterDeliveryClient().deliver('', b'x') is False


def test_unexpected_errors_do_not_escape(monkeypatch):
    client = PrinterDeliveryClient()

    def boom(*args, **kwargs):
        raise RuntimeError('spooler exploded')

    monkeypatch.setattr(client, '_send_local', boom)
    result = client.send('OfficePrinter', b'x')
    assert result == {'success': False, 'transport': None, 'error': 'spooler exploded'}


def test_cups_delivery(monkeypatch):
    calls = []

    def fake_run(command, input=None, capture_output=False, timeout=None):
        calls.append((command, input, timeout))
        return subprocess.CompletedProcess(command, 0, stdout=b'request id is Office-42', stderr=b'')

    monkeypatch.setattr(sys, 'platform', 'linux')
    monkeypatch.setattr(delivery_module.subprocess, 'run', fake_run)

    client = PrinterDeliveryClient()
    options = PrintOptions(copies=2, preamble=b'DENSITY 8\r\n', document_name='Job 10')
    result = client.send('Office', b'payload', options)

    assert result['success'] is True
    assert result['transport'] == 'cups'
    command, data, timeout = calls[0]
    assert command == ['lp', '-d', 'Office', '-n', '2', '-o', 'raw', '-t', 'Job 10']
    assert data == b'DENSITY 8\r\npayload'
    assert timeout > 0


def test_cups_failure(monkeypatch):
    monkeypatch.setattr(sys, 'platform', 'linux')
    monkeypatch.setattr(
        delivery_module.subprocess, 'run',
        lambda command, **kwargs: subprocess.CompletedProcess(command, 1, stdout=b'',
                                                               stderr=b'lp: The printer or class does not exist.'),
    )
    result = PrinterDeliveryClient().send('Nope', b'x')
    assert result['success'] is False
    assert 'does not exist' in result['error']


def test_cups_missing(monkeypatch):
    def missing(*args, **kwargs):
        raise FileNotFoundError('lp')

    monkeypatch.setattr(sys, 'platform', 'linux')
    monkeypatch.setattr(delivery_module.subprocess, 'run', missing)
    result = PrinterDeliveryClient().send('Office', b'x')
    assert result == {'success': False, 'transport': 'cups', 'error': 'lp command not available'}


def test_gate_times_out_per_printer():
    gate = PrinterGate(max_in_flight=1, acquire_timeout=0.05)
    with gate.slot('10.0.0.5'):
        with pytest.raises(TimeoutError):
            with gate.slot('10.0.0.5'):
                pass
        # other printers are not held up
        with gate.slot('10.0.0.6'):
            pass
    with gate.slot('10.0.0.5'):
        pass


def test_gate_bounds_concurrent_deliveries():
    gate = PrinterGate(max_in_flight=2, acquire_timeout=5)
    lock = threading.Lock()
    active, peak = [0], [0]
    release = threading.Event()

    def worker():
        with gate.slot('10.0.0.5'):
            with lock:
                active[0] += 1
                peak[0] = max(peak[0], active[0])
            release.wait(0.2)
            with lock:
                active[0] -= 1

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert peak[0] == 2


def test_busy_printer_reported_as_failure():
    gate = PrinterGate(max_in_flight=1, acquire_timeout=0.05)
    client = PrinterDeliveryClient(gate=gate)
    with gate.slot('10.0.0.5'):
        result = client.send('10.0.0.5', b'x')
    assert result['success'] is False
    assert 'busy' in result['error']
