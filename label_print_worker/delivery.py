"""
Printer Delivery
================

Sends rendered payloads to printers.

Transport is chosen from the printer address:
- ``10.0.0.5`` / ``10.0.0.5:9100`` -> raw TCP (port 9100 by default)
- anything else -> local spooler (Windows RAW spooler, CUPS ``lp`` elsewhere)

Deliveries to the same printer address go through a per-printer gate so a
slow or unreachable printer only holds up jobs for that printer.
"""

import logging
import re
import socket
import subprocess
import sys
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Any, Optional, Tuple

from .config import (
    PRINTER_PORT, CONNECT_TIMEOUT, WRITE_TIMEOUT, INTER_COPY_DELAY,
    LOCAL_SPOOL_TIMEOUT, PRINTER_MAX_IN_FLIGHT, PRINTER_ACQUIRE_TIMEOUT,
    DEFAULT_DARKNESS,
)

logger = logging.getLogger(__name__)

NETWORK_ADDRESS_RE = re.compile(r'^(\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})(?::(\d{1,5}))?$')


@dataclass
class PrintOptions:
    """Options for delivering a label."""

    copies: int = 1
    darkness: int = DEFAULT_DARKNESS
    preamble: bytes = b''
    document_name: str = 'Label'

    # Timeouts (seconds)
    connect_timeout: float = CONNECT_TIMEOUT
    write_timeout: float = WRITE_TIMEOUT
    inter_copy_delay: float = INTER_COPY_DELAY


def parse_network_address(address: str) -> Optional[Tuple[str, int]]:
    """
    Parse a dotted-quad printer address.

    Returns:
        (host, port) for network printers, None for local printer names
    """
    match = NETWORK_ADDRESS_RE.match((address or '').strip())
    if not match:
        return None
    host, port = match.group(1), match.group(2)
    if any(int(part) > 255 for part in host.split('.')):
        return None
    return host, int(port) if port else PRINTER_PORT


class PrinterGate:
    """Bounded number of concurrent deliveries per printer address."""

    def __init__(self, max_in_flight: int = PRINTER_MAX_IN_FLIGHT,
                 acquire_timeout: float = PRINTER_ACQUIRE_TIMEOUT):
        self.max_in_flight = max(1, max_in_flight)
        self.acquire_timeout = acquire_timeout
        self._lock = threading.Lock()
        self._semaphores: Dict[str, threading.BoundedSemaphore] = {}

    def _semaphore(self, address: str) -> threading.BoundedSemaphore:
        with self._lock:
            sem = self._semaphores.get(address)
            if sem is None:
                sem = threading.BoundedSemaphore(self.max_in_flight)
                self._semaphores[address] = sem
            return sem

    @contextmanager
    def slot(self, address: str):
        """
        Hold a delivery slot for ``address``.

        Raises:
            TimeoutError: if no slot frees up within ``acquire_timeout``
        """
        sem = self._semaphore(address)
        if not sem.acquire(timeout=self.acquire_timeout):
            raise TimeoutError(f'Printer {address} busy for more than {self.acquire_timeout}s')
        try:
            yield
        finally:
            sem.release()


class PrinterDeliveryClient:
    """Delivers payloads to network or local printers."""

    def __init__(self, gate: PrinterGate = None, sleep=time.sleep):
        self.gate = gate or PrinterGate()
        self._sleep = sleep

    def deliver(self, address: str, payload: bytes, options: PrintOptions = None) -> bool:
        """
        Deliver ``payload`` to the printer at ``address``.

        Never raises; failures are logged and reported as False.
        """
        result = self.send(address, payload, options)
        if result['success']:
            logger.info("Delivered %d byte(s) x%d to %s via %s",
                        len(payload), result.get('copies', 1), address, result['transport'])
        else:
            logger.error("Delivery to %s failed: %s", address, result.get('error'))
        return result['success']

    def send(self, address: str, payload: bytes, options: PrintOptions = None) -> Dict[str, Any]:
        """
        Deliver ``payload`` and return a result dict.

        Returns:
            Dict with success status, transport and error details
        """
        options = options or PrintOptions()
        if not address:
            return {'success': False, 'transport': None, 'error': 'Printer address not configured'}

        try:
            with self.gate.slot(address):
                network = parse_network_address(address)
                if network:
                    return self._send_network(network[0], network[1], payload, options)
                return self._send_local(address, payload, options)
        except TimeoutError as e:
            return {'success': False, 'transport': None, 'error': str(e)}
        except Exception as e:
            logger.exception("Unexpected delivery error for %s", address)
            return {'success': False, 'transport': None, 'error': str(e)}

    # =========================================================================
    # Network (raw TCP)
    # =========================================================================

    def _send_network(self, host: str, port: int, payload: bytes,
                      options: PrintOptions) -> Dict[str, Any]:
        """Send payload over a raw TCP connection, once per copy."""
        copies = max(1, options.copies)
        try:
            with socket.create_connection((host, port), timeout=options.connect_timeout) as sock:
                sock.settimeout(options.write_timeout)
                if options.preamble:
                    sock.sendall(options.preamble)
                for i in range(copies):
                    sock.sendall(payload)
                    if i < copies - 1 and options.inter_copy_delay > 0:
                        self._sleep(options.inter_copy_delay)

            return {
                'success': True,
                'transport': 'network',
                'host': host,
                'port': port,
                'copies': copies,
                'bytes_sent': len(options.preamble) + len(payload) * copies,
            }

        except socket.timeout:
            return {'success': False, 'transport': 'network',
                    'error': f'Connection timeout to {host}:{port}'}
        except ConnectionRefusedError:
            return {'success': False, 'transport': 'network',
                    'error': f'Connection refused by {host}:{port}'}
        except OSError as e:
            return {'success': False, 'transport': 'network',
                    'error': f'Network error for {host}:{port}: {e}'}

    # =========================================================================
    # Local spooler
    # =========================================================================

    def _send_local(self, printer_name: str, payload: bytes,
                    options: PrintOptions) -> Dict[str, Any]:
        """Send payload through the OS print spooler (best effort)."""
        if sys.platform == 'win32':
            return self._send_windows(printer_name, payload, options)
        return self._send_cups(printer_name, payload, options)

    def _send_windows(self, printer_name: str, payload: bytes,
                      options: PrintOptions) -> Dict[str, Any]:
        """Submit a RAW job per copy to the Windows spooler."""
        try:
            import win32print

            data = options.preamble + payload
            copies = max(1, options.copies)
            handle = win32print.OpenPrinter(printer_name)
            try:
                for _ in range(copies):
                    win32print.StartDocPrinter(handle, 1, (options.document_name, None, 'RAW'))
                    try:
                        win32print.StartPagePrinter(handle)
                        win32print.WritePrinter(handle, data)
                        win32print.EndPagePrinter(handle)
                    finally:
                        win32print.EndDocPrinter(handle)
            finally:
                win32print.ClosePrinter(handle)

            return {'success': True, 'transport': 'windows', 'printer': printer_name,
                    'copies': copies}

        except ImportError:
            return {'success': False, 'transport': 'windows',
                    'error': 'pywin32 required for Windows printing'}
        except Exception as e:
            return {'success': False, 'transport': 'windows', 'error': str(e)}

    def _send_cups(self, printer_name: str, payload: bytes,
                   options: PrintOptions) -> Dict[str, Any]:
        """Submit a raw job to CUPS via ``lp``."""
        copies = max(1, options.copies)
        command = ['lp', '-d', printer_name, '-n', str(copies), '-o', 'raw',
                   '-t', options.document_name]
        try:
            completed = subprocess.run(
                command,
                input=options.preamble + payload,
                capture_output=True,
                timeout=LOCAL_SPOOL_TIMEOUT,
            )
        except FileNotFoundError:
            return {'success': False, 'transport': 'cups', 'error': 'lp command not available'}
        except subprocess.TimeoutExpired:
            return {'success': False, 'transport': 'cups',
                    'error': f'lp timed out after {LOCAL_SPOOL_TIMEOUT}s'}

        if completed.returncode != 0:
            stderr = completed.stderr.decode('utf-8', errors='ignore').strip()
            return {'success': False, 'transport': 'cups',
                    'error': stderr or f'lp exited with {completed.returncode}'}

        return {'success': True, 'transport': 'cups', 'printer': printer_name,
                'copies': copies,
                'job': completed.stdout.decode('utf-8', errors='ignore').strip()}
