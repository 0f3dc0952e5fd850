"""
API Store
=========

Store implementation over the label system REST API.

Usage:
    from label_print_worker.stores.api import ApiStore

    store = ApiStore('http://labels.local:5000', api_key='your-key')
    job = store.get_job(10)

Endpoints used:
    GET  /api/jobs/{id}                     - Job row
    PUT  /api/jobs/{id}/status              - Status + error message
    PUT  /api/jobs/{id}/payload             - Rendered payload (base64)
    GET  /api/templates/{id}                - Template row with Components
    GET  /api/printers/{id}                 - Printer row
    GET  /api/batches/{batchNo}             - Batch row
    GET  /api/batches/{batchNo}/bags/{bag}  - Bag row
"""

import base64
import logging
from typing import Dict, Any, Optional, List, Tuple
from urllib.parse import quote

import requests

from ..config import STORE_TIMEOUT
from ..errors import (
    StoreUnavailableError, DataNotFoundError, JobNotFoundError,
    TemplateNotFoundError, PrinterNotFoundError, InvalidRecordError,
)
from ..models import PrintJob, JobStatus, Template, Component, Printer
from .base import BatchDataProvider, TemplateStore, JobStore, PrinterStore

logger = logging.getLogger(__name__)


class ApiStore(BatchDataProvider, TemplateStore, JobStore, PrinterStore):
    """Client for the label system REST API."""

    def __init__(self, base_url: str = 'http://localhost:5000', api_key: str = None,
                 timeout: float = STORE_TIMEOUT, session: requests.Session = None):
        """
        Initialize client.

        Args:
            base_url: Base URL of the label API
            api_key: Bearer token for authentication
            timeout: Per-request timeout in seconds
            session: Optional pre-configured session
        """
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        """Get request headers."""
        headers = {'Content-Type': 'application/json'}
        if self.api_key:
            headers['Authorization'] = f'Bearer {self.api_key}'
        return headers

    def _request(self, method: str, endpoint: str, data: Dict = None,
                 not_found: type = DataNotFoundError) -> Optional[Dict[str, Any]]:
        """
        Make API request.

        Raises:
            not_found: on HTTP 404
            StoreUnavailableError: on timeouts, transport failures and 5xx
            InvalidRecordError: on other error statuses or non-JSON bodies
        """
        url = f'{self.base_url}{endpoint}'

        try:
            response = self.session.request(
                method, url, json=data, headers=self._headers(), timeout=self.timeout
            )
        except requests.exceptions.Timeout:
            raise StoreUnavailableError(f'Request timeout: {method} {url}')
        except requests.exceptions.ConnectionError:
            raise StoreUnavailableError(f'Cannot connect to {self.base_url}')
        except requests.exceptions.RequestException as e:
            raise StoreUnavailableError(f'Request failed: {method} {url}: {e}')

        if response.status_code == 404:
            raise not_found(f'Not found: {endpoint}')
        if response.status_code >= 500:
            raise StoreUnavailableError(f'{method} {endpoint} returned {response.status_code}')
        if response.status_code >= 400:
            raise InvalidRecordError(f'{method} {endpoint} returned {response.status_code}')
        if response.status_code == 204 or not response.content:
            return None

        try:
            return response.json()
        except ValueError:
            raise InvalidRecordError(f'{method} {endpoint} returned a non-JSON body')

    # =========================================================================
    # Batches
    # =========================================================================

    def get_batch(self, batch_no: str) -> Optional[Dict[str, Any]]:
        """Get the batch row, None if unknown."""
        try:
            return self._request('GET', f'/api/batches/{quote(batch_no, safe="")}')
        except DataNotFoundError:
            return None

    def get_bag(self, batch_no: str, bag_no: str) -> Optional[Dict[str, Any]]:
        """Get one bag row, None if unknown."""
        try:
            return self._request(
                'GET', f'/api/batches/{quote(batch_no, safe="")}/bags/{quote(bag_no, safe="")}'
            )
        except DataNotFoundError:
            return None

    # =========================================================================
    # Templates
    # =========================================================================

    def get_template(self, template_id: int) -> Tuple[Template, List[Component]]:
        """Get template and its components."""
        data = self._request('GET', f'/api/templates/{template_id}', not_found=TemplateNotFoundError)
        if not data:
            raise TemplateNotFoundError(f'Template {template_id} not found')
        rows = data.get('Components', data.get('components')) or []
        return Template.from_dict(data), [Component.from_dict(row) for row in rows]

    # =========================================================================
    # Jobs
    # =========================================================================

    def get_job(self, job_id: int) -> PrintJob:
        """Get job by ID."""
        data = self._request('GET', f'/api/jobs/{job_id}', not_found=JobNotFoundError)
        if not data:
            raise JobNotFoundError(f'Print job {job_id} not found')
        payload = data.get('renderedPayload') or data.get('RenderedPayload')
        if isinstance(payload, str):
            data = dict(data)
            try:
                data['RenderedPayload'] = base64.b64decode(payload, validate=True)
            except ValueError as e:
                raise InvalidRecordError(f'Job {job_id}: rendered payload is not base64: {e}')
            data.pop('renderedPayload', None)
        return PrintJob.from_dict(data)

    def update_status(self, job_id: int, status: JobStatus, error: Optional[str] = None):
        """Persist a status change."""
        self._request('PUT', f'/api/jobs/{job_id}/status',
                      {'status': status.value, 'errorMessage': error},
                      not_found=JobNotFoundError)

    def save_payload(self, job_id: int, payload: bytes):
        """Persist the rendered payload."""
        self._request('PUT', f'/api/jobs/{job_id}/payload',
                      {'payload_base64': base64.b64encode(payload).decode('ascii')},
                      not_found=JobNotFoundError)

    # =========================================================================
    # Printers
    # =========================================================================

    def get_printer(self, printer_id: int) -> Printer:
        """Get printer by ID."""
        data = self._request('GET', f'/api/printers/{printer_id}', not_found=PrinterNotFoundError)
        if not data:
            raise PrinterNotFoundError(f'Printer {printer_id} not found')
        return Printer.from_dict(data)
