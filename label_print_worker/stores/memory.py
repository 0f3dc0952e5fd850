"""
Memory Store
============

Thread-safe in-process implementation of every store interface.

Used for standalone runs (loaded from a JSON snapshot in ``DATA_DIR``)
and by the test-suite.

Snapshot layout::

    {
      "jobs":       [{"JobID": 10, "BatchNo": "ABC123", ...}],
      "templates":  [{"TemplateID": 1, "Engine": "ZPL", "Content": "...",
                      "Components": [...]}],
      "printers":   [{"PrinterID": 1, "Address": "10.0.0.5:9100"}],
      "batches":    {"ABC123": {"ProductName": "..."}},
      "bags":       {"ABC123": {"000001": {"NetWeight": 25}}}
    }
"""

import copy
import json
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any, List, Tuple

from ..errors import JobNotFoundError, TemplateNotFoundError, PrinterNotFoundError
from ..models import PrintJob, JobStatus, Template, Component, Printer
from .base import BatchDataProvider, TemplateStore, JobStore, PrinterStore


class MemoryStore(BatchDataProvider, TemplateStore, JobStore, PrinterStore):
    """All collaborator stores backed by dictionaries."""

    def __init__(self):
        self._lock = threading.RLock()
        self._jobs: Dict[int, PrintJob] = {}
        self._templates: Dict[int, Tuple[Template, List[Component]]] = {}
        self._printers: Dict[int, Printer] = {}
        self._batches: Dict[str, Dict[str, Any]] = {}
        self._bags: Dict[str, Dict[str, Dict[str, Any]]] = {}

        # Status history per job, oldest first
        self.history: Dict[int, List[JobStatus]] = {}

    # =========================================================================
    # Loading
    # =========================================================================

    @classmethod
    def from_file(cls, path: str) -> 'MemoryStore':
        """Load a store from a JSON snapshot."""
        with open(path, 'r', encoding='utf-8') as f:
            return cls.from_dict(json.load(f))

    @classmethod
    def from_data_dir(cls, data_dir: str) -> 'MemoryStore':
        """Load ``store.json`` from the data directory (empty store if absent)."""
        path = Path(data_dir) / 'store.json'
        if path.exists():
            return cls.from_file(str(path))
        return cls()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MemoryStore':
        store = cls()
        for row in data.get('jobs', []):
            store.add_job(PrintJob.from_dict(row))
        for row in data.get('templates', []):
            components = [Component.from_dict(c) for c in row.get('Components', row.get('components', []))]
            store.add_template(Template.from_dict(row), components)
        for row in data.get('printers', []):
            store.add_printer(Printer.from_dict(row))
        for batch_no, fields in data.get('batches', {}).items():
            store.add_batch(batch_no, fields)
        for batch_no, bags in data.get('bags', {}).items():
            for bag_no, fields in bags.items():
                store.add_bag(batch_no, bag_no, fields)
        return store

    def add_job(self, job: PrintJob):
        with self._lock:
            self._jobs[job.job_id] = copy.deepcopy(job)
            self.history[job.job_id] = [job.status]

    def add_template(self, template: Template, components: Optional[List[Component]] = None):
        with self._lock:
            self._templates[template.template_id] = (template, list(components or []))

    def add_printer(self, printer: Printer):
        with self._lock:
            self._printers[printer.printer_id] = printer

    def add_batch(self, batch_no: str, fields: Dict[str, Any]):
        with self._lock:
            self._batches[batch_no] = dict(fields)

    def add_bag(self, batch_no: str, bag_no: str, fields: Dict[str, Any]):
        with self._lock:
            self._bags.setdefault(batch_no, {})[bag_no] = dict(fields)

    # =========================================================================
    # BatchDataProvider
    # =========================================================================

    def get_batch(self, batch_no: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._batches.get(batch_no)
            return dict(row) if row is not None else None

    def get_bag(self, batch_no: str, bag_no: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._bags.get(batch_no, {}).get(bag_no)
            return dict(row) if row is not None else None

    # =========================================================================
    # TemplateStore
    # =========================================================================

    def get_template(self, template_id: int) -> Tuple[Template, List[Component]]:
        with self._lock:
            if template_id not in self._templates:
                raise TemplateNotFoundError(f'Template {template_id} not found')
            template, components = self._templates[template_id]
            return template, list(components)

    # =========================================================================
    # JobStore
    # =========================================================================

    def get_job(self, job_id: int) -> PrintJob:
        with self._lock:
            if job_id not in self._jobs:
                raise JobNotFoundError(f'Print job {job_id} not found')
            return copy.deepcopy(self._jobs[job_id])

    def update_status(self, job_id: int, status: JobStatus, error: Optional[str] = None):
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(f'Print job {job_id} not found')
            job.status = status
            job.error_message = error
            if status.is_terminal:
                job.completed_date = datetime.now()
            self.history.setdefault(job_id, []).append(status)

    def save_payload(self, job_id: int, payload: bytes):
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(f'Print job {job_id} not found')
            job.rendered_payload = bytes(payload)

    # =========================================================================
    # PrinterStore
    # =========================================================================

    def get_printer(self, printer_id: int) -> Printer:
        with self._lock:
            if printer_id not in self._printers:
                raise PrinterNotFoundError(f'Printer {printer_id} not found')
            return self._printers[printer_id]
