"""
Store Interfaces
================

Key-lookup interfaces the pipeline reads job, template, printer and
batch data through. Implementations validate rows into typed records.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List, Tuple

from ..models import PrintJob, JobStatus, Template, Component, Printer


class BatchDataProvider(ABC):
    """Batch- and bag-level label data."""

    @abstractmethod
    def get_batch(self, batch_no: str) -> Optional[Dict[str, Any]]:
        """
        Get the batch row.

        Returns:
            Field dict, or None if the batch does not exist
        """
        pass

    @abstractmethod
    def get_bag(self, batch_no: str, bag_no: str) -> Optional[Dict[str, Any]]:
        """
        Get one bag row of a batch.

        Returns:
            Field dict, or None if the bag does not exist
        """
        pass


class TemplateStore(ABC):
    """Label templates and their components."""

    @abstractmethod
    def get_template(self, template_id: int) -> Tuple[Template, List[Component]]:
        """
        Get a template and its ordered components.

        Raises:
            TemplateNotFoundError: if the template does not exist
        """
        pass


class JobStore(ABC):
    """Print job records."""

    @abstractmethod
    def get_job(self, job_id: int) -> PrintJob:
        """
        Get the current state of a job.

        Raises:
            JobNotFoundError: if the job does not exist
        """
        pass

    @abstractmethod
    def update_status(self, job_id: int, status: JobStatus, error: Optional[str] = None):
        """Persist a status change (and error message, if any)."""
        pass

    @abstractmethod
    def save_payload(self, job_id: int, payload: bytes):
        """Persist the rendered payload."""
        pass


class PrinterStore(ABC):
    """Printer records."""

    @abstractmethod
    def get_printer(self, printer_id: int) -> Printer:
        """
        Get a printer.

        Raises:
            PrinterNotFoundError: if the printer does not exist
        """
        pass
