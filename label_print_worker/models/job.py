"""
Print Job Model
===============

Represents one request to render and optionally deliver a label.
"""

from datetime import datetime
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Dict, Any, List

from ..errors import InvalidRecordError, InvalidTransitionError


class JobStatus(str, Enum):
    """Job life cycle: queued -> processing -> rendered -> done | error."""

    QUEUED = 'queued'
    PROCESSING = 'processing'
    RENDERED = 'rendered'
    DONE = 'done'
    ERROR = 'error'

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.ERROR)

    @classmethod
    def parse(cls, value: Any) -> 'JobStatus':
        """Parse a stored status string, accepting legacy names."""
        if isinstance(value, JobStatus):
            return value
        text = str(value or '').strip().lower()
        text = _LEGACY_STATUS.get(text, text)
        try:
            return cls(text)
        except ValueError:
            raise InvalidRecordError(f'Unknown job status: {value!r}')

    def can_advance_to(self, target: 'JobStatus') -> bool:
        """Check whether moving to ``target`` keeps the job moving forward."""
        if self.is_terminal:
            return False
        if target == JobStatus.ERROR:
            return True
        if target == JobStatus.PROCESSING and self == JobStatus.PROCESSING:
            # redelivered message picking up an interrupted attempt
            return True
        return _RANK[target] > _RANK[self]


_RANK = {
    JobStatus.QUEUED: 0,
    JobStatus.PROCESSING: 1,
    JobStatus.RENDERED: 2,
    JobStatus.DONE: 3,
    JobStatus.ERROR: 3,
}

_LEGACY_STATUS = {
    'pending': 'queued',
    'printing': 'processing',
    'completed': 'done',
    'failed': 'error',
}


def check_transition(current: JobStatus, target: JobStatus):
    """Raise InvalidTransitionError unless ``current -> target`` is allowed."""
    if not current.can_advance_to(target):
        raise InvalidTransitionError(
            f'Cannot move job from {current.value} to {target.value}'
        )


@dataclass
class PrintJob:
    """Print job record as read from the job store."""

    # Identification
    job_id: int = 0
    batch_no: str = ""

    # Bag selection (single bag or inclusive range)
    bag_no: Optional[str] = None
    start_bag: Optional[int] = None
    end_bag: Optional[int] = None

    # Job details
    template_id: int = 0
    printer_id: Optional[int] = None
    copies: int = 1

    # Status
    status: JobStatus = JobStatus.QUEUED
    error_message: Optional[str] = None

    # Timestamps
    requested_date: datetime = field(default_factory=datetime.now)
    completed_date: Optional[datetime] = None

    # Output
    rendered_payload: Optional[bytes] = None

    def __post_init__(self):
        if self.copies < 1:
            raise InvalidRecordError(f'Job {self.job_id}: copies must be >= 1, got {self.copies}')
        if (self.start_bag is None) != (self.end_bag is None):
            raise InvalidRecordError(f'Job {self.job_id}: bag range needs both start and end')
        if self.start_bag is not None and self.start_bag > self.end_bag:
            raise InvalidRecordError(
                f'Job {self.job_id}: start bag {self.start_bag} is after end bag {self.end_bag}'
            )

    def bag_numbers(self) -> List[Optional[str]]:
        """
        Bags this job prints, in order.

        Returns:
            Six-digit bag numbers for a range, the single bag number,
            or ``[None]`` for a batch-level label.
        """
        if self.start_bag is not None:
            return [str(n).zfill(6) for n in range(self.start_bag, self.end_bag + 1)]
        if self.bag_no:
            return [self.bag_no]
        return [None]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data['status'] = self.status.value
        data.pop('rendered_payload', None)
        # Convert datetime to ISO format
        for key in ['requested_date', 'completed_date']:
            if data.get(key):
                data[key] = data[key].isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PrintJob':
        """
        Create from a store row, validating the fields the pipeline reads.

        Accepts both snake_case and the label database's column names
        (``JobID``, ``BatchNo``, ``TemplateID`` ...).
        """
        row = _normalise_keys(data)
        try:
            job = cls(
                job_id=int(row['job_id']),
                batch_no=str(row['batch_no']),
                bag_no=_optional_str(row.get('bag_no')),
                start_bag=_optional_int(row.get('start_bag')),
                end_bag=_optional_int(row.get('end_bag')),
                template_id=int(row['template_id']),
                printer_id=_optional_int(row.get('printer_id')),
                copies=int(row['copies']) if row.get('copies') is not None else 1,
                status=JobStatus.parse(row.get('status') or 'queued'),
                error_message=row.get('error_message'),
                requested_date=_parse_datetime(row.get('requested_date')) or datetime.now(),
                completed_date=_parse_datetime(row.get('completed_date')),
                rendered_payload=row.get('rendered_payload'),
            )
        except KeyError as e:
            raise InvalidRecordError(f'Job record missing field {e.args[0]}')
        except (TypeError, ValueError) as e:
            raise InvalidRecordError(f'Invalid job record: {e}')
        return job


_JOB_KEYS = {
    'jobid': 'job_id',
    'id': 'job_id',
    'batchno': 'batch_no',
    'bagno': 'bag_no',
    'startbag': 'start_bag',
    'startbagno': 'start_bag',
    'endbag': 'end_bag',
    'endbagno': 'end_bag',
    'templateid': 'template_id',
    'printerid': 'printer_id',
    'copies': 'copies',
    'status': 'status',
    'errormessage': 'error_message',
    'requesteddate': 'requested_date',
    'completeddate': 'completed_date',
    'renderedpayload': 'rendered_payload',
}


def _normalise_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    row = {}
    for key, value in data.items():
        flat = key.replace('_', '').lower()
        row[_JOB_KEYS.get(flat, key)] = value
    return row


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == '':
        return None
    return int(value)


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == '':
        return None
    return str(value)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))
