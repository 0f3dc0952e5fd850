"""
Data Merge
==========

Builds the per-label data context and substitutes ``${Field}`` placeholders.

Context precedence (later wins): job-level keys, batch row, bag row.
Placeholders whose key is missing from the context are left verbatim so
unresolved fields stay visible on the printed label.
"""

import logging
import re
from collections import OrderedDict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Mapping, Optional

from .errors import BatchNotFoundError
from .models import PrintJob
from .stores.base import BatchDataProvider

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r'\$\{([^{}]+)\}')


class DataContext(Mapping):
    """Ordered, read-only key -> string mapping used for substitution."""

    def __init__(self, *sources: Optional[Mapping[str, Any]]):
        self._values: 'OrderedDict[str, str]' = OrderedDict()
        for source in sources:
            if not source:
                continue
            for key, value in source.items():
                self._values[str(key)] = format_value(value)

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f'DataContext({dict(self._values)!r})'

    def resolve(self, text: Optional[str]) -> str:
        """Substitute placeholders in ``text`` from this context."""
        return resolve_placeholders(text, self)


def format_value(value: Any) -> str:
    """Render a row value the way it appears on a label."""
    if value is None:
        return ''
    if isinstance(value, datetime):
        return value.isoformat(sep=' ', timespec='seconds')
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value.normalize(), 'f')
    if isinstance(value, bool):
        return 'Yes' if value else 'No'
    return str(value)


def resolve_placeholders(text: Optional[str], context: Mapping[str, str]) -> str:
    """
    Replace every ``${Field}`` whose key exists in ``context``.

    Substitution is a single pass, so values that themselves contain
    ``${...}`` are not expanded again.
    """
    if not text:
        return text or ''

    def _lookup(match: 're.Match') -> str:
        key = match.group(1).strip()
        if key in context:
            return context[key]
        return match.group(0)

    return PLACEHOLDER_RE.sub(_lookup, text)


def unresolved_placeholders(text: Optional[str]) -> List[str]:
    """List placeholder names still present in ``text``."""
    return [m.group(1).strip() for m in PLACEHOLDER_RE.finditer(text or '')]


def build_contexts(job: PrintJob, provider: BatchDataProvider,
                   lookup_batch_no: str, label_type: Optional[str] = None) -> List[DataContext]:
    """
    Build one data context per label the job prints.

    Args:
        job: The job being rendered
        provider: Batch/bag data source
        lookup_batch_no: Batch number to fetch data for (variant suffix stripped)
        label_type: Special-run label text, exposed as ``LabelType``

    Returns:
        Contexts in print order (one per bag, or one for batch-level jobs)

    Raises:
        BatchNotFoundError: when the batch row does not exist
    """
    batch_row = provider.get_batch(lookup_batch_no)
    if batch_row is None:
        raise BatchNotFoundError(f'Batch {lookup_batch_no} not found')

    contexts = []
    for bag_no in job.bag_numbers():
        bag_row = None
        if bag_no is not None:
            bag_row = provider.get_bag(lookup_batch_no, bag_no)
            if bag_row is None:
                # The batch row still prints; missing bag fields stay visible as placeholders
                logger.warning("Bag %s of batch %s not found, printing batch data only",
                               bag_no, lookup_batch_no)

        job_keys: Dict[str, Any] = {
            'JobID': job.job_id,
            'BatchNo': lookup_batch_no,
            'Copies': job.copies,
        }
        if bag_no is not None:
            job_keys['BagNo'] = bag_no
        if label_type:
            job_keys['LabelType'] = label_type

        contexts.append(DataContext(job_keys, batch_row, bag_row))
    return contexts
