"""
Label Print Worker Models
"""

from .job import PrintJob, JobStatus, check_transition
from .printer import Printer
from .template import Template, Element, Component, ELEMENT_TYPES

__all__ = [
    'PrintJob', 'JobStatus', 'check_transition',
    'Printer',
    'Template', 'Element', 'Component', 'ELEMENT_TYPES',
]
