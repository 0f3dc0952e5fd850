"""
Label Print Worker
==================

Print-job rendering and delivery pipeline for production labels.

Consumes job references from a RabbitMQ queue, merges batch/bag data into
label templates, renders them and delivers the result to label printers.

Supports:
- ZPL label printers (Zebra, CAB in ZPL emulation)
- TSPL thermal printers (TSC, Gainsha/Gprinter)
- PDF and HTML documents (office printers, previews)

Usage:
    python -m label_print_worker

Message format:
    {"jobId": 10}
"""

__version__ = '1.0.0'
__author__ = 'Label Print Worker Team'
