"""
Collaborator Stores
===================

Key-lookup access to jobs, templates, printers and batch data.
"""

from .base import BatchDataProvider, TemplateStore, JobStore, PrinterStore
from .memory import MemoryStore
from .api import ApiStore
from ..config import STORE_API_URL, STORE_TIMEOUT, DATA_DIR
from ..errors import ConfigurationError

__all__ = [
    'BatchDataProvider', 'TemplateStore', 'JobStore', 'PrinterStore',
    'MemoryStore', 'ApiStore', 'create_store',
]


def create_store(backend: str, **kwargs):
    """
    Build the configured store backend.

    Args:
        backend: 'api' or 'file'
        **kwargs: base_url/api_key/timeout for 'api', data_dir for 'file'
    """
    if backend == 'api':
        return ApiStore(kwargs.get('base_url') or STORE_API_URL,
                        api_key=kwargs.get('api_key'),
                        timeout=kwargs.get('timeout') or STORE_TIMEOUT)
    if backend == 'file':
        return MemoryStore.from_data_dir(kwargs.get('data_dir') or DATA_DIR)
    raise ConfigurationError(f'Unknown store backend: {backend}')
