"""
Label Print Worker Configuration
"""

import os

# =============================================================================
# Broker Configuration
# =============================================================================

# Full AMQP URL wins over the individual settings when set
AMQP_URL = os.environ.get('LABEL_WORKER_AMQP_URL', '')
RABBITMQ_HOST = os.environ.get('LABEL_WORKER_RABBITMQ_HOST', 'localhost')
RABBITMQ_PORT = int(os.environ.get('LABEL_WORKER_RABBITMQ_PORT', 5672))
RABBITMQ_USER = os.environ.get('LABEL_WORKER_RABBITMQ_USER', 'guest')
RABBITMQ_PASSWORD = os.environ.get('LABEL_WORKER_RABBITMQ_PASSWORD', 'guest')
RABBITMQ_VHOST = os.environ.get('LABEL_WORKER_RABBITMQ_VHOST', '/')
RABBITMQ_HEARTBEAT = int(os.environ.get('LABEL_WORKER_RABBITMQ_HEARTBEAT', 60))

QUEUE_NAME = os.environ.get('LABEL_WORKER_QUEUE', 'print-jobs')
DLQ_NAME = os.environ.get('LABEL_WORKER_DLQ', 'print-jobs-dlq')

# =============================================================================
# Retry & Concurrency
# =============================================================================

MAX_RETRIES = int(os.environ.get('LABEL_WORKER_MAX_RETRIES', 3))
RETRY_BASE_DELAY = float(os.environ.get('LABEL_WORKER_RETRY_BASE_DELAY', 2.0))  # seconds

# Worker threads per instance (also the broker prefetch count)
WORKER_CONCURRENCY = int(os.environ.get('LABEL_WORKER_CONCURRENCY', 4))

# Concurrent deliveries allowed per printer address
PRINTER_MAX_IN_FLIGHT = int(os.environ.get('LABEL_WORKER_PRINTER_MAX_IN_FLIGHT', 1))
PRINTER_ACQUIRE_TIMEOUT = float(os.environ.get('LABEL_WORKER_PRINTER_ACQUIRE_TIMEOUT', 120))

# 'dead-letter' or 'acknowledge'
RENDER_FAILURE_POLICY = os.environ.get('LABEL_WORKER_RENDER_FAILURE_POLICY', 'dead-letter').lower()

# =============================================================================
# Printer Delivery
# =============================================================================

PRINTER_PORT = 9100
CONNECT_TIMEOUT = float(os.environ.get('LABEL_WORKER_CONNECT_TIMEOUT', 5))  # seconds
WRITE_TIMEOUT = float(os.environ.get('LABEL_WORKER_WRITE_TIMEOUT', 30))  # seconds
INTER_COPY_DELAY = float(os.environ.get('LABEL_WORKER_INTER_COPY_DELAY', 0.1))  # seconds
LOCAL_SPOOL_TIMEOUT = float(os.environ.get('LABEL_WORKER_LOCAL_SPOOL_TIMEOUT', 30))  # seconds

# =============================================================================
# Rendering Defaults
# =============================================================================

DEFAULT_DPI = 203  # common for thermal printers
DEFAULT_WIDTH = 400  # dots
DEFAULT_HEIGHT = 300  # dots
DEFAULT_DARKNESS = int(os.environ.get('LABEL_WORKER_DEFAULT_DARKNESS', 10))

# Height of the special-run banner strip at the bottom of the label (dots)
BANNER_HEIGHT = int(os.environ.get('LABEL_WORKER_BANNER_HEIGHT', 40))

# Codec error handler for control-language output ('replace' or 'strict')
CONTROL_ENCODING_ERRORS = os.environ.get('LABEL_WORKER_ENCODING_ERRORS', 'replace')

# =============================================================================
# Supported Template Engines
# =============================================================================

ENGINES = {
    'zpl': {
        'name': 'Zebra Programming Language',
        'renderer': 'zpl',
        'aliases': ['ZPL', 'ZEBRA'],
        'output': 'zpl',
    },
    'tspl': {
        'name': 'TSC Printer Language',
        'renderer': 'tspl',
        'aliases': ['TSPL', 'TSPL2', 'TSC'],
        'output': 'tspl',
    },
    'pdf': {
        'name': 'PDF Document',
        'renderer': 'document',
        'aliases': ['PDF'],
        'output': 'pdf',
    },
    'html': {
        'name': 'HTML Document',
        'renderer': 'document',
        'aliases': ['HTML'],
        'output': 'html',
    },
}

# =============================================================================
# Collaborator Stores
# =============================================================================

# 'api' (label system REST API) or 'file' (JSON snapshot in DATA_DIR)
STORE_BACKEND = os.environ.get('LABEL_WORKER_STORE_BACKEND', 'api').lower()
STORE_API_URL = os.environ.get('LABEL_WORKER_STORE_API_URL', 'http://localhost:5000')
STORE_API_KEY = os.environ.get('LABEL_WORKER_STORE_API_KEY', '')
STORE_TIMEOUT = float(os.environ.get('LABEL_WORKER_STORE_TIMEOUT', 15))

DATA_DIR = os.environ.get('LABEL_WORKER_DATA_DIR', os.path.expanduser('~/.label_print_worker'))

# =============================================================================
# Health Server & Logging
# =============================================================================

HEALTH_HOST = os.environ.get('LABEL_WORKER_HEALTH_HOST', '0.0.0.0')
HEALTH_PORT = int(os.environ.get('LABEL_WORKER_HEALTH_PORT', 5101))  # 0 disables

LOG_LEVEL = os.environ.get('LABEL_WORKER_LOG_LEVEL', 'INFO').upper()
JSON_LOGS = os.environ.get('LABEL_WORKER_JSON_LOGS', 'false').lower() in ('1', 'true', 'yes')
