"""
Error Taxonomy
==============

Exceptions raised inside the print pipeline.

The consumer retries ``TransientError`` and (depending on the render failure
policy) ``RenderError``. Everything else is terminal for the job.
"""


class PrintWorkerError(Exception):
    """Base class for all pipeline errors."""


# =============================================================================
# Transient
# =============================================================================

class TransientError(PrintWorkerError):
    """Infrastructure failure that may succeed on a later attempt."""


class StoreUnavailableError(TransientError):
    """A collaborator store could not be reached."""


# =============================================================================
# Terminal
# =============================================================================

class DataNotFoundError(PrintWorkerError):
    """A referenced record does not exist."""


class JobNotFoundError(DataNotFoundError):
    pass


class TemplateNotFoundError(DataNotFoundError):
    pass


class PrinterNotFoundError(DataNotFoundError):
    pass


class BatchNotFoundError(DataNotFoundError):
    pass


class InvalidRecordError(PrintWorkerError):
    """A store returned a record that fails validation."""


class ConfigurationError(PrintWorkerError):
    """The worker or a template is configured inconsistently."""


class UnsupportedEngineError(ConfigurationError):
    """No renderer handles the template engine."""


class RenderError(PrintWorkerError):
    """Template content could not be rendered."""


class InvalidTransitionError(PrintWorkerError):
    """A job status change would move the job backwards."""


class InvalidMessageError(PrintWorkerError):
    """A queue message is not a valid job envelope."""
