"""
Job Orchestrator
================

Drives one print job through its life cycle:

    queued -> processing -> rendered -> done | error

The queue message only carries the job id; job state is always re-read
from the job store, so redelivered or stale messages cannot print twice:

- ``done`` / ``error`` jobs are skipped
- ``rendered`` jobs with a stored payload resume at delivery

Failures are persisted on the job record. Only transient store errors and
(with the ``dead-letter`` render failure policy) render errors propagate
to the caller, which retries them.
"""

import logging
from typing import Dict, Any, Optional

from .banner import detect_variant
from .config import RENDER_FAILURE_POLICY, DEFAULT_DARKNESS
from .delivery import PrintOptions
from .errors import (
    PrintWorkerError, TransientError, RenderError, JobNotFoundError, InvalidRecordError,
    InvalidTransitionError, ConfigurationError,
)
from .logging_setup import job_context
from .merge import build_contexts, unresolved_placeholders
from .models import PrintJob, JobStatus, Template, Printer, check_transition
from .renderers import RendererFactory, RenderOptions, BaseRenderer
from .stores.base import BatchDataProvider, TemplateStore, JobStore, PrinterStore

logger = logging.getLogger(__name__)

RENDER_FAILURE_POLICIES = ('dead-letter', 'acknowledge')


class JobOrchestrator:
    """Loads, renders, delivers and tracks print jobs."""

    def __init__(self, jobs: JobStore, templates: TemplateStore, printers: PrinterStore,
                 batches: BatchDataProvider, factory: RendererFactory = None,
                 render_failure_policy: str = RENDER_FAILURE_POLICY):
        if render_failure_policy not in RENDER_FAILURE_POLICIES:
            raise ConfigurationError(f'Unknown render failure policy: {render_failure_policy}')
        self.jobs = jobs
        self.templates = templates
        self.printers = printers
        self.batches = batches
        self.factory = factory or RendererFactory()
        self.render_failure_policy = render_failure_policy

    @classmethod
    def from_store(cls, store, **kwargs) -> 'JobOrchestrator':
        """Build from one object implementing every store interface."""
        return cls(store, store, store, store, **kwargs)

    # =========================================================================
    # Processing
    # =========================================================================

    def process(self, job_id: int) -> Dict[str, Any]:
        """
        Process one job.

        Returns:
            Dict with success status, final job status and error details

        Raises:
            TransientError: store unreachable (retry)
            RenderError: render failed and the policy is ``dead-letter``
        """
        with job_context(job_id):
            try:
                job = self.jobs.get_job(job_id)
            except (JobNotFoundError, InvalidRecordError) as e:
                # Cannot succeed on retry and there is no usable record to mark failed
                logger.error("%s; nothing to process", e)
                return self._result(job_id, None, error=str(e))

            if job.status.is_terminal:
                logger.info("Job already %s, skipping", job.status.value)
                return self._result(job_id, job.status, skipped=True)

            try:
                return self._run(job)
            except TransientError:
                raise
            except RenderError as e:
                if self.render_failure_policy == 'dead-letter':
                    logger.error("Render failed, leaving job for retry: %s", e)
                    raise
                return self._fail(job, f'Render failed: {e}')
            except PrintWorkerError as e:
                return self._fail(job, str(e))
            except Exception as e:
                logger.exception("Unexpected error processing job")
                return self._fail(job, f'Unexpected error: {e}')

    def _run(self, job: PrintJob) -> Dict[str, Any]:
        resume = job.status == JobStatus.RENDERED and job.rendered_payload is not None
        if job.status != JobStatus.RENDERED:
            self._set_status(job, JobStatus.PROCESSING)

        template, components = self.templates.get_template(job.template_id)
        template = template.with_components(components)
        renderer = self.factory.get_renderer(template.engine)
        printer = self.printers.get_printer(job.printer_id) if job.printer_id is not None else None

        if resume:
            logger.info("Resuming delivery of stored payload (%d bytes)", len(job.rendered_payload))
            payload = job.rendered_payload
        else:
            payload = self.render(job, template, renderer)
            self.jobs.save_payload(job.job_id, payload)
            if job.status != JobStatus.RENDERED:
                self._set_status(job, JobStatus.RENDERED)

        if printer is None:
            logger.info("No printer assigned, job complete")
            self._set_status(job, JobStatus.DONE)
            return self._result(job.job_id, JobStatus.DONE)

        return self._deliver(job, renderer, printer, payload)

    def render(self, job: PrintJob, template: Template, renderer: BaseRenderer) -> bytes:
        """
        Render every label of ``job``.

        Special runs look up batch data under the base batch number and
        get the run banner.
        """
        base_batch_no, variant = detect_variant(job.batch_no)
        if variant is not None:
            logger.info("Special run %s of batch %s", variant.label, base_batch_no)

        contexts = build_contexts(job, self.batches, base_batch_no,
                                  variant.label if variant else None)
        options = RenderOptions.for_template(template, variant=variant)
        payload = renderer.render_labels(template, contexts, options)

        if renderer.engine_family != 'document':
            missing = sorted(set(unresolved_placeholders(payload.decode('ascii', errors='ignore'))))
            if missing:
                logger.warning("Unresolved placeholders: %s", ', '.join(missing))

        logger.info("Rendered %d label(s) with %s renderer (%d bytes)",
                    len(contexts), renderer.engine_family, len(payload))
        return payload

    def _deliver(self, job: PrintJob, renderer: BaseRenderer, printer: Printer,
                 payload: bytes) -> Dict[str, Any]:
        options = PrintOptions(
            copies=job.copies,
            darkness=printer.darkness if printer.darkness is not None else DEFAULT_DARKNESS,
            document_name=f'Job {job.job_id} {job.batch_no}',
        )
        if renderer.deliver_label(printer.address, payload, options):
            self._set_status(job, JobStatus.DONE)
            return self._result(job.job_id, JobStatus.DONE)
        return self._fail(job, f'Delivery to printer {printer.name} ({printer.address}) failed')

    # =========================================================================
    # Status
    # =========================================================================

    def mark_failed(self, job_id: int, reason: str) -> bool:
        """
        Move a job to ``error`` after its message gave up.

        Returns:
            True if the status changed, False if the job was already terminal
        """
        with job_context(job_id):
            job = self.jobs.get_job(job_id)
            if job.status.is_terminal:
                logger.info("Job already %s, not marking failed", job.status.value)
                return False
            self._set_status(job, JobStatus.ERROR, reason)
            return True

    def _set_status(self, job: PrintJob, status: JobStatus, error: Optional[str] = None):
        check_transition(job.status, status)
        self.jobs.update_status(job.job_id, status, error)
        logger.debug("Status %s -> %s", job.status.value, status.value)
        job.status = status
        job.error_message = error

    def _fail(self, job: PrintJob, message: str) -> Dict[str, Any]:
        logger.error("Job failed: %s", message)
        try:
            self._set_status(job, JobStatus.ERROR, message)
        except InvalidTransitionError as e:
            logger.warning("Could not record failure: %s", e)
        return self._result(job.job_id, JobStatus.ERROR, error=message)

    @staticmethod
    def _result(job_id: int, status: Optional[JobStatus], error: str = None,
                skipped: bool = False) -> Dict[str, Any]:
        return {
            'success': error is None,
            'job_id': job_id,
            'status': status.value if status else None,
            'error': error,
            'skipped': skipped,
        }
