"""
Base Renderer
=============

Abstract base class for label renderers.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..banner import Variant
from ..config import ENGINES, DEFAULT_DPI, DEFAULT_WIDTH, DEFAULT_HEIGHT, BANNER_HEIGHT
from ..delivery import PrinterDeliveryClient, PrintOptions
from ..merge import DataContext
from ..models import Template


@dataclass
class RenderOptions:
    """Options for rendering a label."""

    width: int = DEFAULT_WIDTH  # dots
    height: int = DEFAULT_HEIGHT  # dots
    dpi: int = DEFAULT_DPI

    # Special-run banner (None for standard runs)
    variant: Optional[Variant] = None
    banner_height: int = BANNER_HEIGHT

    # Document renderer output: 'pdf' or 'html' (None = engine default)
    output_format: Optional[str] = None

    # Preview renders degrade to a visible error instead of raising
    preview: bool = False

    @classmethod
    def for_template(cls, template: Template, **kwargs) -> 'RenderOptions':
        return cls(width=template.width, height=template.height, dpi=template.dpi, **kwargs)


class BaseRenderer(ABC):
    """Abstract base class for label renderers."""

    # Key into config.ENGINES
    engine_family: str = ''

    def __init__(self, delivery: PrinterDeliveryClient = None):
        """Initialize renderer with the delivery client used by deliver_label."""
        self.delivery = delivery or PrinterDeliveryClient()

    @property
    def aliases(self) -> List[str]:
        """Engine identifiers handled by this renderer."""
        return [
            alias
            for key, engine in ENGINES.items()
            if engine['renderer'] == self.engine_family
            for alias in engine['aliases']
        ]

    def can_render(self, engine: str) -> bool:
        """Check if this renderer handles the template engine (case-insensitive)."""
        return (engine or '').strip().upper() in self.aliases

    @abstractmethod
    def render_label(self, template: Template, data: DataContext,
                     options: RenderOptions) -> bytes:
        """
        Render one label.

        Args:
            template: Template with raw content and/or elements
            data: Placeholder substitution context
            options: Size, DPI, banner and output options

        Returns:
            Printer-ready payload

        Raises:
            RenderError: if the template cannot be rendered
        """
        pass

    def render_labels(self, template: Template, contexts: Sequence[DataContext],
                      options: RenderOptions) -> bytes:
        """Render one label per context and join them into one payload."""
        return b''.join(self.render_label(template, data, options) for data in contexts)

    def print_options(self, options: PrintOptions) -> PrintOptions:
        """Hook for renderers that need a printer pre-amble."""
        return options

    def deliver_label(self, printer_address: str, payload: bytes,
                      options: PrintOptions = None) -> bool:
        """
        Send a rendered payload to a printer.

        Returns:
            True if the printer accepted the payload
        """
        return self.delivery.deliver(printer_address, payload,
                                     self.print_options(options or PrintOptions()))
