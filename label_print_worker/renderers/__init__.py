"""
Label Print Worker Renderers
============================

Renderers for the supported template engines.
"""

from typing import List

from .base import BaseRenderer, RenderOptions
from .zpl import ZplRenderer
from .tspl import TsplRenderer
from .document import DocumentRenderer
from ..delivery import PrinterDeliveryClient
from ..errors import UnsupportedEngineError

__all__ = [
    'BaseRenderer', 'RenderOptions', 'ZplRenderer', 'TsplRenderer', 'DocumentRenderer',
    'RENDERERS', 'RendererFactory', 'get_renderer',
]

# Renderer registry, in lookup order
RENDERERS = {
    'zpl': ZplRenderer,
    'tspl': TsplRenderer,
    'document': DocumentRenderer,
}


class RendererFactory:
    """Selects the renderer for a template engine."""

    def __init__(self, delivery: PrinterDeliveryClient = None,
                 renderers: List[BaseRenderer] = None):
        delivery = delivery or PrinterDeliveryClient()
        self.renderers = renderers if renderers is not None else [
            cls(delivery) for cls in RENDERERS.values()
        ]

    def get_renderer(self, engine: str) -> BaseRenderer:
        """
        Get the first renderer that handles ``engine``.

        Raises:
            UnsupportedEngineError: for an empty or unknown engine
        """
        if not engine or not engine.strip():
            raise UnsupportedEngineError('Template has no engine configured')
        for renderer in self.renderers:
            if renderer.can_render(engine):
                return renderer
        raise UnsupportedEngineError(f'Unsupported template engine: {engine}')


def get_renderer(engine: str) -> BaseRenderer:
    """Get a renderer from a default factory."""
    return RendererFactory().get_renderer(engine)
