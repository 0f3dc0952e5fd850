"""
ZPL Renderer
============

Renderer for ZPL (Zebra Programming Language) printers.
Works with Zebra and CAB (in ZPL emulation mode) printers.

Raw template content is used as authored after placeholder substitution;
structured elements are converted to field commands. Missing structural
commands are added so partially authored templates still print:

    ^XA            - Start format (exactly once)
    ^PWn           - Print width in dots (if absent)
    ^LLn           - Label length in dots (if absent)
    ...            - Label content (+ banner for special runs)
    ^XZ            - End format (exactly once)
"""

import logging
import re
from typing import List

from .base import BaseRenderer, RenderOptions
from .images import to_monochrome_rows
from ..banner import BannerGeometry, inject_banner_commands
from ..config import CONTROL_ENCODING_ERRORS
from ..errors import RenderError
from ..merge import DataContext
from ..models import Template, Element

logger = logging.getLogger(__name__)

START_RE = re.compile(r'^\s*\^XA', re.IGNORECASE)
END_RE = re.compile(r'\^XZ\s*$', re.IGNORECASE)
TERMINATOR_RE = re.compile(r'\^XZ', re.IGNORECASE)
WIDTH_RE = re.compile(r'\^PW\d+', re.IGNORECASE)
LENGTH_RE = re.compile(r'\^LL\d+', re.IGNORECASE)

# Barcode symbology -> ZPL barcode command
BARCODE_COMMANDS = {
    'CODE128': '^BCN,{h},Y,N,N',
    'C128': '^BCN,{h},Y,N,N',
    'CODE39': '^B3N,N,{h},Y,N',
    'C39': '^B3N,N,{h},Y,N',
    'EAN13': '^BEN,{h},Y,N',
    'EAN8': '^B8N,{h},Y,N',
    'UPCA': '^BUN,{h},Y,N,N',
    'UPCE': '^B9N,{h},Y,N,N',
    'ITF': '^B2N,{h},Y,N,N',
    'CODE93': '^BAN,{h},Y,N,N',
}


class ZplRenderer(BaseRenderer):
    """Renderer for ZPL-compatible printers (Zebra, CAB)."""

    engine_family = 'zpl'

    def render_label(self, template: Template, data: DataContext,
                     options: RenderOptions) -> bytes:
        """
        Render a ZPL label.

        Returns:
            ASCII-encoded ZPL
        """
        parts = []
        raw = data.resolve(template.raw_content).strip()
        # Elements and banner belong inside the raw format, not after its ^XZ
        raw = END_RE.sub('', START_RE.sub('', raw, count=1)).strip()
        if raw:
            parts.append(raw)
        for element in template.elements:
            parts.extend(self._element_to_zpl(element, data))

        body = '\n'.join(parts)
        if options.variant is not None:
            body = inject_banner_commands(
                body, self.banner_commands(options), TERMINATOR_RE
            )

        zpl = self.ensure_structure(body, options)
        try:
            return zpl.encode('ascii', errors=CONTROL_ENCODING_ERRORS)
        except UnicodeEncodeError as e:
            raise RenderError(f'ZPL output is not ASCII: {e}')

    # =========================================================================
    # Structure
    # =========================================================================

    def ensure_structure(self, zpl: str, options: RenderOptions) -> str:
        """
        Wrap ZPL in exactly one ^XA ... ^XZ pair.

        Commands already present are detected and not duplicated.
        """
        body = zpl.strip()
        body = START_RE.sub('', body, count=1).strip()
        body = END_RE.sub('', body).strip()

        lines = ['^XA']
        if not WIDTH_RE.search(body):
            lines.append(f'^PW{int(options.width)}')
        if not LENGTH_RE.search(body):
            lines.append(f'^LL{int(options.height)}')
        if body:
            lines.append(body)
        lines.append('^XZ')
        return '\n'.join(lines)

    def banner_commands(self, options: RenderOptions) -> List[str]:
        """Filled box plus reverse-printed centred text along the bottom edge."""
        geo = BannerGeometry.for_label(options.width, options.height, options.banner_height)
        font = max(10, int(geo.height * 0.6))
        text_y = geo.y + (geo.height - font) // 2
        return [
            f'^FO{geo.x},{geo.y}^GB{geo.width},{geo.height},{geo.height}^FS',
            f'^FO{geo.x},{text_y}^FB{geo.width},1,0,C^FR^A0N,{font},{font}'
            f'^FD{_escape(options.variant.label)}^FS',
        ]

    # =========================================================================
    # Elements
    # =========================================================================

    def _element_to_zpl(self, element: Element, data: DataContext) -> List[str]:
        """Convert one structured element to ZPL field commands."""
        x, y = int(element.x), int(element.y)
        w, h = int(element.width), int(element.height)
        origin = f'^FO{x},{y}'

        if element.type == 'text':
            size = int(element.font_size)
            text = _escape(data.resolve(element.content))
            if element.align in ('center', 'right'):
                justify = 'C' if element.align == 'center' else 'R'
                return [f'{origin}^FB{w},1,0,{justify}^A0N,{size},{size}^FD{text}^FS']
            return [f'{origin}^A0N,{size},{size}^FD{text}^FS']

        if element.type == 'rect':
            thickness = int(element.stroke_width) if element.stroke_width else min(w, h)
            return [f'{origin}^GB{w},{h},{thickness}^FS']

        if element.type == 'barcode':
            command = BARCODE_COMMANDS.get(element.format.upper())
            if command is None:
                raise RenderError(f'Unsupported ZPL barcode format: {element.format}')
            value = _escape(data.resolve(element.content))
            return [f'{origin}^BY2{command.format(h=h)}^FD{value}^FS']

        if element.type == 'qr':
            magnification = max(1, min(10, min(w, h) // 25))
            value = _escape(data.resolve(element.content))
            return [f'{origin}^BQN,2,{magnification}^FDQA,{value}^FS']

        if element.type == 'image':
            src = data.resolve(element.src or element.content)
            bytes_per_row, rows, bitmap = to_monochrome_rows(src, w, h)
            total = bytes_per_row * rows
            return [f'{origin}^GFA,{total},{total},{bytes_per_row},{bitmap.hex().upper()}^FS']

        raise RenderError(f'Unsupported element type: {element.type}')


def _escape(text: str) -> str:
    """Keep field data from being read as ZPL command prefixes."""
    return text.replace('^', ' ').replace('~', ' ')
