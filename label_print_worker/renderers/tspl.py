"""
TSPL Renderer
=============

Renderer for TSPL/TSPL2 printers (TSC, Gainsha/Gprinter).

Protocol Reference:
- TSPL/TSPL2 Programming Manual: https://www.tscprinters.com/cms/upload/download_en/TSPL_TSPL2_Programming.pdf
- Network port: 9100 (default)

Key Commands:
- SIZE w mm,h mm    - Label size (added if absent)
- GAP g mm,o mm     - Gap between labels (added if absent)
- DIRECTION n       - Print direction (added if absent)
- CLS               - Clear image buffer (added if absent)
- TEXT x,y,...      - Print text
- BAR / BOX         - Filled / outlined rectangles
- BARCODE x,y,...   - Print barcode
- QRCODE x,y,...    - Print QR code
- BITMAP x,y,...    - Print bitmap
- REVERSE x,y,w,h   - Invert a region (banner text)
- PRINT m,n         - Print labels (added if absent, always last)
"""

import logging
import re
from dataclasses import replace
from typing import List, Tuple

from .base import BaseRenderer, RenderOptions
from .images import to_monochrome_rows
from ..banner import BannerGeometry, inject_banner_commands
from ..config import CONTROL_ENCODING_ERRORS
from ..delivery import PrintOptions
from ..errors import RenderError
from ..merge import DataContext
from ..models import Template, Element

logger = logging.getLogger(__name__)

NEWLINE = '\r\n'

SIZE_RE = re.compile(r'^\s*SIZE\s+\d+(\.\d+)?\s*(mm)?\s*,\s*\d+(\.\d+)?\s*(mm)?', re.IGNORECASE | re.MULTILINE)
GAP_RE = re.compile(r'^\s*GAP\s+\d+(\.\d+)?\s*(mm)?\s*,\s*\d+(\.\d+)?\s*(mm)?', re.IGNORECASE | re.MULTILINE)
DIRECTION_RE = re.compile(r'^\s*DIRECTION\s+\d+', re.IGNORECASE | re.MULTILINE)
CLS_RE = re.compile(r'^\s*CLS\s*$', re.IGNORECASE | re.MULTILINE)
PRINT_RE = re.compile(r'^\s*PRINT\s+\d+\s*(,\s*\d+)?\s*$', re.IGNORECASE | re.MULTILINE)

# Setup commands that belong before CLS
SETUP_RE = re.compile(
    r'^\s*(SIZE|GAP|BLINE|DIRECTION|REFERENCE|OFFSET|SPEED|DENSITY|SHIFT|CODEPAGE|SET)\b',
    re.IGNORECASE,
)

# Map common names to TSPL codes
BARCODE_TYPES = {
    '128': '128',
    'C128': '128',
    'CODE128': '128',
    '39': '39',
    'C39': '39',
    'CODE39': '39',
    'EAN13': 'EAN13',
    'EAN8': 'EAN8',
    'UPCA': 'UPCA',
    'UPCE': 'UPCE',
    '93': '93',
    'CODE93': '93',
    'ITF': 'ITF14',
    'CODA': 'CODA',
}

# Marker for binary BITMAP data spliced in after ASCII encoding
_BITMAP_MARK = '\x00BITMAP{}\x00'
_BITMAP_MARK_RE = re.compile(rb'\x00BITMAP(\d+)\x00')


class TsplRenderer(BaseRenderer):
    """Renderer for TSPL/TSPL2 printers (TSC, Gainsha)."""

    engine_family = 'tspl'

    # TSPL DENSITY range
    MAX_DENSITY = 15

    def render_label(self, template: Template, data: DataContext,
                     options: RenderOptions) -> bytes:
        """
        Render a TSPL label.

        Returns:
            ASCII-encoded TSPL (BITMAP data, if any, is binary)
        """
        bitmaps: List[bytes] = []
        lines = []
        raw = data.resolve(template.raw_content).strip()
        # The raw PRINT moves to the end so elements and banner land before it
        print_lines = [m.group(0).strip() for m in PRINT_RE.finditer(raw)]
        raw = PRINT_RE.sub('', raw).strip()
        if raw:
            lines.append(raw)
        for element in template.elements:
            lines.extend(self._element_to_tspl(element, data, bitmaps))
        if print_lines:
            lines.append(print_lines[-1])

        body = NEWLINE.join(lines)
        if options.variant is not None:
            body = inject_banner_commands(
                body, self.banner_commands(options), PRINT_RE, newline=NEWLINE
            )

        tspl = self.ensure_structure(body, options)
        try:
            encoded = tspl.encode('ascii', errors=CONTROL_ENCODING_ERRORS)
        except UnicodeEncodeError as e:
            raise RenderError(f'TSPL output is not ASCII: {e}')

        if bitmaps:
            encoded = _BITMAP_MARK_RE.sub(lambda m: bitmaps[int(m.group(1))], encoded)
        return encoded

    # =========================================================================
    # Structure
    # =========================================================================

    def ensure_structure(self, tspl: str, options: RenderOptions) -> str:
        """
        Order TSPL as setup, CLS, content, PRINT.

        SIZE, GAP, DIRECTION and CLS are inserted only when absent;
        the stream always ends with exactly one PRINT command.
        """
        setup, content = self._split_setup(tspl.strip())
        setup_text = NEWLINE.join(setup)

        header = []
        if not SIZE_RE.search(setup_text):
            width_mm, height_mm = _dots_to_mm(options.width, options.dpi), _dots_to_mm(options.height, options.dpi)
            header.append(f'SIZE {width_mm} mm, {height_mm} mm')
        if not GAP_RE.search(setup_text):
            header.append('GAP 3 mm, 0 mm')
        if not DIRECTION_RE.search(setup_text):
            header.append('DIRECTION 0')

        print_lines = [line for line in content if PRINT_RE.match(line)]
        body = [line for line in content if not PRINT_RE.match(line)]
        has_cls = any(CLS_RE.match(line) for line in body)

        lines = setup + header
        if not has_cls:
            lines.append('CLS')
        lines.extend(body)
        lines.append(print_lines[-1].strip() if print_lines else 'PRINT 1, 1')
        return NEWLINE.join(lines) + NEWLINE

    @staticmethod
    def _split_setup(tspl: str) -> Tuple[List[str], List[str]]:
        """Split leading setup commands from drawing content."""
        setup, content = [], []
        for line in tspl.splitlines():
            if not line.strip():
                continue
            if not content and SETUP_RE.match(line):
                setup.append(line.strip())
            else:
                content.append(line.rstrip())
        return setup, content

    def banner_commands(self, options: RenderOptions) -> List[str]:
        """Centred text with the strip reversed to white-on-black."""
        geo = BannerGeometry.for_label(options.width, options.height, options.banner_height)
        multiplier = max(1, geo.height // 24)
        text_y = geo.y + max(0, (geo.height - 24 * multiplier) // 2)
        return [
            f'TEXT {geo.x + geo.width // 2},{text_y},"3",0,{multiplier},{multiplier},2,'
            f'"{_quote(options.variant.label)}"',
            f'REVERSE {geo.x},{geo.y},{geo.width},{geo.height}',
        ]

    def print_options(self, options: PrintOptions) -> PrintOptions:
        """Prefix each delivery with a DENSITY command."""
        density = max(0, min(self.MAX_DENSITY, int(options.darkness)))
        return replace(options, preamble=f'DENSITY {density}{NEWLINE}'.encode('ascii'))

    # =========================================================================
    # Elements
    # =========================================================================

    def _element_to_tspl(self, element: Element, data: DataContext,
                         bitmaps: List[bytes]) -> List[str]:
        """Convert one structured element to TSPL commands."""
        x, y = int(element.x), int(element.y)
        w, h = int(element.width), int(element.height)

        if element.type == 'text':
            font = element.font_family if element.font_family in ('1', '2', '3', '4', '5', '6', '7', '8') else '3'
            multiplier = max(1, min(10, round(element.font_size / 24)))
            text = _quote(data.resolve(element.content))
            if element.align == 'center':
                return [f'TEXT {x + w // 2},{y},"{font}",0,{multiplier},{multiplier},2,"{text}"']
            if element.align == 'right':
                return [f'TEXT {x + w},{y},"{font}",0,{multiplier},{multiplier},3,"{text}"']
            return [f'TEXT {x},{y},"{font}",0,{multiplier},{multiplier},"{text}"']

        if element.type == 'rect':
            if element.stroke_width:
                return [f'BOX {x},{y},{x + w},{y + h},{int(element.stroke_width)}']
            return [f'BAR {x},{y},{w},{h}']

        if element.type == 'barcode':
            bc_type = BARCODE_TYPES.get(element.format.upper())
            if bc_type is None:
                raise RenderError(f'Unsupported TSPL barcode format: {element.format}')
            value = _quote(data.resolve(element.content))
            # BARCODE x,y,"type",height,readable,rotation,narrow,wide,"data"
            return [f'BARCODE {x},{y},"{bc_type}",{h},1,0,2,4,"{value}"']

        if element.type == 'qr':
            cell = max(1, min(10, min(w, h) // 25))
            value = _quote(data.resolve(element.content))
            # QRCODE x,y,ECC level,cell width,mode,rotation,"data"
            return [f'QRCODE {x},{y},L,{cell},A,0,"{value}"']

        if element.type == 'image':
            src = data.resolve(element.src or element.content)
            bytes_per_row, rows, bitmap = to_monochrome_rows(src, w, h)
            # TSPL bitmaps print 0 bits as black
            bitmaps.append(bytes(b ^ 0xFF for b in bitmap))
            # BITMAP x,y,width_bytes,height,mode,data (mode 0 = overwrite)
            return [f'BITMAP {x},{y},{bytes_per_row},{rows},0,' + _BITMAP_MARK.format(len(bitmaps) - 1)]

        raise RenderError(f'Unsupported element type: {element.type}')


def _dots_to_mm(dots: float, dpi: int) -> float:
    return round(dots * 25.4 / (dpi or 203), 1)


def _quote(text: str) -> str:
    """Escape double quotes inside a TSPL string literal."""
    return text.replace('"', '\\["]')
