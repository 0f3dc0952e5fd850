"""
Document Renderer
=================

Renders structured templates to PDF (reportlab) or HTML markup.

Used for office printers, archiving and label previews. Each data context
becomes one PDF page, or one ``<div class="label">`` block in HTML.

Coordinates in templates are label dots with a top-left origin. PDF output
converts them to points (72 per inch) at the template DPI and flips the
y-axis; HTML output uses one CSS pixel per dot.
"""

import base64
import html
import logging
from io import BytesIO
from typing import List, Sequence

import qrcode
from reportlab.graphics import renderPDF, renderSVG
from reportlab.graphics.barcode import createBarcodeDrawing
from reportlab.lib.colors import HexColor, black, red, white
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from .base import BaseRenderer, RenderOptions
from .images import open_image
from ..banner import inject_banner_elements
from ..config import ENGINES
from ..errors import RenderError
from ..merge import DataContext
from ..models import Template, Element

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ('pdf', 'html')

# Barcode symbology -> reportlab barcode name
BARCODE_NAMES = {
    'CODE128': 'Code128',
    'C128': 'Code128',
    'CODE39': 'Standard39',
    'C39': 'Standard39',
    'CODE93': 'Standard93',
    'EAN13': 'EAN13',
    'EAN8': 'EAN8',
    'UPCA': 'UPCA',
    'ITF': 'I2of5',
}

# Built-in PDF fonts: family -> (regular, bold)
PDF_FONTS = {
    'helvetica': ('Helvetica', 'Helvetica-Bold'),
    'arial': ('Helvetica', 'Helvetica-Bold'),
    'times': ('Times-Roman', 'Times-Bold'),
    'times new roman': ('Times-Roman', 'Times-Bold'),
    'courier': ('Courier', 'Courier-Bold'),
    'courier new': ('Courier', 'Courier-Bold'),
}

HTML_STYLE = (
    'body{margin:0;font-family:Helvetica,Arial,sans-serif}'
    '.label{position:relative;overflow:hidden;background:#fff;'
    'margin:0 0 8px 0;page-break-after:always}'
    '.label>*{position:absolute;box-sizing:border-box;margin:0}'
    '.label svg,.label img{display:block}'
    '.render-error{border:1px dashed #c00;color:#c00;font-size:10px;overflow:hidden}'
)


class DocumentRenderer(BaseRenderer):
    """Renderer for PDF and HTML documents."""

    engine_family = 'document'

    def output_format(self, template: Template, options: RenderOptions) -> str:
        """Explicit option first, then the template engine's output."""
        if options.output_format:
            fmt = options.output_format.lower()
        else:
            engine = (template.engine or '').strip().upper()
            fmt = next(
                (e['output'] for e in ENGINES.values()
                 if e['renderer'] == self.engine_family and engine in e['aliases']),
                'pdf',
            )
        if fmt not in OUTPUT_FORMATS:
            raise RenderError(f'Unsupported document format: {fmt}')
        return fmt

    def render_label(self, template: Template, data: DataContext,
                     options: RenderOptions) -> bytes:
        return self.render_labels(template, [data], options)

    def render_labels(self, template: Template, contexts: Sequence[DataContext],
                      options: RenderOptions) -> bytes:
        """
        Render all contexts into a single document.

        Returns:
            PDF bytes, or UTF-8 encoded HTML
        """
        elements = inject_banner_elements(
            template.elements, options.variant, options.width, options.height,
            options.banner_height,
        )
        if self.output_format(template, options) == 'html':
            return self._render_html(template, elements, contexts, options)
        return self._render_pdf(template, elements, contexts, options)

    # =========================================================================
    # PDF
    # =========================================================================

    def _render_pdf(self, template: Template, elements: List[Element],
                    contexts: Sequence[DataContext], options: RenderOptions) -> bytes:
        scale = 72.0 / (options.dpi or 203)
        page_w, page_h = options.width * scale, options.height * scale

        buffer = BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=(page_w, page_h))
        pdf.setTitle(template.name or f'Template {template.template_id}')

        for data in contexts:
            if template.raw_content:
                self._draw_raw_text(pdf, data.resolve(template.raw_content), page_h)
            for element in elements:
                try:
                    self._draw_pdf_element(pdf, element, data, scale, page_h)
                except (RenderError, ValueError, TypeError, KeyError, AttributeError) as e:
                    if not options.preview:
                        raise RenderError(f'Cannot render {element.type} element {element.id or ""}: {e}')
                    logger.warning("Preview: %s element failed: %s", element.type, e)
                    self._draw_pdf_error(pdf, element, str(e), scale, page_h)
            pdf.showPage()

        pdf.save()
        return buffer.getvalue()

    def _draw_pdf_element(self, pdf: canvas.Canvas, element: Element, data: DataContext,
                          scale: float, page_h: float):
        x = element.x * scale
        w, h = element.width * scale, element.height * scale
        # Bottom edge of the element box in PDF coordinates
        y = page_h - (element.y * scale) - h

        if element.type == 'text':
            size = element.font_size * scale
            regular, bold = PDF_FONTS.get(element.font_family.lower(), PDF_FONTS['helvetica'])
            pdf.setFont(bold if element.is_bold else regular, size)
            pdf.setFillColor(HexColor(element.fill))
            text = data.resolve(element.content)
            baseline = page_h - (element.y * scale) - size * 0.8
            if element.align == 'center':
                pdf.drawCentredString(x + w / 2, baseline, text)
            elif element.align == 'right':
                pdf.drawRightString(x + w, baseline, text)
            else:
                pdf.drawString(x, baseline, text)

        elif element.type == 'rect':
            filled = bool(element.fill) and element.fill.lower() not in ('none', 'transparent')
            if filled:
                pdf.setFillColor(HexColor(element.fill))
            stroked = bool(element.stroke_width)
            if stroked:
                pdf.setStrokeColor(HexColor(element.stroke or '#000000'))
                pdf.setLineWidth(element.stroke_width * scale)
            pdf.rect(x, y, w, h, stroke=int(stroked), fill=int(filled))

        elif element.type in ('barcode', 'qr'):
            drawing = self._barcode_drawing(element, data.resolve(element.content), w, h)
            renderPDF.draw(drawing, pdf, x, y)

        elif element.type == 'image':
            reader = ImageReader(open_image(data.resolve(element.src or element.content)))
            pdf.drawImage(reader, x, y, width=w, height=h, mask='auto')

        else:
            raise RenderError(f'Unsupported element type: {element.type}')

    @staticmethod
    def _draw_raw_text(pdf: canvas.Canvas, text: str, page_h: float):
        """Raw content on a document template prints as monospaced lines."""
        pdf.setFillColor(black)
        pdf.setFont('Courier', 8)
        for i, line in enumerate(text.splitlines()):
            pdf.drawString(4, page_h - 12 - i * 10, line)

    @staticmethod
    def _draw_pdf_error(pdf: canvas.Canvas, element: Element, message: str,
                        scale: float, page_h: float):
        x, w, h = element.x * scale, element.width * scale, element.height * scale
        y = page_h - (element.y * scale) - h
        pdf.setStrokeColor(red)
        pdf.setFillColor(white)
        pdf.rect(x, y, w, h, stroke=1, fill=1)
        pdf.setFillColor(red)
        pdf.setFont('Helvetica', 6)
        pdf.drawString(x + 2, y + h - 8, message[:60])

    @staticmethod
    def _barcode_drawing(element: Element, value: str, width: float, height: float):
        """Build a reportlab drawing scaled to the element box."""
        if element.type == 'qr':
            name = 'QR'
        else:
            name = BARCODE_NAMES.get(element.format.upper())
            if name is None:
                raise RenderError(f'Unsupported barcode format: {element.format}')
        if not value:
            raise RenderError(f'{element.type} element has no value')
        return createBarcodeDrawing(name, value=value, width=width, height=height)

    # =========================================================================
    # HTML
    # =========================================================================

    def _render_html(self, template: Template, elements: List[Element],
                     contexts: Sequence[DataContext], options: RenderOptions) -> bytes:
        title = html.escape(template.name or f'Template {template.template_id}')
        blocks = []
        for data in contexts:
            parts = []
            if template.raw_content:
                parts.append(f'<pre style="left:0;top:0">{html.escape(data.resolve(template.raw_content))}</pre>')
            for element in elements:
                try:
                    parts.append(self._html_element(element, data))
                except (RenderError, ValueError, TypeError, KeyError, AttributeError) as e:
                    if not options.preview:
                        raise RenderError(f'Cannot render {element.type} element {element.id or ""}: {e}')
                    logger.warning("Preview: %s element failed: %s", element.type, e)
                    parts.append(
                        f'<div class="render-error" style="{_box_style(element)}">'
                        f'{html.escape(str(e))}</div>'
                    )
            blocks.append(
                f'<div class="label" style="width:{int(options.width)}px;height:{int(options.height)}px">'
                + ''.join(parts) + '</div>'
            )

        document = (
            '<!DOCTYPE html>\n<html><head><meta charset="utf-8">'
            f'<title>{title}</title><style>{HTML_STYLE}</style></head><body>\n'
            + '\n'.join(blocks)
            + '\n</body></html>\n'
        )
        return document.encode('utf-8')

    def _html_element(self, element: Element, data: DataContext) -> str:
        box = _box_style(element)

        if element.type == 'text':
            style = (
                f'{box};font-size:{_fmt(element.font_size)}px;'
                f'font-family:{html.escape(element.font_family)};'
                f'font-weight:{"bold" if element.is_bold else "normal"};'
                f'color:{html.escape(element.fill)};text-align:{element.align};white-space:nowrap'
            )
            return f'<div style="{style}">{html.escape(data.resolve(element.content))}</div>'

        if element.type == 'rect':
            style = f'{box};background:{html.escape(element.fill)}'
            if element.stroke_width:
                style += f';border:{_fmt(element.stroke_width)}px solid {html.escape(element.stroke or "#000000")}'
            return f'<div style="{style}"></div>'

        if element.type == 'barcode':
            drawing = self._barcode_drawing(element, data.resolve(element.content),
                                            element.width, element.height)
            svg = renderSVG.drawToString(drawing)
            return f'<div style="{box}">{svg[svg.find("<svg"):]}</div>'

        if element.type == 'qr':
            src = _qr_data_uri(data.resolve(element.content))
            return f'<img style="{box}" src="{src}" alt="QR">'

        if element.type == 'image':
            ref = data.resolve(element.src or element.content)
            if not ref.startswith('data:'):
                ref = _png_data_uri(open_image(ref))
            return f'<img style="{box}" src="{html.escape(ref)}" alt="">'

        raise RenderError(f'Unsupported element type: {element.type}')


def _qr_data_uri(value: str) -> str:
    """QR code as an inline PNG."""
    if not value:
        raise RenderError('qr element has no value')
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=0,
    )
    qr.add_data(value)
    qr.make(fit=True)
    return _png_data_uri(qr.make_image(fill_color='black', back_color='white').convert('RGB'))


def _png_data_uri(img) -> str:
    buffer = BytesIO()
    img.save(buffer, format='PNG')
    return 'data:image/png;base64,' + base64.b64encode(buffer.getvalue()).decode('ascii')


def _box_style(element: Element) -> str:
    return (f'left:{_fmt(element.x)}px;top:{_fmt(element.y)}px;'
            f'width:{_fmt(element.width)}px;height:{_fmt(element.height)}px')


def _fmt(value: float) -> str:
    return f'{value:g}'
