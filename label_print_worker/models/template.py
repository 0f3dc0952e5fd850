"""
Template Model
==============

Label templates, their structured elements and template component rows.

A template carries either a structured document (canvas size plus an
ordered list of elements, as saved by the designer) or raw printer
commands for the control-language engines, or both.
"""

import json
from dataclasses import dataclass, field, replace
from typing import Optional, Dict, Any, List

from ..config import DEFAULT_DPI, DEFAULT_WIDTH, DEFAULT_HEIGHT
from ..errors import InvalidRecordError

ELEMENT_TYPES = ('text', 'rect', 'barcode', 'qr', 'image')

# Fallback (width, height) in dots when an element has no usable geometry
DEFAULT_ELEMENT_SIZE = {
    'text': (200, 30),
    'rect': (100, 50),
    'barcode': (200, 80),
    'qr': (100, 100),
    'image': (100, 100),
}
DEFAULT_FONT_SIZE = 12


@dataclass
class Element:
    """One drawable item on a label."""

    type: str = 'text'
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0

    id: Optional[str] = None
    text: Optional[str] = None
    value: Optional[str] = None

    font_family: str = 'Helvetica'
    font_size: float = DEFAULT_FONT_SIZE
    font_weight: str = 'normal'
    fill: str = '#000000'
    stroke: Optional[str] = None
    stroke_width: float = 0
    align: str = 'left'

    # Barcode symbology (CODE128, CODE39, EAN13 ...)
    format: str = 'CODE128'

    # Image reference: data URI or file path
    src: Optional[str] = None

    def __post_init__(self):
        default_w, default_h = DEFAULT_ELEMENT_SIZE.get(self.type, (100, 30))
        if not self.width or self.width <= 0:
            self.width = default_w
        if not self.height or self.height <= 0:
            self.height = default_h
        if not self.font_size or self.font_size <= 0:
            self.font_size = DEFAULT_FONT_SIZE

    @property
    def content(self) -> str:
        """Text or encoded value carried by the element."""
        if self.type == 'text':
            return self.text if self.text is not None else (self.value or '')
        return self.value if self.value is not None else (self.text or '')

    @property
    def is_bold(self) -> bool:
        return str(self.font_weight).lower() in ('bold', '700', '800', '900')

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Element':
        """Create from a designer element dictionary."""
        if not isinstance(data, dict):
            raise InvalidRecordError(f'Element must be an object, got {type(data).__name__}')
        try:
            return cls(
                type=str(data.get('type') or 'text').lower(),
                x=_number(data.get('x')),
                y=_number(data.get('y')),
                width=_number(data.get('width')),
                height=_number(data.get('height')),
                id=data.get('id'),
                text=data.get('text'),
                value=data.get('value'),
                font_family=data.get('fontFamily') or 'Helvetica',
                font_size=_number(data.get('fontSize')),
                font_weight=str(data.get('fontWeight') or data.get('fontStyle') or 'normal'),
                fill=data.get('fill') or '#000000',
                stroke=data.get('stroke'),
                stroke_width=_number(data.get('strokeWidth')),
                align=str(data.get('align') or 'left').lower(),
                format=str(data.get('format') or 'CODE128').upper(),
                src=data.get('src') or data.get('imageUrl'),
            )
        except (TypeError, ValueError) as e:
            raise InvalidRecordError(f'Invalid element {data!r}: {e}')


@dataclass
class Component:
    """Template component row (a positioned field attached to a template)."""

    component_id: int = 0
    component_type: str = 'text'
    x: float = 0
    y: float = 0
    w: Optional[float] = None
    h: Optional[float] = None
    font_name: Optional[str] = None
    font_size: Optional[int] = None
    placeholder: Optional[str] = None
    static_text: Optional[str] = None
    barcode_format: Optional[str] = None
    value: Optional[str] = None

    def to_element(self) -> Element:
        """Convert to a drawable element."""
        content = self.value or self.static_text
        if content is None and self.placeholder:
            placeholder = self.placeholder.strip()
            content = placeholder if placeholder.startswith('${') else '${' + placeholder + '}'
        kind = self.component_type.lower()
        return Element(
            type=kind,
            x=self.x,
            y=self.y,
            width=self.w or 0,
            height=self.h or 0,
            id=f'component-{self.component_id}',
            text=content if kind == 'text' else None,
            value=None if kind == 'text' else content,
            font_family=self.font_name or 'Helvetica',
            font_size=self.font_size or DEFAULT_FONT_SIZE,
            format=(self.barcode_format or 'CODE128').upper(),
            src=content if kind == 'image' else None,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Component':
        """Create from a component row (snake_case or database column names)."""
        row = {k.replace('_', '').lower(): v for k, v in data.items()}
        kind = row.get('componenttype') or row.get('type') or 'text'
        if str(kind).lower() not in ELEMENT_TYPES:
            raise InvalidRecordError(f'Unknown component type: {kind!r}')
        try:
            return cls(
                component_id=int(row.get('componentid') or 0),
                component_type=str(kind).lower(),
                x=_number(row.get('x')),
                y=_number(row.get('y')),
                w=_number(row['w']) if row.get('w') is not None else None,
                h=_number(row['h']) if row.get('h') is not None else None,
                font_name=row.get('fontname'),
                font_size=int(row['fontsize']) if row.get('fontsize') else None,
                placeholder=row.get('placeholder'),
                static_text=row.get('statictext'),
                barcode_format=row.get('barcodeformat'),
                value=row.get('value'),
            )
        except (TypeError, ValueError) as e:
            raise InvalidRecordError(f'Invalid component {data!r}: {e}')


@dataclass
class Template:
    """Label template record."""

    template_id: int = 0
    name: str = ""
    engine: str = 'ZPL'

    # Label size in dots at ``dpi``
    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    dpi: int = DEFAULT_DPI

    # Structured document
    elements: List[Element] = field(default_factory=list)

    # Raw printer commands (control-language engines)
    raw_content: str = ""

    def with_components(self, components: List[Component]) -> 'Template':
        """Return a copy with component elements appended in order."""
        extra = [c.to_element() for c in components]
        return replace(self, elements=list(self.elements) + extra)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Template':
        """
        Create from a template row.

        ``Content`` holds either the designer JSON document
        (``{"canvasSize": {...}, "elements": [...]}``) or raw commands.
        A separate ``RawContent`` column is honoured when present.
        """
        row = {k.replace('_', '').lower(): v for k, v in data.items()}
        content = row.get('content')
        raw = row.get('rawcontent') or ''
        document = None

        if isinstance(content, dict):
            document = content
        elif isinstance(content, str) and content.strip():
            document = parse_document(content)
            if document is None:
                raw = raw or content

        width = row.get('width')
        height = row.get('height')
        elements = []
        if document is not None:
            canvas = document.get('canvasSize') or {}
            width = width or canvas.get('width')
            height = height or canvas.get('height')
            items = document.get('elements') or []
            if not isinstance(items, list):
                raise InvalidRecordError('Template elements must be a list')
            elements = [Element.from_dict(item) for item in items]

        try:
            return cls(
                template_id=int(row.get('templateid', row.get('id', 0)) or 0),
                name=str(row.get('name') or ''),
                engine=str(row.get('engine') or 'ZPL'),
                width=int(width or DEFAULT_WIDTH),
                height=int(height or DEFAULT_HEIGHT),
                dpi=int(row.get('dpi') or DEFAULT_DPI),
                elements=elements,
                raw_content=raw,
            )
        except (TypeError, ValueError) as e:
            raise InvalidRecordError(f'Invalid template record: {e}')


def parse_document(content: str) -> Optional[Dict[str, Any]]:
    """
    Parse designer JSON content.

    Returns:
        The document dict, or None when ``content`` is not a JSON object
        (i.e. raw printer commands).
    """
    text = content.strip()
    if not text.startswith('{'):
        return None
    try:
        document = json.loads(text)
    except json.JSONDecodeError:
        return None
    return document if isinstance(document, dict) else None


def _number(value: Any) -> float:
    if value is None or value == '':
        return 0
    return float(value)
