import base64
from io import BytesIO

import pytest
from PIL import Image

from label_print_worker.banner import Variant
from label_print_worker.delivery import PrintOptions
from label_print_worker.errors import RenderError
from label_print_worker.merge import DataContext
from label_print_worker.models import Template, Element, Component
from label_print_worker.renderers import TsplRenderer, RenderOptions


@pytest.fixture
def renderer():
    return TsplRenderer()


def _render(renderer, template, data=None, **kwargs) -> bytes:
    options = RenderOptions.for_template(template, **kwargs)
    return renderer.render_label(template, DataContext(data or {}), options)


def _lines(payload: bytes):
    return payload.decode('ascii').rstrip('\r\n').split('\r\n')


def _count(lines, command):
    return sum(1 for line in lines if line.split(' ', 1)[0].upper() == command)


def test_structure_added_when_absent(renderer):
    template = Template(engine='TSPL', width=400, height=300, dpi=203,
                        raw_content='TEXT 10,10,"3",0,1,1,"${BatchNo}"')
    lines = _lines(_render(renderer, template, {'BatchNo': 'ABC123'}))
    assert lines[0] == 'SIZE 50.0 mm, 37.5 mm'
    assert lines[1] == 'GAP 3 mm, 0 mm'
    assert lines[2] == 'DIRECTION 0'
    assert lines[3] == 'CLS'
    assert lines[4] == 'TEXT 10,10,"3",0,1,1,"ABC123"'
    assert lines[-1] == 'PRINT 1, 1'


def test_existing_commands_not_duplicated(renderer):
    raw = '\r\n'.join([
        'SIZE 60 mm, 40 mm',
        'GAP 2 mm, 0 mm',
        'CLS',
        'TEXT 10,10,"3",0,1,1,"${BatchNo}"',
        'PRINT 2,1',
        'TEXT 10,50,"3",0,1,1,"late"',
    ])
    lines = _lines(_render(renderer, Template(engine='TSPL', raw_content=raw), {'BatchNo': 'X'}))
    for command in ('SIZE', 'GAP', 'CLS', 'PRINT'):
        assert _count(lines, command) == 1, command
    assert 'SIZE 60 mm, 40 mm' in lines
    assert lines[-1] == 'PRINT 2,1'
    assert lines.index('CLS') < lines.index('TEXT 10,10,"3",0,1,1,"X"')


def test_unix_line_endings_normalised(renderer):
    payload = _render(renderer, Template(engine='TSPL', raw_content='CLS\nTEXT 1,1,"3",0,1,1,"x"\nPRINT 1'))
    assert b'\n' not in payload.replace(b'\r\n', b'')
    assert _lines(payload)[-1] == 'PRINT 1'


def test_elements_converted(renderer):
    template = Template(engine='TSPL', elements=[
        Element(type='text', x=10, y=20, text='Lot "${BatchNo}"', font_size=48),
        Element(type='rect', x=0, y=0, width=100, height=4),
        Element(type='rect', x=0, y=0, width=100, height=50, stroke_width=2),
        Element(type='barcode', x=20, y=100, height=60, value='${BatchNo}', format='CODE39'),
        Element(type='qr', x=300, y=100, width=100, height=100, value='${BatchNo}'),
    ])
    lines = _lines(_render(renderer, template, {'BatchNo': 'ABC123'}))
    assert 'TEXT 10,20,"3",0,2,2,"Lot \\["]ABC123\\["]"' in lines
    assert 'BAR 0,0,100,4' in lines
    assert 'BOX 0,0,100,50,2' in lines
    assert 'BARCODE 20,100,"39",60,1,0,2,4,"ABC123"' in lines
    assert 'QRCODE 300,100,L,4,A,0,"ABC123"' in lines


def test_unsupported_element(renderer):
    with pytest.raises(RenderError):
        _render(renderer, Template(engine='TSPL', elements=[Element(type='ellipse')]))


def test_bitmap_is_binary_and_inverted(renderer):
    img = Image.new('L', (8, 1), 255)
    for x in range(4):
        img.putpixel((x, 0), 0)
    buffer = BytesIO()
    img.save(buffer, format='PNG')
    uri = 'data:image/png;base64,' + base64.b64encode(buffer.getvalue()).decode('ascii')

    template = Template(engine='TSPL', elements=[Element(type='image', width=8, height=1, src=uri)])
    payload = _render(renderer, template)
    assert b'BITMAP 0,0,1,1,0,\x0f\r\n' in payload
    assert b'\x00' not in payload


def test_banner_before_print(renderer):
    template = Template(engine='TSPL', width=400, height=300,
                        raw_content='CLS\r\nTEXT 10,10,"3",0,1,1,"body"\r\nPRINT 1,1')
    lines = _lines(_render(renderer, template, variant=Variant.FORM))
    banner_text = next(i for i, line in enumerate(lines) if 'FORMULA SHEET' in line)
    reverse = lines.index('REVERSE 0,260,400,40')
    assert lines.index('TEXT 10,10,"3",0,1,1,"body"') < banner_text < reverse
    assert lines[-1] == 'PRINT 1,1'
    assert _count(lines, 'PRINT') == 1


@pytest.mark.parametrize('darkness,expected', [(8, b'DENSITY 8\r\n'), (30, b'DENSITY 15\r\n'), (-2, b'DENSITY 0\r\n')])
def test_density_preamble(renderer, darkness, expected):
    original = PrintOptions(darkness=darkness)
    options = renderer.print_options(original)
    assert options.preamble == expected
    assert original.preamble == b''


def test_can_render_aliases(renderer):
    for engine in ('TSPL', 'tspl2', 'TSC'):
        assert renderer.can_render(engine)
    assert not renderer.can_render('ZPL')


def test_raw_print_with_components_and_banner(renderer):
    template = Template(engine='TSPL', width=400, height=300,
                        raw_content='CLS\r\nTEXT 10,10,"3",0,1,1,"${BatchNo}"\r\nPRINT 1,1')
    template = template.with_components([
        Component(component_id=1, component_type='rect', x=0, y=0, w=400, h=300),
    ])
    lines = _lines(_render(renderer, template, {'BatchNo': 'ABC123'}, variant=Variant.QC))

    assert _count(lines, 'PRINT') == 1 and lines[-1] == 'PRINT 1,1'
    assert _count(lines, 'CLS') == 1
    raw_text = lines.index('TEXT 10,10,"3",0,1,1,"ABC123"')
    bar = lines.index('BAR 0,0,400,300')
    banner_text = next(i for i, line in enumerate(lines) if 'QC SAMPLE' in line)
    reverse = lines.index('REVERSE 0,260,400,40')
    assert raw_text < bar < banner_text < reverse < len(lines) - 1
