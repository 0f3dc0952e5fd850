"""
Special-Run Banners
===================

QC sample, formula sheet and pallet tag runs are submitted as separate jobs
whose batch number carries a suffix (``ABC123-QC SAMPLE``). Their labels get
a black strip along the bottom edge with the run name in white.

Injection is strictly additive: existing elements and commands keep their
count, order and coordinates.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from .config import BANNER_HEIGHT
from .models import Element


class Variant(str, Enum):
    """Special print run signalled by the batch number suffix."""

    QC = 'QC SAMPLE'
    FORM = 'FORMULA SHEET'
    PALLET = 'PALLET TAG'

    @property
    def label(self) -> str:
        return self.value


_VARIANT_RE = re.compile(
    r'^(?P<base>.+?)-(?:(?P<QC>QC(?: SAMPLE)?)|(?P<FORM>FORM(?:ULA SHEET)?)|(?P<PALLET>PALLET(?: TAG)?))$',
    re.IGNORECASE,
)


def detect_variant(batch_no: str) -> Tuple[str, Optional[Variant]]:
    """
    Split a batch number into its base and special-run variant.

    Examples:
        ``ABC123``               -> (``ABC123``, None)
        ``ABC123-QC SAMPLE``     -> (``ABC123``, Variant.QC)
        ``ABC123-formula sheet`` -> (``ABC123``, Variant.FORM)
    """
    match = _VARIANT_RE.match((batch_no or '').strip())
    if not match:
        return batch_no, None
    return match.group('base'), Variant[match.lastgroup]


@dataclass(frozen=True)
class BannerGeometry:
    """Banner strip position in label dots."""

    x: int
    y: int
    width: int
    height: int

    @classmethod
    def for_label(cls, width: int, height: int, strip: int = BANNER_HEIGHT) -> 'BannerGeometry':
        strip = max(1, min(strip, height))
        return cls(x=0, y=height - strip, width=width, height=strip)


def banner_elements(variant: Variant, width: int, height: int,
                    strip: int = BANNER_HEIGHT) -> List[Element]:
    """The rectangle and text elements that make up a banner."""
    geo = BannerGeometry.for_label(width, height, strip)
    font_size = max(8, int(geo.height * 0.6))
    return [
        Element(type='rect', x=geo.x, y=geo.y, width=geo.width, height=geo.height,
                id='banner-rect', fill='#000000', stroke_width=0),
        Element(type='text', x=geo.x, y=geo.y + (geo.height - font_size) / 2,
                width=geo.width, height=font_size, id='banner-text',
                text=variant.label, font_size=font_size, font_weight='bold',
                fill='#FFFFFF', align='center'),
    ]


def inject_banner_elements(elements: List[Element], variant: Optional[Variant],
                           width: int, height: int,
                           strip: int = BANNER_HEIGHT) -> List[Element]:
    """
    Return ``elements`` plus the banner for ``variant``.

    The input list is not modified; standard runs get a plain copy.
    """
    result = list(elements)
    if variant is not None:
        result.extend(banner_elements(variant, width, height, strip))
    return result


def inject_banner_commands(body: str, commands: List[str],
                           terminator: 're.Pattern', newline: str = '\n') -> str:
    """
    Insert banner commands after existing content, before the terminator.

    Args:
        body: Command stream (may or may not end with its terminator)
        commands: Banner commands to insert
        terminator: Pattern matching the terminating command
        newline: Line separator of the command language

    Returns:
        The command stream with the banner added
    """
    if not commands:
        return body
    block = newline.join(commands)
    matches = list(terminator.finditer(body))
    if not matches:
        text = body.rstrip()
        return f'{text}{newline}{block}' if text else block
    last = matches[-1]
    head = body[:last.start()].rstrip()
    tail = body[last.start():]
    return f'{head}{newline}{block}{newline}{tail}' if head else f'{block}{newline}{tail}'
