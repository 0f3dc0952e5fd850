"""
Image Helpers
=============

Loading image references and packing them into 1-bit printer bitmaps.
"""

import base64
import binascii
import os
from io import BytesIO
from typing import Tuple

from PIL import Image

from ..errors import RenderError


def load_image_bytes(ref: str) -> bytes:
    """
    Resolve an image reference to raw bytes.

    Args:
        ref: ``data:image/...;base64,...`` URI or a file path

    Raises:
        RenderError: if the reference cannot be read
    """
    if not ref:
        raise RenderError('Image element has no source')
    if ref.startswith('data:'):
        try:
            _, encoded = ref.split(',', 1)
            return base64.b64decode(encoded)
        except (ValueError, binascii.Error) as e:
            raise RenderError(f'Invalid image data URI: {e}')
    if os.path.isfile(ref):
        with open(ref, 'rb') as f:
            return f.read()
    raise RenderError(f'Image not found: {ref}')


def open_image(ref: str) -> Image.Image:
    """Open an image reference with Pillow."""
    try:
        img = Image.open(BytesIO(load_image_bytes(ref)))
        img.load()
        return img
    except (OSError, Image.DecompressionBombError) as e:
        raise RenderError(f'Unreadable image {ref[:40]!r}: {e}')


def to_monochrome_rows(ref: str, width: int = None, height: int = None) -> Tuple[int, int, bytes]:
    """
    Convert an image to packed 1-bit rows (MSB first, black = 1).

    Args:
        ref: Image reference
        width: Target width in dots (optional)
        height: Target height in dots (optional)

    Returns:
        (bytes_per_row, row_count, packed data)
    """
    img = open_image(ref)

    # Resize if specified
    if width and height:
        img = img.resize((int(width), int(height)), Image.Resampling.LANCZOS)
    elif width:
        ratio = width / img.width
        img = img.resize((int(width), max(1, int(img.height * ratio))), Image.Resampling.LANCZOS)

    # Flatten transparency onto white before thresholding
    if img.mode in ('RGBA', 'LA', 'P'):
        background = Image.new('RGBA', img.size, (255, 255, 255, 255))
        background.alpha_composite(img.convert('RGBA'))
        img = background
    img = img.convert('1')

    w, h = img.size
    bytes_per_row = (w + 7) // 8

    data = bytearray()
    for y in range(h):
        for x_byte in range(bytes_per_row):
            byte = 0
            for bit in range(8):
                x = x_byte * 8 + bit
                if x < w and img.getpixel((x, y)) == 0:  # Black pixel
                    byte |= (1 << (7 - bit))
            data.append(byte)

    return bytes_per_row, h, bytes(data)
