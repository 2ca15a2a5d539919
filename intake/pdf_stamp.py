"""
PDF branding with PyMuPDF.

Images can be laid out on a single A4 page, and PDFs get a brand header band
and/or a footer line on every page. Rendering itself is left to PyMuPDF.
"""

import logging
from typing import Optional, Tuple

import fitz  # PyMuPDF

from intake.branding import Brand, BrandFeatures
from intake.schema import FileKind

logger = logging.getLogger(__name__)

A4 = fitz.paper_rect("a4")
MARGIN = 36  # 0.5 inch
HEADER_HEIGHT = 28
FOOTER_FONT_SIZE = 7


def _hex_to_rgb(color: str) -> Tuple[float, float, float]:
    value = (color or "").lstrip("#")
    if len(value) == 3:
        value = "".join(ch * 2 for ch in value)
    try:
        return tuple(int(value[i:i + 2], 16) / 255.0 for i in (0, 2, 4))
    except ValueError:
        return (0.83, 0.83, 0.83)


def _text_color(rgb: Tuple[float, float, float]) -> Tuple[float, float, float]:
    luminance = 0.299 * rgb[0] + 0.587 * rgb[1] + 0.114 * rgb[2]
    return (0, 0, 0) if luminance > 0.6 else (1, 1, 1)


def image_to_a4_pdf(data: bytes) -> bytes:
    """
    Place a JPEG/PNG centred on one A4 portrait page. The image is only ever
    scaled down to fit inside the margins, never up.
    """
    doc = fitz.open()
    try:
        page = doc.new_page(width=A4.width, height=A4.height)
        pixmap = fitz.Pixmap(data)
        max_w = A4.width - 2 * MARGIN
        max_h = A4.height - 2 * MARGIN
        scale = min(max_w / pixmap.width, max_h / pixmap.height, 1.0)
        w = pixmap.width * scale
        h = pixmap.height * scale
        x0 = (A4.width - w) / 2
        y0 = (A4.height - h) / 2
        page.insert_image(fitz.Rect(x0, y0, x0 + w, y0 + h), stream=data)
        return doc.tobytes(garbage=3, deflate=True)
    finally:
        doc.close()


def stamp_pdf(data: bytes, header: Optional[str], footer: Optional[str], color: str) -> bytes:
    """Draw a coloured header band and/or a footer line on every page."""
    fill = _hex_to_rgb(color)
    ink = _text_color(fill)
    doc = fitz.open(stream=data, filetype="pdf")
    try:
        for page in doc:
            rect = page.rect
            if header:
                band = fitz.Rect(0, 0, rect.width, HEADER_HEIGHT)
                page.draw_rect(band, color=fill, fill=fill, overlay=True)
                page.insert_text((MARGIN / 2, HEADER_HEIGHT - 9), header, fontsize=11, color=ink)
            if footer:
                page.insert_text(
                    (MARGIN / 2, rect.height - 10), footer,
                    fontsize=FOOTER_FONT_SIZE, color=(0.4, 0.4, 0.4),
                )
        return doc.tobytes(garbage=3, deflate=True)
    finally:
        doc.close()


def brand_pdf(
    data: bytes,
    kind: FileKind,
    brand: Brand,
    features: BrandFeatures,
    footer_label: str,
) -> Optional[bytes]:
    """
    Apply the brand's PDF options. Returns the new PDF bytes, or None when
    nothing applies (feature off, or a WEBP/HEIC image that stays as uploaded).
    """
    if not (features.pdf_header or features.pdf_footer):
        return None
    if kind in (FileKind.JPG, FileKind.PNG):
        data = image_to_a4_pdf(data)
    elif kind != FileKind.PDF:
        return None
    header = brand.display_name if features.pdf_header else None
    footer = footer_label if features.pdf_footer else None
    return stamp_pdf(data, header, footer, brand.color)
