"""
PDFSign Backend: Mark Renderer
================================

What:  Draws a signature mark (text or image) plus the status footer onto a
       single PDF page.
How:   reportlab paints an overlay page of the same size; pypdf merges the
       overlay on top of the target page in memory. Pillow verifies image
       payloads before reportlab sees them.
Who:   Called by SigningService after the coordinate mapping step.

Overlay approach:
    pypdf can read geometry and merge pages but cannot draw. reportlab can
    draw but cannot edit an existing document. Painting a one-page overlay
    and merging it keeps the original page content untouched underneath.

Fixed layout:
    - Text marks: Helvetica, caller font size, black
    - Image marks: 120 x 40 box, aspect ratio not preserved
    - Footer: "Status: <status>" at (50, 20), Helvetica-Bold 10, gray
"""

import base64
import binascii
import enum
import io
import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError
from pypdf import PageObject, PdfReader
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen.canvas import Canvas

from pdfsign.exceptions import PdfSignError, RenderFailureError, UnsupportedFormatError

logger = logging.getLogger(__name__)

TEXT_FONT = "Helvetica"
FOOTER_FONT = "Helvetica-Bold"
FOOTER_FONT_SIZE = 10
FOOTER_POSITION = (50, 20)
FOOTER_GRAY = (0.5, 0.5, 0.5)

# Image marks are stretched into this box regardless of native size
IMAGE_MARK_WIDTH = 120
IMAGE_MARK_HEIGHT = 40

# Declared media type → Pillow format name
SUPPORTED_IMAGE_TYPES = {
    "image/png": "PNG",
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
}

_DATA_URL = re.compile(r"^data:(?P<media_type>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^,;]*)*?),(?P<data>.*)$", re.S)


class MarkKind(str, enum.Enum):
    TEXT = "text"
    IMAGE = "image"


@dataclass(frozen=True)
class MarkSpec:
    """What to draw. Exactly one of text / image_data is meaningful per kind."""
    kind: MarkKind
    text: Optional[str] = None
    font_size: int = 12
    image_data: Optional[str] = None


def sniff_image_media_type(image_data: str) -> str:
    """
    Return the declared media type of an image data URL.

    Only PNG and JPEG are accepted. Anything else, including a payload with no
    data-URL prefix at all, raises UnsupportedFormatError.
    """
    match = _DATA_URL.match(image_data.strip())
    media_type = match.group("media_type").lower() if match and match.group("media_type") else None
    if media_type not in SUPPORTED_IMAGE_TYPES:
        raise UnsupportedFormatError(media_type=media_type)
    return media_type


def decode_image_payload(image_data: str) -> Tuple[str, bytes]:
    """
    Split a data URL into (pillow_format, raw_bytes).

    Raises:
        UnsupportedFormatError: media type is not PNG/JPEG
        RenderFailureError: base64 body is malformed or empty
    """
    media_type = sniff_image_media_type(image_data)
    match = _DATA_URL.match(image_data.strip())
    body = match.group("data") if match else ""
    try:
        raw = base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise RenderFailureError(
            message="The signature image could not be decoded.",
            context={"media_type": media_type, "error": str(e)},
        )
    if not raw:
        raise RenderFailureError(
            message="The signature image is empty.",
            context={"media_type": media_type},
        )
    return SUPPORTED_IMAGE_TYPES[media_type], raw


def _verify_image(expected_format: str, raw: bytes) -> None:
    """Check the bytes really are a readable image of a supported format."""
    try:
        with Image.open(io.BytesIO(raw)) as img:
            detected = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise RenderFailureError(
            message="The signature image is corrupt or unreadable.",
            context={"expected_format": expected_format, "error": str(e)},
        )
    if detected not in ("PNG", "JPEG"):
        raise UnsupportedFormatError(media_type=f"image/{(detected or 'unknown').lower()}")
    if detected != expected_format:
        # Declared PNG but sent JPEG (or vice versa): both are drawable
        logger.debug("Image declared as %s but decoded as %s", expected_format, detected)


def _draw_text(canvas: Canvas, spec: MarkSpec, position: Tuple[float, float]) -> None:
    canvas.setFillColorRGB(0, 0, 0)
    canvas.setFont(TEXT_FONT, spec.font_size)
    canvas.drawString(position[0], position[1], spec.text or "")


def _draw_image(canvas: Canvas, spec: MarkSpec, position: Tuple[float, float]) -> None:
    expected_format, raw = decode_image_payload(spec.image_data or "")
    _verify_image(expected_format, raw)
    canvas.drawImage(
        ImageReader(io.BytesIO(raw)),
        position[0],
        position[1],
        width=IMAGE_MARK_WIDTH,
        height=IMAGE_MARK_HEIGHT,
        mask="auto",  # keep PNG transparency
    )


def _draw_footer(canvas: Canvas, status: str) -> None:
    canvas.setFillColorRGB(*FOOTER_GRAY)
    canvas.setFont(FOOTER_FONT, FOOTER_FONT_SIZE)
    canvas.drawString(FOOTER_POSITION[0], FOOTER_POSITION[1], f"Status: {status}")


def render_mark(
    page: PageObject,
    spec: MarkSpec,
    position: Tuple[float, float],
    status: str,
) -> None:
    """
    Draw the mark at `position` (content space) and the status footer.

    The page is mutated in place. Nothing is written anywhere else, so a
    failure here leaves no trace outside the in-memory document.

    Raises:
        UnsupportedFormatError: image payload is not PNG/JPEG
        RenderFailureError: any decoding, drawing or merging failure
    """
    width = float(page.mediabox.width)
    height = float(page.mediabox.height)
    buffer = io.BytesIO()

    try:
        canvas = Canvas(buffer, pagesize=(width, height))
        if spec.kind is MarkKind.TEXT:
            _draw_text(canvas, spec, position)
        else:
            _draw_image(canvas, spec, position)
        _draw_footer(canvas, status)
        canvas.save()

        overlay = PdfReader(io.BytesIO(buffer.getvalue())).pages[0]
        page.merge_page(overlay)
    except PdfSignError:
        raise
    except Exception as e:
        logger.error("Mark rendering failed (%s): %s", spec.kind.value, str(e), exc_info=True)
        raise RenderFailureError(
            context={"kind": spec.kind.value, "error_type": type(e).__name__},
        )
