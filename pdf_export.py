import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

import pillow_heif
from fpdf import FPDF
from fpdf.enums import XPos, YPos
from PIL import Image

pillow_heif.register_heif_opener()

logger = logging.getLogger(__name__)

_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[^,]*)?;base64,(?P<data>.*)$", re.DOTALL)
_UNSAFE_FILENAME = re.compile(r'[\\/:*?"<>|\r\n]+')

# Core PDF fonts only cover latin-1.
_TYPOGRAPHIC = {
    "\u2018": "'", "\u2019": "'", "\u201c": '"', "\u201d": '"',
    "\u2013": "-", "\u2014": "-", "\u2022": "*", "\u2026": "...",
    "\u2264": "<=", "\u2265": ">=", "\u2192": "->",
}

MAX_IMAGE_HEIGHT_MM = 110
UNICODE_FAMILY = "report"


@dataclass
class PdfImage:
    src: str
    caption: str


@dataclass
class PdfExportRequest:
    title: str
    filename: str
    content_html: str
    content_text: str
    images: List[PdfImage] = field(default_factory=list)


@dataclass
class PdfExportResult:
    success: bool
    filename: str
    data: Optional[bytes] = None
    error: Optional[str] = None


def image_captions(count: int) -> List[str]:
    """The first image is the panorex; the rest are numbered photos."""
    return ["Pano" if index == 0 else f"Photo {index + 1}" for index in range(count)]


def pdf_filename(name: str) -> str:
    name = _UNSAFE_FILENAME.sub("-", (name or "").strip()) or "report"
    return name if name.lower().endswith(".pdf") else f"{name}.pdf"


def to_latin1(text: str) -> str:
    for char, replacement in _TYPOGRAPHIC.items():
        text = text.replace(char, replacement)
    return text.encode("latin-1", "replace").decode("latin-1")


def decode_data_url(src: str) -> tuple[Optional[str], bytes]:
    match = _DATA_URL.match(src or "")
    if not match:
        raise ValueError("Image source is not a base64 data URL")
    try:
        return match.group("mime"), base64.b64decode(match.group("data"), validate=True)
    except binascii.Error as e:
        raise ValueError("Image data URL is not valid base64") from e


class PdfExporter:
    """
    Renders a report and its source images into a downloadable PDF.

    export() never raises; a failure anywhere in rendering is returned as
    PdfExportResult(success=False, error=...).

    Without `font_path` text is set in the core Helvetica font, which only
    covers latin-1: typographic punctuation is transliterated and anything
    else becomes "?". Pass a Unicode TTF (DejaVuSans, Noto Sans, ...) to
    keep non-latin report text.
    """

    def __init__(self, pdf_factory: Callable[[], FPDF] = FPDF, font_path: Optional[str] = None):
        self.pdf_factory = pdf_factory
        self.font_path = font_path

    def _text(self, text: str) -> str:
        return text if self.font_path else to_latin1(text)

    def _font_family(self, pdf: FPDF) -> str:
        if not self.font_path:
            return "helvetica"
        for style in ("", "B", "I", "BI"):
            pdf.add_font(UNICODE_FAMILY, style, fname=self.font_path)
        return UNICODE_FAMILY

    def export(self, request: PdfExportRequest) -> PdfExportResult:
        filename = pdf_filename(request.filename)
        try:
            try:
                data = self._render(request, use_html=True)
            except Exception:
                logger.warning("HTML rendering of report failed; using plain text", exc_info=True)
                data = self._render(request, use_html=False)
        except Exception as e:
            logger.exception("PDF generation failed")
            return PdfExportResult(success=False, filename=filename, error=str(e) or type(e).__name__)

        return PdfExportResult(success=True, filename=filename, data=data)

    def _render(self, request: PdfExportRequest, use_html: bool) -> bytes:
        pdf = self.pdf_factory()
        pdf.set_auto_page_break(auto=True, margin=15)
        pdf.add_page()
        family = self._font_family(pdf)

        pdf.set_font(family, "B", 16)
        pdf.cell(0, 10, self._text(request.title), new_x=XPos.LMARGIN, new_y=YPos.NEXT, align="C")
        pdf.set_font(family, size=10)
        pdf.cell(
            0, 6,
            f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}",
            new_x=XPos.LMARGIN, new_y=YPos.NEXT, align="C",
        )
        pdf.ln(4)

        for image in request.images:
            self._add_image(pdf, image, family)

        pdf.set_font(family, size=11)
        if use_html:
            pdf.write_html(self._text(request.content_html))
        else:
            pdf.multi_cell(0, 6, self._text(request.content_text))

        return bytes(pdf.output())

    def _add_image(self, pdf: FPDF, image: PdfImage, family: str) -> None:
        mime, raw = decode_data_url(image.src)

        pdf.set_font(family, "B", 11)
        pdf.cell(0, 7, self._text(image.caption), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

        if mime == "application/pdf":
            pdf.set_font(family, "I", 9)
            pdf.cell(0, 6, "(PDF source, not reproduced here)", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
            pdf.ln(3)
            return

        with Image.open(io.BytesIO(raw)) as opened:
            img = opened.convert("RGB") if opened.mode not in ("RGB", "L") else opened.copy()

        width = pdf.epw
        height = width * img.height / img.width
        if height > MAX_IMAGE_HEIGHT_MM:
            height = MAX_IMAGE_HEIGHT_MM
            width = height * img.width / img.height

        pdf.image(img, x=pdf.l_margin + (pdf.epw - width) / 2, w=width, h=height)
        pdf.ln(4)
