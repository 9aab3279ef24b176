"""
Unicode fonts for invoice PDFs.

The built-in PDF fonts only cover latin-1, so client names written in Arabic
would not survive. Invoices are set in a TrueType font instead: the path from
settings when it points to a file, else the DejaVu Sans copy shipped in
``fonts/``, else a system install.
"""
import os
import threading
from typing import List, Optional

from fpdf import FPDF

from app.core.config import settings

FONT_FAMILY = "InvoiceFont"

_FONT_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "fonts")

REGULAR_CANDIDATES = [
    os.path.join(_FONT_DIR, "DejaVuSans.ttf"),
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans.ttf",
    "/Library/Fonts/DejaVuSans.ttf",
]
BOLD_CANDIDATES = [
    os.path.join(_FONT_DIR, "DejaVuSans-Bold.ttf"),
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf",
    "/Library/Fonts/DejaVuSans-Bold.ttf",
]

_font_lock = threading.Lock()


def find_font_path(override: Optional[str], candidates: List[str]) -> Optional[str]:
    if override and os.path.isfile(override):
        return override
    for path in candidates:
        if os.path.isfile(path):
            return path
    return None


def register_invoice_fonts(pdf: FPDF) -> str:
    """
    Register the regular and bold faces on ``pdf`` and return the family name.

    Without a bold face the regular file also serves ``<b>`` and table
    headers.
    """
    regular_path = find_font_path(settings.PDF_FONT_PATH, REGULAR_CANDIDATES)
    if regular_path is None:
        raise RuntimeError("Unicode font not found. Set PDF_FONT_PATH to a valid TTF file.")
    bold_path = find_font_path(settings.PDF_FONT_BOLD_PATH, BOLD_CANDIDATES) or regular_path

    # fpdf2 parses the TTF tables on add_font; keep concurrent renders apart
    with _font_lock:
        pdf.add_font(FONT_FAMILY, "", regular_path)
        pdf.add_font(FONT_FAMILY, "B", bold_path)
    return FONT_FAMILY
