"""
Invoice PDF rendering.

Rendering runs in two stages:

1. ``build_invoice_document`` maps an invoice into HTML markup with the Jinja2
   template ``templates/invoice.html``. The output depends only on its inputs,
   so the same invoice and print date always give the same markup.
2. ``PdfEngine`` rasterizes that markup with fpdf2 (``FPDF.write_html``) on A4
   pages with a running footer, set in a Unicode TrueType font.

Each render holds one slot of a bounded pool and a scratch directory (used for
the logo file); both are released on every exit path. The logo itself is
downloaded once per renderer and reused.
"""
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from io import BytesIO
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Iterator, Optional

import httpx
from fpdf import FPDF
from jinja2 import Environment, FileSystemLoader, select_autoescape
from PIL import Image

from app.core.config import settings
from app.core.exceptions import RenderError
from app.common.mixins import utcnow
from app.modules.invoices.fonts import FONT_FAMILY, register_invoice_fonts
from app.modules.invoices.formatting import (
    format_currency, format_date, format_quantity, text_or_empty
)

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"

jinja_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(['html', 'xml'])
)

# Pillow format name -> file suffix fpdf2 recognises
IMAGE_SUFFIXES = {
    "PNG": ".png",
    "JPEG": ".jpg",
    "GIF": ".gif",
}


@dataclass(frozen=True)
class IssuerProfile:
    name: str
    address: str
    phone: str
    mf: str
    logo_url: Optional[str] = None

    @classmethod
    def from_settings(cls) -> "IssuerProfile":
        return cls(
            name=settings.ISSUER_NAME,
            address=settings.ISSUER_ADDRESS,
            phone=settings.ISSUER_PHONE,
            mf=settings.ISSUER_MF,
            logo_url=settings.ISSUER_LOGO_URL or None,
        )


@dataclass(frozen=True)
class RenderedInvoice:
    content: bytes
    filename: str


@dataclass(frozen=True)
class LogoImage:
    content: bytes
    suffix: str


def invoice_filename(invoice_number: str) -> str:
    return f"facture-{invoice_number}.pdf"


def _invoice_context(invoice) -> dict:
    """Printable values for the template. Lines keep their stored order."""
    return {
        "invoice_number": text_or_empty(invoice.invoice_number),
        "client_name": text_or_empty(invoice.client_name),
        "client_number": text_or_empty(invoice.client_number),
        "client_address": text_or_empty(invoice.client_address),
        "client_mf": text_or_empty(invoice.client_mf),
        "delivery_person": text_or_empty(invoice.delivery_person),
        "date": format_date(invoice.issue_date),
        "lines": [
            {
                "designation": text_or_empty(item.designation),
                "quantity": format_quantity(item.quantity),
                "unit_price": format_currency(item.unit_price),
                "total_price": format_currency(item.total_price),
            }
            for item in invoice.items
        ],
        "total_ht": format_currency(invoice.total_ht),
        "total_discount": format_currency(invoice.total_discount),
        "total_ttc": format_currency(invoice.total_ttc),
    }


def build_invoice_document(
    invoice,
    issuer: IssuerProfile,
    printed_by: str,
    printed_at: datetime,
    logo_src: Optional[str] = None,
) -> str:
    template = jinja_env.get_template("invoice.html")
    return template.render(
        invoice=_invoice_context(invoice),
        issuer=issuer,
        printed_by=text_or_empty(printed_by),
        printed_on=format_date(printed_at),
        logo_src=logo_src,
        logo_width=settings.PDF_LOGO_WIDTH,
    )


class InvoicePDF(FPDF):
    """A4 portrait page with the page / user / print date footer."""

    def __init__(self, printed_by: str, printed_on: str):
        super().__init__(orientation="P", unit="mm", format="A4")
        self.printed_by = printed_by
        self.printed_on = printed_on
        self.font_name = register_invoice_fonts(self)
        self.set_margins(10, 10, 10)
        self.set_auto_page_break(auto=True, margin=15)
        self.alias_nb_pages()
        self.set_font(self.font_name, size=10)

    def footer(self):
        self.set_y(-12)
        self.set_font(self.font_name, size=8)
        self.cell(
            0, 8,
            text=(
                f"Page : {self.page_no()}/{{nb}} | Utilisateur : {self.printed_by}"
                f" | Date d'impression : {self.printed_on}"
            ),
            align="C",
        )


class PdfEngine:
    """Bounded pool of render slots around fpdf2."""

    def __init__(self, max_concurrent: int = None, acquire_timeout: float = None):
        self.max_concurrent = max_concurrent or settings.PDF_MAX_CONCURRENT_RENDERS
        self.acquire_timeout = (
            settings.PDF_ACQUIRE_TIMEOUT_SECONDS if acquire_timeout is None else acquire_timeout
        )
        self._slots = threading.BoundedSemaphore(self.max_concurrent)

    @contextmanager
    def slot(self) -> Iterator[Path]:
        """Hold a render slot and a scratch directory for the duration of one render."""
        if not self._slots.acquire(timeout=self.acquire_timeout):
            logger.warning(f"No PDF render slot free after {self.acquire_timeout}s")
            raise RenderError()
        try:
            with TemporaryDirectory(prefix="invoice-render-") as scratch:
                yield Path(scratch)
        finally:
            self._slots.release()

    def rasterize(self, markup: str, printed_by: str, printed_on: str) -> bytes:
        pdf = InvoicePDF(printed_by, printed_on)
        pdf.add_page()
        pdf.write_html(markup, font_family=FONT_FAMILY)
        return bytes(pdf.output())


def verify_logo(content: bytes, source: str) -> Optional[LogoImage]:
    """Accept the bytes only when Pillow reads them as a PNG, JPEG or GIF image."""
    try:
        with Image.open(BytesIO(content)) as image:
            image_format = image.format
            image.verify()
    except (OSError, SyntaxError, ValueError) as e:
        logger.warning(f"Logo at {source} is not a readable image: {e}")
        return None

    suffix = IMAGE_SUFFIXES.get(image_format)
    if suffix is None:
        logger.warning(f"Logo at {source} is not a supported image ({image_format})")
        return None
    return LogoImage(content=content, suffix=suffix)


def fetch_logo(source: Optional[str], timeout: float) -> Optional[LogoImage]:
    """
    Load the issuer logo from a local path or an http(s) URL.

    Returns None when the logo cannot be obtained or is not an image; the
    invoice is then printed without it.
    """
    if not source:
        return None

    if not source.startswith(("http://", "https://")):
        path = Path(source)
        if not path.is_file():
            logger.warning(f"Logo file not found: {source}")
            return None
        try:
            content = path.read_bytes()
        except OSError as e:
            logger.warning(f"Could not read logo file {source}: {e}")
            return None
        return verify_logo(content, source)

    try:
        response = httpx.get(source, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning(f"Could not fetch logo from {source}: {e}")
        return None

    return verify_logo(response.content, source)


class InvoiceRenderer:
    def __init__(
        self,
        issuer: IssuerProfile = None,
        engine: PdfEngine = None,
        logo_timeout: float = None,
    ):
        self.issuer = issuer or IssuerProfile.from_settings()
        self.engine = engine or PdfEngine()
        self.logo_timeout = settings.PDF_LOGO_TIMEOUT_SECONDS if logo_timeout is None else logo_timeout
        self._logo: Optional[LogoImage] = None
        self._logo_lock = threading.Lock()

    def logo(self) -> Optional[LogoImage]:
        """The issuer logo, downloaded on first use. Failed fetches are retried on the next render."""
        with self._logo_lock:
            if self._logo is None:
                self._logo = fetch_logo(self.issuer.logo_url, self.logo_timeout)
            return self._logo

    def render(self, invoice, printed_by: str, printed_at: datetime = None) -> RenderedInvoice:
        printed_at = printed_at or utcnow()
        printed_on = format_date(printed_at)
        logo = self.logo()

        with self.engine.slot() as scratch:
            try:
                logo_src = None
                if logo is not None:
                    logo_path = scratch / f"logo{logo.suffix}"
                    logo_path.write_bytes(logo.content)
                    logo_src = str(logo_path)
                content = self._rasterize(invoice, printed_by, printed_at, printed_on, logo_src)
            except Exception as e:
                logger.exception(f"Rendering invoice {invoice.invoice_number} failed: {e}")
                raise RenderError() from e

        logger.info(f"Invoice {invoice.invoice_number} rendered ({len(content)} bytes)")
        return RenderedInvoice(content=content, filename=invoice_filename(invoice.invoice_number))

    def _rasterize(self, invoice, printed_by, printed_at, printed_on, logo_src) -> bytes:
        markup = build_invoice_document(invoice, self.issuer, printed_by, printed_at, logo_src)
        try:
            return self.engine.rasterize(markup, printed_by, printed_on)
        except Exception as e:
            if logo_src is None:
                raise
            logger.warning(f"Invoice {invoice.invoice_number} failed with the logo, retrying without it: {e}")
        markup = build_invoice_document(invoice, self.issuer, printed_by, printed_at)
        return self.engine.rasterize(markup, printed_by, printed_on)
