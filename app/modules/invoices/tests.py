"""
Tests para el módulo de Facturas

Tests que cubren:
- Numeración BCC001, BCC002, ... (relleno a 3 cifras, sin truncar)
- Reintento ante conflicto de número y agotamiento (503)
- Creaciones concurrentes con números distintos
- Recalculo de totales en el servidor y límites de importes
- Formato de importes, fechas y cantidades
- Documento HTML determinista y PDF real (texto árabe incluido)
- Logo: descarga única, imágenes corruptas y fallos de red
- Descarga de PDF (404 sin invocar el renderizador)
"""

import threading
from datetime import datetime, timezone
from dataclasses import replace
from decimal import Decimal
from io import BytesIO
from types import SimpleNamespace
from uuid import uuid4

import httpx
import pytest
from PIL import Image

from app.core.exceptions import InvoiceNumberFormatError, RenderError
from app.modules.invoices.formatting import (
    format_currency, format_date, format_quantity, round_amount, text_or_empty
)
from app.modules.invoices.models import Invoice, InvoiceSequence
from app.modules.invoices.numbering import (
    InvoiceNumberAllocator, format_invoice_number, parse_invoice_ordinal
)
from app.modules.invoices.fonts import FONT_FAMILY
from app.modules.invoices.rendering import (
    InvoicePDF, InvoiceRenderer, IssuerProfile, PdfEngine, build_invoice_document, fetch_logo
)
from app.modules.invoices.schemas import InvoiceCreate, InvoiceItemIn
from app.modules.invoices.service import InvoiceService


# ===== FIXTURES =====

@pytest.fixture
def invoice_payload():
    """Datos de ejemplo para crear facturas"""
    return {
        "clientName": "Epicerie Ben Salah",
        "clientNumber": "CL0001",
        "clientAddress": "Bizerte",
        "clientMF": "1234567/A",
        "items": [
            {"designation": "Ricotta", "quantity": 2.5, "unitPrice": 14.5},
            {"designation": "Mozzarella", "quantity": 1, "unitPrice": 22.75},
        ],
    }


@pytest.fixture
def issuer():
    return IssuerProfile(
        name="Fromagerie Alioui",
        address="Zhena, Utique Bizerte",
        phone="98136638",
        mf="1798066/G",
        logo_url=None,
    )


@pytest.fixture
def printable_invoice():
    """Factura en memoria con los atributos que usa el renderizador."""
    return SimpleNamespace(
        invoice_number="BCC007",
        client_name="Restaurant Le Golfe",
        client_number="CL0042",
        client_address=None,
        client_mf=None,
        delivery_person="AbdelMonaam Alioui",
        issue_date=datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc),
        items=[
            SimpleNamespace(designation="Gouda", quantity=Decimal("2.000"),
                            unit_price=Decimal("31.200"), total_price=Decimal("62.400")),
            SimpleNamespace(designation="Beurre", quantity=Decimal("0.500"),
                            unit_price=Decimal("26.000"), total_price=Decimal("13.000")),
            SimpleNamespace(designation="Lben & co <frais>", quantity=Decimal("10"),
                            unit_price=Decimal("2.300"), total_price=Decimal("23.000")),
        ],
        total_ht=Decimal("1234.500"),
        total_discount=Decimal("0"),
        total_ttc=Decimal("1234.5"),
    )


def png_bytes():
    buffer = BytesIO()
    Image.new("RGB", (4, 4), "white").save(buffer, "PNG")
    return buffer.getvalue()


def create_invoice(client, headers, payload):
    response = client.post("/invoices/", headers=headers, json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def insert_invoice(db_session, number):
    """Factura escrita por fuera del servicio (datos heredados o concurrentes)."""
    invoice = Invoice(
        invoice_number=number,
        client_name="Legacy",
        client_number="CL0000",
        delivery_person="AbdelMonaam Alioui",
    )
    db_session.add(invoice)
    db_session.commit()
    return invoice


# ===== TESTS DE NUMERACIÓN =====

class TestInvoiceNumberFormat:

    def test_zero_padding(self):
        assert format_invoice_number(1) == "BCC001"
        assert format_invoice_number(42) == "BCC042"
        assert format_invoice_number(123) == "BCC123"

    def test_padding_never_truncates(self):
        assert format_invoice_number(1000) == "BCC1000"
        assert format_invoice_number(12345) == "BCC12345"

    def test_parse_ordinal(self):
        assert parse_invoice_ordinal("BCC007") == 7
        assert parse_invoice_ordinal("BCC1000") == 1000

    @pytest.mark.parametrize("number", ["", "BCC", "XYZ001", "BCC12a", "bcc001", "BCC-01"])
    def test_parse_rejects_other_formats(self, number):
        with pytest.raises(InvoiceNumberFormatError):
            parse_invoice_ordinal(number)


class TestInvoiceNumberAllocator:

    def test_first_number(self, db_session):
        assert InvoiceNumberAllocator(db_session).next_number() == "BCC001"

    def test_seeds_from_latest_invoice(self, db_session):
        insert_invoice(db_session, "BCC041")

        allocator = InvoiceNumberAllocator(db_session)
        assert allocator.latest_ordinal() == 41
        assert allocator.next_number() == "BCC042"

    def test_unparsable_latest_number_fails(self, db_session):
        insert_invoice(db_session, "FACT-2023-7")

        with pytest.raises(InvoiceNumberFormatError):
            InvoiceNumberAllocator(db_session).next_number()

    def test_counter_increments(self, db_session):
        allocator = InvoiceNumberAllocator(db_session)
        numbers = [allocator.next_number() for _ in range(3)]
        assert numbers == ["BCC001", "BCC002", "BCC003"]

    def test_resync_moves_counter_up(self, db_session):
        allocator = InvoiceNumberAllocator(db_session)
        allocator.next_number()
        db_session.commit()
        insert_invoice(db_session, "BCC009")
        insert_invoice(db_session, "BCC1000")

        assert allocator.resync() == 1000
        assert allocator.next_number() == "BCC1001"

    def test_resync_never_moves_counter_down(self, db_session):
        db_session.add(InvoiceSequence(prefix="BCC", current_number=50))
        db_session.commit()
        insert_invoice(db_session, "BCC010")

        assert InvoiceNumberAllocator(db_session).resync() == 50


class TestInvoiceNumbering:

    def test_serial_numbers(self, client, user_headers, invoice_payload):
        numbers = [create_invoice(client, user_headers, invoice_payload)["invoiceNumber"] for _ in range(5)]
        assert numbers == ["BCC001", "BCC002", "BCC003", "BCC004", "BCC005"]

    def test_client_supplied_number_ignored(self, client, user_headers, invoice_payload):
        invoice = create_invoice(client, user_headers, dict(invoice_payload, invoiceNumber="BCC999"))
        assert invoice["invoiceNumber"] == "BCC001"

    def test_padding_beyond_999(self, client, user_headers, invoice_payload, db_session):
        db_session.add(InvoiceSequence(prefix="BCC", current_number=999))
        db_session.commit()

        assert create_invoice(client, user_headers, invoice_payload)["invoiceNumber"] == "BCC1000"
        assert create_invoice(client, user_headers, invoice_payload)["invoiceNumber"] == "BCC1001"

    def test_conflict_is_retried(self, client, user_headers, invoice_payload, db_session):
        create_invoice(client, user_headers, invoice_payload)
        # BCC002 taken behind the counter's back
        insert_invoice(db_session, "BCC002")

        invoice = create_invoice(client, user_headers, invoice_payload)
        assert invoice["invoiceNumber"] == "BCC003"

        numbers = [number for (number,) in db_session.query(Invoice.invoice_number).all()]
        assert sorted(numbers) == ["BCC001", "BCC002", "BCC003"]

    def test_conflict_exhaustion_returns_503(self, client, user_headers, invoice_payload, db_session, monkeypatch):
        create_invoice(client, user_headers, invoice_payload)
        monkeypatch.setattr(InvoiceNumberAllocator, "next_number", lambda self: "BCC001")

        response = client.post("/invoices/", headers=user_headers, json=invoice_payload)
        assert response.status_code == 503
        assert response.json()["message"] == "Could not allocate an invoice number, please retry"
        assert db_session.query(Invoice).count() == 1

    def test_unparsable_latest_number_rejects_create(self, client, user_headers, invoice_payload, db_session):
        insert_invoice(db_session, "LEGACY-7")

        response = client.post("/invoices/", headers=user_headers, json=invoice_payload)
        assert response.status_code == 500
        assert response.json()["message"].startswith("Unrecognized invoice number format")
        assert db_session.query(Invoice).count() == 1

    def test_concurrent_creates_get_distinct_numbers(self, database):
        def payload():
            return InvoiceCreate(
                client_name="Magasin Nour",
                client_number="CL0005",
                items=[InvoiceItemIn(designation="Ricotta", quantity=Decimal("1"), unit_price=Decimal("14.5"))],
            )

        session = database.session()
        try:
            InvoiceService(session).create_invoice(payload())
        finally:
            session.close()

        numbers, errors = [], []
        lock = threading.Lock()

        def worker():
            worker_session = database.session()
            try:
                invoice = InvoiceService(worker_session).create_invoice(payload())
                with lock:
                    numbers.append(invoice.invoice_number)
            except Exception as e:
                with lock:
                    errors.append(e)
            finally:
                worker_session.close()

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert sorted(numbers) == ["BCC002", "BCC003", "BCC004", "BCC005", "BCC006"]


# ===== TESTS DE CRUD =====

class TestInvoiceCrud:

    def test_totals_recomputed(self, client, user_headers, invoice_payload):
        payload = dict(invoice_payload, totalRemise=1.25, totalHT=1, totalTTC=1)
        payload["items"] = [dict(item, totalPrice=999) for item in invoice_payload["items"]]

        invoice = create_invoice(client, user_headers, payload)

        assert [item["totalPrice"] for item in invoice["items"]] == [36.25, 22.75]
        assert invoice["totalHT"] == 59.0
        assert invoice["totalRemise"] == 1.25
        assert invoice["totalTTC"] == 57.75

    def test_defaults(self, client, user_headers, invoice_payload):
        invoice = create_invoice(client, user_headers, invoice_payload)
        assert invoice["livreurNom"] == "AbdelMonaam Alioui"
        assert invoice["date"]
        assert invoice["clientMF"] == "1234567/A"
        assert invoice["clientId"] is None

    def test_items_keep_order(self, client, user_headers, invoice_payload):
        payload = dict(invoice_payload, items=[
            {"designation": name, "quantity": 1, "unitPrice": 1} for name in ["Lben", "Beurre", "Gouda"]
        ])
        invoice = create_invoice(client, user_headers, payload)

        fetched = client.get(f"/invoices/{invoice['id']}", headers=user_headers).json()
        assert [item["designation"] for item in fetched["items"]] == ["Lben", "Beurre", "Gouda"]
        assert [item["position"] for item in fetched["items"]] == [0, 1, 2]

    def test_discount_cannot_exceed_total(self, client, user_headers, invoice_payload):
        response = client.post("/invoices/", headers=user_headers, json=dict(invoice_payload, totalRemise=1000))
        assert response.status_code == 400
        assert response.json()["message"] == "Total discount cannot exceed the invoice total"

    def test_client_fields_required_without_client_id(self, client, user_headers, invoice_payload):
        payload = dict(invoice_payload)
        del payload["clientName"]
        response = client.post("/invoices/", headers=user_headers, json=payload)
        assert response.status_code == 400

    def test_negative_quantity_rejected(self, client, user_headers, invoice_payload):
        payload = dict(invoice_payload, items=[{"designation": "Ricotta", "quantity": -1, "unitPrice": 3}])
        assert client.post("/invoices/", headers=user_headers, json=payload).status_code == 400

    def test_oversized_amounts_rejected(self, client, user_headers, invoice_payload):
        payload = dict(invoice_payload, items=[{"designation": "Ricotta", "quantity": 1e20, "unitPrice": 1e20}])
        response = client.post("/invoices/", headers=user_headers, json=payload)
        assert response.status_code == 400
        assert "message" in response.json()

        response = client.post("/invoices/", headers=user_headers, json=dict(invoice_payload, totalRemise=1e20))
        assert response.status_code == 400

    def test_line_total_beyond_maximum_rejected(self, client, user_headers, invoice_payload):
        """Cada campo cabe en la columna, pero el producto no."""
        payload = dict(invoice_payload, items=[{"designation": "Ricotta", "quantity": 1e9, "unitPrice": 1e9}])
        response = client.post("/invoices/", headers=user_headers, json=payload)
        assert response.status_code == 400
        assert response.json()["message"] == "Line total for 'Ricotta' exceeds the supported maximum"

    def test_invoice_total_beyond_maximum_rejected(self, client, user_headers, invoice_payload):
        line = {"designation": "Gouda", "quantity": 1, "unitPrice": 600000000000}
        payload = dict(invoice_payload, items=[line, line])
        response = client.post("/invoices/", headers=user_headers, json=payload)
        assert response.status_code == 400
        assert response.json()["message"] == "Invoice total exceeds the supported maximum"

    def test_update_beyond_maximum_keeps_invoice(self, client, user_headers, invoice_payload):
        created = create_invoice(client, user_headers, invoice_payload)
        payload = dict(invoice_payload, items=[{"designation": "Ricotta", "quantity": 1e9, "unitPrice": 1e9}])

        response = client.put(f"/invoices/{created['id']}", headers=user_headers, json=payload)
        assert response.status_code == 400

        fetched = client.get(f"/invoices/{created['id']}", headers=user_headers).json()
        assert fetched["totalHT"] == created["totalHT"]

    def test_largest_amount_accepted(self, client, user_headers, invoice_payload):
        payload = dict(invoice_payload, items=[{"designation": "Ricotta", "quantity": 1, "unitPrice": "999999999999.999"}])
        invoice = create_invoice(client, user_headers, payload)
        assert Decimal(str(invoice["totalTTC"])) == Decimal("999999999999.999")

    def test_unknown_field_rejected(self, client, user_headers, invoice_payload):
        response = client.post("/invoices/", headers=user_headers, json=dict(invoice_payload, status="paid"))
        assert response.status_code == 400

    def test_snapshot_copied_from_client(self, client, user_headers):
        stored = client.post("/clients/", headers=user_headers, json={
            "name": "Hotel Utique Palace", "clientNumber": "CL0100", "address": "Utique", "mf": "7654321/B",
        }).json()

        invoice = create_invoice(client, user_headers, {
            "clientId": stored["id"],
            "items": [{"designation": "Gouda", "quantity": 3, "unitPrice": 31.2}],
        })
        assert invoice["clientId"] == stored["id"]
        assert invoice["clientName"] == "Hotel Utique Palace"
        assert invoice["clientAddress"] == "Utique"
        assert invoice["clientMF"] == "7654321/B"

        # later edits of the client do not touch the invoice
        client.put(f"/clients/{stored['id']}", headers=user_headers, json={"address": "Bizerte"})
        fetched = client.get(f"/invoices/{invoice['id']}", headers=user_headers).json()
        assert fetched["clientAddress"] == "Utique"

    def test_unknown_client_id(self, client, user_headers):
        response = client.post("/invoices/", headers=user_headers, json={
            "clientId": str(uuid4()),
            "items": [{"designation": "Gouda", "quantity": 1, "unitPrice": 1}],
        })
        assert response.status_code == 404
        assert response.json()["message"] == "Client not found"

    def test_update_keeps_number(self, client, user_headers, invoice_payload):
        invoice = create_invoice(client, user_headers, invoice_payload)

        payload = dict(invoice_payload, invoiceNumber="BCC777", livreurNom="Sami",
                       items=[{"designation": "Beurre", "quantity": 4, "unitPrice": 26}])
        response = client.put(f"/invoices/{invoice['id']}", headers=user_headers, json=payload)

        assert response.status_code == 200
        updated = response.json()
        assert updated["invoiceNumber"] == "BCC001"
        assert updated["livreurNom"] == "Sami"
        assert [item["designation"] for item in updated["items"]] == ["Beurre"]
        assert updated["totalTTC"] == 104.0

    def test_update_missing_invoice(self, client, user_headers, invoice_payload):
        response = client.put(f"/invoices/{uuid4()}", headers=user_headers, json=invoice_payload)
        assert response.status_code == 404
        assert response.json()["message"] == "Invoice not found"

    def test_delete_invoice(self, client, user_headers, invoice_payload):
        invoice = create_invoice(client, user_headers, invoice_payload)

        response = client.delete(f"/invoices/{invoice['id']}", headers=user_headers)
        assert response.status_code == 200
        assert response.json()["message"] == "Invoice deleted successfully"
        assert client.get(f"/invoices/{invoice['id']}", headers=user_headers).status_code == 404

    def test_list_newest_first_and_search(self, client, user_headers, invoice_payload):
        create_invoice(client, user_headers, invoice_payload)
        create_invoice(client, user_headers, dict(invoice_payload, clientName="Pizzeria Carthage"))

        listed = client.get("/invoices/", headers=user_headers).json()
        assert [invoice["invoiceNumber"] for invoice in listed] == ["BCC002", "BCC001"]

        found = client.get("/invoices/?search=carthage", headers=user_headers).json()
        assert [invoice["invoiceNumber"] for invoice in found] == ["BCC002"]

    def test_requires_token(self, client, invoice_payload):
        assert client.post("/invoices/", json=invoice_payload).status_code == 401


# ===== TESTS DE FORMATO =====

class TestFormatting:

    def test_currency(self):
        assert format_currency(1234.5) == "1234,500 TND"
        assert format_currency(Decimal("0.5")) == "0,500 TND"
        assert format_currency(1000000) == "1000000,000 TND"

    def test_currency_rounds_half_up(self):
        assert format_currency(Decimal("2.0005")) == "2,001 TND"
        assert format_currency(Decimal("2.0004")) == "2,000 TND"
        assert round_amount("1.2345") == Decimal("1.235")

    @pytest.mark.parametrize("value", [None, "abc", float("nan"), float("inf"), ""])
    def test_currency_invalid_values(self, value):
        assert format_currency(value) == "0,000 TND"

    def test_date_in_tunis_time(self):
        # 23:30 UTC is already the next day in Tunis (UTC+1)
        assert format_date(datetime(2024, 3, 31, 23, 30)) == "01/04/2024"
        assert format_date(datetime(2024, 3, 31, 10, 0, tzinfo=timezone.utc)) == "31/03/2024"

    def test_missing_date(self):
        assert format_date(None) == ""

    def test_quantity(self):
        assert format_quantity(Decimal("2.500")) == "2.5"
        assert format_quantity(Decimal("100")) == "100"
        assert format_quantity(None) == "0"

    def test_text_or_empty(self):
        assert text_or_empty(None) == ""
        assert text_or_empty("Bizerte") == "Bizerte"


# ===== TESTS DE RENDERIZADO =====

class TestInvoiceDocument:
    printed_at = datetime(2024, 5, 2, 8, 0, tzinfo=timezone.utc)

    def test_content(self, printable_invoice, issuer):
        markup = build_invoice_document(printable_invoice, issuer, "vendeur", self.printed_at)

        assert "Facture : N° BCC007" in markup
        assert "1234,500 TND" in markup
        assert "Fromagerie Alioui" in markup
        assert "1798066/G" in markup
        assert "01/05/2024" in markup
        assert "Utilisateur : vendeur" in markup
        assert "Date d'impression : 02/05/2024" in markup
        assert "Arrêté Le présent la facture à la somme de <b>1234,500 TND</b>." in markup

    def test_line_rows(self, printable_invoice, issuer):
        markup = build_invoice_document(printable_invoice, issuer, "vendeur", self.printed_at)

        assert (
            '<tr><td>Gouda</td><td align="right">2</td>'
            '<td align="right">31,200 TND</td><td align="right">62,400 TND</td></tr>'
        ) in markup
        assert '<tr><td>Beurre</td><td align="right">0.5</td>' in markup

    def test_missing_optional_fields_render_empty(self, printable_invoice, issuer):
        markup = build_invoice_document(printable_invoice, issuer, "vendeur", self.printed_at)

        assert "Adresse : </td>" in markup
        assert "None" not in markup
        assert "undefined" not in markup

    def test_items_in_stored_order(self, printable_invoice, issuer):
        markup = build_invoice_document(printable_invoice, issuer, "vendeur", self.printed_at)
        assert markup.index("Gouda") < markup.index("Beurre") < markup.index("Lben")

    def test_text_is_escaped(self, printable_invoice, issuer):
        markup = build_invoice_document(printable_invoice, issuer, "vendeur", self.printed_at)
        assert "Lben &amp; co &lt;frais&gt;" in markup

    def test_deterministic(self, printable_invoice, issuer):
        first = build_invoice_document(printable_invoice, issuer, "vendeur", self.printed_at)
        second = build_invoice_document(printable_invoice, issuer, "vendeur", self.printed_at)
        assert first == second

    def test_logo_included_when_available(self, printable_invoice, issuer):
        markup = build_invoice_document(printable_invoice, issuer, "vendeur", self.printed_at, "/tmp/logo.png")
        assert '<img src="/tmp/logo.png"' in markup


class TestInvoiceRenderer:
    printed_at = datetime(2024, 5, 2, 8, 0, tzinfo=timezone.utc)

    def test_renders_pdf(self, printable_invoice, issuer):
        renderer = InvoiceRenderer(issuer=issuer, engine=PdfEngine(max_concurrent=1, acquire_timeout=1))
        rendered = renderer.render(printable_invoice, "vendeur", self.printed_at)

        assert rendered.content.startswith(b"%PDF")
        assert rendered.filename == "facture-BCC007.pdf"

    def test_renders_twice(self, printable_invoice, issuer):
        renderer = InvoiceRenderer(issuer=issuer, engine=PdfEngine(max_concurrent=1, acquire_timeout=1))
        first = renderer.render(printable_invoice, "vendeur", self.printed_at)
        second = renderer.render(printable_invoice, "vendeur", self.printed_at)
        assert first.content.startswith(b"%PDF") and second.content.startswith(b"%PDF")

    def test_non_latin_text_is_kept(self, printable_invoice, issuer):
        printable_invoice.client_name = "مطعم الخليج"
        renderer = InvoiceRenderer(issuer=issuer, engine=PdfEngine(max_concurrent=1, acquire_timeout=1))
        content = renderer.render(printable_invoice, "وليد", self.printed_at).content

        assert content.startswith(b"%PDF")
        assert b"DejaVuSans" in content

    def test_non_latin_glyphs_written_to_pdf(self, printable_invoice, issuer):
        """El nombre árabe llega al PDF con sus propios glifos, sin '?'."""
        printable_invoice.client_name = "مطعم الخليج"
        markup = build_invoice_document(printable_invoice, issuer, "vendeur", self.printed_at)
        assert "Client : مطعم الخليج" in markup

        pdf = InvoicePDF("vendeur", "02/05/2024")
        pdf.set_compression(False)
        pdf.add_page()
        pdf.write_html(markup, font_family=FONT_FAMILY)
        content = bytes(pdf.output())

        # ToUnicode entries for م and خ
        assert b"<0645>" in content
        assert b"<062E>" in content

    def test_template_failure_is_render_error(self, printable_invoice, issuer, monkeypatch):
        engine = PdfEngine(max_concurrent=1, acquire_timeout=0.01)
        renderer = InvoiceRenderer(issuer=issuer, engine=engine)

        def broken(*args, **kwargs):
            raise TypeError("'builtin_function_or_method' object is not iterable")

        monkeypatch.setattr("app.modules.invoices.rendering.build_invoice_document", broken)
        with pytest.raises(RenderError):
            renderer.render(printable_invoice, "vendeur", self.printed_at)

        monkeypatch.undo()
        assert renderer.render(printable_invoice, "vendeur", self.printed_at).content.startswith(b"%PDF")

    def test_busy_pool_raises_render_error(self, printable_invoice, issuer):
        engine = PdfEngine(max_concurrent=1, acquire_timeout=0.01)
        renderer = InvoiceRenderer(issuer=issuer, engine=engine)

        with engine.slot():
            with pytest.raises(RenderError):
                renderer.render(printable_invoice, "vendeur", self.printed_at)

        # the slot is free again afterwards
        assert renderer.render(printable_invoice, "vendeur", self.printed_at).content.startswith(b"%PDF")

    def test_engine_failure_releases_slot(self, printable_invoice, issuer, monkeypatch):
        engine = PdfEngine(max_concurrent=1, acquire_timeout=0.01)
        renderer = InvoiceRenderer(issuer=issuer, engine=engine)

        def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(engine, "rasterize", broken)
        with pytest.raises(RenderError):
            renderer.render(printable_invoice, "vendeur", self.printed_at)

        monkeypatch.undo()
        assert renderer.render(printable_invoice, "vendeur", self.printed_at).content.startswith(b"%PDF")


class TestInvoiceLogo:
    printed_at = datetime(2024, 5, 2, 8, 0, tzinfo=timezone.utc)
    logo_url = "https://logos.example.com/logo.png"

    @pytest.fixture
    def fetches(self, monkeypatch):
        """Sustituye httpx.get; cada llamada queda registrada."""
        calls = []

        def install(response=None, error=None):
            def fake_get(url, **kwargs):
                calls.append(url)
                if error is not None:
                    raise error
                return response
            monkeypatch.setattr(httpx, "get", fake_get)
            return calls

        return install

    def png_response(self, content=None):
        request = httpx.Request("GET", self.logo_url)
        return httpx.Response(
            200, headers={"content-type": "image/png"}, content=content or png_bytes(), request=request,
        )

    def test_missing_local_logo_is_skipped(self, tmp_path):
        assert fetch_logo(str(tmp_path / "missing.png"), timeout=1) is None
        assert fetch_logo(None, timeout=1) is None

    def test_local_logo_is_loaded(self, tmp_path):
        path = tmp_path / "logo.png"
        path.write_bytes(png_bytes())

        logo = fetch_logo(str(path), timeout=1)
        assert logo.suffix == ".png"
        assert logo.content == path.read_bytes()

    def test_corrupt_local_logo_is_skipped(self, tmp_path):
        path = tmp_path / "logo.png"
        path.write_bytes(b"this is not a png")
        assert fetch_logo(str(path), timeout=1) is None

    def test_corrupt_logo_still_renders(self, tmp_path, printable_invoice, issuer):
        path = tmp_path / "logo.png"
        path.write_bytes(b"this is not a png")
        issuer = replace(issuer, logo_url=str(path))
        renderer = InvoiceRenderer(issuer=issuer, engine=PdfEngine(max_concurrent=1, acquire_timeout=1))

        assert renderer.render(printable_invoice, "vendeur", self.printed_at).content.startswith(b"%PDF")

    def test_logo_is_drawn(self, tmp_path, printable_invoice, issuer):
        path = tmp_path / "logo.png"
        path.write_bytes(png_bytes())
        issuer = replace(issuer, logo_url=str(path))
        renderer = InvoiceRenderer(issuer=issuer, engine=PdfEngine(max_concurrent=1, acquire_timeout=1))

        content = renderer.render(printable_invoice, "vendeur", self.printed_at).content
        assert b"/Subtype /Image" in content

    def test_remote_logo_is_fetched(self, fetches):
        calls = fetches(response=self.png_response())

        logo = fetch_logo(self.logo_url, timeout=1)
        assert logo.suffix == ".png"
        assert calls == [self.logo_url]

    def test_remote_failure_is_skipped(self, fetches):
        fetches(error=httpx.ConnectError("connection refused"))
        assert fetch_logo(self.logo_url, timeout=1) is None

    def test_remote_http_error_is_skipped(self, fetches):
        request = httpx.Request("GET", self.logo_url)
        fetches(response=httpx.Response(404, request=request))
        assert fetch_logo(self.logo_url, timeout=1) is None

    def test_invalid_url_is_skipped(self, fetches):
        fetches(error=httpx.InvalidURL("Invalid port: 'x'"))
        assert fetch_logo("http://logos.example.com:x/logo.png", timeout=1) is None

    def test_remote_non_image_is_skipped(self, fetches):
        fetches(response=self.png_response(content=b"<html>not found</html>"))
        assert fetch_logo(self.logo_url, timeout=1) is None

    def test_logo_downloaded_once_per_renderer(self, fetches, printable_invoice, issuer):
        calls = fetches(response=self.png_response())
        issuer = replace(issuer, logo_url=self.logo_url)
        renderer = InvoiceRenderer(issuer=issuer, engine=PdfEngine(max_concurrent=1, acquire_timeout=1))

        renderer.render(printable_invoice, "vendeur", self.printed_at)
        renderer.render(printable_invoice, "vendeur", self.printed_at)
        assert calls == [self.logo_url]

    def test_failed_download_is_retried(self, fetches, printable_invoice, issuer):
        calls = fetches(error=httpx.ConnectTimeout("timed out"))
        issuer = replace(issuer, logo_url=self.logo_url)
        renderer = InvoiceRenderer(issuer=issuer, engine=PdfEngine(max_concurrent=1, acquire_timeout=1))

        assert renderer.render(printable_invoice, "vendeur", self.printed_at).content.startswith(b"%PDF")
        assert renderer.render(printable_invoice, "vendeur", self.printed_at).content.startswith(b"%PDF")
        assert len(calls) == 2

    def test_unusable_logo_falls_back_to_plain_invoice(self, tmp_path, printable_invoice, issuer, monkeypatch):
        path = tmp_path / "logo.png"
        path.write_bytes(png_bytes())
        issuer = replace(issuer, logo_url=str(path))
        engine = PdfEngine(max_concurrent=1, acquire_timeout=1)
        renderer = InvoiceRenderer(issuer=issuer, engine=engine)
        rasterize = engine.rasterize
        markups = []

        def picky(markup, *args):
            markups.append(markup)
            if "<img" in markup:
                raise ValueError("unsupported image")
            return rasterize(markup, *args)

        monkeypatch.setattr(engine, "rasterize", picky)
        assert renderer.render(printable_invoice, "vendeur", self.printed_at).content.startswith(b"%PDF")
        assert ["<img" in markup for markup in markups] == [True, False]


class TestInvoicePdfEndpoint:

    def test_download_pdf(self, client, user_headers, invoice_payload, fake_renderer):
        invoice = create_invoice(client, user_headers, invoice_payload)

        response = client.get(f"/invoices/{invoice['id']}/pdf", headers=user_headers)

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["content-disposition"] == 'attachment; filename="facture-BCC001.pdf"'
        assert response.content.startswith(b"%PDF")
        assert fake_renderer.calls == [("BCC001", "vendeur")]

    def test_missing_invoice_never_renders(self, client, user_headers, fake_renderer):
        response = client.get(f"/invoices/{uuid4()}/pdf", headers=user_headers)

        assert response.status_code == 404
        assert response.json()["message"] == "Invoice not found"
        assert fake_renderer.calls == []

    def test_requires_token(self, client, fake_renderer):
        assert client.get(f"/invoices/{uuid4()}/pdf").status_code == 401
        assert fake_renderer.calls == []
