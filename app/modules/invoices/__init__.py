"""
Invoices module - Fromagerie Alioui invoicing

- Invoice CRUD with a copy of the client data on each invoice
- Server-assigned numbering ("BCC001", "BCC002", ...)
- PDF rendering of invoices

Tables:
- invoices: invoices
- invoice_line_items: invoice lines, in print order
- invoice_sequences: numbering counter per prefix
"""
