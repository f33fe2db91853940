"""
ReceiptPdfRenderer -- ReceiptData to PDF bytes with ReportLab.

Responsibility:
    Draws one internal payment receipt ("Recibo de Pago Interno") on an
    A5 page: issuer header, receipt number, member, concept, payment
    method, operation number and amount.

Architecture position:
    Services -- concrete ReceiptRenderer injected into the orchestrator.

Invariants enforced:
    Deterministic output -- the canvas is built with ``invariant=1`` so
        ReportLab writes a fixed creation date and document id; identical
        ReceiptData renders identical bytes, which keeps artifact puts
        idempotent across retries.
    No I/O -- renders into an in-memory buffer only.
"""

from __future__ import annotations

from decimal import Decimal
from io import BytesIO

from reportlab.lib import colors
from reportlab.lib.pagesizes import A5
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import Table, TableStyle

from receipt_config.schema import IssuerConfig
from receipt_kernel.domain.dtos import ReceiptData
from receipt_kernel.logging_config import get_logger

logger = get_logger("services.renderer")

CURRENCY_SYMBOL = "S/."
TITLE = "RECIBO DE PAGO INTERNO"


def format_amount(amount: Decimal) -> str:
    """``Decimal("1250.5")`` -> ``"S/. 1,250.50"``."""
    return f"{CURRENCY_SYMBOL} {amount.quantize(Decimal('0.01')):,}"


class ReceiptPdfRenderer:
    """Renders receipts as single-page A5 PDFs."""

    def __init__(self, issuer: IssuerConfig | None = None):
        self._issuer = issuer or IssuerConfig()

    def render(self, data: ReceiptData) -> bytes:
        buffer = BytesIO()
        width, height = A5
        margin = 12 * mm

        pdf = canvas.Canvas(buffer, pagesize=A5, invariant=1)
        pdf.setTitle(f"Recibo {data.correlative}")
        pdf.setAuthor(self._issuer.name or "receipt-issuance-kernel")

        # Header
        y = height - margin
        if self._issuer.name:
            pdf.setFont("Helvetica-Bold", 12)
            pdf.drawString(margin, y, self._issuer.name)
            y -= 5 * mm
        pdf.setFont("Helvetica", 8)
        for line in (self._issuer.tax_id, self._issuer.address):
            if line:
                pdf.drawString(margin, y, line)
                y -= 4 * mm

        pdf.setFont("Helvetica-Bold", 14)
        pdf.drawCentredString(width / 2, y - 6 * mm, TITLE)
        pdf.setFont("Helvetica-Bold", 12)
        pdf.drawRightString(width - margin, y - 14 * mm, f"N° {data.correlative}")
        y -= 24 * mm

        # Body
        rows = [
            ["Fecha", data.issue_date.strftime("%d/%m/%Y")],
            ["Socio", data.member_name],
            ["DNI", data.member_document],
            ["Concepto", data.concept],
            ["Medio de pago", data.payment_method.value],
        ]
        if data.operation_reference:
            rows.append(["N° de operacion", data.operation_reference])
        rows.append(["Monto", format_amount(data.amount)])

        table = Table(rows, colWidths=[35 * mm, width - 2 * margin - 35 * mm])
        table.setStyle(
            TableStyle(
                [
                    ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
                    ("FONTNAME", (1, 0), (1, -1), "Helvetica"),
                    ("FONTSIZE", (0, 0), (-1, -1), 9),
                    ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
                    ("BACKGROUND", (0, -1), (-1, -1), colors.whitesmoke),
                    ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                    ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                ]
            )
        )
        _, table_height = table.wrapOn(pdf, width - 2 * margin, y)
        table.drawOn(pdf, margin, y - table_height)

        # Signature line
        sig_y = margin + 15 * mm
        pdf.line(width / 2 - 30 * mm, sig_y, width / 2 + 30 * mm, sig_y)
        pdf.setFont("Helvetica", 8)
        pdf.drawCentredString(width / 2, sig_y - 4 * mm, "Recibi conforme")

        pdf.showPage()
        pdf.save()

        content = buffer.getvalue()
        logger.debug(
            "receipt_rendered",
            extra={"correlative": str(data.correlative), "size": len(content)},
        )
        return content
