"""Tests for the ReportLab receipt renderer."""

from dataclasses import replace
from decimal import Decimal

import pytest

from receipt_config.schema import IssuerConfig
from receipt_kernel.domain.correlative import Correlative
from receipt_kernel.domain.dtos import PaymentMethod, ReceiptData
from receipt_services.receipt_renderer import ReceiptPdfRenderer, format_amount


@pytest.fixture
def data(member, make_request):
    return ReceiptData.build(Correlative(11), make_request(), member)


def test_renders_pdf(data):
    content = ReceiptPdfRenderer().render(data)
    assert content.startswith(b"%PDF-")
    assert content.rstrip().endswith(b"%%EOF")


def test_output_is_deterministic(data):
    renderer = ReceiptPdfRenderer(IssuerConfig(name="Asociacion Los Pinos", tax_id="RUC 20123456789"))
    assert renderer.render(data) == renderer.render(data)


def test_different_receipts_render_differently(data):
    renderer = ReceiptPdfRenderer()
    assert renderer.render(data) != renderer.render(replace(data, correlative=Correlative(12)))


def test_bank_transfer_with_operation_number(data):
    transfer = replace(
        data,
        payment_method=PaymentMethod.BBVA_EMPRESA,
        operation_reference="004512",
    )
    assert ReceiptPdfRenderer().render(transfer).startswith(b"%PDF-")


@pytest.mark.parametrize(
    "amount,expected",
    [
        (Decimal("250"), "S/. 250.00"),
        (Decimal("1250.5"), "S/. 1,250.50"),
        (Decimal("1000000.00"), "S/. 1,000,000.00"),
    ],
)
def test_format_amount(amount, expected):
    assert format_amount(amount) == expected
