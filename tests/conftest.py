"""
Shared fixtures for the FTA compliance engine tests.
"""
from datetime import date
from decimal import Decimal

import pytest

from fta_compliance.core.models import Address, ContactDetails, Invoice, InvoiceLine, PartyInfo

SELLER_TRN = "100123456700005"
BUYER_TRN = "300234567800006"
TODAY = date(2024, 6, 15)


@pytest.fixture
def today():
    """Fixed clock for date-sensitive rules"""
    return lambda: TODAY


@pytest.fixture
def valid_invoice_data():
    """Tax invoice as submitted for validation (camelCase wire form)"""
    return {
        "invoiceNumber": "INV-2024-001",
        "issueDate": "2024-06-01",
        "sellerTRN": SELLER_TRN,
        "buyerTRN": BUYER_TRN,
        "totalAmount": 525,
        "vatAmount": 25,
        "items": [
            {
                "description": "Consulting services",
                "quantity": 2,
                "unitPrice": 250,
                "vatRate": 5,
                "totalAmount": 500,
            }
        ],
    }


@pytest.fixture
def valid_vat_return():
    return {
        "trn": SELLER_TRN,
        "taxPeriod": "2024-03",
        "standardRatedSupplies": 100000,
        "zeroRatedSupplies": 20000,
        "exemptSupplies": 5000,
        "totalSupplies": 125000,
        "vatDue": 5000,
    }


@pytest.fixture
def valid_cit_return():
    return {
        "trn": SELLER_TRN,
        "taxYear": "2024",
        "revenue": 500000,
        "deductibleExpenses": 50000,
        "taxableIncome": 75000,
        "citDue": 6750,
        "advancePayments": 0,
    }


@pytest.fixture
def seller():
    return PartyInfo(
        name="Gulf Trading LLC",
        trn=SELLER_TRN,
        address=Address(street="Sheikh Zayed Road", city="Dubai", emirate="Dubai", postal_code="00000"),
        contact=ContactDetails(phone="+971 4 000 0000", email="billing@gulftrading.ae"),
    )


@pytest.fixture
def buyer():
    return PartyInfo(
        name="Oasis Retail FZE",
        trn=BUYER_TRN,
        address=Address(street="Corniche Road", city="Abu Dhabi", emirate="Abu Dhabi"),
    )


@pytest.fixture
def invoice(seller, buyer):
    """Invoice entity: 2 x 250.00 at 5% VAT, total 525.00"""
    return Invoice(
        invoice_number="INV-2024-001",
        issue_date=date(2024, 6, 1),
        seller=seller,
        buyer=buyer,
        lines=[
            InvoiceLine.create("1", "Consulting services", Decimal("2"), Decimal("250"),
                               product_code="SRV-001"),
        ],
    )


@pytest.fixture
def mixed_rate_invoice(seller, buyer):
    """Two standard-rated lines and one zero-rated export line"""
    return Invoice(
        invoice_number="INV-2024-002",
        issue_date=date(2024, 6, 2),
        seller=seller,
        buyer=buyer,
        lines=[
            InvoiceLine.create("1", "Laptop", Decimal("1"), Decimal("500")),
            InvoiceLine.create("2", "Mouse", Decimal("4"), Decimal("25")),
            InvoiceLine.create("3", "Export freight", Decimal("1"), Decimal("200"), tax_rate=Decimal("0")),
        ],
    )
