"""
Canonical JSON mapping of an invoice (PINT AE field names).
Monetary amounts are emitted as two-decimal strings to stay exact.
"""
import json
from collections import OrderedDict
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fta_compliance.core.models import Invoice, InvoiceLine, PartyInfo
from fta_compliance.utils.amounts import format_amount, format_rate, quantize_amount

CUSTOMIZATION_ID = 'urn:peppol:pint:billing-1@ae-1'
PROFILE_ID = 'urn:peppol:bis:billing'
INVOICE_TYPE_CODE = '380'
TAX_CURRENCY_CODE = 'AED'


def _party(party: Optional[PartyInfo]) -> Optional[Dict[str, Any]]:
    if party is None:
        return None

    mapped = {
        'name': party.name,
        'trn': party.trn,
        'address': {
            'street': party.address.street,
            'city': party.address.city,
            'emirate': party.address.emirate,
            'country': party.address.country_code,
        },
    }
    if party.address.postal_code:
        mapped['address']['postalCode'] = party.address.postal_code
    if party.contact:
        mapped['contact'] = party.contact.model_dump(exclude_none=True)
    return mapped


def _item(line: InvoiceLine) -> Dict[str, Any]:
    return {
        'description': line.description,
        'quantity': str(line.quantity),
        'unitPrice': format_amount(line.unit_price),
        'taxRate': format_rate(line.tax_rate),
        'taxAmount': format_amount(line.tax_amount),
        # Net of VAT, matching cbc:LineExtensionAmount
        'totalAmount': format_amount(line.net_amount),
        'productCode': line.product_code,
        'unitsOfMeasure': line.units_of_measure,
    }


def vat_breakdown(lines: List[InvoiceLine]) -> List[Dict[str, str]]:
    """
    Group line taxes by (category, rate) in order of first appearance.
    """
    groups: 'OrderedDict[tuple, Dict[str, Decimal]]' = OrderedDict()
    for line in lines:
        key = (line.tax_breakdown.tax_category, line.tax_rate)
        group = groups.setdefault(key, {'taxable': Decimal('0'), 'tax': Decimal('0')})
        group['taxable'] += line.tax_breakdown.taxable_amount
        group['tax'] += line.tax_amount

    return [
        {
            'taxableAmount': format_amount(group['taxable']),
            'taxRate': format_rate(rate),
            'taxAmount': format_amount(group['tax']),
            'taxCategory': category,
        }
        for (category, rate), group in groups.items()
    ]


def to_canonical_json(invoice: Invoice) -> Dict[str, Any]:
    """
    Map an invoice onto the canonical JSON document.

    Returns:
        Plain dict ready for ``json.dumps``
    """
    mapped = {
        'customizationID': CUSTOMIZATION_ID,
        'profileID': PROFILE_ID,
        'invoiceTypeCode': INVOICE_TYPE_CODE,
        'invoiceNumber': invoice.invoice_number,
        'issueDate': invoice.issue_date.isoformat(),
        'supplierTRN': invoice.seller.trn,
        'buyerTRN': invoice.buyer_trn,
        'currency': invoice.currency,
        'documentCurrencyCode': invoice.currency,
        'taxCurrencyCode': TAX_CURRENCY_CODE,
        'subtotal': format_amount(invoice.subtotal),
        'vatAmount': format_amount(invoice.vat_amount),
        'totalAmount': format_amount(invoice.total_amount),
        'items': [_item(line) for line in invoice.lines],
        'seller': _party(invoice.seller),
        'vatBreakdown': vat_breakdown(invoice.lines),
    }
    if invoice.due_date:
        mapped['dueDate'] = invoice.due_date.isoformat()
    if invoice.buyer is not None:
        mapped['buyer'] = _party(invoice.buyer)
    return mapped


def dumps(mapping: Dict[str, Any]) -> str:
    return json.dumps(mapping, indent=2, ensure_ascii=False)


def json_total(mapping: Dict[str, Any]) -> Decimal:
    return quantize_amount(mapping['totalAmount'])
