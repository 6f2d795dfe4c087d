"""
UBL-style XML serialization of invoice entities.
"""
import logging
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional

import xmltodict

from fta_compliance.core.models import Invoice, InvoiceLine, PartyInfo, Phase2ComplianceRecord
from fta_compliance.utils.amounts import format_amount, format_rate, to_decimal
from fta_compliance.utils.decorators import measure_performance


logger = logging.getLogger(__name__)

INVOICE_NS = 'urn:oasis:names:specification:ubl:schema:xsd:Invoice-2'
NAMESPACES = {
    'cac': 'urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2',
    'cbc': 'urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2',
    'ds': 'http://www.w3.org/2000/09/xmldsig#',
}

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'

ET.register_namespace('', INVOICE_NS)
for _prefix, _uri in NAMESPACES.items():
    ET.register_namespace(_prefix, _uri)


class SerializationError(Exception):
    """Raised when an invoice cannot be turned into XML"""
    pass


def qname(prefix: Optional[str], tag: str) -> str:
    """Clark notation for ``prefix:tag``; None is the invoice namespace"""
    uri = INVOICE_NS if prefix is None else NAMESPACES[prefix]
    return f"{{{uri}}}{tag}"


def _append(parent: ET.Element, prefix: str, tag: str, text: Optional[str] = None,
            **attributes) -> ET.Element:
    element = ET.SubElement(parent, qname(prefix, tag), attributes)
    if text is not None:
        element.text = text
    return element


def to_xml_string(root: Optional[ET.Element]) -> str:
    """Serialize a tree with the XML declaration"""
    if root is None:
        raise SerializationError("Failed to create root element for Invoice XML")
    return XML_DECLARATION + ET.tostring(root, encoding='unicode')


class InvoiceSerializer:
    """
    Builds the namespaced XML document of an invoice.
    Element order follows UBL 2.1: header, parties, totals, references, lines.
    """

    def __init__(self, indent: bool = True):
        self.indent = indent

    def _append_party(self, parent: ET.Element, role: str, party: PartyInfo):
        wrapper = _append(parent, 'cac', role)
        details = _append(wrapper, 'cac', 'Party')

        identification = _append(details, 'cac', 'PartyIdentification')
        _append(identification, 'cbc', 'ID', party.trn)

        name = _append(details, 'cac', 'PartyName')
        _append(name, 'cbc', 'Name', party.name)

        address = _append(details, 'cac', 'PostalAddress')
        _append(address, 'cbc', 'StreetName', party.address.street)
        _append(address, 'cbc', 'CityName', party.address.city)
        _append(address, 'cbc', 'PostalZone', party.address.postal_code or '')
        _append(address, 'cbc', 'CountrySubentity', party.address.emirate)
        country = _append(address, 'cac', 'Country')
        _append(country, 'cbc', 'IdentificationCode', party.address.country_code)

        tax_scheme = _append(details, 'cac', 'PartyTaxScheme')
        _append(tax_scheme, 'cbc', 'CompanyID', party.trn)
        scheme = _append(tax_scheme, 'cac', 'TaxScheme')
        _append(scheme, 'cbc', 'ID', 'VAT')

        contact_details = party.contact
        if contact_details and (contact_details.phone or contact_details.email):
            contact = _append(details, 'cac', 'Contact')
            if contact_details.phone:
                _append(contact, 'cbc', 'Telephone', contact_details.phone)
            if contact_details.email:
                _append(contact, 'cbc', 'ElectronicMail', contact_details.email)

    def _append_tax_total(self, parent: ET.Element, invoice: Invoice):
        tax_total = _append(parent, 'cac', 'TaxTotal')
        _append(tax_total, 'cbc', 'TaxAmount', format_amount(invoice.vat_amount),
                currencyID=invoice.currency)

    def _append_references(self, parent: ET.Element, record: Phase2ComplianceRecord):
        for reference_id, content, mime_code in (
            ('QR', record.scannable_code, 'text/plain'),
            ('HASH', record.hash, 'text/plain'),
        ):
            reference = _append(parent, 'cac', 'AdditionalDocumentReference')
            _append(reference, 'cbc', 'ID', reference_id)
            attachment = _append(reference, 'cac', 'Attachment')
            _append(attachment, 'cbc', 'EmbeddedDocumentBinaryObject', content, mimeCode=mime_code)

    def _append_line(self, parent: ET.Element, line: InvoiceLine, currency: str):
        invoice_line = _append(parent, 'cac', 'InvoiceLine')
        _append(invoice_line, 'cbc', 'ID', line.id)
        _append(invoice_line, 'cbc', 'InvoicedQuantity', str(line.quantity), unitCode=line.units_of_measure)
        _append(invoice_line, 'cbc', 'LineExtensionAmount', format_amount(line.net_amount),
                currencyID=currency)

        item = _append(invoice_line, 'cac', 'Item')
        _append(item, 'cbc', 'Name', line.description)
        sellers_item = _append(item, 'cac', 'SellersItemIdentification')
        _append(sellers_item, 'cbc', 'ID', line.product_code)

        price = _append(invoice_line, 'cac', 'Price')
        _append(price, 'cbc', 'PriceAmount', format_amount(line.unit_price), currencyID=currency)

        breakdown = line.tax_breakdown
        tax_total = _append(invoice_line, 'cac', 'TaxTotal')
        _append(tax_total, 'cbc', 'TaxAmount', format_amount(breakdown.tax_amount), currencyID=currency)

        subtotal = _append(tax_total, 'cac', 'TaxSubtotal')
        _append(subtotal, 'cbc', 'TaxableAmount', format_amount(breakdown.taxable_amount), currencyID=currency)
        _append(subtotal, 'cbc', 'TaxAmount', format_amount(breakdown.tax_amount), currencyID=currency)

        category = _append(subtotal, 'cac', 'TaxCategory')
        _append(category, 'cbc', 'ID', breakdown.tax_category)
        _append(category, 'cbc', 'Percent', format_rate(breakdown.tax_rate))
        if breakdown.exemption_reason:
            _append(category, 'cbc', 'TaxExemptionReason', breakdown.exemption_reason)
        scheme = _append(category, 'cac', 'TaxScheme')
        _append(scheme, 'cbc', 'ID', 'VAT')

    def build_tree(self, invoice: Invoice,
                   record: Optional[Phase2ComplianceRecord] = None) -> ET.Element:
        """
        Build the invoice element tree.

        Args:
            invoice: Invoice entity
            record: Integrity artifacts to embed as document references

        Returns:
            Root ``Invoice`` element
        """
        root = ET.Element(qname(None, 'Invoice'))

        _append(root, 'cbc', 'InvoiceNumber', invoice.invoice_number)
        _append(root, 'cbc', 'IssueDate', invoice.issue_date.isoformat())
        if invoice.due_date:
            _append(root, 'cbc', 'DueDate', invoice.due_date.isoformat())
        _append(root, 'cbc', 'DocumentCurrencyCode', invoice.currency)
        _append(root, 'cbc', 'TotalAmount', format_amount(invoice.total_amount), currencyID=invoice.currency)

        self._append_party(root, 'AccountingSupplierParty', invoice.seller)
        if invoice.buyer is not None:
            self._append_party(root, 'AccountingCustomerParty', invoice.buyer)

        self._append_tax_total(root, invoice)

        if record is not None:
            self._append_references(root, record)

        for line in invoice.lines:
            self._append_line(root, line, invoice.currency)

        if self.indent:
            ET.indent(root)

        return root

    @measure_performance
    def serialize(self, invoice: Invoice, record: Optional[Phase2ComplianceRecord] = None) -> str:
        """
        Serialize an invoice to a UTF-8 XML string with declaration.

        Raises:
            SerializationError: If the tree cannot be built or written
        """
        try:
            root = self.build_tree(invoice, record)
            return to_xml_string(root)
        except SerializationError:
            raise
        except (TypeError, ValueError, AttributeError) as e:
            raise SerializationError(f"Failed to serialize invoice {invoice.invoice_number}: {e}") from e


def _as_list(value) -> List:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _text(value) -> str:
    """xmltodict yields plain strings or dicts with '#text' when attributes exist"""
    if isinstance(value, dict):
        return value.get('#text', '')
    return value or ''


def read_document_summary(xml: str) -> Dict:
    """
    Read the headline figures back out of a serialized invoice.

    Returns:
        Dict with invoice_number, total_amount, vat_amount and the
        line_amounts / line_tax_amounts lists, amounts as Decimal
    """
    namespaces = {INVOICE_NS: None, **{uri: prefix for prefix, uri in NAMESPACES.items()}}
    parsed = xmltodict.parse(xml, process_namespaces=True, namespaces=namespaces)
    invoice = parsed['Invoice']

    lines = _as_list(invoice.get('cac:InvoiceLine'))
    tax_total = invoice.get('cac:TaxTotal') or {}

    return {
        'invoice_number': _text(invoice.get('cbc:InvoiceNumber')),
        'currency': _text(invoice.get('cbc:DocumentCurrencyCode')),
        'total_amount': to_decimal(_text(invoice.get('cbc:TotalAmount'))),
        'vat_amount': to_decimal(_text(tax_total.get('cbc:TaxAmount'))),
        'line_amounts': [to_decimal(_text(line.get('cbc:LineExtensionAmount'))) for line in lines],
        'line_tax_amounts': [
            to_decimal(_text((line.get('cac:TaxTotal') or {}).get('cbc:TaxAmount')))
            for line in lines
        ],
        'signed': 'ds:Signature' in invoice,
    }
