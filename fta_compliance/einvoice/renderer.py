"""
Human-readable rendering of an invoice in English or Arabic.
Arabic output is right-to-left: lines are right-aligned and table
columns run from right to left.
"""
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel

from fta_compliance.config import ComplianceSettings, DEFAULT_SETTINGS
from fta_compliance.core.models import Invoice, PartyInfo
from fta_compliance.utils.amounts import format_amount, format_rate


LABELS = {
    'en': {
        'title': 'Tax Invoice',
        'invoice_number': 'Invoice Number',
        'issue_date': 'Issue Date',
        'due_date': 'Due Date',
        'seller': 'Seller',
        'buyer': 'Buyer',
        'trn': 'TRN',
        'address': 'Address',
        'description': 'Description',
        'quantity': 'Quantity',
        'unit_price': 'Unit Price',
        'vat_rate': 'VAT %',
        'vat_amount': 'VAT Amount',
        'amount': 'Amount',
        'subtotal': 'Subtotal',
        'vat': 'VAT',
        'total': 'Total',
    },
    'ar': {
        'title': 'فاتورة ضريبية',
        'invoice_number': 'رقم الفاتورة',
        'issue_date': 'تاريخ الإصدار',
        'due_date': 'تاريخ الاستحقاق',
        'seller': 'البائع',
        'buyer': 'المشتري',
        'trn': 'الرقم الضريبي',
        'address': 'العنوان',
        'description': 'البيان',
        'quantity': 'الكمية',
        'unit_price': 'سعر الوحدة',
        'vat_rate': 'نسبة الضريبة',
        'vat_amount': 'مبلغ الضريبة',
        'amount': 'المبلغ',
        'subtotal': 'المجموع الفرعي',
        'vat': 'ضريبة القيمة المضافة',
        'total': 'الإجمالي',
    },
}

TABLE_COLUMNS = ('description', 'quantity', 'unit_price', 'vat_rate', 'vat_amount', 'amount')


def is_rtl(language: str) -> bool:
    return (language or '').lower().startswith('ar')


class RenderedBlock(BaseModel):
    heading: str
    lines: List[str] = []


class RenderedInvoice(BaseModel):
    """Layout-independent content of the rendered page"""
    language: str
    direction: str
    width: int
    title: str
    header: List[str]
    blocks: List[RenderedBlock]
    table_headers: List[str]
    table_rows: List[List[str]]
    totals: Dict[str, Decimal]
    total_labels: Dict[str, str]
    currency: str

    @property
    def is_rtl(self) -> bool:
        return self.direction == 'rtl'

    def _align(self, text: str) -> str:
        return text.rjust(self.width) if self.is_rtl else text

    def _table_lines(self) -> List[str]:
        rows = [self.table_headers] + self.table_rows
        widths = [max(len(row[i]) for row in rows) for i in range(len(self.table_headers))]
        lines = []
        for index, row in enumerate(rows):
            cells = [cell.ljust(widths[i]) if not self.is_rtl else cell.rjust(widths[i])
                     for i, cell in enumerate(row)]
            lines.append(' | '.join(cells))
            if index == 0:
                lines.append('-+-'.join('-' * w for w in widths))
        return lines

    def to_text(self) -> str:
        lines = [self._align(self.title), self._align('=' * len(self.title))]
        lines.extend(self._align(line) for line in self.header)

        for block in self.blocks:
            lines.append('')
            lines.append(self._align(block.heading))
            lines.extend(self._align(line) for line in block.lines)

        lines.append('')
        lines.extend(self._align(line) for line in self._table_lines())

        lines.append('')
        for key in ('subtotal', 'vat_amount', 'total_amount'):
            amount = format_amount(self.totals[key])
            lines.append(self._align(f"{self.total_labels[key]}: {amount} {self.currency}"))

        return '\n'.join(lines) + '\n'


class InvoiceRenderer:
    """Builds the rendered page of an invoice"""

    def __init__(self, settings: Optional[ComplianceSettings] = None):
        self.settings = settings or DEFAULT_SETTINGS

    @staticmethod
    def _party_block(heading: str, party: PartyInfo, labels: Dict[str, str]) -> RenderedBlock:
        address = party.address
        address_parts = [address.street, address.city, address.emirate]
        if address.postal_code:
            address_parts.append(address.postal_code)
        address_parts.append(address.country_code)

        lines = [
            party.name,
            f"{labels['trn']}: {party.trn}",
            f"{labels['address']}: {', '.join(address_parts)}",
        ]
        if party.contact:
            lines.extend(value for value in (party.contact.phone, party.contact.email) if value)
        return RenderedBlock(heading=heading, lines=lines)

    def render(self, invoice: Invoice, language: str = 'en') -> RenderedInvoice:
        """
        Render an invoice.

        Args:
            invoice: Invoice entity
            language: 'en', or any 'ar*' tag for right-to-left Arabic

        Returns:
            RenderedInvoice
        """
        rtl = is_rtl(language)
        labels = LABELS['ar' if rtl else 'en']

        header = [
            f"{labels['invoice_number']}: {invoice.invoice_number}",
            f"{labels['issue_date']}: {invoice.issue_date.isoformat()}",
        ]
        if invoice.due_date:
            header.append(f"{labels['due_date']}: {invoice.due_date.isoformat()}")

        blocks = [self._party_block(labels['seller'], invoice.seller, labels)]
        if invoice.buyer is not None:
            blocks.append(self._party_block(labels['buyer'], invoice.buyer, labels))

        headers = [labels[column] for column in TABLE_COLUMNS]
        rows = [
            [
                line.description,
                str(line.quantity),
                format_amount(line.unit_price),
                format_rate(line.tax_rate),
                format_amount(line.tax_amount),
                format_amount(line.net_amount),
            ]
            for line in invoice.lines
        ]
        if rtl:
            headers = headers[::-1]
            rows = [row[::-1] for row in rows]

        return RenderedInvoice(
            language=language,
            direction='rtl' if rtl else 'ltr',
            width=self.settings.render_width,
            title=labels['title'],
            header=header,
            blocks=blocks,
            table_headers=headers,
            table_rows=rows,
            totals={
                'subtotal': invoice.subtotal,
                'vat_amount': invoice.vat_amount,
                'total_amount': invoice.total_amount,
            },
            total_labels={
                'subtotal': labels['subtotal'],
                'vat_amount': labels['vat'],
                'total_amount': labels['total'],
            },
            currency=invoice.currency,
        )
