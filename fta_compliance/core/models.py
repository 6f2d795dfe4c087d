"""
Data models for UAE FTA tax documents.
Using Pydantic for validation and type safety.

Validation inputs (TaxInvoiceData, VATReturnData, CITReturnData) are lenient:
missing values become validator findings rather than parse failures.
The Invoice document entity is strict and immutable.
"""
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from fta_compliance.utils.amounts import CENT, format_amount, quantize_amount, to_decimal, within_tolerance


def _decimal_input(value: Any) -> Any:
    """Route floats through str() so 0.1 does not become 0.1000000000000000055"""
    if value is None:
        return Decimal('0')
    if isinstance(value, float):
        return to_decimal(value)
    return value


class WireModel(BaseModel):
    """Accepts both snake_case names and camelCase wire aliases"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EntityType(str, Enum):
    """Closed set of documents the compliance checker understands"""
    TRN = 'TRN'
    INVOICE = 'INVOICE'
    VAT_RETURN = 'VAT_RETURN'
    CIT_RETURN = 'CIT_RETURN'

    @classmethod
    def parse(cls, value: Any) -> Optional['EntityType']:
        """Resolve a tag (enum member or string); None when unknown"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                return None
        return None


class ValidationResult(WireModel):
    """Verdict of a validator: errors invalidate, warnings advise"""
    is_valid: bool = True
    errors: List[str] = []
    warnings: List[str] = []
    score: int = Field(default=100, ge=0, le=100)
    processing_time_ms: Optional[float] = None

    def add_error(self, message: str):
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str):
        self.warnings.append(message)

    def finalize(self, error_weight: int, warning_weight: int) -> 'ValidationResult':
        """Derive validity and score from the collected findings"""
        self.is_valid = not self.errors
        self.score = max(0, 100 - error_weight * len(self.errors) - warning_weight * len(self.warnings))
        return self

    @classmethod
    def failure(cls, errors: List[str], score: int = 0) -> 'ValidationResult':
        return cls(is_valid=False, errors=list(errors), warnings=[], score=score)


# ---------------------------------------------------------------------------
# Validation inputs
# ---------------------------------------------------------------------------

class LenientModel(WireModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )


class InvoiceItem(LenientModel):
    """Line item as it appears on a tax invoice submitted for validation"""
    description: Optional[str] = None
    quantity: Decimal = Decimal('0')
    unit_price: Decimal = Decimal('0')
    vat_rate: Decimal = Decimal('0')
    total_amount: Decimal = Decimal('0')

    coerce_amounts = field_validator(
        'quantity', 'unit_price', 'vat_rate', 'total_amount', mode='before'
    )(_decimal_input)


class TaxInvoiceData(LenientModel):
    invoice_number: Optional[str] = None
    issue_date: Optional[str] = None
    seller_trn: Optional[str] = Field(default=None, alias='sellerTRN')
    buyer_trn: Optional[str] = Field(default=None, alias='buyerTRN')
    total_amount: Decimal = Decimal('0')
    vat_amount: Decimal = Decimal('0')
    items: List[InvoiceItem] = []

    coerce_amounts = field_validator('total_amount', 'vat_amount', mode='before')(_decimal_input)

    @field_validator('issue_date', mode='before')
    @classmethod
    def date_to_text(cls, v):
        if isinstance(v, (date, datetime)):
            return v.isoformat()
        return v


class VATReturnData(LenientModel):
    trn: Optional[str] = None
    tax_period: Optional[str] = None
    standard_rated_supplies: Decimal = Decimal('0')
    zero_rated_supplies: Decimal = Decimal('0')
    exempt_supplies: Decimal = Decimal('0')
    total_supplies: Decimal = Decimal('0')
    vat_due: Decimal = Decimal('0')

    # Informational boxes of the return form
    standard_rated_purchases: Decimal = Decimal('0')
    imports: Decimal = Decimal('0')
    adjustments: Decimal = Decimal('0')

    coerce_amounts = field_validator(
        'standard_rated_supplies', 'zero_rated_supplies', 'exempt_supplies',
        'total_supplies', 'vat_due', 'standard_rated_purchases', 'imports',
        'adjustments', mode='before'
    )(_decimal_input)


class CITReturnData(LenientModel):
    trn: Optional[str] = None
    tax_year: Optional[str] = None
    revenue: Decimal = Decimal('0')
    deductible_expenses: Decimal = Decimal('0')
    taxable_income: Decimal = Decimal('0')
    cit_due: Decimal = Decimal('0')
    advance_payments: Decimal = Decimal('0')
    penalties: Decimal = Decimal('0')

    coerce_amounts = field_validator(
        'revenue', 'deductible_expenses', 'taxable_income', 'cit_due',
        'advance_payments', 'penalties', mode='before'
    )(_decimal_input)


DocumentT = TypeVar('DocumentT', bound=BaseModel)


def parse_document(model_cls: Type[DocumentT], data: Any) -> Tuple[Optional[DocumentT], List[str]]:
    """
    Coerce a raw payload into ``model_cls`` without raising.

    Returns:
        (document, []) on success, (None, error messages) on failure
    """
    if isinstance(data, model_cls):
        return data, []
    if data is None:
        return None, ['Document payload is missing']
    try:
        return model_cls.model_validate(data), []
    except ValidationError as e:
        messages = []
        for error in e.errors():
            location = '.'.join(str(part) for part in error['loc']) or 'document'
            messages.append(f"Invalid {location}: {error['msg']}")
        return None, messages


# ---------------------------------------------------------------------------
# Invoice document entity
# ---------------------------------------------------------------------------

class FrozenModel(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class TaxCategory(str, Enum):
    """UN/CEFACT 5305 duty/tax category codes used by the FTA"""
    STANDARD = 'S'
    ZERO_RATED = 'Z'
    EXEMPT = 'E'
    OUT_OF_SCOPE = 'O'


class Address(FrozenModel):
    """Physical address representation"""
    street: str
    city: str
    emirate: str
    postal_code: Optional[str] = None
    country_code: str = "AE"

    @field_validator('country_code')
    @classmethod
    def validate_country(cls, v):
        if len(v) != 2:
            raise ValueError('Country code must be 2 characters')
        return v.upper()


class ContactDetails(FrozenModel):
    phone: Optional[str] = None
    email: Optional[str] = None


class PartyInfo(FrozenModel):
    """Seller or buyer party information"""
    name: str
    trn: str
    address: Address
    contact: Optional[ContactDetails] = None

    @field_validator('trn', mode='before')
    @classmethod
    def strip_trn(cls, v):
        return v.strip() if isinstance(v, str) else v


class TaxBreakdown(FrozenModel):
    taxable_amount: Decimal
    tax_amount: Decimal
    tax_category: str = TaxCategory.STANDARD.value
    tax_rate: Decimal
    exemption_reason: Optional[str] = None

    coerce_amounts = field_validator('taxable_amount', 'tax_amount', 'tax_rate', mode='before')(_decimal_input)

    @classmethod
    def for_amount(cls, taxable_amount, tax_rate, tax_category: Optional[str] = None,
                   exemption_reason: Optional[str] = None) -> 'TaxBreakdown':
        """Compute the tax on ``taxable_amount`` at ``tax_rate`` percent"""
        taxable = quantize_amount(taxable_amount)
        rate = to_decimal(tax_rate)
        if tax_category is None:
            tax_category = TaxCategory.STANDARD.value if rate > 0 else TaxCategory.ZERO_RATED.value
        return cls(
            taxable_amount=taxable,
            tax_amount=quantize_amount(taxable * rate / Decimal('100')),
            tax_category=tax_category,
            tax_rate=rate,
            exemption_reason=exemption_reason,
        )


class InvoiceLine(FrozenModel):
    """Single line item in invoice"""
    id: str
    product_code: str = ""
    description: str
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    net_amount: Decimal
    tax_breakdown: TaxBreakdown
    units_of_measure: str = "C62"

    coerce_amounts = field_validator('quantity', 'unit_price', 'net_amount', mode='before')(_decimal_input)

    @property
    def tax_rate(self) -> Decimal:
        return self.tax_breakdown.tax_rate

    @property
    def tax_amount(self) -> Decimal:
        return self.tax_breakdown.tax_amount

    @property
    def gross_amount(self) -> Decimal:
        return self.net_amount + self.tax_amount

    @classmethod
    def create(cls, id: str, description: str, quantity, unit_price, tax_rate=Decimal('5'),
               product_code: str = "", tax_category: Optional[str] = None,
               exemption_reason: Optional[str] = None, units_of_measure: str = "C62") -> 'InvoiceLine':
        """Build a line whose net and tax amounts are derived from quantity and price"""
        net = quantize_amount(to_decimal(quantity) * to_decimal(unit_price))
        return cls(
            id=id,
            product_code=product_code,
            description=description,
            quantity=to_decimal(quantity),
            unit_price=to_decimal(unit_price),
            net_amount=net,
            tax_breakdown=TaxBreakdown.for_amount(net, tax_rate, tax_category, exemption_reason),
            units_of_measure=units_of_measure,
        )


class InvoiceTotals(FrozenModel):
    subtotal: Decimal
    vat_amount: Decimal
    total_amount: Decimal

    coerce_amounts = field_validator('subtotal', 'vat_amount', 'total_amount', mode='before')(_decimal_input)


class Invoice(FrozenModel):
    """Complete invoice representation"""
    invoice_number: str = Field(..., min_length=1)
    issue_date: date
    due_date: Optional[date] = None
    currency: str = "AED"

    seller: PartyInfo
    buyer: Optional[PartyInfo] = None

    lines: List[InvoiceLine] = Field(..., min_length=1)

    # Declared totals; derived from the lines when omitted
    totals: Optional[InvoiceTotals] = None

    @model_validator(mode='after')
    def check_declared_totals(self) -> 'Invoice':
        mismatches = self.totals_mismatches()
        if mismatches:
            raise ValueError(f"Declared totals disagree with the lines: {'; '.join(mismatches)}")
        return self

    def totals_mismatches(self, tolerance: Decimal = CENT) -> List[str]:
        """Declared totals that differ from what the lines add up to"""
        if self.totals is None:
            return []

        net = sum((line.net_amount for line in self.lines), Decimal('0'))
        tax = sum((line.tax_amount for line in self.lines), Decimal('0'))
        declared = self.totals
        checks = (
            ('subtotal', declared.subtotal, net),
            ('vat_amount', declared.vat_amount, tax),
            ('total_amount', declared.total_amount, declared.subtotal + declared.vat_amount),
        )
        return [
            f"{name} {format_amount(stated)} != {format_amount(expected)}"
            for name, stated, expected in checks
            if not within_tolerance(stated, expected, tolerance)
        ]

    @property
    def subtotal(self) -> Decimal:
        if self.totals is not None:
            return self.totals.subtotal
        return sum((line.net_amount for line in self.lines), Decimal('0'))

    @property
    def vat_amount(self) -> Decimal:
        if self.totals is not None:
            return self.totals.vat_amount
        return sum((line.tax_amount for line in self.lines), Decimal('0'))

    @property
    def total_amount(self) -> Decimal:
        if self.totals is not None:
            return self.totals.total_amount
        return self.subtotal + self.vat_amount

    @property
    def buyer_trn(self) -> str:
        return self.buyer.trn if self.buyer else ""

    def to_tax_invoice_data(self) -> TaxInvoiceData:
        """Project the document onto the shape the tax invoice validator checks"""
        return TaxInvoiceData(
            invoice_number=self.invoice_number,
            issue_date=self.issue_date.isoformat(),
            seller_trn=self.seller.trn,
            buyer_trn=self.buyer.trn if self.buyer else None,
            total_amount=self.total_amount,
            vat_amount=self.vat_amount,
            items=[
                InvoiceItem(
                    description=line.description,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    vat_rate=line.tax_rate,
                    total_amount=line.net_amount,
                )
                for line in self.lines
            ],
        )


class Phase2ComplianceRecord(FrozenModel):
    """Integrity artifacts attached to one finalized invoice"""
    serialized_document: str
    hash: str
    signature: str
    scannable_code: str
    seller_id: str
    buyer_id: str
    issue_date: str
    total_amount: Decimal


# ---------------------------------------------------------------------------
# Typed compliance requests
# ---------------------------------------------------------------------------

class TRNCheckRequest(BaseModel):
    entity_type: Literal['TRN'] = 'TRN'
    document: str


class InvoiceCheckRequest(BaseModel):
    entity_type: Literal['INVOICE'] = 'INVOICE'
    document: TaxInvoiceData


class VATReturnCheckRequest(BaseModel):
    entity_type: Literal['VAT_RETURN'] = 'VAT_RETURN'
    document: VATReturnData


class CITReturnCheckRequest(BaseModel):
    entity_type: Literal['CIT_RETURN'] = 'CIT_RETURN'
    document: CITReturnData


ComplianceRequest = Annotated[
    Union[TRNCheckRequest, InvoiceCheckRequest, VATReturnCheckRequest, CITReturnCheckRequest],
    Field(discriminator='entity_type'),
]


# ---------------------------------------------------------------------------
# Batch processing
# ---------------------------------------------------------------------------

class DocumentEnvelope(BaseModel):
    """A raw document read from disk, tagged with the type it claims to be"""
    source: str
    entity_type: str
    document: Any


class CheckedDocument(BaseModel):
    """One document of a batch together with its verdict"""
    source: str
    entity_type: str
    result: ValidationResult


class BatchResult(BaseModel):
    """Result of batch processing"""
    total: int = 0
    valid_count: int = 0
    invalid_count: int = 0
    processing_time_seconds: float = 0.0
    results: List[CheckedDocument] = []

    def add_result(self, checked: CheckedDocument):
        self.results.append(checked)
        self.total += 1
        if checked.result.is_valid:
            self.valid_count += 1
        else:
            self.invalid_count += 1

    @property
    def average_score(self) -> float:
        if not self.results:
            return 0.0
        return sum(c.result.score for c in self.results) / len(self.results)
