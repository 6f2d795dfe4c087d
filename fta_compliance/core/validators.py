"""
UAE FTA compliance validators.
Checks TRNs, tax invoices, VAT returns and CIT returns against the
Federal Tax Authority rules and scores each document 0-100.

Every validator is a total function: malformed input becomes error
strings on the result, never an exception.
"""
import re
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Optional

from dateutil.parser import parse as parse_date
from dateutil.relativedelta import relativedelta

from fta_compliance.config import ComplianceSettings, DEFAULT_SETTINGS
from fta_compliance.core.models import (
    CITReturnData,
    TaxInvoiceData,
    ValidationResult,
    VATReturnData,
    parse_document,
)
from fta_compliance.utils.amounts import within_tolerance
from fta_compliance.utils.decorators import audit_log, measure_performance


def calculate_trn_check_digit(trn_prefix: str) -> int:
    """
    Check digit of a TRN: sum of each digit times its 1-based position, mod 10.

    Args:
        trn_prefix: First 14 digits of the TRN

    Returns:
        Expected 15th digit
    """
    total = sum(int(digit) * position for position, digit in enumerate(trn_prefix, start=1))
    return total % 10


class TRNValidator:
    """
    Validator for 15-digit Tax Registration Numbers.
    Produces errors only; each one costs 25 points.
    """

    TRN_LENGTH = 15
    DIGITS_PATTERN = re.compile(r'[0-9]+')
    VALID_PREFIXES = ('1', '2', '3')
    SEPARATORS = re.compile(r'[\s-]')

    ERROR_WEIGHT = 25

    @classmethod
    def clean(cls, trn: Any) -> str:
        """Strip whitespace and dashes; non-strings are stringified"""
        if trn is None:
            return ''
        return cls.SEPARATORS.sub('', str(trn))

    @measure_performance
    def validate(self, trn: Any) -> ValidationResult:
        """
        Validate a TRN.

        Args:
            trn: Raw TRN, may contain spaces or dashes

        Returns:
            ValidationResult with no warnings
        """
        result = ValidationResult()
        clean_trn = self.clean(trn)

        if len(clean_trn) != self.TRN_LENGTH:
            result.add_error('TRN must be exactly 15 digits')

        is_numeric = bool(self.DIGITS_PATTERN.fullmatch(clean_trn))
        if not is_numeric:
            result.add_error('TRN must contain only digits')

        if len(clean_trn) == self.TRN_LENGTH:
            if clean_trn[0] not in self.VALID_PREFIXES:
                result.add_error('TRN must start with 1, 2, or 3')

            # Only meaningful when every character is a digit
            if is_numeric:
                expected = calculate_trn_check_digit(clean_trn[:14])
                if expected != int(clean_trn[14]):
                    result.add_error('Invalid TRN check digit')

        return result.finalize(self.ERROR_WEIGHT, 0)


class _DocumentValidator:
    """Shared plumbing for the return and invoice validators"""

    ERROR_WEIGHT = 20
    WARNING_WEIGHT = 5

    def __init__(self, settings: Optional[ComplianceSettings] = None,
                 today: Optional[Callable[[], date]] = None):
        """
        Initialize validator.

        Args:
            settings: Regulatory constants (defaults to DEFAULT_SETTINGS)
            today: Clock used for future/age checks (defaults to date.today)
        """
        self.settings = settings or DEFAULT_SETTINGS
        self.today = today or date.today
        self.trn_validator = TRNValidator()

    def _matches(self, a: Decimal, b: Decimal) -> bool:
        return within_tolerance(a, b, self.settings.amount_tolerance)

    def _finish(self, result: ValidationResult) -> ValidationResult:
        return result.finalize(self.ERROR_WEIGHT, self.WARNING_WEIGHT)

    def _rejected(self, problems) -> ValidationResult:
        result = ValidationResult()
        for problem in problems:
            result.add_error(problem)
        return self._finish(result)


class TaxInvoiceValidator(_DocumentValidator):
    """
    Validator for FTA tax invoices (Article 59 of the VAT Executive Regulation).
    """

    INVOICE_NUMBER_PATTERN = re.compile(r'^[A-Z0-9-]{1,20}$')

    ERROR_WEIGHT = 15
    WARNING_WEIGHT = 5

    @measure_performance
    @audit_log
    def validate(self, invoice: Any) -> ValidationResult:
        """
        Run all validation checks on a tax invoice.

        Args:
            invoice: TaxInvoiceData or a raw mapping with camelCase keys

        Returns:
            ValidationResult with errors, warnings and score
        """
        document, problems = parse_document(TaxInvoiceData, invoice)
        if document is None:
            return self._rejected(problems)

        result = ValidationResult()

        self._check_required_fields(document, result)
        self._check_seller_trn(document, result)
        self._check_amounts(document, result)
        self._check_vat_calculation(document, result)
        self._check_invoice_number_format(document, result)
        self._check_issue_date(document, result)
        self._check_line_items(document, result)

        return self._finish(result)

    def _check_required_fields(self, invoice: TaxInvoiceData, result: ValidationResult):
        if not invoice.invoice_number or not invoice.invoice_number.strip():
            result.add_error('Invoice number is required')

        if not invoice.issue_date:
            result.add_error('Issue date is required')

    def _check_seller_trn(self, invoice: TaxInvoiceData, result: ValidationResult):
        if not invoice.seller_trn:
            result.add_error('Seller TRN is required')
            return

        trn_result = self.trn_validator.validate(invoice.seller_trn)
        if not trn_result.is_valid:
            result.add_error(f"Invalid seller TRN: {', '.join(trn_result.errors)}")

    def _check_amounts(self, invoice: TaxInvoiceData, result: ValidationResult):
        if invoice.total_amount <= 0:
            result.add_error('Total amount must be greater than zero')

        if invoice.vat_amount < 0:
            result.add_error('VAT amount cannot be negative')

    def _check_vat_calculation(self, invoice: TaxInvoiceData, result: ValidationResult):
        """Declared VAT must match the VAT implied by the line items"""
        calculated_vat = sum(
            (item.total_amount * item.vat_rate / Decimal('100') for item in invoice.items),
            Decimal('0'),
        )
        if not self._matches(calculated_vat, invoice.vat_amount):
            result.add_warning('VAT amount does not match calculated VAT from line items')

    def _check_invoice_number_format(self, invoice: TaxInvoiceData, result: ValidationResult):
        if invoice.invoice_number and not self.INVOICE_NUMBER_PATTERN.fullmatch(invoice.invoice_number):
            result.add_warning('Invoice number should be alphanumeric and up to 20 characters')

    def _check_issue_date(self, invoice: TaxInvoiceData, result: ValidationResult):
        if not invoice.issue_date:
            return

        try:
            issue_date = parse_date(invoice.issue_date).date()
        except (ValueError, OverflowError):
            result.add_error(f'Issue date is not a valid date: {invoice.issue_date}')
            return

        today = self.today()

        if issue_date > today:
            result.add_error('Issue date cannot be in the future')

        if issue_date < today - relativedelta(years=1):
            result.add_warning('Issue date is more than one year old')

    def _check_line_items(self, invoice: TaxInvoiceData, result: ValidationResult):
        if not invoice.items:
            result.add_error('Invoice must have at least one line item')
            return

        for index, item in enumerate(invoice.items, start=1):
            if not item.description or not item.description.strip():
                result.add_error(f'Line item {index}: Description is required')

            if item.quantity <= 0:
                result.add_error(f'Line item {index}: Quantity must be greater than zero')

            if item.unit_price < 0:
                result.add_error(f'Line item {index}: Unit price cannot be negative')

            if item.vat_rate not in self.settings.allowed_vat_rates:
                result.add_warning(f'Line item {index}: VAT rate should typically be 0% or 5%')

            expected_total = item.quantity * item.unit_price
            if not self._matches(expected_total, item.total_amount):
                result.add_error(
                    f'Line item {index}: Total amount does not match quantity × unit price'
                )


class VATReturnValidator(_DocumentValidator):
    """Validator for periodic VAT returns (form VAT 201)"""

    TAX_PERIOD_PATTERN = re.compile(r'^([0-9]{4})-(0[1-9]|1[0-2])$')

    @measure_performance
    @audit_log
    def validate(self, vat_return: Any) -> ValidationResult:
        """
        Run all validation checks on a VAT return.

        Args:
            vat_return: VATReturnData or a raw mapping

        Returns:
            ValidationResult
        """
        document, problems = parse_document(VATReturnData, vat_return)
        if document is None:
            return self._rejected(problems)

        result = ValidationResult()

        trn_result = self.trn_validator.validate(document.trn)
        if not trn_result.is_valid:
            result.add_error(f"Invalid TRN: {', '.join(trn_result.errors)}")

        period = self.TAX_PERIOD_PATTERN.fullmatch(document.tax_period or '')
        if period is None:
            result.add_error('Tax period must be in YYYY-MM format')

        self._check_supplies(document, result)
        self._check_vat_due(document, result)

        if period is not None:
            self._check_period(int(period.group(1)), int(period.group(2)), result)

        return self._finish(result)

    def _check_supplies(self, vat_return: VATReturnData, result: ValidationResult):
        if vat_return.standard_rated_supplies < 0:
            result.add_error('Standard rated supplies cannot be negative')

        if vat_return.zero_rated_supplies < 0:
            result.add_error('Zero rated supplies cannot be negative')

        if vat_return.exempt_supplies < 0:
            result.add_error('Exempt supplies cannot be negative')

        calculated_total = (
            vat_return.standard_rated_supplies
            + vat_return.zero_rated_supplies
            + vat_return.exempt_supplies
        )
        if not self._matches(calculated_total, vat_return.total_supplies):
            result.add_error('Total supplies does not match sum of supply categories')

    def _check_vat_due(self, vat_return: VATReturnData, result: ValidationResult):
        expected_vat = vat_return.standard_rated_supplies * self.settings.standard_vat_rate / Decimal('100')
        if not self._matches(expected_vat, vat_return.vat_due):
            result.add_warning('VAT due does not match 5% of standard rated supplies')

    def _check_period(self, year: int, month: int, result: ValidationResult):
        today = self.today()

        if (year, month) > (today.year, today.month):
            result.add_error('Tax period cannot be in the future')

        if year < self.settings.vat_introduction_year:
            result.add_error('VAT was introduced in UAE in 2018')


class CITReturnValidator(_DocumentValidator):
    """Validator for annual Corporate Income Tax returns"""

    TAX_YEAR_PATTERN = re.compile(r'^[0-9]{4}$')

    @measure_performance
    @audit_log
    def validate(self, cit_return: Any) -> ValidationResult:
        """
        Run all validation checks on a CIT return.

        Args:
            cit_return: CITReturnData or a raw mapping

        Returns:
            ValidationResult
        """
        document, problems = parse_document(CITReturnData, cit_return)
        if document is None:
            return self._rejected(problems)

        result = ValidationResult()

        trn_result = self.trn_validator.validate(document.trn)
        if not trn_result.is_valid:
            result.add_error(f"Invalid TRN: {', '.join(trn_result.errors)}")

        year_is_valid = bool(document.tax_year) and bool(self.TAX_YEAR_PATTERN.fullmatch(document.tax_year))
        if not year_is_valid:
            result.add_error('Tax year must be a 4-digit year')

        self._check_income(document, result)
        self._check_calculations(document, result)

        if year_is_valid:
            self._check_year(int(document.tax_year), result)

        self._check_advance_payments(document, result)

        return self._finish(result)

    def _check_income(self, cit_return: CITReturnData, result: ValidationResult):
        if cit_return.revenue < 0:
            result.add_error('Revenue cannot be negative')

        if cit_return.deductible_expenses < 0:
            result.add_error('Deductible expenses cannot be negative')

        if cit_return.deductible_expenses > cit_return.revenue:
            result.add_warning('Deductible expenses exceed revenue')

    def _check_calculations(self, cit_return: CITReturnData, result: ValidationResult):
        """Verify the 375,000 threshold and the 9% rate were applied"""
        settings = self.settings

        expected_taxable = max(
            Decimal('0'),
            cit_return.revenue - cit_return.deductible_expenses - settings.cit_threshold,
        )
        if not self._matches(expected_taxable, cit_return.taxable_income):
            result.add_error(
                'Taxable income calculation is incorrect '
                '(Revenue - Expenses - AED 375,000 threshold)'
            )

        expected_cit = cit_return.taxable_income * settings.cit_rate
        if not self._matches(expected_cit, cit_return.cit_due):
            result.add_error('CIT due should be 9% of taxable income')

    def _check_year(self, year: int, result: ValidationResult):
        if year > self.today().year:
            result.add_error('Tax year cannot be in the future')

        if year < self.settings.cit_introduction_year:
            result.add_error('Corporate Income Tax was introduced in UAE in 2023')

    def _check_advance_payments(self, cit_return: CITReturnData, result: ValidationResult):
        if cit_return.advance_payments < 0:
            result.add_error('Advance payments cannot be negative')

        if cit_return.advance_payments > cit_return.cit_due:
            result.add_warning('Advance payments exceed total CIT due')


def validate_trn(trn: Any) -> ValidationResult:
    """Convenience wrapper around TRNValidator"""
    return TRNValidator().validate(trn)


def validate_tax_invoice(invoice: Any, settings: Optional[ComplianceSettings] = None) -> ValidationResult:
    """Convenience wrapper around TaxInvoiceValidator"""
    return TaxInvoiceValidator(settings).validate(invoice)


def validate_vat_return(vat_return: Any, settings: Optional[ComplianceSettings] = None) -> ValidationResult:
    """Convenience wrapper around VATReturnValidator"""
    return VATReturnValidator(settings).validate(vat_return)


def validate_cit_return(cit_return: Any, settings: Optional[ComplianceSettings] = None) -> ValidationResult:
    """Convenience wrapper around CITReturnValidator"""
    return CITReturnValidator(settings).validate(cit_return)
