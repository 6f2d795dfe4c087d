"""
Unit tests for the FTA document validators.
"""
from decimal import Decimal

import pytest

from fta_compliance.core.models import TaxInvoiceData
from fta_compliance.core.validators import (
    CITReturnValidator,
    TaxInvoiceValidator,
    TRNValidator,
    VATReturnValidator,
    calculate_trn_check_digit,
    validate_cit_return,
    validate_tax_invoice,
    validate_trn,
    validate_vat_return,
)


class TestTRNValidator:
    """Test suite for Tax Registration Number checks"""

    def test_valid_trn_passes(self):
        result = TRNValidator().validate("100123456700005")

        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []
        assert result.score == 100

    def test_wrong_check_digit_fails(self):
        result = TRNValidator().validate("100123456700009")

        assert not result.is_valid
        assert result.errors == ["Invalid TRN check digit"]
        assert result.score == 75

    def test_short_trn_fails_length(self):
        result = validate_trn("10012345670000")

        assert not result.is_valid
        assert "TRN must be exactly 15 digits" in result.errors

    def test_separators_are_ignored(self):
        assert TRNValidator().validate("100-1234-5670-0005").is_valid
        assert TRNValidator().validate(" 100 123 456 700 005 ").is_valid

    def test_invalid_prefix_fails(self):
        result = TRNValidator().validate("400123456700005")

        assert "TRN must start with 1, 2, or 3" in result.errors

    def test_non_numeric_skips_check_digit(self):
        result = TRNValidator().validate("ABC123456789012")

        assert result.errors == ["TRN must contain only digits", "TRN must start with 1, 2, or 3"]
        assert result.score == 50

    def test_missing_trn_is_empty_string(self):
        result = TRNValidator().validate(None)

        assert result.errors == ["TRN must be exactly 15 digits", "TRN must contain only digits"]
        assert result.score == 50

    @pytest.mark.parametrize("digit", [d for d in "0123456789" if d != "5"])
    def test_any_other_final_digit_fails(self, digit):
        result = TRNValidator().validate("10012345670000" + digit)

        assert result.errors == ["Invalid TRN check digit"]

    def test_check_digit_calculation(self):
        assert calculate_trn_check_digit("10012345670000") == 5
        assert calculate_trn_check_digit("30023456780000") == 6


class TestTaxInvoiceValidator:
    """Test suite for tax invoice rules"""

    def test_valid_invoice_passes(self, valid_invoice_data, today):
        result = TaxInvoiceValidator(today=today).validate(valid_invoice_data)

        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []
        assert result.score == 100

    def test_accepts_model_instance(self, valid_invoice_data, today):
        document = TaxInvoiceData.model_validate(valid_invoice_data)

        assert TaxInvoiceValidator(today=today).validate(document).is_valid

    def test_line_total_mismatch_is_error(self, valid_invoice_data, today):
        valid_invoice_data["items"][0]["totalAmount"] = 499

        result = TaxInvoiceValidator(today=today).validate(valid_invoice_data)

        assert not result.is_valid
        assert "Line item 1: Total amount does not match quantity × unit price" in result.errors

    def test_vat_mismatch_is_warning(self, valid_invoice_data, today):
        valid_invoice_data["vatAmount"] = 30

        result = TaxInvoiceValidator(today=today).validate(valid_invoice_data)

        assert result.is_valid
        assert result.warnings == ["VAT amount does not match calculated VAT from line items"]
        assert result.score == 95

    def test_missing_fields(self, today):
        result = TaxInvoiceValidator(today=today).validate({})

        assert not result.is_valid
        assert "Invoice number is required" in result.errors
        assert "Issue date is required" in result.errors
        assert "Seller TRN is required" in result.errors
        assert "Total amount must be greater than zero" in result.errors
        assert "Invoice must have at least one line item" in result.errors

    def test_invalid_seller_trn_quotes_trn_errors(self, valid_invoice_data, today):
        valid_invoice_data["sellerTRN"] = "100123456700009"

        result = TaxInvoiceValidator(today=today).validate(valid_invoice_data)

        assert result.errors == ["Invalid seller TRN: Invalid TRN check digit"]
        assert result.score == 85

    def test_future_issue_date_fails(self, valid_invoice_data, today):
        valid_invoice_data["issueDate"] = "2024-07-01"

        result = TaxInvoiceValidator(today=today).validate(valid_invoice_data)

        assert "Issue date cannot be in the future" in result.errors

    def test_old_issue_date_warns(self, valid_invoice_data, today):
        valid_invoice_data["issueDate"] = "2023-01-01"

        result = TaxInvoiceValidator(today=today).validate(valid_invoice_data)

        assert result.is_valid
        assert "Issue date is more than one year old" in result.warnings

    def test_unparseable_issue_date_fails(self, valid_invoice_data, today):
        valid_invoice_data["issueDate"] = "not a date"

        result = TaxInvoiceValidator(today=today).validate(valid_invoice_data)

        assert "Issue date is not a valid date: not a date" in result.errors

    def test_invoice_number_format_warns(self, valid_invoice_data, today):
        valid_invoice_data["invoiceNumber"] = "inv/2024/001"

        result = TaxInvoiceValidator(today=today).validate(valid_invoice_data)

        assert result.is_valid
        assert "Invoice number should be alphanumeric and up to 20 characters" in result.warnings

    def test_unusual_vat_rate_warns(self, valid_invoice_data, today):
        valid_invoice_data["items"][0]["vatRate"] = 15
        valid_invoice_data["vatAmount"] = 75

        result = TaxInvoiceValidator(today=today).validate(valid_invoice_data)

        assert "Line item 1: VAT rate should typically be 0% or 5%" in result.warnings

    def test_bad_line_values(self, valid_invoice_data, today):
        valid_invoice_data["items"][0].update(description=" ", quantity=0, unitPrice=-1, totalAmount=0)

        result = TaxInvoiceValidator(today=today).validate(valid_invoice_data)

        assert "Line item 1: Description is required" in result.errors
        assert "Line item 1: Quantity must be greater than zero" in result.errors
        assert "Line item 1: Unit price cannot be negative" in result.errors

    def test_malformed_payload_becomes_errors(self, today):
        result = TaxInvoiceValidator(today=today).validate({"items": "not-a-list"})

        assert not result.is_valid
        assert result.errors[0].startswith("Invalid items")

    def test_missing_payload(self, today):
        result = TaxInvoiceValidator(today=today).validate(None)

        assert result.errors == ["Document payload is missing"]

    def test_float_amounts_are_exact(self, valid_invoice_data, today):
        valid_invoice_data["items"] = [
            {"description": "Pens", "quantity": 3, "unitPrice": 0.1, "vatRate": 5, "totalAmount": 0.3},
        ]
        valid_invoice_data["totalAmount"] = 0.32
        valid_invoice_data["vatAmount"] = 0.015

        result = TaxInvoiceValidator(today=today).validate(valid_invoice_data)

        assert result.errors == []


class TestVATReturnValidator:
    """Test suite for VAT return rules"""

    def test_valid_return_passes(self, valid_vat_return, today):
        result = VATReturnValidator(today=today).validate(valid_vat_return)

        assert result.is_valid
        assert result.score == 100

    def test_total_mismatch_of_one_dirham_fails(self, valid_vat_return, today):
        valid_vat_return["totalSupplies"] = 125001

        result = VATReturnValidator(today=today).validate(valid_vat_return)

        assert not result.is_valid
        assert result.errors == ["Total supplies does not match sum of supply categories"]
        assert result.score == 80

    def test_mismatch_within_tolerance_passes(self, valid_vat_return, today):
        valid_vat_return["totalSupplies"] = "125000.01"

        assert VATReturnValidator(today=today).validate(valid_vat_return).is_valid

    def test_vat_due_mismatch_warns(self, valid_vat_return, today):
        valid_vat_return["vatDue"] = 4000

        result = VATReturnValidator(today=today).validate(valid_vat_return)

        assert result.is_valid
        assert result.warnings == ["VAT due does not match 5% of standard rated supplies"]
        assert result.score == 95

    @pytest.mark.parametrize("period", ["2024-13", "2024-00", "202403", "24-03", ""])
    def test_malformed_period_fails(self, valid_vat_return, today, period):
        valid_vat_return["taxPeriod"] = period

        result = VATReturnValidator(today=today).validate(valid_vat_return)

        assert "Tax period must be in YYYY-MM format" in result.errors

    def test_period_before_vat_fails(self, valid_vat_return, today):
        valid_vat_return["taxPeriod"] = "2017-12"

        result = VATReturnValidator(today=today).validate(valid_vat_return)

        assert "VAT was introduced in UAE in 2018" in result.errors

    def test_future_period_fails(self, valid_vat_return, today):
        valid_vat_return["taxPeriod"] = "2024-07"

        result = VATReturnValidator(today=today).validate(valid_vat_return)

        assert "Tax period cannot be in the future" in result.errors

    def test_negative_supplies_fail(self, valid_vat_return, today):
        valid_vat_return.update(zeroRatedSupplies=-20000, totalSupplies=85000)

        result = VATReturnValidator(today=today).validate(valid_vat_return)

        assert result.errors == ["Zero rated supplies cannot be negative"]

    def test_invalid_trn_fails(self, valid_vat_return, today):
        valid_vat_return["trn"] = "123"

        result = VATReturnValidator(today=today).validate(valid_vat_return)

        assert result.errors[0] == "Invalid TRN: TRN must be exactly 15 digits"


class TestCITReturnValidator:
    """Test suite for Corporate Income Tax return rules"""

    def test_valid_return_passes(self, valid_cit_return, today):
        result = CITReturnValidator(today=today).validate(valid_cit_return)

        assert result.is_valid
        assert result.errors == []
        assert result.score == 100

    def test_wrong_cit_due_fails(self, valid_cit_return, today):
        valid_cit_return["citDue"] = 6000

        result = CITReturnValidator(today=today).validate(valid_cit_return)

        assert not result.is_valid
        assert result.errors == ["CIT due should be 9% of taxable income"]

    def test_wrong_taxable_income_fails(self, valid_cit_return, today):
        valid_cit_return.update(taxableIncome=450000, citDue=40500)

        result = CITReturnValidator(today=today).validate(valid_cit_return)

        assert result.errors == [
            "Taxable income calculation is incorrect (Revenue - Expenses - AED 375,000 threshold)"
        ]

    def test_income_below_threshold_is_zero(self, valid_cit_return, today):
        valid_cit_return.update(revenue=300000, deductibleExpenses=100000, taxableIncome=0, citDue=0)

        assert CITReturnValidator(today=today).validate(valid_cit_return).is_valid

    def test_year_before_cit_fails(self, valid_cit_return, today):
        valid_cit_return["taxYear"] = "2022"

        result = CITReturnValidator(today=today).validate(valid_cit_return)

        assert "Corporate Income Tax was introduced in UAE in 2023" in result.errors

    def test_future_year_fails(self, valid_cit_return, today):
        valid_cit_return["taxYear"] = "2025"

        result = CITReturnValidator(today=today).validate(valid_cit_return)

        assert "Tax year cannot be in the future" in result.errors

    def test_malformed_year_fails(self, valid_cit_return, today):
        valid_cit_return["taxYear"] = "FY24"

        result = CITReturnValidator(today=today).validate(valid_cit_return)

        assert "Tax year must be a 4-digit year" in result.errors

    def test_expenses_exceeding_revenue_warns(self, valid_cit_return, today):
        valid_cit_return.update(revenue=100000, deductibleExpenses=150000, taxableIncome=0, citDue=0)

        result = CITReturnValidator(today=today).validate(valid_cit_return)

        assert result.is_valid
        assert result.warnings == ["Deductible expenses exceed revenue"]

    def test_advance_payments(self, valid_cit_return, today):
        valid_cit_return["advancePayments"] = 7000
        result = CITReturnValidator(today=today).validate(valid_cit_return)
        assert result.warnings == ["Advance payments exceed total CIT due"]

        valid_cit_return["advancePayments"] = -1
        result = CITReturnValidator(today=today).validate(valid_cit_return)
        assert "Advance payments cannot be negative" in result.errors

    def test_score_counts_errors_and_warnings(self, valid_cit_return, today):
        valid_cit_return.update(citDue=6000, advancePayments=Decimal("6500"))

        result = CITReturnValidator(today=today).validate(valid_cit_return)

        # one error (20) and one warning (5)
        assert result.score == 75


class TestConvenienceFunctions:

    def test_module_level_helpers(self, valid_invoice_data, valid_vat_return, valid_cit_return):
        # Default clock: fixtures are dated in the past, so only age warnings may appear
        assert validate_tax_invoice(valid_invoice_data).is_valid
        assert validate_vat_return(valid_vat_return).is_valid
        assert validate_cit_return(valid_cit_return).is_valid
