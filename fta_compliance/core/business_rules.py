"""
Business rule overlay.
Heuristics that flag documents for a closer look without invalidating
them: round numbers, large amounts, nil returns, high margins.
"""
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from fta_compliance.config import ComplianceSettings, DEFAULT_SETTINGS
from fta_compliance.core.models import (
    CITReturnData,
    EntityType,
    TaxInvoiceData,
    ValidationResult,
    VATReturnData,
    parse_document,
)
from fta_compliance.utils.decorators import measure_performance


logger = logging.getLogger(__name__)


class BusinessRuleEngine:
    """
    Applies domain heuristics per entity type.
    Only warnings are produced today; the score formula still weighs
    errors so that blocking rules can be added without changing callers.
    """

    ERROR_WEIGHT = 25
    WARNING_WEIGHT = 10

    def __init__(self, settings: Optional[ComplianceSettings] = None):
        self.settings = settings or DEFAULT_SETTINGS
        self.rules: Dict[EntityType, Callable[[Any, ValidationResult], None]] = {
            EntityType.TRN: self._trn_rules,
            EntityType.INVOICE: self._invoice_rules,
            EntityType.VAT_RETURN: self._vat_return_rules,
            EntityType.CIT_RETURN: self._cit_return_rules,
        }

    @measure_performance
    def evaluate(self, document: Any, entity_type: EntityType) -> ValidationResult:
        """
        Run the business rules registered for ``entity_type``.

        Args:
            document: Raw document or parsed model
            entity_type: Which rule set to apply

        Returns:
            ValidationResult carrying warnings only
        """
        result = ValidationResult()
        self.rules[entity_type](document, result)
        return result.finalize(self.ERROR_WEIGHT, self.WARNING_WEIGHT)

    def _trn_rules(self, trn: Any, result: ValidationResult):
        """No heuristics apply to a bare identifier"""

    def _invoice_rules(self, data: Any, result: ValidationResult):
        invoice, _ = parse_document(TaxInvoiceData, data)
        if invoice is None:
            logger.debug("Skipping invoice business rules: payload did not parse")
            return

        settings = self.settings

        if invoice.total_amount >= settings.large_invoice_threshold and invoice.vat_amount == 0:
            result.add_warning('Large transactions should typically include VAT')

        if invoice.total_amount % 100 == 0 and invoice.total_amount > settings.round_number_threshold:
            result.add_warning('Round number amounts may require additional documentation')

    def _vat_return_rules(self, data: Any, result: ValidationResult):
        vat_return, _ = parse_document(VATReturnData, data)
        if vat_return is None:
            logger.debug("Skipping VAT return business rules: payload did not parse")
            return

        if vat_return.total_supplies == 0 and vat_return.vat_due == 0:
            result.add_warning('Nil return - ensure this reflects actual business activity')

        if vat_return.vat_due > self.settings.large_vat_due_threshold:
            result.add_warning('Large VAT amount - ensure all supporting documentation is available')

    def _cit_return_rules(self, data: Any, result: ValidationResult):
        cit_return, _ = parse_document(CITReturnData, data)
        if cit_return is None:
            logger.debug("Skipping CIT return business rules: payload did not parse")
            return

        if cit_return.taxable_income < 0:
            result.add_warning('Consider loss carry forward provisions for future years')

        if cit_return.revenue > 0:
            profit_margin = (
                (cit_return.revenue - cit_return.deductible_expenses) / cit_return.revenue * Decimal('100')
            )
            if profit_margin > self.settings.high_margin_percent:
                result.add_warning('High profit margin may require transfer pricing documentation')
