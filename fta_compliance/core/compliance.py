"""
Compliance orchestrator.
Runs the structural validator for a document type together with the
business rule overlay and merges both verdicts.
"""
import logging
from typing import Any, Callable, Dict, Optional, Union

from fta_compliance.config import ComplianceSettings, DEFAULT_SETTINGS
from fta_compliance.core.business_rules import BusinessRuleEngine
from fta_compliance.core.models import ComplianceRequest, EntityType, ValidationResult
from fta_compliance.core.validators import (
    CITReturnValidator,
    TaxInvoiceValidator,
    TRNValidator,
    VATReturnValidator,
)
from fta_compliance.utils.decorators import audit_log, measure_performance


logger = logging.getLogger(__name__)

UNKNOWN_ENTITY_TYPE = 'Unknown entity type for validation'


def merge_results(primary: ValidationResult, secondary: ValidationResult) -> ValidationResult:
    """
    Combine two verdicts on the same document.
    Findings keep their order, primary first; the lower score wins.
    """
    return ValidationResult(
        is_valid=primary.is_valid and secondary.is_valid,
        errors=[*primary.errors, *secondary.errors],
        warnings=[*primary.warnings, *secondary.warnings],
        score=min(primary.score, secondary.score),
    )


class ComplianceChecker:
    """
    Main compliance interface.
    Construct one per configuration and share it freely: it holds no
    mutable state, so concurrent callers need no coordination.
    """

    def __init__(self, settings: Optional[ComplianceSettings] = None, today=None):
        self.settings = settings or DEFAULT_SETTINGS
        self.business_rules = BusinessRuleEngine(self.settings)

        trn_validator = TRNValidator()
        invoice_validator = TaxInvoiceValidator(self.settings, today)
        vat_validator = VATReturnValidator(self.settings, today)
        cit_validator = CITReturnValidator(self.settings, today)

        # One entry per EntityType member
        self.validators: Dict[EntityType, Callable[[Any], ValidationResult]] = {
            EntityType.TRN: trn_validator.validate,
            EntityType.INVOICE: invoice_validator.validate,
            EntityType.VAT_RETURN: vat_validator.validate,
            EntityType.CIT_RETURN: cit_validator.validate,
        }

    @measure_performance
    @audit_log
    def check(self, document: Any, entity_type: Union[EntityType, str]) -> ValidationResult:
        """
        Validate a document and apply the business rules for its type.

        Args:
            document: Raw document (mapping or string for TRN) or parsed model
            entity_type: TRN, INVOICE, VAT_RETURN or CIT_RETURN

        Returns:
            Merged ValidationResult; unknown types score 0 without running
            any validator
        """
        resolved = EntityType.parse(entity_type)
        if resolved is None:
            logger.warning(f"Rejected document with unknown entity type: {entity_type!r}")
            return ValidationResult.failure([UNKNOWN_ENTITY_TYPE])

        validation = self.validators[resolved](document)
        business = self.business_rules.evaluate(document, resolved)
        return merge_results(validation, business)

    def check_request(self, request: ComplianceRequest) -> ValidationResult:
        """Validate a typed request whose payload already matches its tag"""
        return self.check(request.document, EntityType(request.entity_type))


def perform_compliance_check(document: Any, entity_type: Union[EntityType, str],
                             settings: Optional[ComplianceSettings] = None) -> ValidationResult:
    """
    Convenience function for a one-off check.

    Args:
        document: Raw document
        entity_type: Document tag

    Returns:
        Merged ValidationResult
    """
    return ComplianceChecker(settings).check(document, entity_type)
