"""FTA Compliance Engine - Core Package"""

from fta_compliance.core.models import (
    EntityType,
    Invoice,
    ValidationResult,
    BatchResult,
    TaxInvoiceData,
    VATReturnData,
    CITReturnData,
)
from fta_compliance.core.parsers import load_document, load_invoice, document_generator
from fta_compliance.core.validators import (
    TRNValidator,
    TaxInvoiceValidator,
    VATReturnValidator,
    CITReturnValidator,
)
from fta_compliance.core.business_rules import BusinessRuleEngine
from fta_compliance.core.compliance import ComplianceChecker

__all__ = [
    'EntityType',
    'Invoice',
    'ValidationResult',
    'BatchResult',
    'TaxInvoiceData',
    'VATReturnData',
    'CITReturnData',
    'load_document',
    'load_invoice',
    'document_generator',
    'TRNValidator',
    'TaxInvoiceValidator',
    'VATReturnValidator',
    'CITReturnValidator',
    'BusinessRuleEngine',
    'ComplianceChecker',
]
