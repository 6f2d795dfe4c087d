"""
FTA Compliance Engine

Validation, scoring and e-invoice generation for UAE Federal Tax Authority
documents: TRNs, tax invoices, VAT returns and Corporate Income Tax returns.
"""

__version__ = '1.0.0'
__license__ = 'MIT'

from fta_compliance.config import ComplianceSettings
from fta_compliance.core import (
    ComplianceChecker,
    EntityType,
    Invoice,
    ValidationResult,
    BatchResult,
    load_document,
    load_invoice,
)
from fta_compliance.einvoice import InvoiceDocumentService, InvoiceOutputs

from fta_compliance.processing import (
    BatchProcessor,
    ConcurrentChecker
)

__all__ = [
    'ComplianceSettings',
    'ComplianceChecker',
    'EntityType',
    'Invoice',
    'ValidationResult',
    'BatchResult',
    'load_document',
    'load_invoice',
    'InvoiceDocumentService',
    'InvoiceOutputs',
    'BatchProcessor',
    'ConcurrentChecker',
]
