"""FTA Compliance Engine - E-Invoice Package"""

from fta_compliance.einvoice.assembler import (
    InvoiceDocumentService,
    InvoiceGenerationError,
    InvoiceOutputs,
)
from fta_compliance.einvoice.integrity import IntegrityPipeline, check_phase2_compliance
from fta_compliance.einvoice.serializer import InvoiceSerializer
from fta_compliance.einvoice.signing import sign_document, verify_document

__all__ = [
    'InvoiceDocumentService',
    'InvoiceGenerationError',
    'InvoiceOutputs',
    'IntegrityPipeline',
    'check_phase2_compliance',
    'InvoiceSerializer',
    'sign_document',
    'verify_document',
]
