"""
Phase-2 integrity artifacts: content hash, artifact signature and the
scannable code printed on the invoice.
"""
import asyncio
import base64
import hashlib
import logging
from io import BytesIO
from typing import Optional, Union

import qrcode

from fta_compliance.core.models import Invoice, Phase2ComplianceRecord, TaxInvoiceData, ValidationResult
from fta_compliance.einvoice.signing import ArtifactSigner, PlaceholderSigner
from fta_compliance.utils.amounts import format_amount
from fta_compliance.utils.decorators import audit_log, measure_performance


logger = logging.getLogger(__name__)

PARTY_ID_LENGTH = 15
ERROR_WEIGHT = 20


class IntegrityError(Exception):
    """Raised when a record fails the Phase-2 checks and they are enforced"""
    pass


def canonical_content(document: Union[Invoice, TaxInvoiceData]) -> str:
    """
    Pipe-joined fields the invoice hash is computed over:
    number|issue date|seller TRN|buyer TRN|total|VAT
    """
    if isinstance(document, Invoice):
        fields = (
            document.invoice_number,
            document.issue_date.isoformat(),
            document.seller.trn,
            document.buyer_trn,
            format_amount(document.total_amount),
            format_amount(document.vat_amount),
        )
    else:
        fields = (
            document.invoice_number or '',
            document.issue_date or '',
            document.seller_trn or '',
            document.buyer_trn or '',
            format_amount(document.total_amount),
            format_amount(document.vat_amount),
        )
    return '|'.join(fields)


def compute_invoice_hash(document: Union[Invoice, TaxInvoiceData]) -> str:
    """SHA-256 hex digest of the canonical content"""
    return hashlib.sha256(canonical_content(document).encode('utf-8')).hexdigest()


def scannable_content(seller_id: str, buyer_id: str, issue_date: str, total_amount) -> str:
    return '|'.join((seller_id, buyer_id, issue_date, format_amount(total_amount)))


def _encode_qr(content: str) -> str:
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=4,
        border=2,
    )
    qr.add_data(content)
    qr.make(fit=True)

    buffered = BytesIO()
    qr.make_image().save(buffered, format="PNG")
    return 'data:image/png;base64,' + base64.b64encode(buffered.getvalue()).decode('ascii')


async def generate_scannable_code(seller_id: str, buyer_id: str, issue_date: str, total_amount) -> str:
    """
    Encode ``seller|buyer|issue date|total`` as a QR image.
    Image encoding runs in the default executor.

    Returns:
        PNG data URL
    """
    content = scannable_content(seller_id, buyer_id, issue_date, total_amount)
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, _encode_qr, content)


class IntegrityPipeline:
    """Produces the Phase-2 record for a serialized invoice"""

    def __init__(self, signer: Optional[ArtifactSigner] = None):
        self.signer = signer or PlaceholderSigner()

    @audit_log
    async def process(self, invoice: Invoice, serialized_document: str) -> Phase2ComplianceRecord:
        """
        Hash, sign and encode one invoice.

        Args:
            invoice: Invoice entity the document was built from
            serialized_document: Its serialized XML

        Returns:
            Phase2ComplianceRecord
        """
        invoice_hash = compute_invoice_hash(invoice)
        signature = self.signer.sign(invoice_hash)
        issue_date = invoice.issue_date.isoformat()

        scannable_code = await generate_scannable_code(
            invoice.seller.trn, invoice.buyer_trn, issue_date, invoice.total_amount
        )

        return Phase2ComplianceRecord(
            serialized_document=serialized_document,
            hash=invoice_hash,
            signature=signature,
            scannable_code=scannable_code,
            seller_id=invoice.seller.trn,
            buyer_id=invoice.buyer_trn,
            issue_date=issue_date,
            total_amount=invoice.total_amount,
        )


@measure_performance
def check_phase2_compliance(record: Phase2ComplianceRecord) -> ValidationResult:
    """
    Verify a record carries every artifact the authority requires.

    Returns:
        ValidationResult with one error per missing or malformed artifact
    """
    result = ValidationResult()

    if not record.hash:
        result.add_error("Missing invoice hash")
    if not record.signature:
        result.add_error("Missing digital signature")
    if not record.scannable_code:
        result.add_error("Missing QR code")
    if len(record.seller_id) != PARTY_ID_LENGTH:
        result.add_error("Invalid seller TRN")
    if len(record.buyer_id) != PARTY_ID_LENGTH:
        result.add_error("Invalid buyer TRN")

    return result.finalize(ERROR_WEIGHT, 0)
