"""
Output assembler.
Turns one invoice entity into a signed XML document, its canonical JSON
mapping and a rendered page, and checks all three agree on the totals.
"""
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel

from fta_compliance.config import ComplianceSettings, DEFAULT_SETTINGS
from fta_compliance.core.models import Invoice, Phase2ComplianceRecord, ValidationResult
from fta_compliance.einvoice import json_mapper
from fta_compliance.einvoice.integrity import IntegrityError, IntegrityPipeline, check_phase2_compliance
from fta_compliance.einvoice.renderer import InvoiceRenderer, RenderedInvoice
from fta_compliance.einvoice.serializer import InvoiceSerializer, read_document_summary, to_xml_string
from fta_compliance.einvoice.signing import (
    ArtifactSigner,
    PrivateKey,
    generate_signing_key,
    load_private_key,
    sign_document,
)
from fta_compliance.utils.amounts import quantize_amount
from fta_compliance.utils.decorators import audit_log, measure_performance, performance_context


logger = logging.getLogger(__name__)

UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class InvoiceGenerationError(Exception):
    """Raised when any stage of output generation fails"""
    pass


class InvoiceOutputs(BaseModel):
    """The synchronized outputs of one invoice"""
    invoice_number: str
    signed_xml: str
    canonical_json: Dict[str, Any]
    rendered: RenderedInvoice
    record: Optional[Phase2ComplianceRecord] = None
    phase2_result: Optional[ValidationResult] = None

    @property
    def json_text(self) -> str:
        return json_mapper.dumps(self.canonical_json)

    @property
    def file_stem(self) -> str:
        """Invoice number with path separators and other unsafe characters replaced"""
        return UNSAFE_FILENAME_CHARS.sub('_', self.invoice_number)

    def save(self, output_dir: Union[str, Path]) -> Dict[str, Path]:
        """
        Write the three outputs as ``<invoice number>.xml|.json|.txt``
        directly inside ``output_dir``.

        Returns:
            Mapping of output kind to written path
        """
        directory = Path(output_dir)
        directory.mkdir(parents=True, exist_ok=True)

        stem = self.file_stem
        paths = {
            'xml': directory / f"{stem}.xml",
            'json': directory / f"{stem}.json",
            'text': directory / f"{stem}.txt",
        }
        paths['xml'].write_text(self.signed_xml, encoding='utf-8')
        paths['json'].write_text(self.json_text, encoding='utf-8')
        paths['text'].write_text(self.rendered.to_text(), encoding='utf-8')
        return paths


class InvoiceDocumentService:
    """
    Generates invoice outputs.

    Construct one per signing identity; the service keeps no per-invoice
    state, so a single instance can serve concurrent generations.
    """

    def __init__(self,
                 settings: Optional[ComplianceSettings] = None,
                 signing_key: Optional[PrivateKey] = None,
                 artifact_signer: Optional[ArtifactSigner] = None):
        self.settings = settings or DEFAULT_SETTINGS

        if signing_key is None and self.settings.signing_key_path:
            signing_key = load_private_key(self.settings.signing_key_path)
        if signing_key is None:
            logger.warning("No signing key configured; using an ephemeral P-256 key")
            signing_key = generate_signing_key()

        self.signing_key = signing_key
        self.serializer = InvoiceSerializer()
        self.pipeline = IntegrityPipeline(artifact_signer)
        self.renderer = InvoiceRenderer(self.settings)

    @measure_performance
    @audit_log
    async def generate(self, invoice: Invoice, language: str = 'en',
                       include_integrity: bool = True) -> InvoiceOutputs:
        """
        Produce the signed XML, canonical JSON and rendered page.

        Args:
            invoice: Invoice entity
            language: Render language ('en' or 'ar*')
            include_integrity: Attach the Phase-2 record and embed its
                references before signing

        Returns:
            InvoiceOutputs

        Raises:
            InvoiceGenerationError: On any failure; nothing partial is returned
        """
        try:
            return await self._generate(invoice, language, include_integrity)
        except InvoiceGenerationError:
            raise
        except Exception as e:
            raise InvoiceGenerationError(f"Invoice generation failed: {e}") from e

    async def _generate(self, invoice: Invoice, language: str,
                        include_integrity: bool) -> InvoiceOutputs:
        record = None
        phase2_result = None

        self._check_totals(invoice)

        if include_integrity:
            unsigned = self.serializer.serialize(invoice)
            record = await self.pipeline.process(invoice, unsigned)
            phase2_result = self._check_record(record)

        with performance_context(f"Signing invoice {invoice.invoice_number}"):
            document = to_xml_string(self.serializer.build_tree(invoice, record))
            signed_xml = sign_document(document, self.signing_key)

        if record is not None:
            # The record carries the document as issued, references and signature included
            record = record.model_copy(update={'serialized_document': signed_xml})

        canonical_json = json_mapper.to_canonical_json(invoice)
        rendered = self.renderer.render(invoice, language)

        self._reconcile(invoice, signed_xml, canonical_json, rendered)

        return InvoiceOutputs(
            invoice_number=invoice.invoice_number,
            signed_xml=signed_xml,
            canonical_json=canonical_json,
            rendered=rendered,
            record=record,
            phase2_result=phase2_result,
        )

    def _check_record(self, record: Phase2ComplianceRecord) -> ValidationResult:
        result = check_phase2_compliance(record)
        if not result.is_valid:
            message = f"Phase 2 compliance failed: {'; '.join(result.errors)}"
            if self.settings.require_phase2_compliance:
                raise IntegrityError(message)
            logger.warning(message)
        return result

    def _check_totals(self, invoice: Invoice):
        """Declared totals must match the lines, including copies that skipped validation"""
        mismatches = invoice.totals_mismatches(self.settings.amount_tolerance)
        if mismatches:
            raise InvoiceGenerationError(
                f"Invoice generation failed: declared totals disagree with the lines "
                f"for {invoice.invoice_number}: {'; '.join(mismatches)}"
            )

    @staticmethod
    def _reconcile(invoice: Invoice, signed_xml: str, canonical_json: Dict[str, Any],
                   rendered: RenderedInvoice):
        """All three outputs must state the same grand total"""
        totals = {
            'xml': quantize_amount(read_document_summary(signed_xml)['total_amount']),
            'json': json_mapper.json_total(canonical_json),
            'rendered': quantize_amount(rendered.totals['total_amount']),
        }
        if len(set(totals.values())) != 1:
            raise InvoiceGenerationError(
                f"Invoice generation failed: totals disagree for {invoice.invoice_number}: "
                + ', '.join(f"{kind}={amount}" for kind, amount in totals.items())
            )
