"""
Tests for e-invoice generation: XML, signatures, integrity artifacts,
canonical JSON, rendering and the output assembler.
"""
import asyncio
import base64
import xml.etree.ElementTree as ET
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from signxml import XMLVerifier
from signxml.exceptions import InvalidDigest

from fta_compliance.config import ComplianceSettings
from fta_compliance.core.models import InvoiceTotals, Phase2ComplianceRecord, TaxInvoiceData
from fta_compliance.einvoice import json_mapper
from fta_compliance.einvoice.assembler import InvoiceDocumentService, InvoiceGenerationError
from fta_compliance.einvoice.integrity import (
    IntegrityPipeline,
    canonical_content,
    check_phase2_compliance,
    compute_invoice_hash,
    generate_scannable_code,
)
from fta_compliance.einvoice.renderer import InvoiceRenderer
from fta_compliance.einvoice.serializer import (
    INVOICE_NS,
    NAMESPACES,
    InvoiceSerializer,
    read_document_summary,
)
from fta_compliance.einvoice.signing import (
    ArtifactSigner,
    EcdsaArtifactSigner,
    PlaceholderSigner,
    SigningError,
    generate_signing_key,
    load_private_key,
    private_key_to_pem,
    sign_document,
    verify_document,
)

SELLER_TRN = "100123456700005"
BUYER_TRN = "300234567800006"

NS = {'inv': INVOICE_NS, **NAMESPACES}


def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def self_signed_certificate(key) -> str:
    """PEM certificate for ``key``, as a third-party verifier expects"""
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Gulf Trading LLC")])
    now = datetime.now(timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    return certificate.public_bytes(serialization.Encoding.PEM).decode('ascii')


class TestInvoiceSerializer:

    def test_header_and_parties(self, invoice):
        root = ET.fromstring(InvoiceSerializer().serialize(invoice).encode('utf-8'))

        assert root.tag == f"{{{INVOICE_NS}}}Invoice"
        assert root.findtext('cbc:InvoiceNumber', namespaces=NS) == "INV-2024-001"
        assert root.findtext('cbc:IssueDate', namespaces=NS) == "2024-06-01"
        assert root.find('cbc:TotalAmount', NS).get('currencyID') == "AED"
        assert root.findtext(
            'cac:AccountingSupplierParty/cac:Party/cac:PartyTaxScheme/cbc:CompanyID', namespaces=NS
        ) == SELLER_TRN
        assert root.findtext(
            'cac:AccountingCustomerParty/cac:Party/cac:PartyIdentification/cbc:ID', namespaces=NS
        ) == BUYER_TRN

    def test_line_tax_category(self, invoice):
        root = ET.fromstring(InvoiceSerializer().serialize(invoice).encode('utf-8'))
        category = root.find('cac:InvoiceLine/cac:TaxTotal/cac:TaxSubtotal/cac:TaxCategory', NS)

        assert category.findtext('cbc:ID', namespaces=NS) == "S"
        assert category.findtext('cbc:Percent', namespaces=NS) == "5"
        assert root.find('cac:InvoiceLine/cbc:InvoicedQuantity', NS).get('unitCode') == "C62"

    def test_buyer_is_optional(self, invoice):
        anonymous = invoice.model_copy(update={'buyer': None})

        xml = InvoiceSerializer().serialize(anonymous)

        assert "AccountingCustomerParty" not in xml

    def test_document_summary(self, mixed_rate_invoice):
        summary = read_document_summary(InvoiceSerializer().serialize(mixed_rate_invoice))

        assert summary['invoice_number'] == "INV-2024-002"
        assert summary['currency'] == "AED"
        assert summary['total_amount'] == Decimal("830.00")
        assert summary['vat_amount'] == Decimal("30.00")
        assert summary['line_amounts'] == [Decimal("500.00"), Decimal("100.00"), Decimal("200.00")]
        assert summary['line_tax_amounts'] == [Decimal("25.00"), Decimal("5.00"), Decimal("0.00")]
        assert summary['signed'] is False


class TestDocumentSigning:

    def test_sign_and_verify_ec(self, invoice):
        key = generate_signing_key()
        signed = sign_document(InvoiceSerializer().serialize(invoice), key)

        assert verify_document(signed, key.public_key())
        assert read_document_summary(signed)['signed'] is True

    def test_sign_and_verify_rsa(self, invoice):
        key = rsa_key()
        signed = sign_document(InvoiceSerializer().serialize(invoice), key)

        assert "rsa-sha256" in signed
        assert verify_document(signed, key.public_key())

    @pytest.mark.parametrize("make_key", [generate_signing_key, rsa_key], ids=["ecdsa", "rsa"])
    def test_standard_verifier_accepts_signature(self, invoice, make_key):
        key = make_key()
        signed = sign_document(InvoiceSerializer().serialize(invoice), key)

        verified = XMLVerifier().verify(signed.encode('utf-8'), x509_cert=self_signed_certificate(key))

        assert verified.signed_xml.findtext(f"{{{NAMESPACES['cbc']}}}TotalAmount") == "525.00"

    def test_standard_verifier_rejects_tampering(self, invoice):
        key = generate_signing_key()
        signed = sign_document(InvoiceSerializer().serialize(invoice), key)

        with pytest.raises(InvalidDigest):
            XMLVerifier().verify(signed.replace("525.00", "52.50").encode('utf-8'),
                                 x509_cert=self_signed_certificate(key))

    def test_exclusive_canonicalization(self, invoice):
        signed = sign_document(InvoiceSerializer().serialize(invoice), generate_signing_key())
        signed_info = ET.fromstring(signed.encode('utf-8')).find('ds:Signature/ds:SignedInfo', NS)

        assert signed_info.find('ds:CanonicalizationMethod', NS).get('Algorithm') == (
            "http://www.w3.org/2001/10/xml-exc-c14n#"
        )
        assert [t.get('Algorithm') for t in signed_info.findall('ds:Reference/ds:Transforms/ds:Transform', NS)] == [
            "http://www.w3.org/2000/09/xmldsig#enveloped-signature",
            "http://www.w3.org/2001/10/xml-exc-c14n#",
        ]

    def test_ecdsa_value_is_raw_r_and_s(self, invoice):
        signed = sign_document(InvoiceSerializer().serialize(invoice), generate_signing_key())
        value = ET.fromstring(signed.encode('utf-8')).findtext('ds:Signature/ds:SignatureValue', namespaces=NS)

        assert len(base64.b64decode(value)) == 64

    def test_tampered_document_fails(self, invoice):
        key = generate_signing_key()
        signed = sign_document(InvoiceSerializer().serialize(invoice), key)

        assert not verify_document(signed.replace("525.00", "52.50"), key.public_key())

    def test_wrong_key_fails(self, invoice):
        signed = sign_document(InvoiceSerializer().serialize(invoice), generate_signing_key())

        assert not verify_document(signed, generate_signing_key().public_key())

    def test_unsigned_document_fails(self, invoice):
        assert not verify_document(InvoiceSerializer().serialize(invoice), generate_signing_key().public_key())

    def test_resigning_replaces_signature(self, invoice):
        key = generate_signing_key()
        signed = sign_document(sign_document(InvoiceSerializer().serialize(invoice), key), key)

        assert signed.count("SignatureValue>") == 2
        assert verify_document(signed, key.public_key())

    def test_malformed_xml_raises(self):
        with pytest.raises(SigningError):
            sign_document("<Invoice>", generate_signing_key())

    def test_load_private_key(self, tmp_path):
        key_file = tmp_path / "signing.pem"
        key_file.write_bytes(private_key_to_pem(generate_signing_key()))

        assert load_private_key(key_file).key_size == 256

        with pytest.raises(SigningError):
            load_private_key(tmp_path / "missing.pem")


class TestArtifactSigners:

    def test_placeholder_round_trip(self):
        signature = PlaceholderSigner().sign("abc123")

        assert PlaceholderSigner.decode(signature) == "abc123"

    def test_placeholder_rejects_foreign_signature(self):
        with pytest.raises(SigningError):
            PlaceholderSigner.decode(base64.b64encode(b"abc123").decode('ascii'))

    def test_ecdsa_signer(self):
        signer = EcdsaArtifactSigner()
        signature = signer.sign("abc123")

        assert signer.verify("abc123", signature)
        assert not signer.verify("abc124", signature)


class TestIntegrity:

    def test_canonical_content(self, invoice):
        assert canonical_content(invoice) == (
            f"INV-2024-001|2024-06-01|{SELLER_TRN}|{BUYER_TRN}|525.00|25.00"
        )

    def test_hash_is_deterministic(self, invoice):
        assert compute_invoice_hash(invoice) == compute_invoice_hash(invoice)
        assert len(compute_invoice_hash(invoice)) == 64

    def test_entity_and_submitted_invoice_hash_alike(self, invoice, valid_invoice_data):
        submitted = TaxInvoiceData.model_validate(valid_invoice_data)

        assert compute_invoice_hash(submitted) == compute_invoice_hash(invoice)

    def test_hash_changes_with_invoice_number_alone(self, invoice):
        renumbered = invoice.model_copy(update={'invoice_number': "INV-2024-002"})

        assert compute_invoice_hash(renumbered) != compute_invoice_hash(invoice)

    @pytest.mark.parametrize("field", ["issue_date", "seller", "buyer"])
    def test_hash_changes_with_each_party_field(self, invoice, field):
        changes = {
            'issue_date': date(2024, 6, 2),
            'seller': invoice.seller.model_copy(update={'trn': "100123456700013"}),
            'buyer': invoice.buyer.model_copy(update={'trn': "300234567800014"}),
        }
        changed = invoice.model_copy(update={field: changes[field]})

        assert canonical_content(changed) != canonical_content(invoice)
        assert compute_invoice_hash(changed) != compute_invoice_hash(invoice)

    @pytest.mark.parametrize("field, value", [("totalAmount", 526), ("vatAmount", 26)])
    def test_hash_changes_with_each_amount(self, valid_invoice_data, field, value):
        original = TaxInvoiceData.model_validate(valid_invoice_data)
        changed = TaxInvoiceData.model_validate({**valid_invoice_data, field: value})

        assert compute_invoice_hash(changed) != compute_invoice_hash(original)

    def test_scannable_code_is_png_data_url(self):
        code = asyncio.run(generate_scannable_code(SELLER_TRN, BUYER_TRN, "2024-06-01", Decimal("525")))

        assert code.startswith("data:image/png;base64,")
        png = base64.b64decode(code.split(",", 1)[1])
        assert png.startswith(b"\x89PNG")

    def test_pipeline_record(self, invoice):
        record = asyncio.run(IntegrityPipeline().process(invoice, "<Invoice/>"))

        assert record.hash == compute_invoice_hash(invoice)
        assert PlaceholderSigner.decode(record.signature) == record.hash
        assert record.seller_id == SELLER_TRN
        assert record.buyer_id == BUYER_TRN
        assert record.total_amount == Decimal("525.00")
        assert check_phase2_compliance(record).is_valid

    def test_short_seller_id_fails(self):
        record = Phase2ComplianceRecord(
            serialized_document="<Invoice/>",
            hash="abc",
            signature="sig",
            scannable_code="data:image/png;base64,AA==",
            seller_id="10012345670000",
            buyer_id=BUYER_TRN,
            issue_date="2024-06-01",
            total_amount=Decimal("525"),
        )

        result = check_phase2_compliance(record)

        assert result.errors == ["Invalid seller TRN"]
        assert result.score == 80

    def test_missing_artifacts(self):
        record = Phase2ComplianceRecord(
            serialized_document="", hash="", signature="", scannable_code="",
            seller_id="", buyer_id="", issue_date="2024-06-01", total_amount=Decimal("0"),
        )

        result = check_phase2_compliance(record)

        assert result.errors == [
            "Missing invoice hash",
            "Missing digital signature",
            "Missing QR code",
            "Invalid seller TRN",
            "Invalid buyer TRN",
        ]
        assert result.score == 0


class TestCanonicalJson:

    def test_invoice_mapping(self, invoice):
        mapped = json_mapper.to_canonical_json(invoice)

        assert mapped['customizationID'] == "urn:peppol:pint:billing-1@ae-1"
        assert mapped['invoiceTypeCode'] == "380"
        assert mapped['supplierTRN'] == SELLER_TRN
        assert mapped['buyerTRN'] == BUYER_TRN
        assert mapped['subtotal'] == "500.00"
        assert mapped['vatAmount'] == "25.00"
        assert mapped['totalAmount'] == "525.00"
        assert mapped['items'] == [{
            'description': "Consulting services",
            'quantity': "2",
            'unitPrice': "250.00",
            'taxRate': "5",
            'taxAmount': "25.00",
            'totalAmount': "500.00",
            'productCode': "SRV-001",
            'unitsOfMeasure': "C62",
        }]
        assert mapped['seller']['address']['postalCode'] == "00000"
        assert 'postalCode' not in mapped['buyer']['address']
        assert 'dueDate' not in mapped

    def test_vat_breakdown_groups_by_rate(self, mixed_rate_invoice):
        mapped = json_mapper.to_canonical_json(mixed_rate_invoice)

        assert mapped['vatBreakdown'] == [
            {'taxableAmount': "600.00", 'taxRate': "5", 'taxAmount': "30.00", 'taxCategory': "S"},
            {'taxableAmount': "200.00", 'taxRate': "0", 'taxAmount': "0.00", 'taxCategory': "Z"},
        ]

    def test_buyer_is_omitted_when_absent(self, invoice):
        mapped = json_mapper.to_canonical_json(invoice.model_copy(update={'buyer': None}))

        assert 'buyer' not in mapped
        assert mapped['buyerTRN'] == ""

    def test_dumps_keeps_arabic(self, invoice):
        arabic_seller = invoice.seller.model_copy(update={'name': "شركة الخليج"})
        mapped = json_mapper.to_canonical_json(invoice.model_copy(update={'seller': arabic_seller}))

        assert "شركة الخليج" in json_mapper.dumps(mapped)
        assert json_mapper.json_total(mapped) == Decimal("525.00")


class TestInvoiceRenderer:

    def test_english_layout(self, invoice):
        rendered = InvoiceRenderer().render(invoice)
        text = rendered.to_text()

        assert rendered.direction == "ltr"
        assert text.splitlines()[0] == "Tax Invoice"
        assert rendered.table_headers[0] == "Description"
        assert "Total: 525.00 AED" in text

    def test_arabic_is_right_to_left(self, invoice):
        rendered = InvoiceRenderer().render(invoice, language="ar")
        lines = rendered.to_text().splitlines()

        assert rendered.direction == "rtl"
        assert lines[0] == "فاتورة ضريبية".rjust(80)
        assert rendered.table_headers[0] == "المبلغ"
        assert rendered.table_rows[0][0] == "500.00"
        assert rendered.table_rows[0][-1] == "Consulting services"

    def test_render_width_setting(self, invoice):
        settings = ComplianceSettings(render_width=40)
        rendered = InvoiceRenderer(settings).render(invoice, language="ar-AE")

        assert rendered.to_text().splitlines()[0] == "فاتورة ضريبية".rjust(40)


class FailingSigner(ArtifactSigner):

    def sign(self, invoice_hash: str) -> str:
        raise RuntimeError("signing device unavailable")


class TestInvoiceDocumentService:

    def test_outputs_agree(self, invoice):
        service = InvoiceDocumentService(signing_key=generate_signing_key())

        outputs = asyncio.run(service.generate(invoice))

        summary = read_document_summary(outputs.signed_xml)
        assert summary['total_amount'] == Decimal("525.00")
        assert outputs.canonical_json['totalAmount'] == "525.00"
        assert outputs.rendered.totals['total_amount'] == Decimal("525.00")
        assert verify_document(outputs.signed_xml, service.signing_key.public_key())

    def test_integrity_references_are_signed(self, invoice):
        service = InvoiceDocumentService(signing_key=generate_signing_key())

        outputs = asyncio.run(service.generate(invoice))

        assert outputs.record.hash == compute_invoice_hash(invoice)
        assert outputs.phase2_result.is_valid
        assert "cac:AdditionalDocumentReference" in outputs.signed_xml
        assert outputs.record.hash in outputs.signed_xml
        XMLVerifier().verify(outputs.signed_xml.encode('utf-8'),
                             x509_cert=self_signed_certificate(service.signing_key))

    def test_record_holds_issued_document(self, invoice):
        service = InvoiceDocumentService(signing_key=generate_signing_key())

        outputs = asyncio.run(service.generate(invoice))

        assert outputs.record.serialized_document == outputs.signed_xml
        assert read_document_summary(outputs.record.serialized_document)['signed'] is True

    def test_declared_totals_must_match_lines(self, invoice):
        service = InvoiceDocumentService(signing_key=generate_signing_key())
        contradicting = invoice.model_copy(update={
            'totals': InvoiceTotals(subtotal=900, vat_amount=99, total_amount=999),
        })

        with pytest.raises(InvoiceGenerationError, match="declared totals disagree"):
            asyncio.run(service.generate(contradicting))

    def test_consistent_declared_totals(self, invoice):
        service = InvoiceDocumentService(signing_key=generate_signing_key())
        declared = invoice.model_copy(update={
            'totals': InvoiceTotals(subtotal=500, vat_amount=25, total_amount=525),
        })

        outputs = asyncio.run(service.generate(declared, include_integrity=False))

        assert outputs.canonical_json['totalAmount'] == "525.00"

    def test_without_integrity(self, invoice):
        service = InvoiceDocumentService(signing_key=generate_signing_key())

        outputs = asyncio.run(service.generate(invoice, include_integrity=False))

        assert outputs.record is None
        assert outputs.phase2_result is None
        assert "AdditionalDocumentReference" not in outputs.signed_xml

    def test_failures_are_wrapped(self, invoice):
        service = InvoiceDocumentService(signing_key=generate_signing_key(), artifact_signer=FailingSigner())

        with pytest.raises(InvoiceGenerationError, match="signing device unavailable"):
            asyncio.run(service.generate(invoice))

    def test_phase2_failure_warns_by_default(self, invoice):
        service = InvoiceDocumentService(signing_key=generate_signing_key())

        outputs = asyncio.run(service.generate(invoice.model_copy(update={'buyer': None})))

        assert outputs.phase2_result.errors == ["Invalid buyer TRN"]
        assert outputs.phase2_result.score == 80

    def test_phase2_failure_enforced(self, invoice):
        settings = ComplianceSettings(require_phase2_compliance=True)
        service = InvoiceDocumentService(settings, signing_key=generate_signing_key())

        with pytest.raises(InvoiceGenerationError, match="Invalid buyer TRN"):
            asyncio.run(service.generate(invoice.model_copy(update={'buyer': None})))

    def test_save_writes_three_files(self, invoice, tmp_path):
        service = InvoiceDocumentService(signing_key=generate_signing_key())
        outputs = asyncio.run(service.generate(invoice, language="ar"))

        paths = outputs.save(tmp_path / "out")

        assert sorted(paths) == ["json", "text", "xml"]
        assert paths['xml'].name == "INV-2024-001.xml"
        assert '"totalAmount": "525.00"' in paths['json'].read_text(encoding='utf-8')
        assert "فاتورة ضريبية" in paths['text'].read_text(encoding='utf-8')

    @pytest.mark.parametrize("number, stem", [
        ("INV/2024/001", "INV_2024_001"),
        ("../escape", ".._escape"),
        ("INV 2024:7", "INV_2024_7"),
    ])
    def test_save_keeps_files_in_output_dir(self, invoice, tmp_path, number, stem):
        service = InvoiceDocumentService(signing_key=generate_signing_key())
        outputs = asyncio.run(service.generate(invoice.model_copy(update={'invoice_number': number}),
                                               include_integrity=False))
        output_dir = tmp_path / "out"

        paths = outputs.save(output_dir)

        assert {path.parent for path in paths.values()} == {output_dir}
        assert paths['xml'].name == f"{stem}.xml"
        assert paths['json'].exists()
        assert number in paths['xml'].read_text(encoding='utf-8')

    def test_key_from_settings(self, tmp_path, invoice):
        key = generate_signing_key()
        key_file = tmp_path / "key.pem"
        key_file.write_bytes(private_key_to_pem(key))

        service = InvoiceDocumentService(ComplianceSettings(signing_key_path=str(key_file)))
        outputs = asyncio.run(service.generate(invoice, include_integrity=False))

        assert verify_document(outputs.signed_xml, key.public_key())
