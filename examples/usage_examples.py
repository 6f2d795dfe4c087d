"""
Example usage of the FTA Compliance Engine.
Demonstrates various use cases and patterns.
"""
import asyncio
from datetime import date
from decimal import Decimal
from pathlib import Path

from fta_compliance import BatchProcessor, ComplianceChecker, ConcurrentChecker, InvoiceDocumentService, load_document
from fta_compliance.core.models import Address, Invoice, InvoiceLine, PartyInfo
from fta_compliance.core.parsers import document_generator
from fta_compliance.processing.batch import group_by_error


def example_check_single_file():
    """Example: Check a single envelope file"""
    print("Example 1: Single Document Check")
    print("-" * 50)

    envelope = load_document('sample_documents/vat_return_2024_03.json')

    checker = ComplianceChecker()
    result = checker.check(envelope.document, envelope.entity_type)

    if result.is_valid:
        print(f"✓ {envelope.source} is compliant (score {result.score})")
    else:
        print(f"✗ {envelope.source} has {len(result.errors)} errors:")
        for error in result.errors:
            print(f"  - {error}")

    for warning in result.warnings:
        print(f"  ! {warning}")

    print()


def example_check_trn():
    """Example: Check a Tax Registration Number directly"""
    print("Example 2: TRN Check")
    print("-" * 50)

    result = ComplianceChecker().check("100-1234-5670-0005", "TRN")
    print(f"Valid: {result.is_valid}, errors: {result.errors}")
    print()


def example_process_directory_sequential():
    """Example: Process directory sequentially using generators"""
    print("Example 3: Sequential Directory Processing")
    print("-" * 50)

    processor = BatchProcessor()
    result = processor.process_directory(
        directory=Path('sample_documents/'),
        pattern='*.json',
        output_dir=Path('reports/')
    )

    print(f"Processed: {result.total} documents")
    print(f"Valid: {result.valid_count}")
    print(f"Invalid: {result.invalid_count}")
    print(f"Time: {result.processing_time_seconds:.2f}s")
    print()


def example_process_directory_concurrent():
    """Example: Process directory with multithreading"""
    print("Example 4: Concurrent Directory Processing")
    print("-" * 50)

    def alert(checked):
        """Called after each document check"""
        if not checked.result.is_valid:
            print(f"⚠️  Alert: {checked.source} is non-compliant")

    checker = ConcurrentChecker(max_workers=4)
    result = checker.check_directory(Path('sample_documents/'), callback=alert)

    print(f"\nFinal result: {result.valid_count}/{result.total} valid")
    print()


def example_stream_processing():
    """Example: Stream documents with a generator (memory efficient)"""
    print("Example 5: Stream Processing with Generator")
    print("-" * 50)

    checker = ComplianceChecker()
    valid_count = 0
    total_count = 0

    for envelope in document_generator('sample_documents/'):
        result = checker.check(envelope.document, envelope.entity_type)
        total_count += 1

        if result.is_valid:
            valid_count += 1

    print(f"Processed {total_count} documents, {valid_count} valid")
    print()


def example_common_errors():
    """Example: Find the most frequent compliance errors"""
    print("Example 6: Group by Error")
    print("-" * 50)

    result = BatchProcessor().process_directory(Path('sample_documents/'))

    grouped = group_by_error(result.results)
    for message, sources in sorted(grouped.items(), key=lambda item: -len(item[1]))[:5]:
        print(f"{len(sources):>4}  {message}")

    print()


def example_generate_invoice():
    """Example: Produce signed XML, canonical JSON and an Arabic rendering"""
    print("Example 7: Invoice Generation")
    print("-" * 50)

    invoice = Invoice(
        invoice_number="INV-2024-001",
        issue_date=date.today(),
        seller=PartyInfo(
            name="Gulf Trading LLC",
            trn="100123456700005",
            address=Address(street="Sheikh Zayed Road", city="Dubai", emirate="Dubai"),
        ),
        buyer=PartyInfo(
            name="Oasis Retail FZE",
            trn="300234567800006",
            address=Address(street="Corniche Road", city="Abu Dhabi", emirate="Abu Dhabi"),
        ),
        lines=[
            InvoiceLine.create("1", "Consulting services", Decimal("2"), Decimal("250")),
            InvoiceLine.create("2", "Export freight", Decimal("1"), Decimal("200"), tax_rate=Decimal("0")),
        ],
    )

    service = InvoiceDocumentService()
    outputs = asyncio.run(service.generate(invoice, language='ar'))
    paths = outputs.save('generated/')

    print(f"Total: {outputs.canonical_json['totalAmount']} AED")
    for kind, path in paths.items():
        print(f"  {kind}: {path}")
    print()


if __name__ == '__main__':
    print("FTA Compliance Engine - Usage Examples")
    print("=" * 50)
    print()

    # Run examples (comment out as needed)
    example_check_trn()
    example_generate_invoice()
    # example_check_single_file()
    # example_process_directory_sequential()
    # example_process_directory_concurrent()
    # example_stream_processing()
    # example_common_errors()

    print("Note: Create sample_documents/ directory with envelope files to run the batch examples")
