"""
FTA Compliance Engine - Main Entry Point
Command-line interface for compliance checks and invoice generation.
"""
import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path

from fta_compliance.config import ComplianceSettings, ConfigurationError
from fta_compliance.core.compliance import ComplianceChecker
from fta_compliance.core.parsers import ParserError, load_document, load_invoice
from fta_compliance.einvoice.assembler import InvoiceDocumentService, InvoiceGenerationError
from fta_compliance.einvoice.signing import SigningError, load_private_key
from fta_compliance.processing.batch import BatchProcessor
from fta_compliance.processing.concurrent import ConcurrentChecker
from fta_compliance.reports.generator import generate_csv_report, generate_summary_report


LOG_FILE = 'fta_compliance.log'


# Configure logging
def setup_logging(verbose: bool = False):
    """Configure application logging"""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(LOG_FILE)
        ]
    )


def check_directory(args, settings: ComplianceSettings) -> int:
    """Handle directory check command"""
    input_dir = Path(args.input)
    output_dir = Path(args.output) if args.output else None

    if not input_dir.exists():
        logging.error(f"Input directory not found: {input_dir}")
        return 1

    logging.info(f"Starting compliance check: {input_dir}")
    logging.info(f"Pattern: {args.pattern}")
    logging.info(f"Mode: {'concurrent' if args.concurrent else 'sequential'}")

    if args.concurrent:
        processor = ConcurrentChecker(max_workers=args.workers, settings=settings)
        result = processor.check_directory(input_dir, args.pattern)
    else:
        processor = BatchProcessor(settings)
        result = processor.process_directory(input_dir, pattern=args.pattern, output_dir=output_dir)

    print("\n" + "=" * 60)
    print("FTA COMPLIANCE SUMMARY")
    print("=" * 60)
    print(f"Total Documents:   {result.total}")
    print(f"Valid:             {result.valid_count}")
    print(f"Invalid:           {result.invalid_count}")
    print(f"Average Score:     {result.average_score:.1f}")
    print(f"Processing Time:   {result.processing_time_seconds:.2f}s")
    print("=" * 60)

    if output_dir:
        output_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime('%Y%m%d_%H%M%S')

        report_path = output_dir / f"summary_{stamp}.txt"
        report_path.write_text(generate_summary_report(result), encoding='utf-8')
        generate_csv_report(result.results, str(output_dir / f"results_{stamp}.csv"))

        logging.info(f"Summary report saved: {report_path}")

    # 0 if every document is valid
    return 0 if result.invalid_count == 0 else 1


def check_single(args, settings: ComplianceSettings) -> int:
    """Handle single document check command"""
    file_path = Path(args.file)

    if not file_path.exists():
        logging.error(f"File not found: {file_path}")
        return 1

    try:
        envelope = load_document(file_path, args.type)
    except ParserError as e:
        logging.error(str(e))
        return 1

    result = ComplianceChecker(settings).check(envelope.document, envelope.entity_type)

    print("\n" + "=" * 60)
    print(f"Document: {file_path.name} ({envelope.entity_type})")
    print("=" * 60)

    print(f"{'VALID' if result.is_valid else 'INVALID'} - score {result.score}/100")

    if result.errors:
        print(f"\nErrors ({len(result.errors)}):")
        for i, error in enumerate(result.errors, 1):
            print(f"{i}. {error}")

    if result.warnings:
        print(f"\nWarnings ({len(result.warnings)}):")
        for i, warning in enumerate(result.warnings, 1):
            print(f"{i}. {warning}")

    print("=" * 60)

    if result.processing_time_ms:
        print(f"Processing time: {result.processing_time_ms:.2f}ms")

    return 0 if result.is_valid else 1


def generate_invoice(args, settings: ComplianceSettings) -> int:
    """Handle invoice generation command"""
    try:
        invoice = load_invoice(args.invoice)
        signing_key = load_private_key(args.key) if args.key else None
        service = InvoiceDocumentService(settings, signing_key=signing_key)
        outputs = asyncio.run(
            service.generate(invoice, language=args.lang, include_integrity=not args.no_integrity)
        )
        paths = outputs.save(args.output)
    except (ParserError, SigningError, InvoiceGenerationError) as e:
        logging.error(str(e))
        return 1
    except OSError as e:
        logging.error(f"Failed to write outputs to {args.output}: {e}")
        return 1

    print("\n" + "=" * 60)
    print(f"Invoice: {outputs.invoice_number}")
    print("=" * 60)
    for kind, path in paths.items():
        print(f"{kind.upper():<6} {path}")
    if outputs.phase2_result is not None:
        print(f"Phase 2 score: {outputs.phase2_result.score}/100")
        for error in outputs.phase2_result.errors:
            print(f"  - {error}")
    print("=" * 60)

    return 0


def main(argv=None):
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description='FTA Compliance Engine - Validate UAE tax documents and generate e-invoices'
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # Single document check
    check_parser = subparsers.add_parser('check', help='Check a single document')
    check_parser.add_argument('file', help='Path to a JSON document or envelope')
    check_parser.add_argument('--type', '-t', default=None,
                              help='Entity type (TRN, INVOICE, VAT_RETURN, CIT_RETURN); '
                                   'overrides the envelope')
    check_parser.add_argument('--verbose', '-v', action='store_true', help='Verbose logging')

    # Directory check
    dir_parser = subparsers.add_parser('directory', help='Check all documents in a directory')
    dir_parser.add_argument('--input', '-i', required=True, help='Input directory path')
    dir_parser.add_argument('--output', '-o', help='Output directory for reports')
    dir_parser.add_argument('--pattern', '-p', default='*.json', help='File pattern (default: *.json)')
    dir_parser.add_argument('--workers', '-w', type=int, default=None, help='Number of worker threads')
    dir_parser.add_argument('--concurrent', '-c', action='store_true', help='Use concurrent processing')
    dir_parser.add_argument('--verbose', '-v', action='store_true', help='Verbose logging')

    # Invoice generation
    gen_parser = subparsers.add_parser('generate', help='Generate signed XML, JSON and rendered invoice')
    gen_parser.add_argument('invoice', help='Path to invoice JSON')
    gen_parser.add_argument('--output', '-o', required=True, help='Output directory')
    gen_parser.add_argument('--lang', '-l', default='en', help='Render language (en or ar)')
    gen_parser.add_argument('--key', '-k', default=None, help='PEM private key for XML signing')
    gen_parser.add_argument('--no-integrity', action='store_true',
                            help='Skip the Phase 2 hash, signature and QR code')
    gen_parser.add_argument('--verbose', '-v', action='store_true', help='Verbose logging')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.verbose)

    try:
        settings = ComplianceSettings.from_env()
    except ConfigurationError as e:
        logging.error(str(e))
        return 1

    try:
        if args.command == 'check':
            return check_single(args, settings)
        elif args.command == 'directory':
            return check_directory(args, settings)
        elif args.command == 'generate':
            return generate_invoice(args, settings)
    except KeyboardInterrupt:
        logging.info("Operation cancelled by user")
        return 130
    except Exception as e:
        logging.exception(f"Unexpected error: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
