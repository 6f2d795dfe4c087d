"""
Batch processing utilities using generators for memory efficiency.
Checks large volumes of documents without loading all into memory.
"""
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from fta_compliance.config import ComplianceSettings
from fta_compliance.core.compliance import ComplianceChecker
from fta_compliance.core.models import BatchResult, CheckedDocument, DocumentEnvelope, ValidationResult
from fta_compliance.core.parsers import document_generator
from fta_compliance.utils.decorators import measure_performance


logger = logging.getLogger(__name__)


def check_envelope(checker: ComplianceChecker, envelope: DocumentEnvelope) -> CheckedDocument:
    """
    Check one document, turning unexpected failures into an invalid result
    so a single bad file never stops a batch.
    """
    try:
        result = checker.check(envelope.document, envelope.entity_type)
    except Exception as e:
        logger.error(f"Error processing {envelope.source}: {e}")
        result = ValidationResult.failure([f"Processing error: {e}"])
    return CheckedDocument(source=envelope.source, entity_type=envelope.entity_type, result=result)


class BatchProcessor:
    """
    Sequential batch processor using generators.
    Memory-efficient but single-threaded.
    """

    def __init__(self, settings: Optional[ComplianceSettings] = None,
                 checker: Optional[ComplianceChecker] = None):
        self.checker = checker or ComplianceChecker(settings)

    @measure_performance
    def process_envelopes(self,
                          envelopes: Iterable[DocumentEnvelope],
                          callback: Optional[Callable[[CheckedDocument], None]] = None) -> BatchResult:
        """
        Check documents from any iterable, typically a generator.

        Args:
            envelopes: DocumentEnvelope objects
            callback: Optional function called after each check

        Returns:
            BatchResult with statistics
        """
        start_time = time.time()
        batch_result = BatchResult()

        for envelope in envelopes:
            checked = check_envelope(self.checker, envelope)
            batch_result.add_result(checked)

            if callback:
                callback(checked)

            # Log progress every 100 documents
            if batch_result.total % 100 == 0:
                logger.info(
                    f"Processed {batch_result.total} documents "
                    f"({batch_result.valid_count} valid)"
                )

        batch_result.processing_time_seconds = time.time() - start_time

        logger.info(
            f"Batch complete: {batch_result.total} documents in "
            f"{batch_result.processing_time_seconds:.2f}s"
        )

        return batch_result

    @measure_performance
    def process_directory(self,
                          directory: Path,
                          pattern: str = "*.json",
                          output_dir: Optional[Path] = None) -> BatchResult:
        """
        Check all documents in a directory.

        Args:
            directory: Directory containing envelopes
            pattern: File pattern to match
            output_dir: Directory to save one JSON verdict per document

        Returns:
            BatchResult
        """
        logger.info(f"Starting batch processing: {directory}")

        callback = None
        if output_dir:
            output_dir = Path(output_dir)
            output_dir.mkdir(parents=True, exist_ok=True)

            def save_result(checked: CheckedDocument):
                report_file = output_dir / f"{Path(checked.source).stem}.result.json"
                report_file.write_text(checked.model_dump_json(indent=2), encoding='utf-8')

            callback = save_result

        return self.process_envelopes(document_generator(directory, pattern), callback=callback)


class ProgressTracker:
    """
    Tracks and reports processing progress.
    Useful for long-running batch operations.
    """

    def __init__(self, total_expected: Optional[int] = None):
        self.total_expected = total_expected
        self.processed = 0
        self.valid = 0
        self.invalid = 0
        self.start_time = datetime.now()

    def update(self, checked: CheckedDocument):
        """Update progress with new result"""
        self.processed += 1
        if checked.result.is_valid:
            self.valid += 1
        else:
            self.invalid += 1

    def get_summary(self) -> str:
        """Get current progress summary"""
        elapsed = (datetime.now() - self.start_time).total_seconds()
        rate = self.processed / elapsed if elapsed > 0 else 0

        summary = f"Processed: {self.processed}"
        if self.total_expected:
            pct = (self.processed / self.total_expected) * 100
            summary += f"/{self.total_expected} ({pct:.1f}%)"

        summary += f" | Valid: {self.valid} | Invalid: {self.invalid}"
        summary += f" | Rate: {rate:.1f}/s"

        return summary

    def should_log(self, interval: int = 100) -> bool:
        return self.processed % interval == 0


def process_with_progress(directory: Path,
                          pattern: str = "*.json",
                          log_interval: int = 100,
                          settings: Optional[ComplianceSettings] = None) -> BatchResult:
    """
    Check a directory with progress logging.

    Args:
        directory: Directory with envelopes
        pattern: File pattern
        log_interval: Log progress every N documents

    Returns:
        BatchResult
    """
    processor = BatchProcessor(settings)
    tracker = ProgressTracker()

    def progress_callback(checked: CheckedDocument):
        tracker.update(checked)
        if tracker.should_log(log_interval):
            logger.info(tracker.get_summary())

    return processor.process_envelopes(document_generator(directory, pattern), callback=progress_callback)


def group_by_error(results: Iterable[CheckedDocument]) -> Dict[str, List[str]]:
    """
    Group failed documents by error message.
    Useful for identifying common compliance issues.

    Returns:
        Dictionary mapping error messages to the sources that raised them
    """
    errors_map: Dict[str, List[str]] = {}

    for checked in results:
        for error in checked.result.errors:
            errors_map.setdefault(error, []).append(checked.source)

    return errors_map
