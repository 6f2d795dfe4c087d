"""
Concurrent compliance checking using ThreadPoolExecutor.
Enables parallel checking of many documents.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, List, Optional

from fta_compliance.config import ComplianceSettings
from fta_compliance.core.compliance import ComplianceChecker
from fta_compliance.core.models import BatchResult, CheckedDocument, DocumentEnvelope
from fta_compliance.core.parsers import batch_document_generator, document_generator
from fta_compliance.processing.batch import check_envelope
from fta_compliance.utils.decorators import measure_performance


logger = logging.getLogger(__name__)


class ConcurrentChecker:
    """
    Thread-safe checker for concurrent document processing.
    One ComplianceChecker is shared by all workers; it holds no mutable state.
    """

    def __init__(self, max_workers: Optional[int] = None,
                 settings: Optional[ComplianceSettings] = None,
                 checker: Optional[ComplianceChecker] = None):
        """
        Args:
            max_workers: Maximum number of worker threads (executor default when None)
            settings: Settings for the shared checker
        """
        self.max_workers = max_workers
        self.checker = checker or ComplianceChecker(settings)

    def check_one(self, envelope: DocumentEnvelope) -> CheckedDocument:
        return check_envelope(self.checker, envelope)

    @measure_performance
    def check_batch(self, envelopes: List[DocumentEnvelope]) -> List[CheckedDocument]:
        """
        Check many documents concurrently.

        Returns:
            Results in the same order as ``envelopes``
        """
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(self.check_one, envelopes))

    @measure_performance
    def check_directory(self,
                        directory: Path,
                        pattern: str = "*.json",
                        callback: Optional[Callable[[CheckedDocument], None]] = None) -> BatchResult:
        """
        Check all documents in a directory concurrently.

        Args:
            directory: Directory containing envelopes
            pattern: File pattern to match
            callback: Optional callback called after each document, in file order

        Returns:
            BatchResult with aggregated statistics
        """
        start_time = time.time()
        batch_result = BatchResult()

        # Collect envelopes (we need a list for ThreadPoolExecutor)
        envelopes = list(document_generator(directory, pattern))
        logger.info(f"Found {len(envelopes)} documents to check")

        if not envelopes:
            logger.warning(f"No documents found in {directory} matching {pattern}")
            return batch_result

        for checked in self.check_batch(envelopes):
            batch_result.add_result(checked)
            if callback:
                callback(checked)

        batch_result.processing_time_seconds = time.time() - start_time

        logger.info(
            f"Check complete: {batch_result.valid_count}/{batch_result.total} "
            f"valid in {batch_result.processing_time_seconds:.2f}s"
        )

        return batch_result

    @measure_performance
    def check_stream(self, directory: Path, pattern: str = "*.json",
                     batch_size: int = 100) -> BatchResult:
        """
        Process documents in streaming batches.
        Trades off maximum concurrency for constant memory usage.
        """
        start_time = time.time()
        batch_result = BatchResult()

        for batch in batch_document_generator(directory, batch_size, pattern):
            for checked in self.check_batch(batch):
                batch_result.add_result(checked)

            logger.info(
                f"Processed batch: {len(batch)} documents "
                f"(Total: {batch_result.total})"
            )

        batch_result.processing_time_seconds = time.time() - start_time
        return batch_result


def check_directory_parallel(directory: Path,
                             pattern: str = "*.json",
                             max_workers: Optional[int] = None) -> BatchResult:
    """
    Convenience function for parallel directory checking.
    """
    return ConcurrentChecker(max_workers=max_workers).check_directory(directory, pattern)
