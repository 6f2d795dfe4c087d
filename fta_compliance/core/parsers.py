"""
Document loaders for JSON files.
Uses generators for memory-efficient batch processing.
"""
import json
import logging
from pathlib import Path
from typing import Generator, List, Optional, Union

from pydantic import ValidationError

from fta_compliance.core.models import DocumentEnvelope, Invoice
from fta_compliance.utils.decorators import audit_log, measure_performance


logger = logging.getLogger(__name__)


class ParserError(Exception):
    """Raised when a document file cannot be read"""
    pass


def _read_json(file_path: Union[str, Path]):
    path = Path(file_path)

    if not path.exists():
        raise FileNotFoundError(f"Document file not found: {file_path}")

    if path.suffix.lower() != '.json':
        raise ParserError(f"Unsupported file format: {path.suffix.lower()}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        raise ParserError(f"Failed to read JSON document {path.name}: {e}") from e


@measure_performance
def load_document(file_path: Union[str, Path], entity_type: Optional[str] = None) -> DocumentEnvelope:
    """
    Load a document submitted for a compliance check.

    The file either holds an envelope ``{"entityType": ..., "document": ...}``
    or, when ``entity_type`` is given, the bare document itself.

    Args:
        file_path: Path to JSON file
        entity_type: Overrides the tag stored in the file

    Returns:
        DocumentEnvelope

    Raises:
        ParserError: If the file is unreadable or carries no type
    """
    data = _read_json(file_path)

    if isinstance(data, dict) and 'document' in data:
        tag = entity_type or data.get('entityType') or data.get('entity_type')
        document = data['document']
    else:
        tag = entity_type
        document = data

    if not tag:
        raise ParserError(f"Missing entityType in {file_path}")

    return DocumentEnvelope(source=str(file_path), entity_type=str(tag), document=document)


@measure_performance
@audit_log
def load_invoice(file_path: Union[str, Path]) -> Invoice:
    """
    Load an invoice entity for document generation.

    Raises:
        ParserError: If the file is unreadable or not a valid invoice
    """
    data = _read_json(file_path)
    try:
        return Invoice.model_validate(data)
    except ValidationError as e:
        raise ParserError(f"Failed to parse invoice {file_path}: {e}") from e


def document_generator(directory: Union[str, Path],
                       pattern: str = "*.json") -> Generator[DocumentEnvelope, None, None]:
    """
    Generator that yields documents from a directory.
    Files that fail to parse are logged and skipped.

    Args:
        directory: Directory containing document files
        pattern: Glob pattern for file matching

    Yields:
        DocumentEnvelope objects, in file name order

    Example:
        for envelope in document_generator('returns/'):
            checker.check(envelope.document, envelope.entity_type)
    """
    dir_path = Path(directory)

    if not dir_path.exists():
        raise FileNotFoundError(f"Directory not found: {directory}")

    for file_path in sorted(dir_path.glob(pattern)):
        if file_path.is_file():
            try:
                yield load_document(file_path)
            except ParserError as e:
                # Log error but continue processing other files
                logger.error(f"Failed to parse {file_path}: {e}")
                continue


def batch_document_generator(directory: Union[str, Path],
                             batch_size: int = 100,
                             pattern: str = "*.json") -> Generator[List[DocumentEnvelope], None, None]:
    """
    Generator that yields batches of documents.
    Useful for bulk processing with threading pools.
    """
    batch = []

    for envelope in document_generator(directory, pattern):
        batch.append(envelope)

        if len(batch) >= batch_size:
            yield batch
            batch = []

    if batch:
        yield batch
