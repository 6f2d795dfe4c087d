"""
Report generation utilities.
Creates human-readable compliance reports.
"""
import csv
import json
from collections import Counter
from datetime import datetime
from typing import List

from fta_compliance.core.models import BatchResult, CheckedDocument


def _percent(count: int, total: int) -> float:
    return count / total * 100 if total else 0.0


def generate_summary_report(batch_result: BatchResult, max_listed: int = 20) -> str:
    """
    Generate text summary report from batch results.

    Args:
        batch_result: Batch processing results
        max_listed: How many failing documents to list individually

    Returns:
        Formatted text report
    """
    lines = []
    total = batch_result.total

    # Header
    lines.append("=" * 70)
    lines.append("FTA COMPLIANCE VALIDATION REPORT")
    lines.append("=" * 70)
    lines.append(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    lines.append("")

    # Summary statistics
    lines.append("SUMMARY STATISTICS")
    lines.append("-" * 70)
    lines.append(f"Total Documents Processed: {total}")
    lines.append(f"Valid:                     {batch_result.valid_count} "
                 f"({_percent(batch_result.valid_count, total):.1f}%)")
    lines.append(f"Invalid:                   {batch_result.invalid_count} "
                 f"({_percent(batch_result.invalid_count, total):.1f}%)")
    lines.append(f"Average Score:             {batch_result.average_score:.1f}")
    lines.append(f"Processing Time:           {batch_result.processing_time_seconds:.2f} seconds")
    lines.append("")

    # Error analysis
    if batch_result.invalid_count > 0:
        lines.append("COMMON ERRORS")
        lines.append("-" * 70)

        error_counts = Counter(
            error
            for checked in batch_result.results
            for error in checked.result.errors
        )
        for message, count in error_counts.most_common(10):
            lines.append(message)
            lines.append(f"  Occurrences: {count}")
            lines.append("")

        lines.append("INVALID DOCUMENTS")
        lines.append("-" * 70)

        failed = [c for c in batch_result.results if not c.result.is_valid]
        for checked in failed[:max_listed]:
            lines.append(f"Document: {checked.source} ({checked.entity_type})")
            lines.append(f"  Score: {checked.result.score}")
            for error in checked.result.errors:
                lines.append(f"    - {error}")
            lines.append("")

        if len(failed) > max_listed:
            lines.append(f"... and {len(failed) - max_listed} more invalid documents")
            lines.append("")

    # Footer
    lines.append("=" * 70)
    lines.append("END OF REPORT")
    lines.append("=" * 70)

    return "\n".join(lines)


def generate_csv_report(results: List[CheckedDocument], output_path: str):
    """
    Generate CSV report of compliance results.

    Args:
        results: Checked documents
        output_path: Path to output CSV file
    """
    with open(output_path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)

        writer.writerow([
            'Source',
            'Entity Type',
            'Valid',
            'Score',
            'Error Count',
            'Warning Count',
            'Errors',
            'Processing Time (ms)'
        ])

        for checked in results:
            result = checked.result
            writer.writerow([
                checked.source,
                checked.entity_type,
                'Yes' if result.is_valid else 'No',
                result.score,
                len(result.errors),
                len(result.warnings),
                '; '.join(result.errors),
                f"{result.processing_time_ms:.2f}" if result.processing_time_ms is not None else ''
            ])


def generate_json_report(batch_result: BatchResult, output_path: str):
    """
    Generate JSON report.

    Args:
        batch_result: Batch results
        output_path: Output file path
    """
    report = batch_result.model_dump(mode='json')
    report['average_score'] = batch_result.average_score

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(report, f, indent=2)
