"""
Run report for aggregating import, export and lint results.

This module collects the per-item results a command streams out and turns
them into a summary for console display or JSON export.
"""

import json
import logging
import time
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from models import LintResult, PutResult, ResultStatus

Result = Union[PutResult, LintResult, Dict[str, Any]]


class RunReport:
    """Counts results of one command run and formats them."""

    def __init__(self, operation: str, logger: Optional[logging.Logger] = None):
        """
        Initialize run report.

        Args:
            operation: Name shown in the report header, e.g. 'import'
            logger: Optional logger instance
        """
        self.operation = operation
        self.logger = logger or logging.getLogger('claycli.orchestrator.run_report')
        self.counts = {status.value: 0 for status in ResultStatus}
        self.failures: List[Dict[str, Any]] = []
        self.start_time = time.time()
        self.end_time: Optional[float] = None

    @staticmethod
    def _status_of(result: Result) -> str:
        if isinstance(result, (PutResult, LintResult)):
            return result.status.value
        return result.get('status') or result.get('result') or ResultStatus.SUCCESS.value

    def add(self, result: Result) -> Result:
        """Count one result and return it unchanged."""
        status = self._status_of(result)
        self.counts[status] = self.counts.get(status, 0) + 1

        if status == ResultStatus.ERROR.value:
            failure = result if isinstance(result, dict) else result.to_dict()
            self.failures.append(failure)
        return result

    def track(self, results: Iterable[Result]) -> Iterator[Result]:
        """Count results as they stream past."""
        for result in results:
            yield self.add(result)

    def finish(self) -> None:
        self.end_time = time.time()

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def duration(self) -> float:
        return (self.end_time or time.time()) - self.start_time

    @property
    def success_rate(self) -> float:
        if not self.total:
            return 0.0
        return (self.total - self.counts.get(ResultStatus.ERROR.value, 0)) / self.total

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    def generate_report(self) -> Dict[str, Any]:
        """
        Build the report dictionary.

        Returns:
            Report with summary counts, failures and timestamp
        """
        report = {
            'operation': self.operation,
            'summary': {
                'total': self.total,
                'success': self.counts.get(ResultStatus.SUCCESS.value, 0),
                'error': self.counts.get(ResultStatus.ERROR.value, 0),
                'skipped': self.counts.get(ResultStatus.SKIPPED.value, 0),
                'success_rate': self.success_rate,
                'duration': self.duration,
                'duration_formatted': self._format_duration(self.duration),
            },
            'failures': list(self.failures),
            'timestamp': datetime.now().isoformat(),
        }

        self.logger.info(
            f"Report generated: {report['summary']['total']} items, "
            f"{report['summary']['error']} errors"
        )
        return report

    def _format_duration(self, seconds: float) -> str:
        """Format duration in human-readable format."""
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            minutes = int(seconds // 60)
            secs = int(seconds % 60)
            return f"{minutes}m {secs}s"
        else:
            hours = int(seconds // 3600)
            minutes = int((seconds % 3600) // 60)
            secs = int(seconds % 60)
            return f"{hours}h {minutes}m {secs}s"

    def format_console_report(self, report: Dict[str, Any], max_failures: int = 20) -> str:
        """
        Format report for console display.

        Args:
            report: Report dictionary from ``generate_report``
            max_failures: Number of failures listed before truncating

        Returns:
            Formatted console string
        """
        summary = report.get('summary', {})
        sections = [
            "=" * 60,
            f"{report.get('operation', 'run').upper()} REPORT",
            "=" * 60,
            "",
            "Summary:",
            f"  Total:    {summary.get('total', 0)}",
            f"  Success:  {summary.get('success', 0)}",
            f"  Skipped:  {summary.get('skipped', 0)}",
            f"  Errors:   {summary.get('error', 0)}",
            f"  Duration: {summary.get('duration_formatted', '0s')}",
        ]

        if summary.get('total'):
            sections.append(f"  Rate:     {summary.get('success_rate', 0) * 100:.1f}%")

        failures = report.get('failures', [])
        if failures:
            sections.append("")
            sections.append("Failures:")
            sections.append("-" * 60)
            for failure in failures[:max_failures]:
                line = f"  {failure.get('url') or '(unknown)'}"
                if failure.get('message'):
                    line += f" - {failure['message']}"
                sections.append(line)
            if len(failures) > max_failures:
                sections.append(f"  ... and {len(failures) - max_failures} more")

        sections.append("=" * 60)
        return "\n".join(sections)

    def export_json_report(self, report: Dict[str, Any], filepath: str) -> None:
        """
        Export report to JSON file.

        Args:
            report: Report dictionary
            filepath: Output file path

        Raises:
            OSError: If the file cannot be written
        """
        try:
            with open(filepath, 'w', encoding='utf-8') as f:
                json.dump(report, f, indent=2, ensure_ascii=False, default=str)
        except OSError as e:
            self.logger.error(f"Failed to export JSON report: {e}")
            raise

        self.logger.info(f"JSON report exported to {filepath}")


__all__ = ['RunReport']
