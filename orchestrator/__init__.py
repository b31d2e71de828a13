"""
Orchestration package for summarizing command runs.

This package aggregates the per-item results streamed by the export,
import and lint engines into a run report: counts by status, the failed
items with their messages, and run duration. Reports render for the
console or export as JSON.
"""

from .run_report import RunReport

__all__ = [
    'RunReport'
]
