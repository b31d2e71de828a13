"""Lint package for checking that Clay references resolve.

Package Structure:
- reference_linter: Linter class checking live urls and bootstrap documents

Key Features:
- Recursively checks components through their lists and properties
- Checks a page's layout and every component in its areas
- Resolves public urls to their page before checking
- Checks bootstrap references locally, falling back to a live site

Configuration Referenced:
- clay.concurrency: Worker count and requests per pacing window
"""

from .reference_linter import Linter

__all__ = ['Linter']
