"""Export package for pulling content out of a Clay site.

Package Structure:
- url_classifier: Maps a url onto the kind of resource it addresses
- export_engine: Fetches resources, recursing through pages, collections and
  composed components, and streams them as chunks or a bootstrap

Key Features:
- Exports single components, instance lists, all components, pages (with or
  without layouts), page lists, uris, lists and users
- Resolves public page urls through the site's ``_uris`` index
- Exports every page matched by a search query
- Dedupes layouts shared by many pages within one run (ExportSession)
- Paces requests with a sliding-window rate limiter

Configuration Referenced:
- clay.concurrency: Worker count and requests per pacing window
- export.layout / export.yaml / export.size: CLI defaults
"""

from .export_engine import Exporter, ExportError, page_children
from .url_classifier import UrlKind, classify_url

__all__ = [
    'Exporter',
    'ExportError',
    'UrlKind',
    'classify_url',
    'page_children',
]
