"""Import package for writing content into a Clay site.

Package Structure:
- asset_pipeline: Per-asset transforms between export and PUT (prefix swap,
  layout atomizing and protection, existence checks, list merging)
- import_engine: Importer class that streams, prepares and PUTs assets

Key Features:
- Imports any exportable url from a source site into a target site
- Imports pages (with limit/offset and optional @published versions), lists,
  uris, users, or a whole site
- Imports bootstrap files and dispatch or bootstrap text, validating every
  chunk before the first write
- Leaves existing layouts and their children untouched unless told to
  overwrite them
- Merges lists with the target's existing lists instead of replacing them
- Writes children before the pages that reference them

Configuration Referenced:
- clay.concurrency: Worker count for checks and PUTs
- import.overwrite_layouts: Replace layouts that already exist on the target
- import.publish: Also PUT @published versions of imported components and pages
"""

from .asset_pipeline import (
    OVERWRITE_TYPES,
    assert_valid_overwrite,
    atomize_asset,
    check_existing,
    chunk_to_asset,
    merge_existing_list,
    merge_lists,
    protect_layouts,
    replace_prefixes,
)
from .import_engine import Importer

__all__ = [
    'Importer',
    'OVERWRITE_TYPES',
    'assert_valid_overwrite',
    'atomize_asset',
    'check_existing',
    'chunk_to_asset',
    'merge_existing_list',
    'merge_lists',
    'protect_layouts',
    'replace_prefixes',
]
