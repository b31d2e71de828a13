"""
Formatting package for Clay content.

Converts content between the three portable shapes used by the import and
export pipeline:

1. Chunks: ``{relative uri: data}``, site agnostic (``chunks``)
2. Dispatches: ``{uri: composed data}``, one per line in a stream (``bootstrap``)
3. Bootstraps: one nested document grouping content by type (``bootstrap``)

``composer`` inlines and strips child component data, and
``reference_walker`` finds the component references inside any tree.

Example:
    >>> from formatting import to_bootstrap, to_dispatch
    >>> bootstrap = to_bootstrap([{'/_components/foo/instances/bar': {'a': 'b'}}])
    >>> list(to_dispatch([bootstrap]))
    [{'/_components/foo/instances/bar': {'a': 'b'}}]
"""

from .bootstrap import (
    InputParseError,
    bootstrap_to_dispatches,
    dump_bootstrap,
    dump_dispatch,
    load_bootstrap_documents,
    load_bootstrap_file,
    parse_import_text,
    to_bootstrap,
    to_dispatch,
)
from .chunks import ChunkValidationError, from_chunk, parse_deep_object, parse_object, to_chunk, validate
from .composer import CompositionTracker, denormalize, normalize
from .reference_walker import deep_reduce, iter_references, list_component_references

__all__ = [
    'InputParseError',
    'ChunkValidationError',
    'CompositionTracker',
    'to_chunk',
    'from_chunk',
    'validate',
    'parse_object',
    'parse_deep_object',
    'to_dispatch',
    'bootstrap_to_dispatches',
    'to_bootstrap',
    'parse_import_text',
    'load_bootstrap_documents',
    'load_bootstrap_file',
    'dump_bootstrap',
    'dump_dispatch',
    'normalize',
    'denormalize',
    'iter_references',
    'deep_reduce',
    'list_component_references',
]
