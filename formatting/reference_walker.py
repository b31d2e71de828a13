"""Walk component trees for references to child components."""

import logging
from typing import Any, Callable, Iterator, List, Tuple, TypeVar

from prefixes import REF_PROP, is_component

logger = logging.getLogger('claycli.formatting.reference_walker')

# metadata and templating keys that may hold data shaped like components
IGNORED_KEYS = frozenset([
    '_components',
    '_componentSchemas',
    '_pageData',
    '_layoutRef',
    REF_PROP,
    '_self',
    'blockParams',
    'filename',
    'knownHelpers',
    'locals',
    'media',
    'site',
    'state',
    'template',
])

Reference = Tuple[str, dict]
T = TypeVar('T')


def _is_reference(tree: Any) -> bool:
    return isinstance(tree, dict) and bool(tree.get(REF_PROP)) and is_component(tree[REF_PROP])


def iter_references(tree: Any) -> Iterator[Reference]:
    """
    Yield every component reference in a tree, parents before children.

    A reference is any object whose ``_ref`` addresses a component (or
    layout instance stored as a component). References to pages, users or
    other types are not yielded. Keys starting with ``_`` and known
    metadata keys are never descended into.

    Args:
        tree: Component data, a list, or any JSON-compatible value

    Yields:
        Tuples of (reference uri, the object carrying it)
    """
    if _is_reference(tree):
        yield tree[REF_PROP], tree

    if isinstance(tree, list):
        for item in tree:
            yield from iter_references(item)
    elif isinstance(tree, dict):
        for key, value in tree.items():
            if not key.startswith('_') and key not in IGNORED_KEYS:
                yield from iter_references(value)


def deep_reduce(accumulator: T, tree: Any, visit: Callable[[str, dict], Any]) -> T:
    """
    Call ``visit(ref, obj)`` for every component reference in a tree.

    Returns:
        The accumulator, untouched by the walker itself
    """
    for ref, obj in iter_references(tree):
        visit(ref, obj)
    return accumulator


def list_component_references(data: Any) -> List[str]:
    """
    List the component references directly inside some component data.

    Only the top level of each property is inspected: component lists and
    component props, not their descendants.
    """
    if not isinstance(data, dict):
        return []

    refs = []
    for value in data.values():
        if isinstance(value, list):
            refs.extend(item[REF_PROP] for item in value if _is_reference(item))
        elif _is_reference(value):
            refs.append(value[REF_PROP])
    return refs


__all__ = ['IGNORED_KEYS', 'iter_references', 'deep_reduce', 'list_component_references']
