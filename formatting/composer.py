"""Compose and decompose component data.

Normalized data holds bare ``{"_ref": uri}`` pointers to its children.
Denormalized (composed) data has each child's data inlined next to its
``_ref``, the way Clay serves ``.json`` requests.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

from models import AssetType
from prefixes import REF_PROP, get_component_instance, get_component_name, is_layout

logger = logging.getLogger('claycli.formatting.composer')


@dataclass
class CompositionTracker:
    """Records which uris were inlined while composing a bootstrap."""

    added: Set[str] = field(default_factory=set)
    as_child: Set[str] = field(default_factory=set)

    def mark_child(self, uri: str) -> None:
        self.added.add(uri)
        self.as_child.add(uri)


def _normalize_list(items: list) -> list:
    if items and isinstance(items[0], dict) and REF_PROP in items[0]:
        return [{REF_PROP: item[REF_PROP]} for item in items]
    return items


def _normalize_prop(obj: dict) -> dict:
    if REF_PROP in obj:
        return {REF_PROP: obj[REF_PROP]}
    return obj


def normalize(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Remove child component data, leaving only their references.

    The ``_ref`` at the root of the data is removed as well.

    Args:
        data: Component data, possibly composed

    Returns:
        New normalized dictionary
    """
    clean = {}
    for key, value in data.items():
        if isinstance(value, list):
            clean[key] = _normalize_list(value)
        elif isinstance(value, dict):
            clean[key] = _normalize_prop(value)
        elif key != REF_PROP:
            clean[key] = value
    return clean


def lookup_component(uri: str, bootstrap: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Find the data a component (or layout) uri points to inside a bootstrap.

    Instance uris resolve to ``<type>.<name>.instances.<id>``; bare component
    uris resolve to the default data, i.e. ``<type>.<name>`` without
    ``instances``.
    """
    section = AssetType.LAYOUTS if is_layout(uri) else AssetType.COMPONENTS
    name = get_component_name(uri)
    entry = (bootstrap.get(section.bootstrap_key) or {}).get(name)
    if not isinstance(entry, dict):
        return None

    instance = get_component_instance(uri)
    if instance:
        return (entry.get('instances') or {}).get(instance)
    return {key: value for key, value in entry.items() if key != 'instances'}


def _add_component(item: dict, bootstrap: Dict[str, Any], tracker: CompositionTracker, ancestors: Set[str]) -> dict:
    uri = item[REF_PROP]
    if uri in ancestors:
        logger.debug(f"Reference cycle at {uri}, leaving reference in place")
        return dict(item)

    data = lookup_component(uri, bootstrap)
    if not data:
        # nothing to inline, the target site may still have it
        return dict(item)

    tracker.mark_child(uri)
    composed = dict(item)
    composed.update(_denormalize(data, bootstrap, tracker, ancestors | {uri}))
    return composed


def _denormalize(data: Dict[str, Any], bootstrap: Dict[str, Any], tracker: CompositionTracker, ancestors: Set[str]) -> Dict[str, Any]:
    result = {}
    for key, value in data.items():
        if isinstance(value, list) and value and isinstance(value[0], dict) and REF_PROP in value[0]:
            result[key] = [_add_component(item, bootstrap, tracker, ancestors) for item in value]
        elif isinstance(value, dict) and REF_PROP in value:
            result[key] = _add_component(value, bootstrap, tracker, ancestors)
        else:
            result[key] = copy.deepcopy(value)
    return result


def denormalize(
    data: Dict[str, Any],
    bootstrap: Dict[str, Any],
    tracker: Optional[CompositionTracker] = None,
    uri: Optional[str] = None
) -> Dict[str, Any]:
    """
    Inline child component data from a bootstrap.

    Children with no data in the bootstrap keep their bare reference. A
    child that references one of its own ancestors is left as a reference,
    so cyclic bootstraps terminate.

    Args:
        data: Normalized component data
        bootstrap: Bootstrap document holding the children
        tracker: Collects the uris that were inlined
        uri: Uri of ``data`` itself, used for cycle detection

    Returns:
        New composed dictionary; neither input is modified
    """
    tracker = tracker if tracker is not None else CompositionTracker()
    ancestors = {uri} if uri else set()
    return _denormalize(data, bootstrap, tracker, ancestors)


__all__ = ['CompositionTracker', 'normalize', 'denormalize', 'lookup_component']
