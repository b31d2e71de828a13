"""
Site-agnostic chunks.

A chunk is a single-key dictionary ``{relative uri: data}`` in which every
reference has had its site prefix removed. Chunks can be concatenated from
many sources and replayed against any site; ``from_chunk`` turns one back into
a dispatch for a particular prefix.
"""

import base64
import json
import logging
from typing import Any, Dict, Iterator, List

from formatting.composer import normalize
from formatting.reference_walker import iter_references
from models import AssetType
from prefixes import (
    REF_PROP,
    add_prefix,
    get_type,
    strip_prefix,
    toggle_reference_prefixes,
    url_to_uri,
)

logger = logging.getLogger('claycli.formatting.chunks')

Chunk = Dict[str, Any]


class ChunkValidationError(ValueError):
    """Raised when a chunk is not a single ``{relative uri: value}`` pair."""


def to_chunk(uri: str, data: Any) -> Chunk:
    """
    Convert a uri and its data into a site-agnostic chunk.

    Merging chunks generated from several sites may produce name collisions;
    that is left to the caller.
    """
    return {strip_prefix(uri): toggle_reference_prefixes(data, strip_prefix)}


def from_chunk(prefix: str, chunk: Chunk) -> Dict[str, Any]:
    """Convert a chunk into a dispatch with full uris for ``prefix``."""
    uri, data = next(iter(chunk.items()))

    def apply(value, key=None):
        return add_prefix(prefix, value, key)

    return {add_prefix(prefix, uri): toggle_reference_prefixes(data, apply)}


def validate(chunk: Any) -> Chunk:
    """
    Check that a chunk has the ``{uri without prefix: value}`` shape.

    Returns:
        The chunk, unchanged

    Raises:
        ChunkValidationError: Describing the first problem found
    """
    if not isinstance(chunk, dict):
        raise ChunkValidationError(f"Data must be an object, not {type(chunk).__name__}!")

    if not chunk:
        raise ChunkValidationError('Data must not be empty! Use a stream of { uri: value }')

    if len(chunk) > 1:
        raise ChunkValidationError(
            f"Too many properties ({len(chunk)}) on data! Split into a stream of {{ uri: value }}"
        )

    uri = next(iter(chunk))
    if not isinstance(uri, str) or not uri.startswith('/'):
        raise ChunkValidationError('Uris must not contain site prefix!')

    if get_type(uri) is None:
        raise ChunkValidationError(f"Unknown type of uri: {uri}")

    return chunk


def _section(obj: Dict[str, Any], asset_type: AssetType) -> Any:
    # bootstraps use '_components'; older files use 'components'
    if asset_type.bootstrap_key in obj:
        return obj[asset_type.bootstrap_key]
    return obj.get(asset_type.value)


def user_uri(user: Dict[str, Any]) -> str:
    """Build the ``/_users/<id>`` uri Clay uses for a user record."""
    identity = f"{user['username'].lower()}@{user['provider']}"
    return f"/_users/{base64.b64encode(identity.encode('utf-8')).decode('ascii')}"


def page_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Copy page data, renaming a legacy ``url`` to ``customUrl``."""
    page = dict(data)
    if page.get('url') and not page.get('customUrl'):
        page['customUrl'] = page.pop('url')
    return page


def _parse_components(items: Dict[str, Any], asset_type: AssetType) -> List[Chunk]:
    chunks = []
    for name, data in (items or {}).items():
        default_data = {key: value for key, value in data.items() if key != 'instances'}
        if default_data:
            chunks.append(to_chunk(f"{asset_type.segment}/{name}", default_data))

        for instance, instance_data in (data.get('instances') or {}).items():
            chunks.append(to_chunk(f"{asset_type.segment}/{name}/instances/{instance}", instance_data))
    return chunks


def is_complete_user(user: Any) -> bool:
    """Users need a username, provider and auth level to be imported."""
    if isinstance(user, dict) and user.get('username') and user.get('provider') and user.get('auth'):
        return True
    logger.warning('Cannot bootstrap users without username, provider, and auth level')
    return False


def _parse_users(items: List[Dict[str, Any]]) -> List[Chunk]:
    return [{user_uri(user): user} for user in items or [] if is_complete_user(user)]


def _parse_pages(items: Dict[str, Any]) -> List[Chunk]:
    return [
        to_chunk(f"/_pages/{key.lstrip('/')}", page_data(value))
        for key, value in (items or {}).items()
    ]


def _parse_arbitrary(items: Dict[str, Any], type_key: str) -> List[Chunk]:
    # uri keys start with a slash, list names don't
    return [
        to_chunk(f"/{type_key}/{key[1:] if key.startswith('/') else key}", value)
        for key, value in (items or {}).items()
    ]


def parse_object(obj: Dict[str, Any]) -> List[Chunk]:
    """
    Flatten a bootstrap-shaped object into chunks.

    Component default data (when not empty) comes before that component's
    instances. Users get their uri from ``username@provider``, pages lose any
    leading slash on their id, and every other type becomes
    ``/<type>/<key>``.

    Args:
        obj: Bootstrap document, keyed by ``_components``, ``_pages`` etc.

    Returns:
        List of chunks
    """
    chunks = []
    handled = set()

    for asset_type in (AssetType.COMPONENTS, AssetType.LAYOUTS):
        handled.update({asset_type.bootstrap_key, asset_type.value})
        chunks.extend(_parse_components(_section(obj, asset_type), asset_type))

    handled.update({AssetType.USERS.bootstrap_key, AssetType.USERS.value})
    chunks.extend(_parse_users(_section(obj, AssetType.USERS)))

    handled.update({AssetType.PAGES.bootstrap_key, AssetType.PAGES.value})
    chunks.extend(_parse_pages(_section(obj, AssetType.PAGES)))

    for type_key, items in obj.items():
        if type_key in handled:
            continue
        if not type_key.startswith('_'):
            type_key = f"_{type_key}"
        chunks.extend(_parse_arbitrary(items, type_key))

    return chunks


def parse_deep_object(url: str, data: Any) -> Iterator[Chunk]:
    """
    Split data fetched from a Clay server into normalized chunks.

    Composed component JSON (a dict, or its serialized string) yields one
    chunk for the component itself and one per descendant component.
    Anything else, e.g. page data, becomes a single chunk.

    Args:
        url: Url the data was fetched from
        data: Fetched data

    Yields:
        Chunks
    """
    uri = url_to_uri(url)
    if isinstance(data, str) and get_type(uri) in (AssetType.COMPONENTS, AssetType.LAYOUTS):
        data = json.loads(data)

    if isinstance(data, dict) and get_type(uri) in (AssetType.COMPONENTS, AssetType.LAYOUTS):
        root = dict(data, **{REF_PROP: uri})
        yield to_chunk(uri, normalize(root))
        for ref, obj in iter_references({'root': root}):
            if obj is not root:
                yield to_chunk(ref, normalize(obj))
        return

    yield to_chunk(uri, data)


__all__ = [
    'Chunk',
    'ChunkValidationError',
    'to_chunk',
    'from_chunk',
    'validate',
    'parse_object',
    'parse_deep_object',
    'user_uri',
    'is_complete_user',
    'page_data',
]
