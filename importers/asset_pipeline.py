"""
Asset transforms applied between export and PUT during an import.

Each function takes one ``Asset`` (or a list of them) and returns the
asset(s) ready for the next stage: prefixes swapped to the target site,
layouts split into their components, existing layout data protected and
lists merged with what the target already has.
"""

import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional

from clay_client import ClayClient, ClayNotFoundError
from formatting.chunks import to_chunk
from formatting.composer import normalize
from formatting.reference_walker import iter_references
from models import Asset
from prefixes import add_prefixes, get_prefix_from_url, uri_to_url

logger = logging.getLogger('claycli.importers.asset_pipeline')

OVERWRITE_TYPES = ('lists', 'components', 'pages', 'layouts', 'all')


def assert_valid_overwrite(overwrite: Iterable[str]) -> List[str]:
    """
    Validate a list of asset classes to overwrite.

    Returns:
        The overwrite classes as a list

    Raises:
        ValueError: For unknown classes, 'all' combined with others, or
            'layouts' without 'components'
    """
    overwrite = list(overwrite)
    unrecognized = [item for item in overwrite if item not in OVERWRITE_TYPES]

    if unrecognized:
        raise ValueError(f"Overwrite does not recognize these types: {', '.join(unrecognized)}")
    if 'all' in overwrite and len(overwrite) > 1:
        raise ValueError('Over-specified: If "all" is passed to overwrite, no other types may be passed')
    if 'layouts' in overwrite and 'components' not in overwrite:
        raise ValueError(
            'Under-specified: If "layouts" is passed to overwrite, "components" must also be passed; '
            'layouts are components'
        )
    return overwrite


def chunk_to_asset(chunk: Dict[str, Any], target_site: str) -> Asset:
    """Turn a chunk into an asset with a full url on ``target_site``."""
    dispatch = add_prefixes(chunk, target_site)
    uri, data = next(iter(dispatch.items()))
    return Asset(url=uri_to_url(target_site, uri), data=data)


def replace_prefixes(asset: Asset, target_site: str) -> Asset:
    """
    Move an exported asset from its source site onto ``target_site``.

    The asset's url and every reference in its data are rewritten; the
    layout flag is kept.
    """
    moved = chunk_to_asset(to_chunk(asset.url, asset.data), target_site)
    moved.is_layout = asset.is_layout
    moved.overwrite = asset.overwrite
    moved.skip = asset.skip
    return moved


def atomize_asset(asset: Asset) -> List[Asset]:
    """
    Split an asset with composed data into one normalized asset per component.

    The first asset is the input's own data, followed by one per
    descendant component in the order they appear.
    """
    prefix = get_prefix_from_url(asset.url)
    assets = [Asset(url=asset.url, data=normalize(asset.data), is_layout=asset.is_layout)]

    for ref, obj in iter_references(asset.data):
        if obj is asset.data:
            continue
        assets.append(Asset(url=uri_to_url(prefix, ref), data=normalize(obj), is_layout=asset.is_layout))

    return assets


def protect_layouts(assets: Iterable[Asset]) -> Iterator[Asset]:
    """
    Atomize layout assets and mark them (and their children) ``overwrite=False``.

    The whole stream is deduplicated by url, so a component that appears
    more than once is checked and written once.
    """
    seen = set()

    for asset in assets:
        parts = atomize_asset(asset) if asset.is_layout else [asset]
        for part in parts:
            if asset.is_layout:
                part.overwrite = False
            if part.url in seen:
                logger.debug(f"Dropping duplicate asset {part.url}")
                continue
            seen.add(part.url)
            yield part


def check_existing(client: ClayClient, asset: Asset) -> Asset:
    """
    Mark an asset ``skip`` if the target already has data at its url.

    Raises:
        ClayApiError: For failures other than 404
    """
    if asset.skip:
        return asset

    try:
        client.get(asset.url)
    except ClayNotFoundError:
        return asset

    logger.debug(f"Already exists, skipping: {asset.url}")
    asset.skip = True
    return asset


def merge_lists(source: List[Any], target: Optional[List[Any]]) -> List[Any]:
    """Source items first, then target items, dropping deep-equal duplicates."""
    merged: List[Any] = []
    for item in list(source or []) + list(target or []):
        if item not in merged:
            merged.append(item)
    return merged


def merge_existing_list(client: ClayClient, asset: Asset) -> Asset:
    """
    Merge a list asset with the list already on the target.

    A missing target list counts as empty.

    Raises:
        ClayApiError: For failures other than 404
    """
    if asset.skip:
        return asset

    try:
        existing = client.get(asset.url)
    except ClayNotFoundError:
        existing = []

    asset.data = merge_lists(asset.data, existing if isinstance(existing, list) else [])
    return asset


__all__ = [
    'OVERWRITE_TYPES',
    'assert_valid_overwrite',
    'chunk_to_asset',
    'replace_prefixes',
    'atomize_asset',
    'protect_layouts',
    'check_existing',
    'merge_lists',
    'merge_existing_list',
]
