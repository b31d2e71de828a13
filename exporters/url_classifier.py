"""Classify export urls by the shape of Clay resource they address."""

import logging
import re
from enum import Enum
from typing import Optional

from models import AssetType
from prefixes import get_type, strip_prefix

logger = logging.getLogger('claycli.exporters.url_classifier')


class UrlKind(Enum):
    """Every shape of url the export engine knows how to export."""
    COMPONENT_INSTANCE = "component_instance"
    COMPONENT_COLLECTION = "component_collection"
    ALL_COMPONENTS = "all_components"
    PAGE = "page"
    PAGE_COLLECTION = "page_collection"
    URI_ENTRY = "uri_entry"
    URI_COLLECTION = "uri_collection"
    LIST_OR_USER_ENTRY = "list_or_user_entry"
    LIST_OR_USER_COLLECTION = "list_or_user_collection"
    PUBLIC_URL = "public_url"


_INSTANCES_INDEX = re.compile(r'^/_(?:components|layouts)/[^/]+/instances/?$')


def _collection_path(relative: str, asset_type: AssetType) -> bool:
    return relative.rstrip('/') == asset_type.segment


def classify_url(url: str) -> UrlKind:
    """
    Work out what a url points at.

    Component and layout urls with an item (``/_components/foo`` or
    ``/_components/foo/instances/bar``) are single instances, while
    ``/_components/foo/instances`` lists every instance of ``foo``. A url
    with no recognized type segment is a public page url.

    Args:
        url: Full url, with or without protocol

    Returns:
        UrlKind
    """
    asset_type: Optional[AssetType] = get_type(url)
    if asset_type is None:
        return UrlKind.PUBLIC_URL

    relative = strip_prefix(url)

    if asset_type in (AssetType.COMPONENTS, AssetType.LAYOUTS):
        if _collection_path(relative, asset_type):
            return UrlKind.ALL_COMPONENTS
        if _INSTANCES_INDEX.match(relative):
            return UrlKind.COMPONENT_COLLECTION
        return UrlKind.COMPONENT_INSTANCE

    if asset_type == AssetType.PAGES:
        return UrlKind.PAGE_COLLECTION if _collection_path(relative, asset_type) else UrlKind.PAGE

    if asset_type == AssetType.URIS:
        # '/_uris/' with the trailing slash is the mapping for the site root
        return UrlKind.URI_COLLECTION if relative == asset_type.segment else UrlKind.URI_ENTRY

    if _collection_path(relative, asset_type):
        return UrlKind.LIST_OR_USER_COLLECTION
    return UrlKind.LIST_OR_USER_ENTRY


__all__ = ['UrlKind', 'classify_url']
