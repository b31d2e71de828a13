"""Clay URI parsing and site prefix handling.

A site prefix is the origin and optional base path of one Clay deployment,
e.g. ``http://domain.com`` or ``domain.com/blog``. Relative URIs such as
``/_components/foo/instances/bar`` are portable between sites, absolute URIs
carry a prefix in front of their type segment. Clay itself stores references
without a protocol (``domain.com/_components/foo``), so most helpers accept
either form.

Only whole URIs are rewritten: a string needs an underscored type segment
(``/_components``, ``/_pages`` ...) and no whitespace. Anything else, such
as paragraph text, HTML or external links, is left intact when prefixes are
toggled across a whole payload.
"""

import base64
import logging
import re
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlparse

from models import AssetType

logger = logging.getLogger('claycli.prefixes')

REF_PROP = '_ref'

_TYPE_NAMES = '|'.join(t.value for t in AssetType)
_PREFIXED_TYPE = re.compile(rf'/_({_TYPE_NAMES})(?=/|$)')
_WHITESPACE = re.compile(r'\s')
_COMPONENT_NAME = re.compile(r'/_(?:components|layouts)/([^/@.]+)')
_COMPONENT_INSTANCE = re.compile(r'/_(?:components|layouts)/[^/]+/instances/([^/.]+)')
_VERSION = re.compile(r'@([^/.@]+)$')
_BARE_HOST = re.compile(r'^https?://[^/]*$')

ToggleFn = Callable[..., Any]


class PrefixError(ValueError):
    """Raised when a URL has no recognizable site prefix."""


def _find_type(uri: str) -> Optional['re.Match']:
    """
    Locate the type segment of a whole URI.

    Only ``host[/path]/_<type>...`` strings count: text containing whitespace
    is prose or markup, even when a type segment appears inside it.
    """
    if _WHITESPACE.search(uri):
        return None
    return _PREFIXED_TYPE.search(uri)


def get_type(uri: str) -> Optional[AssetType]:
    """Return the content type addressed by a URI, or None for plain strings."""
    if not isinstance(uri, str):
        return None
    match = _find_type(uri)
    return AssetType(match.group(1)) if match else None


def _addresses_item(uri: str, asset_type: AssetType) -> bool:
    if not isinstance(uri, str):
        return False
    match = _find_type(uri)
    return bool(match) and match.group(1) == asset_type.value and len(uri) > match.end() + 1


def is_component(uri: str) -> bool:
    return _addresses_item(uri, AssetType.COMPONENTS)


def is_layout(uri: str) -> bool:
    return _addresses_item(uri, AssetType.LAYOUTS)


def is_page(uri: str) -> bool:
    return _addresses_item(uri, AssetType.PAGES)


def is_list(uri: str) -> bool:
    return _addresses_item(uri, AssetType.LISTS)


def is_user(uri: str) -> bool:
    return _addresses_item(uri, AssetType.USERS)


def is_uri(uri: str) -> bool:
    # '/_uris/' alone is the root page mapping, which is still an item
    if not isinstance(uri, str):
        return False
    match = _find_type(uri)
    return bool(match) and match.group(1) == AssetType.URIS.value and len(uri) > match.end()


def get_component_name(uri: str) -> Optional[str]:
    """Get the component (or layout) name from a URI."""
    match = _COMPONENT_NAME.search(uri)
    return match.group(1) if match else None


def get_component_instance(uri: str) -> Optional[str]:
    """Get the instance id (including any ``@version``) from a URI."""
    match = _COMPONENT_INSTANCE.search(uri)
    return match.group(1) if match else None


def get_version(uri: str) -> Optional[str]:
    """Get the version suffix of a URI, e.g. ``published`` for ``.../foo@published``."""
    match = _VERSION.search(uri)
    return match.group(1) if match else None


def get_page_version(uri: str) -> Optional[str]:
    return get_version(uri) if is_page(uri) else None


def with_version(uri: str, version: str) -> str:
    """Replace or add a version suffix."""
    base = _VERSION.sub('', uri)
    return f"{base}@{version}"


def url_to_uri(url: str) -> str:
    """
    Convert a URL to a Clay URI: hostname plus path, without protocol,
    port or extension.

    Args:
        url: Full URL, e.g. ``http://domain.com:3001/_pages/foo.html``

    Returns:
        URI, e.g. ``domain.com/_pages/foo``
    """
    parts = urlparse(url if '://' in url else f"http://{url}")
    path = parts.path
    if path == '/':
        path = ''
    elif '.' in path:
        path = path[:path.index('.')]
    return f"{parts.hostname or ''}{path}"


def get_extension(url: str) -> Optional[str]:
    """Return the extension of a URL's path (e.g. ``.json``), or None."""
    path = urlparse(url if '://' in url else f"http://{url}").path
    if '.' in path:
        return path[path.index('.'):]
    return None


def to_uri_prefix(prefix: str) -> str:
    """Normalize a site prefix to the protocol-less form Clay uses in references."""
    if '://' in prefix:
        return url_to_uri(prefix)
    return prefix.rstrip('/')


def is_bare_host(url: str) -> bool:
    return bool(_BARE_HOST.match(url))


def get_prefix_from_url(url: str) -> str:
    """
    Get the site prefix from an API url.

    Raises:
        PrefixError: If the url does not address a Clay API route
    """
    match = _find_type(url) if isinstance(url, str) else None
    if not match:
        raise PrefixError(f"Unable to find site prefix for {url}")
    return url[:match.start()]


def uri_to_url(prefix: str, uri: str) -> str:
    """
    Convert a URI (relative or carrying any prefix) to a URL on ``prefix``.

    Raises:
        PrefixError: If the uri does not address a Clay API route
    """
    match = _find_type(uri) if isinstance(uri, str) else None
    if not match:
        raise PrefixError(f"Unable to find site prefix for {uri}")
    return f"{prefix.rstrip('/')}{uri[match.start():]}"


def _encode(value: str) -> str:
    return base64.b64encode(value.encode('utf-8')).decode('ascii')


def _decode_uri_key(prefix: str, relative: str, segment: str) -> str:
    """Turn ``/_uris/<b64(host + path)>`` back into ``/_uris<path>``."""
    encoded = relative[len(segment) + 1:]
    try:
        decoded = base64.b64decode(encoded, validate=True).decode('utf-8')
    except ValueError:
        return relative

    host_prefix = to_uri_prefix(prefix)
    if not decoded.startswith(host_prefix):
        return relative
    return f"{segment}{decoded[len(host_prefix):]}"


def strip_prefix(uri: Any, key: Optional[str] = None) -> Any:
    """
    Remove the site prefix from a URI.

    The substring starting at the first recognized type segment is returned.
    ``_uris`` keys that carry their prefix are also decoded back into the
    path they map. Anything that is not a URI passes through unchanged.

    Args:
        uri: Value to strip
        key: Property name the value was found under (unused, accepted so the
            function can be passed to ``toggle_reference_prefixes``)

    Returns:
        Relative URI, or the input value
    """
    if not isinstance(uri, str):
        return uri

    match = _find_type(uri)
    if not match:
        return uri

    prefix = uri[:match.start()]
    relative = uri[match.start():]
    if prefix and match.group(1) == AssetType.URIS.value and len(relative) > len(match.group(0)) + 1:
        relative = _decode_uri_key(prefix, relative, match.group(0))
    return relative


def add_prefix(prefix: str, uri: Any, key: Optional[str] = None) -> Any:
    """
    Apply a site prefix to a URI.

    Any prefix the URI already carries is replaced. ``_uris`` paths are
    base64 encoded together with the prefix's hostname, the way Clay keys
    them. A relative ``customUrl`` value is simply prefixed.

    Args:
        prefix: Target site prefix
        uri: Value to prefix
        key: Property name the value was found under

    Returns:
        Absolute URI, or the input value when it is not a URI
    """
    if not isinstance(uri, str):
        return uri

    if key == 'customUrl':
        return f"{prefix}{uri}" if uri.startswith('/') else uri

    relative = strip_prefix(uri)
    match = _find_type(relative)
    if not match:
        return uri

    if match.group(1) == AssetType.URIS.value:
        path = relative[match.end():]
        return f"{prefix}{match.group(0)}/{_encode(to_uri_prefix(prefix) + path)}"
    return f"{prefix}{relative}"


def _toggle_list(items: list, fn: ToggleFn) -> list:
    if not items:
        return list(items)

    head = items[0]
    if isinstance(head, dict) and REF_PROP in head:
        return [toggle_reference_prefixes(item, fn) for item in items]
    if isinstance(head, str):
        # page areas are lists of plain uri strings
        return [fn(item) for item in items]
    return list(items)


def _toggle_value(value: Any, key: Any, fn: ToggleFn) -> Any:
    if isinstance(value, list):
        return _toggle_list(value, fn)
    if isinstance(value, dict):
        return toggle_reference_prefixes(value, fn) if REF_PROP in value else value
    if isinstance(value, str):
        return fn(value, key)
    return value


def toggle_reference_prefixes(data: Any, fn: ToggleFn) -> Any:
    """
    Apply a URI transform to every reference in a payload.

    ``fn(value, key=None)`` is applied to a bare string payload, to string
    properties (a page's ``layout``, ``customUrl``), to page area lists of
    strings and, recursively, to component lists and properties bearing
    ``_ref``. Nested objects without ``_ref`` are plain data and are copied
    unchanged.

    Args:
        data: Component, page, list or uri data
        fn: Transform such as ``strip_prefix`` or a bound ``add_prefix``

    Returns:
        New payload; the input is not modified
    """
    if isinstance(data, str):
        return fn(data)
    if isinstance(data, list):
        return [_toggle_value(value, index, fn) for index, value in enumerate(data)]
    if isinstance(data, dict):
        return {key: _toggle_value(value, key, fn) for key, value in data.items()}
    return data


def add_prefixes(dispatch: Dict[str, Any], prefix: str) -> Dict[str, Any]:
    """
    Apply a site prefix to a single-key dispatch and all references in it.

    References use the protocol-less form of the prefix, a relative
    ``customUrl`` gets the prefix as given.
    """
    uri_prefix = to_uri_prefix(prefix)

    def apply(value, key=None):
        if key == 'customUrl':
            return add_prefix(prefix, value, key)
        return add_prefix(uri_prefix, value, key)

    return {
        add_prefix(uri_prefix, uri): toggle_reference_prefixes(data, apply)
        for uri, data in dispatch.items()
    }


def remove_prefixes(dispatch: Dict[str, Any], prefix: str) -> Dict[str, Any]:
    """Remove a site prefix from a dispatch and all references in it."""
    prefixes = sorted({prefix.rstrip('/'), to_uri_prefix(prefix)}, key=len, reverse=True)

    def remove(value, key=None):
        if key == 'customUrl' and isinstance(value, str):
            for candidate in prefixes:
                if value.startswith(candidate):
                    return value[len(candidate):]
            return value
        return strip_prefix(value)

    return {
        strip_prefix(uri): toggle_reference_prefixes(data, remove)
        for uri, data in dispatch.items()
    }


__all__ = [
    'PrefixError',
    'REF_PROP',
    'get_type',
    'is_component',
    'is_layout',
    'is_page',
    'is_list',
    'is_user',
    'is_uri',
    'get_component_name',
    'get_component_instance',
    'get_version',
    'get_page_version',
    'with_version',
    'url_to_uri',
    'get_extension',
    'to_uri_prefix',
    'is_bare_host',
    'get_prefix_from_url',
    'uri_to_url',
    'strip_prefix',
    'add_prefix',
    'toggle_reference_prefixes',
    'add_prefixes',
    'remove_prefixes',
]
