"""
Convert between dispatches and bootstraps.

A dispatch is a single ``{uri: data}`` pair with child components inlined::

    {"/_components/article/instances/foo": {"title": "My Article",
        "content": [{"_ref": "/_components/paragraph/instances/bar", "text": "lorem ipsum"}]}}

A bootstrap groups the same content by type, with children normalized::

    _components:
      article:
        instances:
          foo:
            title: My Article
            content:
              - _ref: /_components/paragraph/instances/bar
      paragraph:
        instances:
          bar:
            text: lorem ipsum
"""

import json
import logging
import re
from typing import Any, Dict, Iterable, Iterator, List, Tuple

import yaml

from formatting.chunks import Chunk, is_complete_user, page_data, parse_object, to_chunk, user_uri
from formatting.composer import CompositionTracker, denormalize, normalize
from formatting.reference_walker import iter_references, list_component_references
from models import AssetType
from prefixes import REF_PROP, get_component_instance, get_component_name, get_type

logger = logging.getLogger('claycli.formatting.bootstrap')

# `tail -n +1 *.yml` and `head` print these between concatenated files
FILE_SEPARATOR = re.compile(r'^==> .* <==\s*$', re.MULTILINE)

COMPONENT_TYPES = (AssetType.COMPONENTS, AssetType.LAYOUTS)


class InputParseError(ValueError):
    """Raised when import text is neither valid dispatch JSON nor bootstrap YAML."""


def _component_entries(bootstrap: Dict[str, Any]) -> Iterator[Tuple[str, Dict[str, Any]]]:
    """Yield (uri, normalized data) for every component default and instance."""
    for asset_type in COMPONENT_TYPES:
        for name, data in (bootstrap.get(asset_type.bootstrap_key) or {}).items():
            if not isinstance(data, dict):
                continue
            default_data = {key: value for key, value in data.items() if key != 'instances'}
            if default_data:
                yield f"{asset_type.segment}/{name}", default_data
            for instance, instance_data in (data.get('instances') or {}).items():
                yield f"{asset_type.segment}/{name}/instances/{instance}", instance_data or {}


def _component_dispatches(bootstrap: Dict[str, Any]) -> List[Dict[str, Any]]:
    entries = list(_component_entries(bootstrap))
    known = {uri for uri, _ in entries}

    # first pass: anything another component points to gets inlined there
    referenced = set()
    for uri, data in entries:
        referenced.update(ref for ref in list_component_references(data) if ref in known and ref != uri)

    tracker = CompositionTracker()
    dispatches = []
    for uri, data in entries:
        if uri not in referenced:
            dispatches.append({uri: denormalize(data, bootstrap, tracker, uri)})
            tracker.added.add(uri)

    # second pass: children that no root reached, e.g. members of a reference cycle
    for uri, data in entries:
        if uri not in tracker.added:
            logger.debug(f"Emitting {uri} on its own, no root component includes it")
            dispatches.append({uri: denormalize(data, bootstrap, tracker, uri)})
            tracker.added.add(uri)

    return dispatches


def _page_dispatches(pages: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [
        {f"/_pages/{key.lstrip('/')}": page_data(page)}
        for key, page in (pages or {}).items()
    ]


def _user_dispatches(users: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [{user_uri(user): user} for user in users or [] if is_complete_user(user)]


def _arbitrary_dispatches(items: Dict[str, Any], type_key: str) -> List[Dict[str, Any]]:
    return [
        {f"/{type_key}/{key[1:] if key.startswith('/') else key}": value}
        for key, value in (items or {}).items()
    ]


def bootstrap_to_dispatches(bootstrap: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Convert one bootstrap document into composed dispatches.

    Components and layouts are emitted once each: a component that another
    component in the same bootstrap references is only emitted inlined in
    its parent. Pages, users and everything else map one entry to one
    dispatch.
    """
    dispatches = []
    components_done = False

    for type_key, items in bootstrap.items():
        if type_key in (t.bootstrap_key for t in COMPONENT_TYPES):
            if not components_done:
                dispatches.extend(_component_dispatches(bootstrap))
                components_done = True
        elif type_key == AssetType.PAGES.bootstrap_key:
            dispatches.extend(_page_dispatches(items))
        elif type_key == AssetType.USERS.bootstrap_key:
            dispatches.extend(_user_dispatches(items))
        else:
            dispatches.extend(_arbitrary_dispatches(items, type_key))

    return dispatches


def to_dispatch(bootstraps: Iterable[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
    """Convert a stream of bootstrap documents into a stream of dispatches."""
    for bootstrap in bootstraps:
        yield from bootstrap_to_dispatches(bootstrap)


def _assign_component(bootstrap: Dict[str, Any], uri: str, data: Dict[str, Any]) -> None:
    section = AssetType.LAYOUTS if get_type(uri) == AssetType.LAYOUTS else AssetType.COMPONENTS
    name = get_component_name(uri)
    instance = get_component_instance(uri)
    entry = bootstrap.setdefault(section.bootstrap_key, {}).setdefault(name, {})

    if instance:
        entry.setdefault('instances', {})[instance] = normalize(data)
    else:
        entry.update(normalize(data))


def _assign_composed(bootstrap: Dict[str, Any], uri: str, data: Dict[str, Any]) -> None:
    _assign_component(bootstrap, uri, data)
    for ref, child in iter_references(data):
        # bare references carry no data of their own
        if any(key != REF_PROP for key in child):
            _assign_component(bootstrap, ref, child)


def _assign_page(bootstrap: Dict[str, Any], uri: str, data: Dict[str, Any]) -> None:
    page_id = uri.split('/_pages/', 1)[1]
    bootstrap.setdefault(AssetType.PAGES.bootstrap_key, {})[page_id] = page_data(data)


def _assign_arbitrary(bootstrap: Dict[str, Any], uri: str, data: Any, asset_type: AssetType) -> None:
    name = uri.split(asset_type.segment, 1)[1]
    if asset_type == AssetType.URIS:
        # uri keys keep their slash, '/_uris/' is the site root
        name = name or '/'
    else:
        name = name.lstrip('/')
    bootstrap.setdefault(asset_type.bootstrap_key, {})[name] = data


def to_bootstrap(dispatches: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Reduce a stream of dispatches into a single bootstrap document.

    Prefixes are removed on the way in, so dispatches from any site (or
    chunks) are accepted. Composed component data is split back into one
    normalized entry per component.

    Args:
        dispatches: Iterable of ``{uri: data}`` dictionaries

    Returns:
        Bootstrap document
    """
    bootstrap: Dict[str, Any] = {}

    for dispatch in dispatches:
        for raw_uri, raw_data in dispatch.items():
            chunk = to_chunk(raw_uri, raw_data)
            uri, data = next(iter(chunk.items()))
            asset_type = get_type(uri)

            if asset_type in COMPONENT_TYPES:
                _assign_composed(bootstrap, uri, data)
            elif asset_type == AssetType.PAGES:
                _assign_page(bootstrap, uri, data)
            elif asset_type == AssetType.USERS:
                bootstrap.setdefault(AssetType.USERS.bootstrap_key, []).append(data)
            elif asset_type is not None:
                _assign_arbitrary(bootstrap, uri, data, asset_type)
            else:
                logger.warning(f"Skipping dispatch with unknown uri type: {raw_uri}")

    return bootstrap


def split_files(text: str) -> List[str]:
    """Split concatenated file output on ``==> name <==`` separator lines."""
    return [part for part in FILE_SEPARATOR.split(text) if part.strip()]


def parse_dispatch_text(text: str) -> List[Chunk]:
    """
    Parse newline-delimited dispatches into chunks.

    Raises:
        InputParseError: On the first line that is not valid JSON
    """
    chunks = []
    for part in split_files(text):
        for line in part.splitlines():
            if not line.strip():
                continue
            try:
                dispatch = json.loads(line)
            except json.JSONDecodeError as e:
                raise InputParseError(f"JSON syntax error: {e.msg}: {line[:80]}") from e
            if not isinstance(dispatch, dict):
                raise InputParseError(f"JSON syntax error: expected an object: {line[:80]}")
            chunks.extend(to_chunk(uri, data) for uri, data in dispatch.items())
    return chunks


def load_bootstrap_documents(text: str) -> List[Dict[str, Any]]:
    """
    Load every YAML bootstrap document in some text.

    Raises:
        InputParseError: If any document is not valid YAML or not a mapping
    """
    documents = []
    for part in split_files(text):
        try:
            loaded = [doc for doc in yaml.safe_load_all(part) if doc]
        except yaml.YAMLError as e:
            raise InputParseError(f"YAML syntax error: {e}") from e

        for document in loaded:
            if not isinstance(document, dict):
                raise InputParseError(f"YAML syntax error: expected a mapping, not {type(document).__name__}")
            documents.append(document)
    return documents


def parse_bootstrap_text(text: str) -> List[Chunk]:
    """
    Parse one or more YAML bootstraps into composed chunks.

    Raises:
        InputParseError: If any document is not valid YAML
    """
    return [
        to_chunk(uri, data)
        for document in load_bootstrap_documents(text)
        for dispatch in bootstrap_to_dispatches(document)
        for uri, data in dispatch.items()
    ]


def parse_import_text(text: str, is_yaml: bool = False) -> List[Chunk]:
    """Parse import text as bootstrap YAML or dispatch JSON into chunks."""
    return parse_bootstrap_text(text) if is_yaml else parse_dispatch_text(text)


def load_bootstrap_file(path: str) -> List[Chunk]:
    """
    Read a YAML or JSON bootstrap file into normalized chunks.

    Schema files (``schema.yml``/``schema.yaml``) are not content and yield
    nothing.

    Raises:
        InputParseError: If the file cannot be parsed
    """
    lowered = path.lower()
    if lowered.endswith(('schema.yml', 'schema.yaml')):
        logger.debug(f"Skipping schema file: {path}")
        return []

    with open(path, 'r', encoding='utf-8') as f:
        text = f.read()

    if lowered.endswith('.json'):
        try:
            obj = json.loads(text)
        except json.JSONDecodeError as e:
            raise InputParseError(f"JSON syntax error in {path}: {e.msg}") from e
    else:
        try:
            obj = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise InputParseError(f"YAML syntax error in {path}: {e}") from e

    if not isinstance(obj, dict):
        raise InputParseError(f"Bootstrap in {path} must be a mapping, not {type(obj).__name__}")
    return parse_object(obj)


def dump_bootstrap(bootstrap: Dict[str, Any]) -> str:
    return yaml.safe_dump(bootstrap, default_flow_style=False, allow_unicode=True, sort_keys=False)


def dump_dispatch(dispatch: Dict[str, Any]) -> str:
    return json.dumps(dispatch, ensure_ascii=False)


__all__ = [
    'InputParseError',
    'FILE_SEPARATOR',
    'to_dispatch',
    'bootstrap_to_dispatches',
    'to_bootstrap',
    'split_files',
    'parse_dispatch_text',
    'parse_bootstrap_text',
    'load_bootstrap_documents',
    'parse_import_text',
    'load_bootstrap_file',
    'dump_bootstrap',
    'dump_dispatch',
]
