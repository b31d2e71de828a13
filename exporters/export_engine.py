"""Export Clay content as dispatches or bootstraps."""

import logging
import threading
from typing import Any, Callable, Dict, Iterator, List, Optional

from clay_client import ClayApiError, ClayClient, MissingApiKeyError
from config_loader import get_nested
from formatting.bootstrap import to_bootstrap
from formatting.chunks import to_chunk
from models import Asset, AssetType, ExportSession
from prefixes import (
    get_prefix_from_url,
    get_type,
    is_layout,
    strip_prefix,
    uri_to_url,
)
from worker_pool import CONCURRENCY_TIME, DEFAULT_CONCURRENCY, RateLimiter, WorkerPool

from .url_classifier import UrlKind, classify_url

# page properties that hold lists of strings but not component uris
RESERVED_PAGE_KEYS = frozenset([
    'url', 'urlHistory', 'customUrl', 'lastModified', 'priority', 'changeFrequency'
])

DEFAULT_QUERY_SIZE = 100


class ExportError(Exception):
    """Raised when an export cannot be completed; carries the failing url."""

    def __init__(self, url: Optional[str], message: str):
        self.url = url
        self.message = message
        super().__init__(f"{message}: {url}" if url else message)

    def to_dict(self) -> Dict[str, Any]:
        return {'url': self.url, 'message': self.message}


def page_children(data: Dict[str, Any]) -> List[str]:
    """Collect the component uris in a page's areas, in area order."""
    children = []
    for key, value in data.items():
        if key in RESERVED_PAGE_KEYS or not isinstance(value, list):
            continue
        children.extend(item for item in value if isinstance(item, str))
    return children


class Exporter:
    """
    Walks Clay resources and streams them out.

    The same traversal backs plain exports (``from_url``, ``from_query``)
    and imports (``iter_assets``): a url is classified, then routed to the
    handler for its kind, which fetches it and recurses into whatever it
    references.
    """

    def __init__(
        self,
        client: ClayClient,
        config: Optional[Dict[str, Any]] = None,
        logger: Optional[logging.Logger] = None,
        session: Optional[ExportSession] = None
    ):
        """
        Initialize exporter.

        Args:
            client: Client used for every request
            config: Settings dictionary (``clay.concurrency``)
            logger: Logger instance
            session: Layout dedupe state; a new one is created per export if omitted
        """
        self.client = client
        self.config = config or {}
        self.logger = logger or logging.getLogger('claycli.exporters.export_engine')
        self.session = session

        self.concurrency = get_nested(self.config, 'clay.concurrency', client.concurrency or DEFAULT_CONCURRENCY)
        self.rate_limiter = RateLimiter(self.concurrency, CONCURRENCY_TIME)
        self.pool = WorkerPool(self.concurrency, name='claycli-export')

        self.handlers: Dict[UrlKind, Callable[..., Iterator[Asset]]] = {
            UrlKind.COMPONENT_INSTANCE: self._export_component,
            UrlKind.COMPONENT_COLLECTION: self._export_component_instances,
            UrlKind.ALL_COMPONENTS: self._export_all_components,
            UrlKind.PAGE: self._export_page,
            UrlKind.PAGE_COLLECTION: self._export_collection,
            UrlKind.URI_ENTRY: self._export_uri,
            UrlKind.URI_COLLECTION: self._export_collection,
            UrlKind.LIST_OR_USER_ENTRY: self._export_entry,
            UrlKind.LIST_OR_USER_COLLECTION: self._export_collection,
            UrlKind.PUBLIC_URL: self._export_public_url,
        }

        self.stats = {
            'requests': 0,
            'assets': 0,
            'layouts_skipped': 0,
        }
        self._stats_lock = threading.Lock()

    def _count(self, name: str) -> None:
        # handlers run on pool threads
        with self._stats_lock:
            self.stats[name] += 1

    def _get(self, url: str, type: str = 'json') -> Any:
        self.rate_limiter.acquire()
        self._count('requests')
        try:
            return self.client.get(url, type=type)
        except ClayApiError as e:
            raise ExportError(e.url, e.message) from e

    def _fan_out(self, urls: List[str], include_layout: bool, session: ExportSession) -> Iterator[Asset]:
        """Walk several urls concurrently, yielding their assets in url order."""
        def walk(url):
            return list(self._walk(url, include_layout, session))

        for result in self.pool.map(walk, urls):
            if not result.ok:
                if isinstance(result.error, ExportError):
                    raise result.error
                raise ExportError(result.item, str(result.error)) from result.error
            yield from result.value

    def _export_component(self, url: str, prefix: str, include_layout: bool, session: ExportSession) -> Iterator[Asset]:
        data = self._get(f"{url}.json")
        yield Asset(url=url, data=data, is_layout=is_layout(url))

    def _export_component_instances(self, url: str, prefix: str, include_layout: bool, session: ExportSession) -> Iterator[Asset]:
        instances = self._get(url.rstrip('/'))
        urls = [uri_to_url(prefix, uri) for uri in instances or []]
        self.logger.debug(f"Found {len(urls)} instances at {url}")
        yield from self._fan_out(urls, include_layout, session)

    def _export_all_components(self, url: str, prefix: str, include_layout: bool, session: ExportSession) -> Iterator[Asset]:
        segment = AssetType.LAYOUTS.segment if get_type(url) == AssetType.LAYOUTS else AssetType.COMPONENTS.segment
        names = self._get(url.rstrip('/'))
        self.logger.debug(f"Found {len(names or [])} component types at {url}")
        for name in names or []:
            yield from self._export_component_instances(
                f"{prefix}{segment}/{name}/instances", prefix, include_layout, session
            )

    def _export_page(self, url: str, prefix: str, include_layout: bool, session: ExportSession) -> Iterator[Asset]:
        data = self._get(url)
        child_urls = [uri_to_url(prefix, uri) for uri in page_children(data)]
        yield from self._fan_out(child_urls, include_layout, session)

        layout = data.get('layout')
        if include_layout and layout:
            if session.claim_layout(strip_prefix(layout)):
                for asset in self._export_component(uri_to_url(prefix, layout), prefix, include_layout, session):
                    asset.is_layout = True
                    yield asset
            else:
                self._count('layouts_skipped')

        yield Asset(url=url, data=data)

    def _export_collection(self, url: str, prefix: str, include_layout: bool, session: ExportSession) -> Iterator[Asset]:
        uris = self._get(url.rstrip('/'))
        urls = [uri_to_url(prefix, uri) for uri in uris or []]
        self.logger.debug(f"Found {len(urls)} items at {url}")
        yield from self._fan_out(urls, include_layout, session)

    def _export_uri(self, url: str, prefix: str, include_layout: bool, session: ExportSession) -> Iterator[Asset]:
        yield Asset(url=url, data=self._get(url, type='text'))

    def _export_entry(self, url: str, prefix: str, include_layout: bool, session: ExportSession) -> Iterator[Asset]:
        yield Asset(url=url, data=self._get(url))

    def _export_public_url(self, url: str, prefix: str, include_layout: bool, session: ExportSession) -> Iterator[Asset]:
        try:
            page_uri, site_prefix = self.client.find_uri(url)
        except ClayApiError as e:
            raise ExportError(url, e.message) from e

        self.logger.info(f"Found page {page_uri} for {url}")
        yield from self._export_page(uri_to_url(site_prefix, page_uri), site_prefix, include_layout, session)

    def iter_assets(
        self,
        url: str,
        include_layout: bool = False,
        session: Optional[ExportSession] = None
    ) -> Iterator[Asset]:
        """
        Stream the raw assets behind a url.

        Children come before the page that references them, and a page's
        layout (when included) comes after its areas. Layouts already emitted
        in this session are not emitted again.

        Args:
            url: Any exportable url
            include_layout: Also emit each page's layout, flagged ``is_layout``
            session: Dedupe state shared across one run

        Yields:
            Asset objects with full source urls

        Raises:
            ExportError: On the first failed request
        """
        session = session or self.session or ExportSession(self.logger)
        for asset in self._walk(url, include_layout, session):
            self._count('assets')
            yield asset

    def _walk(self, url: str, include_layout: bool, session: ExportSession) -> Iterator[Asset]:
        kind = classify_url(url)
        prefix = '' if kind == UrlKind.PUBLIC_URL else get_prefix_from_url(url)
        self.logger.debug(f"Exporting {url} as {kind.value}")
        yield from self.handlers[kind](url, prefix, include_layout, session)

    def from_url(
        self,
        url: Optional[str],
        layout: bool = False,
        yaml: bool = False,
        session: Optional[ExportSession] = None
    ) -> Iterator[Dict[str, Any]]:
        """
        Export a url as chunks, or as a single bootstrap.

        Args:
            url: Any exportable url
            layout: Include page layouts
            yaml: Reduce the stream to one bootstrap document

        Returns:
            Iterator of chunks, or of one bootstrap when ``yaml`` is set

        Raises:
            ExportError: If ``url`` is empty or a request fails
        """
        if not url:
            raise ExportError(None, 'URL is not defined! Please specify a url to export from')

        session = session or ExportSession(self.logger)
        return self._format(self.iter_assets(url, include_layout=layout, session=session), yaml)

    @staticmethod
    def _format(assets: Iterator[Asset], yaml: bool) -> Iterator[Dict[str, Any]]:
        chunks = (to_chunk(asset.url, asset.data) for asset in assets)
        if yaml:
            yield to_bootstrap(chunks)
        else:
            yield from chunks

    def query_urls(
        self,
        prefix: Optional[str],
        query: Optional[Dict[str, Any]] = None,
        size: Optional[int] = None,
        key: Optional[str] = None
    ) -> List[str]:
        """
        Find page urls through a site's search endpoint.

        Raises:
            MissingApiKeyError: If no API key is available
            ExportError: If ``prefix`` is empty or the query fails
        """
        key = key or self.client.key
        if not key:
            raise MissingApiKeyError('Please specify API key to do POST requests against Clay!')
        if not prefix:
            raise ExportError(None, 'URL is not defined! Please specify a site prefix to export from')

        body: Dict[str, Any] = {'index': 'pages', 'size': DEFAULT_QUERY_SIZE}
        body.update(query or {})
        if size:
            body['size'] = size

        result = self.client.query(f"{prefix.rstrip('/')}/_search", body, key=key)
        if not result.ok:
            raise ExportError(result.details, result.message)

        self.logger.info(f"Query matched {result.total} items, exporting {len(result.data)}")
        return [uri_to_url(prefix, hit['_id']) for hit in result.data if hit.get('_id')]

    def from_query(
        self,
        prefix: Optional[str],
        query: Optional[Dict[str, Any]] = None,
        size: Optional[int] = None,
        layout: bool = False,
        yaml: bool = False,
        key: Optional[str] = None
    ) -> Iterator[Dict[str, Any]]:
        """
        Export every page a search query matches.

        Args:
            prefix: Site prefix whose ``/_search`` endpoint is queried
            query: Search body merged over ``{index: pages, size: 100}``
            size: Overrides the query size
            layout: Include page layouts
            yaml: Reduce the stream to one bootstrap document
            key: API key for the search endpoint

        Returns:
            Iterator of chunks, or of one bootstrap when ``yaml`` is set
        """
        urls = self.query_urls(prefix, query, size=size, key=key)
        session = ExportSession(self.logger)
        assets = (
            asset
            for result_url in urls
            for asset in self.iter_assets(result_url, include_layout=layout, session=session)
        )
        return self._format(assets, yaml)


__all__ = ['Exporter', 'ExportError', 'page_children', 'RESERVED_PAGE_KEYS']
