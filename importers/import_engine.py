"""
Clay Importer for moving content between Clay sites.

Main entry point for importing pages, components, lists, uris and users from
a source site, a bootstrap file, or dispatch/bootstrap text into a target
site.
"""

import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from clay_client import ClayApiError, ClayClient, MissingApiKeyError
from config_loader import get_nested
from exporters.export_engine import Exporter, ExportError
from formatting.bootstrap import load_bootstrap_file, parse_import_text
from formatting.chunks import validate
from models import Asset, ExportSession, PutResult, ResultStatus
from prefixes import get_component_instance, get_page_version, get_version, is_list, is_page, uri_to_url, with_version
from worker_pool import DEFAULT_CONCURRENCY, WorkerPool

from .asset_pipeline import (
    assert_valid_overwrite,
    check_existing,
    chunk_to_asset,
    merge_existing_list,
    protect_layouts,
    replace_prefixes,
)

# assets buffered before a flush when no page forces one
FLUSH_SIZE = 100

StreamItem = Union[Asset, PutResult]


class Importer:
    """
    Orchestrates imports into a Clay site.

    This importer:
    1. Streams assets from a source site (or parses chunks from files and text)
    2. Rewrites their urls and references for the target site
    3. Protects existing layouts and their children unless told to overwrite
    4. Merges lists with the target's existing lists
    5. PUTs everything, children before the pages that use them
    """

    def __init__(
        self,
        client: ClayClient,
        config: Optional[Dict[str, Any]] = None,
        logger: Optional[logging.Logger] = None,
        source_client: Optional[ClayClient] = None
    ):
        """
        Initialize the importer.

        Args:
            client: Client for the target site, carries the API key
            config: Settings dictionary
            logger: Logger instance
            source_client: Client for reading the source site, defaults to ``client``
        """
        self.client = client
        self.config = config or {}
        self.logger = logger or logging.getLogger('claycli.importers.import_engine')
        self.source_client = source_client or client

        self.concurrency = get_nested(self.config, 'clay.concurrency', client.concurrency or DEFAULT_CONCURRENCY)
        self.overwrite_layouts = get_nested(self.config, 'import.overwrite_layouts', False)
        self.publish = get_nested(self.config, 'import.publish', False)

        self.exporter = Exporter(self.source_client, self.config, self.logger)
        self.pool = WorkerPool(self.concurrency, name='claycli-import')

        self.stats = {
            'success': 0,
            'error': 0,
            'skipped': 0,
        }

    def _require_key(self, key: Optional[str]) -> str:
        key = key or self.client.key
        if not key:
            raise MissingApiKeyError('Please specify API key to do PUT requests against Clay!')
        return key

    def _record(self, result: PutResult) -> PutResult:
        self.stats[result.status.value] += 1
        return result

    def _prepare(self, asset: Asset, merge: bool) -> StreamItem:
        """Run the network-bound checks for one asset."""
        try:
            if asset.overwrite is False:
                return check_existing(self.client, asset)
            if merge and is_list(asset.url):
                return merge_existing_list(self.client, asset)
        except ClayApiError as e:
            self.logger.error(f"Could not check {asset.url} on target: {e.message}")
            return PutResult(url=asset.url, status=ResultStatus.ERROR, message=e.message)
        return asset

    def stream_assets_for_import(
        self,
        source_urls: Union[str, Iterable[str]],
        target_site: str,
        overwrite_layouts: Optional[bool] = None,
        overwrite: Optional[List[str]] = None,
        session: Optional[ExportSession] = None
    ) -> Iterator[StreamItem]:
        """
        Stream the assets needed to import some urls into a target site.

        Args:
            source_urls: One url or an iterable of urls on the source site
            target_site: Prefix of the target site
            overwrite_layouts: Replace layouts (and their children) that already exist
            overwrite: Asset classes to overwrite instead of protect or merge,
                from 'lists', 'components', 'pages', 'layouts', 'all'
            session: Layout dedupe state shared across one run

        Yields:
            Assets ready to PUT (``skip`` set where the target already has
            protected data), or error results for assets that could not be checked

        Raises:
            ExportError: If reading from the source site fails
        """
        if overwrite_layouts is None:
            overwrite_layouts = self.overwrite_layouts
        if overwrite is not None:
            overwrite = assert_valid_overwrite(overwrite)
            overwrite_layouts = overwrite_layouts or bool({'layouts', 'all'} & set(overwrite))
        merge_lists = overwrite is None or not ({'lists', 'all'} & set(overwrite))

        urls = [source_urls] if isinstance(source_urls, str) else source_urls
        session = session or ExportSession(self.logger)

        assets = (
            replace_prefixes(asset, target_site)
            for url in urls
            for asset in self.exporter.iter_assets(url, include_layout=True, session=session)
        )

        if not overwrite_layouts:
            assets = protect_layouts(assets)

        if overwrite is not None and 'all' not in overwrite:
            assets = self._protect_classes(assets, overwrite)

        for result in self.pool.map(lambda asset: self._prepare(asset, merge_lists), assets):
            yield result.value if result.ok else PutResult(
                url=result.item.url, status=ResultStatus.ERROR, message=str(result.error)
            )

    @staticmethod
    def _protect_classes(assets: Iterable[Asset], overwrite: List[str]) -> Iterator[Asset]:
        for asset in assets:
            if is_page(asset.url) and 'pages' not in overwrite:
                asset.overwrite = False
            elif get_component_instance(asset.url) and not asset.is_layout and 'components' not in overwrite:
                asset.overwrite = False
            yield asset

    def _put_asset(self, asset: Asset, key: str) -> PutResult:
        if asset.skip:
            return PutResult(url=asset.url, status=ResultStatus.SKIPPED)
        return self.client.put(asset.url, asset.data, key=key)

    def _put_batch(self, assets: List[Asset], key: str) -> Iterator[PutResult]:
        for result in self.pool.map(lambda asset: self._put_asset(asset, key), assets):
            if result.ok:
                yield self._record(result.value)
            else:
                self.logger.error(f"PUT failed: {result.item.url} - {result.error}")
                yield self._record(PutResult(url=result.item.url, status=ResultStatus.ERROR, message=str(result.error)))

    def put_assets(self, items: Iterable[StreamItem], key: Optional[str] = None) -> Iterator[PutResult]:
        """
        PUT assets, emitting one result per asset.

        Non-page assets are buffered and written concurrently; whenever a
        page arrives, everything buffered before it is written first, so
        children always reach the target before the pages referencing them.
        Skipped assets produce a ``skipped`` result without any request.

        Raises:
            MissingApiKeyError: If no API key is available
        """
        key = self._require_key(key)
        buffer: List[Asset] = []

        for item in items:
            if isinstance(item, PutResult):
                yield self._record(item)
            elif is_page(item.url):
                yield from self._put_batch(buffer, key)
                buffer = []
                yield from self._put_batch([item], key)
            else:
                buffer.append(item)
                if len(buffer) >= FLUSH_SIZE:
                    yield from self._put_batch(buffer, key)
                    buffer = []

        yield from self._put_batch(buffer, key)

    def import_assets(
        self,
        source_urls: Union[str, Iterable[str]],
        target_site: str,
        key: Optional[str] = None,
        overwrite_layouts: Optional[bool] = None,
        overwrite: Optional[List[str]] = None,
        session: Optional[ExportSession] = None
    ) -> Iterator[PutResult]:
        """
        Import everything behind some source urls into a target site.

        Returns:
            Iterator of PutResult, one per asset

        Raises:
            MissingApiKeyError: If no API key is available, before any request
        """
        key = self._require_key(key)
        if overwrite is not None:
            assert_valid_overwrite(overwrite)

        self.logger.info(f"Importing into {target_site}")
        items = self.stream_assets_for_import(
            source_urls, target_site, overwrite_layouts=overwrite_layouts, overwrite=overwrite, session=session
        )
        return self.put_assets(items, key=key)

    def import_url(self, url: str, target_site: str, **kwargs) -> Iterator[PutResult]:
        """Import a single component, page, list, uri or user url."""
        return self.import_assets(url, target_site, **kwargs)

    def _list_uris(self, source_site: str, segment: str) -> List[str]:
        url = f"{source_site.rstrip('/')}{segment}"
        try:
            uris = self.source_client.get(url)
        except ClayApiError as e:
            raise ExportError(url, e.message) from e
        return list(uris or [])

    def _import_collection(self, source_site: str, target_site: str, segment: str, **kwargs) -> Iterator[PutResult]:
        key = self._require_key(kwargs.pop('key', None))
        urls = [uri_to_url(source_site, uri) for uri in self._list_uris(source_site, segment)]
        self.logger.info(f"Importing {len(urls)} items from {source_site}{segment}")
        return self.import_assets(urls, target_site, key=key, **kwargs)

    def import_pages(
        self,
        source_site: str,
        target_site: str,
        limit: Optional[int] = None,
        offset: int = 0,
        published: bool = False,
        **kwargs
    ) -> Iterator[PutResult]:
        """
        Import all or a slice of a site's pages, with their components and layouts.

        Args:
            source_site: Prefix of the source site
            target_site: Prefix of the target site
            limit: Number of pages to import (None for all)
            offset: Number of pages to skip first
            published: Also import ``@published`` page versions
        """
        key = self._require_key(kwargs.pop('key', None))
        uris = [
            uri for uri in self._list_uris(source_site, '/_pages')
            if published or get_page_version(uri) != 'published'
        ]
        end = offset + limit if limit is not None else None
        uris = uris[offset:end]

        self.logger.info(f"Importing {len(uris)} pages from {source_site}")
        urls = [uri_to_url(source_site, uri) for uri in uris]
        return self.import_assets(urls, target_site, key=key, **kwargs)

    def import_lists(self, source_site: str, target_site: str, **kwargs) -> Iterator[PutResult]:
        """Import every list, merging with lists already on the target."""
        return self._import_collection(source_site, target_site, '/_lists', **kwargs)

    def import_uris(self, source_site: str, target_site: str, **kwargs) -> Iterator[PutResult]:
        return self._import_collection(source_site, target_site, '/_uris', **kwargs)

    def import_users(self, source_site: str, target_site: str, **kwargs) -> Iterator[PutResult]:
        return self._import_collection(source_site, target_site, '/_users', **kwargs)

    def import_site(
        self,
        source_site: str,
        target_site: str,
        limit: Optional[int] = None,
        offset: int = 0,
        published: bool = False,
        **kwargs
    ) -> Iterator[PutResult]:
        """Import pages, then lists, uris and users."""
        key = self._require_key(kwargs.pop('key', None))
        session = ExportSession(self.logger)

        def run():
            yield from self.import_pages(
                source_site, target_site, limit=limit, offset=offset, published=published,
                key=key, session=session, **kwargs
            )
            for operation in (self.import_lists, self.import_uris, self.import_users):
                yield from operation(source_site, target_site, key=key, session=session, **kwargs)

        return run()

    def _publish_assets(self, asset: Asset) -> List[Asset]:
        if get_component_instance(asset.url) or is_page(asset.url):
            if get_version(asset.url) is None:
                return [asset, Asset(url=with_version(asset.url, 'published'), data=asset.data)]
        return [asset]

    def import_chunks(
        self,
        chunks: Iterable[Dict[str, Any]],
        target_site: str,
        key: Optional[str] = None,
        publish: Optional[bool] = None
    ) -> Iterator[PutResult]:
        """
        Import site-agnostic chunks.

        Every chunk is validated before anything is written.

        Raises:
            MissingApiKeyError: If no API key is available
            ChunkValidationError: If any chunk is malformed
        """
        key = self._require_key(key)
        publish = self.publish if publish is None else publish

        assets = [chunk_to_asset(validate(chunk), target_site) for chunk in chunks]
        if publish:
            assets = [published for asset in assets for published in self._publish_assets(asset)]

        self.logger.info(f"Importing {len(assets)} assets into {target_site}")
        return self.put_assets(assets, key=key)

    def import_file(self, path: str, target_site: str, key: Optional[str] = None, **kwargs) -> Iterator[PutResult]:
        """Import a YAML or JSON bootstrap file."""
        key = self._require_key(key)
        return self.import_chunks(load_bootstrap_file(path), target_site, key=key, **kwargs)

    def import_text(
        self,
        text: str,
        target_site: str,
        key: Optional[str] = None,
        yaml: bool = False,
        publish: Optional[bool] = None
    ) -> Iterator[PutResult]:
        """
        Import newline-delimited dispatches, or YAML bootstraps.

        The whole text is parsed before any request is made.

        Args:
            text: Dispatches (one JSON object per line) or bootstrap YAML,
                optionally split by ``==> filename <==`` lines
            target_site: Prefix of the target site
            key: API key for the target site
            yaml: Parse as bootstrap YAML
            publish: Also PUT ``@published`` versions of components and pages

        Raises:
            MissingApiKeyError: If no API key is available
            InputParseError: If the text cannot be parsed
            ChunkValidationError: If any parsed item is malformed
        """
        key = self._require_key(key)
        chunks = parse_import_text(text, is_yaml=yaml)
        return self.import_chunks(chunks, target_site, key=key, publish=publish)


__all__ = ['Importer', 'FLUSH_SIZE']
