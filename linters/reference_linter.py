"""
Reference linting for Clay sites and bootstrap documents.

Checks that every component a page or component references actually exists,
either on a live site or inside a bootstrap document.
"""

import logging
import threading
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from clay_client import ClayApiError, ClayClient
from config_loader import get_nested
from exporters.export_engine import page_children
from formatting.bootstrap import load_bootstrap_documents
from formatting.chunks import parse_object
from formatting.composer import lookup_component
from formatting.reference_walker import iter_references, list_component_references
from models import LintResult, ResultStatus
from prefixes import (
    REF_PROP,
    get_prefix_from_url,
    is_component,
    is_layout,
    is_page,
    strip_prefix,
    uri_to_url,
)
from worker_pool import CONCURRENCY_TIME, DEFAULT_CONCURRENCY, RateLimiter, WorkerPool

CheckOutcome = Tuple[LintResult, List[str]]


class Linter:
    """
    Verifies that references resolve.

    Live checks walk a component or page breadth first, one GET per unique
    url, paced like exports. Bootstrap checks resolve references against the
    document itself and, when a site prefix is given, fall back to the site.
    """

    def __init__(
        self,
        client: ClayClient,
        config: Optional[Dict[str, Any]] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.client = client
        self.config = config or {}
        self.logger = logger or logging.getLogger('claycli.linters.reference_linter')

        self.concurrency = get_nested(self.config, 'clay.concurrency', client.concurrency or DEFAULT_CONCURRENCY)
        self.pool = WorkerPool(
            self.concurrency,
            rate_limiter=RateLimiter(self.concurrency, CONCURRENCY_TIME),
            name='claycli-lint'
        )

        self.stats = {
            'checked': 0,
            'missing': 0,
        }
        self._stats_lock = threading.Lock()

    def _result(self, status: ResultStatus, url: Optional[str] = None, message: Optional[str] = None) -> LintResult:
        with self._stats_lock:
            self.stats['checked'] += 1
            if status == ResultStatus.ERROR:
                self.stats['missing'] += 1
        return LintResult(status=status, url=url, message=message)

    def _check_component(self, url: str, prefix: str) -> CheckOutcome:
        try:
            data = self.client.get(url)
        except ClayApiError as e:
            self.logger.debug(f"Missing component {url}: {e.message}")
            return self._result(ResultStatus.ERROR, url=url, message=e.message), []

        children = [uri_to_url(prefix, ref) for ref in list_component_references(data)]
        return self._result(ResultStatus.SUCCESS), children

    def _lint_components(self, urls: Iterable[str], prefix: str, visited: Set[str]) -> Iterator[LintResult]:
        frontier = list(urls)

        while frontier:
            batch = []
            for url in frontier:
                if url not in visited:
                    visited.add(url)
                    batch.append(url)

            frontier = []
            for outcome in self.pool.map(lambda url: self._check_component(url, prefix), batch):
                if not outcome.ok:
                    yield self._result(ResultStatus.ERROR, url=outcome.item, message=str(outcome.error))
                    continue
                result, children = outcome.value
                yield result
                frontier.extend(children)

    def _lint_page(self, url: str, prefix: str) -> Iterator[LintResult]:
        try:
            data = self.client.get(url)
        except ClayApiError as e:
            yield self._result(ResultStatus.ERROR, url=url, message=e.message)
            return

        yield self._result(ResultStatus.SUCCESS)

        refs = ([data['layout']] if data.get('layout') else []) + page_children(data)
        yield from self._lint_components((uri_to_url(prefix, ref) for ref in refs), prefix, {url})

    def _lint_public_url(self, url: str) -> Iterator[LintResult]:
        try:
            page_uri, prefix = self.client.find_uri(url)
        except ClayApiError as e:
            yield self._result(ResultStatus.ERROR, url=url, message=e.message)
            return

        yield from self._lint_page(uri_to_url(prefix, page_uri), prefix)

    def lint_url(self, url: str) -> Iterator[LintResult]:
        """
        Check that everything a component, page or public url references exists.

        Components are checked recursively through their component lists and
        properties. Pages check their layout and every component in their
        areas. Any other url is resolved to its page through the site's
        ``_uris`` index first.

        Args:
            url: Component, page or public url

        Yields:
            One success result per existing object and one error result
            (carrying the url) per missing one
        """
        self.logger.info(f"Linting {url}")

        if is_component(url) or is_layout(url):
            return self._lint_components([url], get_prefix_from_url(url), set())
        if is_page(url):
            return self._lint_page(url, get_prefix_from_url(url))
        return self._lint_public_url(url)

    def _exists_remotely(self, prefix: str, ref: str) -> bool:
        try:
            self.client.get(uri_to_url(prefix, ref))
        except ClayApiError as e:
            self.logger.debug(f"Reference {ref} not found on {prefix}: {e.message}")
            return False
        return True

    def lint_bootstrap(self, bootstrap: Dict[str, Any], prefix: Optional[str] = None) -> Iterator[LintResult]:
        """
        Check that every reference in a bootstrap resolves.

        A reference resolves if the bootstrap holds data for it (inline or
        as its own entry) or, when ``prefix`` is given, if the site at
        ``prefix`` has it.

        Args:
            bootstrap: Bootstrap document
            prefix: Site to check references the bootstrap does not contain

        Yields:
            One result per unique reference
        """
        known = {uri for chunk in parse_object(bootstrap) for uri in chunk}
        checked: Set[str] = set()

        def resolves(ref: str, inline: Optional[dict]) -> bool:
            if inline is not None and set(inline) - {REF_PROP}:
                return True
            if is_component(ref) or is_layout(ref):
                if lookup_component(ref, bootstrap) is not None:
                    return True
            elif ref in known:
                return True
            return bool(prefix) and self._exists_remotely(prefix, ref)

        for uri, refs in self._bootstrap_references(parse_object(bootstrap)):
            for ref, inline in refs:
                ref = strip_prefix(ref)
                if ref in checked:
                    continue
                checked.add(ref)

                if resolves(ref, inline):
                    yield self._result(ResultStatus.SUCCESS, url=ref)
                else:
                    self.logger.warning(f"Missing reference {ref} in {uri}")
                    yield self._result(ResultStatus.ERROR, url=ref, message=f"Missing reference in {uri}")

    @staticmethod
    def _bootstrap_references(chunks: List[Dict[str, Any]]) -> Iterator[Tuple[str, List[Tuple[str, Optional[dict]]]]]:
        for chunk in chunks:
            uri, data = next(iter(chunk.items()))
            if is_page(uri) and isinstance(data, dict):
                refs = ([data['layout']] if data.get('layout') else []) + page_children(data)
                yield uri, [(ref, None) for ref in refs]
            elif is_component(uri) or is_layout(uri):
                yield uri, [(ref, obj) for ref, obj in iter_references(data) if obj is not data]

    def lint_bootstrap_text(self, text: str, prefix: Optional[str] = None) -> Iterator[LintResult]:
        """
        Lint one or more YAML bootstrap documents.

        The text is parsed before anything is checked.

        Raises:
            InputParseError: If the text is not valid YAML
        """
        documents = load_bootstrap_documents(text)
        return (result for document in documents for result in self.lint_bootstrap(document, prefix=prefix))


__all__ = ['Linter']
