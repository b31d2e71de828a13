"""
Clay REST API client.

This module wraps the handful of Clay endpoints the import/export pipeline
needs: GET of JSON or text, PUT of JSON or text, and POST queries against a
site's search endpoint. It handles authorization, retries, connection-level
concurrency limits and maps HTTP failures onto typed errors or structured
results.
"""

import base64
import json
import logging
import threading
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config_loader import get_nested
from models import PutResult, QueryResult, ResultStatus
from prefixes import is_bare_host, is_uri
from worker_pool import DEFAULT_CONCURRENCY

logger = logging.getLogger('claycli.clay_client')

CONTENT_TYPES = {
    'json': 'application/json; charset=UTF-8',
    'text': 'text/plain; charset=UTF-8',
}

# express error pages put the message before this marker
HTML_ERROR_DELIMITER = ' &rarr;'


class ClayApiError(Exception):
    """Raised when a request to a Clay API fails."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        self.url = url
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {'url': self.url, 'message': self.message}


class ClayNotFoundError(ClayApiError):
    """Raised when a Clay API responds with 404."""


class UriResolutionError(ClayApiError):
    """Raised when a public URL cannot be traced back to a Clay page."""


class MissingApiKeyError(ValueError):
    """Raised before any request when a write or query has no API key."""


def _raise_for_status(url: str, response: requests.Response) -> None:
    if 200 <= response.status_code < 400:
        return

    # a failed request that was redirected away from its api route was bounced to a login page
    if response.history and response.url.rstrip('/') != url.rstrip('/'):
        raise ClayApiError(url, 'Unauthorized', response.status_code)

    message = response.reason or f"HTTP {response.status_code}"
    if response.status_code == 404:
        raise ClayNotFoundError(url, message, 404)
    raise ClayApiError(url, message, response.status_code)


class ClayClient:
    """Clay REST API client with retry logic and bounded concurrency."""

    DEFAULT_TIMEOUT = 30
    DEFAULT_MAX_RETRIES = 3
    DEFAULT_RETRY_BACKOFF = 0.5

    def __init__(
        self,
        key: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        verify_ssl: bool = True,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_backoff_factor: float = DEFAULT_RETRY_BACKOFF
    ):
        """
        Initialize Clay client.

        Args:
            key: API key used for PUT and search requests
            headers: Extra headers sent with every request
            concurrency: Maximum number of simultaneous in-flight requests
            verify_ssl: Whether to verify SSL certificates
            timeout: Request timeout in seconds
            max_retries: Maximum number of retries for failed requests
            retry_backoff_factor: Backoff factor for retries
        """
        self.key = key
        self.headers = dict(headers or {})
        self.concurrency = concurrency
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self._slots = threading.BoundedSemaphore(concurrency)

        self.session = requests.Session()

        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=retry_backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=['GET', 'PUT', 'HEAD'],
            raise_on_status=False
        )

        # pool size matches concurrency so threads never wait on connections
        adapter = HTTPAdapter(
            max_retries=retry_strategy,
            pool_connections=concurrency,
            pool_maxsize=concurrency
        )
        self.session.mount('http://', adapter)
        self.session.mount('https://', adapter)

        logger.debug(f"Initialized Clay client (concurrency={concurrency})")

    @classmethod
    def from_config(cls, config: Dict[str, Any], key: Optional[str] = None) -> 'ClayClient':
        """
        Create a client from a settings dictionary.

        Args:
            config: Settings loaded by ConfigLoader
            key: API key, overrides nothing in config (keys live in the alias store)
        """
        return cls(
            key=key,
            headers=get_nested(config, 'clay.headers', {}) or {},
            concurrency=get_nested(config, 'clay.concurrency', DEFAULT_CONCURRENCY),
            verify_ssl=get_nested(config, 'clay.verify_ssl', True),
            timeout=get_nested(config, 'clay.timeout', cls.DEFAULT_TIMEOUT),
            max_retries=get_nested(config, 'clay.max_retries', cls.DEFAULT_MAX_RETRIES),
            retry_backoff_factor=get_nested(config, 'clay.retry_backoff_factor', cls.DEFAULT_RETRY_BACKOFF)
        )

    def _make_request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        data: Optional[str] = None
    ) -> requests.Response:
        """
        Make HTTP request, waiting for a free concurrency slot first.

        Raises:
            ClayApiError: For network failures and non 2xx/3xx statuses
        """
        request_headers = dict(self.headers)
        request_headers.update(headers or {})

        with self._slots:
            logger.debug(f"{method} {url}")
            try:
                response = self.session.request(
                    method=method,
                    url=url,
                    headers=request_headers or None,
                    data=data.encode('utf-8') if isinstance(data, str) else data,
                    verify=self.verify_ssl,
                    timeout=self.timeout
                )
            except requests.RequestException as e:
                logger.debug(f"Request failed: {method} {url} - {e}")
                raise ClayApiError(url, str(e)) from e

        logger.debug(f"Response status: {response.status_code} for {url}")
        _raise_for_status(url, response)
        return response

    def get(self, url: str, type: str = 'json', headers: Optional[Dict[str, str]] = None) -> Any:
        """
        GET a Clay resource.

        Args:
            url: Full URL
            type: 'json' to parse the body, 'text' to return it as a string
            headers: Extra headers for this request

        Returns:
            Parsed JSON or text body

        Raises:
            ClayNotFoundError: If the resource does not exist
            ClayApiError: For any other failure, including unparseable JSON
        """
        response = self._make_request('GET', url, headers=headers)
        if type == 'text':
            return response.text

        try:
            return response.json()
        except ValueError as e:
            raise ClayApiError(url, f"Invalid JSON response: {e}", response.status_code) from e

    def put(
        self,
        url: str,
        data: Any,
        type: Optional[str] = None,
        key: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> PutResult:
        """
        PUT data to a Clay resource.

        Failures are returned as error results rather than raised, so batch
        imports keep going past individual items.

        Args:
            url: Full URL
            data: JSON-compatible data, or a string sent as is
            type: 'json' or 'text'; defaults to text for uris, json otherwise
            key: API key, defaults to the client's key
            headers: Extra headers for this request

        Returns:
            PutResult with status success or error

        Raises:
            MissingApiKeyError: If no API key is available
        """
        key = key or self.key
        if not key:
            raise MissingApiKeyError('Please specify API key to do PUT requests against Clay!')

        if type is None:
            type = 'text' if is_uri(url) else 'json'

        body = data if isinstance(data, str) else json.dumps(data)
        request_headers = {
            'Content-Type': CONTENT_TYPES[type],
            'Authorization': f'Token {key}',
        }
        request_headers.update(headers or {})

        try:
            self._make_request('PUT', url, headers=request_headers, data=body)
        except ClayApiError as e:
            logger.error(f"PUT failed: {url} - {e.message}")
            return PutResult(url=url, status=ResultStatus.ERROR, message=e.message)

        return PutResult(url=url, status=ResultStatus.SUCCESS)

    def query(
        self,
        url: str,
        query: Dict[str, Any],
        key: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> QueryResult:
        """
        POST a search query.

        Args:
            url: Full URL of the search endpoint, e.g. ``http://domain.com/_search``
            query: Search body
            key: API key, defaults to the client's key
            headers: Extra headers for this request

        Returns:
            QueryResult; zero hits are reported as an error with message 'No results'

        Raises:
            MissingApiKeyError: If no API key is available
        """
        key = key or self.key
        if not key:
            raise MissingApiKeyError('Please specify API key to do POST requests against Clay!')

        request_headers = {
            'Content-Type': CONTENT_TYPES['json'],
            'Authorization': f'Token {key}',
        }
        request_headers.update(headers or {})

        try:
            response = self._make_request('POST', url, headers=request_headers, data=json.dumps(query or {}))
        except ClayApiError as e:
            return QueryResult(type='error', details=url, message=e.message)

        if 'text/html' in response.headers.get('Content-Type', ''):
            text = response.text
            if HTML_ERROR_DELIMITER in text:
                text = text[:text.index(HTML_ERROR_DELIMITER)]
            return QueryResult(type='error', details=url, message=text)

        try:
            body = response.json()
        except ValueError as e:
            return QueryResult(type='error', details=url, message=f"Invalid JSON response: {e}")

        hits = body.get('hits', {}) if isinstance(body, dict) else {}
        total = hits.get('total', 0)
        if isinstance(total, dict):
            # elasticsearch 7+ reports {value, relation}
            total = total.get('value', 0)

        if not total:
            return QueryResult(type='error', details=url, message='No results')

        data = [
            dict(hit.get('_source') or {}, _id=hit.get('_id'))
            for hit in hits.get('hits', [])
        ]
        return QueryResult(type='success', details=url, data=data, total=total)

    def find_uri(self, url: str, headers: Optional[Dict[str, str]] = None) -> Tuple[str, str]:
        """
        Resolve a public URL to the page it renders.

        Path segments are removed one at a time, trying
        ``<candidate prefix>/_uris/<b64(hostname + path)>`` on each, until a
        lookup succeeds or only the bare host is left.

        Args:
            url: Public URL, e.g. ``http://domain.com/blog/some-slug``

        Returns:
            Tuple of (page uri as returned by Clay, site prefix url)

        Raises:
            UriResolutionError: If no candidate prefix knows the URL
        """
        parts = urlparse(url)
        public_uri = f"{parts.hostname}{parts.path}"
        encoded = base64.b64encode(public_uri.encode('utf-8')).decode('ascii')
        current = url.rstrip('/')
        if is_bare_host(current):
            raise UriResolutionError(url, f"Unable to find API for {public_uri}")

        while True:
            candidate = current.rsplit('/', 1)[0]
            lookup = f"{candidate}/_uris/{encoded}"
            try:
                page_uri = self.get(lookup, type='text', headers=headers)
                logger.debug(f"Resolved {url} to {page_uri} via {candidate}")
                return page_uri.strip(), candidate
            except ClayApiError as e:
                if is_bare_host(candidate) or candidate == current:
                    raise UriResolutionError(url, f"Unable to find API for {public_uri}") from e
                current = candidate

    def close(self) -> None:
        self.session.close()


__all__ = [
    'ClayClient',
    'ClayApiError',
    'ClayNotFoundError',
    'UriResolutionError',
    'MissingApiKeyError',
    'CONTENT_TYPES',
]
