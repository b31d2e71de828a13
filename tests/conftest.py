"""Shared fixtures: an in-memory Clay site and temporary config files."""

import copy
import logging
import threading

import pytest

from clay_client import ClayNotFoundError, MissingApiKeyError, UriResolutionError
from models import PutResult, QueryResult, ResultStatus
from prefixes import is_uri


class FakeClay:
    """
    Stands in for ClayClient, serving data from a dictionary keyed by url.

    GET strips a trailing ``.json``, PUT stores what it receives, and every
    call is recorded in ``calls`` as ``(method, url)`` for ordering checks.
    """

    def __init__(self, data=None, key='test-key', concurrency=2):
        self.data = {url: copy.deepcopy(value) for url, value in (data or {}).items()}
        self.key = key
        self.concurrency = concurrency
        self.calls = []
        self.puts = {}
        self.put_errors = set()
        self.public_urls = {}
        self.search_results = None
        self.queries = []
        self._lock = threading.Lock()

    def _record(self, method, url):
        with self._lock:
            self.calls.append((method, url))

    def get(self, url, type='json', headers=None):
        self._record('GET', url)
        lookup = url[:-len('.json')] if url.endswith('.json') else url
        if lookup not in self.data:
            raise ClayNotFoundError(url, 'Not Found', 404)
        value = copy.deepcopy(self.data[lookup])
        return value if type == 'json' or isinstance(value, str) else str(value)

    def put(self, url, data, type=None, key=None, headers=None):
        key = key or self.key
        if not key:
            raise MissingApiKeyError('Please specify API key to do PUT requests against Clay!')

        self._record('PUT', url)
        if url in self.put_errors:
            return PutResult(url=url, status=ResultStatus.ERROR, message='Server Error')

        with self._lock:
            self.puts[url] = copy.deepcopy(data)
            self.data[url] = copy.deepcopy(data)
        return PutResult(url=url, status=ResultStatus.SUCCESS)

    def query(self, url, query, key=None, headers=None):
        key = key or self.key
        if not key:
            raise MissingApiKeyError('Please specify API key to do POST requests against Clay!')

        self._record('POST', url)
        self.queries.append(query)
        if not self.search_results:
            return QueryResult(type='error', details=url, message='No results')
        return QueryResult(type='success', details=url, data=self.search_results, total=len(self.search_results))

    def find_uri(self, url, headers=None):
        self._record('FIND', url)
        if url not in self.public_urls:
            raise UriResolutionError(url, f"Unable to find API for {url}")
        return self.public_urls[url]

    def close(self):
        pass

    def put_urls(self):
        return [url for method, url in self.calls if method == 'PUT']

    def text_puts(self):
        return {url: data for url, data in self.puts.items() if is_uri(url)}


@pytest.fixture
def fake_clay():
    """Empty fake site; tests fill ``data`` as needed."""
    return FakeClay()


@pytest.fixture
def alias_file(tmp_path, monkeypatch):
    """Point the alias store at a temporary file."""
    path = tmp_path / '.clayconfig'
    monkeypatch.setenv('CLAYCLI_CONFIG', str(path))
    monkeypatch.delenv('CLAYCLI_DEFAULT_KEY', raising=False)
    monkeypatch.delenv('CLAYCLI_DEFAULT_URL', raising=False)
    return path


@pytest.fixture
def settings_file(tmp_path):
    """Write a settings YAML file and return its path."""
    def write(text):
        path = tmp_path / 'settings.yaml'
        path.write_text(text, encoding='utf-8')
        return str(path)
    return write


@pytest.fixture(autouse=True)
def reset_claycli_logger():
    """Undo setup_logging so caplog sees every record."""
    yield
    logger = logging.getLogger('claycli')
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
