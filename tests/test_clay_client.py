"""Tests for the Clay REST client, with the HTTP session stubbed out."""

import base64
import json

import pytest
import requests

from clay_client import ClayApiError, ClayClient, ClayNotFoundError, MissingApiKeyError, UriResolutionError
from models import ResultStatus


def make_response(url, status=200, body=b'', content_type='application/json', reason='OK', history=None):
    response = requests.Response()
    response.status_code = status
    response.url = url
    response.reason = reason
    response._content = body if isinstance(body, bytes) else json.dumps(body).encode('utf-8')
    response.headers['Content-Type'] = content_type
    response.history = history or []
    return response


class StubSession:
    """Replaces ``requests.Session.request``, answering from a url table."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.requests = []

    def __call__(self, method, url, headers=None, data=None, verify=True, timeout=None):
        self.requests.append({'method': method, 'url': url, 'headers': headers or {}, 'data': data})
        route = self.routes.get((method, url))
        if route is None:
            route = self.routes.get(url)
        if route is None:
            return make_response(url, 404, b'Not Found', 'text/plain', 'Not Found')
        if isinstance(route, Exception):
            raise route
        return route


@pytest.fixture
def stub():
    return StubSession()


@pytest.fixture
def client(stub, monkeypatch):
    client = ClayClient(key='secret', headers={'X-Forwarded-Host': 'domain.com'}, concurrency=2)
    monkeypatch.setattr(client.session, 'request', stub)
    return client


class TestGet:
    """Test GET requests."""

    def test_json(self, client, stub):
        url = 'http://domain.com/_components/foo.json'
        stub.routes[url] = make_response(url, body={'a': 1})

        assert client.get(url) == {'a': 1}
        # Client headers go out with every request
        assert stub.requests[0]['headers']['X-Forwarded-Host'] == 'domain.com'

    def test_text(self, client, stub):
        url = 'http://domain.com/_uris/abc'
        stub.routes[url] = make_response(url, body=b'domain.com/_pages/foo', content_type='text/plain')

        assert client.get(url, type='text') == 'domain.com/_pages/foo'

    def test_not_found(self, client):
        with pytest.raises(ClayNotFoundError) as exc_info:
            client.get('http://domain.com/_components/missing.json')

        assert exc_info.value.status_code == 404

    def test_server_error(self, client, stub):
        url = 'http://domain.com/_components/foo.json'
        stub.routes[url] = make_response(url, 500, b'', reason='Internal Server Error')

        with pytest.raises(ClayApiError, match='Internal Server Error'):
            client.get(url)

    def test_invalid_json(self, client, stub):
        url = 'http://domain.com/_components/foo.json'
        stub.routes[url] = make_response(url, body=b'<html>')

        with pytest.raises(ClayApiError, match='Invalid JSON response'):
            client.get(url)

    def test_network_failure(self, client, stub):
        url = 'http://domain.com/_components/foo.json'
        stub.routes[url] = requests.ConnectionError('refused')

        with pytest.raises(ClayApiError, match='refused'):
            client.get(url)

    def test_redirect_to_login_is_unauthorized(self, client, stub):
        url = 'http://domain.com/_components/foo.json'
        redirect = make_response(url, 302, b'', reason='Found')
        stub.routes[url] = make_response(
            'http://domain.com/_auth/login', 401, b'<html>', 'text/html', 'Unauthorized', history=[redirect],
        )

        with pytest.raises(ClayApiError, match='Unauthorized'):
            client.get(url)

    def test_successful_redirect_is_followed(self, client, stub):
        """Test a 2xx reached through a redirect (e.g. http to https) is accepted."""
        url = 'http://domain.com/_components/foo.json'
        redirect = make_response(url, 301, b'', reason='Moved Permanently')
        stub.routes[url] = make_response(
            'https://domain.com/_components/foo.json', body={'a': 1}, history=[redirect],
        )

        assert client.get(url) == {'a': 1}


class TestPut:
    """Test PUT requests."""

    def test_json_put(self, client, stub):
        url = 'http://domain.com/_components/foo'
        stub.routes[('PUT', url)] = make_response(url, body={'a': 1})

        result = client.put(url, {'a': 1})

        assert result.status == ResultStatus.SUCCESS
        sent = stub.requests[0]
        assert sent['headers']['Authorization'] == 'Token secret'
        assert sent['headers']['Content-Type'].startswith('application/json')
        assert json.loads(sent['data'].decode('utf-8')) == {'a': 1}

    def test_uris_are_sent_as_text(self, client, stub):
        url = 'http://domain.com/_uris/abc'
        stub.routes[('PUT', url)] = make_response(url, body=b'ok', content_type='text/plain')

        client.put(url, 'domain.com/_pages/foo')

        sent = stub.requests[0]
        assert sent['headers']['Content-Type'].startswith('text/plain')
        assert sent['data'] == b'domain.com/_pages/foo'

    def test_failure_is_a_result(self, client, stub):
        """Test HTTP errors do not raise."""
        url = 'http://domain.com/_components/foo'
        stub.routes[('PUT', url)] = make_response(url, 500, b'', reason='Internal Server Error')

        result = client.put(url, {})

        assert result.status == ResultStatus.ERROR
        assert result.url == url
        assert result.message == 'Internal Server Error'

    def test_key_argument_overrides_client_key(self, client, stub):
        url = 'http://domain.com/_lists/tags'
        stub.routes[('PUT', url)] = make_response(url, body=[])

        client.put(url, [], key='other')

        assert stub.requests[0]['headers']['Authorization'] == 'Token other'

    def test_missing_key(self, stub, monkeypatch):
        client = ClayClient()
        monkeypatch.setattr(client.session, 'request', stub)

        with pytest.raises(MissingApiKeyError, match='Please specify API key to do PUT requests against Clay!'):
            client.put('http://domain.com/_components/foo', {})

        # Nothing was sent
        assert stub.requests == []


class TestQuery:
    """Test search queries."""

    URL = 'http://domain.com/_search'

    def test_hits(self, client, stub):
        body = {'hits': {'total': 2, 'hits': [
            {'_id': 'domain.com/_pages/a', '_source': {'title': 'A'}},
            {'_id': 'domain.com/_pages/b', '_source': {'title': 'B'}},
        ]}}
        stub.routes[('POST', self.URL)] = make_response(self.URL, body=body)

        result = client.query(self.URL, {'index': 'pages'})

        assert result.ok
        assert result.total == 2
        assert result.data == [
            {'title': 'A', '_id': 'domain.com/_pages/a'},
            {'title': 'B', '_id': 'domain.com/_pages/b'},
        ]

    def test_total_as_object(self, client, stub):
        body = {'hits': {'total': {'value': 1, 'relation': 'eq'}, 'hits': [{'_id': 'x', '_source': {}}]}}
        stub.routes[('POST', self.URL)] = make_response(self.URL, body=body)

        assert client.query(self.URL, {}).total == 1

    def test_no_results(self, client, stub):
        stub.routes[('POST', self.URL)] = make_response(self.URL, body={'hits': {'total': 0, 'hits': []}})

        result = client.query(self.URL, {})

        assert not result.ok
        assert result.message == 'No results'

    def test_html_error_page(self, client, stub):
        body = b'Error: index_not_found_exception &rarr; at stack'
        stub.routes[('POST', self.URL)] = make_response(self.URL, body=body, content_type='text/html')

        result = client.query(self.URL, {})

        assert result.type == 'error'
        assert result.message == 'Error: index_not_found_exception'

    def test_missing_key(self):
        with pytest.raises(MissingApiKeyError, match='POST'):
            ClayClient().query(self.URL, {})


class TestFindUri:
    """Test resolving public urls to pages."""

    def test_walks_up_the_path(self, client, stub):
        """Test candidates are tried from the longest prefix down."""
        encoded = base64.b64encode(b'domain.com/blog/some-slug').decode('ascii')
        lookup = f'http://domain.com/_uris/{encoded}'
        stub.routes[lookup] = make_response(lookup, body=b'domain.com/_pages/foo\n', content_type='text/plain')

        page_uri, prefix = client.find_uri('http://domain.com/blog/some-slug')

        assert page_uri == 'domain.com/_pages/foo'
        assert prefix == 'http://domain.com'
        assert [r['url'] for r in stub.requests] == [f'http://domain.com/blog/_uris/{encoded}', lookup]

    def test_unresolvable(self, client):
        with pytest.raises(UriResolutionError, match='Unable to find API'):
            client.find_uri('http://domain.com/nope')

    def test_bare_host(self, client, stub):
        with pytest.raises(UriResolutionError):
            client.find_uri('http://domain.com/')

        assert stub.requests == []


class TestFromConfig:
    """Test building a client from settings."""

    def test_settings_are_applied(self):
        config = {'clay': {'concurrency': 4, 'timeout': 5, 'verify_ssl': False, 'headers': {'X-Test': '1'}}}

        client = ClayClient.from_config(config, key='k')

        assert client.key == 'k'
        assert client.concurrency == 4
        assert client.timeout == 5
        assert client.verify_ssl is False
        assert client.headers == {'X-Test': '1'}
