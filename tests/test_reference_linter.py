"""Tests for linting references on live sites and in bootstraps."""

import pytest

from formatting.bootstrap import InputParseError
from linters.reference_linter import Linter
from models import ResultStatus

from conftest import FakeClay

SITE = 'http://domain.com'
PAGE = f'{SITE}/_pages/index'
ARTICLE = f'{SITE}/_components/article/instances/foo'
PARA = f'{SITE}/_components/para/instances/a'
LAYOUT = f'{SITE}/_layouts/one-column/instances/x'

SITE_DATA = {
    PAGE: {
        'main': ['domain.com/_components/article/instances/foo'],
        'layout': 'domain.com/_layouts/one-column/instances/x',
    },
    ARTICLE: {'content': [{'_ref': 'domain.com/_components/para/instances/a'}]},
    PARA: {'text': 'hi'},
    LAYOUT: {'top': []},
}


@pytest.fixture
def clay():
    return FakeClay(SITE_DATA)


@pytest.fixture
def linter(clay):
    return Linter(clay, config={'clay': {'concurrency': 10}})


def errors(results):
    return [result for result in results if result.status == ResultStatus.ERROR]


class TestLintUrl:
    """Test linting live components and pages."""

    def test_page_with_everything_present(self, linter):
        results = list(linter.lint_url(PAGE))

        # Page, layout, article and its paragraph
        assert len(results) == 4
        assert errors(results) == []

    def test_missing_nested_component(self, linter, clay):
        """Test components are checked recursively."""
        del clay.data[PARA]

        results = list(linter.lint_url(PAGE))

        missing = errors(results)
        assert [(r.url, r.message) for r in missing] == [(PARA, 'Not Found')]
        assert linter.stats['missing'] == 1

    def test_component(self, linter):
        results = list(linter.lint_url(ARTICLE))

        assert [r.status for r in results] == [ResultStatus.SUCCESS, ResultStatus.SUCCESS]

    def test_reference_cycle(self, clay, linter):
        """Test components referencing each other are each checked once."""
        clay.data[PARA] = {'back': {'_ref': 'domain.com/_components/article/instances/foo'}}

        results = list(linter.lint_url(ARTICLE))

        assert len(results) == 2
        assert [url for method, url in clay.calls].count(ARTICLE) == 1

    def test_missing_page(self, linter):
        results = list(linter.lint_url(f'{SITE}/_pages/nope'))

        assert [(r.status, r.url) for r in results] == [(ResultStatus.ERROR, f'{SITE}/_pages/nope')]

    def test_public_url(self, linter, clay):
        clay.public_urls['http://domain.com/about-us'] = ('domain.com/_pages/index', SITE)

        results = list(linter.lint_url('http://domain.com/about-us'))

        assert len(results) == 4
        assert errors(results) == []

    def test_unresolvable_public_url(self, linter):
        results = list(linter.lint_url('http://domain.com/nope'))

        assert len(results) == 1
        assert results[0].url == 'http://domain.com/nope'
        assert 'Unable to find API' in results[0].message

    def test_results_serialize_like_the_cli_output(self, linter, clay):
        del clay.data[PARA]

        dicts = [r.to_dict() for r in linter.lint_url(ARTICLE)]

        assert dicts == [{'result': 'success'}, {'result': 'error', 'url': PARA, 'message': 'Not Found'}]


class TestLintBootstrap:
    """Test linting references inside bootstraps."""

    BOOTSTRAP = {
        '_components': {
            'article': {'instances': {'foo': {
                'content': [{'_ref': '/_components/para/instances/a'}],
                'lead': {'_ref': '/_components/image/instances/b', 'src': 's'},
            }}},
            'para': {'instances': {'a': {'text': 'hi'}}},
        },
        '_pages': {'index': {
            'main': ['/_components/article/instances/foo', '/_components/missing/instances/z'],
            'layout': '/_layouts/one-column/instances/x',
        }},
    }

    def test_missing_references(self, linter, clay, caplog):
        """Test inline and bootstrap-held references resolve, others do not."""
        results = list(linter.lint_bootstrap(self.BOOTSTRAP))

        by_url = {r.url: r.status for r in results}
        assert by_url == {
            '/_components/para/instances/a': ResultStatus.SUCCESS,
            '/_components/image/instances/b': ResultStatus.SUCCESS,
            '/_layouts/one-column/instances/x': ResultStatus.ERROR,
            '/_components/article/instances/foo': ResultStatus.SUCCESS,
            '/_components/missing/instances/z': ResultStatus.ERROR,
        }
        assert {r.message for r in errors(results)} == {'Missing reference in /_pages/index'}
        assert 'Missing reference /_components/missing/instances/z' in caplog.text
        # Nothing is fetched without a site
        assert clay.calls == []

    def test_site_fallback(self, linter):
        """Test references missing from the bootstrap are looked up on the site."""
        results = list(linter.lint_bootstrap(self.BOOTSTRAP, prefix=SITE))

        assert [r.url for r in errors(results)] == ['/_components/missing/instances/z']

    def test_text(self, linter):
        text = '_components:\n  a:\n    instances:\n      one:\n        child:\n          _ref: /_components/b/instances/two\n'

        results = list(linter.lint_bootstrap_text(text))

        assert [(r.status, r.url) for r in results] == [(ResultStatus.ERROR, '/_components/b/instances/two')]

    def test_invalid_text(self, linter):
        with pytest.raises(InputParseError):
            linter.lint_bootstrap_text('_components: [\n')

    def test_clean_bootstrap(self):
        linter = Linter(FakeClay())

        results = list(linter.lint_bootstrap({'_components': {'para': {'instances': {'a': {'text': 'hi'}}}}}))

        assert results == []
