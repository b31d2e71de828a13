"""Tests for importing Clay content into a target site."""

import base64

import pytest
import yaml

from clay_client import MissingApiKeyError
from exporters.export_engine import ExportError
from formatting.chunks import ChunkValidationError
from importers.import_engine import Importer
from models import ResultStatus

from conftest import FakeClay

SOURCE = 'http://source.com'
TARGET = 'http://target.com'
ROOT_URI = base64.b64encode(b'source.com/').decode('ascii')

SOURCE_DATA = {
    f'{SOURCE}/_pages/index': {
        'main': ['source.com/_components/article/instances/foo'],
        'layout': 'source.com/_layouts/one-column/instances/x',
    },
    f'{SOURCE}/_pages/about': {
        'main': [],
        'layout': 'source.com/_layouts/one-column/instances/x',
    },
    f'{SOURCE}/_components/article/instances/foo': {'title': 'Foo'},
    f'{SOURCE}/_layouts/one-column/instances/x': {
        'top': [{'_ref': 'source.com/_components/nav/instances/n', 'links': []}],
    },
    f'{SOURCE}/_lists/tags': ['a', 'b', 'c'],
    f'{SOURCE}/_uris/{ROOT_URI}': 'source.com/_pages/index',
    f'{SOURCE}/_pages': [
        'source.com/_pages/index',
        'source.com/_pages/index@published',
        'source.com/_pages/about',
    ],
    f'{SOURCE}/_lists': ['source.com/_lists/tags'],
    f'{SOURCE}/_uris': [f'source.com/_uris/{ROOT_URI}'],
    f'{SOURCE}/_users': [],
}

PAGE = f'{TARGET}/_pages/index'
ARTICLE = f'{TARGET}/_components/article/instances/foo'
LAYOUT = f'{TARGET}/_layouts/one-column/instances/x'
NAV = f'{TARGET}/_components/nav/instances/n'
TAGS = f'{TARGET}/_lists/tags'


@pytest.fixture
def source():
    return FakeClay(SOURCE_DATA)


@pytest.fixture
def target():
    return FakeClay()


@pytest.fixture
def importer(source, target):
    return Importer(target, config={'clay': {'concurrency': 10}}, source_client=source)


def statuses(results):
    return {result.url: result.status for result in results}


class TestImportUrl:
    """Test importing from a source site."""

    def test_page_with_children_and_layout(self, importer, target):
        """Test the page is written after its children and layout."""
        results = list(importer.import_url(f'{SOURCE}/_pages/index', TARGET))

        assert statuses(results) == {
            ARTICLE: ResultStatus.SUCCESS,
            LAYOUT: ResultStatus.SUCCESS,
            NAV: ResultStatus.SUCCESS,
            PAGE: ResultStatus.SUCCESS,
        }
        puts = target.put_urls()
        assert puts[-1] == PAGE
        assert set(puts[:-1]) == {ARTICLE, LAYOUT, NAV}

    def test_published_page_after_children_and_layout(self, importer, source, target):
        """Test a published page is written after what it references."""
        source.data[f'{SOURCE}/_pages/index@published'] = {
            'main': ['source.com/_components/article/instances/foo@published'],
            'layout': 'source.com/_layouts/one-column/instances/x',
        }
        source.data[f'{SOURCE}/_components/article/instances/foo@published'] = {'title': 'Foo'}

        results = list(importer.import_url(f'{SOURCE}/_pages/index@published', TARGET))

        assert all(result.status == ResultStatus.SUCCESS for result in results)
        puts = target.put_urls()
        assert puts[-1] == f'{PAGE}@published'
        assert set(puts[:-1]) == {f'{ARTICLE}@published', LAYOUT, NAV}

    def test_references_point_at_target(self, importer, target):
        list(importer.import_url(f'{SOURCE}/_pages/index', TARGET))

        assert target.puts[PAGE] == {
            'main': ['target.com/_components/article/instances/foo'],
            'layout': 'target.com/_layouts/one-column/instances/x',
        }
        # Layouts are split into one write per component
        assert target.puts[LAYOUT] == {'top': [{'_ref': 'target.com/_components/nav/instances/n'}]}
        assert target.puts[NAV] == {'links': []}

    def test_existing_layout_is_skipped(self, importer, target):
        target.data[LAYOUT] = {'top': []}

        results = statuses(importer.import_url(f'{SOURCE}/_pages/index', TARGET))

        assert results[LAYOUT] == ResultStatus.SKIPPED
        assert results[NAV] == ResultStatus.SUCCESS
        assert LAYOUT not in target.puts
        assert importer.stats['skipped'] == 1

    def test_overwrite_layouts(self, importer, target):
        target.data[LAYOUT] = {'top': []}

        results = statuses(importer.import_url(f'{SOURCE}/_pages/index', TARGET, overwrite_layouts=True))

        assert results[LAYOUT] == ResultStatus.SUCCESS
        # The layout is written composed instead of being split
        assert NAV not in results

    def test_overwrite_classes_protect_the_rest(self, importer, target):
        """Test classes not named in overwrite are only written when missing."""
        target.data[PAGE] = {'main': []}
        target.data[ARTICLE] = {'title': 'Old'}

        results = statuses(importer.import_url(f'{SOURCE}/_pages/index', TARGET, overwrite=['components']))

        assert results[PAGE] == ResultStatus.SKIPPED
        assert results[ARTICLE] == ResultStatus.SUCCESS
        assert target.puts[ARTICLE] == {'title': 'Foo'}

    def test_invalid_overwrite(self, importer, source):
        with pytest.raises(ValueError, match='Under-specified'):
            importer.import_url(f'{SOURCE}/_pages/index', TARGET, overwrite=['layouts'])

        assert source.calls == []

    def test_lists_are_merged(self, importer, target):
        target.data[TAGS] = ['b', 'c', 'd']

        list(importer.import_url(f'{SOURCE}/_lists/tags', TARGET))

        assert target.puts[TAGS] == ['a', 'b', 'c', 'd']

    def test_overwrite_lists(self, importer, target):
        target.data[TAGS] = ['b', 'c', 'd']

        list(importer.import_url(f'{SOURCE}/_lists/tags', TARGET, overwrite=['lists']))

        assert target.puts[TAGS] == ['a', 'b', 'c']

    def test_put_errors_are_reported(self, importer, target):
        target.put_errors.add(ARTICLE)

        results = statuses(importer.import_url(f'{SOURCE}/_pages/index', TARGET))

        assert results[ARTICLE] == ResultStatus.ERROR
        assert results[PAGE] == ResultStatus.SUCCESS
        assert importer.stats['error'] == 1

    def test_missing_key_fails_before_any_request(self, source):
        importer = Importer(FakeClay(key=None), source_client=source)

        with pytest.raises(MissingApiKeyError, match='Please specify API key to do PUT requests against Clay!'):
            importer.import_url(f'{SOURCE}/_pages/index', TARGET)

        assert source.calls == []

    def test_source_failure(self, importer):
        with pytest.raises(ExportError):
            list(importer.import_url(f'{SOURCE}/_pages/missing', TARGET))


class TestImportCollections:
    """Test importing whole collections from a source site."""

    def test_pages_skip_published_versions(self, importer, source, target):
        list(importer.import_pages(SOURCE, TARGET))

        fetched = [url for method, url in source.calls if method == 'GET']
        assert f'{SOURCE}/_pages/index@published' not in fetched
        assert {url for url in target.put_urls() if '/_pages/' in url} == {PAGE, f'{TARGET}/_pages/about'}

    def test_pages_limit_and_offset(self, importer, target):
        list(importer.import_pages(SOURCE, TARGET, limit=1, offset=1))

        assert [url for url in target.put_urls() if '/_pages/' in url] == [f'{TARGET}/_pages/about']

    def test_unreadable_collection(self, importer, source):
        del source.data[f'{SOURCE}/_lists']

        with pytest.raises(ExportError):
            importer.import_lists(SOURCE, TARGET)

    def test_site(self, importer, target):
        """Test pages come first, then lists and uris."""
        results = list(importer.import_site(SOURCE, TARGET))

        puts = target.put_urls()
        root = base64.b64encode(b'target.com/').decode('ascii')
        assert puts.index(TAGS) > puts.index(PAGE)
        assert target.text_puts() == {f'{TARGET}/_uris/{root}': 'target.com/_pages/index'}
        assert all(result.ok for result in results)
        # The shared layout is only written once
        assert puts.count(LAYOUT) == 1


class TestImportText:
    """Test importing dispatches and bootstraps."""

    DISPATCHES = (
        '{"/_components/article/instances/foo": {"title": "x"}}\n'
        '{"/_pages/index": {"main": ["/_components/article/instances/foo"]}}\n'
    )

    def test_dispatches(self, target):
        importer = Importer(target)

        results = list(importer.import_text(self.DISPATCHES, TARGET))

        assert [r.status for r in results] == [ResultStatus.SUCCESS, ResultStatus.SUCCESS]
        assert target.put_urls() == [ARTICLE, PAGE]
        assert target.puts[PAGE] == {'main': ['target.com/_components/article/instances/foo']}

    def test_publish(self, target):
        """Test published versions follow the drafts they copy."""
        importer = Importer(target)

        list(importer.import_text(self.DISPATCHES, TARGET, publish=True))

        puts = target.put_urls()
        assert set(puts[:2]) == {ARTICLE, f'{ARTICLE}@published'}
        assert puts[2:] == [PAGE, f'{PAGE}@published']

    def test_yaml(self, target):
        text = yaml.safe_dump({'_lists': {'tags': ['a']}})

        list(Importer(target).import_text(text, TARGET, yaml=True))

        assert target.puts == {TAGS: ['a']}

    def test_invalid_chunk_fails_before_any_request(self, target):
        text = '{"/_lists/tags": ["a"]}\n{"/foo": {}}\n'

        with pytest.raises(ChunkValidationError, match='Unknown type of uri: /foo'):
            Importer(target).import_text(text, TARGET)

        assert target.calls == []

    def test_missing_key(self):
        with pytest.raises(MissingApiKeyError):
            Importer(FakeClay(key=None)).import_text(self.DISPATCHES, TARGET)

    def test_file(self, target, tmp_path):
        path = tmp_path / 'bootstrap.yml'
        path.write_text(yaml.safe_dump({'_components': {'article': {'instances': {'foo': {'title': 'x'}}}}}))

        results = list(Importer(target).import_file(str(path), TARGET))

        assert [r.url for r in results] == [ARTICLE]
        assert target.puts[ARTICLE] == {'title': 'x'}
