"""Tests for classifying export urls."""

import pytest

from exporters.url_classifier import UrlKind, classify_url


class TestClassifyUrl:
    """Test every kind of exportable url."""

    @pytest.mark.parametrize('url,kind', [
        ('http://domain.com/_components/foo', UrlKind.COMPONENT_INSTANCE),
        ('http://domain.com/_components/foo/instances/bar', UrlKind.COMPONENT_INSTANCE),
        ('http://domain.com/_components/foo/instances/bar@published', UrlKind.COMPONENT_INSTANCE),
        ('http://domain.com/_layouts/one-column/instances/x', UrlKind.COMPONENT_INSTANCE),
        ('http://domain.com/_components/foo/instances', UrlKind.COMPONENT_COLLECTION),
        ('http://domain.com/_components/foo/instances/', UrlKind.COMPONENT_COLLECTION),
        ('http://domain.com/_components', UrlKind.ALL_COMPONENTS),
        ('http://domain.com/_layouts/', UrlKind.ALL_COMPONENTS),
        ('http://domain.com/_pages/index', UrlKind.PAGE),
        ('http://domain.com/_pages', UrlKind.PAGE_COLLECTION),
        ('http://domain.com/_uris/ZG9tYWluLmNvbS8=', UrlKind.URI_ENTRY),
        ('http://domain.com/_uris/', UrlKind.URI_ENTRY),
        ('http://domain.com/_uris', UrlKind.URI_COLLECTION),
        ('http://domain.com/_lists/tags', UrlKind.LIST_OR_USER_ENTRY),
        ('http://domain.com/_users/abc', UrlKind.LIST_OR_USER_ENTRY),
        ('http://domain.com/_lists', UrlKind.LIST_OR_USER_COLLECTION),
        ('http://domain.com/_users/', UrlKind.LIST_OR_USER_COLLECTION),
        ('http://domain.com/blog/some-slug', UrlKind.PUBLIC_URL),
        ('http://domain.com/', UrlKind.PUBLIC_URL),
    ])
    def test_kinds(self, url, kind):
        assert classify_url(url) == kind

    def test_site_prefix_with_path(self):
        """Test a prefix with its own path is not mistaken for a type."""
        assert classify_url('http://domain.com/blog/_pages/index') == UrlKind.PAGE
