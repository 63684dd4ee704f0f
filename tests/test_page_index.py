"""Tests for the in-memory page index."""

import pytest

from webindexer.storage.page_index import DuplicatePageError, IndexedPage, PageIndex


@pytest.fixture
def index():
    index = PageIndex()
    index.add_page("https://a.example/", "<html><body>The cat and the dog</body></html>")
    index.add_page("https://b.example/", "<html><body>Just a CAT</body></html>")
    return index


def test_add_page_derives_terms_and_links():
    index = PageIndex()
    page = index.add_page(
        "https://a.example/",
        '<html><body>Hello World <a href="/next">Next</a></body></html>'
    )

    assert isinstance(page, IndexedPage)
    assert {"hello", "world", "next"} <= page.terms
    assert page.links == ("https://a.example/next",)
    assert len(index) == 1
    assert "https://a.example/" in index
    assert index.get("https://a.example/") is page


def test_contains_all_is_case_insensitive_exact_match(index):
    page = index.get("https://a.example/")

    assert index.contains_all(page, ["cat"])
    assert index.contains_all(page, ["CAT", "Dog"])
    assert not index.contains_all(page, ["ca"])
    assert not index.contains_all(page, ["cat", "fish"])


def test_contains_all_with_no_terms_is_true(index):
    page = index.get("https://b.example/")
    assert index.contains_all(page, [])


def test_iterate_is_ordered_and_restartable(index):
    first = [page.url for page in index.iterate()]
    second = [page.url for page in index.iterate()]

    assert first == ["https://a.example/", "https://b.example/"]
    assert second == first
    assert [page.url for page in index] == first


def test_iterate_is_lazy():
    index = PageIndex()
    pages = index.iterate()
    index.add_page("https://late.example/", "late page")

    assert [page.url for page in pages] == ["https://late.example/"]


def test_duplicate_url_rejected(index):
    with pytest.raises(DuplicatePageError):
        index.add_page("https://a.example/", "again")
    assert len(index) == 2


def test_pages_are_immutable(index):
    page = index.get("https://a.example/")
    with pytest.raises(AttributeError):
        page.url = "https://elsewhere.example/"


def test_get_stats(index):
    stats = index.get_stats()

    assert stats['total_pages'] == 2
    assert stats['distinct_terms'] == len({"the", "cat", "and", "dog", "just", "a"})
    assert stats['total_content_bytes'] > 0
