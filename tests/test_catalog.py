from decimal import Decimal

import pytest

from comickdl.catalog import (
    CatalogError,
    ChapterDescriptor,
    is_listing_url,
    parse_chapter_page_url,
    read_chapter_page_info,
    read_collection_info,
    resolve_chapters,
    select_range,
)

LISTING_URL = "https://comick.io/comic/some-title"

LISTING_HTML = """
<html><body>
  <h1>  Some Title  </h1>
  <div class="episode-item">Chapter 10.5</div>
  <div class="episode-item">Chapter 3</div>
  <a href="/comic/some-title/aaa-chapter-3-en"><span>Chapter 3</span></a>
  <a href="/comic/some-title/bbb-chapter-3-en">Chapter 3</a>
  <a href="/comic/some-title/ccc-chapter-10.5-en">Chapter 10.5</a>
  <a href="/comic/some-title/ddd-chapter-1-en">Ch. 1</a>
  <a href="/comic/some-title/chapters">All chapters</a>
  <a href="/news/chapter-99">Chapter 99</a>
</body></html>
"""


def test_resolve_sorts_dedupes_and_absolutizes():
    chapters = resolve_chapters(LISTING_HTML, LISTING_URL)
    assert [c.number for c in chapters] == [Decimal("1"), Decimal("3"), Decimal("10.5")]
    assert chapters[0].url == "https://comick.io/comic/some-title/ddd-chapter-1-en"
    # first link seen for chapter 3 wins
    assert chapters[1].url == "https://comick.io/comic/some-title/aaa-chapter-3-en"


def test_resolve_empty_listing():
    assert resolve_chapters("<html></html>", LISTING_URL) == []


def _catalog(*numbers):
    return [ChapterDescriptor(number=Decimal(str(n)), url=f"https://comick.io/c/{n}") for n in numbers]


def test_select_range_keeps_bounds_inclusive():
    selected = select_range(_catalog(5, 1, 3, 2), 2, 5)
    assert [c.number for c in selected] == [Decimal(2), Decimal(3), Decimal(5)]


def test_select_range_accepts_fractional_text_bounds():
    selected = select_range(_catalog(1, 1.5, 2), "1.5", "1.5")
    assert [c.number for c in selected] == [Decimal("1.5")]


@pytest.mark.parametrize("lo, hi", [(5, 2), ("x", 3), (None, 3)])
def test_select_range_rejects_invalid_bounds(lo, hi):
    with pytest.raises(CatalogError, match="valid chapter numbers"):
        select_range(_catalog(1, 2, 3), lo, hi)


def test_select_range_nothing_selected():
    with pytest.raises(CatalogError, match="No chapters found in the selected range."):
        select_range(_catalog(1, 2, 3), 7, 9)


def test_collection_info_reads_title_and_latest_chapter():
    info = read_collection_info(LISTING_HTML)
    assert info.title == "Some Title"
    assert info.max_chapter == Decimal("10.5")


def test_collection_info_defaults():
    info = read_collection_info("<html><body></body></html>")
    assert info.title == "Unknown Manga"
    assert info.max_chapter == 0
    assert info.range_upper_bound == Decimal(1000)


def test_listing_url_detection():
    assert is_listing_url("https://comick.io/comic/some-title")
    assert not is_listing_url("https://comick.io/comic/some-title/TSXk8cIm-chapter-1-en")
    assert not is_listing_url("https://comick.io/comic/some-title/TSXk8cIm-chapter-1-en/")
    assert not is_listing_url("")


def test_listing_url_with_trailing_slash_or_query_is_still_a_listing():
    assert is_listing_url("https://comick.io/comic/some-title/")
    assert is_listing_url("https://comick.io/comic/some-title?lang=en")


def test_parse_chapter_page_url():
    url = "https://comick.io/comic/isekai-koushoku-musou-roku/TSXk8cIm-chapter-12.5-en"
    assert parse_chapter_page_url(url) == ("Isekai Koushoku Musou Roku", "12.5")


def test_parse_chapter_page_url_falls_back_to_any_number():
    assert parse_chapter_page_url("https://comick.io/comic/abc/xyz-42") == ("Abc", "42")
    assert parse_chapter_page_url("https://example.com/") == ("", "")


def test_chapter_page_info_from_html():
    html = '<h1>The Title</h1><div class="flex items-center justify-between"><h2>Chapter 8</h2></div>'
    assert read_chapter_page_info(html) == ("The Title", "8")
    assert read_chapter_page_info("<p></p>") == ("Manga", "0")
