#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Chapter catalog for comick series pages.

Works on the HTML of an already loaded page, so nothing here touches the
network. Series page: ``https://comick.io/comic/<slug>``; chapter page:
``https://comick.io/comic/<slug>/<hid>-chapter-<n>-<lang>``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Tuple, Union
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

LOG = logging.getLogger("comickdl.catalog")

CHAPTER_LINK_SELECTOR = 'a[href*="/comic/"][href*="chapter"]'
EPISODE_SELECTOR = ".episode-item"
CHAPTER_HEADING_SELECTOR = ".flex.items-center.justify-between h2"

CHAPTER_TEXT_RE = re.compile(r"Chapter (\d+(?:\.\d+)?)", re.I)
CHAPTER_HREF_RE = re.compile(r"chapter[^\d]*(\d+(?:\.\d+)?)", re.I)
CHAPTER_TOKEN_RE = re.compile(r"(?:chapter|ch)[^\d]*(\d+(?:\.\d+)?)", re.I)
ANY_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")
HEADING_CHAPTER_RE = re.compile(r"Chapter (\d+)", re.I)
LISTING_URL_RE = re.compile(r"/comic/[^/]+$")

DEFAULT_COLLECTION_TITLE = "Unknown Manga"
DEFAULT_MAX_CHAPTER = 1000

Number = Union[Decimal, int, float, str]


class CatalogError(Exception):
    """User-facing catalog problem; the message is shown as-is."""


@dataclass(frozen=True)
class ChapterDescriptor:
    number: Decimal
    url: str


@dataclass(frozen=True)
class CollectionInfo:
    title: str
    max_chapter: Decimal

    @property
    def range_upper_bound(self) -> Decimal:
        return self.max_chapter if self.max_chapter > 0 else Decimal(DEFAULT_MAX_CHAPTER)


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def _to_decimal(value: Optional[Number]) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        dec = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return dec if dec.is_finite() else None


def _origin(url: str) -> str:
    p = urlparse(url or "")
    if not (p.scheme and p.netloc):
        return url or ""
    return f"{p.scheme}://{p.netloc}"


def chapter_number_from_link(text: str, href: str) -> Optional[Decimal]:
    m = CHAPTER_TEXT_RE.search(text or "")
    if not m:
        m = CHAPTER_HREF_RE.search(href or "")
    return Decimal(m.group(1)) if m else None


def resolve_chapters(html: str, page_url: str) -> List[ChapterDescriptor]:
    """Collect chapter links from a series page, one per number, ascending."""
    origin = _origin(page_url)
    chapters: Dict[Decimal, ChapterDescriptor] = {}
    skipped = 0
    for link in _soup(html).select(CHAPTER_LINK_SELECTOR):
        href = link.get("href") or ""
        number = chapter_number_from_link(link.get_text(), href)
        if number is None:
            skipped += 1
            continue
        # First link seen for a number wins.
        chapters.setdefault(number, ChapterDescriptor(number=number, url=urljoin(origin, href)))
    if skipped:
        LOG.debug("Ignored %d chapter links without a number.", skipped)
    ordered = sorted(chapters.values(), key=lambda c: c.number)
    LOG.info("Resolved %d chapters from %s", len(ordered), page_url)
    return ordered


def select_range(
    chapters: Iterable[ChapterDescriptor],
    lo: Optional[Number],
    hi: Optional[Number],
) -> List[ChapterDescriptor]:
    from_num = _to_decimal(lo)
    to_num = _to_decimal(hi)
    if from_num is None or to_num is None or from_num > to_num:
        raise CatalogError("Please enter valid chapter numbers.")
    selected = sorted(
        (c for c in chapters if from_num <= c.number <= to_num),
        key=lambda c: c.number,
    )
    if not selected:
        raise CatalogError("No chapters found in the selected range.")
    return selected


def read_collection_info(html: str) -> CollectionInfo:
    soup = _soup(html)
    heading = soup.select_one("h1")
    title = heading.get_text().strip() if heading else ""
    max_chapter = Decimal(0)
    for element in soup.select(EPISODE_SELECTOR):
        m = CHAPTER_TEXT_RE.search(element.get_text())
        if m:
            max_chapter = max(max_chapter, Decimal(m.group(1)))
    return CollectionInfo(title=title or DEFAULT_COLLECTION_TITLE, max_chapter=max_chapter)


def is_listing_url(url: str) -> bool:
    if not url:
        return False
    try:
        path = urlparse(url).path
    except ValueError:
        return False
    return bool(LISTING_URL_RE.search(path.rstrip("/")))


def _title_from_slug(slug: str) -> str:
    words = slug.replace("-", " ")
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), words, flags=re.ASCII)


def parse_chapter_page_url(url: str) -> Tuple[str, str]:
    """Return (collection title, chapter label) from a chapter page address.

    Either part is "" when the address does not carry it.
    """
    title, chapter = "", ""
    try:
        parts = [seg for seg in urlparse(url).path.split("/") if seg]
    except ValueError as exc:
        LOG.warning("Could not parse chapter URL %r: %s", url, exc)
        return title, chapter
    if len(parts) >= 2 and parts[0] == "comic":
        title = _title_from_slug(parts[1])
    if len(parts) >= 3:
        m = CHAPTER_TOKEN_RE.search(parts[2]) or ANY_NUMBER_RE.search(parts[2])
        if m:
            chapter = m.group(1)
    LOG.debug("Chapter URL %s -> title=%r chapter=%r", url, title, chapter)
    return title, chapter


def read_chapter_page_info(html: str) -> Tuple[str, str]:
    soup = _soup(html)
    title = "Manga"
    chapter = "0"
    heading = soup.select_one("h1")
    if heading:
        title = heading.get_text().strip()
    chapter_heading = soup.select_one(CHAPTER_HEADING_SELECTOR)
    if chapter_heading:
        m = HEADING_CHAPTER_RE.search(chapter_heading.get_text())
        if m:
            chapter = m.group(1)
    return title, chapter
