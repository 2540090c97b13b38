#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Page image discovery for a loaded chapter page.

The browser hands over a :class:`PageSnapshot` (rendered HTML plus the measured
size of every ``<img>``), and a cascade of named strategies picks the page
images from it. The first strategy that matches anything wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

LOG = logging.getLogger("comickdl.extractor")

INDEX_ATTR = "data-comickdl-index"
MIN_PAGE_SIDE = 500
EXCLUDED_URL_PARTS = ("icon", "avatar", "logo")

READER_CONTAINER_SELECTOR = '.flex.flex-col img[src*="/comic/"], .reader-container img'
FIXED_WIDTH_SELECTOR = 'img[width="800"], img[width="1000"], img[width="1200"]'
CHAPTER_CONTAINER_SELECTOR = ".chapter-container img, .reader img, .chapter-images img"


@dataclass(frozen=True)
class ImageMetrics:
    index: int
    src: str = ""
    natural_width: int = 0
    natural_height: int = 0
    width: int = 0
    height: int = 0

    @classmethod
    def from_js(cls, data: Dict) -> "ImageMetrics":
        return cls(
            index=int(data.get("index", 0)),
            src=data.get("src") or "",
            natural_width=int(data.get("naturalWidth") or 0),
            natural_height=int(data.get("naturalHeight") or 0),
            width=int(data.get("width") or 0),
            height=int(data.get("height") or 0),
        )


@dataclass
class PageSnapshot:
    html: str
    url: str = ""
    images: Dict[int, ImageMetrics] = field(default_factory=dict)
    _soup: Optional[BeautifulSoup] = field(default=None, init=False, repr=False, compare=False)

    @property
    def soup(self) -> BeautifulSoup:
        if self._soup is None:
            # Only images the browser labelled while measuring have metrics;
            # anything added later falls back to its own attributes.
            self._soup = BeautifulSoup(self.html or "", "html.parser")
        return self._soup

    def metrics_for(self, tag: Tag) -> Optional[ImageMetrics]:
        try:
            return self.images.get(int(tag.get(INDEX_ATTR, "")))
        except ValueError:
            return None

    def source_of(self, tag: Tag) -> str:
        metrics = self.metrics_for(tag)
        if metrics and metrics.src:
            return metrics.src
        raw = (tag.get("src") or "").strip()
        if not raw:
            return ""
        return urljoin(self.url, raw) if self.url else raw


@dataclass(frozen=True)
class ContentItem:
    url: str
    ordinal: int


Finder = Callable[[PageSnapshot], List[Tag]]


@dataclass(frozen=True)
class ExtractionStrategy:
    name: str
    find: Finder


def css_strategy(name: str, selector: str) -> ExtractionStrategy:
    return ExtractionStrategy(name=name, find=lambda snap: list(snap.soup.select(selector)))


def _int_attr(tag: Tag, name: str) -> int:
    try:
        return int(str(tag.get(name, "0")).strip() or 0)
    except ValueError:
        return 0


def _is_large(snap: PageSnapshot, tag: Tag, min_side: int = MIN_PAGE_SIDE) -> bool:
    m = snap.metrics_for(tag)
    if m is None:
        return _int_attr(tag, "width") > min_side and _int_attr(tag, "height") > min_side
    if m.natural_width > min_side and m.natural_height > min_side:
        return True
    return m.width > min_side and m.height > min_side


def find_large_images(snap: PageSnapshot) -> List[Tag]:
    return [img for img in snap.soup.find_all("img") if _is_large(snap, img)]


DEFAULT_STRATEGIES: Tuple[ExtractionStrategy, ...] = (
    css_strategy("reader-container", READER_CONTAINER_SELECTOR),
    css_strategy("fixed-width", FIXED_WIDTH_SELECTOR),
    css_strategy("chapter-container", CHAPTER_CONTAINER_SELECTOR),
    ExtractionStrategy(name="large-image", find=find_large_images),
)


def is_page_url(url: str) -> bool:
    return bool(url) and not any(part in url for part in EXCLUDED_URL_PARTS)


def run_cascade(
    snap: PageSnapshot, strategies: Sequence[ExtractionStrategy] = DEFAULT_STRATEGIES
) -> Tuple[Optional[str], List[Tag]]:
    for strategy in strategies:
        found = strategy.find(snap)
        if found:
            LOG.debug("Strategy %s matched %d images.", strategy.name, len(found))
            return strategy.name, found
        LOG.debug("Strategy %s matched nothing.", strategy.name)
    return None, []


def extract_items(
    snap: PageSnapshot, strategies: Sequence[ExtractionStrategy] = DEFAULT_STRATEGIES
) -> List[ContentItem]:
    """Ordered page images of the chapter; empty when nothing looks like a page."""
    name, tags = run_cascade(snap, strategies)
    urls = [u for u in (snap.source_of(tag) for tag in tags) if is_page_url(u)]
    items = [ContentItem(url=u, ordinal=i) for i, u in enumerate(urls, start=1)]
    if name:
        LOG.info("Found %d page images via %s (%d matched).", len(items), name, len(tags))
    return items
