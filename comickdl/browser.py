#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Playwright-backed pages: open a tab, snapshot its images, close it."""

from __future__ import annotations

import contextlib
import logging
from typing import AsyncIterator, Dict, Optional, Tuple

from playwright.async_api import BrowserContext, Page, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .extractor import INDEX_ATTR, ImageMetrics, PageSnapshot
from .transfers import USER_AGENT

LOG = logging.getLogger("comickdl.browser")

NAVIGATION_TIMEOUT_MS = 120_000
READY_TIMEOUT_MS = 30_000

# Tags every <img> with its document position and serialises the document in
# the same call, so the HTML and the measured sizes describe one moment.
MEASURE_IMAGES_JS = """
(attr) => {
  const imgs = Array.from(document.querySelectorAll('img'));
  const images = imgs.map((img, i) => {
    img.setAttribute(attr, String(i));
    return {
      index: i,
      src: img.src || '',
      naturalWidth: img.naturalWidth || 0,
      naturalHeight: img.naturalHeight || 0,
      width: img.width || 0,
      height: img.height || 0,
    };
  });
  return { html: document.documentElement.outerHTML, images };
}
"""


class BrowserPages:
    """One background tab per chapter, all in the same browser context."""

    def __init__(self, ctx: BrowserContext):
        self.ctx = ctx

    async def open(self, url: str) -> Page:
        page = await self.ctx.new_page()
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)
        except Exception:
            with contextlib.suppress(Exception):
                await page.close()
            raise
        LOG.debug("Opened %s", page.url)
        return page

    async def close(self, page: Page) -> None:
        try:
            await page.close()
        except Exception as exc:
            LOG.debug("page.close() failed: %s", exc)

    async def snapshot(self, page: Page) -> PageSnapshot:
        raw: Dict = await page.evaluate(MEASURE_IMAGES_JS, INDEX_ATTR) or {}
        images = {m.index: m for m in (ImageMetrics.from_js(item) for item in raw.get("images") or [])}
        return PageSnapshot(html=raw.get("html") or "", url=page.url, images=images)

    async def load_html(
        self, url: str, settle_sec: float = 0.0, ready_selector: Optional[str] = None
    ) -> Tuple[str, str]:
        """HTML and final address of a page, for catalog parsing.

        With ``ready_selector`` the page is given up to ``READY_TIMEOUT_MS`` to
        render a matching element before ``settle_sec`` more of waiting.
        """
        page = await self.open(url)
        try:
            if ready_selector:
                try:
                    await page.wait_for_selector(ready_selector, timeout=READY_TIMEOUT_MS)
                except PlaywrightTimeoutError:
                    LOG.warning("Nothing matched %s on %s yet; reading the page anyway.", ready_selector, url)
            if settle_sec:
                await page.wait_for_timeout(settle_sec * 1000)
            return await page.content(), page.url
        finally:
            await self.close(page)


@contextlib.asynccontextmanager
async def launch_context(headless: bool = True) -> AsyncIterator[BrowserContext]:
    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=headless)
        ctx: BrowserContext = await browser.new_context(user_agent=USER_AGENT)
        try:
            yield ctx
        finally:
            await ctx.close()
            await browser.close()
