#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Blocking job entry points used by the CLI and the Telegram bot."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Optional, Tuple, Union

from .browser import BrowserPages, launch_context
from .catalog import (
    CHAPTER_LINK_SELECTOR,
    CollectionInfo,
    read_collection_info,
    resolve_chapters,
    select_range,
)
from .naming import manga_root
from .orchestrator import BatchDownloader, BatchSession, ChapterOutcome, RunState
from .settings import Config, DelaySettings
from .transfers import PlaywrightTransfers

LOG = logging.getLogger("comickdl.jobs")

Bound = Optional[Union[str, int, float, Decimal]]


class BatchJob:
    """One batch download, runnable in a worker thread and pollable from another."""

    def __init__(self, config: Config, settings: DelaySettings, show_progress: bool = True):
        self.config = config
        self.settings = settings
        self.show_progress = show_progress
        self.collection: Optional[CollectionInfo] = None
        self.downloader: Optional[BatchDownloader] = None

    def status(self) -> RunState:
        return self.downloader.status() if self.downloader else RunState()

    def run(self, listing_url: str, lo: Bound = None, hi: Bound = None) -> BatchSession:
        return asyncio.run(self._run(listing_url, lo, hi))

    async def _load_listing(self, pages: BrowserPages, listing_url: str) -> Tuple[str, str]:
        # The chapter list is rendered client side.
        return await pages.load_html(
            listing_url,
            settle_sec=self.settings.page_load_delay,
            ready_selector=CHAPTER_LINK_SELECTOR,
        )

    async def _run(self, listing_url: str, lo: Bound, hi: Bound) -> BatchSession:
        async with launch_context(headless=self.config.headless) as ctx:
            pages = BrowserPages(ctx)
            html, page_url = await self._load_listing(pages, listing_url)
            self.collection = read_collection_info(html)
            chapters = resolve_chapters(html, page_url)
            selected = select_range(
                chapters,
                1 if lo is None else lo,
                self.collection.range_upper_bound if hi is None else hi,
            )
            LOG.info(
                "Found %d chapters for %s. Starting download...",
                len(selected),
                self.collection.title,
            )
            transfers = PlaywrightTransfers(ctx.request, referer=page_url)
            self.downloader = BatchDownloader(
                pages,
                transfers,
                manga_root(self.config.output_dir),
                transfer_timeout=self.config.transfer_timeout,
                content_poll_attempts=self.config.content_poll_attempts,
                show_progress=self.show_progress,
            )
            try:
                return await self.downloader.run(selected, self.collection.title, self.settings)
            finally:
                await transfers.aclose()


def run_single_chapter_job(
    chapter_url: str, config: Config, settings: DelaySettings, show_progress: bool = True
) -> ChapterOutcome:
    async def runner() -> ChapterOutcome:
        async with launch_context(headless=config.headless) as ctx:
            transfers = PlaywrightTransfers(ctx.request, referer=chapter_url)
            downloader = BatchDownloader(
                BrowserPages(ctx),
                transfers,
                manga_root(config.output_dir),
                transfer_timeout=config.transfer_timeout,
                show_progress=show_progress,
            )
            try:
                return await downloader.download_single(chapter_url, settings)
            finally:
                await transfers.aclose()

    return asyncio.run(runner())
