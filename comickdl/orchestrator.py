#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Batch orchestration over a chapter selection.

One :class:`BatchSession` per run holds the progress; the
:class:`BatchDownloader` is the only writer and hands out read-only
:class:`RunState` snapshots to whoever polls.
"""

from __future__ import annotations

import asyncio
import logging
import math
import pathlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .catalog import ChapterDescriptor, parse_chapter_page_url, read_chapter_page_info
from .engine import TRANSFER_TIMEOUT_SEC, CollectionContext, acquire
from .extractor import DEFAULT_STRATEGIES, ContentItem, ExtractionStrategy, PageSnapshot, extract_items
from .naming import chapter_label
from .settings import SINGLE_CHAPTER_IMAGE_DELAY, DelaySettings
from .transfers import TransferManager

LOG = logging.getLogger("comickdl.orchestrator")

CONTENT_POLL_INTERVAL_SEC = 1.0


class PageProvider(Protocol):
    async def open(self, url: str) -> Any: ...

    async def close(self, handle: Any) -> None: ...

    async def snapshot(self, handle: Any) -> PageSnapshot: ...


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class RunState:
    active: bool = False
    current_index: int = 0
    total_count: int = 0
    finished: bool = False

    @property
    def percent_complete(self) -> int:
        if self.finished:
            return 100
        if self.total_count <= 0 or self.current_index <= 0:
            return 0
        return round_half_up(100 * (self.current_index - 1) / self.total_count)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "active": self.active,
            "currentIndex": self.current_index,
            "totalCount": self.total_count,
            "percentComplete": self.percent_complete,
        }

    def describe(self) -> str:
        if self.active:
            return (
                f"Downloading chapter {self.current_index}/{self.total_count} "
                f"({self.percent_complete}%)"
            )
        if self.finished:
            return f"Finished {self.total_count} chapters (100%)"
        return "No download in progress."


@dataclass
class ChapterOutcome:
    number: str
    written: int = 0
    attempted: int = 0
    error: str = ""
    message: str = ""

    @property
    def skipped(self) -> bool:
        return not self.error and self.attempted == 0


@dataclass
class BatchSession:
    collection_name: str
    chapters: List[ChapterDescriptor]
    state: RunState = field(default_factory=RunState)
    outcomes: List[ChapterOutcome] = field(default_factory=list)

    @classmethod
    def create(cls, chapters: Sequence[ChapterDescriptor], collection_name: str) -> "BatchSession":
        chapters = list(chapters)
        session = cls(collection_name=collection_name, chapters=chapters)
        session.state = RunState(active=True, current_index=0, total_count=len(chapters))
        return session

    def advance(self, index: int) -> None:
        self.state = RunState(active=True, current_index=index, total_count=len(self.chapters))

    def finalize(self) -> None:
        total = len(self.chapters)
        self.state = RunState(active=False, current_index=total, total_count=total, finished=True)

    def snapshot(self) -> RunState:
        return self.state


class BatchDownloader:
    def __init__(
        self,
        pages: PageProvider,
        transfers: TransferManager,
        root: pathlib.Path,
        strategies: Sequence[ExtractionStrategy] = DEFAULT_STRATEGIES,
        transfer_timeout: float = TRANSFER_TIMEOUT_SEC,
        content_poll_attempts: int = 0,
        show_progress: bool = True,
    ):
        self.pages = pages
        self.transfers = transfers
        self.root = pathlib.Path(root)
        self.strategies = tuple(strategies)
        self.transfer_timeout = transfer_timeout
        self.content_poll_attempts = max(0, content_poll_attempts)
        self.show_progress = show_progress
        self.session: Optional[BatchSession] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self.session is not None and self.session.state.active

    def status(self) -> RunState:
        return self.session.snapshot() if self.session else RunState()

    def start(
        self,
        chapters: Sequence[ChapterDescriptor],
        collection_name: str,
        settings: DelaySettings,
    ) -> bool:
        """Launch a run in the background; False when one is already active."""
        if self.active:
            LOG.warning("Batch requested while another one is running; ignored.")
            return False
        self.session = BatchSession.create(chapters, collection_name)
        self._task = asyncio.get_running_loop().create_task(
            self._run_session(self.session, settings)
        )
        return True

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    async def run(
        self,
        chapters: Sequence[ChapterDescriptor],
        collection_name: str,
        settings: DelaySettings,
    ) -> BatchSession:
        if self.active:
            raise RuntimeError("A batch download is already running.")
        self.session = BatchSession.create(chapters, collection_name)
        await self._run_session(self.session, settings)
        return self.session

    async def _run_session(self, session: BatchSession, settings: DelaySettings) -> None:
        total = len(session.chapters)
        LOG.info("Starting batch of %d chapters for %s", total, session.collection_name)
        try:
            for index, chapter in enumerate(session.chapters, start=1):
                session.advance(index)
                label = chapter_label(chapter.number)
                LOG.info("=== Chapter %s (%d/%d) ===", label, index, total)
                outcome = ChapterOutcome(number=label)
                try:
                    outcome.written, outcome.attempted = await self._process_chapter(
                        chapter, label, session.collection_name, settings
                    )
                except Exception as exc:
                    LOG.exception("Chapter %s failed; continuing with the next one.", label)
                    outcome.error = str(exc) or type(exc).__name__
                session.outcomes.append(outcome)
                await asyncio.sleep(settings.chapter_delay)
        finally:
            session.finalize()
            LOG.info("Batch finished for %s (%d chapters).", session.collection_name, total)

    async def _collect_items(self, handle: Any) -> List[ContentItem]:
        items = extract_items(await self.pages.snapshot(handle), self.strategies)
        for attempt in range(1, self.content_poll_attempts + 1):
            if items:
                break
            LOG.debug("No images yet; polling again (%d/%d).", attempt, self.content_poll_attempts)
            await asyncio.sleep(CONTENT_POLL_INTERVAL_SEC)
            items = extract_items(await self.pages.snapshot(handle), self.strategies)
        return items

    async def _process_chapter(
        self,
        chapter: ChapterDescriptor,
        label: str,
        collection_name: str,
        settings: DelaySettings,
    ):
        handle = await self.pages.open(chapter.url)
        try:
            await asyncio.sleep(settings.page_load_delay)
            items = await self._collect_items(handle)
            if not items:
                LOG.warning("No images found for chapter %s (%s); skipping.", label, chapter.url)
                return 0, 0
            written = await acquire(
                items,
                CollectionContext(collection_name=collection_name, chapter_label=label),
                settings.image_delay,
                self.transfers,
                self.root,
                timeout=self.transfer_timeout,
                show_progress=self.show_progress,
            )
            return written, len(items)
        finally:
            await self.pages.close(handle)

    async def download_single(self, url: str, settings: DelaySettings) -> ChapterOutcome:
        """Download one chapter page without touching the batch progress."""
        title, chapter = parse_chapter_page_url(url)
        handle = await self.pages.open(url)
        try:
            await asyncio.sleep(settings.page_load_delay)
            snap = await self.pages.snapshot(handle)
            items = extract_items(snap, self.strategies)
            if not items:
                return ChapterOutcome(
                    number=chapter or "0",
                    message="No images found. Make sure you are on a comick.io chapter page.",
                )
            if not title or not chapter:
                page_title, page_chapter = read_chapter_page_info(snap.html)
                title = title or page_title
                chapter = chapter or page_chapter
            LOG.info("Downloading %d images for Chapter %s...", len(items), chapter)
            written = await acquire(
                items,
                CollectionContext(collection_name=title, chapter_label=chapter),
                SINGLE_CHAPTER_IMAGE_DELAY,
                self.transfers,
                self.root,
                timeout=self.transfer_timeout,
                show_progress=self.show_progress,
            )
            return ChapterOutcome(
                number=chapter,
                written=written,
                attempted=len(items),
                message=f"Completed Chapter {chapter}: {written}/{len(items)} images downloaded",
            )
        finally:
            await self.pages.close(handle)
