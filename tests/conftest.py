from __future__ import annotations

import asyncio
from typing import Dict, List, Sequence, Union

import pytest

from comickdl.extractor import PageSnapshot
from comickdl.transfers import TransferError, TransferManager


class FakeTransfers(TransferManager):
    """Completes every transfer unless told to interrupt, hang or refuse a URL."""

    def __init__(self, behaviours: Dict[str, str] = None, **kwargs):
        super().__init__(**kwargs)
        self.behaviours = behaviours or {}
        self.submitted: List[str] = []

    def _check_url(self, url: str) -> None:
        super()._check_url(url)
        if self.behaviours.get(url) == "refuse":
            raise TransferError("refused by transport")

    def submit(self, url, path):
        transfer_id = super().submit(url, path)
        self.submitted.append(url)
        return transfer_id

    async def _fetch(self, url: str) -> bytes:
        behaviour = self.behaviours.get(url, "complete")
        if behaviour == "hang":
            await asyncio.Event().wait()
        if behaviour == "interrupt":
            raise RuntimeError("connection reset")
        await asyncio.sleep(0)
        return b"\x89PNG fake image " + url.encode()


class FakePages:
    """Page provider that serves canned snapshots keyed by address."""

    def __init__(self, pages: Dict[str, Union[PageSnapshot, Sequence[PageSnapshot], Exception]]):
        self.pages = pages
        self.opened: List[str] = []
        self.closed: List[str] = []
        self.snapshots_taken = 0
        self.on_open = None

    async def open(self, url: str):
        self.opened.append(url)
        if self.on_open:
            self.on_open(url)
        entry = self.pages.get(url)
        if isinstance(entry, Exception):
            raise entry
        return {"url": url, "served": 0}

    async def close(self, handle) -> None:
        self.closed.append(handle["url"])

    async def snapshot(self, handle) -> PageSnapshot:
        self.snapshots_taken += 1
        entry = self.pages.get(handle["url"])
        if entry is None:
            return PageSnapshot(html="<html><body></body></html>", url=handle["url"])
        if isinstance(entry, (list, tuple)):
            idx = min(handle["served"], len(entry) - 1)
            handle["served"] += 1
            return entry[idx]
        return entry


def reader_page(url: str, count: int, ext: str = "jpg") -> PageSnapshot:
    imgs = "".join(
        f'<img src="https://cdn.example.com/comic/{url.rstrip("/").rsplit("/", 1)[-1]}/{i}.{ext}">'
        for i in range(1, count + 1)
    )
    html = f'<html><body><div class="reader-container">{imgs}</div></body></html>'
    return PageSnapshot(html=html, url=url)


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def fake_transfers():
    return FakeTransfers()
