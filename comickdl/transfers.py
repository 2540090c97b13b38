#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Fetch-and-save transfers with per-transfer completion tracking.

``submit`` starts a transfer and returns its id right away; ``wait`` blocks
on that one transfer until it reaches a terminal state or the timeout runs
out. Listeners get every state change.
"""

from __future__ import annotations

import asyncio
import collections
import enum
import logging
import pathlib
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional, Set
from urllib.parse import urlparse

from playwright.async_api import APIRequestContext

LOG = logging.getLogger("comickdl.transfers")

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124 Safari/537.36"
)
REQUEST_TIMEOUT_MS = 90_000
ALLOWED_SCHEMES = ("http", "https")
FINISHED_HISTORY = 256


class TransferError(Exception):
    """A transfer could not be started."""


class TransferState(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    INTERRUPTED = "interrupted"


TERMINAL_STATES = (TransferState.COMPLETE, TransferState.INTERRUPTED)


@dataclass
class Transfer:
    id: int
    url: str
    path: pathlib.Path
    state: TransferState = TransferState.IN_PROGRESS
    error: str = ""
    size_bytes: int = 0


Listener = Callable[[Transfer], None]


class TransferManager:
    """Base transfer subsystem; subclasses provide ``_fetch``."""

    def __init__(self, history: int = FINISHED_HISTORY) -> None:
        self._next_id = 1
        self._transfers: Dict[int, Transfer] = {}
        # Finished transfers stay queryable until ``history`` newer ones finish.
        self._history = max(1, history)
        self._finished: Deque[int] = collections.deque()
        self._waiters: Dict[int, List[asyncio.Future]] = {}
        self._listeners: List[Listener] = []
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    async def _fetch(self, url: str) -> bytes:
        raise NotImplementedError

    def _check_url(self, url: str) -> None:
        if self._closed:
            raise TransferError("Transfer subsystem is closed.")
        if not url:
            raise TransferError("Empty URL.")
        try:
            parsed = urlparse(url)
        except ValueError as exc:
            raise TransferError(f"Malformed URL {url!r}: {exc}") from exc
        if parsed.scheme not in ALLOWED_SCHEMES or not parsed.netloc:
            raise TransferError(f"Unsupported URL {url!r}.")

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def get(self, transfer_id: int) -> Optional[Transfer]:
        return self._transfers.get(transfer_id)

    def submit(self, url: str, path: pathlib.Path) -> int:
        self._check_url(url)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise TransferError("No running event loop to start the transfer.") from exc
        transfer = Transfer(id=self._next_id, url=url, path=pathlib.Path(path))
        self._next_id += 1
        self._transfers[transfer.id] = transfer
        task = loop.create_task(self._run(transfer))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        LOG.debug("Transfer %d started: %s -> %s", transfer.id, url, transfer.path)
        return transfer.id

    async def _run(self, transfer: Transfer) -> None:
        try:
            data = await self._fetch(transfer.url)
            transfer.path.parent.mkdir(parents=True, exist_ok=True)
            transfer.path.write_bytes(data)
            transfer.size_bytes = len(data)
        except asyncio.CancelledError:
            self._finish(transfer, TransferState.INTERRUPTED, "cancelled")
            raise
        except Exception as exc:
            LOG.debug("Transfer %d interrupted: %s", transfer.id, exc)
            self._finish(transfer, TransferState.INTERRUPTED, str(exc) or type(exc).__name__)
        else:
            self._finish(transfer, TransferState.COMPLETE)

    def _finish(self, transfer: Transfer, state: TransferState, error: str = "") -> None:
        transfer.state = state
        transfer.error = error
        for listener in list(self._listeners):
            try:
                listener(transfer)
            except Exception:
                LOG.exception("Transfer listener failed for %d", transfer.id)
        for fut in self._waiters.pop(transfer.id, []):
            if not fut.done():
                fut.set_result(state)
        self._finished.append(transfer.id)
        while len(self._finished) > self._history:
            self._transfers.pop(self._finished.popleft(), None)

    async def wait(self, transfer_id: int, timeout: float) -> Optional[TransferState]:
        """Terminal state of the transfer, or None when ``timeout`` ran out first."""
        transfer = self._transfers.get(transfer_id)
        if transfer is None:
            raise KeyError(transfer_id)
        if transfer.state in TERMINAL_STATES:
            return transfer.state
        fut = asyncio.get_running_loop().create_future()
        waiters = self._waiters.setdefault(transfer_id, [])
        waiters.append(fut)
        try:
            return await asyncio.wait_for(fut, timeout)
        except asyncio.TimeoutError:
            return None
        finally:
            pending = self._waiters.get(transfer_id)
            if pending and fut in pending:
                pending.remove(fut)
                if not pending:
                    self._waiters.pop(transfer_id, None)

    async def aclose(self) -> None:
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


class PlaywrightTransfers(TransferManager):
    """Downloads through the browser context so cookies and Referer match the reader."""

    def __init__(self, request: APIRequestContext, referer: str = "", history: int = FINISHED_HISTORY) -> None:
        super().__init__(history)
        self._request = request
        self.referer = referer

    async def _fetch(self, url: str) -> bytes:
        headers = {
            "Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8",
            "User-Agent": USER_AGENT,
        }
        if self.referer:
            headers["Referer"] = self.referer
        resp = await self._request.get(url, headers=headers, timeout=REQUEST_TIMEOUT_MS)
        if not resp.ok:
            raise RuntimeError(f"HTTP {resp.status} for {url}")
        return await resp.body()
