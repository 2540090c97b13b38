#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Sequential image acquisition for one chapter."""

from __future__ import annotations

import asyncio
import logging
import pathlib
from dataclasses import dataclass
from typing import Optional, Sequence

from tqdm import tqdm

from .extractor import ContentItem
from .naming import destination_path
from .transfers import TransferError, TransferManager, TransferState

LOG = logging.getLogger("comickdl.engine")

TRANSFER_TIMEOUT_SEC = 30.0


@dataclass(frozen=True)
class CollectionContext:
    collection_name: Optional[str]
    chapter_label: Optional[str]


async def acquire(
    items: Sequence[ContentItem],
    context: CollectionContext,
    image_delay: float,
    transfers: TransferManager,
    root: pathlib.Path,
    timeout: float = TRANSFER_TIMEOUT_SEC,
    show_progress: bool = True,
) -> int:
    """Fetch every item in order; return how many transfers completed.

    A failed, interrupted or timed out image is logged and skipped. The image
    delay is applied after every item.
    """
    written = 0
    bar = tqdm(
        total=len(items),
        ncols=80,
        desc=f"Chapter {context.chapter_label}",
        disable=not show_progress,
    )
    try:
        for item in items:
            dest = destination_path(
                root, context.collection_name, context.chapter_label, item.ordinal, item.url
            )
            try:
                transfer_id = transfers.submit(item.url, dest)
            except TransferError as exc:
                LOG.warning("Error downloading image %d: %s", item.ordinal, exc)
            else:
                state = await transfers.wait(transfer_id, timeout)
                if state is TransferState.COMPLETE:
                    written += 1
                elif state is None:
                    LOG.warning(
                        "Image %d still downloading after %.0fs; moving on.", item.ordinal, timeout
                    )
                else:
                    transfer = transfers.get(transfer_id)
                    LOG.warning(
                        "Image %d interrupted: %s",
                        item.ordinal,
                        transfer.error if transfer else "unknown error",
                    )
            bar.update(1)
            await asyncio.sleep(image_delay)
    finally:
        bar.close()

    if written < len(items):
        LOG.warning(
            "Chapter %s: %d/%d images saved.", context.chapter_label, written, len(items)
        )
    else:
        LOG.info("Chapter %s: all %d images saved.", context.chapter_label, len(items))
    return written
