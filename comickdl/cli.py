#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Command line front end.

    comickdl download https://comick.io/comic/<slug> --from 1 --to 20
    comickdl download https://comick.io/comic/<slug>/<hid>-chapter-3-en
    comickdl settings --image-delay 1.5
"""

from __future__ import annotations

import argparse
import logging
import pathlib
from concurrent.futures import ThreadPoolExecutor, wait
from logging.handlers import RotatingFileHandler
from typing import List, Optional, Sequence

from .catalog import CatalogError, is_listing_url
from .jobs import BatchJob, run_single_chapter_job
from .orchestrator import ChapterOutcome
from .settings import Config, DelaySettings, load_config

LOG = logging.getLogger("comickdl.cli")

CONSOLE_HANDLER = "comickdl-console"
FILE_HANDLER = "comickdl-file"


def setup_logging(log_dir: pathlib.Path, filename: str = "comickdl.log") -> None:
    """INFO to the console, this package's DEBUG records to a rotating file.

    Calling it again swaps the handlers it installed earlier.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() in (CONSOLE_HANDLER, FILE_HANDLER):
            root.removeHandler(handler)
            handler.close()

    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    console = logging.StreamHandler()
    console.set_name(CONSOLE_HANDLER)
    console.setLevel(logging.INFO)
    file_handler = RotatingFileHandler(
        log_dir / filename, maxBytes=2 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    file_handler.set_name(FILE_HANDLER)
    file_handler.setLevel(logging.DEBUG)
    file_handler.addFilter(logging.Filter("comickdl"))
    for handler in (console, file_handler):
        handler.setFormatter(fmt)
        root.addHandler(handler)

    root.setLevel(logging.INFO)
    logging.getLogger("comickdl").setLevel(logging.DEBUG)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def summarize(outcomes: List[ChapterOutcome]) -> str:
    lines = []
    for res in outcomes:
        if res.error:
            lines.append(f"Chapter {res.number}: failed ({res.error})")
        elif res.skipped:
            lines.append(f"Chapter {res.number}: no images found, skipped")
        else:
            lines.append(f"Chapter {res.number}: {res.written}/{res.attempted} images")
    return "\n".join(lines)


def _run_batch(config: Config, settings: DelaySettings, args: argparse.Namespace) -> int:
    job = BatchJob(config, settings, show_progress=not args.quiet)
    last = ""
    with ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(job.run, args.url, args.from_chapter, args.to_chapter)
        while not future.done():
            wait([future], timeout=config.status_poll)
            state = job.status()
            text = state.describe()
            if state.active and text != last:
                print(text)
                last = text
        try:
            session = future.result()
        except CatalogError as exc:
            print(f"Error: {exc}")
            return 1
        except Exception as exc:
            LOG.exception("Batch download failed")
            print(f"Error: {exc}")
            return 1
    print(summarize(session.outcomes))
    print(session.state.describe())
    return 0


def _run_single(config: Config, settings: DelaySettings, args: argparse.Namespace) -> int:
    outcome = run_single_chapter_job(args.url, config, settings, show_progress=not args.quiet)
    print(outcome.message)
    return 0 if outcome.attempted else 1


def _cmd_download(config: Config, args: argparse.Namespace) -> int:
    store = config.preference_store()
    settings = store.load().replace(
        page_load_delay=args.page_load_delay,
        image_delay=args.image_delay,
        chapter_delay=args.chapter_delay,
    )
    if is_listing_url(args.url):
        return _run_batch(config, settings, args)
    if args.from_chapter is not None or args.to_chapter is not None:
        LOG.warning("--from/--to only apply to series pages; downloading this chapter only.")
    return _run_single(config, settings, args)


def _cmd_settings(config: Config, args: argparse.Namespace) -> int:
    store = config.preference_store()
    current = store.load()
    updated = current.replace(
        page_load_delay=args.page_load_delay,
        image_delay=args.image_delay,
        chapter_delay=args.chapter_delay,
    )
    if updated != current:
        store.save(updated)
        print("Settings saved!")
    record = updated.to_record()
    for key in ("pageLoadDelay", "imageDelay", "chapterDelay"):
        print(f"{key}\t{record[key]:g}s")
    return 0


def _add_delay_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--page-load-delay", type=float, default=None, help="Seconds to let a chapter page render.")
    parser.add_argument("--image-delay", type=float, default=None, help="Seconds between images.")
    parser.add_argument("--chapter-delay", type=float, default=None, help="Seconds between chapters.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="comickdl", description="Download comick.io chapters as ordered images.")
    sub = parser.add_subparsers(dest="command", required=True)

    dl = sub.add_parser("download", help="Download a chapter page or a range from a series page.")
    dl.add_argument("url", help="Series page (batch mode) or chapter page (single chapter).")
    dl.add_argument("--from", dest="from_chapter", default=None, help="First chapter (default 1).")
    dl.add_argument("--to", dest="to_chapter", default=None, help="Last chapter (default: latest listed).")
    dl.add_argument("--quiet", action="store_true", help="Hide per-chapter progress bars.")
    _add_delay_args(dl)

    st = sub.add_parser("settings", help="Show or change the saved delay settings.")
    _add_delay_args(st)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config()
    setup_logging(config.log_dir)
    if args.command == "settings":
        return _cmd_settings(config, args)
    return _cmd_download(config, args)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
