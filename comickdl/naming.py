#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""File naming rules shared by the downloader and the front ends.

Output layout: ``<root>/Manga/<collection>/Chapter <chapter>/<NNN>.<ext>``.
"""

from __future__ import annotations

import pathlib
import re
from decimal import Decimal
from typing import Optional, Union

MANGA_DIR = "Manga"
DEFAULT_EXT = "jpg"
ALLOWED_EXTS = ("jpg", "jpeg", "png", "webp", "gif")

INVALID_CHARS_RE = re.compile(r'[\\/:*?"<>|]')
WHITESPACE_RE = re.compile(r"\s+")
URL_EXT_RE = re.compile(r"\.([a-zA-Z0-9]+)(?:\?|$)")


def sanitize_filename(s: Optional[str]) -> str:
    if not s:
        return "unknown"
    cleaned = INVALID_CHARS_RE.sub("_", s)
    cleaned = WHITESPACE_RE.sub(" ", cleaned).strip()
    return cleaned or "unknown"


def infer_ext(url: str) -> str:
    m = URL_EXT_RE.search(url or "")
    if m:
        ext = m.group(1).lower()
        if ext in ALLOWED_EXTS:
            return ext
    return DEFAULT_EXT


def chapter_label(number: Union[Decimal, str, int, float]) -> str:
    """Render a chapter number the way it shows up in folder names (10, 10.5)."""
    if isinstance(number, str):
        return number
    dec = number if isinstance(number, Decimal) else Decimal(str(number))
    if dec == dec.to_integral_value():
        return str(int(dec))
    return format(dec.normalize(), "f")


def page_filename(ordinal: int, url: str) -> str:
    return f"{ordinal:03d}.{infer_ext(url)}"


def chapter_dir(root: pathlib.Path, collection: Optional[str], chapter: Optional[str]) -> pathlib.Path:
    return pathlib.Path(root) / sanitize_filename(collection) / f"Chapter {sanitize_filename(chapter)}"


def destination_path(
    root: pathlib.Path,
    collection: Optional[str],
    chapter: Optional[str],
    ordinal: int,
    url: str,
) -> pathlib.Path:
    return chapter_dir(root, collection, chapter) / page_filename(ordinal, url)


def manga_root(out_dir: Union[str, pathlib.Path]) -> pathlib.Path:
    return pathlib.Path(out_dir).expanduser() / MANGA_DIR
