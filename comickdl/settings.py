#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Delay preferences and environment configuration."""

from __future__ import annotations

import json
import logging
import os
import pathlib
import sys
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

LOG = logging.getLogger("comickdl.settings")

SETTINGS_KEY = "delaySettings"

DEFAULT_PAGE_LOAD_DELAY = 10.0
DEFAULT_IMAGE_DELAY = 2.0
DEFAULT_CHAPTER_DELAY = 10.0
SINGLE_CHAPTER_IMAGE_DELAY = 0.1


def _get_base_dir() -> pathlib.Path:
    if getattr(sys, "frozen", False):
        return pathlib.Path(sys.executable).resolve().parent
    return pathlib.Path.cwd()


BASE_DIR = _get_base_dir()
ENV_PATH = BASE_DIR / ".env"


def _as_delay(value: Any, default: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        num = float(value)
    except (TypeError, ValueError):
        return default
    if num != num or num < 0 or num == float("inf"):
        return default
    return num


@dataclass(frozen=True)
class DelaySettings:
    page_load_delay: float = DEFAULT_PAGE_LOAD_DELAY
    image_delay: float = DEFAULT_IMAGE_DELAY
    chapter_delay: float = DEFAULT_CHAPTER_DELAY

    @classmethod
    def from_record(cls, record: Optional[Mapping[str, Any]]) -> "DelaySettings":
        record = record or {}
        return cls(
            page_load_delay=_as_delay(record.get("pageLoadDelay"), DEFAULT_PAGE_LOAD_DELAY),
            image_delay=_as_delay(record.get("imageDelay"), DEFAULT_IMAGE_DELAY),
            chapter_delay=_as_delay(record.get("chapterDelay"), DEFAULT_CHAPTER_DELAY),
        )

    def to_record(self) -> Dict[str, float]:
        return {
            "pageLoadDelay": self.page_load_delay,
            "imageDelay": self.image_delay,
            "chapterDelay": self.chapter_delay,
        }

    def replace(self, **changes: Any) -> "DelaySettings":
        record = self.to_record()
        for name, value in changes.items():
            if value is None:
                continue
            key = {
                "page_load_delay": "pageLoadDelay",
                "image_delay": "imageDelay",
                "chapter_delay": "chapterDelay",
            }[name]
            record[key] = _as_delay(value, record[key])
        return DelaySettings.from_record(record)


class PreferenceStore:
    """JSON file holding the ``delaySettings`` record."""

    def __init__(self, path: pathlib.Path):
        self.path = pathlib.Path(path)

    def _read(self) -> Dict[str, Any]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            LOG.warning("Could not read preferences from %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def load(self) -> DelaySettings:
        record = self._read().get(SETTINGS_KEY)
        return DelaySettings.from_record(record if isinstance(record, dict) else None)

    def save(self, settings: DelaySettings) -> None:
        data = self._read()
        data[SETTINGS_KEY] = settings.to_record()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        LOG.info("Settings saved to %s", self.path)


def _resolve_path(env_key: str, default_name: str) -> pathlib.Path:
    candidate = os.getenv(env_key, "").strip()
    if candidate:
        path = pathlib.Path(candidate).expanduser()
        if not path.is_absolute():
            path = BASE_DIR / path
        return path
    return BASE_DIR / default_name


def _env_float(key: str, default: float) -> float:
    return _as_delay(os.getenv(key, "").strip() or None, default)


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    try:
        return max(0, int(raw)) if raw else default
    except ValueError:
        LOG.warning("Ignoring invalid %s=%r", key, raw)
        return default


@dataclass(frozen=True)
class Config:
    output_dir: pathlib.Path
    log_dir: pathlib.Path
    settings_path: pathlib.Path
    headless: bool = True
    transfer_timeout: float = 30.0
    status_poll: float = 2.0
    content_poll_attempts: int = 0
    telegram_token: str = ""

    def preference_store(self) -> PreferenceStore:
        return PreferenceStore(self.settings_path)


def load_config() -> Config:
    # Load .env in the application directory (or fallback to defaults)
    if ENV_PATH.exists():
        load_dotenv(ENV_PATH)
    else:
        load_dotenv()
    return Config(
        output_dir=_resolve_path("OUTPUT_DIR", "downloads"),
        log_dir=_resolve_path("LOG_DIR", "logs"),
        settings_path=_resolve_path("SETTINGS_PATH", "settings.json"),
        headless=os.getenv("HEADLESS", "true").strip().lower() != "false",
        transfer_timeout=_env_float("TRANSFER_TIMEOUT_SEC", 30.0),
        status_poll=_env_float("STATUS_POLL_SEC", 2.0),
        content_poll_attempts=_env_int("CONTENT_POLL_ATTEMPTS", 0),
        telegram_token=os.getenv("TELEGRAM_BOT_TOKEN", "").strip(),
    )
