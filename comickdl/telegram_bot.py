#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Telegram front end: start a batch from a chat and poll its progress."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Optional, Tuple

from telegram import Update
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

from .catalog import CatalogError, is_listing_url
from .cli import setup_logging, summarize
from .jobs import BatchJob, run_single_chapter_job
from .settings import Config, load_config

LOG = logging.getLogger("comickdl.telegram_bot")

URL_RE = re.compile(r"https?://\S+", re.I)
RANGE_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*(?:-|to|\s)\s*(\d+(?:\.\d+)?)$", re.I)
SINGLE_RE = re.compile(r"^(\d+(?:\.\d+)?)$")

JOB_KEY = "batch_job"
RUNNING_KEY = "batch_running"


def extract_url_and_range(text: str) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """Return (url, from, to) from inputs such as "<URL>", "<URL> 3-10", "<URL> 7"."""
    if not text:
        return None, None, None
    m_url = URL_RE.search(text)
    if not m_url:
        return None, None, None
    url = m_url.group(0).strip().rstrip(").,;\n\r")
    rest = (text[: m_url.start()] + " " + text[m_url.end():]).strip()
    if not rest:
        return url, None, None
    m = RANGE_RE.match(rest)
    if m:
        return url, m.group(1), m.group(2)
    m = SINGLE_RE.match(rest)
    if m:
        return url, m.group(1), m.group(1)
    return url, "", ""


def _config(context: ContextTypes.DEFAULT_TYPE) -> Config:
    return context.bot_data["config"]


async def start_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(
        "Send a comick.io series URL with an optional chapter range, or a chapter URL.\n"
        "Examples:\n"
        "- https://comick.io/comic/some-title 1-20\n"
        "- https://comick.io/comic/some-title 7\n"
        "- https://comick.io/comic/some-title/abcd-chapter-3-en\n"
        "Use /status to follow a running download."
    )


async def help_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await start_cmd(update, context)


async def status_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    job: Optional[BatchJob] = context.bot_data.get(JOB_KEY)
    if job is None:
        await update.message.reply_text("No download in progress.")
        return
    await update.message.reply_text(job.status().describe())


async def _run_batch(message, context: ContextTypes.DEFAULT_TYPE, job: BatchJob, url, lo, hi) -> None:
    try:
        session = await asyncio.to_thread(job.run, url, lo, hi)
    except CatalogError as exc:
        await message.reply_text(f"Error: {exc}")
        return
    except Exception as exc:
        LOG.exception("Batch job failed")
        await message.reply_text(f"Error during download: {exc}")
        return
    finally:
        context.bot_data[RUNNING_KEY] = False
    title = job.collection.title if job.collection else "manga"
    await message.reply_text(f"{title}: download finished.\n{summarize(session.outcomes)}")


async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not update.message or not update.message.text:
        return
    url, lo, hi = extract_url_and_range(update.message.text.strip())
    if not url:
        await update.message.reply_text("I could not find a valid URL in your message.")
        return
    if lo == "" or hi == "":
        await update.message.reply_text("Please enter valid chapter numbers.")
        return

    config = _config(context)
    settings = config.preference_store().load()

    if not is_listing_url(url):
        status = await update.message.reply_text("Starting download...")
        try:
            outcome = await asyncio.to_thread(
                run_single_chapter_job, url, config, settings, False
            )
        except Exception as exc:
            LOG.exception("Single chapter download failed")
            await status.edit_text(f"Error: {exc}")
            return
        await status.edit_text(outcome.message)
        return

    if context.bot_data.get(RUNNING_KEY):
        job: Optional[BatchJob] = context.bot_data.get(JOB_KEY)
        text = job.status().describe() if job else "A download is already running."
        await update.message.reply_text(f"A download is already running. {text}")
        return

    job = BatchJob(config, settings, show_progress=False)
    context.bot_data[JOB_KEY] = job
    context.bot_data[RUNNING_KEY] = True
    context.application.create_task(_run_batch(update.message, context, job, url, lo, hi))
    await update.message.reply_text(
        "Download started in background. Use /status to check progress."
    )


def build_application(token: str, config: Config) -> Application:
    app = Application.builder().token(token).build()
    app.bot_data["config"] = config
    app.add_handler(CommandHandler("start", start_cmd))
    app.add_handler(CommandHandler("help", help_cmd))
    app.add_handler(CommandHandler("status", status_cmd))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))
    return app


def main() -> None:
    config = load_config()
    setup_logging(config.log_dir, "bot.log")
    if not config.telegram_token:
        raise RuntimeError("Missing TELEGRAM_BOT_TOKEN in the environment or .env file.")
    print("Bot started. Send a URL via Telegram.")
    build_application(config.telegram_token, config).run_polling(drop_pending_updates=True)


if __name__ == "__main__":
    main()
