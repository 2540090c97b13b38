import asyncio

from comickdl import engine
from comickdl.engine import CollectionContext, acquire
from comickdl.extractor import ContentItem

from conftest import FakeTransfers, run


def _items(*urls):
    return [ContentItem(url=u, ordinal=i) for i, u in enumerate(urls, start=1)]


def test_every_item_completes(tmp_path):
    items = _items(*[f"https://cdn.example.com/p/{i}.jpg" for i in range(1, 13)])
    transfers = FakeTransfers()
    written = run(
        acquire(items, CollectionContext("My: Manga", "4"), 0, transfers, tmp_path, show_progress=False)
    )
    assert written == 12
    chapter = tmp_path / "My_ Manga" / "Chapter 4"
    names = sorted(p.name for p in chapter.iterdir())
    assert names[0] == "001.jpg"
    assert names[-1] == "012.jpg"
    assert len(names) == 12


def test_failures_are_absorbed_and_not_counted(tmp_path):
    urls = [
        "https://cdn.example.com/p/1.png",
        "notaurl",
        "https://cdn.example.com/p/3.jpg",
        "https://cdn.example.com/p/4.webp?v=2",
        "https://cdn.example.com/p/5.jpg",
    ]
    transfers = FakeTransfers(
        {
            "https://cdn.example.com/p/3.jpg": "interrupt",
            "https://cdn.example.com/p/4.webp?v=2": "hang",
        }
    )

    async def scenario():
        try:
            return await acquire(
                _items(*urls),
                CollectionContext("Title", "1"),
                0,
                transfers,
                tmp_path,
                timeout=0.05,
                show_progress=False,
            )
        finally:
            await transfers.aclose()

    written = run(scenario())
    assert written == 2
    assert transfers.submitted == [u for u in urls if u != "notaurl"]
    chapter = tmp_path / "Title" / "Chapter 1"
    assert sorted(p.name for p in chapter.iterdir()) == ["001.png", "005.jpg"]


def test_image_delay_applies_after_every_item(tmp_path, monkeypatch):
    real_sleep = asyncio.sleep
    delays = []

    async def fake_sleep(seconds, *args, **kwargs):
        delays.append(seconds)
        await real_sleep(0)

    monkeypatch.setattr(engine.asyncio, "sleep", fake_sleep)
    items = _items("https://cdn.example.com/1.jpg", "bad", "https://cdn.example.com/3.jpg")
    transfers = FakeTransfers({"https://cdn.example.com/3.jpg": "refuse"})
    written = run(acquire(items, CollectionContext("T", "2"), 2.5, transfers, tmp_path, show_progress=False))
    assert written == 1
    assert delays.count(2.5) == 3


def test_empty_chapter_writes_nothing(tmp_path):
    written = run(acquire([], CollectionContext("T", "1"), 0, FakeTransfers(), tmp_path, show_progress=False))
    assert written == 0
    assert not (tmp_path / "T").exists()
