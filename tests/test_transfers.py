import asyncio

import pytest

from comickdl.transfers import TransferError, TransferState

from conftest import FakeTransfers, run


def test_submit_writes_file_and_reports_complete(tmp_path):
    transfers = FakeTransfers()
    dest = tmp_path / "a" / "001.jpg"

    async def scenario():
        tid = transfers.submit("https://cdn.example.com/1.jpg", dest)
        return tid, await transfers.wait(tid, timeout=5)

    tid, state = run(scenario())
    assert tid == 1
    assert state is TransferState.COMPLETE
    assert dest.read_bytes().startswith(b"\x89PNG")
    assert transfers.get(tid).size_bytes == dest.stat().st_size


@pytest.mark.parametrize("url", ["", "not a url", "ftp://cdn.example.com/1.jpg", "data:image/png;base64,AAAA"])
def test_submit_rejects_unusable_addresses(tmp_path, url):
    transfers = FakeTransfers()

    async def scenario():
        transfers.submit(url, tmp_path / "x.jpg")

    with pytest.raises(TransferError):
        run(scenario())


def test_interrupted_transfer(tmp_path):
    url = "https://cdn.example.com/broken.jpg"
    transfers = FakeTransfers({url: "interrupt"})

    async def scenario():
        tid = transfers.submit(url, tmp_path / "x.jpg")
        return tid, await transfers.wait(tid, timeout=5)

    tid, state = run(scenario())
    assert state is TransferState.INTERRUPTED
    assert "connection reset" in transfers.get(tid).error
    assert not (tmp_path / "x.jpg").exists()


def test_wait_gives_up_after_timeout_and_unsubscribes(tmp_path):
    url = "https://cdn.example.com/slow.jpg"
    transfers = FakeTransfers({url: "hang"})

    async def scenario():
        tid = transfers.submit(url, tmp_path / "x.jpg")
        state = await transfers.wait(tid, timeout=0.05)
        pending = dict(transfers._waiters)
        await transfers.aclose()
        return tid, state, pending

    tid, state, pending = run(scenario())
    assert state is None
    assert pending == {}
    assert transfers.get(tid).state is TransferState.INTERRUPTED


def test_listeners_see_terminal_states(tmp_path):
    seen = []
    transfers = FakeTransfers({"https://cdn.example.com/2.jpg": "interrupt"})
    transfers.add_listener(lambda t: seen.append((t.id, t.state)))

    async def scenario():
        a = transfers.submit("https://cdn.example.com/1.jpg", tmp_path / "1.jpg")
        b = transfers.submit("https://cdn.example.com/2.jpg", tmp_path / "2.jpg")
        await transfers.wait(a, timeout=5)
        await transfers.wait(b, timeout=5)

    run(scenario())
    assert sorted(seen) == [(1, TransferState.COMPLETE), (2, TransferState.INTERRUPTED)]


def test_closed_subsystem_refuses_new_transfers(tmp_path):
    transfers = FakeTransfers()

    async def scenario():
        await transfers.aclose()
        transfers.submit("https://cdn.example.com/1.jpg", tmp_path / "1.jpg")

    with pytest.raises(TransferError, match="closed"):
        run(scenario())


def test_submit_outside_event_loop_is_an_issuance_failure(tmp_path):
    with pytest.raises(TransferError):
        FakeTransfers().submit("https://cdn.example.com/1.jpg", tmp_path / "1.jpg")


def test_wait_on_finished_transfer_returns_immediately(tmp_path):
    transfers = FakeTransfers()

    async def scenario():
        tid = transfers.submit("https://cdn.example.com/1.jpg", tmp_path / "1.jpg")
        await transfers.wait(tid, timeout=5)
        return await asyncio.wait_for(transfers.wait(tid, timeout=5), 0.5)

    assert run(scenario()) is TransferState.COMPLETE


def test_only_recent_finished_transfers_are_kept(tmp_path):
    transfers = FakeTransfers(history=2)

    async def scenario():
        ids = []
        for n in range(1, 5):
            tid = transfers.submit(f"https://cdn.example.com/{n}.jpg", tmp_path / f"{n}.jpg")
            assert await transfers.wait(tid, timeout=5) is TransferState.COMPLETE
            ids.append(tid)
        return ids

    ids = run(scenario())
    assert [transfers.get(tid) is not None for tid in ids] == [False, False, True, True]
    assert len(transfers._transfers) == 2
