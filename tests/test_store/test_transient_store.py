# tests/test_store/test_transient_store.py

"""
Eviction lifecycle. Timers run on the real event loop with short TTLs, so
each test sleeps past the relevant deadline with some margin.
"""

import asyncio

import pytest

from app.core.storage import MediaStorage
from app.services.transient_store import TransientStore


# ─────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────

@pytest.fixture()
def storage(tmp_path) -> MediaStorage:
    s = MediaStorage(root=tmp_path / "videos")
    s.prepare()
    return s


@pytest.fixture()
def store(storage) -> TransientStore:
    return TransientStore(storage, default_ttl=300)


def _put(storage: MediaStorage, media_id: str, size: int = 16):
    path = storage.path_for(media_id)
    path.write_bytes(b"x" * size)
    return path


# ─────────────────────────────────────────────────────────────
# Expiry
# ─────────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_file_is_deleted_after_ttl(store, storage):
    path = _put(storage, "video_a")
    store.adopt("video_a", ttl=0.1)

    await asyncio.sleep(0.3)
    await store.wait_idle()

    assert not path.exists()
    assert "video_a" not in store
    assert len(store) == 0


@pytest.mark.anyio
async def test_reschedule_replaces_instead_of_stacking(store, storage):
    path = _put(storage, "video_a")
    store.schedule("video_a", 0.2)

    await asyncio.sleep(0.1)
    store.reschedule("video_a", 0.4)
    assert len(store) == 1

    # past the first deadline, before the second
    await asyncio.sleep(0.25)
    await store.wait_idle()
    assert path.exists()
    assert "video_a" in store

    await asyncio.sleep(0.35)
    await store.wait_idle()
    assert not path.exists()
    assert "video_a" not in store


@pytest.mark.anyio
async def test_replaced_timer_never_deletes(store, storage):
    path = _put(storage, "video_a")
    store.schedule("video_a", 0.05)
    store.schedule("video_a", 30)

    await asyncio.sleep(0.2)
    await store.wait_idle()

    assert path.exists()
    assert "video_a" in store


@pytest.mark.anyio
async def test_cancel_prevents_deletion(store, storage):
    path = _put(storage, "video_a")
    store.schedule("video_a", 0.05)

    assert store.cancel("video_a") is True
    assert store.cancel("video_a") is False

    await asyncio.sleep(0.2)
    await store.wait_idle()
    assert path.exists()


@pytest.mark.anyio
async def test_ids_expire_independently(store, storage):
    a = _put(storage, "video_a")
    b = _put(storage, "video_b")
    store.schedule("video_a", 0.05)
    store.schedule("video_b", 30)

    await asyncio.sleep(0.2)
    await store.wait_idle()

    assert not a.exists()
    assert b.exists()
    assert "video_b" in store


@pytest.mark.anyio
async def test_drain_all_cancels_without_deleting(store, storage):
    a = _put(storage, "video_a")
    b = _put(storage, "video_b")
    store.schedule("video_a", 0.05)
    store.schedule("video_b", 0.05)

    assert store.drain_all() == 2
    assert len(store) == 0

    await asyncio.sleep(0.2)
    await store.wait_idle()
    assert a.exists() and b.exists()


@pytest.mark.anyio
async def test_expiry_of_already_missing_file_is_quiet(store, storage):
    store.schedule("video_gone", 0.05)

    await asyncio.sleep(0.2)
    await store.wait_idle()

    assert "video_gone" not in store


# ─────────────────────────────────────────────────────────────
# Adopt / deadline
# ─────────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_adopt_schedules_default_ttl(store, storage):
    _put(storage, "video_a")
    loop = asyncio.get_running_loop()

    deadline = store.adopt("video_a")

    assert store.deadline("video_a") == deadline
    assert abs(deadline - (loop.time() + 300)) < 1
    store.drain_all()


@pytest.mark.anyio
async def test_adopt_twice_is_rejected(store, storage):
    _put(storage, "video_a")
    store.adopt("video_a")

    with pytest.raises(ValueError):
        store.adopt("video_a")
    store.drain_all()


def test_deadline_of_unknown_id(store):
    assert store.deadline("video_nope") is None


# ─────────────────────────────────────────────────────────────
# open_media / evict_now
# ─────────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_open_media_slides_deadline_and_returns_size(store, storage):
    _put(storage, "video_a", size=42)
    first = store.schedule("video_a", 5)

    reader, size = await store.open_media("video_a")
    await reader.aclose()

    assert size == 42
    assert store.deadline("video_a") > first
    store.drain_all()


@pytest.mark.anyio
async def test_open_media_tracks_untracked_existing_file(store, storage):
    _put(storage, "video_a")

    reader, size = await store.open_media("video_a")
    await reader.aclose()

    assert size == 16
    assert "video_a" in store
    store.drain_all()


@pytest.mark.anyio
async def test_open_media_missing_file_drops_entry(store):
    store.schedule("video_a", 30)

    assert await store.open_media("video_a") is None
    assert "video_a" not in store


@pytest.mark.anyio
async def test_open_handle_survives_eviction(store, storage):
    _put(storage, "video_a", size=64)
    store.adopt("video_a")

    reader, size = await store.open_media("video_a")
    assert await store.evict_now("video_a") is True
    assert not storage.path_for("video_a").exists()

    async with reader:
        assert await reader.read() == b"x" * size


@pytest.mark.anyio
async def test_evict_now_deletes_and_cancels(store, storage):
    path = _put(storage, "video_a")
    store.adopt("video_a")

    assert await store.evict_now("video_a") is True
    assert not path.exists()
    assert "video_a" not in store

    # idempotent
    assert await store.evict_now("video_a") is False


@pytest.mark.anyio
async def test_concurrent_open_and_evict_leave_consistent_state(store, storage):
    _put(storage, "video_a")
    store.adopt("video_a")

    results = await asyncio.gather(
        store.open_media("video_a"),
        store.evict_now("video_a"),
        store.open_media("video_a"),
    )
    reader, size = results[0]
    async with reader:
        assert len(await reader.read()) == size

    assert results[1] is True
    assert results[2] is None
    assert not storage.path_for("video_a").exists()
    assert "video_a" not in store
