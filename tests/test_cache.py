import asyncio

import pytest

from judolwatch.cache import EntryState, QueryCache
from judolwatch.constants import VerificationStatus
from judolwatch.errors import NetworkError
from judolwatch.models import DomainSummary, PageResult, QueryKey


class _Fetcher:
    """Returns a page whose total counts the calls made for that key."""

    def __init__(self):
        self.calls: list[QueryKey] = []
        self.fail_on: set[int] = set()
        self.gate: asyncio.Event | None = None

    async def __call__(self, key: QueryKey) -> PageResult:
        self.calls.append(key)
        call_number = len(self.calls)
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)
        if call_number in self.fail_on:
            raise NetworkError(f"fetch {call_number} failed")
        item = DomainSummary(id=f"{key.page}", domain_name=f"{key.search or 'all'}-{call_number}.com")
        return PageResult(items=(item,), total=call_number)


async def _drain(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def test_stale_window_must_be_shorter_than_eviction():
    with pytest.raises(ValueError):
        QueryCache(_Fetcher(), stale_seconds=1800, evict_seconds=1800)


@pytest.mark.asyncio
async def test_concurrent_resolves_share_one_fetch(clock):
    fetcher = _Fetcher()
    cache = QueryCache(fetcher, clock=clock)
    key = QueryKey(search="slot")

    first, second = await asyncio.gather(cache.resolve(key), cache.resolve(key))

    assert first is second
    assert len(fetcher.calls) == 1
    assert cache.state_of(key) == EntryState.FRESH


@pytest.mark.asyncio
async def test_fresh_entry_served_without_fetch(clock):
    fetcher = _Fetcher()
    cache = QueryCache(fetcher, clock=clock)
    key = QueryKey()

    page = await cache.resolve(key)
    clock.advance(299)
    again = await cache.resolve(key)

    assert again is page
    assert len(fetcher.calls) == 1


@pytest.mark.asyncio
async def test_stale_entry_served_with_single_revalidation(clock):
    fetcher = _Fetcher()
    cache = QueryCache(fetcher, clock=clock)
    key = QueryKey()
    updates = []
    cache.subscribe(lambda k, data: updates.append((k, data.total)))

    original = await cache.resolve(key)
    clock.advance(301)

    stale = await cache.resolve(key)
    stale_again = await cache.resolve(key)
    assert stale is original
    assert stale_again is original
    assert cache.is_fetching(key)

    await _drain()

    assert len(fetcher.calls) == 2
    assert cache.peek(key).total == 2
    assert cache.state_of(key) == EntryState.FRESH
    assert updates[-1] == (key, 2)


@pytest.mark.asyncio
async def test_background_failure_reported_once_then_stale(clock):
    fetcher = _Fetcher()
    fetcher.fail_on = {2}
    cache = QueryCache(fetcher, clock=clock)
    key = QueryKey()

    original = await cache.resolve(key)
    clock.advance(301)
    assert await cache.resolve(key) is original
    await _drain()

    assert cache.state_of(key) == EntryState.ERROR
    with pytest.raises(NetworkError):
        await cache.resolve(key)
    assert cache.state_of(key) == EntryState.STALE

    # Next resolve serves the old data and tries again.
    assert await cache.resolve(key) is original
    await _drain()
    assert cache.peek(key).total == 3


@pytest.mark.asyncio
async def test_foreground_failure_leaves_no_entry(clock):
    fetcher = _Fetcher()
    fetcher.fail_on = {1}
    cache = QueryCache(fetcher, clock=clock)
    key = QueryKey()

    with pytest.raises(NetworkError):
        await cache.resolve(key)

    assert cache.state_of(key) is None
    assert not cache.is_fetching(key)
    page = await cache.resolve(key)
    assert page.total == 2


@pytest.mark.asyncio
async def test_expired_entry_is_evicted(clock):
    fetcher = _Fetcher()
    cache = QueryCache(fetcher, clock=clock)
    key = QueryKey()

    await cache.resolve(key)
    clock.advance(1800)

    assert cache.peek(key) is None
    page = await cache.resolve(key)
    assert page.total == 2
    assert len(fetcher.calls) == 2


@pytest.mark.asyncio
async def test_distinct_keys_never_share_results(clock):
    fetcher = _Fetcher()
    fetcher.gate = asyncio.Event()
    cache = QueryCache(fetcher, clock=clock)
    key_a = QueryKey(search="a")
    key_b = QueryKey(search="b")

    task_a = asyncio.ensure_future(cache.resolve(key_a))
    task_b = asyncio.ensure_future(cache.resolve(key_b))
    await _drain()
    fetcher.gate.set()
    page_a, page_b = await asyncio.gather(task_a, task_b)

    assert page_a.items[0].domain_name.startswith("a-")
    assert page_b.items[0].domain_name.startswith("b-")
    assert cache.peek(key_a) is page_a
    assert cache.peek(key_b) is page_b


@pytest.mark.asyncio
async def test_force_refetches_fresh_entry(clock):
    fetcher = _Fetcher()
    cache = QueryCache(fetcher, clock=clock)
    key = QueryKey()

    await cache.resolve(key)
    page = await cache.resolve(key, force=True)

    assert page.total == 2


@pytest.mark.asyncio
async def test_update_items_patches_every_cached_page(clock):
    fetcher = _Fetcher()
    cache = QueryCache(fetcher, clock=clock)
    key_one = QueryKey(page=1)
    key_other = QueryKey(page=1, search="x")
    await cache.resolve(key_one)
    await cache.resolve(key_other)
    notified = []
    cache.subscribe(lambda k, data: notified.append(k))

    patched = cache.update_items(
        lambda item: item.id == "1",
        lambda item: DomainSummary(
            id=item.id,
            domain_name=item.domain_name,
            status=VerificationStatus.JUDOL,
        ),
    )

    assert patched == 2
    assert cache.peek(key_one).items[0].status == VerificationStatus.JUDOL
    assert set(notified) == {key_one, key_other}


@pytest.mark.asyncio
async def test_aclose_cancels_inflight_fetches(clock):
    fetcher = _Fetcher()
    fetcher.gate = asyncio.Event()
    cache = QueryCache(fetcher, clock=clock)
    key = QueryKey()

    task = asyncio.ensure_future(cache.resolve(key))
    await _drain()
    assert cache.is_fetching(key)

    await cache.aclose()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert cache.stats()["inflight"] == 0
