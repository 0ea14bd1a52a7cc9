import threading
import time

import pytest

from rtkernel.mempool import POINTER_SIZE, MemPool, PoolDetached, PoolTimeout
from rtkernel.objects import ObjectClass, ObjectRegistry


@pytest.fixture
def registry():
    return ObjectRegistry()


def test_counts_after_creation(registry):
    pool = MemPool("pool", 4, 16, registry)
    assert pool.block_total_count == 4
    assert pool.block_free_count == 4
    assert pool.size == (16 + POINTER_SIZE) * 4


def test_block_size_is_aligned(registry):
    pool = MemPool("pool", 2, 5, registry)
    assert pool.block_size == 8


def test_from_region_counts_blocks(registry):
    pool = MemPool.from_region("region", 100, 10, registry)
    assert pool.block_total_count == 6
    assert pool.size == 100


def test_from_region_too_small(registry):
    with pytest.raises(ValueError):
        MemPool.from_region("region", 4, 16, registry)


def test_registered_under_mempool(registry):
    pool = MemPool("pool", 2, 8, registry)
    assert registry.find("pool", ObjectClass.MEMPOOL) is pool


def test_alloc_distinct_blocks_and_free(registry):
    pool = MemPool("pool", 3, 8, registry)
    blocks = [pool.alloc(0) for _ in range(3)]
    assert len(set(blocks)) == 3
    assert pool.block_free_count == 0
    for block in blocks:
        pool.free(block)
    assert pool.block_free_count == 3


def test_first_block_follows_link_word(registry):
    pool = MemPool("pool", 3, 8, registry)
    assert pool.alloc(0) == pool.start_address + POINTER_SIZE


def test_freed_block_is_reused_first(registry):
    pool = MemPool("pool", 3, 8, registry)
    first = pool.alloc(0)
    pool.alloc(0)
    pool.free(first)
    assert pool.alloc(0) == first


def test_empty_pool_no_wait_times_out(registry):
    pool = MemPool("pool", 1, 8, registry)
    pool.alloc(0)
    with pytest.raises(PoolTimeout):
        pool.alloc(0)


def test_empty_pool_timed_wait_times_out(registry):
    pool = MemPool("pool", 1, 8, registry)
    pool.alloc(0)
    with pytest.raises(PoolTimeout):
        pool.alloc(0.05)


def test_waiter_gets_freed_block(registry):
    pool = MemPool("pool", 1, 8, registry)
    block = pool.alloc(0)
    result = {}

    def waiter():
        result["block"] = pool.alloc(None)

    thread = threading.Thread(target=waiter)
    thread.start()
    for _ in range(200):
        if pool.waiting:
            break
        time.sleep(0.01)
    pool.free(block)
    thread.join(timeout=5)
    assert result["block"] == block


def test_detach_wakes_waiters(registry):
    pool = MemPool("pool", 1, 8, registry)
    pool.alloc(0)
    errors = []

    def waiter():
        try:
            pool.alloc(-1)
        except PoolDetached as exc:
            errors.append(exc)

    thread = threading.Thread(target=waiter)
    thread.start()
    for _ in range(200):
        if pool.waiting:
            break
        time.sleep(0.01)
    pool.detach()
    thread.join(timeout=5)
    assert len(errors) == 1
    assert registry.find("pool", ObjectClass.MEMPOOL) is None


def test_alloc_after_detach_raises(registry):
    pool = MemPool("pool", 2, 8, registry)
    pool.detach()
    with pytest.raises(PoolDetached):
        pool.alloc(0)


def test_hooks_receive_pool_and_block(registry):
    pool = MemPool("pool", 2, 8, registry)
    seen = []
    pool.set_alloc_hook(lambda p, b: seen.append(("alloc", p, b)))
    pool.set_free_hook(lambda p, b: seen.append(("free", p, b)))
    block = pool.alloc(0)
    pool.free(block)
    assert seen == [("alloc", pool, block), ("free", pool, block)]


def test_free_unknown_block_raises(registry):
    pool = MemPool("pool", 2, 8, registry)
    with pytest.raises(ValueError):
        pool.free(12345)


def test_double_free_raises(registry):
    pool = MemPool("pool", 2, 8, registry)
    block = pool.alloc(0)
    pool.free(block)
    with pytest.raises(ValueError):
        pool.free(block)


def test_free_none_leaves_counts(registry):
    pool = MemPool("pool", 2, 8, registry)
    pool.free(None)
    assert pool.block_free_count == 2


def test_invalid_arguments(registry):
    with pytest.raises(ValueError):
        MemPool("pool", 0, 8, registry)