import pytest

from rtkernel.objects import ObjectRegistry
from rtkernel.smallcheck import BadBlock, check_small_mems
from rtkernel.smallmem import SmallMem


@pytest.fixture
def registry():
    return ObjectRegistry()


def test_sound_heap_reports_nothing(registry):
    heap = SmallMem("heap", 512, registry)
    a = heap.alloc(20)
    heap.alloc(40)
    heap.free(a)
    assert check_small_mems(registry) is None


def test_foreign_pool_is_reported(registry):
    heap = SmallMem("heap", 512, registry)
    other = SmallMem("other", 512, registry)
    addr = heap.alloc(20)
    target = next(b for b in heap.blocks() if b.data_address == addr)
    target.pool = other
    bad = check_small_mems(registry)
    assert isinstance(bad, BadBlock)
    assert bad.name == "heap"
    assert bad.address == target.offset
    assert bad.pool is other
    assert bad.size == 20
    assert "Memory block wrong:" in str(bad)


def test_name_filter_skips_other_heaps(registry):
    heap = SmallMem("heap", 512, registry)
    SmallMem("clean", 512, registry)
    addr = heap.alloc(20)
    target = next(b for b in heap.blocks() if b.data_address == addr)
    target.pool = None
    assert check_small_mems(registry, "clean") is None
    bad = check_small_mems(registry, "heap")
    assert bad is not None and bad.name == "heap"


def test_detached_heap_is_not_checked(registry):
    heap = SmallMem("heap", 512, registry)
    addr = heap.alloc(20)
    target = next(b for b in heap.blocks() if b.data_address == addr)
    target.pool = None
    heap.detach()
    assert check_small_mems(registry) is None