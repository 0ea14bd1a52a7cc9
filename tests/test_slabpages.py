import pytest

from rtkernel.slabpages import PageAllocator

PAGE = 4096
START = 0x10000


def make(npages=8):
    return PageAllocator(START, npages, PAGE)


def total_free(pages):
    return sum(count for _, count in pages.free_runs())


def test_initial_single_run():
    pages = make(8)
    assert pages.free_runs() == [(START, 8)]


def test_alloc_splits_first_run():
    pages = make(8)
    assert pages.alloc(3) == START
    assert pages.free_runs() == [(START + 3 * PAGE, 5)]


def test_alloc_exact_fit_removes_run():
    pages = make(4)
    assert pages.alloc(4) == START
    assert pages.free_runs() == []
    assert pages.alloc(1) is None


def test_alloc_zero_and_too_large():
    pages = make(4)
    assert pages.alloc(0) is None
    assert pages.alloc(5) is None
    assert pages.free_runs() == [(START, 4)]


def test_alloc_negative_rejected():
    with pytest.raises(ValueError):
        make().alloc(-1)


def test_free_restores_whole_region():
    pages = make(8)
    a = pages.alloc(2)
    b = pages.alloc(3)
    c = pages.alloc(3)
    pages.free(b, 3)
    pages.free(a, 2)
    pages.free(c, 3)
    assert pages.free_runs() == [(START, 8)]


def test_free_in_middle_merges_both_sides():
    pages = make(6)
    a = pages.alloc(2)
    b = pages.alloc(2)
    c = pages.alloc(2)
    pages.free(a, 2)
    pages.free(c, 2)
    assert pages.free_runs() == [(a, 2), (c, 2)]
    pages.free(b, 2)
    assert pages.free_runs() == [(START, 6)]


def test_free_keeps_address_order():
    pages = make(6)
    addrs = [pages.alloc(1) for _ in range(6)]
    for addr in (addrs[4], addrs[0], addrs[2]):
        pages.free(addr, 1)
    runs = pages.free_runs()
    assert [addr for addr, _ in runs] == sorted(addr for addr, _ in runs)
    assert total_free(pages) == 3


def test_first_fit_reuses_lowest_hole():
    pages = make(6)
    a = pages.alloc(2)
    pages.alloc(2)
    pages.free(a, 2)
    assert pages.alloc(1) == a


def test_double_free_rejected():
    pages = make(4)
    a = pages.alloc(2)
    pages.free(a, 2)
    with pytest.raises(ValueError):
        pages.free(a, 2)


def test_overlapping_free_rejected():
    pages = make(4)
    a = pages.alloc(2)
    with pytest.raises(ValueError):
        pages.free(a, 3)


def test_misaligned_free_rejected():
    pages = make(4)
    a = pages.alloc(2)
    with pytest.raises(ValueError):
        pages.free(a + 8, 1)


def test_free_outside_region_rejected():
    pages = make(4)
    with pytest.raises(ValueError):
        pages.free(START + 4 * PAGE, 1)


@pytest.mark.parametrize("page_size", [0, 3, 1000])
def test_bad_page_size_rejected(page_size):
    with pytest.raises(ValueError):
        PageAllocator(0, 4, page_size)


def test_bad_start_rejected():
    with pytest.raises(ValueError):
        PageAllocator(100, 4, PAGE)


def test_alloc_free_cycle_conserves_pages():
    pages = make(16)
    held = []
    for count in (1, 2, 3, 4):
        held.append((pages.alloc(count), count))
    assert total_free(pages) == 6
    for addr, count in reversed(held):
        pages.free(addr, count)
    assert pages.free_runs() == [(START, 16)]