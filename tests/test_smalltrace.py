import pytest

from rtkernel.objects import ObjectRegistry
from rtkernel.smallmem import SmallMem
from rtkernel.smalltrace import format_block_size, trace_small_mems


def _block_lines(lines):
    return [line for line in lines if line.startswith("[0x")]


@pytest.mark.parametrize("size", [0, 5, 1023, 1024, 4096, 1024 * 1024, 3 * 1024 * 1024])
def test_format_block_size_is_five_columns(size):
    assert len(format_block_size(size)) == 5


def test_format_block_size_bytes():
    assert format_block_size(1023).strip() == "1023"


def test_format_block_size_kilobytes():
    text = format_block_size(2048)
    assert text.endswith("K")
    assert int(text[:-1]) == 2


def test_format_block_size_megabytes():
    text = format_block_size(5 * 1024 * 1024)
    assert text.endswith("M")
    assert int(text[:-1]) == 5


def test_format_block_size_truncates_kilobytes():
    assert format_block_size(2047) == format_block_size(1024)


def test_trace_lists_heap_header():
    registry = ObjectRegistry()
    heap = SmallMem("heap", 256, registry)
    lines = trace_small_mems(registry)
    assert "name    : heap" in lines
    assert f"total   : 0x{heap.total}" in lines
    assert "--memory item information --" in lines


def test_trace_lists_every_block():
    registry = ObjectRegistry()
    heap = SmallMem("heap", 512, registry)
    heap.alloc(20)
    heap.alloc(40)
    lines = trace_small_mems(registry)
    assert len(_block_lines(lines)) == len(list(heap.blocks()))


def test_trace_shows_usage_and_owner():
    registry = ObjectRegistry()
    heap = SmallMem("heap", 512, registry)
    addr = heap.alloc(20)
    lines = trace_small_mems(registry)
    assert f"used    : 0x{heap.used}" in lines
    first = next(heap.blocks())
    assert first.data_address == addr
    block_lines = _block_lines(lines)
    assert block_lines[0].endswith("] " + first.thread)
    assert format_block_size(first.size) in block_lines[0]


def test_trace_marks_foreign_block():
    registry = ObjectRegistry()
    heap = SmallMem("heap", 512, registry)
    other = SmallMem("other", 256, registry)
    heap.alloc(20)
    next(heap.blocks()).pool = other
    lines = trace_small_mems(registry, "heap")
    marked = [line for line in _block_lines(lines) if line.endswith(": ***")]
    assert len(marked) == 1


def test_trace_sound_heap_has_no_marks():
    registry = ObjectRegistry()
    heap = SmallMem("heap", 512, registry)
    addr = heap.alloc(20)
    heap.free(addr)
    lines = trace_small_mems(registry)
    assert not any(line.endswith(": ***") for line in lines)


def test_trace_filters_by_name():
    registry = ObjectRegistry()
    SmallMem("a", 256, registry)
    SmallMem("b", 256, registry)
    lines = trace_small_mems(registry, "a")
    assert "name    : a" in lines
    assert "name    : b" not in lines


def test_trace_unknown_name_is_empty():
    registry = ObjectRegistry()
    SmallMem("a", 256, registry)
    assert trace_small_mems(registry, "zzz") == []


def test_trace_without_name_lists_all_heaps():
    registry = ObjectRegistry()
    SmallMem("a", 256, registry)
    SmallMem("b", 256, registry)
    lines = trace_small_mems(registry)
    assert sum(1 for line in lines if line == "memory heap address:") == 2