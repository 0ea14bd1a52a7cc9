"""Trace listing of the blocks in small-memory heaps."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Optional

from rtkernel.objects import ObjectClass, ObjectRegistry
from rtkernel.smallmem import THREAD_NAME_LEN, SmallMem, SmallMemError

_KIB = 1024
_MIB = 1024 * 1024


def format_block_size(size: int) -> str:
    """Five-column size field: bytes below 1K, else whole K, else whole M."""
    if size < _KIB:
        return f"{size:5d}"
    if size < _MIB:
        return f"{size // _KIB:4d}K"
    return f"{size // _MIB:4d}M"


def _matching(registry: ObjectRegistry, name: Optional[str]) -> Iterator[SmallMem]:
    key = name[: registry.name_max] if name is not None else None
    count = registry.length(ObjectClass.MEMORY)
    for obj in registry.objects(ObjectClass.MEMORY, count):
        if key is not None and obj.name[: registry.name_max] != key:
            continue
        if isinstance(obj, SmallMem):
            yield obj


def _heap_lines(heap: SmallMem) -> list[str]:
    lines = [
        "",
        "memory heap address:",
        f"name    : {heap.name}",
        f"total   : 0x{heap.total}",
        f"used    : 0x{heap.used}",
        f"max_used: 0x{heap.max_used}",
        f"heap_ptr: 0x{heap.address:08x}",
        f"lfree   : 0x{heap.address + heap.lfree:08x}",
        f"heap_end: 0x{heap.address + heap.heap_end:08x}",
        "",
        "--memory item information --",
    ]
    try:
        for block in heap.blocks():
            tag = block.thread[:THREAD_NAME_LEN].ljust(THREAD_NAME_LEN)
            line = (
                f"[0x{heap.address + block.offset:08x} - "
                f"{format_block_size(block.size)}] {tag}"
            )
            if block.pool is not heap:
                line += ": ***"
            lines.append(line)
    except SmallMemError as exc:
        lines.append(f"block list broken: {exc}")
    return lines


def trace_small_mems(registry: ObjectRegistry, name: Optional[str] = None) -> list[str]:
    """Lines describing every small-memory heap (or only the one named) and its blocks.

    A block whose pool is not the heap being listed is marked with ": ***".
    """
    lines: list[str] = []
    for heap in _matching(registry, name):
        lines.extend(_heap_lines(heap))
    return lines