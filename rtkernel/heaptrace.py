"""Consistency check and trace listing of memory heaps held by a registry."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Optional

from rtkernel.memheap import (
    ALIGN_SIZE,
    MAGIC,
    MASK,
    OWNER_LEN,
    MemHeap,
    MemHeapError,
)
from rtkernel.objects import ObjectClass, ObjectRegistry
from rtkernel.smalltrace import format_block_size


@dataclass(frozen=True)
class HeapProblem:
    """The first damaged block found in a memory heap."""

    name: str
    address: int
    reason: str

    def __str__(self) -> str:
        return (
            "Memory block wrong:\n"
            f"name: {self.name}\n"
            f"item: 0x{self.address:08x}\n"
            f"reason: {self.reason}"
        )


def _matching(registry: ObjectRegistry, name: Optional[str]) -> Iterator[MemHeap]:
    key = name[: registry.name_max] if name is not None else None
    count = registry.length(ObjectClass.MEMHEAP)
    for obj in registry.objects(ObjectClass.MEMHEAP, count):
        if key is not None and obj.name[: registry.name_max] != key:
            continue
        if isinstance(obj, MemHeap):
            yield obj


def _check_one(heap: MemHeap) -> Optional[HeapProblem]:
    start = heap.start_addr
    end = start + heap.pool_size
    previous = None
    last_address = start + heap.block_list
    try:
        for block in heap.blocks():
            address = start + block.offset
            last_address = address
            if block.magic & MAGIC != MAGIC:
                return HeapProblem(heap.name, address, f"bad magic 0x{block.magic:08x}")
            if block.pool is not heap:
                return HeapProblem(heap.name, address, "block owned by another pool")
            nxt = start + block.next
            prv = start + block.prev
            if not (nxt <= end and prv >= start) or nxt % ALIGN_SIZE or prv % ALIGN_SIZE:
                return HeapProblem(heap.name, address, "block links outside the heap")
            if previous is not None and block.prev != previous.offset:
                return HeapProblem(
                    heap.name, start + previous.offset, "next block does not link back"
                )
            previous = block
    except MemHeapError as exc:
        return HeapProblem(heap.name, last_address, str(exc))
    return None


def check_heaps(registry: ObjectRegistry, name: Optional[str] = None) -> Optional[HeapProblem]:
    """Walk every memory heap (or only the one named) and report the first bad block.

    Returns None when every block checked is sound.
    """
    for heap in _matching(registry, name):
        problem = _check_one(heap)
        if problem is not None:
            return problem
    return None


def _heap_lines(heap: MemHeap) -> list[str]:
    lines = [
        "",
        "memory heap address:",
        f"name    : {heap.name}",
        f"heap_ptr: 0x{heap.start_addr:08x}",
        f"free    : 0x{heap.available_size:08x}",
        f"max_used: 0x{heap.max_used_size:08x}",
        f"size    : 0x{heap.pool_size:08x}",
        "",
        "--memory used information --",
    ]
    try:
        for block in heap.blocks():
            address = heap.start_addr + block.offset
            if block.magic & MASK != MAGIC:
                lines.append(f"[0x{address:08x} - incorrect magic: 0x{block.magic:08x}")
                break
            size = block.size
            if size < 0:
                break
            owner = block.owner[:OWNER_LEN].ljust(OWNER_LEN)
            lines.append(f"[0x{address:08x} - {format_block_size(size)}] {owner}")
    except MemHeapError as exc:
        lines.append(f"block list broken: {exc}")
    return lines


def trace_heaps(registry: ObjectRegistry, name: Optional[str] = None) -> list[str]:
    """Lines describing every memory heap (or only the one named) and its blocks."""
    lines: list[str] = []
    for heap in _matching(registry, name):
        lines.extend(_heap_lines(heap))
    return lines