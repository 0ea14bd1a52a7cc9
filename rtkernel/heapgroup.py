"""A system heap backed by several memory heaps, falling back between them."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Optional

from rtkernel.memheap import MemHeap, MemHeapError
from rtkernel.objects import ObjectClass


class HeapGroup:
    """Allocates from a default heap and, when it is full, from the other heaps."""

    def __init__(self, default: MemHeap, heaps: Optional[Iterable[MemHeap]] = None) -> None:
        self.default = default
        self._heaps = list(heaps) if heaps is not None else None

    def _others(self) -> list[MemHeap]:
        if self._heaps is not None:
            candidates = self._heaps
        else:
            registry = self.default.registry
            count = registry.length(ObjectClass.MEMHEAP)
            candidates = [
                obj for obj in registry.objects(ObjectClass.MEMHEAP, count)
                if isinstance(obj, MemHeap)
            ]
        return [heap for heap in candidates if heap is not self.default]

    def alloc(self, size: int) -> tuple[MemHeap, int]:
        """Allocate size bytes; returns the heap used and the data address."""
        try:
            return self.default, self.default.alloc(size)
        except MemHeapError:
            pass
        for heap in self._others():
            try:
                return heap, heap.alloc(size)
            except MemHeapError:
                continue
        raise MemHeapError(f"no heap has room for {size} bytes")

    def free(self, heap: MemHeap, addr: Optional[int]) -> None:
        """Release a block obtained from this group."""
        heap.free(addr)

    def realloc(
        self, heap: MemHeap, addr: Optional[int], newsize: int
    ) -> Optional[tuple[MemHeap, int]]:
        """Resize a block, moving it to any heap of the group if its own is full."""
        if addr is None:
            return self.alloc(newsize)
        if newsize == 0:
            self.free(heap, addr)
            return None
        try:
            new_addr = heap.realloc(addr, newsize)
        except MemHeapError:
            pass
        else:
            return heap, new_addr

        oldsize = heap.block_size(addr)
        new_heap, new_addr = self.alloc(newsize)
        data = heap.read(addr, min(oldsize, newsize))
        new_heap.write(new_addr, data)
        self.free(heap, addr)
        return new_heap, new_addr