"""Small-memory allocator: first-fit blocks threaded through one heap."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Optional

from rtkernel.objects import KernelObject, ObjectClass, ObjectRegistry

ALIGN_SIZE = 4
"""Every block and every request is aligned to this many bytes."""

HEADER_SIZE = 16
"""Bytes taken by the header in front of each block's data."""

MIN_SIZE = 12
MIN_SIZE_ALIGNED = (MIN_SIZE + ALIGN_SIZE - 1) & ~(ALIGN_SIZE - 1)
"""Smallest data area a block is given."""

THREAD_NAME_LEN = 4
FREE_TAG = " " * THREAD_NAME_LEN


def _align(value: int, align: int = ALIGN_SIZE) -> int:
    return (value + align - 1) & ~(align - 1)


def _align_down(value: int, align: int = ALIGN_SIZE) -> int:
    return value & ~(align - 1)


def _tag(name: str) -> str:
    return name.split("\0", 1)[0][:THREAD_NAME_LEN].ljust(THREAD_NAME_LEN)


def _current_tag() -> str:
    return _tag(threading.current_thread().name)


class SmallMemError(Exception):
    """Raised on a failed allocation or a misuse of a small-memory heap."""


@dataclass(eq=False)
class SmallBlock:
    """Header of one block: heap offsets of itself and its neighbours."""

    offset: int
    next: int
    prev: int
    used: bool
    pool: Optional["SmallMem"] = field(default=None, repr=False)
    thread: str = FREE_TAG

    @property
    def size(self) -> int:
        """Bytes of data the block holds."""
        return self.next - self.offset - HEADER_SIZE

    @property
    def data_address(self) -> int:
        """Address handed out for the block's data."""
        return self.offset + HEADER_SIZE


class SmallMem(KernelObject):
    """A heap of size bytes managed as a list of adjacent blocks."""

    def __init__(self, name: str, size: int, registry: Optional[ObjectRegistry] = None) -> None:
        super().__init__()
        end_align = _align_down(size)
        if end_align <= 2 * HEADER_SIZE:
            raise SmallMemError(f"mem init, heap of {size} bytes is too small")
        self.registry = registry if registry is not None else ObjectRegistry()
        self.algorithm = "small"
        self.address = 0
        self.mem_size_aligned = end_align - 2 * HEADER_SIZE
        self.total = self.mem_size_aligned
        self.used = 0
        self.max_used = 0
        self._memory = bytearray(end_align)
        self.heap_end = self.mem_size_aligned + HEADER_SIZE
        self._items: dict[int, SmallBlock] = {
            0: SmallBlock(0, self.heap_end, 0, False, self, "INIT"),
            self.heap_end: SmallBlock(
                self.heap_end, self.heap_end, self.heap_end, True, self, "INIT"
            ),
        }
        self.lfree = 0
        self.registry.init_object(self, ObjectClass.MEMORY, name)

    def _check_live(self) -> None:
        if self.object_class() != ObjectClass.MEMORY or not self.is_system_object():
            raise SmallMemError(f"heap {self.name!r} is not attached")

    def _note_usage(self) -> None:
        if self.max_used < self.used:
            self.max_used = self.used

    def _used_block(self, addr: int) -> SmallBlock:
        if addr % ALIGN_SIZE:
            raise SmallMemError(f"address {addr} is not aligned")
        block = self._items.get(addr - HEADER_SIZE)
        if block is None or block.offset == self.heap_end or block.pool is not self:
            raise SmallMemError(f"address {addr} was not allocated from {self.name!r}")
        if not block.used:
            raise SmallMemError(f"address {addr} is not in use")
        return block

    def _plug_holes(self, mem: SmallBlock) -> None:
        items = self._items
        nmem = items[mem.next]
        if nmem is not mem and not nmem.used and nmem.offset != self.heap_end:
            if self.lfree == nmem.offset:
                self.lfree = mem.offset
            del items[nmem.offset]
            mem.next = nmem.next
            items[nmem.next].prev = mem.offset
        pmem = items[mem.prev]
        if pmem is not mem and not pmem.used:
            if self.lfree == mem.offset:
                self.lfree = pmem.offset
            del items[mem.offset]
            pmem.next = mem.next
            items[mem.next].prev = pmem.offset

    def _split(self, mem: SmallBlock, data_size: int) -> SmallBlock:
        ptr2 = mem.offset + HEADER_SIZE + data_size
        mem2 = SmallBlock(ptr2, mem.next, mem.offset, False, self, FREE_TAG)
        self._items[ptr2] = mem2
        mem.next = ptr2
        if mem2.next != self.heap_end:
            self._items[mem2.next].prev = ptr2
        return mem2

    def detach(self) -> None:
        """Remove the heap from its registry."""
        self._check_live()
        self.registry.detach(self)

    def alloc(self, size: int) -> Optional[int]:
        """Allocate at least size bytes and return the data address.

        Returns None for a size of zero; raises SmallMemError when no block fits.
        """
        if size == 0:
            return None
        if size < 0:
            raise ValueError("size must not be negative")
        self._check_live()
        size = max(_align(size), MIN_SIZE_ALIGNED)
        if size > self.mem_size_aligned:
            raise SmallMemError(f"no memory for {size} bytes")

        ptr = self.lfree
        while ptr <= self.mem_size_aligned - size:
            mem = self._items[ptr]
            room = mem.next - (ptr + HEADER_SIZE)
            if not mem.used and room >= size:
                if room >= size + HEADER_SIZE + MIN_SIZE_ALIGNED:
                    self._split(mem, size)
                    self.used += size + HEADER_SIZE
                else:
                    self.used += mem.next - ptr
                self._note_usage()
                mem.used = True
                mem.pool = self
                mem.thread = _current_tag()
                if ptr == self.lfree:
                    while self._items[self.lfree].used and self.lfree != self.heap_end:
                        self.lfree = self._items[self.lfree].next
                return ptr + HEADER_SIZE
            ptr = mem.next
        raise SmallMemError(f"no memory for {size} bytes")

    def realloc(self, addr: Optional[int], newsize: int) -> Optional[int]:
        """Resize the block at addr, moving it if needed; returns its address."""
        self._check_live()
        if newsize < 0:
            raise ValueError("size must not be negative")
        newsize = _align(newsize)
        if newsize > self.mem_size_aligned:
            raise SmallMemError(f"realloc: no memory for {newsize} bytes")
        if newsize == 0:
            self.free(addr)
            return None
        if addr is None:
            return self.alloc(newsize)

        mem = self._used_block(addr)
        ptr = mem.offset
        size = mem.next - ptr - HEADER_SIZE
        if size == newsize:
            return addr

        if newsize + HEADER_SIZE + MIN_SIZE < size:
            self.used -= size - newsize
            mem2 = self._split(mem, newsize)
            if mem2.offset < self.lfree:
                self.lfree = mem2.offset
            self._plug_holes(mem2)
            return addr

        new_addr = self.alloc(newsize)
        count = min(size, newsize)
        self._memory[new_addr:new_addr + count] = self._memory[addr:addr + count]
        self.free(addr)
        return new_addr

    def free(self, addr: Optional[int]) -> None:
        """Release the block at addr; None is ignored."""
        if addr is None:
            return
        self._check_live()
        mem = self._used_block(addr)
        mem.used = False
        mem.thread = FREE_TAG
        if mem.offset < self.lfree:
            self.lfree = mem.offset
        self.used -= mem.next - mem.offset
        self._plug_holes(mem)

    def _check_range(self, addr: int, length: int) -> None:
        if length < 0:
            raise ValueError("length must not be negative")
        for block in self.blocks():
            if block.used and block.data_address <= addr and addr + length <= block.next:
                return
        raise SmallMemError(f"range {addr}..{addr + length} is not inside an allocated block")

    def read(self, addr: int, length: int) -> bytes:
        """Bytes stored in an allocated block."""
        self._check_range(addr, length)
        return bytes(self._memory[addr:addr + length])

    def write(self, addr: int, data: bytes) -> None:
        """Store bytes inside an allocated block."""
        data = bytes(data)
        self._check_range(addr, len(data))
        self._memory[addr:addr + len(data)] = data

    def blocks(self) -> Iterator[SmallBlock]:
        """Headers of all blocks from the start of the heap to its end."""
        offset = 0
        while offset != self.heap_end:
            block = self._items.get(offset)
            if block is None:
                raise SmallMemError(f"block list broken at offset {offset}")
            yield block
            if block.next <= offset:
                raise SmallMemError(f"block list loops at offset {offset}")
            offset = block.next