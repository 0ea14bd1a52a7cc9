"""Memory heap: blocks with magic headers and a free list searched first-fit."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Optional

from rtkernel.objects import KernelObject, ObjectClass, ObjectRegistry

MAGIC = 0x1EA01EA0
MASK = 0xFFFFFFFE
USED = 0x01
FREED = 0x00
MIN_ALLOC = 12
ALIGN_SIZE = 4
HEADER_SIZE = 28
"""Bytes taken by the header in front of each block's data."""

OWNER_LEN = 4
FREE_OWNER = " " * OWNER_LEN


def _align(value: int, align: int = ALIGN_SIZE) -> int:
    return (value + align - 1) & ~(align - 1)


def _align_down(value: int, align: int = ALIGN_SIZE) -> int:
    return value & ~(align - 1)


def _current_owner() -> str:
    name = threading.current_thread().name
    return name.split("\0", 1)[0][:OWNER_LEN].ljust(OWNER_LEN)


class MemHeapError(Exception):
    """Raised on a failed allocation or a misuse of a memory heap."""


@dataclass(frozen=True)
class MemHeapInfo:
    """Totals reported for a heap, in bytes."""

    total: int
    used: int
    max_used: int


@dataclass(eq=False)
class HeapBlock:
    """Header of one block in the heap's block list."""

    offset: int
    magic: int
    next: int
    prev: int
    pool: Optional["MemHeap"] = field(default=None, repr=False)
    owner: str = FREE_OWNER

    @property
    def used(self) -> bool:
        return bool(self.magic & USED)

    @property
    def size(self) -> int:
        """Bytes of data the block holds."""
        return self.next - self.offset - HEADER_SIZE

    @property
    def data_address(self) -> int:
        return self.offset + HEADER_SIZE


class MemHeap(KernelObject):
    """A heap of size bytes ending in a zero-length used tail block."""

    def __init__(self, name: str, size: int, registry: Optional[ObjectRegistry] = None) -> None:
        super().__init__()
        pool_size = _align_down(size)
        if pool_size < 2 * HEADER_SIZE:
            raise MemHeapError(f"memheap of {size} bytes is too small")
        self.registry = registry if registry is not None else ObjectRegistry()
        self.start_addr = 0
        self.pool_size = pool_size
        self.available_size = pool_size - 2 * HEADER_SIZE
        self.max_used_size = pool_size - self.available_size
        self._memory = bytearray(pool_size)
        tail = self.available_size + HEADER_SIZE
        self._items: dict[int, HeapBlock] = {
            0: HeapBlock(0, MAGIC | FREED, tail, tail, self),
            tail: HeapBlock(tail, MAGIC | USED, 0, 0, self),
        }
        self._free: list[int] = [0]
        self.block_list = 0
        self._lock = threading.RLock()
        self.registry.init_object(self, ObjectClass.MEMHEAP, name)

    def _check_live(self) -> None:
        if self.object_class() != ObjectClass.MEMHEAP:
            raise MemHeapError(f"memheap {self.name!r} is not attached")

    def _note_usage(self) -> None:
        in_use = self.pool_size - self.available_size
        if in_use > self.max_used_size:
            self.max_used_size = in_use

    def _insert_free(self, offset: int) -> None:
        self._free.insert(0, offset)

    def _remove_free(self, offset: int) -> None:
        self._free.remove(offset)

    def _used_block(self, addr: int) -> HeapBlock:
        block = self._items.get(addr - HEADER_SIZE)
        if block is None or block.pool is not self or block.next <= block.offset:
            raise MemHeapError(f"address {addr} was not allocated from {self.name!r}")
        if block.magic != MAGIC | USED:
            raise MemHeapError(f"bad magic 0x{block.magic:08x} at address {addr}")
        return block

    def _split_after(self, block: HeapBlock, data_size: int) -> HeapBlock:
        new = HeapBlock(
            block.offset + data_size + HEADER_SIZE, MAGIC | FREED, block.next, block.offset, self
        )
        self._items[new.offset] = new
        self._items[block.next].prev = new.offset
        block.next = new.offset
        return new

    def detach(self) -> None:
        """Remove the heap from its registry."""
        self._check_live()
        self.registry.detach(self)

    def alloc(self, size: int) -> int:
        """Allocate at least size bytes and return the data address."""
        self._check_live()
        if size < 0:
            raise ValueError("size must not be negative")
        size = max(_align(size), MIN_ALLOC)
        if size >= self.available_size:
            raise MemHeapError(f"no memory for {size} bytes")
        with self._lock:
            block = next(
                (self._items[o] for o in self._free if self._items[o].size >= size), None
            )
            if block is None:
                raise MemHeapError(f"no memory for {size} bytes")
            free_size = block.size
            if free_size >= size + HEADER_SIZE + MIN_ALLOC:
                new = self._split_after(block, size)
                self._remove_free(block.offset)
                self._insert_free(new.offset)
                self.available_size -= size + HEADER_SIZE
            else:
                self.available_size -= free_size
                self._remove_free(block.offset)
            self._note_usage()
            block.magic = MAGIC | USED
            block.owner = _current_owner()
            return block.data_address

    def realloc(self, addr: Optional[int], newsize: int) -> Optional[int]:
        """Resize the block at addr, in place where possible; returns its address."""
        self._check_live()
        if newsize < 0:
            raise ValueError("size must not be negative")
        if newsize == 0:
            self.free(addr)
            return None
        newsize = max(_align(newsize), MIN_ALLOC)
        if addr is None:
            return self.alloc(newsize)

        with self._lock:
            block = self._used_block(addr)
            oldsize = block.size
            if newsize > oldsize:
                nxt = self._items[block.next]
                if not nxt.used and nxt.size + oldsize > newsize + MIN_ALLOC:
                    self.available_size -= newsize - oldsize
                    self._note_usage()
                    self._remove_free(nxt.offset)
                    block.next = nxt.next
                    self._items[nxt.next].prev = block.offset
                    del self._items[nxt.offset]
                    new = self._split_after(block, newsize)
                    self._insert_free(new.offset)
                    return addr
            elif newsize + HEADER_SIZE + MIN_ALLOC >= oldsize:
                return addr
            else:
                new = self._split_after(block, newsize)
                following = self._items[new.next]
                if not following.used:
                    self.available_size -= following.size
                    self._items[following.next].prev = new.offset
                    new.next = following.next
                    self._remove_free(following.offset)
                    del self._items[following.offset]
                self._insert_free(new.offset)
                self.available_size += new.size
                return addr

        new_addr = self.alloc(newsize)
        count = min(oldsize, newsize)
        self._memory[new_addr:new_addr + count] = self._memory[addr:addr + count]
        self.free(addr)
        return new_addr

    def free(self, addr: Optional[int]) -> None:
        """Release the block at addr, merging it with free neighbours."""
        if addr is None:
            return
        self._check_live()
        with self._lock:
            block = self._used_block(addr)
            nxt = self._items.get(block.next)
            if nxt is None or (nxt.magic & MASK) != MAGIC:
                raise MemHeapError(f"block at address {addr} has been overwritten")
            block.magic = MAGIC | FREED
            self.available_size += block.size
            insert = True

            prev = self._items[block.prev]
            if not prev.used:
                self.available_size += HEADER_SIZE
                prev.next = block.next
                self._items[block.next].prev = prev.offset
                del self._items[block.offset]
                block = prev
                insert = False

            nxt = self._items[block.next]
            if not nxt.used:
                self.available_size += HEADER_SIZE
                self._items[nxt.next].prev = block.offset
                block.next = nxt.next
                self._remove_free(nxt.offset)
                del self._items[nxt.offset]

            if insert:
                self._insert_free(block.offset)
            block.owner = FREE_OWNER

    def info(self) -> MemHeapInfo:
        """Total, used and peak used bytes of the heap."""
        with self._lock:
            return MemHeapInfo(
                self.pool_size, self.pool_size - self.available_size, self.max_used_size
            )

    def block_size(self, addr: int) -> int:
        """Data size of the allocated block at addr."""
        with self._lock:
            return self._used_block(addr).size

    def _check_range(self, addr: int, length: int) -> None:
        if length < 0:
            raise ValueError("length must not be negative")
        for block in self.blocks():
            if block.used and block.data_address <= addr and addr + length <= block.next:
                return
        raise MemHeapError(f"range {addr}..{addr + length} is not inside an allocated block")

    def read(self, addr: int, length: int) -> bytes:
        """Bytes stored in an allocated block."""
        self._check_range(addr, length)
        return bytes(self._memory[addr:addr + length])

    def write(self, addr: int, data: bytes) -> None:
        """Store bytes inside an allocated block."""
        data = bytes(data)
        self._check_range(addr, len(data))
        self._memory[addr:addr + len(data)] = data

    def blocks(self) -> Iterator[HeapBlock]:
        """Headers of all blocks in address order, without the tail block."""
        offset = self.block_list
        seen = 0
        while True:
            block = self._items.get(offset)
            if block is None:
                raise MemHeapError(f"block list broken at offset {offset}")
            if block.next == self.block_list:
                return
            yield block
            seen += 1
            if seen > len(self._items):
                raise MemHeapError("block list loops")
            offset = block.next