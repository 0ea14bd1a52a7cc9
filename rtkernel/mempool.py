"""Pool of fixed-size blocks with optionally blocking allocation."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Optional

from rtkernel.objects import KernelObject, ObjectClass, ObjectRegistry

ALIGN_SIZE = 4
POINTER_SIZE = 4
"""Bytes in front of each block that link it into the free list."""

WAITING_FOREVER = -1


def _align(value: int, align: int = ALIGN_SIZE) -> int:
    return (value + align - 1) & ~(align - 1)


def _align_down(value: int, align: int = ALIGN_SIZE) -> int:
    return value & ~(align - 1)


class PoolTimeout(Exception):
    """Raised when no block became free within the allowed time."""


class PoolDetached(Exception):
    """Raised when the pool is detached, including while a caller waits on it."""


PoolHook = Optional[Callable[["MemPool", int], None]]


class MemPool(KernelObject):
    """block_count blocks of block_size bytes, handed out most recently freed first.

    Block addresses are offsets into the pool's region; each block is preceded
    by a link word of POINTER_SIZE bytes.
    """

    def __init__(
        self,
        name: str,
        block_count: int,
        block_size: int,
        registry: Optional[ObjectRegistry] = None,
    ) -> None:
        super().__init__()
        if block_count <= 0 or block_size <= 0:
            raise ValueError("block_count and block_size must be positive")
        self.registry = registry if registry is not None else ObjectRegistry()
        self.block_size = _align(block_size)
        self._stride = self.block_size + POINTER_SIZE
        self.start_address = 0
        self.size = self._stride * block_count
        self.block_total_count = block_count
        # The head of the free list is the end of this list.
        self._free: list[int] = [
            self.start_address + index * self._stride for index in reversed(range(block_count))
        ]
        self._allocated: set[int] = set()
        self._cond = threading.Condition()
        self._waiting = 0
        self._detached = False
        self._alloc_hook: PoolHook = None
        self._free_hook: PoolHook = None
        self.registry.init_object(self, ObjectClass.MEMPOOL, name)

    @classmethod
    def from_region(
        cls,
        name: str,
        size: int,
        block_size: int,
        registry: Optional[ObjectRegistry] = None,
    ) -> "MemPool":
        """A pool carved out of a region of size bytes."""
        if size <= 0 or block_size <= 0:
            raise ValueError("size and block_size must be positive")
        region = _align_down(size)
        count = region // (_align(block_size) + POINTER_SIZE)
        if count == 0:
            raise ValueError(f"a region of {size} bytes holds no block of {block_size} bytes")
        pool = cls(name, count, block_size, registry)
        pool.size = region
        return pool

    @property
    def block_free_count(self) -> int:
        """Number of blocks currently free."""
        with self._cond:
            return len(self._free)

    @property
    def waiting(self) -> int:
        """Number of callers blocked in alloc."""
        with self._cond:
            return self._waiting

    def set_alloc_hook(self, hook: PoolHook) -> None:
        """Set the function called with (pool, block) after each allocation."""
        self._alloc_hook = hook

    def set_free_hook(self, hook: PoolHook) -> None:
        """Set the function called with (pool, block) when a block is released."""
        self._free_hook = hook

    def alloc(self, timeout: Optional[float] = 0) -> int:
        """Take a block, waiting up to timeout seconds for one to be freed.

        A timeout of 0 does not wait; None or a negative value waits forever.
        """
        forever = timeout is None or timeout < 0
        with self._cond:
            deadline = None if forever else time.monotonic() + timeout
            while True:
                if self._detached:
                    raise PoolDetached(f"pool {self.name!r} is detached")
                if self._free:
                    break
                if not forever and timeout == 0:
                    raise PoolTimeout(f"pool {self.name!r} has no free block")
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    raise PoolTimeout(f"pool {self.name!r} has no free block")
                self._waiting += 1
                try:
                    self._cond.wait(remaining)
                finally:
                    self._waiting -= 1
            block = self._free.pop() + POINTER_SIZE
            self._allocated.add(block)
            hook = self._alloc_hook
        if hook is not None:
            hook(self, block)
        return block

    def free(self, block: Optional[int]) -> None:
        """Return a block to the pool and wake one waiting caller; None is ignored."""
        if block is None:
            return
        with self._cond:
            if block not in self._allocated:
                raise ValueError(f"block {block} was not allocated from {self.name!r}")
            self._allocated.discard(block)
        if self._free_hook is not None:
            self._free_hook(self, block)
        with self._cond:
            self._free.append(block - POINTER_SIZE)
            self._cond.notify()

    def detach(self) -> None:
        """Wake every waiting caller with PoolDetached and leave the registry."""
        with self._cond:
            if self._detached:
                raise PoolDetached(f"pool {self.name!r} is already detached")
            self._detached = True
            self._cond.notify_all()
        self.registry.detach(self)