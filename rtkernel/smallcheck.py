"""Consistency check of the small-memory heaps held by a registry."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from rtkernel.objects import KernelObject, ObjectClass, ObjectRegistry
from rtkernel.smallmem import HEADER_SIZE, SmallMem, SmallMemError


@dataclass(frozen=True)
class BadBlock:
    """The first damaged block found in a heap."""

    name: str
    address: int
    pool: Optional[KernelObject]
    size: int
    reason: str

    def __str__(self) -> str:
        pool_name = self.pool.name if self.pool is not None else "none"
        return (
            "Memory block wrong:\n"
            f"   name: {self.name}\n"
            f"address: 0x{self.address:08x}\n"
            f"   pool: {pool_name}\n"
            f"   size: {self.size}\n"
            f" reason: {self.reason}"
        )


def _check_one(heap: SmallMem) -> Optional[BadBlock]:
    last_offset = 0
    walker = heap.blocks()
    while True:
        try:
            block = next(walker)
        except StopIteration:
            return None
        except SmallMemError as exc:
            return BadBlock(heap.name, last_offset, None, 0, str(exc))
        position = block.offset
        last_offset = position
        size = block.next - position - HEADER_SIZE
        if position < 0 or position > heap.mem_size_aligned:
            return BadBlock(heap.name, position, block.pool, size, "block outside the heap")
        if block.pool is not heap:
            return BadBlock(heap.name, position, block.pool, size, "block owned by another pool")


def check_small_mems(registry: ObjectRegistry, name: Optional[str] = None) -> Optional[BadBlock]:
    """Walk every small-memory heap (or only the one named) and report the first bad block.

    Returns None when every block checked is sound.
    """
    key = name[: registry.name_max] if name is not None else None
    count = registry.length(ObjectClass.MEMORY)
    for obj in registry.objects(ObjectClass.MEMORY, count):
        if key is not None and obj.name[: registry.name_max] != key:
            continue
        if not isinstance(obj, SmallMem):
            continue
        bad = _check_one(obj)
        if bad is not None:
            return bad
    return None