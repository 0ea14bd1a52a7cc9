# rtkernel

This package simulates the memory managers of a small real-time kernel in
pure Python. Each heap owns a `bytearray` region and hands out integer
addresses inside that region. You can use it to study allocation,
splitting, merging and fragmentation without any hardware.

## Modules

- `rtkernel.objects` provides `ObjectRegistry`, which holds named
  `KernelObject`s grouped by `ObjectClass`.
  - `init_object` and `detach` handle static objects.
  - `allocate` and `delete` handle dynamic objects.
  - `find`, `length` and `objects` look objects up.
  - `set_attach_hook` and `set_detach_hook` set callbacks.
  - Misuse raises `KernelObjectError`.
- `rtkernel.smallmem` provides `SmallMem`, a first-fit heap. It keeps a
  list of adjacent blocks and merges free neighbours when a block is
  freed.
  - Methods: `alloc`, `realloc`, `free`, `read`, `write`, `detach`.
  - `blocks()` yields each block's `SmallBlock` header.
  - Failures raise `SmallMemError`.
- `rtkernel.smallcheck.check_small_mems(registry, name=None)` walks the
  small-memory heaps in a registry. It returns the first `BadBlock` it
  finds, or `None` if every block is sound.
- `rtkernel.smalltrace.trace_small_mems(registry, name=None)` returns the
  lines of a listing of each heap and its blocks.
  `format_block_size(size)` builds the five-column size field used in
  that listing.
- `rtkernel.memheap` provides `MemHeap`, a heap with magic-tagged block
  headers and a separate free list. `realloc` grows a block in place when
  the next block is free and large enough.
  - Methods: `alloc`, `realloc`, `free`, `read`, `write`, `detach`.
  - `block_size(addr)` gives the data size of an allocated block.
  - `blocks()` yields each block's `HeapBlock` header.
  - `info()` returns a `MemHeapInfo` with `total`, `used` and `max_used`.
  - Failures raise `MemHeapError`.
- `rtkernel.heapgroup` provides `HeapGroup`. It allocates from a default
  `MemHeap` and falls back to the other heaps. The other heaps are the
  ones given to it, or else every memheap in the default heap's registry.
  `alloc` and `realloc` return a `(heap, address)` pair.
- `rtkernel.heaptrace` provides two functions for memheaps:
  - `check_heaps(registry, name=None)` returns the first `HeapProblem`
    found, or `None`.
  - `trace_heaps(registry, name=None)` returns listing lines.
- `rtkernel.mempool` provides `MemPool`, a pool of fixed-size blocks.
  - `alloc(timeout)` returns a block address. With `0` it does not wait.
    With a number of seconds it waits that long and then raises
    `PoolTimeout`. With `None` or a negative value it waits forever.
  - `free(block)` returns the block and wakes one waiting caller.
  - `detach()` wakes every waiting caller with `PoolDetached`.
  - `set_alloc_hook` and `set_free_hook` install callbacks, which are
    called with `(pool, block)`.
  - `MemPool.from_region(name, size, block_size)` sizes a pool to fit a
    region of `size` bytes.
- `rtkernel.slabpages` provides `PageAllocator`, a first-fit list of free
  page runs kept in address order. Runs merge when pages are freed.
  `free_runs()` returns the runs as `(address, page count)` pairs.
- `rtkernel.slabzones` provides two slab building blocks:
  - `zone_index(size)` returns the zone index and the chunk size that a
    request is rounded up to.
  - `Zone` describes the chunk layout of one zone, and
    `chunk_offset(index)` gives the address of a chunk.

## Installation

```
pip install .
```

To install and run the test suite:

```
pip install .[test]
pytest
```

## Example

```python
from rtkernel.objects import ObjectRegistry
from rtkernel.smallmem import SmallMem
from rtkernel.memheap import MemHeap
from rtkernel.mempool import MemPool, PoolTimeout

registry = ObjectRegistry(8)

heap = SmallMem("heap", 4096, registry)
addr = heap.alloc(100)
heap.write(addr, b"hello")
addr = heap.realloc(addr, 400)
assert heap.read(addr, 5) == b"hello"
heap.free(addr)

mh = MemHeap("sram", 8192, registry)
p = mh.alloc(64)
print(mh.info())
mh.free(p)

pool = MemPool("blocks", 2, 32, registry)
a = pool.alloc(0)
b = pool.alloc(0)
try:
    pool.alloc(0)
except PoolTimeout:
    pass
pool.free(a)
```

## Errors

A request that cannot be met raises the module's exception, such as
`SmallMemError`, `MemHeapError` or `PoolTimeout`. The same exceptions are
raised when an address does not belong to the heap or a block header has
been damaged.

A few calls return `None` instead of raising:

- `SmallMem.alloc(0)` returns `None`.
- `realloc` to a size of zero frees the block and returns `None`.
- `PageAllocator.alloc` returns `None` when no run of pages is large
  enough.

## What this package does not do

The page allocator and the zone layout are provided only as separate
pieces. The package does not include a complete slab allocator built from
them.

It also has no memory hex-dump helper and no command-line tool. The
checks and traces return values or lines of text for the caller to print.