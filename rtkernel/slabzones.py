"""Zone size classes and the layout of one slab zone."""

from __future__ import annotations

from dataclasses import dataclass, field

SLAB_MAGIC = 0x51AB51AB
ZONE_LIMIT = 16 * 1024
"""Largest request a zone may serve."""
MIN_ZONE_SIZE = 32 * 1024
MAX_ZONE_SIZE = 128 * 1024
ZONE_RELEASE_THRESH = 2
"""Whole free zones kept before one is given back to the page allocator."""
MIN_CHUNK_SIZE = 8
MIN_CHUNK_MASK = MIN_CHUNK_SIZE - 1
NZONES = 72
ZONE_HEADER_SIZE = 36
"""Bytes taken by the header at the start of each zone."""

# (upper bound exclusive, chunking, index base)
_CLASSES = (
    (128, 8, -1),
    (256, 16, 7),
    (512, 32, 15),
    (1024, 64, 23),
    (2048, 128, 31),
    (4096, 256, 39),
    (8192, 512, 47),
    (16384, 1024, 55),
)


def zone_index(size: int) -> tuple[int, int]:
    """Zone index for a request and the chunk size it is rounded up to."""
    if size <= 0:
        raise ValueError("size must be positive")
    for bound, chunk, base in _CLASSES:
        if size < bound:
            rounded = (size + chunk - 1) & ~(chunk - 1)
            return rounded // chunk + base, rounded
    raise ValueError(f"unexpected byte count {size}")


def _is_power_of_two(value: int) -> bool:
    return (value | (value - 1)) + 1 == value << 1


@dataclass(eq=False)
class Zone:
    """A zone at address of zone_size bytes split into chunks of chunk_size.

    A new zone hands out its first chunk on creation, so it starts with
    nfree one below nmax and uindex at zero.
    """

    address: int
    zone_size: int
    chunk_size: int
    index: int
    magic: int = field(init=False, default=SLAB_MAGIC)
    base: int = field(init=False)
    nmax: int = field(init=False)
    nfree: int = field(init=False)
    uindex: int = field(init=False, default=0)
    free_chunks: list[int] = field(init=False, default_factory=list)

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= self.index < NZONES:
            raise ValueError(f"zone index {self.index} out of range")
        size = self.chunk_size
        if _is_power_of_two(size):
            offset = (ZONE_HEADER_SIZE + size - 1) & ~(size - 1)
        else:
            offset = (ZONE_HEADER_SIZE + MIN_CHUNK_MASK) & ~MIN_CHUNK_MASK
        if self.zone_size - offset < size:
            raise ValueError("zone is too small for one chunk")
        self.base = self.address + offset
        self.nmax = (self.zone_size - offset) // size
        self.nfree = self.nmax - 1

    def chunk_offset(self, index: int) -> int:
        """Address of chunk number index within the zone."""
        if not 0 <= index < self.nmax:
            raise IndexError(f"chunk {index} outside zone of {self.nmax} chunks")
        return self.base + index * self.chunk_size