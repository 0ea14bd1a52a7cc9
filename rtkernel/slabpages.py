"""Page allocator: a first-fit list of free page runs kept in address order."""

from __future__ import annotations

from typing import Optional

DEFAULT_PAGE_SIZE = 4096


class PageAllocator:
    """Hands out runs of whole pages from a region of npages pages at start."""

    def __init__(self, start: int, npages: int, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        if page_size <= 0 or page_size & (page_size - 1):
            raise ValueError("page_size must be a positive power of two")
        if npages <= 0:
            raise ValueError("npages must be positive")
        if start < 0 or start % page_size:
            raise ValueError("start must be a non-negative multiple of page_size")
        self.start = start
        self.npages = npages
        self.page_size = page_size
        self.page_bits = page_size.bit_length() - 1
        self._runs: list[tuple[int, int]] = []
        self.free(start, npages)

    @property
    def end(self) -> int:
        """First address past the managed region."""
        return self.start + self.npages * self.page_size

    def alloc(self, npages: int) -> Optional[int]:
        """Take npages contiguous pages; returns their address, or None if none fit.

        A request for zero pages also gives None.
        """
        if npages < 0:
            raise ValueError("npages must not be negative")
        if npages == 0:
            return None
        for position, (addr, pages) in enumerate(self._runs):
            if pages > npages:
                self._runs[position] = (addr + npages * self.page_size, pages - npages)
                return addr
            if pages == npages:
                del self._runs[position]
                return addr
        return None

    def free(self, addr: int, npages: int) -> None:
        """Give npages pages at addr back, merging with adjacent free runs."""
        if npages <= 0:
            raise ValueError("npages must be positive")
        if addr % self.page_size:
            raise ValueError(f"address 0x{addr:x} is not page aligned")
        end = addr + npages * self.page_size
        if addr < self.start or end > self.end:
            raise ValueError(f"pages at 0x{addr:x} lie outside the region")
        size = self.page_size
        for run_addr, pages in self._runs:
            if run_addr < end and addr < run_addr + pages * size:
                raise ValueError(f"pages at 0x{addr:x} are already free")

        for position, (run_addr, pages) in enumerate(self._runs):
            run_end = run_addr + pages * size
            if run_end == addr:
                merged = pages + npages
                following = position + 1
                if following < len(self._runs) and self._runs[following][0] == end:
                    merged += self._runs[following][1]
                    del self._runs[following]
                self._runs[position] = (run_addr, merged)
                return
            if run_addr == end:
                self._runs[position] = (addr, pages + npages)
                return
            if run_addr > end:
                self._runs.insert(position, (addr, npages))
                return
        self._runs.append((addr, npages))

    def free_runs(self) -> list[tuple[int, int]]:
        """Free runs as (address, page count) pairs in address order."""
        return list(self._runs)