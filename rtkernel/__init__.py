"""Simulated real-time kernel memory managers: object registry, small-memory heap, memheap, memory pools and slab page and zone helpers."""

__version__ = "0.1.0"