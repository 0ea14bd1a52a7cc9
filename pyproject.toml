[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rtkernel"
version = "0.1.0"
description = "Simulated real-time kernel memory managers: small-memory heap, memheap, memory pools, slab page and zone helpers, and an object registry"
requires-python = ">=3.10"
dependencies = []
keywords = ["rtos", "allocator", "heap", "memory pool", "slab", "simulation"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Embedded Systems",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["rtkernel"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
