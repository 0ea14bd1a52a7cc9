"""Kernel object registry: typed containers of named kernel objects."""

from __future__ import annotations

import threading
from enum import IntEnum
from typing import Callable, Optional

STATIC_FLAG = 0x80
"""Bit set in an object's type when it was initialised statically."""

DEFAULT_NAME_MAX = 8


class ObjectClass(IntEnum):
    """The kinds of kernel object the registry keeps containers for."""

    NULL = 0x00
    THREAD = 0x01
    SEMAPHORE = 0x02
    MUTEX = 0x03
    EVENT = 0x04
    MAILBOX = 0x05
    MESSAGE_QUEUE = 0x06
    MEMHEAP = 0x07
    MEMPOOL = 0x08
    DEVICE = 0x09
    TIMER = 0x0A
    MODULE = 0x0B
    MEMORY = 0x0C


class KernelObjectError(Exception):
    """Raised when an object is used against the registry's rules."""


class KernelObject:
    """A named object with a type word; the base of every kernel object."""

    def __init__(self, name: str = "", type_: int = 0) -> None:
        self.name = name
        self.type = type_
        self.flag = 0

    def is_system_object(self) -> bool:
        """True if the object was initialised statically."""
        return bool(self.type & STATIC_FLAG)

    def object_class(self) -> int:
        """The object's type without the static flag."""
        return self.type & ~STATIC_FLAG

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, type=0x{self.type:02x})"


Hook = Optional[Callable[[KernelObject], None]]


def _as_class(value: int) -> Optional[ObjectClass]:
    try:
        return ObjectClass(value)
    except ValueError:
        return None


class ObjectRegistry:
    """Holds one list of live objects for each object class."""

    def __init__(self, name_max: int = DEFAULT_NAME_MAX) -> None:
        if name_max <= 0:
            raise ValueError("name_max must be positive")
        self.name_max = name_max
        self._containers: dict[ObjectClass, list[KernelObject]] = {
            cls: [] for cls in ObjectClass if cls is not ObjectClass.NULL
        }
        self._lock = threading.RLock()
        self._attach_hook: Hook = None
        self._detach_hook: Hook = None

    def _container(self, object_class: int) -> Optional[list[KernelObject]]:
        cls = _as_class(object_class)
        if cls is None:
            return None
        return self._containers.get(cls)

    @staticmethod
    def _remove(container: list[KernelObject], obj: KernelObject) -> None:
        for position, entry in enumerate(container):
            if entry is obj:
                del container[position]
                return

    def set_attach_hook(self, hook: Hook) -> None:
        """Set the function called whenever an object joins the registry."""
        self._attach_hook = hook

    def set_detach_hook(self, hook: Hook) -> None:
        """Set the function called whenever an object leaves the registry."""
        self._detach_hook = hook

    def length(self, object_class: int) -> int:
        """Number of registered objects of the given class."""
        container = self._container(object_class)
        if container is None:
            return 0
        with self._lock:
            return len(container)

    def objects(self, object_class: int, maxlen: int) -> list[KernelObject]:
        """Up to maxlen objects of the class, most recently added first."""
        if maxlen <= 0:
            return []
        container = self._container(object_class)
        if container is None:
            return []
        with self._lock:
            return container[:maxlen]

    def _attach(self, obj: KernelObject, container: list[KernelObject]) -> None:
        if self._attach_hook is not None:
            self._attach_hook(obj)
        with self._lock:
            container.insert(0, obj)

    def init_object(self, obj: KernelObject, object_class: int, name: str) -> None:
        """Register a statically owned object under a class and name."""
        container = self._container(object_class)
        if container is None:
            raise KernelObjectError(f"no container for object class {object_class}")
        with self._lock:
            if any(entry is obj for entry in container):
                raise KernelObjectError(f"object {obj.name!r} is already registered")
        obj.type = int(object_class) | STATIC_FLAG
        obj.name = name[: self.name_max]
        self._attach(obj, container)

    def detach(self, obj: KernelObject) -> None:
        """Remove a static object from the registry; it stays usable as memory."""
        if obj is None:
            raise KernelObjectError("cannot detach a missing object")
        if self._detach_hook is not None:
            self._detach_hook(obj)
        container = self._container(obj.object_class())
        obj.type = 0
        if container is not None:
            with self._lock:
                self._remove(container, obj)

    def allocate(self, object_class: int, name: str) -> KernelObject:
        """Create and register a dynamic object of the given class."""
        container = self._container(object_class)
        if container is None:
            raise KernelObjectError(f"no container for object class {object_class}")
        obj = KernelObject(name[: self.name_max], int(object_class))
        obj.flag = 0
        self._attach(obj, container)
        return obj

    def delete(self, obj: KernelObject) -> None:
        """Remove a dynamically allocated object from the registry."""
        if obj is None:
            raise KernelObjectError("cannot delete a missing object")
        if obj.is_system_object():
            raise KernelObjectError(f"object {obj.name!r} is static; detach it instead")
        if self._detach_hook is not None:
            self._detach_hook(obj)
        container = self._container(obj.object_class())
        obj.type = ObjectClass.NULL
        if container is not None:
            with self._lock:
                self._remove(container, obj)

    def find(self, name: Optional[str], object_class: int) -> Optional[KernelObject]:
        """The first object of the class whose name matches, or None."""
        container = self._container(object_class)
        if name is None or container is None:
            return None
        key = name[: self.name_max]
        with self._lock:
            return next(
                (obj for obj in container if obj.name[: self.name_max] == key),
                None,
            )