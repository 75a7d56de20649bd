from contextlib import contextmanager
from threading import RLock
from typing import Callable, Generic, Iterator, TypeVar

L = TypeVar("L")


class ListenerRegistry(Generic[L]):
    """
    Ordered, lock-guarded list of listeners.

    The same reentrant lock guards mutation and fan-out, so a listener may
    add or remove listeners from inside its own callback without deadlocking.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._listeners: list[L] = []

    def add(self, listener: L) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove(self, listener: L) -> bool:
        """
        Remove the first entry that is `listener` (identity, not equality).
        """
        with self._lock:
            for i, registered in enumerate(self._listeners):
                if registered is listener:
                    del self._listeners[i]
                    return True
            return False

    def snapshot(self) -> tuple[L, ...]:
        with self._lock:
            return tuple(self._listeners)

    @contextmanager
    def locked(self) -> Iterator[tuple[L, ...]]:
        with self._lock:
            yield tuple(self._listeners)

    def fan_out(self, deliver: Callable[[L], None]) -> None:
        """
        Call `deliver` for every listener, in registration order, holding the
        lock for the whole batch. Mutations made by `deliver` on this thread
        take effect from the next batch.
        """
        with self.locked() as listeners:
            for listener in listeners:
                deliver(listener)
