import logging
import queue
import threading
import weakref
from typing import Any, Callable, ClassVar, Generic, Optional, TypeVar, Union
from typing_extensions import override

from .registry import ListenerRegistry

R = TypeVar("R")
K = TypeVar("K")

logger = logging.getLogger(__name__)


class MonitorClosedError(RuntimeError):
    """Raised when binding against a monitor that has been closed."""


class Listener(Generic[K]):
    def on_collected(self, key: K) -> None:
        """
        Called from the monitor's worker thread once the object bound to
        `key` has been collected. The return value is ignored.
        """
        raise NotImplementedError


class CallbackListener(Listener[K], Generic[K]):
    def __init__(self, callback: Callable[[K], Any]) -> None:
        self.callback = callback

    @override
    def on_collected(self, key: K) -> None:
        self.callback(key)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.callback!r})"


ListenerLike = Union[Listener[Any], Callable[[Any], Any]]


class WeakBinding(weakref.ref, Generic[R, K]):
    """
    Weak reference to a bound object that carries the key it was bound with.

    Only `NotificationMonitor.bind` creates these. The key belongs to the
    reference, so it is still readable after the object is gone.
    """

    __slots__ = ("_key", "_fired", "_delivered")

    def __new__(
        cls,
        obj: R,
        callback: Callable[["WeakBinding[R, K]"], None],
        key: K,
    ) -> "WeakBinding[R, K]":
        self = super().__new__(cls, obj, callback)
        self._key = key
        self._fired = False
        self._delivered = False
        return self

    def __init__(
        self,
        obj: R,
        callback: Callable[["WeakBinding[R, K]"], None],
        key: K,
    ) -> None:
        super().__init__(obj, callback)

    @property
    def key(self) -> K:
        return self._key

    @property
    def fired(self) -> bool:
        """True once the collector has reclaimed the object."""
        return self._fired

    @property
    def delivered(self) -> bool:
        """True once every listener registered at the time has been called."""
        return self._delivered

    def get(self) -> Optional[R]:
        return self()

    def __repr__(self) -> str:
        state = "delivered" if self._delivered else "fired" if self._fired else "bound"
        return f"<{type(self).__name__} key={self._key!r} {state}>"


# Channel token that stops the worker.
_CLOSE = object()


class NotificationMonitor:
    """
    Tells listeners when objects bound to keys have been garbage collected.

    `bind` attaches a key to an object through a weak reference. When the
    collector reclaims the object, the reference's callback puts the binding
    on a channel, and a single daemon worker thread hands its key to every
    registered listener, in registration order. A failing listener is logged
    and skipped; it never stops delivery to the others or kills the worker.

    `instance()` returns a lazily created process-wide monitor. Monitors can
    also be constructed directly and passed to the code that needs them.
    """

    _instance: ClassVar[Optional["NotificationMonitor"]] = None
    _instance_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(
        self, name: Optional[str] = None, log: Optional[logging.Logger] = None
    ) -> None:
        self._log = log or logger
        self._registry: ListenerRegistry[ListenerLike] = ListenerRegistry()
        # SimpleQueue.put is reentrant, so it is safe inside weakref callbacks.
        self._channel: "queue.SimpleQueue[object]" = queue.SimpleQueue()
        self._pending: dict[int, WeakBinding[Any, Any]] = {}
        self._state_lock = threading.Lock()
        self._closed = False
        self._worker = threading.Thread(
            target=self._run,
            name=name or f"{type(self).__name__} worker",
            daemon=True,
        )
        self._worker.start()

    @classmethod
    def instance(cls) -> "NotificationMonitor":
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @property
    def closed(self) -> bool:
        return self._closed

    def is_running(self) -> bool:
        return self._worker.is_alive()

    def bind(self, obj: R, key: K) -> WeakBinding[R, K]:
        """
        Track `obj` under `key` and return a weak binding to it.

        Raises TypeError when `obj` is None or cannot be weakly referenced.
        """
        if obj is None:
            raise TypeError("cannot bind None")
        with self._state_lock:
            if self._closed:
                raise MonitorClosedError("monitor is closed")
            binding: WeakBinding[R, K] = WeakBinding(obj, self._enqueue, key)
            # Keeps the binding alive until it fires, even if the caller drops it.
            self._pending[id(binding)] = binding
        return binding

    def add_listener(self, listener: ListenerLike) -> "NotificationMonitor":
        if not (isinstance(listener, Listener) or callable(listener)):
            raise TypeError(f"not a listener: {listener!r}")
        self._registry.add(listener)
        return self

    def remove_listener(self, listener: ListenerLike) -> "NotificationMonitor":
        """
        Remove the first registration of `listener`, matched by identity.
        Removing a listener that is not registered does nothing.
        """
        self._registry.remove(listener)
        return self

    def listeners(self) -> tuple[ListenerLike, ...]:
        return self._registry.snapshot()

    def pending(self) -> int:
        """Number of bindings whose object has not been collected yet."""
        return len(self._pending)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the worker has handled every notification queued before
        this call. Returns False on timeout or once the monitor is closed.
        """
        if threading.current_thread() is self._worker:
            raise RuntimeError("wait_idle() cannot be called from a listener")
        barrier = threading.Event()
        # Barriers always go on the channel ahead of the closing token.
        with self._state_lock:
            if self._closed or not self._worker.is_alive():
                return False
            self._channel.put(barrier)
        return barrier.wait(timeout)

    def close(self, timeout: Optional[float] = None) -> None:
        """
        Stop the worker once it has delivered everything already queued.
        Calling it again is harmless.
        """
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            self._channel.put(_CLOSE)
        if threading.current_thread() is not self._worker:
            self._worker.join(timeout)

    def _enqueue(self, binding: WeakBinding[Any, Any]) -> None:
        # Weakref callback: runs on whichever thread triggered the collection.
        self._pending.pop(id(binding), None)
        binding._fired = True
        # Lock-free: this may run inside bind() on the same thread. A binding
        # that slips in behind the closing token is never delivered.
        if not self._closed:
            self._channel.put(binding)

    def _run(self) -> None:
        while True:
            try:
                item = self._channel.get()
                if item is _CLOSE:
                    self._log.debug("Collection channel closed; worker exiting.")
                    return
                if isinstance(item, threading.Event):
                    item.set()
                    continue
                self._deliver(item)  # type: ignore[arg-type]
            except BaseException:
                # Only the closing token stops the worker.
                self._log.exception("Collection monitor worker failed; continuing.")

    def _deliver(self, binding: WeakBinding[Any, Any]) -> None:
        key = binding.key

        def notify(listener: ListenerLike) -> None:
            try:
                if isinstance(listener, Listener):
                    listener.on_collected(key)
                else:
                    listener(key)
            except BaseException:
                self._log.exception(
                    "Listener %r failed for collected key %r.", listener, key
                )

        self._registry.fan_out(notify)
        binding._delivered = True
