"""Garbage-collection notifications for objects bound to keys.

A `NotificationMonitor` binds keys to objects through weak references and
calls every registered listener with the key once the object is collected.
"""

from .gc_observer import (
    AsyncCollectionListener,
    CallbackListener,
    Listener,
    MonitorClosedError,
    NotificationMonitor,
    WeakBinding,
)

__all__ = [
    "AsyncCollectionListener",
    "CallbackListener",
    "Listener",
    "MonitorClosedError",
    "NotificationMonitor",
    "WeakBinding",
]
